"""
SQL text primitives: the trusted-fragment type, value quoting and
sanitization of the client-supplied WHERE and ORDER BY fragments.
"""

import math
import re
from datetime import date, datetime
from decimal import Decimal

from pydantic_core import core_schema

from postgis_geo.errors import InvalidQueryError


class TrustedSQL(str):
    """
    SQL fragment authored by server-side code.

    Layer hooks (base filter, tenant filter, field map, FROM clause) must
    return TrustedSQL. Plain client strings are never accepted in those
    slots; build literals with quote_literal() or a data source's
    quote_value().
    """

    __slots__ = ()

    @classmethod
    def __get_pydantic_core_schema__(cls, source, handler):
        return core_schema.is_instance_schema(cls)


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_QUALIFIED_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*(\.[A-Za-z_][A-Za-z0-9_$]*)?$")

_FORBIDDEN_KEYWORDS = re.compile(
    r"\b(DROP|DELETE|INSERT|UPDATE|CREATE|ALTER|EXEC|EXECUTE|UNION|"
    r"TRUNCATE|GRANT|REVOKE|MERGE|CALL|COPY|ATTACH|DETACH|PRAGMA|INTO)\b",
    re.IGNORECASE,
)

_FORBIDDEN_PATTERNS = re.compile(r"(--|/\*|\*/|;)")


def is_identifier(name) -> bool:
    return isinstance(name, str) and bool(_IDENTIFIER.match(name))


def is_qualified_name(name) -> bool:
    """True for ``name`` or ``schema.name``."""
    return isinstance(name, str) and bool(_QUALIFIED_NAME.match(name))


def quote_literal(value) -> TrustedSQL:
    """
    Quote a Python value as a SQL literal.

    Strings use standard SQL quoting (single quotes doubled), which is
    safe with PostgreSQL's standard_conforming_strings (the default).
    """
    if value is None:
        return TrustedSQL("NULL")
    if isinstance(value, bool):
        return TrustedSQL("TRUE" if value else "FALSE")
    if isinstance(value, int):
        return TrustedSQL(str(value))
    if isinstance(value, (float, Decimal)):
        if not math.isfinite(value):
            raise ValueError(f"Cannot quote non-finite number: {value}")
        return TrustedSQL(repr(float(value)) if isinstance(value, float) else str(value))
    if isinstance(value, (date, datetime)):
        value = value.isoformat()
    if not isinstance(value, str):
        raise TypeError(f"Cannot quote value of type {type(value).__name__}")
    if "\x00" in value:
        raise ValueError("Cannot quote a string containing NUL")
    return TrustedSQL("'" + value.replace("'", "''") + "'")


def sanitize_where(where: str) -> str:
    """
    Sanitize a SQL WHERE clause from user input.

    Uses a conservative approach:
    - Reject forbidden keywords (DDL, DML)
    - Reject dangerous patterns (comments, semicolons)
    - Reject subqueries

    Only text outside string literals is checked. An empty clause
    returns "".
    """
    if not where or where.strip() == "":
        return ""

    code = _mask_literals(where)

    if _FORBIDDEN_PATTERNS.search(code):
        raise InvalidQueryError(f"Forbidden pattern in WHERE clause: {where}")

    if _FORBIDDEN_KEYWORDS.search(code):
        raise InvalidQueryError(f"Forbidden keyword in WHERE clause: {where}")

    if re.search(r"\bSELECT\b", code, re.IGNORECASE):
        raise InvalidQueryError(f"Subqueries not allowed in WHERE clause: {where}")

    return where.strip()


def _mask_literals(where: str) -> str:
    """
    Blank out the contents of '...' literals.

    Doubled quotes inside a literal are part of it. Double-quoted
    identifiers are skipped over so a quote inside one does not open a
    literal. Escape-string (E'...') and dollar-quoted literals are
    rejected, as is an unterminated quote.
    """
    if "\x00" in where:
        raise InvalidQueryError("NUL character in WHERE clause")

    out = []
    quote = None
    i = 0
    n = len(where)
    while i < n:
        ch = where[i]
        if quote is None:
            if ch == "'":
                prev = where[i - 1] if i > 0 else ""
                before = where[i - 2] if i > 1 else ""
                if prev and prev in "Ee" and not (before.isalnum() or before == "_"):
                    raise InvalidQueryError(f"Escape string literals not allowed: {where}")
                quote = ch
            elif ch == '"':
                quote = ch
            elif ch == "$" and not (i > 0 and (where[i - 1].isalnum() or where[i - 1] == "_")):
                raise InvalidQueryError(f"Dollar-quoted strings not allowed: {where}")
            out.append(ch)
        elif ch == quote:
            if where[i + 1:i + 2] == quote:
                out.append("  " if quote == "'" else ch * 2)
                i += 2
                continue
            quote = None
            out.append(ch)
        else:
            out.append(" " if quote == "'" else ch)
        i += 1

    if quote is not None:
        raise InvalidQueryError(f"Unterminated quote in WHERE clause: {where}")
    return "".join(out)


def sanitize_order(order_by: str) -> TrustedSQL:
    """Sanitize ORDER BY fields. Only allow column names + ASC/DESC."""
    if not order_by:
        return TrustedSQL("")

    if _FORBIDDEN_PATTERNS.search(order_by):
        raise InvalidQueryError(f"Forbidden pattern in ORDER BY: {order_by}")

    # Validate format: comma-separated "column_name [ASC|DESC]"
    parts = [p.strip() for p in order_by.split(",")]
    sanitized = []
    for part in parts:
        tokens = part.split()
        if len(tokens) == 0:
            continue
        if len(tokens) > 2:
            raise InvalidQueryError(f"Invalid ORDER BY term: {part}")
        col_name = tokens[0]
        if not is_identifier(col_name):
            raise InvalidQueryError(f"Invalid column name in ORDER BY: {col_name}")
        direction = ""
        if len(tokens) > 1:
            direction = tokens[1].upper()
            if direction not in ("ASC", "DESC"):
                raise InvalidQueryError(f"Invalid sort direction: {direction}")
        sanitized.append(f"{col_name} {direction}".strip())

    return TrustedSQL(", ".join(sanitized))
