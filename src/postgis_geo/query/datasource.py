"""
Data source adapters. Execute the statements produced by the query
builder against a concrete database connection.

Two interchangeable implementations share one contract:

- PostGISDataSource: direct psycopg (or any DB-API 2) connection
- SQLAlchemyDataSource: the host application's SQLAlchemy engine,
  connection or session

Execution failures surface as QueryExecutionError carrying the driver
message. Nothing is retried. Extent calculation is optional enrichment:
its failures are logged and downgraded to None.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Optional

import psycopg
from psycopg import sql as pg_sql
from psycopg.rows import dict_row
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from postgis_geo.errors import QueryExecutionError

from .builder import build_count, build_extent, build_select
from .geometry import Extent, SpatialReference
from .models import QueryParams
from .sql import TrustedSQL, is_identifier, is_qualified_name, quote_literal

logger = logging.getLogger(__name__)


class DataSource(ABC):
    """Contract between feature layers and the database."""

    # Capability flag: calculate_extent() is implemented
    supports_extent = False

    @abstractmethod
    def query(self, source: str, params: QueryParams) -> list[dict]:
        """Return feature rows as ordered column -> value mappings."""

    @abstractmethod
    def count(self, source: str, params: QueryParams) -> int:
        """Return the number of rows matching params."""

    @abstractmethod
    def is_available(self) -> bool:
        """Lightweight probe: is the spatial database reachable and usable?"""

    def calculate_extent(
        self, source: str, geometry_column: str, params: QueryParams
    ) -> Optional[Extent]:
        """Bounding extent of the matching rows; None when not supported."""
        return None

    def quote_value(self, value) -> TrustedSQL:
        """Quote a value for use inside layer-authored SQL fragments."""
        return quote_literal(value)


class SQLDataSource(DataSource):
    """
    Shared behaviour of the SQL adapters.

    Subclasses provide _fetch_all() and _fetch_scalar() for their
    connection type and list the driver exceptions they wrap.
    """

    supports_extent = True
    driver_errors: tuple = (Exception,)

    def __init__(self, schema: Optional[str] = "public", srid: int = 4326):
        if schema and not is_identifier(schema):
            raise ValueError(f"Invalid schema name: {schema}")
        self.schema = schema
        self.srid = int(srid)

    def qualified_name(self, table: str) -> str:
        """schema.table, unless the table name is already qualified."""
        if not is_qualified_name(table):
            raise ValueError(f"Invalid table name: {table}")
        if "." in table or not self.schema:
            return table
        return f"{self.schema}.{table}"

    def query(self, source: str, params: QueryParams) -> list[dict]:
        statement = build_select(self.qualified_name(source), params)
        return self._execute(statement, self._fetch_all)

    def count(self, source: str, params: QueryParams) -> int:
        statement = build_count(self.qualified_name(source), params)
        return int(self._execute(statement, self._fetch_scalar) or 0)

    def calculate_extent(
        self, source: str, geometry_column: str, params: QueryParams
    ) -> Optional[Extent]:
        """ST_Extent of the matching rows, or None when unavailable."""
        statement = build_extent(self.qualified_name(source), geometry_column, params)
        try:
            rows = self._execute(statement, self._fetch_all)
        except QueryExecutionError as e:
            logger.warning("Extent calculation failed: %s", e)
            return None

        if not rows or rows[0].get("xmin") is None:
            return None
        row = rows[0]
        return Extent(
            xmin=float(row["xmin"]),
            ymin=float(row["ymin"]),
            xmax=float(row["xmax"]),
            ymax=float(row["ymax"]),
            spatial_reference=SpatialReference.from_wkid(params.srid),
        )

    def is_available(self) -> bool:
        try:
            version = self._fetch_scalar("SELECT PostGIS_Version()")
        except self.driver_errors as e:
            logger.debug("PostGIS probe failed: %s", e)
            return False
        return bool(version)

    def _execute(self, statement: str, fetch):
        logger.debug("Executing SQL: %s", statement)
        try:
            return fetch(statement)
        except self.driver_errors as e:
            logger.error("Query execution failed: %s", e)
            raise QueryExecutionError(f"Query failed: {e}") from e

    @abstractmethod
    def _fetch_all(self, statement: str) -> list[dict]:
        ...

    @abstractmethod
    def _fetch_scalar(self, statement: str):
        ...


class PostGISDataSource(SQLDataSource):
    """
    Direct-driver adapter.

    ``connection`` is either a libpq conninfo string (a psycopg connection
    is opened per call) or an open DB-API connection owned by the caller.
    """

    def __init__(self, connection, schema: Optional[str] = "public", srid: int = 4326):
        super().__init__(schema=schema, srid=srid)
        self.connection = connection

    def get_db(self):
        return self.connection

    def quote_value(self, value) -> TrustedSQL:
        if isinstance(self.connection, psycopg.Connection):
            return TrustedSQL(pg_sql.Literal(value).as_string(self.connection))
        return quote_literal(value)

    @contextmanager
    def _cursor(self):
        if isinstance(self.connection, str):
            with psycopg.connect(self.connection, row_factory=dict_row) as conn:
                with conn.cursor() as cur:
                    yield cur
            return

        cur = self.connection.cursor()
        try:
            yield cur
        except Exception:
            # Leave a borrowed psycopg connection usable for the next request
            if isinstance(self.connection, psycopg.Connection):
                self.connection.rollback()
            raise
        finally:
            cur.close()

    def _fetch_all(self, statement: str) -> list[dict]:
        with self._cursor() as cur:
            cur.execute(statement)
            rows = cur.fetchall()
            return _rows_as_dicts(cur.description, rows)

    def _fetch_scalar(self, statement: str):
        with self._cursor() as cur:
            cur.execute(statement)
            row = cur.fetchone()
        if row is None:
            return None
        if isinstance(row, Mapping):
            return next(iter(row.values()), None)
        return row[0]


class SQLAlchemyDataSource(SQLDataSource):
    """
    Host-framework adapter over SQLAlchemy.

    ``bind`` may be an Engine (a pooled connection is checked out per
    call), a Connection or an ORM Session owned by the request.
    Statements run through exec_driver_sql with no_parameters so neither
    SQLAlchemy nor the DBAPI interprets colons or percent signs.
    """

    driver_errors = (SQLAlchemyError,)

    def __init__(self, bind, schema: Optional[str] = "public", srid: int = 4326):
        super().__init__(schema=schema, srid=srid)
        self.bind = bind

    def get_db(self):
        return self.bind

    @contextmanager
    def _connection(self):
        if isinstance(self.bind, Engine):
            with self.bind.connect() as conn:
                yield conn
        elif isinstance(self.bind, Session):
            yield self.bind.connection()
        else:
            yield self.bind

    def _fetch_all(self, statement: str) -> list[dict]:
        with self._connection() as conn:
            result = conn.execution_options(no_parameters=True).exec_driver_sql(statement)
            return [dict(row) for row in result.mappings()]

    def _fetch_scalar(self, statement: str):
        with self._connection() as conn:
            result = conn.execution_options(no_parameters=True).exec_driver_sql(statement)
            return result.scalar()


def _rows_as_dicts(description, rows) -> list[dict]:
    if rows and isinstance(rows[0], Mapping):
        return [dict(row) for row in rows]
    names = [column[0] for column in (description or [])]
    return [dict(zip(names, row)) for row in rows]
