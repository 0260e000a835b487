"""
SQL query builder. Translates QueryParams into PostGIS SQL text.

This is the ONLY place where feature SQL is composed. Three statement
shapes are produced, all sharing one FROM/WHERE:

- build_select: feature rows (+ synthesized x/y or GeoJSON geometry)
- build_count:  SELECT COUNT(*)
- build_extent: ST_Extent decomposed into xmin/ymin/xmax/ymax

Every column reference on the default path is qualified with the table
alias ``t`` so a layer's FROM/JOIN override stays valid. Values that did
not come from the layer author (object ids, envelope bounds, spatial
reference ids, LIMIT/OFFSET) are coerced to numbers before they reach
the SQL text. The builder is pure: the same params always give
byte-identical SQL.
"""

import math
import re

from postgis_geo.errors import InvalidQueryError

from .geometry import GeometryType, parse_envelope
from .models import DEFAULT_MAX_RECORD_COUNT, QueryParams, requested_identifiers
from .sql import TrustedSQL, is_identifier, is_qualified_name

TABLE_ALIAS = "t"

_ALIAS_SUFFIX = re.compile(r"\s+AS\s+[A-Za-z_][A-Za-z0-9_]*\s*$", re.IGNORECASE)


def qualify(column: str) -> str:
    """Prefix a bare column name with the table alias."""
    if "." in column:
        return column
    return f"{TABLE_ALIAS}.{column}"


def build_select(source: str, params: QueryParams) -> str:
    """Build the feature row statement."""
    columns = [build_field_list(params)]

    if params.return_geometry:
        geom = qualify(params.geometry_column)
        out_srid = int(params.output_srid)
        if params.format == "json" and params.layer_geometry_type == GeometryType.POINT:
            columns.append(f"ST_X(ST_Transform({geom}, {out_srid})) AS x")
            columns.append(f"ST_Y(ST_Transform({geom}, {out_srid})) AS y")
        else:
            columns.append(
                f"ST_AsGeoJSON(ST_Transform({geom}, {out_srid}))::json AS geojson_geometry"
            )

    parts = [
        f"SELECT {', '.join(columns)}",
        _from_clause(source, params),
        f"WHERE {build_where(params)}",
    ]

    order_by = build_order_by(params)
    if order_by:
        parts.append(f"ORDER BY {order_by}")

    parts.append(f"LIMIT {_limit(params)} OFFSET {_offset(params)}")
    return " ".join(parts)


def build_count(source: str, params: QueryParams) -> str:
    """Build SELECT COUNT(*) over the same FROM/WHERE as build_select."""
    return f"SELECT COUNT(*) {_from_clause(source, params)} WHERE {build_where(params)}"


def build_extent(source: str, geometry_column: str, params: QueryParams) -> str:
    """Build the bounding-extent statement in the layer's native reference."""
    geom = qualify(geometry_column)
    return (
        "SELECT ST_XMin(extent) AS xmin, ST_YMin(extent) AS ymin, "
        "ST_XMax(extent) AS xmax, ST_YMax(extent) AS ymax "
        f"FROM (SELECT ST_Extent(ST_Transform({geom}, {int(params.srid)})) AS extent "
        f"{_from_clause(source, params)} WHERE {build_where(params)}) AS extent_query"
    )


def build_where(params: QueryParams) -> str:
    """
    Compose the WHERE condition.

    Order: base filter, tenant filter, client where, objectIds, envelope.
    Each present condition is parenthesized and joined with AND; an empty
    set gives 1=1.
    """
    conditions = []

    for fragment in (
        _trusted(params.base_where, "base_where"),
        _trusted(params.tenant_where, "tenant_where"),
        params.where,
    ):
        if fragment and fragment.strip():
            conditions.append(f"({fragment.strip()})")

    ids = object_id_list(params.object_ids)
    if ids:
        column = qualify(params.object_id_column)
        conditions.append(f"({column} IN ({','.join(str(i) for i in ids)}))")

    envelope = _envelope_condition(params)
    if envelope:
        conditions.append(f"({envelope})")

    return " AND ".join(conditions) if conditions else "1=1"


def build_field_list(params: QueryParams) -> str:
    """
    Build the selected field list.

    With a field map, requested public names are translated to the
    layer's SQL expressions (object id first, duplicates dropped);
    names missing from the map are ignored. Without one, requested names
    are validated identifiers qualified with the table alias.
    """
    field_map = params.field_map
    if field_map:
        for name, expression in field_map.items():
            _trusted(expression, f"field_map[{name}]")

        requested = list(field_map) if params.all_fields else params.requested_fields
        oid = params.object_id_field
        selected = []

        has_oid = oid in requested and oid in field_map
        if has_oid:
            selected.append(field_map[oid])

        for name in requested:
            if name == oid and has_oid:
                continue
            expression = field_map.get(name)
            if expression is not None and expression not in selected:
                selected.append(expression)

        # objectid requested but unmapped: alias the primary key entry
        pk_expression = field_map.get(params.object_id_column)
        if not has_oid and oid in requested and pk_expression is not None:
            if not is_identifier(oid):
                raise ValueError(f"Invalid objectIdField: {oid}")
            selected.insert(0, f"{pk_expression} AS {oid}")

        if not selected:
            raise InvalidQueryError(
                f"None of the requested fields are available: {', '.join(requested)}"
            )
        return ", ".join(selected)

    fields = requested_identifiers(params)
    if fields == ["*"]:
        return f"{TABLE_ALIAS}.*"
    return ", ".join(qualify(name) for name in fields)


def build_order_by(params: QueryParams) -> str:
    """
    Resolve sanitized ORDER BY terms to column expressions.

    With a field map, public names are translated to the mapped
    expression (any ``AS alias`` dropped) and unmapped names are
    rejected. Without one, names are qualified with the table alias.
    """
    order_by = _trusted(params.order_by, "order_by")
    if not order_by or not order_by.strip():
        return ""

    field_map = params.field_map
    terms = []
    for term in order_by.split(","):
        tokens = term.split()
        if not tokens:
            continue
        name, direction = tokens[0], tokens[1:]
        if field_map:
            expression = field_map.get(name)
            if expression is None:
                raise InvalidQueryError(f"Unknown field in ORDER BY: {name}")
            column = _ALIAS_SUFFIX.sub("", _trusted(expression, f"field_map[{name}]")).strip()
        else:
            column = qualify(name)
        terms.append(" ".join([column, *direction]))
    return ", ".join(terms)


def object_id_list(object_ids) -> list[int]:
    """
    Reduce a raw objectIds value ("1,2,3" or a sequence) to integers.

    Non-numeric entries are dropped, not rejected.
    """
    if object_ids is None or object_ids == "":
        return []
    if isinstance(object_ids, str):
        tokens = object_ids.split(",")
    elif isinstance(object_ids, (int, float)) and not isinstance(object_ids, bool):
        tokens = [object_ids]
    else:
        tokens = list(object_ids)

    ids = []
    for token in tokens:
        if isinstance(token, bool) or token is None:
            continue
        if isinstance(token, int):
            ids.append(token)
            continue
        if isinstance(token, float):
            if math.isfinite(token):
                ids.append(int(token))
            continue
        text = str(token).strip()
        try:
            ids.append(int(text))
            continue
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            continue
        if math.isfinite(number):
            ids.append(int(number))
    return ids


def _envelope_condition(params: QueryParams):
    if params.geometry is None or params.geometry_type != GeometryType.ENVELOPE:
        return None
    (xmin, ymin, xmax, ymax), envelope_sr = parse_envelope(params.geometry)
    sr = params.in_sr or envelope_sr
    in_srid = int(sr.srid) if sr else int(params.srid)
    geom = qualify(params.geometry_column)
    return (
        f"ST_Intersects({geom}, ST_Transform("
        f"ST_MakeEnvelope({xmin!r}, {ymin!r}, {xmax!r}, {ymax!r}, {in_srid}), "
        f"ST_SRID({geom})))"
    )


def _from_clause(source: str, params: QueryParams) -> str:
    override = _trusted(params.from_clause, "from_clause")
    if override and override.strip():
        override = override.strip()
        if override[:4].upper() != "FROM" or not override[4:5].isspace():
            override = f"FROM {override}"
        return override
    if not is_qualified_name(source):
        raise ValueError(f"Invalid table name: {source}")
    return f"FROM {source} {TABLE_ALIAS}"


def _limit(params: QueryParams) -> int:
    if params.limit is None or int(params.limit) <= 0:
        return DEFAULT_MAX_RECORD_COUNT
    return int(params.limit)


def _offset(params: QueryParams) -> int:
    return max(int(params.offset or 0), 0)


def _trusted(fragment, slot: str):
    if fragment is None:
        return None
    if not isinstance(fragment, TrustedSQL):
        raise TypeError(f"{slot} must be TrustedSQL, got {type(fragment).__name__}")
    return fragment
