"""
Pydantic models shared by the query builder, data sources, layers and
the GeoServices surface.

These models represent query semantics and layer metadata, not wire
formats; the serializers build the protocol payloads from them.
"""

from collections.abc import Mapping
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from postgis_geo.errors import InvalidQueryError

from .geometry import Extent, GeometryType, SpatialReference, parse_envelope, parse_spatial_ref
from .sql import TrustedSQL, is_identifier, sanitize_order, sanitize_where

DEFAULT_MAX_RECORD_COUNT = 2000

OUTPUT_FORMATS = {"json": "json", "pjson": "json", "geojson": "geojson"}


class FieldDefinition(BaseModel):
    """One attribute field of a layer, as advertised to clients."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    alias: Optional[str] = None
    length: Optional[int] = None
    domain: Optional[dict] = None

    @model_validator(mode="before")
    @classmethod
    def _default_alias(cls, data):
        if isinstance(data, dict) and not data.get("alias") and data.get("name"):
            data = {**data, "alias": data["name"]}
        return data

    def to_esri(self) -> dict:
        return self.model_dump(exclude_none=True)


class LayerDefinition(BaseModel):
    """Static, read-only metadata of one feature layer."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: int = Field(ge=0)
    name: str
    geometry_type: str
    fields: list[FieldDefinition]
    object_id_field: str = "objectid"
    # Storage column targeted by the objectIds filter
    object_id_column: str = "id"
    geometry_column: str = "geom"
    spatial_reference: SpatialReference = Field(
        default_factory=lambda: SpatialReference.from_wkid(4326)
    )
    max_record_count: int = Field(default=DEFAULT_MAX_RECORD_COUNT, gt=0)
    extent: Optional[Extent] = None
    description: Optional[str] = None
    display_field: Optional[str] = None
    copyright_text: Optional[str] = None
    global_id_field: Optional[str] = None
    drawing_info: Optional[dict] = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("geometry_type")
    @classmethod
    def _known_geometry_type(cls, value):
        if value not in GeometryType.ALL:
            raise ValueError(f"Unknown geometry type: {value}")
        return value

    @field_validator("fields")
    @classmethod
    def _unique_field_names(cls, value):
        names = [f.name for f in value]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field names: {', '.join(duplicates)}")
        return value

    @property
    def srid(self) -> int:
        return self.spatial_reference.srid

    @property
    def is_point(self) -> bool:
        return self.geometry_type == GeometryType.POINT

    def effective_limit(self, requested: Optional[int] = None) -> int:
        """min(requested, maxRecordCount); maxRecordCount when unset."""
        if requested is None or requested <= 0:
            return self.max_record_count
        return min(int(requested), self.max_record_count)

    def to_config(self) -> dict:
        """Protocol-facing configuration (storage-only keys removed)."""
        config = self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude={"extra", "object_id_column", "geometry_column"},
        )
        config.update(self.extra)
        return config


class RequestContext(BaseModel):
    """
    Per-request caller information supplied by the hosting application.

    Layers read the tenant from here instead of from global session state.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: Optional[Union[int, str]] = None
    is_admin: bool = False
    attributes: dict[str, Any] = Field(default_factory=dict)


class QueryParams(BaseModel):
    """Query parameters for one request. The GeoServices routes translate
    the protocol's raw parameters into this model; layers then merge
    their hooks into it before the SQL is built."""

    model_config = {"arbitrary_types_allowed": True}

    # Attribute filters (ANDed in this order: base, tenant, where)
    base_where: Optional[TrustedSQL] = None
    tenant_where: Optional[TrustedSQL] = None
    where: Optional[str] = None

    # Spatial filter
    geometry: Optional[Any] = None
    geometry_type: Optional[str] = None
    in_sr: Optional[SpatialReference] = None
    spatial_rel: str = "esriSpatialRelIntersects"

    # Fields
    out_fields: Union[str, list[str]] = "*"
    return_geometry: bool = True

    # Object ID allow-list, raw "1,2,3" or a sequence
    object_ids: Optional[Union[str, list[Any]]] = None

    # Sorting
    order_by: Optional[TrustedSQL] = None

    # Pagination
    offset: int = 0
    limit: Optional[int] = None

    # Response modifiers
    format: str = "json"
    out_sr: Optional[SpatialReference] = None
    return_count_only: bool = False

    # Merged in from the layer
    field_map: Optional[dict[str, TrustedSQL]] = None
    from_clause: Optional[TrustedSQL] = None
    geometry_column: str = "geom"
    object_id_field: str = "objectid"
    object_id_column: str = "id"
    layer_geometry_type: str = GeometryType.POINT
    srid: int = 4326

    @field_validator("where", mode="before")
    @classmethod
    def _check_where(cls, value):
        if value is None or isinstance(value, TrustedSQL):
            return value
        return sanitize_where(value) or None

    @field_validator("order_by", mode="before")
    @classmethod
    def _check_order_by(cls, value):
        if value is None or isinstance(value, TrustedSQL):
            return value
        return sanitize_order(value) or None

    @field_validator("in_sr", "out_sr", mode="before")
    @classmethod
    def _check_sr(cls, value):
        return parse_spatial_ref(value)

    @field_validator("format", mode="before")
    @classmethod
    def _check_format(cls, value):
        fmt = OUTPUT_FORMATS.get(str(value or "json").lower())
        if fmt is None:
            raise InvalidQueryError(f"Unsupported output format: {value}")
        return fmt

    @field_validator("offset", mode="before")
    @classmethod
    def _check_offset(cls, value):
        return max(int(value or 0), 0)

    @property
    def requested_fields(self) -> list[str]:
        """Requested output field names; ["*"] means all."""
        fields = self.out_fields
        if isinstance(fields, str):
            fields = fields.split(",")
        fields = [f.strip() for f in fields if f and f.strip()]
        if not fields or "*" in fields:
            return ["*"]
        return fields

    @property
    def all_fields(self) -> bool:
        return self.requested_fields == ["*"]

    @property
    def output_srid(self) -> int:
        return self.out_sr.srid if self.out_sr else self.srid

    @classmethod
    def from_request(cls, raw: Mapping) -> "QueryParams":
        """
        Translate raw GeoServices query parameters into QueryParams.

        ``raw`` holds strings from the query string / form body (or
        already-typed values). Unknown keys are ignored.
        """
        p = dict(raw)

        def _str(key, default=None):
            val = p.get(key)
            if val is None or val == "":
                return default
            return val

        def _bool(key, default=False):
            val = p.get(key)
            if val is None or val == "":
                return default
            if isinstance(val, bool):
                return val
            return str(val).lower() in ("true", "1", "yes")

        def _int(key, default=None):
            val = p.get(key)
            if val is None or val == "":
                return default
            try:
                return int(val)
            except (ValueError, TypeError):
                return default

        where = _str("where")
        if isinstance(where, str) and where.strip() == "1=1":
            where = None

        geometry = _str("geometry")
        geometry_type = _str("geometryType", GeometryType.ENVELOPE)
        in_sr = parse_spatial_ref(_str("inSR"))
        if geometry is not None and geometry_type == GeometryType.ENVELOPE:
            geometry, envelope_sr = parse_envelope(geometry)
            in_sr = in_sr or envelope_sr

        fmt = str(_str("f", "json")).lower()
        if fmt not in OUTPUT_FORMATS:
            raise InvalidQueryError(f"Unsupported output format: {fmt}")

        try:
            return cls(
                where=sanitize_where(where) if where else None,
                geometry=geometry,
                geometry_type=geometry_type if geometry is not None else None,
                in_sr=in_sr,
                spatial_rel=_str("spatialRel", "esriSpatialRelIntersects"),
                out_fields=_str("outFields", "*"),
                return_geometry=_bool("returnGeometry", True),
                object_ids=_str("objectIds"),
                order_by=sanitize_order(_str("orderByFields", "")) or None,
                offset=_int("resultOffset", 0),
                limit=_int("resultRecordCount"),
                format=fmt,
                out_sr=parse_spatial_ref(_str("outSR")),
                return_count_only=_bool("returnCountOnly", False),
            )
        except ValidationError as e:
            raise InvalidQueryError(f"Invalid query parameters: {e}") from e


def requested_identifiers(params: QueryParams) -> list[str]:
    """Requested field names, each validated as a plain identifier."""
    fields = params.requested_fields
    if fields == ["*"]:
        return fields
    for name in fields:
        if not is_identifier(name):
            raise InvalidQueryError(f"Invalid field name in outFields: {name}")
    return fields
