"""
Geometry and spatial reference utilities.

Handles:
- Esri geometry/field type constants and GeoJSON type mapping
- Spatial reference parsing (plain ids and Esri JSON objects)
- Envelope parsing for the geometry filter
- GeoJSON -> Esri JSON geometry conversion
"""

import json
import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from shapely.geometry import box, shape

from postgis_geo.errors import InvalidQueryError


class GeometryType:
    """Esri geometry type names."""

    POINT = "esriGeometryPoint"
    MULTIPOINT = "esriGeometryMultipoint"
    POLYLINE = "esriGeometryPolyline"
    POLYGON = "esriGeometryPolygon"
    ENVELOPE = "esriGeometryEnvelope"

    ALL = (POINT, MULTIPOINT, POLYLINE, POLYGON, ENVELOPE)


class FieldType:
    """Esri field type names."""

    OID = "esriFieldTypeOID"
    STRING = "esriFieldTypeString"
    INTEGER = "esriFieldTypeInteger"
    SMALL_INTEGER = "esriFieldTypeSmallInteger"
    DOUBLE = "esriFieldTypeDouble"
    SINGLE = "esriFieldTypeSingle"
    DATE = "esriFieldTypeDate"
    GEOMETRY = "esriFieldTypeGeometry"
    BLOB = "esriFieldTypeBlob"
    GUID = "esriFieldTypeGUID"
    GLOBAL_ID = "esriFieldTypeGlobalID"


ESRI_GEOMETRY_TYPE_MAP = {
    "Point": GeometryType.POINT,
    "MultiPoint": GeometryType.MULTIPOINT,
    "LineString": GeometryType.POLYLINE,
    "MultiLineString": GeometryType.POLYLINE,
    "Polygon": GeometryType.POLYGON,
    "MultiPolygon": GeometryType.POLYGON,
}

# Esri ids with no EPSG entry in spatial_ref_sys
WEB_MERCATOR_ALIASES = {102100: 3857, 102113: 3857, 900913: 3857}


class SpatialReference(BaseModel):
    """Esri spatial reference: current id plus the latest (EPSG) id."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    wkid: int
    latest_wkid: Optional[int] = Field(default=None, alias="latestWkid")

    @classmethod
    def from_wkid(cls, wkid: int) -> "SpatialReference":
        wkid = int(wkid)
        return cls(wkid=wkid, latest_wkid=WEB_MERCATOR_ALIASES.get(wkid, wkid))

    @property
    def srid(self) -> int:
        """The id handed to ST_Transform / ST_MakeEnvelope."""
        return int(self.latest_wkid or WEB_MERCATOR_ALIASES.get(self.wkid, self.wkid))

    def to_esri(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class Extent(BaseModel):
    """Axis-aligned bounding rectangle with its spatial reference."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    xmin: float
    ymin: float
    xmax: float
    ymax: float
    spatial_reference: SpatialReference = Field(
        default_factory=lambda: SpatialReference.from_wkid(4326),
        alias="spatialReference",
    )

    def to_esri(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def parse_spatial_ref(sr) -> Optional[SpatialReference]:
    """
    Parse a spatial reference parameter from Esri clients.

    ArcGIS clients send inSR/outSR either as a plain WKID ("4326") or as
    a JSON spatial reference object like {"wkid":102100,"latestWkid":3857}.

    Returns a SpatialReference, or None when the value is empty.
    """
    if sr is None or sr == "":
        return None
    if isinstance(sr, SpatialReference):
        return sr
    if isinstance(sr, bool):
        raise InvalidQueryError(f"Invalid spatial reference: {sr!r}")
    if isinstance(sr, int):
        return SpatialReference.from_wkid(sr)
    if isinstance(sr, str):
        try:
            return SpatialReference.from_wkid(int(sr))
        except ValueError:
            pass
        try:
            sr = json.loads(sr)
        except json.JSONDecodeError:
            raise InvalidQueryError(f"Invalid spatial reference: {sr}")
        if isinstance(sr, int) and not isinstance(sr, bool):
            return SpatialReference.from_wkid(sr)
    if isinstance(sr, dict):
        wkid = sr.get("wkid") or sr.get("latestWkid")
        if wkid is None:
            raise InvalidQueryError(f"Spatial reference without wkid: {sr}")
        try:
            wkid = int(wkid)
            latest = int(sr.get("latestWkid") or WEB_MERCATOR_ALIASES.get(wkid, wkid))
        except (TypeError, ValueError):
            raise InvalidQueryError(f"Invalid spatial reference: {sr}")
        return SpatialReference(wkid=wkid, latest_wkid=latest)
    raise InvalidQueryError(f"Invalid spatial reference: {sr!r}")


def parse_envelope(geometry):
    """
    Parse an Esri envelope geometry parameter.

    Handles:
    - Envelope JSON: {"xmin":..., "ymin":..., "xmax":..., "ymax":...}
      (optionally carrying its own "spatialReference")
    - Plain bbox string: "xmin,ymin,xmax,ymax"
    - A 4-item sequence of numbers

    Returns ((xmin, ymin, xmax, ymax), spatial_reference_or_None). The
    bounds are floats normalized so that min <= max on both axes.
    """
    sr = None
    if isinstance(geometry, str):
        try:
            geometry = json.loads(geometry)
        except json.JSONDecodeError:
            geometry = geometry.split(",")

    if isinstance(geometry, dict):
        if "xmin" not in geometry:
            raise InvalidQueryError(f"Geometry is not an envelope: {geometry}")
        if geometry.get("spatialReference"):
            sr = parse_spatial_ref(geometry["spatialReference"])
        parts = [geometry.get(k) for k in ("xmin", "ymin", "xmax", "ymax")]
    elif isinstance(geometry, (list, tuple)):
        parts = list(geometry)
    else:
        raise InvalidQueryError(f"Cannot parse geometry: {geometry!r}")

    if len(parts) != 4:
        raise InvalidQueryError(f"Envelope needs 4 bounds, got {len(parts)}")
    try:
        bounds = [float(p) for p in parts]
    except (TypeError, ValueError):
        raise InvalidQueryError(f"Envelope bounds must be numeric: {parts}")
    if not all(math.isfinite(b) for b in bounds):
        raise InvalidQueryError(f"Envelope bounds must be finite: {parts}")

    return tuple(box(*bounds).bounds), sr


def load_geojson_geometry(value) -> Optional[dict]:
    """Decode an ST_AsGeoJSON value (text or already-decoded JSON)."""
    if value is None or value == "":
        return None
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value


def geojson_to_esri(geometry) -> Optional[dict]:
    """Convert a GeoJSON geometry to its Esri JSON representation."""
    geometry = load_geojson_geometry(geometry)
    if not geometry:
        return None

    geom = shape(geometry)
    if geom.is_empty:
        return None
    geom_type = geom.geom_type

    if geom_type == "Point":
        return {"x": geom.x, "y": geom.y}
    elif geom_type == "MultiPoint":
        return {"points": [[p.x, p.y] for p in geom.geoms]}
    elif geom_type in ("LineString", "MultiLineString"):
        lines = [geom] if geom_type == "LineString" else list(geom.geoms)
        return {"paths": [[list(c[:2]) for c in line.coords] for line in lines]}
    elif geom_type in ("Polygon", "MultiPolygon"):
        rings = []
        polys = [geom] if geom_type == "Polygon" else list(geom.geoms)
        for poly in polys:
            rings.append([list(c[:2]) for c in poly.exterior.coords])
            for interior in poly.interiors:
                rings.append([list(c[:2]) for c in interior.coords])
        return {"rings": rings}

    return None
