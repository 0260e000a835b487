"""
Serialize query rows -> Esri JSON FeatureSet response.

Esri JSON is the native JSON format for ArcGIS Feature Services.
It differs from GeoJSON in geometry representation:
- Points use {"x": val, "y": val}
- Polylines use {"paths": [[[x,y],...], ...]}
- Polygons use {"rings": [[[x,y],...], ...]}
- SpatialReference is an object: {"wkid": 4326, "latestWkid": 4326}
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from postgis_geo.query.geometry import geojson_to_esri
from postgis_geo.query.models import LayerDefinition, QueryParams


def build_json(
    rows: list[dict],
    layer: LayerDefinition,
    params: QueryParams,
    record_limit: int,
) -> dict:
    """Convert feature rows to an Esri JSON FeatureSet."""
    if params.out_sr:
        spatial_reference = params.out_sr.to_esri()
    else:
        spatial_reference = layer.spatial_reference.to_esri()

    requested = params.requested_fields
    all_fields = requested == ["*"]
    exclude = {layer.geometry_column.split(".")[-1]}

    response = {
        "objectIdFieldName": layer.object_id_field,
        "globalIdFieldName": layer.global_id_field or "",
        "geometryType": layer.geometry_type,
        "spatialReference": spatial_reference,
        "fields": [
            f.to_esri() for f in layer.fields if all_fields or f.name in requested
        ],
        "features": [
            _format_feature(row, requested, exclude, params.return_geometry)
            for row in rows
        ],
    }

    # Only present when the client should page for more
    if len(rows) >= record_limit:
        response["exceededTransferLimit"] = True

    return response


def build_count_response(count: int) -> dict:
    """Response for returnCountOnly=true."""
    return {"count": int(count)}


def _format_feature(row: dict, requested: list[str], exclude: set, synthetic: bool) -> dict:
    attributes = {}
    geometry = None
    all_fields = requested == ["*"]
    has_point = synthetic and "x" in row and "y" in row

    for key, value in row.items():
        if has_point and key in ("x", "y"):
            continue
        if synthetic and key == "geojson_geometry":
            geometry = geojson_to_esri(value)
            continue
        if key in exclude:
            continue
        if all_fields or key in requested:
            attributes[key] = _to_esri_value(value)

    if has_point and row["x"] is not None and row["y"] is not None:
        geometry = {"x": float(row["x"]), "y": float(row["y"])}

    return {"attributes": attributes, "geometry": geometry}


def _to_esri_value(val):
    """Convert a database value to an Esri JSON safe value."""
    if val is None:
        return None
    if isinstance(val, (bytes, bytearray, memoryview)):
        return None
    if isinstance(val, Decimal):
        return float(val)
    # Esri dates are epoch milliseconds
    if isinstance(val, datetime):
        if val.tzinfo is None:
            val = val.replace(tzinfo=timezone.utc)
        return int(val.timestamp() * 1000)
    if isinstance(val, date):
        return int(datetime(val.year, val.month, val.day, tzinfo=timezone.utc).timestamp() * 1000)
    return val
