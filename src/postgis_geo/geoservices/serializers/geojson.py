"""
Serialize query rows -> GeoJSON FeatureCollection.

Used when f=geojson is requested. The transfer-limit flag is emitted both
at top level and under "properties" because clients read either.
"""

from datetime import date, datetime
from decimal import Decimal

from postgis_geo.query.geometry import load_geojson_geometry

# Checked in this order for the feature id
ID_COLUMNS = ("OBJECTID", "objectid", "id")


def build_geojson(rows: list[dict], record_limit: int, exclude_columns=()) -> dict:
    """Convert feature rows to a GeoJSON FeatureCollection."""
    exclude = set(exclude_columns)
    exceeded = len(rows) >= record_limit

    return {
        "type": "FeatureCollection",
        "features": [_format_feature(row, exclude) for row in rows],
        "exceededTransferLimit": exceeded,
        "properties": {"exceededTransferLimit": exceeded},
    }


def _format_feature(row: dict, exclude: set) -> dict:
    feature = {"type": "Feature"}

    id_column = next((c for c in ID_COLUMNS if row.get(c) is not None), None)
    if id_column:
        feature["id"] = row[id_column]

    has_point = "x" in row and "y" in row
    geometry = None
    if row.get("geojson_geometry") is not None:
        geometry = load_geojson_geometry(row["geojson_geometry"])
    elif has_point and row["x"] is not None and row["y"] is not None:
        geometry = {
            "type": "Point",
            "coordinates": [float(row["x"]), float(row["y"])],
        }
    feature["geometry"] = geometry

    skip = exclude | {id_column, "geojson_geometry"}
    if has_point:
        skip |= {"x", "y"}
    feature["properties"] = {
        key: _to_json_safe(value) for key, value in row.items() if key not in skip
    }
    return feature


def _to_json_safe(val):
    """Convert database values to JSON-serializable Python types."""
    if val is None:
        return None
    if isinstance(val, (bytes, bytearray, memoryview)):
        return None
    if isinstance(val, Decimal):
        return float(val)
    if isinstance(val, (date, datetime)):
        return val.isoformat()
    return val
