"""
Build Esri GeoServices metadata responses from layer definitions.

These are the relatively static JSON responses for /FeatureServer
and /FeatureServer/{layer_id}, called once when a layer is added
to an ArcGIS map.
"""

from typing import Optional

from postgis_geo.query.geometry import Extent
from postgis_geo.query.models import LayerDefinition

CURRENT_VERSION = 10.9


def build_service_metadata(layers, settings) -> dict:
    """Build /FeatureServer response."""
    return {
        "currentVersion": CURRENT_VERSION,
        "serviceDescription": settings.description,
        "hasVersionedData": False,
        "supportsDisconnectedEditing": False,
        "hasStaticData": False,
        "maxRecordCount": settings.max_record_count,
        "supportedQueryFormats": "JSON, geoJSON",
        "capabilities": "Query",
        "description": settings.description,
        "copyrightText": settings.copyright_text,
        "spatialReference": settings.spatial_reference.to_esri(),
        "initialExtent": settings.initial_extent.to_esri() if settings.initial_extent else None,
        "fullExtent": settings.full_extent.to_esri() if settings.full_extent else None,
        "allowGeometryUpdates": False,
        "units": settings.units,
        "layers": [
            {"id": layer.id, "name": layer.name, "type": "Feature Layer"}
            for layer in layers
        ],
        "tables": [],
    }


def build_layer_definition(
    definition: LayerDefinition, extent: Optional[Extent] = None
) -> dict:
    """
    Build /FeatureServer/{layer_id} response.

    The layer's configured values override the protocol defaults below.
    A missing extent leaves the key out rather than sending zeros.
    """
    config = definition.to_config()
    if extent is not None and "extent" not in config:
        config["extent"] = extent.to_esri()

    payload = {
        "currentVersion": CURRENT_VERSION,
        "id": definition.id,
        "name": definition.name,
        "type": "Feature Layer",
        "description": "",
        "geometryType": definition.geometry_type,
        "copyrightText": "",
        "parentLayer": None,
        "subLayers": [],
        "minScale": 0,
        "maxScale": 0,
        "drawingInfo": None,
        "defaultVisibility": True,
        "extent": None,
        "hasAttachments": False,
        "htmlPopupType": "esriServerHTMLPopupTypeAsHTMLText",
        "displayField": "",
        "typeIdField": None,
        "fields": [],
        "relationships": [],
        "canModifyLayer": False,
        "canScaleSymbols": False,
        "hasLabels": False,
        "capabilities": "Query",
        "maxRecordCount": definition.max_record_count,
        "supportsStatistics": False,
        "supportsAdvancedQueries": True,
        "supportedQueryFormats": "JSON, geoJSON",
        "isDataVersioned": False,
        "ownershipBasedAccessControlForFeatures": {"allowOthersToQuery": True},
        "useStandardizedQueries": True,
        "advancedQueryCapabilities": {
            "useStandardizedQueries": True,
            "supportsStatistics": False,
            "supportsHavingClause": False,
            "supportsOrderBy": True,
            "supportsDistinct": False,
            "supportsCountDistinct": False,
            "supportsPagination": True,
            "supportsTrueCurve": False,
            "supportsReturningQueryExtent": False,
            "supportsQueryWithDistance": False,
            "supportsSqlExpression": True,
        },
    }
    payload.update(config)

    if payload.get("extent") is None:
        payload.pop("extent", None)
    return payload
