"""Esri GeoServices REST layer: feature layers, server registry and HTTP app."""

from .layer import FeatureLayer, LayerCapability
from .server import FeatureServer

__all__ = ["FeatureLayer", "FeatureServer", "LayerCapability"]
