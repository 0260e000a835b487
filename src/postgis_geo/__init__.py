"""Esri GeoServices FeatureServer on top of PostGIS."""

__version__ = "0.1.0"
