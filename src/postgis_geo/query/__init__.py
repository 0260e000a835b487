"""Query layer: parameter models, SQL building and data sources."""

from .builder import build_count, build_extent, build_select, build_where
from .datasource import DataSource, PostGISDataSource, SQLAlchemyDataSource, SQLDataSource
from .models import FieldDefinition, LayerDefinition, QueryParams, RequestContext
from .sql import TrustedSQL

__all__ = [
    "build_count",
    "build_extent",
    "build_select",
    "build_where",
    "DataSource",
    "PostGISDataSource",
    "SQLAlchemyDataSource",
    "SQLDataSource",
    "FieldDefinition",
    "LayerDefinition",
    "QueryParams",
    "RequestContext",
    "TrustedSQL",
]
