"""
Feature layer base class.

A layer binds static metadata (LayerDefinition) and a table to a data
source. Subclasses declare which optional hooks they implement through
``capabilities``; only declared hooks are consulted when a request's
QueryParams are prepared.

Example:

    class BuildingLayer(FeatureLayer):
        table_name = "buildings"
        definition = LayerDefinition(
            id=0,
            name="Buildings",
            geometry_type=GeometryType.POINT,
            object_id_field="id",
            fields=[FieldDefinition(name="id", type=FieldType.OID)],
        )
        capabilities = frozenset({LayerCapability.TENANT_FILTER})

        def is_tenant_filter_enabled(self, context):
            return context.tenant_id is not None and not context.is_admin

        def get_tenant_where(self, context):
            return TrustedSQL(f"t.tenant_id = {self.quote_value(context.tenant_id)}")
"""

from collections.abc import Mapping
from enum import Enum
from typing import Optional, Union

from postgis_geo.query.datasource import DataSource
from postgis_geo.query.geometry import Extent
from postgis_geo.query.models import LayerDefinition, QueryParams, RequestContext
from postgis_geo.query.sql import TrustedSQL

from .metadata import build_layer_definition
from .serializers.esri_json import build_count_response, build_json
from .serializers.geojson import build_geojson


class LayerCapability(str, Enum):
    """Optional hooks a layer implements."""

    FROM_CLAUSE = "fromClause"
    FIELD_MAP = "fieldMap"
    BASE_WHERE = "baseWhere"
    TENANT_FILTER = "tenantFilter"


class FeatureLayer:
    """Base class for ArcGIS feature layers backed by a SQL table."""

    table_name: Optional[str] = None
    definition: Optional[LayerDefinition] = None
    capabilities: frozenset = frozenset()

    def __init__(self, data_source: DataSource):
        self.data_source = data_source

    @property
    def id(self) -> int:
        return self.definition.id

    @property
    def name(self) -> str:
        return self.definition.name

    def has_capability(self, capability: LayerCapability) -> bool:
        return capability in self.capabilities

    # -- optional hooks ---------------------------------------------------

    def get_from_clause(self) -> Optional[TrustedSQL]:
        """FROM/JOIN clause replacing ``FROM <table> t``."""
        return None

    def get_field_map(self) -> Optional[dict[str, TrustedSQL]]:
        """Public field name -> SQL select expression."""
        return None

    def get_base_where(self) -> Optional[TrustedSQL]:
        """Condition applied to every query (e.g. soft-delete exclusion)."""
        return None

    def get_tenant_where(self, context: RequestContext) -> Optional[TrustedSQL]:
        """Condition restricting rows to the caller's tenant."""
        return None

    def is_tenant_filter_enabled(self, context: RequestContext) -> bool:
        return False

    def quote_value(self, value) -> TrustedSQL:
        """Quote a value for use in the SQL fragments returned by hooks."""
        return self.data_source.quote_value(value)

    # -- operations -------------------------------------------------------

    def get_definition(self, context: Optional[RequestContext] = None) -> dict:
        """Layer definition payload, with a computed extent when none is configured."""
        extent = None
        if self.definition.extent is None:
            extent = self.get_extent(context)
        return build_layer_definition(self.definition, extent)

    def get_extent(self, context: Optional[RequestContext] = None) -> Optional[Extent]:
        if self.definition.extent is not None:
            return self.definition.extent
        if not self.data_source.supports_extent:
            return None
        params = self.prepare_params(QueryParams(), context)
        return self.data_source.calculate_extent(
            self.table_name, self.definition.geometry_column, params
        )

    def query(
        self,
        params: Union[QueryParams, Mapping, None] = None,
        context: Optional[RequestContext] = None,
    ) -> dict:
        """
        Execute a query and build the protocol response.

        returnCountOnly short-circuits to {"count": n} without fetching
        rows. Otherwise the record window is clamped to maxRecordCount
        and the rows are serialized per ``f``.
        """
        params = _as_params(params)

        if params.return_count_only:
            count = self.data_source.count(
                self.table_name, self.prepare_params(params, context)
            )
            return build_count_response(count)

        limit = self.definition.effective_limit(params.limit)
        params = self.prepare_params(params.model_copy(update={"limit": limit}), context)
        rows = self.data_source.query(self.table_name, params)[:limit]

        if params.format == "geojson":
            geometry_column = self.definition.geometry_column.split(".")[-1]
            return build_geojson(rows, limit, exclude_columns={geometry_column})
        return build_json(rows, self.definition, params, limit)

    def count(
        self,
        params: Union[QueryParams, Mapping, None] = None,
        context: Optional[RequestContext] = None,
    ) -> int:
        params = self.prepare_params(_as_params(params), context)
        return self.data_source.count(self.table_name, params)

    def prepare_params(
        self, params: QueryParams, context: Optional[RequestContext] = None
    ) -> QueryParams:
        """Merge layer metadata and the declared hooks into params."""
        context = context or RequestContext()
        definition = self.definition
        update = {
            "geometry_column": definition.geometry_column,
            "object_id_field": definition.object_id_field,
            "object_id_column": definition.object_id_column,
            "layer_geometry_type": definition.geometry_type,
            "srid": definition.srid,
            "from_clause": None,
            "field_map": None,
            "base_where": None,
            "tenant_where": None,
        }

        if self.has_capability(LayerCapability.FROM_CLAUSE):
            update["from_clause"] = self.get_from_clause()
        if self.has_capability(LayerCapability.FIELD_MAP):
            update["field_map"] = self.get_field_map()
        if self.has_capability(LayerCapability.BASE_WHERE):
            update["base_where"] = self.get_base_where()
        # Tenant filter is added to the base filter, never a replacement
        if self.has_capability(LayerCapability.TENANT_FILTER) and self.is_tenant_filter_enabled(context):
            update["tenant_where"] = self.get_tenant_where(context)

        return params.model_copy(update=update)


def _as_params(params) -> QueryParams:
    if params is None:
        return QueryParams()
    if isinstance(params, QueryParams):
        return params
    return QueryParams.from_request(params)
