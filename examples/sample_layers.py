"""
Sample layers.

SimplePointLayer is the minimum a layer needs: a table and its
definition. BuildingLayer adds a base filter and a per-tenant filter.
PlaceLayer serves a joined table through a FROM override and a field map
and scopes rows by the caller's client code.

Tables:

    CREATE TABLE points (
        id SERIAL PRIMARY KEY,
        name VARCHAR(100),
        description TEXT,
        geom GEOMETRY(POINT, 4326)
    );

    CREATE TABLE buildings (
        id SERIAL PRIMARY KEY,
        name VARCHAR(200),
        address VARCHAR(255),
        tenant_id INTEGER,
        status VARCHAR(50),
        geom GEOMETRY(POINT, 4326)
    );

    CREATE TABLE place (
        id SERIAL PRIMARY KEY,
        address1 VARCHAR(100),
        address2 VARCHAR(100),
        client_code VARCHAR(28),
        geom GEOMETRY(POINT, 4326)
    );
    CREATE TABLE occupancy (id SERIAL PRIMARY KEY, address_id INTEGER);
"""

from postgis_geo.geoservices import FeatureLayer, LayerCapability
from postgis_geo.query.geometry import FieldType, GeometryType
from postgis_geo.query.models import FieldDefinition, LayerDefinition
from postgis_geo.query.sql import TrustedSQL


class SimplePointLayer(FeatureLayer):
    table_name = "points"
    definition = LayerDefinition(
        id=0,
        name="Points",
        description="Simple Point Layer Example",
        geometry_type=GeometryType.POINT,
        object_id_field="id",
        display_field="name",
        max_record_count=1000,
        fields=[
            FieldDefinition(name="id", type=FieldType.OID, alias="ID"),
            FieldDefinition(name="name", type=FieldType.STRING, alias="Name", length=100),
            FieldDefinition(
                name="description", type=FieldType.STRING, alias="Description", length=255
            ),
        ],
    )


class BuildingLayer(FeatureLayer):
    table_name = "buildings"
    definition = LayerDefinition(
        id=1,
        name="Buildings",
        description="Building inventory with multi-tenancy",
        geometry_type=GeometryType.POINT,
        object_id_field="id",
        display_field="name",
        max_record_count=1000,
        fields=[
            FieldDefinition(name="id", type=FieldType.OID, alias="ID"),
            FieldDefinition(name="name", type=FieldType.STRING, alias="Building Name", length=200),
            FieldDefinition(name="address", type=FieldType.STRING, alias="Address", length=255),
            FieldDefinition(name="tenant_id", type=FieldType.INTEGER, alias="Tenant ID"),
            FieldDefinition(name="status", type=FieldType.STRING, alias="Status", length=50),
        ],
    )
    capabilities = frozenset({LayerCapability.BASE_WHERE, LayerCapability.TENANT_FILTER})

    def get_base_where(self):
        return TrustedSQL("t.status <> 'demolished'")

    def is_tenant_filter_enabled(self, context):
        return context.tenant_id is not None and not context.is_admin

    def get_tenant_where(self, context):
        return TrustedSQL(f"t.tenant_id = {int(context.tenant_id)}")


class PlaceLayer(FeatureLayer):
    table_name = "place"
    definition = LayerDefinition(
        id=2,
        name="Places",
        description="Place and Address System",
        geometry_type=GeometryType.POINT,
        object_id_field="objectid",
        display_field="address1",
        fields=[
            FieldDefinition(name="objectid", type=FieldType.OID, alias="OBJECTID"),
            FieldDefinition(name="id", type=FieldType.INTEGER, alias="ID"),
            FieldDefinition(name="address1", type=FieldType.STRING, alias="Address 1", length=100),
            FieldDefinition(name="address2", type=FieldType.STRING, alias="Address 2", length=100),
            FieldDefinition(name="client_code", type=FieldType.STRING, alias="Client Code", length=28),
            FieldDefinition(name="has_occupancy", type=FieldType.SMALL_INTEGER, alias="Occupied"),
        ],
    )
    capabilities = frozenset(
        {
            LayerCapability.FROM_CLAUSE,
            LayerCapability.FIELD_MAP,
            LayerCapability.TENANT_FILTER,
        }
    )

    def get_from_clause(self):
        return TrustedSQL("FROM place t LEFT JOIN occupancy o ON t.id = o.address_id")

    def get_field_map(self):
        return {
            "objectid": TrustedSQL("t.id AS objectid"),
            "id": TrustedSQL("t.id"),
            "address1": TrustedSQL("t.address1"),
            "address2": TrustedSQL("t.address2"),
            "client_code": TrustedSQL("t.client_code"),
            "has_occupancy": TrustedSQL(
                "CASE WHEN o.id IS NOT NULL THEN 1 ELSE 0 END AS has_occupancy"
            ),
        }

    def is_tenant_filter_enabled(self, context):
        return not context.is_admin and "client_code" in context.attributes

    def get_tenant_where(self, context):
        return TrustedSQL(f"t.client_code = {self.quote_value(context.attributes['client_code'])}")
