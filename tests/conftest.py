"""
Shared test fixtures.

Sample layers cover the shapes a service is built from: a plain point
table, a tenant-filtered table and a joined table with a field map.
Adapter tests run against in-process DuckDB and SQLite databases.
"""

import duckdb
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from postgis_geo.config import reset_settings
from postgis_geo.geoservices import FeatureLayer, FeatureServer, LayerCapability
from postgis_geo.query.builder import build_count, build_select
from postgis_geo.query.datasource import DataSource
from postgis_geo.query.geometry import FieldType, GeometryType
from postgis_geo.query.models import FieldDefinition, LayerDefinition
from postgis_geo.query.sql import TrustedSQL

POINT_ROW = {"id": 1, "name": "Alpha", "x": 10.0, "y": 20.0}


class RecordingDataSource(DataSource):
    """Builds the SQL a real adapter would run and returns canned rows."""

    def __init__(self, rows=None, count=0, extent=None):
        self.rows = rows or []
        self.count_result = count
        self.extent = extent
        self.supports_extent = extent is not None
        self.statements = []
        self.calls = []

    def query(self, source, params):
        self.calls.append(("query", params))
        self.statements.append(build_select(source, params))
        return [dict(row) for row in self.rows]

    def count(self, source, params):
        self.calls.append(("count", params))
        self.statements.append(build_count(source, params))
        return self.count_result

    def is_available(self):
        return True

    def calculate_extent(self, source, geometry_column, params):
        self.calls.append(("extent", params))
        return self.extent

    @property
    def call_kinds(self):
        return [kind for kind, _ in self.calls]


class PointLayer(FeatureLayer):
    table_name = "features"
    definition = LayerDefinition(
        id=0,
        name="Features",
        geometry_type=GeometryType.POINT,
        object_id_field="id",
        fields=[
            FieldDefinition(name="id", type=FieldType.OID),
            FieldDefinition(name="name", type=FieldType.STRING, length=100),
        ],
        max_record_count=100,
    )


class TenantLayer(FeatureLayer):
    table_name = "assets"
    definition = LayerDefinition(
        id=1,
        name="Assets",
        geometry_type=GeometryType.POINT,
        fields=[
            FieldDefinition(name="objectid", type=FieldType.OID),
            FieldDefinition(name="name", type=FieldType.STRING),
            FieldDefinition(name="status", type=FieldType.STRING),
            FieldDefinition(name="tenant_id", type=FieldType.INTEGER),
        ],
    )
    capabilities = frozenset({LayerCapability.BASE_WHERE, LayerCapability.TENANT_FILTER})

    def get_base_where(self):
        return TrustedSQL("status='A'")

    def is_tenant_filter_enabled(self, context):
        return context.tenant_id is not None and not context.is_admin

    def get_tenant_where(self, context):
        return TrustedSQL(f"tenant_id={self.quote_value(context.tenant_id)}")


class ParcelLayer(FeatureLayer):
    table_name = "parcels"
    definition = LayerDefinition(
        id=2,
        name="Parcels",
        geometry_type=GeometryType.POLYGON,
        fields=[
            FieldDefinition(name="objectid", type=FieldType.OID),
            FieldDefinition(name="owner", type=FieldType.STRING),
            FieldDefinition(name="zoning", type=FieldType.STRING),
        ],
        spatial_reference={"wkid": 3857, "latestWkid": 3857},
    )
    capabilities = frozenset({LayerCapability.FROM_CLAUSE, LayerCapability.FIELD_MAP})

    def get_from_clause(self):
        return TrustedSQL("FROM parcels t JOIN owners o ON o.id = t.owner_id")

    def get_field_map(self):
        return {
            "id": TrustedSQL("t.id"),
            "owner": TrustedSQL("o.name AS owner"),
            "zoning": TrustedSQL("t.zoning"),
        }


@pytest.fixture(autouse=True)
def clean_settings():
    """Keep the process-wide settings from leaking between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def recording_source():
    return RecordingDataSource(rows=[POINT_ROW], count=7)


@pytest.fixture
def point_layer(recording_source):
    return PointLayer(recording_source)


@pytest.fixture
def tenant_layer(recording_source):
    return TenantLayer(recording_source)


@pytest.fixture
def parcel_layer(recording_source):
    return ParcelLayer(recording_source)


@pytest.fixture
def feature_server(recording_source):
    server = FeatureServer(recording_source)
    server.register_layer(PointLayer).register_layer(TenantLayer).register_layer(ParcelLayer)
    return server


@pytest.fixture
def duckdb_conn():
    """In-memory DuckDB database with a small features table."""
    conn = duckdb.connect()
    conn.execute("CREATE TABLE features (id INTEGER, name VARCHAR, status VARCHAR)")
    conn.execute(
        "INSERT INTO features VALUES (1, 'Alpha', 'A'), (2, 'Beta', 'B'), (3, 'Gamma', 'A')"
    )
    yield conn
    conn.close()


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite engine shared across connections."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE features (id INTEGER PRIMARY KEY, name TEXT, status TEXT)"
        )
        conn.exec_driver_sql(
            "INSERT INTO features (id, name, status) "
            "VALUES (1, 'Alpha', 'A'), (2, 'Beta', 'B'), (3, 'Gamma', 'A')"
        )
    yield engine
    engine.dispose()
