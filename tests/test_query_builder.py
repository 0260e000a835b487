"""Tests for SQL generation."""

import pytest
from pydantic import ValidationError

from postgis_geo.errors import InvalidQueryError
from postgis_geo.query.builder import (
    build_count,
    build_extent,
    build_field_list,
    build_order_by,
    build_select,
    build_where,
    object_id_list,
)
from postgis_geo.query.geometry import GeometryType
from postgis_geo.query.models import QueryParams
from postgis_geo.query.sql import TrustedSQL

FIELD_MAP = {
    "id": TrustedSQL("t.id"),
    "owner": TrustedSQL("o.name AS owner"),
    "zoning": TrustedSQL("t.zoning"),
}


class TestBuildWhere:
    """Test WHERE composition."""

    def test_empty_is_always_true(self):
        assert build_where(QueryParams()) == "1=1"

    def test_fixed_order(self):
        params = QueryParams(
            base_where=TrustedSQL("status='A'"),
            tenant_where=TrustedSQL("tenant_id=5"),
            where="name LIKE 'X%'",
        )
        assert build_where(params) == "(status='A') AND (tenant_id=5) AND (name LIKE 'X%')"

    def test_all_five_conditions(self):
        params = QueryParams(
            base_where=TrustedSQL("deleted_at IS NULL"),
            tenant_where=TrustedSQL("tenant_id=5"),
            where="status = 'A'",
            object_ids="1,2",
            geometry=(0, 0, 1, 1),
            geometry_type=GeometryType.ENVELOPE,
        )
        assert build_where(params) == (
            "(deleted_at IS NULL) AND (tenant_id=5) AND (status = 'A') "
            "AND (t.id IN (1,2)) "
            "AND (ST_Intersects(t.geom, ST_Transform("
            "ST_MakeEnvelope(0.0, 0.0, 1.0, 1.0, 4326), ST_SRID(t.geom))))"
        )

    def test_blank_fragments_skipped(self):
        params = QueryParams(base_where=TrustedSQL("   "), where="")
        assert build_where(params) == "1=1"

    def test_object_ids_numeric_only(self):
        params = QueryParams(object_ids="3,7,x,9")
        assert build_where(params) == "(t.id IN (3,7,9))"

    def test_object_ids_target_storage_column(self):
        params = QueryParams(
            object_ids=[1, 2], object_id_field="objectid", object_id_column="gid"
        )
        assert build_where(params) == "(t.gid IN (1,2))"

    def test_object_ids_without_numbers_skipped(self):
        assert build_where(QueryParams(object_ids="a,b")) == "1=1"

    def test_envelope_uses_input_sr(self):
        params = QueryParams(
            geometry=(-10, -5, 10, 5),
            geometry_type=GeometryType.ENVELOPE,
            in_sr=102100,
        )
        assert build_where(params) == (
            "(ST_Intersects(t.geom, ST_Transform("
            "ST_MakeEnvelope(-10.0, -5.0, 10.0, 5.0, 3857), ST_SRID(t.geom))))"
        )

    def test_envelope_defaults_to_layer_srid(self):
        params = QueryParams(
            geometry="1,2,3,4",
            geometry_type=GeometryType.ENVELOPE,
            srid=2154,
            geometry_column="shape",
        )
        assert "ST_MakeEnvelope(1.0, 2.0, 3.0, 4.0, 2154)" in build_where(params)
        assert "ST_Intersects(t.shape," in build_where(params)

    def test_non_envelope_geometry_ignored(self):
        params = QueryParams(geometry='{"x": 1, "y": 2}', geometry_type=GeometryType.POINT)
        assert build_where(params) == "1=1"

    def test_tenant_clause_absent_when_not_set(self):
        params = QueryParams(base_where=TrustedSQL("status='A'"), where="name = 'B'")
        assert build_where(params) == "(status='A') AND (name = 'B')"


class TestBuildSelect:
    """Test the row statement."""

    def test_default_point_statement(self):
        sql = build_select("public.features", QueryParams())
        assert sql == (
            "SELECT t.*, ST_X(ST_Transform(t.geom, 4326)) AS x, "
            "ST_Y(ST_Transform(t.geom, 4326)) AS y "
            "FROM public.features t WHERE 1=1 LIMIT 2000 OFFSET 0"
        )

    def test_geojson_format_uses_serialized_geometry(self):
        sql = build_select("features", QueryParams(format="geojson"))
        assert "ST_AsGeoJSON(ST_Transform(t.geom, 4326))::json AS geojson_geometry" in sql
        assert " AS x" not in sql

    def test_polygon_layer_uses_serialized_geometry(self):
        params = QueryParams(layer_geometry_type=GeometryType.POLYGON)
        assert "AS geojson_geometry" in build_select("parcels", params)

    def test_output_spatial_reference(self):
        params = QueryParams(out_sr='{"wkid": 102100, "latestWkid": 3857}')
        sql = build_select("features", params)
        assert "ST_X(ST_Transform(t.geom, 3857)) AS x" in sql

    def test_fields_window_without_geometry(self):
        params = QueryParams(
            out_fields="id,name", return_geometry=False, limit=10, offset=5
        )
        assert build_select("features", params) == (
            "SELECT t.id, t.name FROM features t WHERE 1=1 LIMIT 10 OFFSET 5"
        )

    def test_order_by(self):
        params = QueryParams(order_by="name desc, id", return_geometry=False)
        sql = build_select("features", params)
        assert sql.endswith("WHERE 1=1 ORDER BY t.name DESC, t.id LIMIT 2000 OFFSET 0")

    def test_from_override_replaces_from(self):
        params = QueryParams(
            from_clause=TrustedSQL("parcels t JOIN owners o ON o.id = t.owner_id"),
            return_geometry=False,
        )
        sql = build_select("ignored", params)
        assert "FROM parcels t JOIN owners o ON o.id = t.owner_id WHERE" in sql
        assert "ignored" not in sql

    def test_from_override_keeps_leading_from(self):
        params = QueryParams(from_clause=TrustedSQL("  FROM parcels t  "), return_geometry=False)
        assert "SELECT t.* FROM parcels t WHERE 1=1" in build_select("x", params)

    @pytest.mark.parametrize("limit", [None, 0, -5])
    def test_limit_defaults(self, limit):
        params = QueryParams(limit=limit, return_geometry=False)
        assert build_select("features", params).endswith("LIMIT 2000 OFFSET 0")

    def test_negative_offset_clamped(self):
        params = QueryParams(offset=-3, limit=5, return_geometry=False)
        assert build_select("features", params).endswith("LIMIT 5 OFFSET 0")

    def test_idempotent(self):
        params = QueryParams(
            where="status = 'A'",
            object_ids="1,2,3",
            geometry=(0, 0, 1, 1),
            geometry_type=GeometryType.ENVELOPE,
            order_by="name",
            limit=10,
        )
        assert build_select("features", params) == build_select("features", params)
        assert build_count("features", params) == build_count("features", params)

    def test_plain_string_hook_rejected(self):
        params = QueryParams().model_copy(update={"base_where": "status='A'"})
        with pytest.raises(TypeError):
            build_select("features", params)

    def test_plain_string_rejected_at_construction(self):
        with pytest.raises(ValidationError):
            QueryParams(tenant_where="tenant_id=5")

    def test_invalid_field_name_rejected(self):
        params = QueryParams(out_fields="name,1=1 OR x")
        with pytest.raises(InvalidQueryError):
            build_select("features", params)

    def test_invalid_table_name_rejected(self):
        with pytest.raises(ValueError):
            build_select("features; DROP TABLE x", QueryParams())


class TestBuildFieldList:
    """Test field-map translation."""

    def test_object_id_first(self):
        params = QueryParams(field_map=FIELD_MAP, object_id_field="id", out_fields="zoning,id,owner")
        assert build_field_list(params) == "t.id, t.zoning, o.name AS owner"

    def test_unmapped_object_id_synthesized(self):
        params = QueryParams(field_map=FIELD_MAP, out_fields="objectid,owner")
        assert build_field_list(params) == "t.id AS objectid, o.name AS owner"

    def test_duplicates_dropped(self):
        params = QueryParams(field_map=FIELD_MAP, out_fields="zoning,zoning,owner")
        assert build_field_list(params) == "t.zoning, o.name AS owner"

    def test_unknown_names_ignored(self):
        params = QueryParams(field_map=FIELD_MAP, out_fields="owner,missing")
        assert build_field_list(params) == "o.name AS owner"

    def test_wildcard_selects_every_mapping(self):
        params = QueryParams(field_map=FIELD_MAP)
        assert build_field_list(params) == "t.id, o.name AS owner, t.zoning"

    def test_nothing_available(self):
        params = QueryParams(field_map=FIELD_MAP, out_fields="missing")
        with pytest.raises(InvalidQueryError):
            build_field_list(params)

    def test_without_map(self):
        assert build_field_list(QueryParams()) == "t.*"
        assert build_field_list(QueryParams(out_fields=["name", "status"])) == "t.name, t.status"


class TestBuildOrderBy:
    """Test ORDER BY resolution."""

    def test_qualified_with_alias(self):
        params = QueryParams(order_by="id desc")
        assert build_order_by(params) == "t.id DESC"

    def test_empty(self):
        assert build_order_by(QueryParams()) == ""

    def test_join_resolves_through_field_map(self):
        params = QueryParams(
            from_clause=TrustedSQL("FROM parcels t JOIN owners o ON o.id = t.owner_id"),
            field_map=FIELD_MAP,
            order_by="owner, id desc",
            return_geometry=False,
        )
        sql = build_select("parcels", params)
        assert "ORDER BY o.name, t.id DESC LIMIT" in sql

    def test_unmapped_name_rejected(self):
        params = QueryParams(field_map=FIELD_MAP, order_by="missing")
        with pytest.raises(InvalidQueryError):
            build_order_by(params)


class TestBuildCount:
    """Test the count statement."""

    def test_ignores_fields_and_window(self):
        params = QueryParams(out_fields="name", object_ids="1,2", limit=5, offset=10)
        assert build_count("features", params) == (
            "SELECT COUNT(*) FROM features t WHERE (t.id IN (1,2))"
        )

    def test_shares_from_override(self):
        params = QueryParams(from_clause=TrustedSQL("FROM a t JOIN b ON b.id = t.b_id"))
        assert build_count("a", params) == "SELECT COUNT(*) FROM a t JOIN b ON b.id = t.b_id WHERE 1=1"


class TestBuildExtent:
    """Test the extent statement."""

    def test_extent_statement(self):
        params = QueryParams(srid=3857, where="status = 'A'")
        assert build_extent("public.parcels", "geom", params) == (
            "SELECT ST_XMin(extent) AS xmin, ST_YMin(extent) AS ymin, "
            "ST_XMax(extent) AS xmax, ST_YMax(extent) AS ymax "
            "FROM (SELECT ST_Extent(ST_Transform(t.geom, 3857)) AS extent "
            "FROM public.parcels t WHERE (status = 'A')) AS extent_query"
        )


class TestObjectIdList:
    """Test object-id coercion."""

    def test_string(self):
        assert object_id_list(" 3, 7.0 ,x, 9") == [3, 7, 9]

    def test_sequence(self):
        assert object_id_list([True, 2, None, "4", 5.0]) == [2, 4, 5]

    def test_non_finite_dropped(self):
        assert object_id_list("inf,nan,5") == [5]

    @pytest.mark.parametrize("value", [None, "", []])
    def test_empty(self, value):
        assert object_id_list(value) == []
