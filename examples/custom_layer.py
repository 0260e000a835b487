#!/usr/bin/env python3
"""
Serve tenant-filtered and joined layers.

The caller is identified from request headers (a real deployment would
read its auth session instead):

    X-Tenant-Id    tenant for BuildingLayer
    X-Client-Code  client code for PlaceLayer
    X-Admin        "true" disables both filters

Usage:
    POSTGIS_DSN="postgresql://gis@localhost/gis" python examples/custom_layer.py
    uvicorn custom_layer:app --app-dir examples --port 8001

    curl -H "X-Tenant-Id: 1" \
        "http://localhost:8001/rest/services/assets/FeatureServer/1/query?where=status='active'"
"""

import argparse

import uvicorn

from postgis_geo.config import create_data_source
from postgis_geo.geoservices import FeatureServer
from postgis_geo.geoservices.app import create_app
from postgis_geo.query.models import RequestContext
from sample_layers import BuildingLayer, PlaceLayer, SimplePointLayer


def context_from_headers(request) -> RequestContext:
    tenant = request.headers.get("x-tenant-id")
    client_code = request.headers.get("x-client-code")
    return RequestContext(
        tenant_id=int(tenant) if tenant and tenant.isdigit() else None,
        is_admin=request.headers.get("x-admin", "").lower() == "true",
        attributes={"client_code": client_code} if client_code else {},
    )


def build_app(data_source):
    assets = FeatureServer(data_source).register_layer(BuildingLayer).register_layer(PlaceLayer)
    points = FeatureServer(data_source).register_layer(SimplePointLayer)
    return create_app(
        {"assets": assets, "points": points},
        context_provider=context_from_headers,
    )


app = build_app(create_data_source())


def main():
    parser = argparse.ArgumentParser(description="Multi-tenant PostGIS FeatureServer example")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("-p", "--port", type=int, default=8001, help="Port to listen on (default: 8001)")
    args = parser.parse_args()

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
