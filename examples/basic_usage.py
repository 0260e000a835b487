#!/usr/bin/env python3
"""
Serve one point layer as the "default" FeatureServer.

The database comes from config/featureserver.yml (FEATURESERVER_CONFIG
overrides the path; the sample file reads the DSN from POSTGIS_DSN).

Usage:
    POSTGIS_DSN="postgresql://gis@localhost/gis" python examples/basic_usage.py
    uvicorn basic_usage:app --app-dir examples --port 8001

Then point a client at:
    http://localhost:8001/rest/services/default/FeatureServer
"""

import argparse

import uvicorn

from postgis_geo.config import create_data_source
from postgis_geo.geoservices import FeatureServer
from postgis_geo.geoservices.app import create_app
from sample_layers import SimplePointLayer

server = FeatureServer(create_data_source()).register_layer(SimplePointLayer)
app = create_app(server)


def main():
    parser = argparse.ArgumentParser(description="PostGIS FeatureServer example")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("-p", "--port", type=int, default=8001, help="Port to listen on (default: 8001)")
    args = parser.parse_args()

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
