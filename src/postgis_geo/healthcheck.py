#!/usr/bin/env python3
"""
Health check for container health probes.

Usage:
    python -m postgis_geo.healthcheck [geoservices|database]

``geoservices`` checks that /rest/info responds; ``database`` checks
that the configured PostGIS database is reachable with the extension
installed. Exits 0 on success, 1 on failure.
"""

import sys
import urllib.error
import urllib.request

from postgis_geo.config import create_data_source


def check_geoservices(host="localhost", port=8001):
    """Check GeoServices endpoint is responding."""
    try:
        url = f"http://{host}:{port}/rest/info"
        req = urllib.request.urlopen(url, timeout=5)
        return req.status == 200
    except (urllib.error.URLError, OSError):
        return False


def check_database(settings=None):
    """Check PostGIS is reachable with the configured DSN."""
    try:
        source = create_data_source(settings)
    except ValueError as e:
        print(f"database: {e}", file=sys.stderr)
        return False
    return source.is_available()


CHECKS = {
    "geoservices": check_geoservices,
    "database": check_database,
}


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    service = argv[0] if argv else "geoservices"

    check = CHECKS.get(service)
    if check is None:
        print(f"Unknown service: {service}", file=sys.stderr)
        return 1

    if check():
        print(f"{service}: healthy")
        return 0
    print(f"{service}: unhealthy", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
