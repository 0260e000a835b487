"""
FastAPI application implementing the Esri GeoServices FeatureServer API.

Endpoints:
- /rest/info
- /rest/services
- /rest/services/{service_id}/FeatureServer
- /rest/services/{service_id}/FeatureServer/{layer_id}
- /rest/services/{service_id}/FeatureServer/{layer_id}/query

Each service_id maps to a FeatureServer registered with create_app().
Errors are returned in the Esri envelope {"error": {"code", "message", "details"}}.
"""

import logging
import os
import time
from collections.abc import Callable, Mapping
from typing import Optional, Union

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from postgis_geo.config import ServiceSettings, get_settings
from postgis_geo.errors import (
    FeatureServerError,
    InvalidQueryError,
    LayerNotFoundError,
    ServiceNotFoundError,
)

from .metadata import CURRENT_VERSION
from .routes import feature_server
from .server import FeatureServer

logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

DEFAULT_SERVICE = "default"


def error_response(code: int, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=code,
        content={"error": {"code": code, "message": message, "details": details or []}},
    )


def create_app(
    services: Union[Mapping[str, FeatureServer], FeatureServer],
    settings: Optional[ServiceSettings] = None,
    context_provider: Optional[Callable] = None,
) -> FastAPI:
    """
    Build the application.

    ``services`` maps service names to FeatureServer instances; a single
    FeatureServer is mounted as "default". ``context_provider`` receives
    the Request and returns (or awaits to) a RequestContext for tenant
    filtering.
    """
    if isinstance(services, FeatureServer):
        services = {DEFAULT_SERVICE: services}
    settings = settings or get_settings()

    app = FastAPI(
        title="PostGIS GeoServices",
        description="Esri GeoServices REST API backed by PostGIS",
        root_path=os.environ.get("ROOT_PATH", ""),
    )
    app.state.services = dict(services)
    app.state.settings = settings
    app.state.context_provider = context_provider

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def log_request_timing(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        # Only the query path and slow requests are logged at INFO
        if "/query" in request.url.path or elapsed > 1.0:
            logger.info(
                "%s %s -> %d (%.2fs)",
                request.method,
                request.url,
                response.status_code,
                elapsed,
            )
        return response

    @app.exception_handler(LayerNotFoundError)
    @app.exception_handler(ServiceNotFoundError)
    async def not_found(request: Request, exc: FeatureServerError):
        return error_response(404, str(exc))

    @app.exception_handler(InvalidQueryError)
    async def invalid_query(request: Request, exc: InvalidQueryError):
        return error_response(400, "Unable to complete operation.", [str(exc)])

    @app.exception_handler(FeatureServerError)
    async def server_error(request: Request, exc: FeatureServerError):
        logger.error("Request %s failed: %s", request.url.path, exc)
        details = [str(exc)] if settings.debug else []
        return error_response(500, "Unable to complete operation.", details)

    app.include_router(feature_server.router, prefix="/rest/services")

    def _directory():
        return [{"name": name, "type": "FeatureServer"} for name in app.state.services]

    @app.get("/rest/info")
    @app.post("/rest/info")
    async def rest_info():
        """ArcGIS REST service directory info."""
        return {
            "currentVersion": CURRENT_VERSION,
            "fullVersion": f"{CURRENT_VERSION}.0",
            "owningSystemUrl": "",
            "authInfo": {"isTokenBasedSecurity": False},
            "services": _directory(),
        }

    @app.get("/rest/services")
    @app.post("/rest/services")
    async def services_directory():
        """Lists all mounted FeatureServer services."""
        return {
            "currentVersion": CURRENT_VERSION,
            "folders": [],
            "services": _directory(),
        }

    return app
