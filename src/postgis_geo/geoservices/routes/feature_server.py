"""
FeatureServer routes.

ArcGIS clients send query parameters via:
- GET with URL query parameters
- POST with application/x-www-form-urlencoded body

Both must be handled. _get_query_params() merges both sources.

Layer work touches the database, so it runs in the threadpool rather
than on the event loop.
"""

import inspect
import logging

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from postgis_geo.errors import InvalidQueryError, ServiceNotFoundError
from postgis_geo.query.models import RequestContext

from ..server import FeatureServer

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_query_params(request: Request) -> dict:
    """Merge query string and form body params.

    Query string params take precedence over form body.
    """
    params = dict(request.query_params)

    if request.method == "POST":
        content_type = request.headers.get("content-type", "")
        if "form" in content_type or "urlencoded" in content_type:
            try:
                form_data = await request.form()
            except Exception as e:
                logger.warning("Failed to parse form body: %s", e)
                raise InvalidQueryError(f"Unable to parse form body: {e}") from e
            for key, value in form_data.items():
                if key not in params:
                    params[key] = value

    return params


def _get_server(request: Request, service_id: str) -> FeatureServer:
    server = request.app.state.services.get(service_id)
    if server is None:
        raise ServiceNotFoundError(service_id)
    return server


async def _get_context(request: Request) -> RequestContext:
    provider = request.app.state.context_provider
    if provider is None:
        return RequestContext()
    context = provider(request)
    if inspect.isawaitable(context):
        context = await context
    return context or RequestContext()


@router.get("/{service_id}/FeatureServer")
@router.post("/{service_id}/FeatureServer")
async def feature_server_info(request: Request, service_id: str):
    """
    Service-level metadata.

    ArcGIS clients call this to discover layers, spatial reference,
    and capabilities.
    """
    return _get_server(request, service_id).get_service_info()


@router.get("/{service_id}/FeatureServer/{layer_id}")
@router.post("/{service_id}/FeatureServer/{layer_id}")
async def layer_info(request: Request, service_id: str, layer_id: int):
    """Layer definition: fields, geometry type, extent, objectIdField."""
    server = _get_server(request, service_id)
    context = await _get_context(request)
    return await run_in_threadpool(server.definition, layer_id, context)


@router.get("/{service_id}/FeatureServer/{layer_id}/query")
@router.post("/{service_id}/FeatureServer/{layer_id}/query")
async def query_layer(request: Request, service_id: str, layer_id: int):
    """
    Feature query.

    Raw parameters are translated by QueryParams.from_request; the
    layer merges its hooks and serializes per ``f``.
    """
    p = await _get_query_params(request)
    server = _get_server(request, service_id)
    context = await _get_context(request)
    return await run_in_threadpool(server.query, layer_id, p, context)
