"""Generic resource endpoints.

Every registered slug is served by the same handlers. With multi-tenancy
enabled the router is mounted under ``/api/{tenant}``, otherwise under
``/api``.
"""

import json
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from resourcegate.api.gateway import Gateway
from resourcegate.api.identity import RequestIdentity
from resourcegate.api.query_params import list_params
from resourcegate.api.schemas import NestedResponse, RecordResponse
from resourcegate.errors import ValidationFailed


async def _json_body(request: Request) -> Any:
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


async def _record_body(request: Request) -> dict[str, Any]:
    payload = await _json_body(request)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationFailed({"body": ["The request body must be a JSON object."]})
    return payload


def create_resource_router(get_gateway: Callable[[], Gateway], nested_path: str = "nested") -> APIRouter:
    """Create the resource router.

    Args:
        get_gateway: Callable returning the started Gateway
        nested_path: Path segment of the batch endpoint

    Returns:
        Configured APIRouter
    """
    router = APIRouter(tags=["resources"])

    def identity(request: Request) -> RequestIdentity:
        gateway = get_gateway()
        return RequestIdentity(
            request,
            gateway.store,
            gateway.scopes,
            auth_disabled=gateway.config.auth_disabled,
        )

    # Registered first so the batch path never matches as a slug
    @router.post(f"/{nested_path}", response_model=NestedResponse)
    async def nested(request: Request) -> dict[str, Any]:
        gateway = get_gateway()
        payload = await _json_body(request)
        async with gateway.lock:
            ctx = identity(request).context()
            return await gateway.coordinator.run(payload, ctx)

    @router.get("/{slug}")
    async def index(slug: str, request: Request) -> JSONResponse:
        gateway = get_gateway()
        params = list_params(request.query_params)
        async with gateway.lock:
            ctx = identity(request).context()
            result = gateway.service.index(slug, ctx, params)
        return JSONResponse({"data": result.data}, headers=result.headers())

    @router.post("/{slug}", status_code=201, response_model=RecordResponse)
    async def store(slug: str, request: Request) -> dict[str, Any]:
        gateway = get_gateway()
        raw = await _record_body(request)
        async with gateway.lock:
            ctx = identity(request).context()
            return {"data": gateway.service.store(slug, ctx, raw)}

    @router.get("/{slug}/trashed")
    async def trashed(slug: str, request: Request) -> JSONResponse:
        gateway = get_gateway()
        params = list_params(request.query_params)
        async with gateway.lock:
            ctx = identity(request).context()
            result = gateway.service.trashed(slug, ctx, params)
        return JSONResponse({"data": result.data}, headers=result.headers())

    @router.get("/{slug}/{id}", response_model=RecordResponse)
    async def show(slug: str, id: str, request: Request) -> dict[str, Any]:
        gateway = get_gateway()
        async with gateway.lock:
            ctx = identity(request).context()
            return {"data": gateway.service.show(slug, id, ctx, request.query_params.get("include"))}

    @router.put("/{slug}/{id}", response_model=RecordResponse)
    async def update(slug: str, id: str, request: Request) -> dict[str, Any]:
        gateway = get_gateway()
        raw = await _record_body(request)
        async with gateway.lock:
            ctx = identity(request).context()
            return {"data": gateway.service.update(slug, id, ctx, raw)}

    @router.delete("/{slug}/{id}", status_code=204)
    async def destroy(slug: str, id: str, request: Request) -> Response:
        gateway = get_gateway()
        async with gateway.lock:
            ctx = identity(request).context()
            gateway.service.destroy(slug, id, ctx)
        return Response(status_code=204)

    @router.post("/{slug}/{id}/restore", response_model=RecordResponse)
    async def restore(slug: str, id: str, request: Request) -> dict[str, Any]:
        gateway = get_gateway()
        async with gateway.lock:
            ctx = identity(request).context()
            return {"data": gateway.service.restore(slug, id, ctx)}

    @router.delete("/{slug}/{id}/force-delete", status_code=204)
    async def force_delete(slug: str, id: str, request: Request) -> Response:
        gateway = get_gateway()
        async with gateway.lock:
            ctx = identity(request).context()
            gateway.service.force_delete(slug, id, ctx)
        return Response(status_code=204)

    return router
