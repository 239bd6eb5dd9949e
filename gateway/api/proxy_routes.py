"""
OpenAI-compatible /v1 surface.

Every error raised here is a `ProxyError`; the app-level handler turns it into
`{"error": {"message", "type"}}`.
"""

from __future__ import annotations

import json
import time
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from gateway.auth import require_principal
from gateway.catalog import ModelCatalog
from gateway.deps import get_access_control, get_catalog, get_dispatch_engine
from gateway.errors import InvalidRequestError, UnknownEndpointError
from gateway.routing.access_control import AccessControl, Principal
from gateway.routing.dispatcher import DispatchEngine
from gateway.schemas.chat import ChatCompletionRequest
from gateway.schemas.model import OpenAIModel, OpenAIModelList

router = APIRouter(prefix="/v1", tags=["proxy"])

_PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]


@router.get("/models", response_model=OpenAIModelList)
def list_models(
    principal: Principal = Depends(require_principal),
    access: AccessControl = Depends(get_access_control),
    catalog: ModelCatalog = Depends(get_catalog),
) -> OpenAIModelList:
    """列出当前调用方可见的规范模型及其别名。"""
    visibility = access.model_visibility(principal)
    created = int(time.time())
    data: list[OpenAIModel] = []
    for model in catalog.list_all():
        if not visibility.allows(model.id):
            continue
        for model_id in (model.id, *model.aliases):
            data.append(OpenAIModel(id=model_id, created=created, owned_by=model.owned_by))
    return OpenAIModelList(data=data)


async def _read_payload(request: Request) -> dict[str, Any]:
    try:
        payload = json.loads(await request.body())
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError("Request body must be valid JSON") from None
    if not isinstance(payload, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    try:
        ChatCompletionRequest.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "body"
        raise InvalidRequestError(f"Invalid request: `{location}` {first.get('msg', '')}") from None
    return payload


@router.post("/chat/completions")
async def chat_completions(
    request: Request,
    principal: Principal = Depends(require_principal),
    access: AccessControl = Depends(get_access_control),
    engine: DispatchEngine = Depends(get_dispatch_engine),
):
    payload = await _read_payload(request)
    visibility = access.model_visibility(principal)
    result = await engine.dispatch(principal, visibility, payload)
    if result.stream is not None:
        return StreamingResponse(
            result.stream,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.api_route("", methods=_PROXY_METHODS, include_in_schema=False)
async def proxy_root(request: Request):
    if request.method == "GET":
        return {
            "object": "service",
            "message": "OpenAI-compatible API. Use /v1/models or /v1/chat/completions.",
        }
    raise UnknownEndpointError("Please use a specific endpoint like /v1/chat/completions")


@router.api_route("/{path:path}", methods=_PROXY_METHODS, include_in_schema=False)
async def unknown_endpoint(path: str):
    raise UnknownEndpointError()


__all__ = ["router"]
