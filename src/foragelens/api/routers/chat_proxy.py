"""Forward chat-completion requests to the upstream model endpoint.

Callers that send no bearer token get the server's configured key, so browser
clients never need to hold the upstream key themselves.
"""

import json
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from foragelens.api.dependencies import get_upstream_transport
from foragelens.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()

PROXY_TIMEOUT = httpx.Timeout(connect=10.0, read=120.0, write=30.0, pool=10.0)


def _resolve_api_key(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):] or None
    return settings.llm_api_key


async def _close(response: httpx.Response, client: httpx.AsyncClient) -> None:
    await response.aclose()
    await client.aclose()


def _proxy_error(error: httpx.TransportError) -> JSONResponse:
    logger.error(f"Upstream proxy error: {error!r}")
    return JSONResponse(status_code=502, content={"error": "Proxy error", "details": str(error)})


@router.post("/chat")
async def chat(
    request: Request,
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_upstream_transport),
):
    api_key = _resolve_api_key(request)
    if not api_key:
        return JSONResponse(status_code=401, content={"error": "No API key configured"})

    try:
        body = await request.json()
    except json.JSONDecodeError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})
    if not isinstance(body, dict):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    client = httpx.AsyncClient(transport=transport, timeout=PROXY_TIMEOUT)
    upstream_request = client.build_request(
        "POST",
        settings.upstream_endpoint,
        json=body,
        headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
    )
    try:
        upstream = await client.send(upstream_request, stream=True)
    except httpx.TransportError as e:
        await client.aclose()
        return _proxy_error(e)

    if body.get("stream"):
        return StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            background=BackgroundTask(_close, upstream, client),
        )

    try:
        content = await upstream.aread()
    except httpx.TransportError as e:
        return _proxy_error(e)
    finally:
        await _close(upstream, client)
    return Response(content=content, status_code=upstream.status_code, media_type="application/json")
