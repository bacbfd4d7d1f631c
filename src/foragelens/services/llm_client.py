import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Callable, Optional

import httpx
from pydantic import ValidationError

from foragelens.config import settings
from foragelens.errors import LLMApiError, LLMAuthError, LLMNetworkError, LLMParseError
from foragelens.models.schemas import (
    Choice,
    LLMRequest,
    LLMResponse,
    ResponseMessage,
    TokenUsage,
)
from foragelens.services.sse import iter_sse_data

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
IMAGE_TIMEOUT = 60.0

ChunkCallback = Callable[[str], None]


@dataclass(frozen=True)
class StreamEvent:
    delta: str = ""
    usage: Optional[TokenUsage] = None


def timeout_for_request(request: LLMRequest, timeout: Optional[float] = None) -> float:
    if timeout is not None:
        return timeout
    return IMAGE_TIMEOUT if request.has_image() else DEFAULT_TIMEOUT


def build_headers(api_key: Optional[str]) -> dict:
    headers = {"Content-Type": "application/json"}
    # Without a key the header is left out so an upstream proxy can add its own.
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def build_payload(request: LLMRequest, stream: bool = False) -> dict:
    payload = request.model_dump(mode="json", exclude_none=True)
    if stream:
        payload["stream"] = True
    return payload


def error_from_response(response: httpx.Response) -> LLMApiError:
    status = response.status_code
    message = f"LLM API error: {status} {response.reason_phrase}"
    if status in (401, 403):
        return LLMAuthError(message, status=status)
    return LLMApiError(message, status=status, retryable=status == 429 or status >= 500)


@asynccontextmanager
async def _client_scope(client: Optional[httpx.AsyncClient]):
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient() as owned:
        yield owned


async def call_llm(
    request: LLMRequest,
    api_key: Optional[str],
    endpoint: Optional[str] = None,
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> LLMResponse:
    url = endpoint or settings.llm_endpoint
    start_time = time.time()

    async with _client_scope(client) as http:
        try:
            response = await http.post(
                url,
                json=build_payload(request),
                headers=build_headers(api_key),
                timeout=timeout_for_request(request, timeout),
            )
        except httpx.TransportError as e:
            logger.error(f"LLM network error calling {url}: {e!r}")
            raise LLMNetworkError(f"Network error: {e}") from e

    if response.is_error:
        error = error_from_response(response)
        logger.error(f"{error.message} (retryable={error.retryable})")
        raise error

    try:
        result = LLMResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        logger.error(f"Unreadable LLM response body: {e}")
        raise LLMParseError("LLM response body could not be parsed") from e

    logger.info(
        f"LLM call {request.model} finished in {time.time() - start_time:.2f}s "
        f"({result.usage.total_tokens} tokens)"
    )
    return result


def _delta_content(payload: dict) -> str:
    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else ""


def _usage(payload: dict) -> Optional[TokenUsage]:
    raw = payload.get("usage")
    if raw is None:
        return None
    try:
        return TokenUsage.model_validate(raw)
    except ValidationError:
        logger.warning(f"Ignoring malformed usage object in stream: {raw!r}")
        return None


async def iter_stream_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamEvent]:
    """Decode SSE frames into content deltas and usage objects."""
    frames = 0
    parsed = 0
    async for data in iter_sse_data(chunks):
        frames += 1
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Skipping unparseable stream frame: {data[:80]!r}")
            continue
        if not isinstance(payload, dict):
            logger.warning(f"Skipping non-object stream frame: {data[:80]!r}")
            continue
        parsed += 1
        yield StreamEvent(delta=_delta_content(payload), usage=_usage(payload))

    if frames and not parsed:
        raise LLMParseError(f"None of the {frames} stream frames could be parsed")


async def collect_stream(events: AsyncIterable[StreamEvent], on_chunk: ChunkCallback) -> LLMResponse:
    parts: list[str] = []
    usage: Optional[TokenUsage] = None
    async for event in events:
        if event.delta:
            on_chunk(event.delta)
            parts.append(event.delta)
        if event.usage is not None:
            usage = event.usage

    return LLMResponse(
        id="",
        choices=[Choice(message=ResponseMessage(role="assistant", content="".join(parts)), finish_reason="stop")],
        usage=usage or TokenUsage(),
    )


async def call_llm_stream(
    request: LLMRequest,
    api_key: Optional[str],
    on_chunk: ChunkCallback,
    endpoint: Optional[str] = None,
    timeout: Optional[float] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> LLMResponse:
    url = endpoint or settings.llm_endpoint
    start_time = time.time()

    async with _client_scope(client) as http:
        try:
            async with http.stream(
                "POST",
                url,
                json=build_payload(request, stream=True),
                headers=build_headers(api_key),
                timeout=timeout_for_request(request, timeout),
            ) as response:
                if response.is_error:
                    await response.aread()
                    error = error_from_response(response)
                    logger.error(f"{error.message} (retryable={error.retryable})")
                    raise error
                result = await collect_stream(iter_stream_events(response.aiter_bytes()), on_chunk)
        except httpx.TransportError as e:
            logger.error(f"LLM network error streaming from {url}: {e!r}")
            raise LLMNetworkError(f"Network error: {e}") from e

    logger.info(
        f"LLM stream {request.model} finished in {time.time() - start_time:.2f}s "
        f"({len(result.content)} chars, {result.usage.total_tokens} tokens)"
    )
    return result
