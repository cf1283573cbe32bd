"""
原生 /api/* 透传路由：请求体、状态码与响应体原样转发，不做任何翻译。
"""

from __future__ import annotations

import json
from contextlib import AsyncExitStack
from typing import AsyncGenerator

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from ollamagate.adapters.openai_compat.stream_utils import _build_streaming_response
from ollamagate.adapters.upstream import (
    _build_client_response_headers,
    _build_forward_headers,
    _build_upstream_url,
    _forward_buffered,
    _open_stream,
    _request_wants_stream,
)
from ollamagate.core.context import get_gateway_context, record_request
from ollamagate.core.errors import UpstreamTransportError
from ollamagate.observability.request_log import decode_body_for_log
from ollamagate.util.logger import logger

router = APIRouter()

# (path, methods)
NATIVE_ROUTES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("/generate", ("POST",)),
    ("/chat", ("POST",)),
    ("/embed", ("POST",)),
    ("/tags", ("GET",)),
    ("/show", ("GET", "POST")),
    ("/pull", ("POST",)),
    ("/delete", ("DELETE",)),
    ("/copy", ("POST",)),
    ("/push", ("POST",)),
)


def _ndjson_error_line(message: str) -> bytes:
    return (json.dumps({"error": message}, ensure_ascii=False) + "\n").encode("utf-8")


async def _relay_raw_stream(
    upstream: httpx.Response,
    exit_stack: AsyncExitStack,
    *,
    path: str,
) -> AsyncGenerator[bytes, None]:
    chunks = 0
    try:
        async for chunk in upstream.aiter_bytes():
            if not chunk:
                continue
            chunks += 1
            yield chunk
    except httpx.HTTPError as exc:
        detail = (str(exc) or "").strip() or exc.__class__.__name__
        logger.warning("native stream interrupted path=%s error=%s", path, detail)
        yield _ndjson_error_line(f"upstream stream read failed: {detail}")
    finally:
        await exit_stack.aclose()
        logger.debug("native stream closed path=%s chunks=%d", path, chunks)


async def proxy_native(request: Request) -> Response:
    ctx = get_gateway_context(request)
    body = await request.body()
    path = request.url.path
    url = _build_upstream_url(ctx.base_url, path, request.url.query)
    headers = _build_forward_headers(request.headers)
    request_body = decode_body_for_log(body)

    if _request_wants_stream(body):
        exit_stack = AsyncExitStack()
        try:
            upstream = await _open_stream(
                ctx.http_client,
                exit_stack,
                method=request.method,
                url=url,
                headers=headers,
                body=body,
            )
        except UpstreamTransportError as exc:
            record_request(request, request_body=request_body, error=str(exc))
            return JSONResponse(status_code=200, content={"error": str(exc)})

        record_request(request, request_body=request_body)
        return _build_streaming_response(
            _relay_raw_stream(upstream, exit_stack, path=path),
            status_code=upstream.status_code,
            headers=_build_client_response_headers(upstream.headers),
        )

    try:
        upstream = await _forward_buffered(
            ctx.http_client,
            method=request.method,
            url=url,
            headers=headers,
            body=body,
        )
    except UpstreamTransportError as exc:
        record_request(request, request_body=request_body, error=str(exc))
        return JSONResponse(status_code=200, content={"error": str(exc)})

    record_request(request, request_body=request_body, response=decode_body_for_log(upstream.content))
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=_build_client_response_headers(upstream.headers),
    )


for _path, _methods in NATIVE_ROUTES:
    router.add_api_route(_path, proxy_native, methods=list(_methods), include_in_schema=False)
