"""OpenAI-compatible endpoints backed by the native inference API."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack
from typing import Any, AsyncGenerator, Callable, Mapping

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ollamagate.adapters.openai_compat.mapper import (
    CHAT,
    COMPLETION,
    to_native_chat,
    to_native_embed,
    to_native_generate,
    to_openai_chat,
    to_openai_completion,
    to_openai_embedding,
    to_openai_models,
)
from ollamagate.adapters.openai_compat.stream_utils import _build_streaming_response, translate_stream
from ollamagate.adapters.upstream import (
    _build_client_response_headers,
    _build_forward_headers,
    _build_upstream_url,
    _decode_json_or_text,
    _forward_buffered,
    _open_stream,
)
from ollamagate.core.context import GatewayContext, get_gateway_context, record_request
from ollamagate.core.errors import UpstreamTransportError
from ollamagate.core.models import OpenAIChatRequest, OpenAICompletionRequest, OpenAIEmbeddingRequest
from ollamagate.observability.request_log import decode_body_for_log
from ollamagate.util.logger import logger
from ollamagate.util.masking import mask_headers

router = APIRouter()

_NATIVE_CHAT_PATH = "/api/chat"
_NATIVE_GENERATE_PATH = "/api/generate"
_NATIVE_EMBED_PATH = "/api/embed"
_NATIVE_TAGS_PATH = "/api/tags"
_DEBUG_REQUEST_BODY_MAX_CHARS = 32000


def _log_request_if_debug(request: Request, payload: Any, route: str, *, full_body: bool) -> None:
    """debug 级别时打印请求概要；full_body 为 True 时分段打印完整正文。"""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    try:
        body_str = json.dumps(payload, ensure_ascii=False, indent=2)
    except (TypeError, ValueError):
        body_str = str(payload)
    total_len = len(body_str)
    logger.debug(
        "incoming request method=%s path=%s route=%s headers=%s body_size=%d",
        request.method,
        request.url.path,
        route,
        mask_headers(request.headers),
        total_len,
    )
    if not full_body:
        return
    offset = 0
    segment = 0
    while offset < total_len:
        chunk = body_str[offset : offset + _DEBUG_REQUEST_BODY_MAX_CHARS]
        segment += 1
        logger.debug(
            "incoming request body segment %d (chars %d-%d of %d):\n%s",
            segment,
            offset + 1,
            min(offset + _DEBUG_REQUEST_BODY_MAX_CHARS, total_len),
            total_len,
            chunk,
        )
        offset += _DEBUG_REQUEST_BODY_MAX_CHARS


def _validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    if location:
        return f"invalid request: {location}: {message}"
    return f"invalid request: {message}"


def _error_response(request: Request, message: str, request_body: Any = None) -> JSONResponse:
    record_request(request, request_body=request_body, error=message)
    return JSONResponse(status_code=200, content={"error": message})


def _translated_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {key: value for key, value in _build_client_response_headers(headers).items() if key.lower() != "content-type"}


def _upstream_error_message(content: bytes, status_code: int) -> str:
    upstream_body = _decode_json_or_text(content)
    if isinstance(upstream_body, dict):
        upstream_error = upstream_body.get("error")
        if isinstance(upstream_error, str) and upstream_error:
            return upstream_error
    return f"upstream returned status {status_code}"


def _native_body(native_request: BaseModel) -> bytes:
    return json.dumps(native_request.model_dump(exclude_none=True), ensure_ascii=False).encode("utf-8")


async def _translated_stream(
    upstream: httpx.Response,
    exit_stack: AsyncExitStack,
    *,
    kind: str,
    model: str,
    done_sentinel: bool,
) -> AsyncGenerator[bytes, None]:
    try:
        async for frame in translate_stream(upstream.aiter_lines(), kind=kind, model=model, done_sentinel=done_sentinel):
            yield frame
    finally:
        # 客户端断开时同样会走到这里，释放上游连接
        await exit_stack.aclose()
        logger.debug("translated stream closed kind=%s model=%s", kind, model)


async def _execute_buffered(
    request: Request,
    ctx: GatewayContext,
    *,
    method: str,
    native_path: str,
    native_body: bytes | None,
    request_body: Any,
    translate: Callable[[dict[str, Any]], BaseModel],
) -> JSONResponse:
    url = _build_upstream_url(ctx.base_url, native_path)
    try:
        upstream = await _forward_buffered(
            ctx.http_client,
            method=method,
            url=url,
            headers=_build_forward_headers(request.headers),
            body=native_body,
        )
    except UpstreamTransportError as exc:
        return _error_response(request, str(exc), request_body)

    upstream_body = _decode_json_or_text(upstream.content)
    if not isinstance(upstream_body, dict):
        logger.warning("upstream returned non-json body path=%s status=%s", native_path, upstream.status_code)
        detail = upstream_body.strip() if isinstance(upstream_body, str) else ""
        return _error_response(request, detail or f"upstream returned status {upstream.status_code}", request_body)

    upstream_error = upstream_body.get("error")
    if isinstance(upstream_error, str) and upstream_error:
        logger.info("upstream error relayed path=%s status=%s error=%s", native_path, upstream.status_code, upstream_error)
        return _error_response(request, upstream_error, request_body)

    translated = translate(upstream_body).model_dump()
    record_request(request, request_body=request_body, response=translated)
    return JSONResponse(status_code=200, content=translated, headers=_translated_headers(upstream.headers))


async def _execute_stream(
    request: Request,
    ctx: GatewayContext,
    *,
    kind: str,
    model: str,
    native_path: str,
    native_body: bytes,
    request_body: Any,
):
    url = _build_upstream_url(ctx.base_url, native_path)
    exit_stack = AsyncExitStack()
    try:
        upstream = await _open_stream(
            ctx.http_client,
            exit_stack,
            method="POST",
            url=url,
            headers=_build_forward_headers(request.headers),
            body=native_body,
        )
    except UpstreamTransportError as exc:
        return _error_response(request, str(exc), request_body)

    if upstream.status_code >= 400:
        # 错误响应不是 NDJSON，读完后按非流式方式回错
        try:
            await upstream.aread()
        except httpx.HTTPError as exc:
            detail = (str(exc) or "").strip() or exc.__class__.__name__
            return _error_response(request, f"upstream unreachable: {detail}", request_body)
        finally:
            await exit_stack.aclose()
        message = _upstream_error_message(upstream.content, upstream.status_code)
        logger.warning("upstream stream rejected path=%s status=%s error=%s", native_path, upstream.status_code, message)
        return _error_response(request, message, request_body)

    record_request(request, request_body=request_body)
    return _build_streaming_response(
        _translated_stream(
            upstream,
            exit_stack,
            kind=kind,
            model=model,
            done_sentinel=ctx.settings.stream_done_sentinel,
        ),
        headers=_translated_headers(upstream.headers),
    )


@router.post("/chat/completions")
async def chat_completions(request: Request):
    ctx = get_gateway_context(request)
    body = await request.body()
    request_body = decode_body_for_log(body)
    _log_request_if_debug(request, request_body, "chat", full_body=ctx.settings.log_full_request_body)
    try:
        req = OpenAIChatRequest.model_validate_json(body or b"{}")
    except ValidationError as exc:
        return _error_response(request, _validation_message(exc), request_body)

    native_request = to_native_chat(req)
    if req.stream:
        return await _execute_stream(
            request,
            ctx,
            kind=CHAT,
            model=req.model,
            native_path=_NATIVE_CHAT_PATH,
            native_body=_native_body(native_request),
            request_body=request_body,
        )
    return await _execute_buffered(
        request,
        ctx,
        method="POST",
        native_path=_NATIVE_CHAT_PATH,
        native_body=_native_body(native_request),
        request_body=request_body,
        translate=lambda native: to_openai_chat(native, req.model),
    )


@router.post("/completions")
async def completions(request: Request):
    ctx = get_gateway_context(request)
    body = await request.body()
    request_body = decode_body_for_log(body)
    _log_request_if_debug(request, request_body, "completion", full_body=ctx.settings.log_full_request_body)
    try:
        req = OpenAICompletionRequest.model_validate_json(body or b"{}")
    except ValidationError as exc:
        return _error_response(request, _validation_message(exc), request_body)

    native_request = to_native_generate(req)
    if req.stream:
        return await _execute_stream(
            request,
            ctx,
            kind=COMPLETION,
            model=req.model,
            native_path=_NATIVE_GENERATE_PATH,
            native_body=_native_body(native_request),
            request_body=request_body,
        )
    return await _execute_buffered(
        request,
        ctx,
        method="POST",
        native_path=_NATIVE_GENERATE_PATH,
        native_body=_native_body(native_request),
        request_body=request_body,
        translate=lambda native: to_openai_completion(native, req.model),
    )


@router.post("/embeddings")
async def embeddings(request: Request):
    ctx = get_gateway_context(request)
    body = await request.body()
    request_body = decode_body_for_log(body)
    _log_request_if_debug(request, request_body, "embedding", full_body=ctx.settings.log_full_request_body)
    try:
        req = OpenAIEmbeddingRequest.model_validate_json(body or b"{}")
    except ValidationError as exc:
        return _error_response(request, _validation_message(exc), request_body)

    return await _execute_buffered(
        request,
        ctx,
        method="POST",
        native_path=_NATIVE_EMBED_PATH,
        native_body=_native_body(to_native_embed(req)),
        request_body=request_body,
        translate=lambda native: to_openai_embedding(native, req.model),
    )


@router.get("/models")
async def list_models(request: Request):
    ctx = get_gateway_context(request)
    return await _execute_buffered(
        request,
        ctx,
        method="GET",
        native_path=_NATIVE_TAGS_PATH,
        native_body=None,
        request_body=None,
        translate=to_openai_models,
    )
