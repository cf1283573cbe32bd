"""
流式 SSE 帧构建与 NDJSON -> OpenAI chunk 翻译。从 router 拆出，便于维护与单测。
"""

from __future__ import annotations

import json
from typing import Any, AsyncGenerator, AsyncIterable, AsyncIterator, Mapping

import httpx
from fastapi.responses import StreamingResponse

from ollamagate.adapters.openai_compat.mapper import to_openai_chunk
from ollamagate.util.logger import logger

STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _sse_event(event: str, data: str) -> bytes:
    lines = "\n".join(f"data: {part}" for part in data.split("\n"))
    return f"event: {event}\n{lines}\n\n".encode("utf-8")


def _stream_message_sse_chunk(payload: dict[str, Any]) -> bytes:
    return _sse_event("message", json.dumps(payload, ensure_ascii=False))


def _stream_error_sse_chunk(message: str) -> bytes:
    detail = (message or "upstream_error").strip() or "upstream_error"
    return _sse_event("error", json.dumps({"error": detail}, ensure_ascii=False))


def _stream_done_sse_chunk() -> bytes:
    return b"data: [DONE]\n\n"


def _parse_stream_line(line: str) -> dict[str, Any] | None:
    stripped = line.strip()
    if not stripped:
        return None
    try:
        event = json.loads(stripped)
    except json.JSONDecodeError:
        logger.debug("stream line skipped: invalid json size=%d", len(stripped))
        return None
    if not isinstance(event, dict):
        logger.debug("stream line skipped: not an object")
        return None
    return event


async def translate_stream(
    lines: AsyncIterator[str] | AsyncIterable[str],
    *,
    kind: str,
    model: str,
    done_sentinel: bool = False,
) -> AsyncGenerator[bytes, None]:
    """Translate native NDJSON lines into OpenAI chunk SSE frames.

    One frame per accepted line, in arrival order. Stops after the first event
    with ``done: true``, at end of input, or after reporting an upstream error.
    """
    saw_done = False
    try:
        async for line in lines:
            event = _parse_stream_line(line)
            if event is None:
                continue

            upstream_error = event.get("error")
            if isinstance(upstream_error, str) and upstream_error:
                logger.warning("upstream stream reported error kind=%s error=%s", kind, upstream_error)
                yield _stream_error_sse_chunk(upstream_error)
                return

            chunk = to_openai_chunk(kind, event, model)
            yield _stream_message_sse_chunk(chunk.model_dump())

            if event.get("done") is True:
                saw_done = True
                break
    except httpx.HTTPError as exc:
        detail = (str(exc) or "").strip() or exc.__class__.__name__
        logger.warning("upstream stream interrupted kind=%s error=%s", kind, detail)
        yield _stream_error_sse_chunk(f"upstream stream read failed: {detail}")
        return

    if not saw_done:
        logger.debug("upstream stream closed without done kind=%s model=%s", kind, model)
    if done_sentinel:
        yield _stream_done_sse_chunk()


def _build_streaming_response(
    generator: AsyncIterable[bytes],
    *,
    status_code: int = 200,
    headers: Mapping[str, str] | None = None,
) -> StreamingResponse:
    merged: dict[str, str] = {}
    for key, value in (headers or {}).items():
        if key.lower() in {name.lower() for name in STREAM_HEADERS}:
            continue
        merged[key] = value
    merged.update(STREAM_HEADERS)
    return StreamingResponse(
        generator,
        status_code=status_code,
        media_type="text/event-stream",
        headers=merged,
    )
