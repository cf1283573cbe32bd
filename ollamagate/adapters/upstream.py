"""
上游地址拼接、请求头转发与 HTTP 调用。native 与 openai_compat 两组路由共用。
"""

from __future__ import annotations

import json
from contextlib import AsyncExitStack
from typing import Any, Mapping

import httpx

from ollamagate.config.settings import Settings
from ollamagate.core.errors import UpstreamTransportError
from ollamagate.util.logger import logger

_HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}


def _upstream_http_limits(settings: Settings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=max(10, int(settings.upstream_max_connections)),
        max_keepalive_connections=max(5, int(settings.upstream_max_keepalive_connections)),
    )


def _upstream_http_timeout(settings: Settings) -> httpx.Timeout:
    # 生成可能持续很久；0 表示不限制读超时
    timeout = float(settings.upstream_timeout_seconds)
    read_timeout = timeout if timeout > 0 else None
    return httpx.Timeout(
        connect=float(settings.upstream_connect_timeout_seconds),
        read=read_timeout,
        write=read_timeout,
        pool=read_timeout,
    )


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=False,
        http2=False,
        timeout=_upstream_http_timeout(settings),
        limits=_upstream_http_limits(settings),
    )


def _build_upstream_url(base_url: str, path: str, query: str = "") -> str:
    route_path = path or "/"
    if not route_path.startswith("/"):
        route_path = f"/{route_path}"
    url = f"{base_url.rstrip('/')}{route_path}"
    if query:
        url = f"{url}?{query}"
    return url


def _build_forward_headers(headers: Mapping[str, str]) -> dict[str, str]:
    excluded = {"host", "content-length", *_HOP_BY_HOP_HEADERS}
    forwarded: dict[str, str] = {}
    for key, value in headers.items():
        lowered = key.lower()
        if lowered in excluded or lowered == "content-type":
            continue
        forwarded[key] = value
    forwarded["Content-Type"] = "application/json"
    return forwarded


def _build_client_response_headers(headers: Mapping[str, str]) -> dict[str, str]:
    excluded = {"content-length", "content-encoding", *_HOP_BY_HOP_HEADERS}
    out: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in excluded:
            continue
        out[key] = value
    return out


def _request_wants_stream(body: bytes) -> bool:
    """Peek ``stream`` in a JSON body without consuming the bytes."""
    if not body:
        return False
    try:
        parsed = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return False
    return isinstance(parsed, dict) and parsed.get("stream") is True


def _decode_json_or_text(body: bytes) -> dict[str, Any] | str:
    text = body.decode("utf-8", errors="replace")
    if not text:
        return ""
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
        return text
    except json.JSONDecodeError:
        return text


def _transport_detail(exc: httpx.HTTPError) -> str:
    return (str(exc) or "").strip() or exc.__class__.__name__


async def _forward_buffered(
    client: httpx.AsyncClient,
    *,
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: bytes | None,
) -> httpx.Response:
    logger.debug("forward start method=%s url=%s body_bytes=%d", method, url, len(body or b""))
    try:
        response = await client.request(method=method, url=url, headers=dict(headers), content=body or None)
    except httpx.HTTPError as exc:
        detail = _transport_detail(exc)
        logger.warning("forward http_error method=%s url=%s error=%s", method, url, detail)
        raise UpstreamTransportError(url, detail) from exc
    logger.debug("forward done url=%s status=%s body_bytes=%d", url, response.status_code, len(response.content))
    return response


async def _open_stream(
    client: httpx.AsyncClient,
    exit_stack: AsyncExitStack,
    *,
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: bytes | None,
) -> httpx.Response:
    """Send the request and return the response with its body still unread.

    The response stays open until ``exit_stack`` is closed.
    """
    logger.debug("forward_stream start method=%s url=%s body_bytes=%d", method, url, len(body or b""))
    try:
        response = await exit_stack.enter_async_context(
            client.stream(method, url, headers=dict(headers), content=body or None)
        )
    except httpx.HTTPError as exc:
        await exit_stack.aclose()
        detail = _transport_detail(exc)
        logger.warning("forward_stream http_error method=%s url=%s error=%s", method, url, detail)
        raise UpstreamTransportError(url, detail) from exc
    logger.debug("forward_stream connected url=%s status=%s", url, response.status_code)
    return response
