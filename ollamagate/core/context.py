"""Gateway runtime context shared read-only by every request."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from starlette.requests import Request

from ollamagate.config.gateway_config import GatewayConfig
from ollamagate.config.settings import Settings
from ollamagate.observability.request_log import RequestLogSink, build_entry


@dataclass(frozen=True, slots=True)
class GatewayContext:
    config: GatewayConfig
    settings: Settings
    http_client: httpx.AsyncClient
    request_log: RequestLogSink

    @property
    def base_url(self) -> str:
        return self.config.base_url

    async def aclose(self) -> None:
        await self.http_client.aclose()
        self.request_log.shutdown()


def get_gateway_context(request: Request) -> GatewayContext:
    ctx = getattr(request.app.state, "gateway", None)
    if ctx is None:
        raise RuntimeError("gateway context is not initialized")
    return ctx


def record_request(
    request: Request,
    *,
    request_body: Any = None,
    response: Any = None,
    error: str | None = None,
) -> None:
    """Write the log record of a request that passed the token check."""
    ctx = get_gateway_context(request)
    ctx.request_log.write(
        build_entry(
            method=request.method,
            path=request.url.path,
            token=getattr(request.state, "token", ""),
            token_valid=True,
            request_body=request_body,
            response=response,
            error=error,
        )
    )
