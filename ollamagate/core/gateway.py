"""FastAPI app entry."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ollamagate.adapters.native.router import router as native_router
from ollamagate.adapters.openai_compat.router import router as openai_router
from ollamagate.adapters.upstream import build_http_client
from ollamagate.config.gateway_config import load_gateway_config
from ollamagate.config.settings import Settings, settings as default_settings
from ollamagate.core.auth import authorize_request
from ollamagate.core.context import GatewayContext
from ollamagate.core.errors import AuthError, ConfigError
from ollamagate.observability.request_log import RequestLogSink, build_entry, decode_body_for_log
from ollamagate.util.logger import logger

_AUTH_EXEMPT_PATHS = frozenset({"/health"})
_INTERNAL_ERROR_MESSAGE = "internal server error"


def build_gateway_context(app_settings: Settings) -> GatewayContext:
    """Load the YAML config and build the shared runtime context. ConfigError is fatal."""
    config = load_gateway_config(app_settings.config_path)
    log_dir = app_settings.request_log_dir if app_settings.enable_request_log_file else None
    return GatewayContext(
        config=config,
        settings=app_settings,
        http_client=build_http_client(app_settings),
        request_log=RequestLogSink(log_dir),
    )


def _cors_origins(raw: str) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


def create_app(context: GatewayContext | None = None, app_settings: Settings | None = None) -> FastAPI:
    app_settings = context.settings if context is not None else (app_settings or default_settings)
    app = FastAPI(title=app_settings.app_name)
    app.state.gateway = context
    app.include_router(native_router, prefix="/api")
    app.include_router(openai_router, prefix="/v1")

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        if request.url.path in _AUTH_EXEMPT_PATHS or request.method.upper() == "OPTIONS":
            return await call_next(request)

        ctx: GatewayContext = request.app.state.gateway
        try:
            token = authorize_request(
                request.url.path,
                request.headers.get("authorization"),
                ctx.config,
                management_scope_enabled=ctx.settings.management_scope_enabled,
            )
        except AuthError as exc:
            body = await request.body()
            logger.warning("auth reject method=%s path=%s reason=%s", request.method, request.url.path, exc.message)
            ctx.request_log.write(
                build_entry(
                    method=request.method,
                    path=request.url.path,
                    token=exc.token,
                    token_valid=False,
                    request_body=decode_body_for_log(body),
                    error=exc.message,
                )
            )
            return JSONResponse(status_code=200, content={"error": exc.message})

        request.state.token = token
        return await call_next(request)

    # 最外层兜底：任何未处理异常都转成 JSON 错误体
    @app.middleware("http")
    async def error_boundary_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception("gateway unhandled exception method=%s path=%s", request.method, request.url.path)
            return JSONResponse(status_code=200, content={"error": _INTERNAL_ERROR_MESSAGE})

    if app_settings.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=_cors_origins(app_settings.cors_allow_origins) or ["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health")
    def health() -> dict:
        logger.info("health check")
        return {"status": "ok"}

    @app.on_event("startup")
    async def startup_gateway_context() -> None:
        if app.state.gateway is not None:
            return
        try:
            app.state.gateway = build_gateway_context(app_settings)
        except ConfigError as exc:
            logger.error("gateway config load failed on startup: %s", exc)
            raise
        logger.info("gateway ready upstream=%s", app.state.gateway.base_url)

    @app.on_event("shutdown")
    async def shutdown_gateway_context() -> None:
        ctx = app.state.gateway
        if ctx is None:
            return
        await ctx.aclose()
        app.state.gateway = None

    return app


app = create_app()
