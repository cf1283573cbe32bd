import httpx
import pytest

from ollamagate.config.gateway_config import GatewayConfig
from ollamagate.config.settings import Settings
from ollamagate.core import gateway
from ollamagate.core.context import GatewayContext
from ollamagate.core.errors import ConfigError
from ollamagate.observability.request_log import RequestLogSink


def _unexpected(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected upstream call {request.url}")


def _make_context(handler=_unexpected, **settings_overrides) -> GatewayContext:
    return GatewayContext(
        config=GatewayConfig(generate_tokens=("gen-token",)),
        settings=Settings(enable_request_log_file=False, **settings_overrides),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        request_log=RequestLogSink(None),
    )


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


@pytest.mark.asyncio
async def test_health_skips_token_check():
    async with _client(gateway.create_app(_make_context())) as client:
        resp = await client.get("/health")
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_rejections_are_in_body_with_status_200():
    async with _client(gateway.create_app(_make_context())) as client:
        missing = await client.post("/api/generate", json={"model": "m"})
        wrong = await client.post("/api/generate", json={"model": "m"}, headers={"Authorization": "Bearer nope"})
        unknown = await client.get("/metrics", headers={"Authorization": "Bearer gen-token"})

    assert missing.status_code == 200
    assert missing.json() == {"error": "missing authorization token"}
    assert wrong.json() == {"error": "unauthorized access"}
    assert unknown.json() == {"error": "unauthorized access"}


@pytest.mark.asyncio
async def test_cors_preflight_skips_token_check():
    async with _client(gateway.create_app(_make_context())) as client:
        resp = await client.options(
            "/v1/chat/completions",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "authorization,content-type",
            },
        )
    assert resp.status_code == 200
    assert "access-control-allow-origin" in resp.headers


@pytest.mark.asyncio
async def test_unhandled_exception_becomes_json_error():
    app = gateway.create_app(_make_context())

    async def explode():
        raise RuntimeError("boom")

    app.add_api_route("/v1/explode", explode, methods=["GET"])

    async with _client(app) as client:
        resp = await client.get("/v1/explode", headers={"Authorization": "Bearer gen-token"})

    assert resp.status_code == 200
    assert resp.json() == {"error": "internal server error"}


def test_build_gateway_context_loads_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("auth:\n  generate_tokens: [a]\nservice:\n  base_url: http://gpu-box:11434\n", encoding="utf-8")

    ctx = gateway.build_gateway_context(Settings(config_path=str(path), enable_request_log_file=False))

    assert ctx.base_url == "http://gpu-box:11434"
    assert ctx.config.generate_tokens == ("a",)
    assert ctx.request_log.log_dir is None


def test_build_gateway_context_fails_on_missing_config(tmp_path):
    with pytest.raises(ConfigError):
        gateway.build_gateway_context(Settings(config_path=str(tmp_path / "missing.yaml")))
