from contextlib import AsyncExitStack

import httpx
import pytest

from ollamagate.adapters import upstream
from ollamagate.config.settings import Settings
from ollamagate.core.errors import UpstreamTransportError


def test_build_upstream_url_strips_trailing_slash_and_keeps_query():
    assert upstream._build_upstream_url("http://ollama:11434/", "/api/tags") == "http://ollama:11434/api/tags"
    assert upstream._build_upstream_url("http://ollama:11434", "api/show", "name=x") == "http://ollama:11434/api/show?name=x"


def test_forward_headers_drop_host_length_and_hop_by_hop():
    headers = upstream._build_forward_headers(
        {
            "Host": "gateway:8080",
            "Content-Length": "12",
            "Connection": "keep-alive",
            "Transfer-Encoding": "chunked",
            "content-type": "text/plain",
            "Authorization": "Bearer t1",
            "X-Request-Id": "abc",
        }
    )
    assert headers == {
        "Authorization": "Bearer t1",
        "X-Request-Id": "abc",
        "Content-Type": "application/json",
    }


def test_client_response_headers_drop_encoding_and_length():
    headers = upstream._build_client_response_headers(
        {"content-length": "10", "content-encoding": "gzip", "content-type": "application/json", "x-upstream": "1"}
    )
    assert headers == {"content-type": "application/json", "x-upstream": "1"}


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        (b'{"model":"m","stream":true}', True),
        (b'{"model":"m","stream":false}', False),
        (b'{"model":"m"}', False),
        (b'{"stream":"true"}', False),
        (b"[true]", False),
        (b"not json", False),
        (b"", False),
    ],
)
def test_request_wants_stream(body, expected):
    assert upstream._request_wants_stream(body) is expected


def test_http_client_timeout_zero_disables_read_timeout():
    timeout = upstream._upstream_http_timeout(Settings(upstream_timeout_seconds=0))
    assert timeout.read is None
    assert timeout.connect == 10.0


@pytest.mark.asyncio
async def test_forward_buffered_wraps_transport_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(UpstreamTransportError) as exc_info:
            await upstream._forward_buffered(
                client,
                method="POST",
                url="http://ollama.test/api/chat",
                headers={},
                body=b"{}",
            )

    assert str(exc_info.value) == "upstream unreachable: connection refused"
    assert exc_info.value.url == "http://ollama.test/api/chat"


@pytest.mark.asyncio
async def test_open_stream_keeps_body_unread_until_consumed():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b'{"response":"a"}\n{"response":"b","done":true}\n')

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        exit_stack = AsyncExitStack()
        response = await upstream._open_stream(
            client,
            exit_stack,
            method="POST",
            url="http://ollama.test/api/generate",
            headers={},
            body=b'{"stream":true}',
        )
        lines = [line async for line in response.aiter_lines()]
        await exit_stack.aclose()

    assert lines == ['{"response":"a"}', '{"response":"b","done":true}']
