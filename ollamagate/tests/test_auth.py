import pytest

from ollamagate.config.gateway_config import GatewayConfig
from ollamagate.core.auth import (
    MISSING_TOKEN_MESSAGE,
    SCOPE_GENERATE,
    SCOPE_MANAGEMENT,
    UNAUTHORIZED_MESSAGE,
    authorize_request,
    extract_token,
    resolve_scope,
)
from ollamagate.core.errors import AuthError

CONFIG = GatewayConfig(generate_tokens=("gen-a", "gen-b"), model_tokens=("admin",))


def test_extract_token_strips_bearer_prefix():
    assert extract_token("Bearer abc") == "abc"
    assert extract_token("abc") == "abc"
    assert extract_token(None) == ""
    assert extract_token("  ") == ""


def test_resolve_scope_by_route():
    assert resolve_scope("/api/generate") == SCOPE_GENERATE
    assert resolve_scope("/api/tags") == SCOPE_GENERATE
    assert resolve_scope("/v1/chat/completions") == SCOPE_GENERATE
    assert resolve_scope("/api/pull") == SCOPE_MANAGEMENT
    assert resolve_scope("/api/delete/") == SCOPE_MANAGEMENT
    assert resolve_scope("/other/path") is None
    assert resolve_scope("/apis/x") is None


def test_resolve_scope_single_list_variant():
    assert resolve_scope("/api/pull", management_scope_enabled=False) == SCOPE_GENERATE


def test_authorize_accepts_member_of_scope():
    assert authorize_request("/api/chat", "Bearer gen-b", CONFIG) == "gen-b"
    assert authorize_request("/api/copy", "Bearer admin", CONFIG) == "admin"


def test_authorize_missing_token():
    with pytest.raises(AuthError) as exc_info:
        authorize_request("/api/chat", None, CONFIG)
    assert exc_info.value.message == MISSING_TOKEN_MESSAGE
    assert exc_info.value.token == ""


def test_authorize_rejects_token_from_other_scope():
    with pytest.raises(AuthError) as exc_info:
        authorize_request("/api/pull", "Bearer gen-a", CONFIG)
    assert exc_info.value.message == UNAUTHORIZED_MESSAGE
    assert exc_info.value.token == "gen-a"

    with pytest.raises(AuthError):
        authorize_request("/v1/models", "Bearer admin", CONFIG)


def test_authorize_rejects_unrecognized_prefix():
    with pytest.raises(AuthError) as exc_info:
        authorize_request("/metrics", "Bearer gen-a", CONFIG)
    assert exc_info.value.message == UNAUTHORIZED_MESSAGE


def test_authorize_is_exact_match():
    with pytest.raises(AuthError):
        authorize_request("/api/chat", "Bearer gen-", CONFIG)
    with pytest.raises(AuthError):
        authorize_request("/api/chat", "Bearer GEN-A", CONFIG)
