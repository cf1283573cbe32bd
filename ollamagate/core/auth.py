"""Route-scoped bearer token check."""

from __future__ import annotations

from ollamagate.config.gateway_config import GatewayConfig
from ollamagate.core.errors import AuthError

SCOPE_GENERATE = "generate"
SCOPE_MANAGEMENT = "management"

MISSING_TOKEN_MESSAGE = "missing authorization token"
UNAUTHORIZED_MESSAGE = "unauthorized access"

_RECOGNIZED_PREFIXES = ("/api", "/v1")
_MANAGEMENT_PATHS = frozenset({"/api/pull", "/api/push", "/api/delete", "/api/copy"})
_BEARER_PREFIX = "Bearer "


def _has_prefix(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(f"{prefix}/")


def resolve_scope(path: str, *, management_scope_enabled: bool = True) -> str | None:
    """Return the token scope guarding ``path``, or None for unrecognized routes."""
    normalized = path.rstrip("/") or "/"
    if not any(_has_prefix(normalized, prefix) for prefix in _RECOGNIZED_PREFIXES):
        return None
    if management_scope_enabled and normalized in _MANAGEMENT_PATHS:
        return SCOPE_MANAGEMENT
    return SCOPE_GENERATE


def extract_token(authorization: str | None) -> str:
    token = (authorization or "").strip()
    if token.startswith(_BEARER_PREFIX):
        token = token[len(_BEARER_PREFIX):].strip()
    return token


def scoped_tokens(config: GatewayConfig, scope: str | None) -> tuple[str, ...]:
    if scope == SCOPE_MANAGEMENT:
        return config.model_tokens
    if scope == SCOPE_GENERATE:
        return config.generate_tokens
    return ()


def authorize_request(
    path: str,
    authorization: str | None,
    config: GatewayConfig,
    *,
    management_scope_enabled: bool = True,
) -> str:
    """Return the accepted token or raise AuthError."""
    token = extract_token(authorization)
    if not token:
        raise AuthError(MISSING_TOKEN_MESSAGE)
    scope = resolve_scope(path, management_scope_enabled=management_scope_enabled)
    for allowed in scoped_tokens(config, scope):
        if token == allowed:
            return token
    raise AuthError(UNAUTHORIZED_MESSAGE, token=token)
