"""Gateway YAML config: token allow-lists and the upstream service address."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ollamagate.core.errors import ConfigError
from ollamagate.util.logger import logger

DEFAULT_BASE_URL = "http://localhost:11434"


class GatewayConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    generate_tokens: tuple[str, ...] = ()
    model_tokens: tuple[str, ...] = ()
    base_url: str = DEFAULT_BASE_URL

    @field_validator("generate_tokens", "model_tokens", mode="before")
    @classmethod
    def _tokens(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple)):
            raise ValueError("token list must be a sequence of strings")
        return tuple(str(item) for item in value if str(item).strip())

    @field_validator("base_url", mode="before")
    @classmethod
    def _base_url(cls, value: Any) -> str:
        candidate = str(value or "").strip().rstrip("/")
        return candidate or DEFAULT_BASE_URL


def parse_gateway_config(data: Any) -> GatewayConfig:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    auth = data.get("auth") or {}
    service = data.get("service") or {}
    if not isinstance(auth, dict) or not isinstance(service, dict):
        raise ConfigError("config sections 'auth' and 'service' must be mappings")
    try:
        return GatewayConfig(
            generate_tokens=auth.get("generate_tokens"),
            model_tokens=auth.get("model_tokens"),
            base_url=service.get("base_url"),
        )
    except ValidationError as exc:
        raise ConfigError(f"invalid gateway config: {exc}") from exc


def load_gateway_config(path: str | Path) -> GatewayConfig:
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config {config_path}: {exc}") from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"cannot parse config {config_path}: {exc}") from exc

    config = parse_gateway_config(data)
    logger.info(
        "gateway config loaded path=%s base_url=%s generate_tokens=%d model_tokens=%d",
        config_path,
        config.base_url,
        len(config.generate_tokens),
        len(config.model_tokens),
    )
    return config
