"""Runtime settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="OLLAMAGATE_", extra="ignore")

    app_name: str = "ollamagate"
    env: str = "dev"
    log_level: str = "info"
    # DEBUG 下是否打印完整请求正文；False 时只打 method/path/headers + body_size
    log_full_request_body: bool = False
    host: str = "0.0.0.0"
    port: int = 8080

    # auth.generate_tokens / auth.model_tokens / service.base_url
    config_path: str = "config.yaml"

    upstream_timeout_seconds: float = Field(default=600.0, ge=0.0)
    upstream_connect_timeout_seconds: float = Field(default=10.0, gt=0.0)
    upstream_max_connections: int = 100
    upstream_max_keepalive_connections: int = 20

    # False 时 /api 与 /v1 全部使用 generate_tokens
    management_scope_enabled: bool = True
    # 流式结束时是否追加 data: [DONE]
    stream_done_sentinel: bool = False

    enable_request_log_file: bool = True
    request_log_dir: str = "logs"

    enable_cors: bool = True
    cors_allow_origins: str = "*"


settings = Settings()
