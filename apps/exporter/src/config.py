from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Load apps/exporter/.env and accept env keys in any case
    _env_file = Path(__file__).resolve().parent.parent / ".env"
    model_config = SettingsConfigDict(env_file=str(_env_file), extra="ignore", case_sensitive=False)

    app_name: str = "Daikin Cloud Exporter"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    prometheus_port: int = Field(default=3001, ge=1, le=65535, description="Port serving /metrics and /health")

    # Polling and cache
    poller_enabled: bool = True
    update_interval: int = Field(
        default=30,
        ge=1,
        description="Seconds between update cycles; also the validity window of the cache file.",
    )
    cache_file_path: str = Field(
        default="./daikin-cache.json",
        validate_default=True,
        description="Where the last device snapshot is stored. Relative paths resolve against the working directory.",
    )
    shutdown_grace_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="How long shutdown waits for an in-flight update cycle.",
    )
    collect_runtime_metrics: bool = Field(
        default=True,
        description="Expose process/platform/gc collectors next to the daikin_* series.",
    )

    # Onecta cloud (OIDC)
    oidc_client_id: str | None = None
    oidc_client_secret: str | None = None
    token_file_path: str = Field(
        default="./.daikin-controller-cloud-tokenset",
        validate_default=True,
        description="JSON token set (access_token, refresh_token, expires_at) provisioned by the authorization flow.",
    )
    onecta_api_base_url: str = Field(default="https://api.onecta.daikineurope.com")
    onecta_idp_base_url: str = Field(default="https://idp.onecta.daikineurope.com")
    request_timeout: float = Field(default=15.0, ge=1.0, description="Timeout in seconds for Onecta HTTP calls")

    @field_validator("cache_file_path", "token_file_path", mode="after")
    @classmethod
    def resolve_path(cls, v: str) -> str:
        return str(Path(v).expanduser().resolve())

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper() or "INFO"
        return v

settings = Settings()
