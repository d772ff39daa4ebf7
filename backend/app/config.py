from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Literal

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Hearth API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=False, env="DEBUG", description="Enable debug mode")
    dev_mode: bool = Field(
        default=False,
        env="DEV_MODE",
        description="Return email codes and reset links in API responses instead of mailing them",
    )
    client_url: str = Field(
        default="http://localhost:3000",
        env="CLIENT_URL",
        description="Public URL of the web client, used to build password reset links",
    )
    port: int = Field(default=8080, env="PORT", description="Base listening port; workers add their index")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )

    database_url_override: str | None = Field(default=None, validation_alias="DATABASE_URL")
    database_user: str = Field(default="hearth", env="DB_USER")
    database_password: str = Field(default="hearth", env="DB_PASSWORD")
    database_host: str = Field(default="db", env="DB_HOST")
    database_port: int = Field(default=3306, env="DB_PORT")
    database_name: str = Field(default="hearth", env="DB_NAME")

    jwt_secret_key: str = Field(default="changeme", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60 * 24 * 30, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    auth_cache_url: str | None = Field(
        default=None,
        env="AUTH_CACHE_URL",
        description="Redis URL for the user read cache; falls back to REALTIME_REDIS_URL",
    )
    user_cache_ttl_seconds: int = Field(default=60 * 60, env="USER_CACHE_TTL_SECONDS")
    rate_limit_redis_url: str | None = Field(
        default=None,
        env="RATE_LIMIT_REDIS_URL",
        description="Redis URL for rate limit counters; falls back to REALTIME_REDIS_URL",
    )

    realtime_redis_url: str | None = Field(default=None, env="REALTIME_REDIS_URL")
    realtime_namespace: str = Field(default="hearth.realtime", env="REALTIME_NAMESPACE")
    realtime_node_id: str | None = Field(default=None, env="REALTIME_NODE_ID")

    message_max_length: int = Field(default=2000, env="MESSAGE_MAX_LENGTH")
    socket_id_max_length: int = Field(default=255, env="SOCKET_ID_MAX_LENGTH")
    create_message_rate_limit: int = Field(default=20, env="CREATE_MESSAGE_RATE_LIMIT")
    create_message_rate_window_ms: int = Field(default=20_000, env="CREATE_MESSAGE_RATE_WINDOW_MS")
    global_rate_limit: int = Field(default=100, env="GLOBAL_RATE_LIMIT")
    global_rate_window_ms: int = Field(default=30_000, env="GLOBAL_RATE_WINDOW_MS")
    reset_password_rate_limit: int = Field(default=5, env="RESET_PASSWORD_RATE_LIMIT")
    reset_password_rate_window_ms: int = Field(default=60_000, env="RESET_PASSWORD_RATE_WINDOW_MS")
    reset_password_code_ttl_seconds: int = Field(default=60 * 60, env="RESET_PASSWORD_CODE_TTL_SECONDS")

    image_store: Literal["local", "cdn"] = Field(
        default="local",
        env="IMAGE_STORE",
        description="Where attachment images are stored: local disk or the CDN service",
    )
    cdn_url: AnyHttpUrl | None = Field(default=None, env="CDN_URL")
    cdn_secret: str | None = Field(default=None, env="CDN_SECRET")
    cdn_timeout_seconds: float = Field(default=30.0, env="CDN_TIMEOUT_SECONDS")
    media_root: Path = Field(default=Path("uploads"), env="MEDIA_ROOT")
    max_upload_size: int = Field(
        default=20 * 1024 * 1024, env="MAX_UPLOAD_SIZE", description="Maximum upload size in bytes"
    )

    smtp_host: str | None = Field(default=None, env="SMTP_HOST")
    smtp_port: int = Field(default=587, env="SMTP_PORT")
    smtp_user: str | None = Field(default=None, env="SMTP_USER")
    smtp_password: str | None = Field(default=None, env="SMTP_PASSWORD")
    smtp_tls: bool = Field(default=True, env="SMTP_TLS")
    smtp_from_email: str = Field(default="Hearth <no-reply@localhost>", env="SMTP_FROM_EMAIL")

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.resolve()
        return Path(value).resolve()


@lru_cache
def get_settings() -> Settings:
    return Settings()
