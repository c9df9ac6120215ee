from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Palaver API", validation_alias="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", validation_alias="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=False, validation_alias="DEBUG", description="Enable debug mode")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL", description="Root logging level")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        validation_alias="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )

    database_user: str = Field(default="palaver", validation_alias="DB_USER")
    database_password: str = Field(default="palaver", validation_alias="DB_PASSWORD")
    database_host: str = Field(default="db", validation_alias="DB_HOST")
    database_port: int = Field(default=3306, validation_alias="DB_PORT")
    database_name: str = Field(default="palaver", validation_alias="DB_NAME")
    database_url_override: str | None = Field(
        default=None,
        validation_alias="DATABASE_URL",
        description="Full SQLAlchemy URL; takes precedence over the DB_* fields",
    )

    jwt_secret_key: str = Field(default="changeme", validation_alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    chat_message_max_length: int = Field(default=2000, validation_alias="CHAT_MESSAGE_MAX_LENGTH")

    websocket_keepalive_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="WEBSOCKET_KEEPALIVE_TIMEOUT_SECONDS",
        description="Idle time after which the server starts pinging a websocket client.",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25.0,
        validation_alias="WEBSOCKET_KEEPALIVE_PING_INTERVAL_SECONDS",
        description="Minimum delay between two keepalive pings on an idle websocket.",
    )
    realtime_outbox_size: int = Field(
        default=256,
        validation_alias="REALTIME_OUTBOX_SIZE",
        description="Maximum number of undelivered events buffered per connection.",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
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

    @field_validator("realtime_outbox_size")
    @classmethod
    def ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
