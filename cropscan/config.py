from __future__ import annotations

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    api_key: str = Field("test-api-key", alias="API_KEY")
    trusted_proxies: list[str] = Field(
        default_factory=lambda: ["127.0.0.1", "testclient"]
    )
    rate_limit_ip_per_min: int = Field(30, alias="RATE_LIMIT_IP_PER_MIN")
    rate_limit_user_per_min: int = Field(120, alias="RATE_LIMIT_USER_PER_MIN")

    database_url: str = Field("sqlite:////tmp/cropscan.db", alias="DATABASE_URL")
    db_create_all: bool = Field(False, alias="DB_CREATE_ALL")

    redis_url: str = Field("redis://localhost:6379", alias="REDIS_URL")

    openai_api_key: str | None = Field(None, alias="OPENAI_API_KEY")
    openai_model: str = Field("gpt-4o-mini", alias="OPENAI_MODEL")
    openai_timeout_seconds: float = Field(30.0, alias="OPENAI_TIMEOUT_SECONDS")

    max_upload_bytes: int = Field(MAX_UPLOAD_BYTES, alias="MAX_UPLOAD_BYTES")
    history_limit: int = Field(50, alias="HISTORY_LIMIT")

    blob_backend: str = Field(
        "local",
        alias="BLOB_BACKEND",
        description="Where diagnostic images are stored: local, s3 or memory",
    )
    upload_dir: str = Field("public/uploads/diagnostics", alias="UPLOAD_DIR")
    upload_url_prefix: str = Field(
        "/uploads/diagnostics", alias="UPLOAD_URL_PREFIX"
    )

    s3_bucket: str = "cropscan"
    s3_endpoint: str | None = None
    s3_region: str = "us-east-1"
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_public_url: str | None = None

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    model_config = ConfigDict(
        extra="ignore",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )
