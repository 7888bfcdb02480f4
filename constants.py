from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FRONTEND_URL = "https://serene-embrace-production.up.railway.app"
DEFAULT_PORT = 5000
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024  # 10mb, same as the JSON/urlencoded parsers

UPLOADS_PREFIX = "/uploads"
WS_PATH = "/ws"

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]
ALLOWED_HEADERS = ["Content-Type", "Authorization", "X-Requested-With"]
EXPOSED_HEADERS = ["Content-Range", "X-Content-Range"]


class Settings(BaseSettings):
    """Process configuration, read once from the environment (and .env) at startup."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    frontend_url: str = Field(default=DEFAULT_FRONTEND_URL, validation_alias="FRONTEND_URL")
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, validation_alias="PORT")
    # NODE_ENV wins when both are set
    environment: str = Field(default="development", validation_alias=AliasChoices("NODE_ENV", "ENVIRONMENT"))
    upload_dir: str = Field(default="uploads", validation_alias="UPLOAD_DIR")
    max_body_bytes: int = Field(default=DEFAULT_MAX_BODY_BYTES, gt=0, validation_alias="MAX_BODY_BYTES")
    redis_url: Optional[str] = Field(default=None, validation_alias="REDIS_URL")
    publish_timeout: float = Field(default=5.0, gt=0, validation_alias="PUBLISH_TIMEOUT")
    ws_ping_interval: float = Field(default=20.0, gt=0, validation_alias="WS_PING_INTERVAL")
    ws_ping_timeout: float = Field(default=20.0, gt=0, validation_alias="WS_PING_TIMEOUT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, validation_alias="LOG_FILE")

    @field_validator("frontend_url")
    @classmethod
    def _strip_frontend_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("FRONTEND_URL must not be empty")
        return value

    @field_validator("redis_url", "log_file")
    @classmethod
    def _blank_is_unset(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


def load_settings(env_file: Optional[str] = ".env") -> Settings:
    """Build Settings from the environment and an optional .env file.

    Raises pydantic.ValidationError when a variable is present but invalid
    (e.g. a non-numeric PORT), so misconfiguration fails at startup.
    """
    return Settings(_env_file=env_file)
