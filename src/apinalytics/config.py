"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into strongly-typed Pydantic models.
- Validating required fields and providing actionable error messages.
"""

import os
from typing import TypeVar

import dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

_T = TypeVar("_T", int, float)


def _get_required_env(name: str) -> str:
    """Read a required env var or raise a helpful error."""
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"{name} is required. Please set it in your .env file.")
    if value.startswith("your_") and value.endswith("_here"):
        raise ValueError(f"{name} is required. Please replace the placeholder value in your .env file.")
    return value


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


class ApinalyticsConfig(BaseModel):
    """Credentials, destination and batching knobs for a `Sender`."""

    application_id: str = Field(..., description="Identifies the application generating the events")
    write_key: str = Field(default="", description="Write key sent with every batch (optional)")
    url: str = Field(..., description="Event endpoint of the Apinalytics service")

    # Optional tuning knobs (see env_example.env)
    queue_capacity: int = Field(default=100, description="Events buffered before producers block")
    send_threshold: int = Field(default=90, description="Batch size that triggers a send mid-drain")
    timeout: float = Field(default=10.0, description="HTTP timeout per batch (seconds)")

    @field_validator("application_id")
    def validate_application_id(cls, v: str) -> str:
        """Validate application id is set (not empty/placeholder)."""
        if not v or v == "your_application_id_here":
            raise ValueError("APINALYTICS_APPLICATION_ID is required. Please set it in your .env file.")
        return v

    @field_validator("url")
    def validate_url(cls, v: str) -> str:
        """Validate the event endpoint is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"APINALYTICS_URL must start with http:// or https://. Got: {v!r}")
        return v

    @field_validator("timeout")
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"APINALYTICS_TIMEOUT must be > 0. Got: {v}")
        return v

    @model_validator(mode="after")
    def validate_batching(self) -> "ApinalyticsConfig":
        """Keep the send threshold below the queue capacity."""
        if self.queue_capacity <= 0:
            raise ValueError(f"APINALYTICS_QUEUE_CAPACITY must be > 0. Got: {self.queue_capacity}")
        if not 0 < self.send_threshold < self.queue_capacity:
            raise ValueError(
                "APINALYTICS_SEND_THRESHOLD must be > 0 and below APINALYTICS_QUEUE_CAPACITY "
                f"({self.queue_capacity}). Got: {self.send_threshold}"
            )
        return self


class Config(BaseModel):
    """Top-level application configuration."""

    apinalytics: ApinalyticsConfig = Field(..., description="Apinalytics configuration")
    log_level: str = Field(default="INFO", description="Log level for the demo entrypoint")


def load_config() -> Config:
    """Load application configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when required configuration is
      missing or still contains placeholder values.
    """
    dotenv.load_dotenv()

    apinalytics = ApinalyticsConfig(
        application_id=_get_required_env("APINALYTICS_APPLICATION_ID"),
        write_key=os.getenv("APINALYTICS_WRITE_KEY", "").strip(),
        url=_get_required_env("APINALYTICS_URL"),
        queue_capacity=_get_env_number("APINALYTICS_QUEUE_CAPACITY", 100, int),
        send_threshold=_get_env_number("APINALYTICS_SEND_THRESHOLD", 90, int),
        timeout=_get_env_number("APINALYTICS_TIMEOUT", 10.0, float),
    )
    log_level = os.getenv("APINALYTICS_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    return Config(apinalytics=apinalytics, log_level=log_level)
