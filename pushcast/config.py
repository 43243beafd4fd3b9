from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

load_dotenv()


class Settings(BaseModel):
    VAPID_SUBJECT: str = Field(default="mailto:example@example.com")
    VAPID_PRIVATE_KEY: Optional[str] = Field(
        default=None, description="base64url raw P-256 key; generated when unset"
    )
    VAPID_TTL: int = Field(default=30)
    DELIVERY_TIMEOUT_SECONDS: float = Field(default=10.0)
    DELIVERY_CONCURRENCY: int = Field(default=64, ge=1)
    BROADCAST_HISTORY: int = Field(default=50, ge=1)
    SHUTDOWN_GRACE_SECONDS: float = Field(default=5.0)
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8080)


def _load_settings(existing: Settings | None = None) -> Settings:
    values: dict[str, Any] = {}
    for name, field in Settings.model_fields.items():
        env_value = os.getenv(name)
        if env_value is None:
            if existing is not None and hasattr(existing, name):
                values[name] = getattr(existing, name)
                continue
            values[name] = field.get_default(call_default_factory=True)
        else:
            values[name] = env_value

    try:
        return Settings(**values)
    except ValidationError as exc:
        invalid = sorted({str(error["loc"][0]) for error in exc.errors() if error.get("loc")})
        raise RuntimeError(
            f"Invalid environment variables: {', '.join(invalid)}"
        ) from exc


settings = _load_settings()


def reload_settings() -> Settings:
    global settings
    fresh = _load_settings(settings)
    settings.__dict__.update(fresh.__dict__)
    return settings
