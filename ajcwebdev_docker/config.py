# ajcwebdev_docker/config.py
from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field, field_validator

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseModel):
    # Bind address; PORT=0 asks the OS for an ephemeral port
    HOST: str = "0.0.0.0"
    PORT: int = Field(8080, ge=0, le=65535)

    # How long in-flight requests get to finish once shutdown starts
    GRACE_PERIOD_SECONDS: float = Field(5.0, gt=0)

    LOG_LEVEL: str = "INFO"
    BACKLOG: int = Field(128, ge=1)

    # Prometheus exposition on its own port; 0 disables it
    METRICS_PORT: int = Field(0, ge=0, le=65535)

    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        return level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from the environment, ignoring unset or empty variables."""
        env = os.environ if environ is None else environ
        values = {
            name: env[name].strip()
            for name in cls.model_fields
            if env.get(name, "").strip()
        }
        return cls(**values)
