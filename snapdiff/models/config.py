"""Configuration models for the capture service."""

from __future__ import annotations

import json
import logging
import os
import secrets
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

SECRET_ENV_VAR = "SNAPDIFF_SIGNING_SECRET"


def default_signing_secret() -> str:
    """Read the secret from SNAPDIFF_SIGNING_SECRET, else make a per-process one."""
    secret = os.environ.get(SECRET_ENV_VAR)
    if secret:
        return secret
    logger.warning(
        "%s is not set; using a random signing secret. Artifact links will stop "
        "working when the process restarts.", SECRET_ENV_VAR,
    )
    return secrets.token_hex(32)


class ViewportConfig(BaseModel):
    width: int = 1920
    height: int = 1080


class TimeoutConfig(BaseModel):
    """Per-step budgets in milliseconds. None of them may be disabled."""

    navigation_ms: int = 60000
    settle_ms: int = 3000
    settle_delay_ms: int = 500
    capture_ms: int = 60000

    @field_validator("navigation_ms", "settle_ms", "capture_ms")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeouts must be greater than zero")
        return v

    @field_validator("settle_delay_ms")
    @classmethod
    def delay_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("settle delay cannot be negative")
        return v


class LocatorConfig(BaseModel):
    selector: str
    timeout_ms: int = 15000
    name: str = ""

    @field_validator("timeout_ms")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("locator timeout must be greater than zero")
        return v


class StorageConfig(BaseModel):
    root_dir: str = "./artifacts"
    public_base_url: str = "http://localhost:10000"
    signing_secret: str = Field(default_factory=default_signing_secret)
    url_expires_seconds: int = 3600

    @field_validator("signing_secret", mode="before")
    @classmethod
    def resolve_env_secret(cls, v: str) -> str:
        if isinstance(v, str) and v.startswith("env:"):
            env_var = v[4:]
            resolved = os.environ.get(env_var)
            if resolved is None:
                raise ValueError(f"Environment variable '{env_var}' not set")
            v = resolved
        if not v:
            raise ValueError("signing_secret cannot be empty")
        return v


class ServiceConfig(BaseModel):
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    user_agent: str | None = None
    headless: bool = True

    # Readiness
    navigation_policy: Literal["soft", "strict"] = "soft"
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    locators: list[LocatorConfig] = Field(
        default_factory=lambda: [
            LocatorConfig(selector=".mtc-eyebrow", timeout_ms=30000, name="primary"),
            LocatorConfig(selector="main", timeout_ms=15000, name="secondary"),
        ]
    )
    fallback_to_full_page: bool = True

    # Diff
    diff_threshold: float = 0.1

    # Queue (0 = unbounded)
    max_queue_depth: int = 0

    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("diff_threshold")
    @classmethod
    def threshold_in_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("diff_threshold must be between 0 and 1")
        return v

    @field_validator("max_queue_depth")
    @classmethod
    def depth_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_queue_depth cannot be negative")
        return v

    @model_validator(mode="after")
    def needs_a_locator(self) -> "ServiceConfig":
        if not self.locators and not self.fallback_to_full_page:
            raise ValueError("configure at least one locator or enable fallback_to_full_page")
        return self

    @classmethod
    def load(cls, path: str | Path) -> "ServiceConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
