"""Configuration management for the health monitor."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping, Optional

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


REQUIRED_ENV_VARS: dict[str, str] = {
    "HEALTH_CHECK_URL": "health_check_url",
    "SLACK_WEBHOOK_URL": "webhook_url",
    "DEPLOYMENT_URL": "deployment_url",
}

OPTIONAL_ENV_VARS: dict[str, str] = {
    "ENV": "environment",
    "SERVICE_NAME": "service_name",
    "CHECK_INTERVAL_SECONDS": "check_interval_seconds",
    "RECHECK_DELAY_SECONDS": "recheck_delay_seconds",
    "HEALTH_CHECK_TIMEOUT_SECONDS": "health_check_timeout_seconds",
    "DEPLOYMENT_TIMEOUT_SECONDS": "deployment_timeout_seconds",
    "WEBHOOK_TIMEOUT_SECONDS": "webhook_timeout_seconds",
    "MONITOR_USER_AGENT": "user_agent",
}


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class MonitorConfig(BaseModel):
    """Immutable settings bundle for one monitored endpoint."""

    model_config = ConfigDict(frozen=True)

    # Endpoints
    health_check_url: str = Field(description="Health endpoint polled every interval")
    webhook_url: str = Field(description="Webhook receiving alert messages")
    deployment_url: str = Field(description="URL that triggers a redeployment when called")
    environment: str = Field(default="dev", description="Environment label shown in alerts")
    service_name: str = Field(default="Service", description="Service name shown in alert titles")

    # Timing
    check_interval_seconds: float = Field(default=30.0, gt=0, description="Regular polling interval")
    recheck_delay_seconds: float = Field(default=120.0, ge=0, description="Wait before the post-deployment re-check")
    health_check_timeout_seconds: float = Field(default=10.0, gt=0, description="Health check request timeout")
    deployment_timeout_seconds: float = Field(default=30.0, gt=0, description="Deployment trigger request timeout")
    webhook_timeout_seconds: float = Field(default=15.0, gt=0, description="Webhook POST timeout")

    # Outbound requests
    user_agent: str = Field(default="Health-Monitor/1.0", description="User-Agent header for outbound requests")

    @field_validator("health_check_url", "webhook_url", "deployment_url", "environment", "service_name", "user_agent")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("health_check_url", "webhook_url", "deployment_url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        try:
            url = httpx.URL(value)
        except httpx.InvalidURL as e:
            raise ValueError(f"invalid URL: {e}") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ValueError("must be an absolute http(s) URL")
        return value

    @property
    def environment_label(self) -> str:
        return self.environment.upper()


def _load_yaml_file(path: str | Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MonitorConfig:
    """Load configuration from an optional YAML file and environment variables.

    Environment variables win over the file. Every missing required variable
    is reported at once through ``ConfigurationError.missing``.
    """
    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = env.get("MONITOR_CONFIG")

    config_data: dict[str, Any] = {}

    # Load from file if given
    if config_path:
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Config file not found: {config_path}")
        config_data.update(_load_yaml_file(config_path))

    # Override with environment variables
    for env_name, field_name in {**REQUIRED_ENV_VARS, **OPTIONAL_ENV_VARS}.items():
        value = env.get(env_name)
        if value is not None and str(value).strip():
            config_data[field_name] = str(value).strip()

    missing = [
        env_name
        for env_name, field_name in REQUIRED_ENV_VARS.items()
        if not str(config_data.get(field_name) or "").strip()
    ]
    if missing:
        raise ConfigurationError(
            "Missing required environment variables: " + ", ".join(missing),
            missing=missing,
        )

    return MonitorConfig(**config_data)
