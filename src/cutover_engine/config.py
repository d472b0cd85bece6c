"""Configuration management for the cutover engine."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ExecutionSettings(BaseModel):
    default_timeout_seconds: float = Field(default=1800.0, gt=0)
    dns_propagation_wait_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Propagation wait used for plans created through the orchestrator.",
    )
    dry_run_check_delay_seconds: float = Field(default=0.5, ge=0, le=60)
    dry_run_dns_delay_seconds: float = Field(default=0.3, ge=0, le=60)
    rollback_on_dns_failure: bool = Field(
        default=False,
        description="Roll back applied changes when a DNS step fails.",
    )


class HealthCheckSettings(BaseModel):
    max_response_bytes: int = Field(default=1024 * 1024, ge=1)
    http_timeout_seconds: float = Field(default=30.0, gt=0)
    tcp_timeout_seconds: float = Field(default=10.0, gt=0)
    command_timeout_seconds: float = Field(default=30.0, gt=0)
    command_shell: str = Field(default="/bin/sh")


class DNSSettings(BaseModel):
    default_provider: str = Field(default="manual")

    @field_validator("default_provider")
    @classmethod
    def _normalize_provider(cls, value: str) -> str:
        normalized = value.strip().lower()
        return normalized or "manual"


class Settings(BaseModel):
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    health: HealthCheckSettings = Field(default_factory=HealthCheckSettings)
    dns: DNSSettings = Field(default_factory=DNSSettings)


ENV_KEYS = {
    "log_level": "CUTOVER_LOG_LEVEL",
    "log_file": "CUTOVER_LOG_FILE",
    "default_timeout": "CUTOVER_DEFAULT_TIMEOUT_SECONDS",
    "propagation_wait": "CUTOVER_DNS_PROPAGATION_WAIT_SECONDS",
    "dry_run_check_delay": "CUTOVER_DRY_RUN_CHECK_DELAY_SECONDS",
    "dry_run_dns_delay": "CUTOVER_DRY_RUN_DNS_DELAY_SECONDS",
    "rollback_on_dns_failure": "CUTOVER_ROLLBACK_ON_DNS_FAILURE",
    "max_response_bytes": "CUTOVER_MAX_RESPONSE_BYTES",
    "http_timeout": "CUTOVER_HTTP_TIMEOUT_SECONDS",
    "tcp_timeout": "CUTOVER_TCP_TIMEOUT_SECONDS",
    "command_timeout": "CUTOVER_COMMAND_TIMEOUT_SECONDS",
    "command_shell": "CUTOVER_COMMAND_SHELL",
    "dns_provider": "CUTOVER_DNS_PROVIDER",
}


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "execution": {
            "default_timeout_seconds": _env_float(
                ENV_KEYS["default_timeout"],
                ExecutionSettings().default_timeout_seconds,
            ),
            "dns_propagation_wait_seconds": _env_float(
                ENV_KEYS["propagation_wait"],
                ExecutionSettings().dns_propagation_wait_seconds,
            ),
            "dry_run_check_delay_seconds": _env_float(
                ENV_KEYS["dry_run_check_delay"],
                ExecutionSettings().dry_run_check_delay_seconds,
            ),
            "dry_run_dns_delay_seconds": _env_float(
                ENV_KEYS["dry_run_dns_delay"],
                ExecutionSettings().dry_run_dns_delay_seconds,
            ),
            "rollback_on_dns_failure": _env_bool(
                ENV_KEYS["rollback_on_dns_failure"],
                ExecutionSettings().rollback_on_dns_failure,
            ),
        },
        "health": {
            "max_response_bytes": _env_int(
                ENV_KEYS["max_response_bytes"],
                HealthCheckSettings().max_response_bytes,
            ),
            "http_timeout_seconds": _env_float(
                ENV_KEYS["http_timeout"],
                HealthCheckSettings().http_timeout_seconds,
            ),
            "tcp_timeout_seconds": _env_float(
                ENV_KEYS["tcp_timeout"],
                HealthCheckSettings().tcp_timeout_seconds,
            ),
            "command_timeout_seconds": _env_float(
                ENV_KEYS["command_timeout"],
                HealthCheckSettings().command_timeout_seconds,
            ),
            "command_shell": os.getenv(
                ENV_KEYS["command_shell"], HealthCheckSettings().command_shell
            ),
        },
        "dns": {
            "default_provider": os.getenv(
                ENV_KEYS["dns_provider"], DNSSettings().default_provider
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    return settings
