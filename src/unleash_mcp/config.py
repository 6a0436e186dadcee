"""Startup configuration for the Unleash MCP server."""

from __future__ import annotations

import argparse
import os
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlsplit, urlunsplit

from omegaconf import OmegaConf
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

LogLevel = Literal["debug", "info", "warn", "error"]

CONFIG_PATH_ENV = "UNLEASH_MCP_CONFIG"

_ENV_FIELDS: dict[str, str] = {
    "UNLEASH_BASE_URL": "base_url",
    "UNLEASH_PAT": "access_token",
    "UNLEASH_DEFAULT_PROJECT": "default_project",
    "UNLEASH_DEFAULT_ENVIRONMENT": "default_environment",
    "UNLEASH_DRY_RUN": "dry_run",
    "UNLEASH_LOG_LEVEL": "log_level",
    "APP_LOG_FILE": "log_file",
}

_TRUTHY = {"1", "true", "yes", "on"}
_LEVEL_CHOICES = ("debug", "info", "warn", "error")


class ConfigurationError(ValueError):
    """Raised when startup configuration is missing or invalid."""


def normalize_base_url(url: str) -> str:
    """Collapse duplicate path slashes and drop a trailing slash."""
    parts = urlsplit(url)
    path = re.sub(r"/{2,}", "/", parts.path).rstrip("/")
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


class Config(BaseModel):
    """Validated server configuration, read-only after startup."""

    model_config = ConfigDict(frozen=True)

    base_url: str = Field(description="Unleash instance base URL (UNLEASH_BASE_URL)")
    access_token: str = Field(
        min_length=1, description="Unleash personal access token (UNLEASH_PAT)", repr=False
    )
    default_project: str | None = Field(
        default=None, description="Project used when a tool call omits projectId"
    )
    default_environment: str | None = Field(
        default=None, description="Environment used when a tool call omits environment"
    )
    dry_run: bool = Field(default=False, description="Simulate mutating operations")
    log_level: LogLevel = Field(default="info", description="Minimum log level")
    log_file: Path | None = Field(default=None, description="Append logs here instead of stderr")

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        parts = urlsplit(value.strip())
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise ValueError("UNLEASH_BASE_URL must be a valid http(s) URL")
        return normalize_base_url(value.strip())

    @field_validator("default_project", "default_environment", "log_file", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("dry_run", mode="before")
    @classmethod
    def _parse_flag(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return value


def _load_file_values(location: Path) -> dict[str, Any]:
    raw_config = OmegaConf.load(location)
    container = OmegaConf.to_container(raw_config, resolve=True)
    if not isinstance(container, dict):
        raise ConfigurationError(f"Configuration file must contain a mapping: {location}")
    normalized = {str(key).upper(): value for key, value in container.items()}
    return {field: normalized[key] for key, field in _ENV_FIELDS.items() if key in normalized}


def _env_values(environ: Mapping[str, str]) -> dict[str, Any]:
    return {field: environ[key] for key, field in _ENV_FIELDS.items() if key in environ}


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="unleash-mcp",
        description="MCP server exposing Unleash feature flag management to AI agents.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Simulate mutating operations without changing Unleash",
    )
    parser.add_argument(
        "--log-level",
        choices=_LEVEL_CHOICES,
        default=None,
        help="Minimum log level (default: info)",
    )
    return parser


def _cli_values(argv: Sequence[str]) -> dict[str, Any]:
    # MCP hosts may append their own arguments; unknown ones are ignored.
    namespace, _unknown = build_cli_parser().parse_known_args(list(argv))
    values: dict[str, Any] = {}
    if namespace.dry_run:
        values["dry_run"] = True
    if namespace.log_level:
        values["log_level"] = namespace.log_level
    return values


def _format_validation_error(error: ValidationError) -> str:
    env_names = {field: key for key, field in _ENV_FIELDS.items()}
    lines = []
    for detail in error.errors():
        field = ".".join(str(part) for part in detail.get("loc", ()))
        label = env_names.get(field, field)
        lines.append(f"  - {label}: {detail.get('msg', 'invalid value')}")
    return (
        "Configuration validation failed:\n"
        + "\n".join(lines)
        + "\n\nPlease check your environment variables or configuration file."
    )


def load_config(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from an optional YAML file, the environment and CLI flags.

    Later sources win: file < environment < CLI flags. Raises
    `ConfigurationError` describing every invalid field.
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}

    config_path = env.get(CONFIG_PATH_ENV)
    if config_path:
        location = Path(config_path).expanduser()
        if not location.exists():
            raise ConfigurationError(
                f"Configuration file not found ({CONFIG_PATH_ENV}): {location}"
            )
        values.update(_load_file_values(location))

    values.update(_env_values(env))
    values.update(_cli_values(argv if argv is not None else []))

    try:
        return Config.model_validate(values)
    except ValidationError as exc:
        raise ConfigurationError(_format_validation_error(exc)) from exc
