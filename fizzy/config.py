from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fizzy import __version__
from fizzy.api.retry import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_INITIAL_DELAY_S,
    DEFAULT_MAX_DELAY_S,
    DEFAULT_MAX_RETRIES,
    RetryPolicy,
)

DEFAULT_BASE_URL = "https://app.fizzy.do"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_USER_AGENT = f"fizzy-cli/{__version__}"

ENV_BASE_URL = "FIZZY_BASE_URL"
ENV_MAX_RETRIES = "FIZZY_MAX_RETRIES"
ENV_RETRY_DELAY_MS = "FIZZY_RETRY_DELAY"
ENV_CONFIG_PATH = "FIZZY_CONFIG"


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or validated."""


def _require_http_scheme(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError("base_url must start with http:// or https://")
    return value.rstrip("/")


class RetryConfig(BaseModel):
    """Retry overrides; ``None`` means "not set here, fall through"."""

    model_config = ConfigDict(extra="forbid")

    max_retries: int | None = Field(default=None, ge=0)
    initial_delay_s: float | None = Field(default=None, ge=0)
    max_delay_s: float | None = Field(default=None, ge=0)
    backoff_factor: float | None = Field(default=None, ge=1)


class UserConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_account: str | None = Field(default=None)
    output_format: Literal["json", "table"] = Field(default="table")
    base_url: str | None = Field(default=None)
    timeout_s: float | None = Field(default=None, gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return _require_http_scheme(value)


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = Field(default=DEFAULT_BASE_URL)
    account_slug: str | None = None
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    timeout_s: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        return _require_http_scheme(value)

    @field_validator("account_slug")
    @classmethod
    def _strip_slashes(cls, value: str | None) -> str | None:
        if value is None:
            return value
        slug = value.strip("/")
        if not slug:
            raise ValueError("account_slug must not be empty")
        return slug


def _env_int(env: Mapping[str, str], key: str) -> int | None:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def resolve_retry_policy(
    explicit: RetryConfig | None = None,
    env: Mapping[str, str] | None = None,
) -> RetryPolicy:
    """Merge retry settings: explicit config, then environment, then defaults."""
    explicit = explicit or RetryConfig()
    env = os.environ if env is None else env

    env_max_retries = _env_int(env, ENV_MAX_RETRIES)
    if env_max_retries is not None and env_max_retries < 0:
        env_max_retries = None
    env_delay_ms = _env_int(env, ENV_RETRY_DELAY_MS)
    env_delay_s = env_delay_ms / 1000 if env_delay_ms is not None and env_delay_ms >= 0 else None

    def pick(*candidates: Any) -> Any:
        for candidate in candidates:
            if candidate is not None:
                return candidate
        return None

    return RetryPolicy(
        max_retries=pick(explicit.max_retries, env_max_retries, DEFAULT_MAX_RETRIES),
        initial_delay_s=pick(explicit.initial_delay_s, env_delay_s, DEFAULT_INITIAL_DELAY_S),
        max_delay_s=pick(explicit.max_delay_s, DEFAULT_MAX_DELAY_S),
        backoff_factor=pick(explicit.backoff_factor, DEFAULT_BACKOFF_FACTOR),
    )


def resolve_base_url(
    cli_value: str | None = None,
    env: Mapping[str, str] | None = None,
    user_config: UserConfig | None = None,
) -> str:
    env = os.environ if env is None else env
    sources = (
        ("--base-url", cli_value),
        (ENV_BASE_URL, env.get(ENV_BASE_URL)),
        ("config file", user_config.base_url if user_config else None),
    )
    for source, candidate in sources:
        if candidate:
            try:
                return _require_http_scheme(candidate)
            except ValueError as exc:
                raise ConfigError(f"{exc} (from {source}: {candidate!r})") from exc
    return DEFAULT_BASE_URL


def build_client_config(
    account_slug: str | None,
    *,
    user_config: UserConfig | None = None,
    base_url: str | None = None,
    max_retries: int | None = None,
    timeout_s: float | None = None,
    env: Mapping[str, str] | None = None,
) -> ClientConfig:
    user_config = user_config or UserConfig()
    retry = user_config.retry
    if max_retries is not None:
        retry = retry.model_copy(update={"max_retries": max_retries})
    try:
        return ClientConfig(
            base_url=resolve_base_url(base_url, env, user_config),
            account_slug=account_slug,
            retry=resolve_retry_policy(retry, env),
            timeout_s=timeout_s or user_config.timeout_s or DEFAULT_TIMEOUT_S,
        )
    except (ValidationError, ValueError) as exc:
        raise ConfigError(str(exc)) from exc


def default_config_path(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    override = env.get(ENV_CONFIG_PATH)
    if override:
        return Path(override)
    config_home = env.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "fizzy-cli" / "config.yaml"


def _read_raw(path: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a mapping")
    return payload


def load_user_config(path: Path | None = None) -> UserConfig:
    path = path or default_config_path()
    if not path.exists():
        return UserConfig()

    payload = _read_raw(path)
    try:
        return UserConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def save_user_config(config: UserConfig, path: Path | None = None) -> Path:
    path = path or default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(mode="json", exclude_none=True)
    if not payload.get("retry"):
        payload.pop("retry", None)
    path.write_text(yaml.safe_dump(payload, sort_keys=True), encoding="utf-8")
    return path


def get_config_value(key: str, path: Path | None = None) -> Any:
    value: Any = load_user_config(path).model_dump(mode="json")
    for part in key.split("."):
        if not isinstance(value, dict) or part not in value:
            raise ConfigError(f"Unknown config key: {key}")
        value = value[part]
    return value


def set_config_value(key: str, value: str, path: Path | None = None) -> UserConfig:
    """Set a dotted key (e.g. ``retry.max_retries``) and persist the result."""
    path = path or default_config_path()
    payload = _read_raw(path) if path.exists() else {}

    parts = key.split(".")
    current = payload
    for part in parts[:-1]:
        nested = current.get(part)
        if not isinstance(nested, dict):
            nested = {}
            current[part] = nested
        current = nested
    current[parts[-1]] = value

    try:
        config = UserConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
    save_user_config(config, path)
    return config
