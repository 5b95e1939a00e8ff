"""Run configuration loaded from a dotenv file and the process environment."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv

from sitecheck.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

ENV_ENVVAR = "SITE_ENV_FILE"
DEFAULT_ENV_FILE = "config/site.env"


class SettingsError(ValueError):
    """Raised when a configuration value cannot be parsed."""

    def __init__(self, key: str, value: str, reason: str) -> None:
        super().__init__(f"Invalid value for {key}={value!r}: {reason}")
        self.key = key
        self.value = value


@dataclass(frozen=True)
class Settings:
    env_file: Path | None
    base_url: str | None
    site_dir: Path | None
    site_host: str
    site_port: int
    site_health_endpoint: str | None
    readiness_timeout: float
    viewport_width: int
    viewport_height: int
    expect_timeout_ms: int
    navigation_timeout_ms: int

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}

    def health_endpoint_for(self, base_url: str, explicit: bool = False) -> str:
        """URL to poll for readiness. A base URL given on the command line is polled itself."""
        if explicit:
            return base_url
        return self.site_health_endpoint or base_url

    def to_report(self) -> dict[str, Any]:
        data = asdict(self)
        return {key: str(value) if isinstance(value, Path) else value for key, value in data.items()}


def _positive_int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise SettingsError(key, raw, "expected an integer") from exc
    if value < minimum:
        raise SettingsError(key, raw, f"must be >= {minimum}")
    return value


def _positive_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise SettingsError(key, raw, "expected a number") from exc
    if value <= 0:
        raise SettingsError(key, raw, "must be positive")
    return value


def _optional(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key, "").strip()
    return value or None


def settings_from_env(env: Mapping[str, str], env_file: Path | None = None) -> Settings:
    """Build :class:`Settings` from an environment mapping."""
    site_dir = _optional(env, "SITE_DIR")
    base_url = _optional(env, "BASE_URL")
    return Settings(
        env_file=env_file,
        base_url=base_url.rstrip("/") if base_url else None,
        site_dir=Path(site_dir) if site_dir else None,
        site_host=_optional(env, "SITE_HOST") or "127.0.0.1",
        site_port=_positive_int(env, "SITE_PORT", 0, minimum=0),
        site_health_endpoint=_optional(env, "SITE_HEALTH_ENDPOINT"),
        readiness_timeout=_positive_float(env, "READINESS_TIMEOUT", 30.0),
        viewport_width=_positive_int(env, "VIEWPORT_WIDTH", 1280),
        viewport_height=_positive_int(env, "VIEWPORT_HEIGHT", 720),
        expect_timeout_ms=_positive_int(env, "EXPECT_TIMEOUT_MS", 5000),
        navigation_timeout_ms=_positive_int(env, "NAVIGATION_TIMEOUT_MS", 30000),
    )


def resolve_env_file(raw: str | None) -> Path:
    return Path(raw) if raw else Path(os.environ.get(ENV_ENVVAR, DEFAULT_ENV_FILE))


def load_settings(env_file: Path | None = None) -> Settings:
    """Load the env file (when present) into ``os.environ`` and build settings.

    Variables already set in the process environment take precedence over the
    file, including ones set to an empty string. A missing file is not an
    error: values then come from the process environment alone.
    """
    path = env_file or resolve_env_file(None)
    loaded: Path | None = None
    if path.exists():
        load_dotenv(path, override=False)
        loaded = path
    configure_logging(force=True)
    if loaded:
        logger.info("Loaded environment configuration from %s", loaded)
    else:
        logger.warning("Environment file %s not found; using process environment", path)
    return settings_from_env(os.environ, env_file=loaded)


__all__ = [
    "DEFAULT_ENV_FILE",
    "ENV_ENVVAR",
    "Settings",
    "SettingsError",
    "load_settings",
    "resolve_env_file",
    "settings_from_env",
]
