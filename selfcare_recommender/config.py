"""
Configuration for the recommender, resolved once per process.

Sources, later ones winning:

  1. ``config/default.toml``  (committed)
  2. ``config/local.toml``    next to it (optional, gitignored)
  3. ``.env`` at the project root, loaded into the environment
  4. ``SELFCARE_REC_*`` environment variables, see ``ENV_OVERRIDES``

``load_config()`` returns a frozen ``AppConfig``. The CLI and the HTTP app pass
that object (or one of its sections) down; nothing else reads the environment.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

# ── Sections ──────────────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """Where the SQLite file lives and how connections are opened."""

    model_config = ConfigDict(frozen=True)

    db_path: str = "data/db/selfcare.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"busy_timeout_ms must be >= 1, got {v}.")
        return v


class EngineConfig(BaseModel):
    """Recommendation engine parameters.

    ``recent_analysis_limit`` caps how many abnormal analyses are evaluated
    when no explicit analysis is requested. ``expiry_days`` sets the lifetime
    of every stored recommendation.
    """

    model_config = ConfigDict(frozen=True)

    recent_analysis_limit: int = 5
    expiry_days: int = 30
    multiple_abnormal_threshold: int = 3
    partner_lookup_limit: int = 3

    @field_validator(
        "recent_analysis_limit",
        "expiry_days",
        "multiple_abnormal_threshold",
        "partner_lookup_limit",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"engine limits must be >= 1, got {v}.")
        return v


class DirectoryConfig(BaseModel):
    """Partner directory source.

    An empty ``base_url`` keeps lookups on the local ``partners`` table;
    otherwise the marketplace companies endpoint is queried over HTTP.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = ""
    timeout_seconds: float = 10.0

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {v}.")
        return v


class ApiConfig(BaseModel):
    """HTTP service settings."""

    model_config = ConfigDict(frozen=True)

    host: str = "127.0.0.1"
    port: int = 8000
    default_list_limit: int = 20

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"port must be in (0, 65536), got {v}.")
        return v

    @field_validator("default_list_limit")
    @classmethod
    def validate_list_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"default_list_limit must be >= 1, got {v}.")
        return v


class LoggingConfig(BaseModel):
    """Log level, optional log file and line format."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: str = "data/logs/recommender.log"
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"level must be one of {sorted(_LOG_LEVELS)}, got '{v}'.")
        return level


_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class AppConfig(BaseModel):
    """All sections together; built by ``load_config()`` or directly in tests."""

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    engine: EngineConfig = EngineConfig()
    directory: DirectoryConfig = DirectoryConfig()
    api: ApiConfig = ApiConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loading ───────────────────────────────────────────────────────────────────

def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# env var -> (section or None for top level, key, converter)
ENV_OVERRIDES: dict[str, tuple[Optional[str], str, Callable[[str], Any]]] = {
    "SELFCARE_REC_DB_PATH":       ("database", "db_path", str),
    "SELFCARE_REC_DIRECTORY_URL": ("directory", "base_url", str),
    "SELFCARE_REC_LOG_LEVEL":     ("logging", "level", str),
    "SELFCARE_REC_DEBUG":         (None, "debug", _as_bool),
}


def project_root() -> Path:
    """Nearest ancestor of this package that holds ``pyproject.toml``."""
    here = Path(__file__).resolve().parent
    for candidate in (here, *here.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate
    return here.parent


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Resolve every configuration source into an ``AppConfig``.

    Args:
        config_path: TOML file to start from; ``config/default.toml`` under
            the project root when omitted. A ``local.toml`` in the same
            directory is layered on top.

    Raises:
        FileNotFoundError: ``config_path`` does not exist.
        pydantic.ValidationError: A merged value is invalid.
    """
    root = project_root()
    load_dotenv(dotenv_path=root / ".env", override=False)

    path = Path(config_path) if config_path is not None else root / "config" / "default.toml"
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\n"
            "Create config/default.toml or pass --config explicitly."
        )

    raw = _read_toml(path)
    local = path.parent / "local.toml"
    if local.exists():
        raw = _deep_merge(raw, _read_toml(local))

    return _build_app_config(_apply_env_overrides(raw))


def _read_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, val in override.items():
        if isinstance(val, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], val)
        else:
            merged[key] = val
    return merged


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Copy set (non-empty) ``ENV_OVERRIDES`` variables into ``raw``."""
    for name, (section, key, convert) in ENV_OVERRIDES.items():
        value = os.environ.get(name)
        if not value:
            continue
        target = raw if section is None else raw.setdefault(section, {})
        target[key] = convert(value)
    return raw


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Validate the merged dict. ``[project] debug`` is the TOML spelling of ``debug``."""
    data = {k: v for k, v in raw.items() if k != "project"}
    data.setdefault("debug", raw.get("project", {}).get("debug", False))
    return AppConfig.model_validate(data)
