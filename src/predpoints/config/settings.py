"""TOML config loading, profiles and environment overrides."""

from __future__ import annotations

import logging
import os
import re
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

_UNRESOLVED_VAR = re.compile(r"\$\{?[A-Za-z_][A-Za-z0-9_]*\}?")

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "PREDPOINTS_RPC_URL": ("chain", "rpc_url"),
    "PREDPOINTS_WS_URL": ("chain", "ws_url"),
    "PREDPOINTS_CONTRACT_ADDRESS": ("chain", "contract_address"),
    "PREDPOINTS_DB_PATH": ("storage", "db_path"),
}


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: str | Path | None = None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def expand_value(value: Any) -> Any:
    """Expand ${VAR} in strings; references to unset variables collapse to ''."""
    if not isinstance(value, str):
        return value
    return _UNRESOLVED_VAR.sub("", os.path.expandvars(value))


def _apply_env_overrides(raw: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    env = os.environ if environ is None else environ
    result = dict(raw)
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            result[section] = {**result.get(section, {}), key: value}
    return result


def load_config(profile: str | None = None, config_dir: str | Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    base: dict[str, Any] = _load_toml(default_path) if default_path.exists() else {}
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return _apply_env_overrides(base)


def get_settings(profile: str | None = None, config_dir: str | Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        chain: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        points: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.chain = chain or {}
        self.storage = storage or {}
        self.points = points or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            chain=raw.get("chain"),
            storage=raw.get("storage"),
            points=raw.get("points"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def rpc_url(self) -> str:
        return expand_value(self.chain.get("rpc_url", ""))

    @property
    def ws_url(self) -> str:
        return expand_value(self.chain.get("ws_url", ""))

    @property
    def contract_address(self) -> str:
        return expand_value(self.chain.get("contract_address", "")).strip().lower()

    @property
    def poll_interval_sec(self) -> float:
        return float(self.chain.get("poll_interval_sec", 5))

    @property
    def max_window_blocks(self) -> int:
        return int(self.chain.get("max_window_blocks", 2000))

    @property
    def start_block(self) -> int | None:
        value = self.chain.get("start_block")
        return int(value) if value is not None else None

    @property
    def request_timeout_sec(self) -> float:
        return float(self.chain.get("request_timeout_sec", 30))

    @property
    def db_path(self) -> str:
        return expand_value(self.storage.get("db_path", "data/predpoints.duckdb"))

    @property
    def points_per_dollar(self) -> int:
        return int(self.points.get("points_per_dollar", 10))

    @property
    def win_multiplier(self) -> int:
        return int(self.points.get("win_multiplier", 5))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
