"""
config/settings.py — Ergodic Runtime Settings

Merges config.yaml (defaults/structure) with .env and environment variables.
Pydantic-powered — all fields are validated and typed.

  - WalkSettings rejects a negative jump interval at parse time
    (0 disables the timed walk; /walk then performs a single jump)
  - LoggingConfig validates the log level
  - validate_all() performs startup validation that needs the filesystem
    and raises ConfigError listing every problem found
  - load_settings() respects the ERGODIC_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from walk.scheduler import WalkConfig


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class VaultConfig(BaseModel):
    """
    path            Folder of Markdown notes to walk.
    excluded_paths  Comma-separated folder prefixes, relative to the vault.
    excluded_tags   Comma-separated tags, without the leading '#'.
    """
    path: str = "./vault"
    excluded_paths: str = ""
    excluded_tags: str = ""


class WalkSettings(BaseModel):
    jump_interval_s: int = 0
    show_timer_bar: bool = True

    @field_validator("jump_interval_s")
    @classmethod
    def _non_negative_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError("walk.jump_interval_s must be >= 0 (0 disables the timed walk)")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 10
    backup_count: int = 3
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    Ergodic runtime settings.

    Priority (highest to lowest):
      1. Sections from config.yaml (passed as init kwargs by load_settings)
      2. Environment variables (ERGODIC_VAULT__PATH, ERGODIC_WALK__JUMP_INTERVAL_S, ...)
      3. .env file
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="ERGODIC_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    vault: VaultConfig = Field(default_factory=VaultConfig)
    walk: WalkSettings = Field(default_factory=WalkSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("vault", mode="before")
    @classmethod
    def _coerce_vault(cls, v: Any) -> Any:
        return VaultConfig(**v) if isinstance(v, dict) else v

    @field_validator("walk", mode="before")
    @classmethod
    def _coerce_walk(cls, v: Any) -> Any:
        return WalkSettings(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def vault_path(self) -> Path:
        return Path(self.vault.path).expanduser()

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    @property
    def log_json_format(self) -> bool:
        return self.logging.json_format

    @property
    def log_console_output(self) -> bool:
        return self.logging.console_output

    def walk_config(self, interval_s: Optional[int] = None) -> WalkConfig:
        """Build the WalkConfig for a timed walk. interval_s overrides the setting."""
        seconds = self.walk.jump_interval_s if interval_s is None else interval_s
        return WalkConfig(
            interval_ms=seconds * 1000,
            show_timer_bar=self.walk.show_timer_bar,
        )

    def validate_all(self) -> None:
        """
        Full startup validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        method catches problems that depend on the filesystem.
        """
        errors: list[str] = []

        vault = self.vault_path
        if not vault.exists():
            errors.append(
                f"vault.path '{self.vault.path}' does not exist. "
                f"Point it at a folder of Markdown notes."
            )
        elif not vault.is_dir():
            errors.append(f"vault.path '{self.vault.path}' is not a directory.")

        for prefix in _split_csv(self.vault.excluded_paths):
            if Path(prefix).is_absolute():
                errors.append(
                    f"vault.excluded_paths entry '{prefix}' is absolute. "
                    f"Exclusions are relative to the vault root."
                )

        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nErgodic startup failed — {len(errors)} configuration "
                f"problem(s) found:\n\n{numbered}\n\n"
                f"Fix the issues above in config/config.yaml or your .env file "
                f"and restart.\n"
            )


def _split_csv(value: str) -> list[str]:
    return [p.strip() for p in value.split(",") if p.strip()]


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = threading.RLock()

_KNOWN_SECTIONS = {"vault", "walk", "logging"}


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument (from --config CLI flag)
      2. ERGODIC_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("ERGODIC_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings by merging config.yaml with environment variables."""
    global _singleton
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}

    instance = Settings(**init_kwargs)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton, loading from the default config
    path on first use. Guarded by a lock against double initialisation.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            load_settings()
        return _singleton  # type: ignore[return-value]
