"""backtester.core.config

Two config surfaces only:
1) `config/default.yaml` (+ optional `config/user.yaml` overlay)
2) Environment variables (`BACKTESTER_` prefix, `__` for nesting)

Per-run overrides (initial capital, commission) are passed explicitly by the
caller and never written back.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from backtester.core.exceptions import ConfigError


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class BacktestDefaults(BaseModel):
    """Run defaults applied when a request leaves them unset."""

    initial_capital: float = 10000.0
    commission: float = 0.0005  # fraction per side, 5 bps

    @field_validator("initial_capital")
    @classmethod
    def initial_capital_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("initial_capital must be > 0")
        return v

    @field_validator("commission")
    @classmethod
    def commission_must_be_fraction(cls, v: float) -> float:
        if not 0.0 <= v < 1.0:
            raise ValueError("commission must be in [0, 1)")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 5050
    auth_token: str = ""
    cors_origins: list[str] = []


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    config_dir: Path = Path("config")

    backtest: BacktestDefaults = Field(default_factory=BacktestDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = {"env_prefix": "BACKTESTER_", "env_nested_delimiter": "__"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs; environment variables win over it.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        try:
            raw = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Config file is not valid YAML: {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"Config file must contain a mapping: {path}")

        user = path.parent / "user.yaml"
        if user.exists() and user != path:
            try:
                user_data = yaml.safe_load(user.read_text()) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Config overlay is not valid YAML: {user}: {e}") from e
            if not isinstance(user_data, dict):
                raise ConfigError(f"Config overlay must contain a mapping: {user}")
            raw = _deep_merge(raw, user_data)

        raw.setdefault("config_dir", path.parent)
        try:
            return cls(**raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid config {path}: {e}") from e

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        return cls.from_yaml(root / "config" / "default.yaml")

    @classmethod
    def load(cls, repo_root: Path | None = None) -> Config:
        """Repo defaults when present, otherwise built-in defaults + env."""

        root = repo_root or Path.cwd()
        if (root / "config" / "default.yaml").exists():
            return cls.from_repo_defaults(root)
        return cls()
