"""
Configuration loader for the Meme Market engine.

This module provides Pydantic models for validating runtime settings and a
loader function that merges a YAML configuration file with environment
variables.

Design Principles:
- Strict Schema: runtime settings are Pydantic models with value-range checks.
- Environment Overrides: any setting can be overridden by an environment
  variable following the nested structure, e.g. `trends.twitter.bearer_token`
  is overridden by `MEME_MARKET_TRENDS__TWITTER__BEARER_TOKEN`.
- Defaults Everywhere: `Settings()` is valid on its own, so the CLI and the
  tests can run without a YAML file.
- Clear Errors: validation failures are wrapped in `ConfigError`.

The market rules themselves (volatility tiers, event probabilities, cooldown,
freeze and merge durations, per-symbol specials) are compiled-in tables and
are deliberately not part of this schema.
"""

import os
import json
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator

ENV_PREFIX = "MEME_MARKET"

# --- Custom Exceptions ---

class ConfigError(Exception):
    """Custom exception for configuration-related errors."""
    pass

# --- Pydantic Models for Configuration Sections ---

class MarketSettings(BaseModel):
    """Where the snapshot and the price history live."""
    backend: Literal["json", "sqlite"] = "json"
    snapshot_path: str = "data/market.json"
    meta_path: str = "data/meta.json"
    db_path: str = "data/market.db"
    history_enabled: bool = True
    seed: Optional[int] = None


class ProviderSettings(BaseModel):
    """One external trend source."""
    enabled: bool = True
    min_interval_sec: float = Field(1.0, ge=0)
    bearer_token: Optional[str] = None
    api_key: Optional[str] = None
    user_agent: str = "meme-market-bot/1.0"
    subreddits: List[str] = Field(default_factory=lambda: ["dankmemes", "memes"])


class BreakerSettings(BaseModel):
    fail_threshold: int = Field(5, gt=0)
    reset_after_sec: float = Field(600.0, gt=0)


class TrendSettings(BaseModel):
    """Trend aggregator: weights, limits and per-provider credentials."""
    enabled: bool = True
    timeout_sec: float = Field(10.0, gt=0)
    cache_ttl_sec: float = Field(300.0, ge=0)
    max_score: float = Field(0.08, gt=0)
    weights: Dict[str, float] = Field(default_factory=lambda: {
        "google_trends": 0.25, "twitter": 0.25, "reddit": 0.20, "youtube": 0.15, "tiktok": 0.15,
    })
    breaker: BreakerSettings = Field(default_factory=BreakerSettings)
    google_trends: ProviderSettings = Field(default_factory=lambda: ProviderSettings(min_interval_sec=10.0))
    twitter: ProviderSettings = Field(default_factory=ProviderSettings)
    reddit: ProviderSettings = Field(default_factory=ProviderSettings)
    youtube: ProviderSettings = Field(default_factory=ProviderSettings)
    tiktok: ProviderSettings = Field(default_factory=lambda: ProviderSettings(min_interval_sec=3.0))

    @field_validator("weights")
    def weights_must_sum_to_one(cls, v):
        total = sum(float(x) for x in v.values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"trend weights must sum to 1.0 (got {total:.4f})")
        unknown = set(v) - {"google_trends", "twitter", "reddit", "youtube", "tiktok"}
        if unknown:
            raise ValueError(f"unknown trend providers in weights: {sorted(unknown)}")
        return v


class SchedulerSettings(BaseModel):
    """Cadence of the full, light and market-open jobs."""
    full_interval_sec: float = Field(900.0, gt=0)
    light_interval_sec: float = Field(300.0, gt=0)
    light_enabled: bool = True
    chaos_enabled: bool = True
    market_open_hour: int = Field(9, ge=0, le=23)
    market_open_boost: float = 0.05


class LoggingSettings(BaseModel):
    level: Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logs: bool = False


class Settings(BaseModel):
    """The root model for all application settings."""
    market: MarketSettings = Field(default_factory=MarketSettings)
    trends: TrendSettings = Field(default_factory=TrendSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

# --- Helper Functions ---

def _load_config_from_yaml(path: Path) -> Dict[str, Any]:
    """Loads the YAML configuration file."""
    if not path.is_file():
        raise ConfigError(f"Configuration file not found at: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file at {path}: {e}") from e

def _get_env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """
    Parses environment variables and converts them into a nested dict.
    e.g., MEME_MARKET_TRENDS__TWITTER__BEARER_TOKEN becomes
    {'trends': {'twitter': {'bearer_token': '...'}}}
    """
    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix + "_"):
            continue
        parts = key.removeprefix(prefix).strip("_").lower().split("__")

        # Credentials stay strings even when they look numeric
        if parts[-1] in ("bearer_token", "api_key", "user_agent"):
            parsed_value = value
        elif (value.startswith('[') and value.endswith(']')) or \
             (value.startswith('{') and value.endswith('}')) or \
             value.lower() in ['true', 'false', 'null'] or \
             value.replace('.', '', 1).isdigit():
            try:
                parsed_value = json.loads(value)
            except (json.JSONDecodeError, AttributeError):
                parsed_value = value
        else:
            parsed_value = value

        d = overrides
        for part in parts[:-1]:
            d = d.setdefault(part, {})
        d[parts[-1]] = parsed_value
    return overrides

def _merge_configs(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges the override dict into the base dict.
    Overwrites values, dictionaries, and lists.
    """
    for key, value in overrides.items():
        if isinstance(value, dict) and key in base and isinstance(base[key], dict):
            base[key] = _merge_configs(base[key], value)
        else:
            base[key] = value
    return base

# --- Public API ---

def load_settings(path: Optional[str] = "settings.yaml") -> Settings:
    """
    Loads, validates, and returns the application settings.

    Steps:
    1. Loads the base configuration from the YAML file (skipped when `path`
       is None, so env-only deployments work).
    2. Scans environment variables for overrides (prefixed "MEME_MARKET_").
    3. Merges the overrides into the base configuration.
    4. Validates the result against the `Settings` model.

    Raises:
        ConfigError: If the file is missing, cannot be parsed, or if
                     validation fails.
    """
    if path is None:
        logger.info("Loading settings from environment only...")
        yaml_config: Dict[str, Any] = {}
    else:
        logger.info(f"Loading settings from '{path}'...")
        yaml_config = _load_config_from_yaml(Path(path))
        if yaml_config is None:
            yaml_config = {}
        if not isinstance(yaml_config, dict):
            raise ConfigError(f"YAML file '{path}' must contain a mapping at the top level.")

    final_config = _merge_configs(yaml_config, _get_env_overrides())

    try:
        settings = Settings.model_validate(final_config)
        logger.success("Settings loaded and validated successfully.")
        return settings
    except ValidationError as e:
        error_details = e.errors()
        error_msg = f"Configuration validation failed with {len(error_details)} error(s):\n"
        for error in error_details:
            loc = " -> ".join(map(str, error['loc'])) if error['loc'] else "root"
            error_msg += f"  - Location: {loc}\n    Message: {error['msg']}\n"

        logger.error(error_msg)
        raise ConfigError("Failed to validate settings.") from e
