from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError

API_KEY_ENV_VAR = "CPEDB_API_KEY"
CHECKPOINT_POLICIES = ("conservative", "advance")

DEFAULT_API: Dict[str, Any] = {
    "base_url": "https://services.nvd.nist.gov/rest/json/cpes/2.0/",
    "timeout_seconds": 60,
    "results_per_page": 10000,
    "max_concurrency": 10,
    "rate_limit_per_minute": 50,
    "max_window_days": 119,
    "max_pages": None,
    "retry": {
        "max_attempts": 3,
        "base_delay_seconds": 1.0,
        "max_delay_seconds": 30,
    },
}


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def output_dir(self) -> str:
        return self.raw.get("output_dir", ".")

    @property
    def state_file(self) -> str:
        return self.raw.get("state_file", ".update_date")

    @property
    def checkpoint_policy(self) -> str:
        return self.raw.get("checkpoint_policy", "conservative")

    @property
    def log_level(self) -> str:
        return self.raw.get("log_level", "INFO")

    @property
    def api(self) -> Dict[str, Any]:
        merged = dict(DEFAULT_API)
        merged.update(self.raw.get("api") or {})
        return merged


def load_config(path: Optional[str] = "config.yaml") -> Config:
    """Load ``config.yaml``; a missing path yields the built-in defaults."""
    raw: Dict[str, Any] = {}
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"{path} is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping")
    cfg = Config(raw)
    validate_config(cfg)
    return cfg


def validate_config(cfg: Config) -> None:
    if cfg.checkpoint_policy not in CHECKPOINT_POLICIES:
        raise ConfigError(f"checkpoint_policy must be one of {CHECKPOINT_POLICIES}")
    api = cfg.api
    for key in ("results_per_page", "max_concurrency", "rate_limit_per_minute", "max_window_days"):
        value = api.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ConfigError(f"api.{key} must be a positive integer")
    max_pages = api.get("max_pages")
    if max_pages is not None and (not isinstance(max_pages, int) or isinstance(max_pages, bool) or max_pages <= 0):
        raise ConfigError("api.max_pages must be a positive integer or null")


def get_api_key() -> str:
    key = os.getenv(API_KEY_ENV_VAR)
    if not key:
        raise ConfigError(f"Missing API key; set {API_KEY_ENV_VAR}")
    return key
