"""
Configuration Management

Two layers:
- Settings: deployment values from the environment / .env
  (store credentials, Redis, worker device)
- ConfigManager: tunables from config/default.yaml overlaid with
  config/{ENVIRONMENT}.yaml (scan windows, queue limits, notifications)
"""
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_DIR = Path(__file__).resolve().parent.parent.parent / "config"

TRUE_STRINGS = {"1", "true", "yes", "on"}

# ${VAR} or ${VAR:-fallback}
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class Settings(BaseSettings):
    """Deployment settings read from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = "development"
    debug: bool = True
    api_prefix: str = "/api/v1"
    cors_origins: List[str] = ["*"]

    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None

    # Scan checkpoints
    redis_url: str = "redis://localhost:6379"

    # Scan worker: exported call logs of one device
    call_log_dir: Optional[str] = None
    scan_owner_id: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _expand(value: Any) -> Any:
    if isinstance(value, str):
        return _ENV_PATTERN.sub(
            lambda m: os.getenv(m.group(1), m.group(2) if m.group(2) is not None else m.group(0)),
            value,
        )
    if isinstance(value, list):
        return [_expand(item) for item in value]
    if isinstance(value, dict):
        return {key: _expand(item) for key, item in value.items()}
    return value


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """
    Layered YAML configuration.

    Environment references inside string values are expanded on load;
    an unset variable without a fallback is left as written.
    """

    def __init__(self, env: Optional[str] = None, config_dir: Optional[Path] = None):
        self.env = env or os.getenv("ENVIRONMENT", "development")
        self.config_dir = Path(config_dir) if config_dir else CONFIG_DIR
        self._config = self._load()

    def _load(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        for name in ("default", self.env):
            path = self.config_dir / f"{name}.yaml"
            if path.exists():
                with open(path, "r", encoding="utf-8") as f:
                    config = _merge(config, yaml.safe_load(f) or {})
        return _expand(config)

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Look up a value by dotted path.

        Example: config.get("scan.full_rescan_days") -> 7
        """
        node: Any = self._config
        for key in key_path.split("."):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return default if node is None else node

    def get_bool(self, key_path: str, default: bool = False) -> bool:
        """Boolean lookup; env-substituted strings such as "false" or "0" are parsed."""
        value = self.get(key_path, default)
        if isinstance(value, str):
            return value.strip().lower() in TRUE_STRINGS
        return bool(value)

    def section(self, name: str) -> Dict[str, Any]:
        """Copy of one top-level section, empty when absent."""
        value = self._config.get(name)
        return dict(value) if isinstance(value, dict) else {}


_settings: Optional[Settings] = None
_config: Optional[ConfigManager] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def get_config() -> ConfigManager:
    global _config
    if _config is None:
        _config = ConfigManager()
    return _config
