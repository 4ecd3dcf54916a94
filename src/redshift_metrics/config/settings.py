"""
Settings and configuration management for the Redshift metrics collector.

Configuration is loaded from a JSON file (with ``${VAR}`` substitution),
validated with Pydantic models and overridden by environment variables.
"""

import json
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..data_collection.query_catalog import QUERY_TEMPLATES

DEFAULT_CONFIG_PATH = Path("config/settings.json")


class AppConfig(BaseModel):
    """Application configuration."""
    name: str = Field(default="Redshift Metrics Collector")
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = None

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()


class RedshiftConnectionConfig(BaseModel):
    """Cluster to monitor."""
    address: str
    cluster_name: str = Field(default="")
    interval_seconds: int = Field(default=500, ge=1)
    queries: Optional[List[str]] = None

    @field_validator('address')
    @classmethod
    def validate_address(cls, v):
        if not v or not v.strip():
            raise ValueError("Redshift address cannot be empty")
        return v.strip()

    @field_validator('queries')
    @classmethod
    def validate_queries(cls, v):
        if v is None:
            return v
        unknown = [name for name in v if name not in QUERY_TEMPLATES]
        if unknown:
            raise ValueError(f"Unknown queries: {', '.join(unknown)}")
        return v


class CollectionConfig(BaseModel):
    """Per-tick collection behaviour."""
    connect_timeout_seconds: int = Field(default=10, ge=1)
    statement_timeout_ms: Optional[int] = Field(default=None, ge=1)
    fetch_batch_size: int = Field(default=1000, ge=1)
    collection_interval_seconds: int = Field(default=60, ge=1)


class ExporterConfig(BaseModel):
    """Prometheus HTTP exporter configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=9439, ge=1, le=65535)


class Settings(BaseModel):
    """Main settings configuration."""
    app: AppConfig = Field(default_factory=AppConfig)
    redshift: Optional[RedshiftConnectionConfig] = None
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    exporter: ExporterConfig = Field(default_factory=ExporterConfig)


def load_json_config(file_path: Path) -> Dict:
    """Load configuration from JSON file with environment variable substitution."""
    if not file_path.exists():
        return {}

    with open(file_path, 'r') as f:
        content = f.read()

    # Replace environment variables in format ${VAR_NAME}
    def replace_env_var(match):
        var_name = match.group(1)
        return os.getenv(var_name, match.group(0))

    content = re.sub(r'\$\{([^}]+)\}', replace_env_var, content)

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_path}: {e}")


def apply_env_overrides(config_data: Dict) -> Dict:
    """Overlay REDSHIFT_* and other environment variables onto raw config data."""
    redshift = dict(config_data.get('redshift') or {})
    env_mapping = {
        'address': 'REDSHIFT_ADDRESS',
        'cluster_name': 'REDSHIFT_CLUSTER_NAME',
        'interval_seconds': 'REDSHIFT_INTERVAL_SECONDS',
    }
    for key, env_var in env_mapping.items():
        value = os.getenv(env_var)
        if value:
            redshift[key] = value

    config_data = dict(config_data)
    if redshift:
        config_data['redshift'] = redshift

    if os.getenv("LOG_LEVEL"):
        config_data['app'] = {**config_data.get('app', {}), 'log_level': os.getenv("LOG_LEVEL")}

    if os.getenv("EXPORTER_PORT"):
        config_data['exporter'] = {**config_data.get('exporter', {}), 'port': os.getenv("EXPORTER_PORT")}

    return config_data


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Build Settings from a JSON file plus environment overrides."""
    config_data = load_json_config(Path(config_path) if config_path else DEFAULT_CONFIG_PATH)
    return Settings(**apply_env_overrides(config_data))


@lru_cache()
def get_settings() -> Settings:
    """Get application settings (cached)."""
    return load_settings()


def reload_settings() -> Settings:
    """Force reload of settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
