"""
Configuration management package for the Redshift metrics collector.

Handles loading settings from JSON files and environment variables.
"""

from .settings import (
    Settings,
    AppConfig,
    RedshiftConnectionConfig,
    CollectionConfig,
    ExporterConfig,
    load_json_config,
    load_settings,
    get_settings,
    reload_settings
)

__all__ = [
    'Settings',
    'AppConfig',
    'RedshiftConnectionConfig',
    'CollectionConfig',
    'ExporterConfig',
    'load_json_config',
    'load_settings',
    'get_settings',
    'reload_settings'
]
