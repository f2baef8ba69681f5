"""
Configuration module for IMA signature tooling.

Provides:
- ImaConfig settings with defaults for key paths and the attribute name
- YAML/JSON configuration files
- IMA_* environment variable overrides
"""

from .settings import (
    ConfigFormat,
    ImaConfig,
    load_config_file,
    config_from_environment,
    load_config,
)

__all__ = [
    'ConfigFormat',
    'ImaConfig',
    'load_config_file',
    'config_from_environment',
    'load_config',
]
