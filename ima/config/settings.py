"""
Settings - configuration for the imactl tool and file signing helpers.

Values are resolved in this order, later sources winning:
1. Built-in defaults (ima.constants)
2. Configuration file (YAML or JSON, chosen by extension)
3. Environment variables (IMA_PUBKEY, IMA_PRIVKEY, IMA_XATTR, IMA_HASH,
   IMA_STRICT_VERSION, IMA_VERBOSE, IMA_TRACE, IMA_LOG_FILE, IMA_LOG_JSON)
4. Explicit overrides (command-line flags)

Example imactl.yaml:
    pubkey_path: /etc/keys/pubkey_evm.pem
    privkey_path: /etc/keys/privkey_evm.pem
    attr_name: user.ima
    hash_algorithm: sha512
    strict_version: true
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from ..constants import DEFAULT_HASH_ALGORITHM, ENV_PREFIX, Paths, XattrNames, parse_bool
from ..errors import ConfigError, UnsupportedAlgorithm
from ..hashes import HASH_FUNCTIONS, HashAlgorithm

logger = logging.getLogger(__name__)


class ConfigFormat(Enum):
    """Supported configuration file formats."""
    JSON = "json"
    YAML = "yaml"
    AUTO = "auto"  # Detect from file extension


# Environment variable (without prefix) -> field name
ENV_FIELDS = {
    'PUBKEY': 'pubkey_path',
    'PRIVKEY': 'privkey_path',
    'XATTR': 'attr_name',
    'HASH': 'hash_algorithm',
    'STRICT_VERSION': 'strict_version',
    'VERBOSE': 'verbose',
    'TRACE': 'trace',
    'LOG_FILE': 'log_file',
    'LOG_JSON': 'json_logs',
}

CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG"


@dataclass
class ImaConfig:
    """Resolved settings."""
    pubkey_path: str = Paths.PUBLIC_KEY
    privkey_path: str = Paths.PRIVATE_KEY
    attr_name: str = XattrNames.IMA
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM
    strict_version: bool = True
    verbose: bool = False
    trace: bool = False
    log_file: Optional[str] = None
    json_logs: bool = False

    def hash(self) -> HashAlgorithm:
        """The configured signing hash, checked against the IMA table."""
        try:
            algorithm = HashAlgorithm.from_name(self.hash_algorithm)
            HASH_FUNCTIONS.algorithm_to_id(algorithm)
        except UnsupportedAlgorithm as e:
            raise ConfigError(f"invalid hash_algorithm: {e}") from e
        return algorithm

    def validate(self) -> 'ImaConfig':
        """Check field values; raises ConfigError on the first problem."""
        self.hash()
        if not self.attr_name or '.' not in self.attr_name:
            raise ConfigError(
                f"invalid attr_name {self.attr_name!r}: expected namespace.name"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


_FIELD_TYPES = {f.name: f.type for f in fields(ImaConfig)}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw file/env value to the type of field name."""
    if name not in _FIELD_TYPES:
        raise ConfigError(f"unknown configuration key: {name}")
    if value is None:
        return None
    if name in ('strict_version', 'verbose', 'trace', 'json_logs'):
        if isinstance(value, bool):
            return value
        try:
            return parse_bool(str(value))
        except ValueError as e:
            raise ConfigError(f"invalid value for {name}: {e}") from e
    return str(value)


def _detect_format(path: Path, config_format: ConfigFormat) -> ConfigFormat:
    if config_format != ConfigFormat.AUTO:
        return config_format
    if path.suffix.lower() == '.json':
        return ConfigFormat.JSON
    return ConfigFormat.YAML


def load_config_file(
    path: Union[str, Path],
    config_format: ConfigFormat = ConfigFormat.AUTO,
) -> Dict[str, Any]:
    """
    Read a configuration file into a dictionary of field values.

    Raises:
        ConfigError: if the file is unreadable, malformed or has unknown keys
    """
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e

    fmt = _detect_format(path, config_format)
    try:
        if fmt == ConfigFormat.JSON:
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"malformed config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    return {name: _coerce(name, value) for name, value in data.items()}


def config_from_environment(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect field values from IMA_* environment variables."""
    environ = os.environ if environ is None else environ
    values = {}
    for suffix, name in ENV_FIELDS.items():
        raw = environ.get(f"{ENV_PREFIX}{suffix}")
        if raw is not None:
            values[name] = _coerce(name, raw)
    return values


def load_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ImaConfig:
    """
    Resolve the effective configuration.

    Args:
        path: Config file; falls back to $IMA_CONFIG, then to
            /etc/ima/imactl.yaml if it exists. No file is not an error.
        overrides: Explicit values (None entries are ignored)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated ImaConfig
    """
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}

    path = path or environ.get(CONFIG_ENV_VAR)
    if not path and os.path.exists(Paths.CONFIG_FILE):
        path = Paths.CONFIG_FILE
    if path:
        values.update(load_config_file(path))
        logger.debug(f"Loaded configuration from {path}")

    values.update(config_from_environment(environ))

    for name, value in (overrides or {}).items():
        if value is not None:
            values[name] = _coerce(name, value)

    return ImaConfig(**values).validate()


__all__ = [
    'ConfigFormat',
    'ImaConfig',
    'load_config_file',
    'config_from_environment',
    'load_config',
]
