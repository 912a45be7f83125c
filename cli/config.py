#!/usr/bin/env python3
"""
Configuration Management Module for the certreg CLI

Handles hierarchical configuration loading, environment variable mapping,
validation, and management of settings across different environments.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml


# Configuration file locations in order of precedence (highest to lowest)
CONFIG_SEARCH_PATHS = [
    Path('.certreg.yml'),                       # Project-specific YAML
    Path('.certreg.json'),                      # Project-specific JSON
    Path('certreg.config.yml'),                 # Alternative project config
    Path.home() / '.certreg' / 'config.yml',    # User global YAML
    Path.home() / '.certreg' / 'config.json',   # User global JSON
]

# Environment variable prefix
ENV_PREFIX = 'CERTREG_'

LEDGER_TYPES = ['local', 'rpc']
OUTPUT_FORMATS = ['table', 'json', 'yaml']

# Default configuration values
DEFAULT_CONFIG = {
    # Ledger connection
    'ledger': {
        'type': 'local',  # local, rpc
        'storage_dir': 'ledger_data',
        'confirmation_delay': 0.0,
        'backup_count': 5
    },

    # Remote ledger node
    'rpc': {
        'host': 'localhost',
        'port': 8545,
        'path': '/',
        'username': None,
        'password': None,
        'timeout': 30,
        'max_retries': 3,
        'use_ssl': False,
        'poll_interval': 1.0
    },

    # Acting account
    'account': {
        'address': None
    },

    # Registry client tunables
    'client': {
        'cost_buffer_percent': 20,
        'read_attempts': 3,
        'read_retry_delay': 1.0,
        'max_cost_limit': 2 ** 63 - 1
    },

    # CLI behavior
    'cli': {
        'output_format': 'table',
        'color_output': True,
        'confirm_mutations': True,
        'max_display_items': 50
    }
}

# Configuration profiles
PROFILES = {
    'production': {
        'ledger': {'type': 'rpc'},
        'rpc': {'use_ssl': True},
        'cli': {'confirm_mutations': True}
    },
    'development': {
        'ledger': {'type': 'local', 'storage_dir': 'ledger_data/dev'},
        'client': {'read_retry_delay': 0.5},
        'cli': {'confirm_mutations': False}
    }
}


class ConfigurationManager:
    """Manages hierarchical configuration with environment variable support."""

    def __init__(self, config_file: Optional[str] = None, profile: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit configuration file path
            profile: Configuration profile to load (production, development)
        """
        self.logger = logging.getLogger(__name__)
        self.config_file = config_file
        self.profile = profile
        self._config_cache = None
        self._config_sources = []

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from all sources in hierarchical order.

        Returns:
            Merged configuration dictionary
        """
        if self._config_cache is not None:
            return self._config_cache

        configs = [copy.deepcopy(DEFAULT_CONFIG)]
        self._config_sources = ["defaults"]

        if self.profile:
            if self.profile not in PROFILES:
                raise ValueError(f"Unknown profile: {self.profile}")
            configs.append(PROFILES[self.profile])
            self._config_sources.append(f"profile:{self.profile}")
            self.logger.debug(f"Applied profile: {self.profile}")

        if self.config_file:
            path = Path(self.config_file)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {path}")
            configs.append(self._load_config_file(path))
            self._config_sources.append(f"file:{path}")
        else:
            for config_path in CONFIG_SEARCH_PATHS:
                if config_path.exists():
                    configs.append(self._load_config_file(config_path))
                    self._config_sources.append(f"file:{config_path}")
                    self.logger.debug(f"Loaded config from {config_path}")
                    break  # first found wins

        env_config = self._load_environment_variables()
        if env_config:
            configs.append(env_config)
            self._config_sources.append("environment")

        self._config_cache = self._deep_merge(*configs)
        self._expand_paths(self._config_cache)

        return self._config_cache

    def _load_config_file(self, path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML or JSON file."""
        with open(path, 'r') as f:
            if path.suffix in ['.yml', '.yaml']:
                data = yaml.safe_load(f)
            elif path.suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unknown config file format: {path}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return data

    def _load_environment_variables(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        Names are matched greedily against known keys, so
        CERTREG_CLIENT_COST_BUFFER_PERCENT maps to client.cost_buffer_percent.
        """
        env_config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            path = self._resolve_env_key(key[len(ENV_PREFIX):].lower())
            current = env_config
            for part in path[:-1]:
                current = current.setdefault(part, {})
            current[path[-1]] = self._parse_env_value(value)

        return env_config

    def _resolve_env_key(self, name: str) -> List[str]:
        parts = name.split('_')
        path = []
        section: Any = DEFAULT_CONFIG

        while parts:
            if not isinstance(section, dict):
                break
            for end in range(len(parts), 0, -1):
                candidate = '_'.join(parts[:end])
                if candidate in section:
                    path.append(candidate)
                    section = section[candidate]
                    parts = parts[end:]
                    break
            else:
                break

        if parts:
            path.append('_'.join(parts))
        return path

    def _parse_env_value(self, value: str) -> Union[str, int, float, bool, None]:
        return parse_config_value(value)

    def _deep_merge(self, *dicts: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge multiple dictionaries."""
        result: Dict[str, Any] = {}

        for dictionary in dicts:
            for key, value in dictionary.items():
                if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                    result[key] = self._deep_merge(result[key], value)
                else:
                    result[key] = copy.deepcopy(value)

        return result

    def _expand_paths(self, config: Dict[str, Any]):
        """Expand ~ and environment variables in path values."""
        for key, value in config.items():
            if isinstance(value, dict):
                self._expand_paths(value)
            elif isinstance(value, str) and ('~' in value or '$' in value):
                config[key] = os.path.expanduser(os.path.expandvars(value))

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation path.

        Args:
            key_path: Dot-separated path (e.g., 'client.read_attempts')
            default: Default value if key not found
        """
        current: Any = self.load()

        for key in key_path.split('.'):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return current

    def set(self, key_path: str, value: Any):
        """Set configuration value by dot-notation path."""
        config = self.load()

        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})

        current[keys[-1]] = value

    def save(self, path: Optional[str] = None, format: str = 'yaml'):
        """
        Save current configuration to file.

        Args:
            path: File path to save to (default: project config file)
            format: Output format ('yaml' or 'json')
        """
        config = self.load()

        if not path:
            path = '.certreg.yml' if format == 'yaml' else '.certreg.json'

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            if format == 'yaml':
                yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
            else:
                json.dump(config, f, indent=2)

        self.logger.info(f"Configuration saved to {path}")

    def validate(self) -> List[str]:
        """
        Validate current configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        config = self.load()
        errors = []

        ledger_type = config.get('ledger', {}).get('type')
        if ledger_type not in LEDGER_TYPES:
            errors.append(f"Invalid ledger type: {ledger_type}")

        if ledger_type == 'rpc':
            rpc_config = config.get('rpc', {})
            if not rpc_config.get('host'):
                errors.append("RPC host is required")
            port = rpc_config.get('port')
            if not isinstance(port, int) or not 0 < port < 65536:
                errors.append("RPC port must be an integer between 1 and 65535")

        delay = config.get('ledger', {}).get('confirmation_delay', 0)
        if not isinstance(delay, (int, float)) or delay < 0:
            errors.append("Confirmation delay must be a non-negative number")

        client_config = config.get('client', {})
        buffer_percent = client_config.get('cost_buffer_percent')
        if not isinstance(buffer_percent, (int, float)) or buffer_percent < 0:
            errors.append("Cost buffer percent must be a non-negative number")
        attempts = client_config.get('read_attempts')
        if not isinstance(attempts, int) or attempts < 1:
            errors.append("Read attempts must be a positive integer")
        retry_delay = client_config.get('read_retry_delay')
        if not isinstance(retry_delay, (int, float)) or retry_delay < 0:
            errors.append("Read retry delay must be a non-negative number")

        output_format = config.get('cli', {}).get('output_format')
        if output_format not in OUTPUT_FORMATS:
            errors.append(f"Invalid output format: {output_format}")

        return errors

    def get_sources(self) -> List[str]:
        """Get list of configuration sources that were loaded."""
        self.load()
        return self._config_sources

    def export_environment(self) -> Dict[str, str]:
        """Export configuration as environment variables."""
        config = self.load()
        env_vars = {}

        def flatten(obj: Dict[str, Any], prefix: str = ''):
            for key, value in obj.items():
                env_key = f"{prefix}_{key}".upper() if prefix else key.upper()

                if isinstance(value, dict):
                    flatten(value, env_key)
                elif value is not None:
                    env_name = f"{ENV_PREFIX}{env_key}"
                    if isinstance(value, bool):
                        env_vars[env_name] = 'true' if value else 'false'
                    else:
                        env_vars[env_name] = str(value)

        flatten(config)
        return env_vars


def parse_config_value(value: str) -> Union[str, int, float, bool, None]:
    """Parse a textual configuration value to the appropriate type."""
    lowered = value.lower()
    if lowered in ['true', 'yes']:
        return True
    if lowered in ['false', 'no']:
        return False

    try:
        return json.loads(value)
    except ValueError:
        return value
