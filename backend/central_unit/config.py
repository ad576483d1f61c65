"""
Configuration Management System

This module provides centralized configuration management using YAML and JSON files.
Supports dot-notation access and hot reloading.

Every file in the config directory becomes a section named after its stem;
keys from ``central_unit.yaml`` are also exposed at the top level, so both
``config.get('decision.timeoutSeconds')`` and
``config.get('central_unit.decision.timeoutSeconds')`` work.
"""

import os
import yaml
import json
from pathlib import Path
from typing import Dict, Any


MAIN_CONFIG_NAME = "central_unit"

# Built-in defaults; an empty config directory is valid
DEFAULTS: Dict[str, Any] = {
    "decision": {
        "timeoutSeconds": 60,
        "displayDurationSec": 300,
    },
    "nodes": {
        "heartbeatTimeoutSeconds": 60,
        "sweepIntervalSeconds": 15,
        "maxClockSkewSeconds": 30,
    },
    "notifications": {
        "suppressionTtlSeconds": 15,
    },
    "mobileApp": {
        "serverUrl": "",
        "timeoutSeconds": 10,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """
    Manage application configuration from YAML and JSON files

    Provides:
    - Load all config files on startup
    - Dot notation access: config.get('decision.timeoutSeconds')
    - Hot reload capability
    - Default values for missing keys
    """

    def __init__(self, config_dir: str = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Path to config directory (default: backend/config)
        """
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            # Find config dir relative to this file
            self.config_dir = Path(__file__).parent.parent / "config"

        self.configs: Dict[str, Any] = {}
        self._load_all_configs()

    def _load_all_configs(self):
        """Load all configuration files from config directory"""
        self.configs = _merge({}, DEFAULTS)

        if not self.config_dir.exists():
            print(f"   [CONFIG] {self.config_dir} not found, using defaults")
            return

        # Load YAML configs
        for yaml_file in sorted(self.config_dir.glob("*.yaml")):
            try:
                with open(yaml_file, 'r') as f:
                    self._add_section(yaml_file.stem, yaml.safe_load(f) or {})
                    print(f"   [CONFIG] Loaded: {yaml_file.name}")
            except (OSError, yaml.YAMLError) as e:
                print(f"   [WARN] Failed to load {yaml_file.name}: {e}")

        # Load JSON configs
        for json_file in sorted(self.config_dir.glob("*.json")):
            try:
                with open(json_file, 'r') as f:
                    self._add_section(json_file.stem, json.load(f))
                    print(f"   [CONFIG] Loaded: {json_file.name}")
            except (OSError, ValueError) as e:
                print(f"   [WARN] Failed to load {json_file.name}: {e}")

    def _add_section(self, name: str, data: Dict[str, Any]):
        self.configs[name] = data
        if name == MAIN_CONFIG_NAME and isinstance(data, dict):
            for section, values in data.items():
                if isinstance(values, dict) and isinstance(self.configs.get(section), dict):
                    self.configs[section] = _merge(self.configs[section], values)
                else:
                    self.configs[section] = values

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot notation key

        Examples:
            config.get('decision.timeoutSeconds')
            config.get('nodes.heartbeatTimeoutSeconds')

        Args:
            key: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split('.')
        value = self.configs

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def get_decision_config(self) -> Dict[str, Any]:
        """Get decision configuration section"""
        return self.configs.get('decision', {})

    def get_nodes_config(self) -> Dict[str, Any]:
        """Get nodes configuration section"""
        return self.configs.get('nodes', {})

    def get_mobile_app_config(self) -> Dict[str, Any]:
        """
        Get Mobile App Server section

        ``MOBILE_APP_SERVER_URL`` overrides ``mobileApp.serverUrl``.
        """
        section = dict(self.configs.get('mobileApp', {}))
        env_url = os.getenv("MOBILE_APP_SERVER_URL")
        if env_url:
            section['serverUrl'] = env_url
        return section

    def reload(self):
        """Reload all configuration files"""
        print("[CONFIG] Reloading configuration...")
        self.configs.clear()
        self._load_all_configs()
        print("[OK] Configuration reloaded")

    def set(self, key: str, value: Any):
        """
        Set a configuration value (runtime only, not persisted)

        Args:
            key: Dot-separated key path
            value: Value to set
        """
        keys = key.split('.')
        config = self.configs

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value


# Global configuration instance (created on first use)
config = None


def get_config() -> ConfigManager:
    """Get the global configuration instance"""
    global config
    if config is None:
        config = ConfigManager()
    return config
