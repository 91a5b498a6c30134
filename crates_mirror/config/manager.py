#!/usr/bin/env python3

import os
import yaml
from typing import List, Optional
from dataclasses import dataclass, asdict

DEFAULT_INDEX_URL = "https://github.com/rust-lang/crates.io-index"
DEFAULT_API_URL = "https://crates.io/api/v1"
DEFAULT_USER_AGENT = "crates-mirror/0.1.0 (https://github.com/crates-mirror/crates-mirror)"

@dataclass
class MirrorConfig:
    base_path: str = None
    output_path: str = None
    index_path: str = None
    database_path: str = None
    index_url: str = DEFAULT_INDEX_URL
    api_url: str = DEFAULT_API_URL
    user_agent: str = DEFAULT_USER_AGENT
    # crates.io crawler policy asks for at most one request per second
    delay_ms: int = 1100
    request_timeout: float = 30.0
    min_free_gb: float = 1.0
    log_level: str = "INFO"
    log_path: str = None
    sync_schedule: str = "daily"

    def __post_init__(self):
        if self.base_path is None:
            # Use user-accessible paths when not running as root
            if os.geteuid() == 0:
                self.base_path = "/srv/crates-mirror"
            else:
                self.base_path = os.path.expanduser("~/crates-mirror")

        if self.output_path is None:
            self.output_path = os.path.join(self.base_path, "repos")

        if self.index_path is None:
            self.index_path = os.path.join(self.base_path, "index")

        if self.database_path is None:
            self.database_path = os.path.join(self.base_path, "crates-mirror.sqlite")

        if self.log_path is None:
            self.log_path = os.path.join(self.base_path, "logs", "crates-mirror.log")

        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must be non-negative, got {self.delay_ms}")

    def writable_directories(self) -> List[str]:
        """Directories a sync run writes into, parents before children"""
        directories = []
        for directory in (
            self.base_path,
            self.output_path,
            os.path.dirname(os.path.abspath(self.index_path)),
            os.path.dirname(os.path.abspath(self.database_path)),
            os.path.dirname(os.path.abspath(self.log_path)),
        ):
            if directory not in directories:
                directories.append(directory)
        return directories

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0

class ConfigManager:
    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._get_default_config_path()
        self._config: Optional[MirrorConfig] = None

    def _get_default_config_path(self) -> str:
        xdg_config = os.environ.get('XDG_CONFIG_HOME', '~/.config')
        return os.path.expanduser(f"{xdg_config}/crates-mirror/config.yaml")

    def load_config(self) -> MirrorConfig:
        if self._config is not None:
            return self._config

        if not os.path.exists(self.config_path):
            self._config = MirrorConfig()
            self.save_config()
            return self._config

        try:
            with open(self.config_path, 'r') as f:
                data = yaml.safe_load(f) or {}

            # Handle path defaults for user permissions
            if 'base_path' not in data or data['base_path'] == '/srv/crates-mirror':
                # Force recalculation of paths based on current user permissions
                data.pop('base_path', None)

            self._config = MirrorConfig(**data)
            return self._config

        except Exception as e:
            raise ValueError(f"Error loading config from {self.config_path}: {e}")

    def save_config(self) -> None:
        if self._config is None:
            raise ValueError("No config loaded to save")

        # Ensure config directory exists
        os.makedirs(os.path.dirname(self.config_path), exist_ok=True)

        if not os.path.exists(self.config_path):
            self._create_config_template()
        else:
            config_dict = asdict(self._config)
            with open(self.config_path, 'w') as f:
                yaml.dump(config_dict, f, default_flow_style=False, indent=2)

    def _create_config_template(self) -> None:
        """Create a new config file with comments describing each setting"""
        config_dict = asdict(self._config)

        template = f"""# crates.io Repository Mirror Configuration
# Generated by crates-mirror

# Storage paths
base_path: {config_dict['base_path']}
output_path: {config_dict['output_path']}
index_path: {config_dict['index_path']}
database_path: {config_dict['database_path']}

# Upstream endpoints
index_url: {config_dict['index_url']}
api_url: {config_dict['api_url']}
user_agent: "{config_dict['user_agent']}"

# Delay between metadata requests in milliseconds.
# crates.io asks crawlers to stay at or below one request per second.
delay_ms: {config_dict['delay_ms']}
request_timeout: {config_dict['request_timeout']}

# Refuse to start a sync when the output volume has less free space (GB)
min_free_gb: {config_dict['min_free_gb']}

log_level: {config_dict['log_level']}
log_path: {config_dict['log_path']}

# systemd timer calendar: hourly, daily, weekly, monthly, twice-daily
sync_schedule: {config_dict['sync_schedule']}
"""

        with open(self.config_path, 'w') as f:
            f.write(template)

    def get_config(self) -> MirrorConfig:
        if self._config is None:
            return self.load_config()
        return self._config

    def override(self, **values) -> MirrorConfig:
        """Apply per-run overrides (command-line flags) without saving them"""
        config = self.get_config()
        for key, value in values.items():
            if value is None:
                continue
            if not hasattr(config, key):
                raise ValueError(f"Unknown config option: {key}")
            setattr(config, key, value)
        return config

    def get_destination_path(self, name: str) -> str:
        config = self.get_config()
        return os.path.join(config.output_path, name)
