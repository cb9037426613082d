# ioeye/utils/config.py - Configuration management
"""
Configuration management for ioeye.
Loads and validates configuration from YAML files.
"""

import copy
import yaml
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging


class Config:
    """
    Configuration manager.

    Loads configuration from YAML files and provides access to settings.
    """

    DEFAULT_CONFIG = {
        'monitor': {
            'interval': 10,
            'namespace': '',
            'entities': [],
        },
        'tracer': {
            'pid': None,
            'buffer_size': 256,
        },
        'correlator': {
            'horizon_seconds': 30,
            'max_pending': 10240,
        },
        'aggregator': {
            'carry_forward_latency': True,
            'idle_eviction_cycles': 30,
        },
        'history': {
            'capacity': 100,
        },
        'analysis': {
            'thresholds': {
                'read_ms': 10,
                'write_ms': 20,
                'queue_ms': 5,
            },
            'anomaly': {
                'threshold': 2.0,
                'min_history': 10,
                'zscore_denominator': 'stddev',
            },
            'trend_window_seconds': 300,
        },
        'output': {
            'format': 'stdout',
            'prometheus_port': 9090,
            'top_n': 5,
        },
    }

    VALID_DENOMINATORS = ('variance', 'stddev')
    VALID_FORMATS = ('stdout', 'prometheus')

    def __init__(self, config_file: Optional[str] = None):
        """
        Args:
            config_file: Optional YAML file layered over DEFAULT_CONFIG
        """
        self.logger = logging.getLogger(__name__)
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)

        if config_file:
            self.load_from_file(config_file)

    def load_from_file(self, config_file: str):
        """
        Layer a YAML file over the current settings and validate the result.

        A missing file keeps the current settings. Keys the defaults do not
        know about are kept but reported, since a misspelled key would
        otherwise be ignored without notice.

        Raises:
            yaml.YAMLError: the file is not valid YAML
            ValueError: the file is not a mapping or a value is invalid
        """
        config_path = Path(config_file)

        if not config_path.exists():
            self.logger.warning(f"Config file not found: {config_file}, using defaults")
            return

        try:
            with open(config_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            self.logger.error(f"Failed to parse {config_file}: {e}")
            raise

        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {config_file} must contain a mapping")

        for key in self._merge(self.config, loaded):
            self.logger.warning(f"Unknown configuration key in {config_file}: {key}")

        self.validate()
        self.logger.info(f"Loaded configuration from {config_file}")

    @classmethod
    def _merge(cls, base: Dict, override: Dict, prefix: str = '') -> List[str]:
        """
        Merge override into base in place, section by section.

        Returns:
            Dotted keys present in override but absent from base
        """
        unknown = []

        for key, value in override.items():
            dotted = f"{prefix}{key}"
            current = base.get(key)

            if isinstance(current, dict) and isinstance(value, dict):
                unknown.extend(cls._merge(current, value, prefix=f"{dotted}."))
                continue

            if key not in base:
                unknown.append(dotted)
            base[key] = value

        return unknown

    def validate(self):
        """
        Reject values the pipeline cannot run with.

        Raises:
            ValueError: on an invalid setting
        """
        if not self.get('monitor.interval', 0) > 0:
            raise ValueError("monitor.interval must be positive")

        if not self.get('history.capacity', 0) > 0:
            raise ValueError("history.capacity must be positive")

        if not self.get('aggregator.idle_eviction_cycles', 0) >= 0:
            raise ValueError("aggregator.idle_eviction_cycles must not be negative")

        denominator = self.get('analysis.anomaly.zscore_denominator')
        if denominator not in self.VALID_DENOMINATORS:
            raise ValueError(
                f"analysis.anomaly.zscore_denominator must be one of "
                f"{', '.join(self.VALID_DENOMINATORS)}, got {denominator!r}"
            )

        output_format = self.get('output.format')
        if output_format not in self.VALID_FORMATS:
            raise ValueError(f"Unknown output.format: {output_format!r}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a dotted key such as 'analysis.thresholds.read_ms'.
        Returns default when any part of the path is missing.
        """
        node = self.config

        for part in key.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]

        return node

    def set(self, key: str, value: Any):
        """
        Set a dotted key, creating intermediate sections as needed.
        """
        *sections, leaf = key.split('.')
        node = self.config

        for section in sections:
            node = node.setdefault(section, {})

        node[leaf] = value

    def to_dict(self) -> Dict:
        """Deep copy of the effective settings."""
        return copy.deepcopy(self.config)

    def save_to_file(self, config_file: str):
        """
        Write the effective settings as YAML, in section order.
        """
        try:
            with open(Path(config_file), 'w') as f:
                yaml.safe_dump(self.config, f, default_flow_style=False, sort_keys=False)
        except OSError as e:
            self.logger.error(f"Failed to save config to {config_file}: {e}")
            raise

        self.logger.info(f"Saved configuration to {config_file}")
