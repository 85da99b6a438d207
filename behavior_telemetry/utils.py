# ABOUTME: Shared utilities for behavioral telemetry: privacy hashing, config and logging
import copy
import logging
import math
import time
import uuid
from numbers import Real
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import yaml


# Seed and finalizer constants for the key obfuscation hash
_HASH_SEED = 0x811C9DC5
_MASK_32 = 0xFFFFFFFF


def hash_key(key: Any) -> str:
    """Map a raw key identity to an opaque, deterministic token.

    Rolling shift-and-subtract mix over the character codes, folded to 32 bits and
    passed through an avalanche finalizer so single characters do not map onto their
    own code points. This is obfuscation for telemetry, not a cryptographic hash.
    """
    value = _HASH_SEED
    for char in str(key):
        value = ((value << 5) - value + ord(char)) & _MASK_32

    value ^= value >> 16
    value = (value * 0x85EBCA6B) & _MASK_32
    value ^= value >> 13
    value = (value * 0xC2B2AE35) & _MASK_32
    value ^= value >> 16

    if value & 0x80000000:
        value -= 0x100000000
    return f"key_{abs(value)}"


def generate_session_id(now_ms: Optional[float] = None) -> str:
    """Generate a session identifier: creation time plus a random suffix."""
    if now_ms is None:
        now_ms = time.time() * 1000
    return f"session_{int(now_ms)}_{uuid.uuid4().hex[:9]}"


def safe_mean(values: Iterable[float]) -> float:
    """Arithmetic mean, 0.0 for an empty input."""
    values = list(values)
    if not values:
        return 0.0
    return float(sum(values) / len(values))


def population_variance(values: Iterable[float], mean: Optional[float] = None) -> float:
    """Population variance, 0.0 for an empty input."""
    values = list(values)
    if not values:
        return 0.0
    if mean is None:
        mean = safe_mean(values)
    return float(sum((v - mean) ** 2 for v in values) / len(values))


def coefficient_consistency(values: Iterable[float]) -> float:
    """Return 1 - stddev/mean, or 0.0 when the mean is not positive."""
    values = list(values)
    mean = safe_mean(values)
    if mean <= 0:
        return 0.0
    return 1 - math.sqrt(population_variance(values, mean)) / mean


def clamp_unit(value: float) -> float:
    """Clamp to [0, 1]; non-finite values collapse to 0."""
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))


def is_positive_number(value: Any) -> bool:
    """True for finite numbers above zero; bools do not count."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(value) and value > 0


def as_mapping(metadata: Any) -> Dict[str, Any]:
    """Treat anything that is not a mapping as empty metadata."""
    if isinstance(metadata, dict):
        return metadata
    return {}


DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "keystroke": {
        "buffer_size": 100,
        "pause_threshold_ms": 1000,
        "burst_threshold_ms": 100,
        "rhythm_window": 5,
        "fatigue_window": 10,
    },
    "metrics": {
        "max_history": 1000,
        "session_timeout_ms": 30 * 60 * 1000,
        "fatigue_window": 10,
    },
    "sequence": {
        "buffer_size": 50,
        "context_switch_threshold_ms": 2000,
        "focus_loss_threshold_ms": 30000,
        "pattern_change_threshold": 0.05,
        "max_sequences": 100,
        "max_context_switches": 500,
        "recent_sequence_window": 10,
        "min_sequences_for_change": 5,
        "max_focus_segments": 500,
    },
    "output": {
        "reports_directory": "./reports",
        "log_level": "INFO",
    },
}


class ConfigManager:
    """Configuration management with defaults and dot-notation lookup."""

    def __init__(self, config_path: Optional[Union[str, Path]] = "config.yaml"):
        self.config_path = Path(config_path) if config_path else None
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load the YAML file and merge it over the defaults."""
        config = self._default_config()
        if self.config_path is None:
            return config

        try:
            with open(self.config_path, "r") as f:
                loaded = yaml.safe_load(f)
        except FileNotFoundError:
            logging.warning(f"Config file {self.config_path} not found, using defaults")
            return config
        except yaml.YAMLError as e:
            logging.error(f"Error parsing config file: {e}")
            return config

        if not isinstance(loaded, dict):
            if loaded is not None:
                logging.warning(
                    f"Config file {self.config_path} is not a mapping, using defaults"
                )
            return config

        for section, values in loaded.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section].update(values)
            else:
                config[section] = values
        return config

    def _default_config(self) -> Dict[str, Any]:
        """Default configuration values."""
        return copy.deepcopy(DEFAULT_CONFIG)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value with dot notation."""
        keys = key.split(".")
        value = self.config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def get_positive(self, key: str, default: Union[int, float], integer: bool = False) -> Any:
        """Get a positive numeric setting; invalid values fall back to `default` with a warning."""
        value = self.get(key, default)
        if integer and is_positive_number(value):
            value = int(value)
        if not is_positive_number(value):
            logging.warning(f"Invalid value for {key}: {value!r}, using {default}")
            return default
        return value


def setup_logging(level: str = "INFO", log_file: Optional[Union[str, Path]] = None) -> None:
    """Configure logging for the application."""
    handlers: list = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
