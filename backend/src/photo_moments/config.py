"""
Configuration loader for Photo Moments.

Loads config.json from the data home (see paths.get_config_path), merges it
with defaults and applies environment overrides. The "clustering" section
maps onto ClusteringCriteria and the "ranking" section onto RankingWeights.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .criteria import ClusteringCriteria, ConfigurationError, RankingWeights
from .paths import get_config_path

logger = logging.getLogger(__name__)

ENV_PREFIX = "PHOTO_MOMENTS_"

# Environment variable suffix -> (section, key, type)
ENV_MAP = {
    'VISUAL_THRESHOLD': ('clustering', 'visual_similarity_threshold', float),
    'TIME_GAP': ('clustering', 'time_gap_threshold', float),
    'LOCATION_RADIUS': ('clustering', 'location_radius', float),
    'MAX_CLUSTER_SIZE': ('clustering', 'max_cluster_size', int),
    'BURST_WINDOW': ('clustering', 'burst_window', float),
    'BATCH_SIZE': ('clustering', 'batch_size', int),
    'SUB_CLUSTERING': ('clustering', 'enable_sub_clustering', bool),
}


def get_default_config() -> Dict[str, Dict[str, Any]]:
    """
    Return default configuration.
    """
    return {
        "clustering": ClusteringCriteria().to_dict(),
        "ranking": RankingWeights().to_dict(),
        "output": {
            "format": "detailed",
            "min_confidence": 0.0,
            "show_progress": True
        }
    }


def load_config(config_path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load configuration from config.json, falling back to defaults.

    Args:
        config_path: Explicit config file (default: paths.get_config_path())

    Raises:
        ConfigurationError: If an explicit config_path doesn't exist, or the
            file isn't valid JSON
    """
    if config_path:
        config_path = Path(config_path)
        if not config_path.is_file():
            raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        config_path = get_config_path()

    if not config_path.is_file():
        logger.info(f"No config file at {config_path}, using defaults")
        return get_default_config()

    try:
        with open(config_path, 'r') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}") from e

    logger.info(f"Loaded config from: {config_path}")
    return _process_config(config)


def _process_config(config: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Merge a loaded config with defaults, section by section.
    """
    defaults = get_default_config()

    for section, values in defaults.items():
        if section not in config:
            config[section] = values
        elif isinstance(values, dict):
            for key, default_value in values.items():
                if key not in config[section]:
                    config[section][key] = default_value

    return config


def _convert(value: str, value_type: type) -> Any:
    if value_type is bool:
        return value.lower() in ('1', 'true', 'yes')
    try:
        return value_type(value)
    except ValueError as e:
        raise ConfigurationError(f"Cannot convert {value!r} to {value_type.__name__}") from e


def get_env_overrides() -> Dict[str, Dict[str, Any]]:
    """
    Get configuration overrides from PHOTO_MOMENTS_* environment variables.
    """
    overrides: Dict[str, Dict[str, Any]] = {}

    for suffix, (section, key, value_type) in ENV_MAP.items():
        env_var = ENV_PREFIX + suffix
        value = os.getenv(env_var)
        if value is None:
            continue

        overrides.setdefault(section, {})[key] = _convert(value, value_type)
        logger.info(f"Environment override: {env_var} -> {section}.{key} = {overrides[section][key]}")

    return overrides


def get_config(config_path: Optional[Path] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load config and apply environment overrides.
    """
    config = load_config(config_path)
    overrides = get_env_overrides()

    for section, values in overrides.items():
        if section in config:
            config[section].update(values)
        else:
            config[section] = values

    return config


def criteria_from_config(config: Dict[str, Dict[str, Any]]) -> ClusteringCriteria:
    """Build ClusteringCriteria from the "clustering" section.

    Raises:
        ConfigurationError: On unknown keys or invalid values
    """
    section = dict(config.get("clustering", {}))
    known = set(ClusteringCriteria().to_dict())
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigurationError(f"Unknown clustering options: {', '.join(unknown)}")
    return ClusteringCriteria(**section)


def weights_from_config(config: Dict[str, Dict[str, Any]]) -> RankingWeights:
    """Build RankingWeights from the "ranking" section.

    Raises:
        ConfigurationError: On unknown keys or invalid weights
    """
    section = dict(config.get("ranking", {}))
    known = set(RankingWeights().to_dict())
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigurationError(f"Unknown ranking weights: {', '.join(unknown)}")
    return RankingWeights(**section)
