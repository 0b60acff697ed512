"""
Configuration loading for the torchtracks library.

Configurations are nested dictionaries, usually read from YAML files:

    feature_detector:
      type: harris
      harris:
        max_features: 500
    descriptor_extractor:
      type: brief
    feature_matcher:
      type: brute_force
      brute_force:
        method: ratio_test
    loop_closer:
      type: ""
"""
import copy
import logging
from pathlib import Path
from typing import Dict, Union

import yaml

from .exceptions import ConfigurationError
from .frontend.tracking.core import CoreFeatureTracker

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "feature_detector": {
        "type": "harris",
        "harris": {"max_features": 1000},
    },
    "descriptor_extractor": {
        "type": "brief",
        "brief": {"n_bits": 256, "patch_size": 31},
    },
    "feature_matcher": {
        "type": "brute_force",
        "brute_force": {"method": "ratio_test", "ratio_threshold": 0.8, "cross_check": True},
    },
    "loop_closer": {"type": ""},
}


def default_config() -> Dict:
    """Get a copy of the default tracker configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def load_config(path: Union[str, Path]) -> Dict:
    """
    Load a configuration dictionary from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Configuration dictionary (empty for an empty file)
    """
    path = Path(path)
    logger.info(f"Loading configuration from {path}")

    with open(path, "r") as f:
        config = yaml.safe_load(f)

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(
            str(path), f"expected a mapping at the top level, got {type(config).__name__}"
        )
    return config


def create_tracker(config: Union[Dict, str, Path, None] = None) -> CoreFeatureTracker:
    """
    Build a validated CoreFeatureTracker.

    Args:
        config: Configuration dictionary, path to a YAML file, or None for
            the default configuration

    Returns:
        Configured tracker
    """
    if config is None:
        config = default_config()
    elif not isinstance(config, dict):
        config = load_config(config)

    if not CoreFeatureTracker.check_configuration(config):
        raise ConfigurationError(
            CoreFeatureTracker.__name__, "invalid or incomplete configuration"
        )

    return CoreFeatureTracker(config=config)
