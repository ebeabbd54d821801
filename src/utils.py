"""
Shared helper functions and utilities.

This module contains logging setup and configuration loading used across the
project.
"""

import copy
import json
import logging
import os

from options import ConfigurationError, DetectionOptions
from trimming import TrimConfiguration


def setup_logging(level=logging.INFO):
    """Set up logging configuration.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logger = logging.getLogger(__name__)
    logger.info("Logging initialized")


DEFAULT_CONFIG = {
    'logging_level': 'INFO',

    # Marker scanning and staged detection
    'detection': {
        'border_bits': 1,
        'min_cell_px': 4,
        'max_cell_px': 14,
        'rotations': [],  # Clockwise degrees, e.g. [90, 180, 270]
        'binary_threshold': None,  # 0.0-1.0, None disables the binarized stages
        'margin': 2,
        'max_hamming_distance': 2,
        'two_means_iterations': 3,
        'scale_tolerance': 0.15,
        'max_workers': None,  # None = one worker per CPU
    },

    # Anchor box rendering (box_id and pixel size are given per box)
    'generator': {
        'marker_pixel_size': 60,
        'marker_border_bits': 1,
        'marker_padding': 5,
        'outer_markers': False,
    },

    # Post-extraction cropping
    'trimming': {
        'method': 'heuristic',  # 'heuristic' or 'adaptive'
        'dark_value': 30,
        'min_saturation': 40,
        'min_color_value': 60,
        'adaptive_block_size': 25,
        'adaptive_c': 10.0,
        'morphology': True,
        'kernel_size': 3,
        'max_blobs': 10,
        'min_blob_area': 8,
        'padding': 10,
        'corner_strip': 6,
    },
}


def get_config(config_path=None):
    """Load configuration from file or return defaults.

    Sections present in the file are merged key by key over the defaults.

    Args:
        config_path: Path to configuration file (optional)

    Returns:
        dict: Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                loaded_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.warning("Failed to load config from %s: %s", config_path, e)
            return config

        for key, value in loaded_config.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value
        logging.info("Configuration loaded from %s", config_path)

    return config


def save_config(config, config_path):
    """Save configuration to file.

    Args:
        config: Configuration dictionary
        config_path: Path to save configuration file

    Returns:
        bool: True if save successful, False otherwise
    """
    try:
        with open(config_path, 'w') as f:
            json.dump(config, f, indent=4)
        logging.info("Configuration saved to %s", config_path)
        return True
    except (OSError, TypeError) as e:
        logging.error("Failed to save config to %s: %s", config_path, e)
        return False


def validate_config(config):
    """Validate configuration parameters.

    Args:
        config: Configuration dictionary

    Returns:
        bool: True if valid, False otherwise
    """
    for key in ('detection', 'trimming'):
        if key not in config:
            logging.error("Missing required config key: %s", key)
            return False

    try:
        DetectionOptions.from_config(config['detection'])
        TrimConfiguration.from_config(config['trimming'])
    except (ConfigurationError, TypeError) as e:
        logging.error("Invalid configuration: %s", e)
        return False

    if logging.getLevelName(str(config.get('logging_level', 'INFO')).upper()) not in (
        logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL
    ):
        logging.error("Unknown logging level: %s", config.get('logging_level'))
        return False

    logging.info("Configuration validated successfully")
    return True
