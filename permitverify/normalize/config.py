"""
Configuration utilities for PermitVerify.

Provides configuration loading and validation for the normalization,
matching, merge and scoring components.
"""

import copy
import logging
import yaml
from typing import Dict, Any
from pathlib import Path

from ..models import KNOWN_CITIES
from .address_normalizer import DEFAULT_STREET_TYPES, DEFAULT_UNIT_DESIGNATORS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/permit_verify.yaml"


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load PermitVerify configuration from YAML file.

    Sections missing from the file are filled from the defaults.

    Args:
        config_path: Path to configuration file

    Returns:
        Configuration dictionary
    """
    config_file = Path(config_path)
    if not config_file.exists():
        logger.warning(f"Configuration file {config_path} not found, using defaults")
        return get_default_config()

    try:
        with open(config_file, 'r') as f:
            file_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse configuration {config_path}: {e}")
        return get_default_config()

    config = merge_configs(get_default_config(), file_config)
    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_default_config() -> Dict[str, Any]:
    """
    Get default PermitVerify configuration.

    Returns:
        Default configuration dictionary
    """
    return {
        "normalization": {
            "address": {
                "street_types": {
                    "street": "st", "avenue": "ave", "boulevard": "blvd",
                    "road": "rd", "drive": "dr", "lane": "ln",
                    "parkway": "pkwy", "court": "ct", "place": "pl",
                    "circle": "cir"
                },
                "unit_designators": ["suite", "ste", "unit", "apt"]
            }
        },
        "blocking": {
            "max_block_size": 5000
        },
        "matching": {
            "proximity_meters": 50.0,
            "earth_radius_meters": 6371000.0,
            "short_address_length": 20,
            "short_address_threshold": 90,
            "default_threshold": 85
        },
        "merge": {
            "grouping": "greedy",
            "multi_signal_bonus": 15
        },
        "scoring": {
            "lead": {
                "weights": {
                    "valuation": 40,
                    "confidence": 40,
                    "recency": 15,
                    "enrichment": 5
                },
                "valuation_cap": 1000000,
                "recency_threshold_days": 90
            },
            "recalibration": {
                "signal_floors": {
                    "Tier 1": 85, "Very Strong": 85,
                    "Tier 2": 72, "Strong": 72,
                    "Tier 3": 50, "Moderate": 50,
                    "Weak": 25,
                    "None": 5
                },
                "imbalance_penalty": 12,
                "trade_bonus": 5,
                "small_project_valuation": 5000,
                "small_project_cap": 40,
                "mid_range_valuation": 50000,
                "mid_range_bonus": 5,
                "high_value_valuation": 100000,
                "high_value_bonus": 12,
                "maintenance_cap": 30,
                "commercial_trigger_min": 35,
                "maintenance_keywords": [
                    "maintenance", "repair", "replace hvac", "filter", "emergency",
                    "patch", "fix", "swap", "roof replacement", "sewer line", "paving",
                    "stucco", "parking lot", "reseal", "restore", "repaint", "upgrade"
                ]
            }
        },
        "schema": {
            "required_columns": ["id", "address", "city", "valuation", "applied_date", "data_source"],
            "known_cities": list(KNOWN_CITIES),
            "drop_unknown_cities": False
        }
    }


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate PermitVerify configuration.

    Args:
        config: Configuration dictionary

    Returns:
        True if configuration is valid, False otherwise
    """
    required_sections = ["normalization", "matching", "merge", "scoring"]

    for section in required_sections:
        if section not in config:
            logger.error(f"Missing required configuration section: {section}")
            return False

    # Validate address configuration
    address_config = config.get("normalization", {}).get("address", {})
    street_types = address_config.get("street_types", DEFAULT_STREET_TYPES)
    if not isinstance(street_types, dict) or not street_types:
        logger.error("normalization.address.street_types must be a non-empty mapping")
        return False

    unit_designators = address_config.get("unit_designators", DEFAULT_UNIT_DESIGNATORS)
    if not isinstance(unit_designators, list) or not unit_designators:
        logger.error("normalization.address.unit_designators must be a non-empty list")
        return False

    # Validate matching configuration
    matching_config = config.get("matching", {})
    for key in ("short_address_threshold", "default_threshold"):
        threshold = matching_config.get(key, 85)
        if not isinstance(threshold, (int, float)) or not 0 <= threshold <= 100:
            logger.error(f"matching.{key} must be a number between 0 and 100")
            return False

    proximity = matching_config.get("proximity_meters", 50.0)
    if not isinstance(proximity, (int, float)) or proximity < 0:
        logger.error("matching.proximity_meters must be a non-negative number")
        return False

    # Validate merge configuration
    grouping = config.get("merge", {}).get("grouping", "greedy")
    if grouping not in ("greedy", "connected_components"):
        logger.error("merge.grouping must be 'greedy' or 'connected_components'")
        return False

    # Validate lead scoring weights
    weights = config.get("scoring", {}).get("lead", {}).get("weights", {})
    if any(not isinstance(w, (int, float)) or w < 0 for w in weights.values()):
        logger.error("scoring.lead.weights must be non-negative numbers")
        return False

    lead_config = config.get("scoring", {}).get("lead", {})
    for key in ("valuation_cap", "recency_threshold_days"):
        value = lead_config.get(key, 1)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            logger.error(f"scoring.lead.{key} must be a positive number")
            return False

    logger.info("Configuration validation passed")
    return True


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries.

    Args:
        base_config: Base configuration
        override_config: Override configuration

    Returns:
        Merged configuration
    """
    merged = copy.deepcopy(base_config)

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def save_config(config: Dict[str, Any], config_path: str) -> None:
    """
    Save PermitVerify configuration to YAML file.

    Args:
        config: Configuration dictionary
        config_path: Path to save configuration
    """
    config_file = Path(config_path)
    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, indent=2)

    logger.info(f"Saved configuration to {config_path}")
