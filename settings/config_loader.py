# settings/config_loader.py
# -*- coding: utf-8 -*-
"""
Configuration loader for the bootstrap.

Handles loading settings from Pydantic model defaults, environment
variables, a YAML file and command-line arguments, applying a specific
order of precedence:
1. Pydantic Model Defaults
2. Environment Variables (BOOTSTRAP_*, loaded by BaseSettings)
3. YAML Configuration File
4. Command-Line Arguments
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .config_models import BootstrapSettings

module_logger = logging.getLogger(__name__)

CONFIG_FILE_DEFAULT = "bootstrap.yaml"


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Recursively updates `source` with values from `overrides`.

    Nested dictionaries are merged key by key; any other value in
    `overrides` replaces the one in `source` unless it is None.

    Parameters:
        source: The dictionary to be updated in place.
        overrides: The values to apply on top of `source`.

    Returns:
        The updated `source` dictionary.
    """
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and key in source
            and isinstance(source[key], dict)
        ):
            source[key] = _deep_update(source[key], value)
        elif value is not None:
            source[key] = value
        elif key not in source:
            source[key] = value
    return source


def _read_yaml_file(
    config_path: Path, logger_to_use: logging.Logger
) -> Dict[str, Any]:
    if not (config_path.exists() and config_path.is_file()):
        logger_to_use.info(
            f"Configuration file '{config_path}' not found. Using defaults, environment variables, and CLI args."
        )
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger_to_use.warning(
            f"Could not parse YAML config file '{config_path}': {e}. Using defaults and environment variables."
        )
        return {}
    except IOError as e:
        logger_to_use.warning(
            f"Could not read config file '{config_path}': {e}. Using defaults and environment variables."
        )
        return {}

    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        logger_to_use.warning(
            f"Config file '{config_path}' does not contain a valid YAML dictionary. Ignoring."
        )
        return {}
    logger_to_use.info(f"Loaded configuration from {config_path}")
    return yaml_data


def _cli_overrides(cli_args: argparse.Namespace) -> Dict[str, Any]:
    """Maps parsed CLI arguments onto the BootstrapSettings structure."""
    cli_arg_dict = vars(cli_args)
    mapped: Dict[str, Any] = {}
    apt_values: Dict[str, Any] = {}
    python_values: Dict[str, Any] = {}

    for cli_key, cli_value in cli_arg_dict.items():
        if cli_value is None:
            continue

        if cli_key == "user":
            mapped["target_user"] = cli_value
        elif cli_key == "log_level":
            mapped["log_level"] = str(cli_value).upper()
        elif cli_key == "log_file":
            mapped["log_file"] = cli_value
        elif cli_key == "no_color" and cli_value:
            mapped["color"] = False
        elif cli_key == "timeout":
            mapped["timeout_seconds"] = int(cli_value)
        elif cli_key == "compose_up":
            mapped["compose_project_dir"] = cli_value
        elif cli_key == "skip_upgrade" and cli_value:
            apt_values["upgrade"] = False
        elif cli_key == "skip_python" and cli_value:
            python_values["enabled"] = False
        elif cli_key == "python_version":
            python_values["version"] = cli_value
        elif cli_key == "no_alternatives" and cli_value:
            python_values["manage_alternatives"] = False

    if apt_values:
        mapped["apt"] = apt_values
    if python_values:
        mapped["python"] = python_values
    return mapped


def load_app_settings(
    cli_args: Optional[argparse.Namespace] = None,
    config_file_path: Optional[str] = None,
    current_logger: Optional[logging.Logger] = None,
) -> BootstrapSettings:
    """
    Loads the bootstrap settings with the following precedence:
    1. Pydantic Model Defaults.
    2. Environment Variables (BaseSettings reads BOOTSTRAP_* on construction).
    3. Values from the YAML configuration file.
    4. Command-Line Arguments (highest precedence, overrides all else).

    Args:
        cli_args: Parsed command-line arguments (from argparse).
        config_file_path: Path to the YAML configuration file. Falls back to
            `cli_args.config_file`, then to 'bootstrap.yaml'.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        A validated BootstrapSettings instance.

    Raises:
        SystemExit: When the merged configuration fails validation.
    """
    logger_to_use = current_logger if current_logger else module_logger

    if config_file_path is None:
        config_file_path = (
            getattr(cli_args, "config_file", None) or CONFIG_FILE_DEFAULT
        )

    try:
        settings_after_env_and_defaults = BootstrapSettings()
    except Exception as e:
        logger_to_use.error(f"Configuration validation failed: {e}")
        raise SystemExit(f"Configuration error: {e}") from e

    current_values_dict = settings_after_env_and_defaults.model_dump(
        mode="json", exclude_defaults=False
    )

    yaml_data = _read_yaml_file(Path(config_file_path), logger_to_use)
    if yaml_data:
        current_values_dict = _deep_update(current_values_dict, yaml_data)

    if cli_args:
        current_values_dict = _deep_update(
            current_values_dict, _cli_overrides(cli_args)
        )

    try:
        final_settings = BootstrapSettings(**current_values_dict)
    except Exception as e:  # Catch Pydantic validation errors etc.
        logger_to_use.error(f"Configuration validation failed: {e}")
        raise SystemExit(f"Configuration error: {e}") from e

    logger_to_use.debug("Successfully loaded and validated bootstrap settings")
    return final_settings
