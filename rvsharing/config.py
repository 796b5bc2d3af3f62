# File: rvsharing/config.py
# Location: rvsharing/rvsharing/config.py

"""
Configuration management module.

This module handles loading configuration from a JSON file.
All default values reside in config.json, which is included in
the installed package directory.

If no config_file is provided, this module attempts to load the default
config.json from the package installation directory.
"""

import json
import os
from typing import Any, Dict, Optional


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    A user-supplied file only needs to contain the keys it overrides; missing
    keys are filled from the packaged defaults.

    Parameters
    ----------
    config_file : str, optional
        Path to a configuration file in JSON format. If None, only the
        package-installed 'config.json' is used.

    Returns
    -------
    dict
        Configuration dictionary.

    Raises
    ------
    FileNotFoundError
        If the specified configuration file does not exist.
    ValueError
        If there is an error parsing the JSON configuration file.
    """
    default_file = os.path.join(os.path.dirname(__file__), "config.json")
    config = _read_json(default_file)

    if config_file:
        config.update(_read_json(config_file))

    return config


def _read_json(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Configuration file '{path}' not found.")

    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Error parsing JSON configuration: {e}")

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file '{path}' must contain a JSON object.")
    return data
