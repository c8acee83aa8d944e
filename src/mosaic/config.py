"""Configuration loading."""

import copy
import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/default.yaml")

DEFAULT_CONFIG: dict[str, Any] = {
    "agent": {"id": "mosaic-agent"},
    "llm": {
        "provider": "anthropic",
        "anthropic": {
            "model": "claude-sonnet-4-20250514",
            "max_tokens": 4096,
            "temperature": 0.7,
            "api_key_env": "ANTHROPIC_API_KEY",
        },
    },
    "engine": {
        "planner": {"max_depth": 3},
        "execution": {"max_steps": 100},
    },
    "items": {
        "persistence": {
            "enabled": True,
            "autosave": True,
            "state_file": "./.mosaic/state.json",
        },
    },
    "tools": {
        "filesystem": {"enabled": True, "root": "./workspace"},
        "web_fetch": {"enabled": True},
    },
    "actions": {"output_file": None},
    "hooks": {"enabled": True, "config_file": "./config/hooks.yaml"},
    "logging": {
        "level": "INFO",
        "file": "./.mosaic/logs/mosaic.log",
        "console": False,
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: Optional[Path] = None, load_env: bool = True) -> dict[str, Any]:
    """
    Load configuration from YAML on top of the built-in defaults.

    Args:
        path: YAML file; defaults to config/default.yaml when it exists
        load_env: Also load a .env file into the environment

    Returns:
        Merged configuration dict

    Raises:
        FileNotFoundError: If an explicit path does not exist
    """
    if load_env:
        load_dotenv()

    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            logger.debug("No config file found, using defaults")
            return copy.deepcopy(DEFAULT_CONFIG)
        path = DEFAULT_CONFIG_PATH

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        user_config = yaml.safe_load(f) or {}

    return deep_merge(DEFAULT_CONFIG, user_config)
