"""Configuration loading utilities."""

import os
from pathlib import Path
from typing import Optional, Union

import yaml
from dotenv import load_dotenv


def get_environment() -> str:
    """Get the current environment name.

    Returns:
        Environment name from GASGUARD_ENV, defaults to 'default'.
    """
    return os.getenv("GASGUARD_ENV", "default")


def get_config_path(
    config_name: str,
    config_dir: Optional[Union[str, Path]] = None,
) -> Path:
    """Get path to a node configuration file.

    Args:
        config_name: Node name, e.g. 'sensor-node'. The file looked up is
            {config_name}-{environment}.yaml, falling back to
            {config_name}.yaml when no environment-specific file exists.
        config_dir: Directory containing config files. If None, uses
            GASGUARD_CONFIG_DIR or the 'config' directory at the repo root.

    Returns:
        Path to the configuration file.
    """
    if config_dir is None:
        config_dir = os.getenv("GASGUARD_CONFIG_DIR")
    if config_dir is None:
        config_dir = Path(__file__).parent.parent.parent / "config"

    config_dir = Path(config_dir)

    env_path = config_dir / f"{config_name}-{get_environment()}.yaml"
    if env_path.exists():
        return env_path
    return config_dir / f"{config_name}.yaml"


def load_yaml_config(
    config_path: Union[str, Path],
    load_env: bool = True,
) -> dict:
    """Load YAML configuration file.

    Args:
        config_path: Path to config file.
        load_env: Whether to load .env file first.

    Returns:
        Configuration dictionary.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If config file is invalid YAML.
    """
    if load_env:
        load_dotenv()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        return yaml.safe_load(f) or {}


def get_log_level(config: dict) -> str:
    """Extract log level from config, LOG_LEVEL in the environment wins."""
    return (os.getenv("LOG_LEVEL") or config.get("log_level", "INFO")).upper()
