"""
bioauth settings: dataset organization, training, device and evaluation.

Values live in config.yaml at the project root (one top-level section per
concern) and are read once per process; scripts apply their CLI flags on
top of the loaded sections.

Usage:
    from bioauth.config import get_training_config
    batch_size = get_training_config()["batch_size"]
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional


# Cached result of load_config(), shared by every get_* helper
_config_instance: Optional[Dict[str, Any]] = None


def get_project_root() -> Path:
    """
    Return the nearest ancestor of this package that holds config.yaml.

    Raises:
        FileNotFoundError: If no ancestor directory has a config.yaml.
    """
    current_dir = Path(__file__).resolve().parent

    while current_dir != current_dir.parent:
        config_path = current_dir / "config.yaml"
        if config_path.exists():
            return current_dir
        current_dir = current_dir.parent

    raise FileNotFoundError(f"No config.yaml found above {Path(__file__).resolve().parent}")


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse a bioauth YAML settings file.

    Args:
        config_path: Settings file to read. Defaults to config.yaml in the
                     project root.

    Returns:
        Dict of sections; an empty file gives {}.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the config file contains invalid YAML.
    """
    if config_path is None:
        config_path = get_project_root() / "config.yaml"
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    return config or {}


def get_config(reload: bool = False, config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Return the cached settings, loading them on first use.

    Args:
        reload: Re-read the file even if settings are cached.
        config_path: Settings file for this (re)load; see load_config.
    """
    global _config_instance

    if _config_instance is None or reload:
        _config_instance = load_config(config_path)

    return _config_instance


def get_section(section_name: str) -> Dict[str, Any]:
    """
    Return one top-level section ("dataset", "training", "device" or
    "evaluation") of the cached settings.

    Raises:
        KeyError: If the section doesn't exist in the configuration.
    """
    config = get_config()

    if section_name not in config:
        raise KeyError(
            f"Configuration section '{section_name}' not found. "
            f"Available sections: {list(config.keys())}"
        )

    return config[section_name]


def get_dataset_config() -> Dict[str, Any]:
    """Settings for format / copy / auth / augment / oversample."""
    return get_section("dataset")


def get_training_config() -> Dict[str, Any]:
    """Split, hyperparameter and artifact settings."""
    return get_section("training")


def get_device_config() -> Dict[str, Any]:
    """CUDA / CPU selection."""
    return get_section("device")


def get_evaluation_config() -> Dict[str, Any]:
    """Negative label and plot output settings."""
    return get_section("evaluation")
