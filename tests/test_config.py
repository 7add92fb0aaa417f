"""
Tests for the configuration loader.

Run with: pytest tests/test_config.py -v
"""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import bioauth.config as config_module
from bioauth.config import (
    get_config,
    get_dataset_config,
    get_evaluation_config,
    get_project_root,
    get_section,
    get_training_config,
    load_config,
)


@pytest.fixture(autouse=True)
def reset_singleton():
    """Make every test start (and end) without a cached config."""
    config_module._config_instance = None
    yield
    config_module._config_instance = None


@pytest.fixture
def custom_config(tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text(
        "training:\n"
        "  batch_size: 4\n"
        "dataset:\n"
        "  malformed_name_policy: fail\n",
        encoding="utf-8",
    )
    return path


class TestLoadConfig:

    def test_project_root_holds_config(self):
        root = get_project_root()
        assert (root / "config.yaml").is_file()
        assert (root / "bioauth" / "config.py").is_file()

    def test_project_config_has_all_sections(self):
        config = load_config()
        for section in ("dataset", "training", "device", "evaluation"):
            assert section in config

    def test_project_defaults(self):
        assert get_dataset_config()["rotation_angles"] == [45, 90, 135, 180, 225, 270, 315]
        assert get_training_config()["epochs"] is None
        assert get_evaluation_config()["negative_label"] == "other"

    def test_custom_path(self, custom_config):
        config = load_config(str(custom_config))
        assert config["training"]["batch_size"] == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path)) == {}


class TestSingleton:

    def test_cached_instance(self):
        assert get_config() is get_config()

    def test_reload_with_custom_path(self, custom_config):
        get_config()
        config = get_config(reload=True, config_path=str(custom_config))
        assert config["dataset"]["malformed_name_policy"] == "fail"
        assert get_section("training")["batch_size"] == 4

    def test_missing_section(self, custom_config):
        get_config(reload=True, config_path=str(custom_config))
        with pytest.raises(KeyError, match="Available sections"):
            get_section("evaluation")
