"""Tests for environment-driven settings and logging."""

import logging
from pathlib import Path

import pytest
import pydantic

from wbstree.config import Settings
from wbstree.logs import get_logger, setup_logging


class TestSettings:
    """Test settings defaults and environment overrides."""

    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.data_dir == Path(".wbs")
        assert settings.smart_expand_max_nodes == 500
        assert settings.view_expand_all_max_nodes == 200
        assert settings.default_expand_level == 1

    def test_overrides(self):
        settings = Settings.from_env({
            "WBSTREE_DATA_DIR": "/srv/wbs",
            "WBSTREE_SMART_EXPAND_MAX_NODES": "50",
            "WBSTREE_DEFAULT_EXPAND_LEVEL": "2",
            "WBSTREE_UNRELATED": "x",
        })
        assert settings.data_dir == Path("/srv/wbs")
        assert settings.smart_expand_max_nodes == 50
        assert settings.default_expand_level == 2

    def test_short_alias(self):
        assert Settings.from_env({"WBSTREE_EXPAND_ALL_MAX_NODES": "20"}).view_expand_all_max_nodes == 20
        settings = Settings.from_env({
            "WBSTREE_EXPAND_ALL_MAX_NODES": "20",
            "WBSTREE_VIEW_EXPAND_ALL_MAX_NODES": "30",
        })
        assert settings.view_expand_all_max_nodes == 30

    def test_empty_values_ignored(self):
        assert Settings.from_env({"WBSTREE_DEFAULT_EXPAND_LEVEL": ""}).default_expand_level == 1

    def test_invalid_values(self):
        with pytest.raises(pydantic.ValidationError):
            Settings.from_env({"WBSTREE_DEFAULT_EXPAND_LEVEL": "9"})
        with pytest.raises(pydantic.ValidationError):
            Settings.from_env({"WBSTREE_SMART_EXPAND_MAX_NODES": "many"})

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("WBSTREE_DEFAULT_EXPAND_LEVEL", "3")
        assert Settings.from_env().default_expand_level == 3


class TestLogging:
    """Test logger setup."""

    def test_child_loggers(self):
        assert get_logger("tree").name == "wbstree.tree"
        assert get_logger().name == "wbstree"

    def test_levels_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WBSTREE_LOG_DIR", str(tmp_path))
        monkeypatch.setenv("WBSTREE_LOG_LEVEL", "info")
        monkeypatch.delenv("WBSTREE_DEBUG", raising=False)
        logger = setup_logging()
        try:
            console = logger.handlers[0]
            assert console.level == logging.INFO
            assert (tmp_path / "wbstree.log").exists()
        finally:
            monkeypatch.delenv("WBSTREE_LOG_LEVEL")
            setup_logging()

    def test_debug_flag(self, monkeypatch, tmp_path):
        monkeypatch.setenv("WBSTREE_LOG_DIR", str(tmp_path))
        monkeypatch.setenv("WBSTREE_DEBUG", "1")
        logger = setup_logging()
        try:
            assert logger.handlers[0].level == logging.DEBUG
        finally:
            monkeypatch.delenv("WBSTREE_DEBUG")
            setup_logging()
