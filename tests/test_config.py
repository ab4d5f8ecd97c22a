"""
Tests for config.py
"""

import json

import pytest
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pydantic import ValidationError

from docgen_progress.config import ReporterConfig, config_path, load_config, save_config


class TestReporterConfig:
    """Tests for ReporterConfig defaults and validation."""

    def test_defaults(self, home):
        cfg = ReporterConfig()

        assert cfg.duplicate_policy == "error"
        assert cfg.unknown_task_policy == "ignore"
        assert cfg.auto_complete_on_full is False
        assert cfg.interrupt_debounce_seconds == 0.5
        assert cfg.force_quit_exit_code == 130
        assert cfg.checkpoint_path == str(home / ".docgen-progress" / "checkpoint.json")

    def test_invalid_policy(self):
        with pytest.raises(ValidationError):
            ReporterConfig(duplicate_policy="merge")

    def test_exit_code_range(self):
        with pytest.raises(ValidationError):
            ReporterConfig(force_quit_exit_code=0)

    def test_negative_debounce(self):
        with pytest.raises(ValidationError):
            ReporterConfig(interrupt_debounce_seconds=-1)

    def test_validate_ready(self):
        with pytest.raises(ValueError):
            ReporterConfig(checkpoint_path="").validate_ready()


class TestPersistence:
    def test_missing_file_gives_defaults(self, home):
        assert load_config() == ReporterConfig()

    def test_save_and_load(self, home):
        save_config(ReporterConfig(duplicate_policy="reset", escape_key=False))

        cfg = load_config()

        assert cfg.duplicate_policy == "reset"
        assert cfg.escape_key is False
        assert json.loads(config_path().read_text(encoding="utf-8"))["duplicate_policy"] == "reset"
