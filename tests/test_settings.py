"""Tests for settings and logging configuration."""

from __future__ import annotations

import logging
from decimal import Decimal

import pytest
import yaml

from oitcalc.app_logging import configure_logging
from oitcalc.config import ConfigError, Settings, get_settings, reload_settings
from oitcalc.dosing.models import DEFAULT_CONFIG, DosingStrategy


class TestSettingsLoad:
    """Tests for Settings.load."""

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = Settings.load(tmp_path / "config.yaml")

        assert settings.protocol_config() == DEFAULT_CONFIG
        assert settings.defaults.dosing_strategy == DosingStrategy.STANDARD
        assert settings.logging.level == "WARNING"

    def test_overrides(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            yaml.dump(
                {
                    "protocol": {"protein_tolerance": 0.1, "min_steps": 3},
                    "defaults": {"dosing_strategy": "slow", "output_format": "json"},
                    "logging": {"level": "debug"},
                }
            )
        )
        settings = Settings.load(path)
        config = settings.protocol_config()

        assert config.protein_tolerance == Decimal("0.1")
        assert config.min_steps == 3
        assert config.max_mix_water == DEFAULT_CONFIG.max_mix_water
        assert settings.defaults.dosing_strategy == DosingStrategy.SLOW
        assert settings.defaults.output_format == "json"
        assert settings.logging.level == "DEBUG"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Settings.load(path).protocol_config() == DEFAULT_CONFIG

    def test_bad_number(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"protocol": {"max_mix_water": "lots"}}))

        with pytest.raises(ConfigError, match="max_mix_water"):
            Settings.load(path)

    def test_bad_strategy(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump({"defaults": {"dosing_strategy": "FAST"}}))

        with pytest.raises(ConfigError, match="dosing strategy"):
            Settings.load(path)


class TestSettingsSave:
    """Tests for Settings.save."""

    def test_save_then_load(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        settings = Settings()
        settings.protocol.max_daily_amount = Decimal("100")
        settings.defaults.dosing_strategy = DosingStrategy.SLOW
        settings.save(path)

        loaded = Settings.load(path)

        assert loaded.protocol_config() == DEFAULT_CONFIG.with_overrides(
            max_daily_amount=Decimal("100")
        )
        assert loaded.defaults.dosing_strategy == DosingStrategy.SLOW

    def test_saved_file_is_plain_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        Settings().save(path)
        data = yaml.safe_load(path.read_text())

        assert data["protocol"]["protein_tolerance"] == 0.05
        assert data["protocol"]["min_steps"] == 5
        assert data["defaults"]["dosing_strategy"] == "STANDARD"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_level_by_name(self):
        logger = configure_logging("debug")

        assert logger.name == "oitcalc"
        assert logger.level == logging.DEBUG

    def test_single_handler(self):
        configure_logging(logging.INFO)
        logger = configure_logging(logging.WARNING)

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING

    def test_unknown_name_falls_back(self):
        assert configure_logging("chatty").level == logging.WARNING


class TestGlobalSettings:
    """Tests for get_settings and reload_settings."""

    def test_reload_reads_home_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        config_dir = tmp_path / ".oitcalc"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text(yaml.dump({"protocol": {"min_steps": 7}}))

        settings = reload_settings()

        assert settings.protocol_config().min_steps == 7
        assert get_settings() is settings
