"""Application settings and configuration management."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import yaml

from oitcalc.dosing.models import DEFAULT_CONFIG, DosingStrategy, OITCalcError, ProtocolConfig
from oitcalc.dosing.numeric import to_decimal


class ConfigError(OITCalcError):
    """Raised when the config file holds a value that cannot be used."""

    pass


def _default_config_dir() -> Path:
    """Return the default configuration directory."""
    return Path.home() / ".oitcalc"


def default_config_path() -> Path:
    """Return the default config file path."""
    return _default_config_dir() / "config.yaml"


@dataclass
class ProtocolSettings:
    """Overrides for the dosing limits and tolerances.

    Amounts are g or ml; tolerances and concentrations are ratios.
    """

    min_measurable_mass: Decimal = DEFAULT_CONFIG.min_measurable_mass
    min_measurable_volume: Decimal = DEFAULT_CONFIG.min_measurable_volume
    min_servings_for_mix: Decimal = DEFAULT_CONFIG.min_servings_for_mix
    protein_tolerance: Decimal = DEFAULT_CONFIG.protein_tolerance
    default_food_a_dilution_threshold: Decimal = DEFAULT_CONFIG.default_food_a_dilution_threshold
    default_food_b_threshold: Decimal = DEFAULT_CONFIG.default_food_b_threshold
    max_solid_concentration: Decimal = DEFAULT_CONFIG.max_solid_concentration
    max_mix_water: Decimal = DEFAULT_CONFIG.max_mix_water
    max_daily_amount: Decimal = DEFAULT_CONFIG.max_daily_amount
    min_steps: int = DEFAULT_CONFIG.min_steps


@dataclass
class DefaultsConfig:
    """Default values for various operations."""

    dosing_strategy: DosingStrategy = DosingStrategy.STANDARD
    output_format: str = "table"  # "table" or "json"


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "WARNING"


@dataclass
class Settings:
    """Main application settings."""

    protocol: ProtocolSettings = field(default_factory=ProtocolSettings)
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from YAML file or return defaults.

        Args:
            config_path: Path to config.yaml. If None, uses ~/.oitcalc/config.yaml

        Returns:
            Settings instance

        Raises:
            ConfigError: If a value cannot be parsed
        """
        if config_path is None:
            config_path = default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        settings = cls()

        # Parse protocol overrides
        if "protocol" in data:
            proto_data = data["protocol"] or {}
            for f_ in fields(ProtocolSettings):
                if f_.name not in proto_data:
                    continue
                value = proto_data[f_.name]
                try:
                    if f_.name == "min_steps":
                        parsed = int(value)
                    else:
                        parsed = to_decimal(value)
                except (InvalidOperation, TypeError, ValueError) as e:
                    raise ConfigError(
                        f"{config_path}: protocol.{f_.name} must be a number, got {value!r}"
                    ) from e
                setattr(settings.protocol, f_.name, parsed)

        # Parse defaults
        if "defaults" in data:
            def_data = data["defaults"] or {}
            if "dosing_strategy" in def_data:
                try:
                    settings.defaults.dosing_strategy = DosingStrategy(
                        str(def_data["dosing_strategy"]).upper()
                    )
                except ValueError as e:
                    raise ConfigError(
                        f"{config_path}: unknown dosing strategy "
                        f"{def_data['dosing_strategy']!r}"
                    ) from e
            if "output_format" in def_data:
                settings.defaults.output_format = def_data["output_format"]

        # Parse logging
        if "logging" in data:
            log_data = data["logging"] or {}
            if "level" in log_data:
                settings.logging.level = str(log_data["level"]).upper()

        return settings

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save current settings to YAML file.

        Args:
            config_path: Path to save config.yaml. If None, uses ~/.oitcalc/config.yaml
        """
        if config_path is None:
            config_path = default_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)

        protocol = {}
        for f_ in fields(ProtocolSettings):
            value = getattr(self.protocol, f_.name)
            protocol[f_.name] = value if isinstance(value, int) else float(value)

        data = {
            "protocol": protocol,
            "defaults": {
                "dosing_strategy": self.defaults.dosing_strategy.value,
                "output_format": self.defaults.output_format,
            },
            "logging": {
                "level": self.logging.level,
            },
        }

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def protocol_config(self) -> ProtocolConfig:
        """Build the immutable ProtocolConfig from the protocol overrides."""
        overrides = {f_.name: getattr(self.protocol, f_.name) for f_ in fields(ProtocolSettings)}
        return DEFAULT_CONFIG.with_overrides(**overrides)


# Global settings instance (lazy loaded)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance, loading from disk if needed."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reload_settings() -> Settings:
    """Force reload settings from disk."""
    global _settings
    _settings = Settings.load()
    return _settings
