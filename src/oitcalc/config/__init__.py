"""Settings loaded from ~/.oitcalc/config.yaml."""

from oitcalc.config.settings import ConfigError, Settings, get_settings, reload_settings

__all__ = ["Settings", "ConfigError", "get_settings", "reload_settings"]
