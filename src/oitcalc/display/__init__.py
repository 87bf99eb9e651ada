"""Terminal and JSON output formatters."""

from oitcalc.display.formatters import JSONFormatter, TableFormatter

__all__ = ["TableFormatter", "JSONFormatter"]
