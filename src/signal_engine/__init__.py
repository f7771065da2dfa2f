"""Stream signal engine: trade extraction, correlation and live-channel monitoring."""

__version__ = "0.1.0"
