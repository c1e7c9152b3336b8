"""Agent-based synthetic financial transaction simulator."""

__version__ = "0.1.0"
