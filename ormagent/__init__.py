"""Over-the-air update agent for a single managed edge application."""

__version__ = "0.3.0"
