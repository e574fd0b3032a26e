"""Vibe Coded registry: discovery, detection and vulnerability scanning."""

__version__ = "0.1.0"
