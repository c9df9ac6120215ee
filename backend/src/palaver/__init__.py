"""Palaver realtime chat library."""

__version__ = "0.1.0"
