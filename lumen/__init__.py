"""Lumen - context engine for a personal assistant."""

__version__ = "0.1.0"
