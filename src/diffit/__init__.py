"""Diffit visual regression backend."""

__version__ = "0.1.0"
