"""Notask adaptive auto-save engine."""

__version__ = "0.4.0"
