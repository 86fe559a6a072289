"""Browsable, cached index over a OneDrive folder tree."""

__version__ = "0.1.0"
