"""Widget-toggled background location tracking."""

__version__ = "0.1.0"
