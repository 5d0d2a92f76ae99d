"""NAGS glass parts lookup engine."""

__version__ = "1.0.0"
