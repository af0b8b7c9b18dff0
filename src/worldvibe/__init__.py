"""WorldVibe anonymous check-in admission service."""

__version__ = "0.1.0"
