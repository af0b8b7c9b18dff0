# src/worldvibe/models/__init__.py
"""SQLAlchemy models for the WorldVibe application."""

from .check_in import CheckIn

__all__ = ["CheckIn"]
