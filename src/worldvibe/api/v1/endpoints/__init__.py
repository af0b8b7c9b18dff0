# src/worldvibe/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .check_ins import router as check_ins_router
from .system import router as system_router

__all__ = [
    "check_ins_router",
    "system_router",
]
