# src/worldvibe/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import check_ins_router, system_router

__all__ = [
    "check_ins_router",
    "system_router",
]
