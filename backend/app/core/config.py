"""
Backward-compatible settings import path.

Prefer ``from app.core.settings import get_settings`` in new code.
"""
from app.core.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
