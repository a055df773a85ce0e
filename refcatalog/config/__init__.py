"""
Configuration Package
"""

from .settings import CatalogSettings, get_settings, reset_settings

__all__ = ["CatalogSettings", "get_settings", "reset_settings"]
