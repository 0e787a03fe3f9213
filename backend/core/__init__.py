"""
Core application settings
"""
from .config import AppSettings, app_settings

__all__ = ["AppSettings", "app_settings"]
