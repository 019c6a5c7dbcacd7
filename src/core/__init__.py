"""
Core Module
Zentrale Konfiguration und Settings
"""

from .config import APIConfig, ConfigurationError, Settings, settings

__all__ = ["settings", "Settings", "APIConfig", "ConfigurationError"]
