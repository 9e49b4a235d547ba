"""Configuration — pydantic-settings backed settings for envflow"""
from .settings import Settings, get_settings, DEFAULT_ENVIRONMENTS, DEFAULT_ALIASES

__all__ = ["Settings", "get_settings", "DEFAULT_ENVIRONMENTS", "DEFAULT_ALIASES"]
