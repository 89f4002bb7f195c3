"""Configuration package for the Rexpay gateway integration."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
