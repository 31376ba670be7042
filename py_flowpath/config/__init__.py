"""
Configuration for flowpath processing.
"""

from .config import Settings, settings

__all__ = ['Settings', 'settings']
