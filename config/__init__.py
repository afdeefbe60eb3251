"""
Configuration package for the pelada system.
"""

from .config_manager import ConfigManager

__all__ = ['ConfigManager']
