"""
Managers for configuration
"""

from .config_manager import ConfigManager, SettingsLimits

__all__ = ['ConfigManager', 'SettingsLimits']
