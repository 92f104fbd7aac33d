"""
Utility functions for the fan controller
"""

from .enum_helper import EnumHelper

__all__ = [
    'EnumHelper',
]
