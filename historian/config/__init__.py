"""
Configuration for the Code Historian client
"""

from .config import Config, get_config, config_map, DEFAULT_API_URL

__all__ = ['Config', 'get_config', 'config_map', 'DEFAULT_API_URL']
