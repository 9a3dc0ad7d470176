"""
Utility modules for the web crawler.
"""

from .config import Config, ConfigManager, ConfigurationError, load_config

__all__ = ['Config', 'ConfigManager', 'ConfigurationError', 'load_config']
