"""Utility modules for the ODPS toolkit."""

from .config import Config, get_config

__all__ = ['Config', 'get_config']
