"""Utility modules for the county map pipeline."""

from .config import config
from .exceptions import CountyMapError

__all__ = ["config", "CountyMapError"]
