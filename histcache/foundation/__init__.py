"""Foundation layer for shared infrastructure modules."""

from . import common, config

__all__ = ["common", "config"]
