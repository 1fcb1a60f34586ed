"""Runtime configuration helpers for cache components."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
import logging

from histcache.foundation.config import (
    CacheConfig,
    HassConfig,
    UnifiedConfig,
    default_config,
    find_config_file,
    load_config,
)

logger = logging.getLogger(__name__)

_CONFIG_OVERRIDE: UnifiedConfig | None = None
_CONFIG_CACHE: UnifiedConfig | None = None
_CONFIG_CACHE_LOADED: bool = False


def set_runtime_config_override(config: UnifiedConfig | None) -> None:
    """Set a process-wide override for the runtime configuration."""

    global _CONFIG_OVERRIDE
    _CONFIG_OVERRIDE = config


def reset_runtime_config_cache() -> None:
    """Clear the cached runtime configuration."""

    global _CONFIG_CACHE, _CONFIG_CACHE_LOADED
    _CONFIG_CACHE = None
    _CONFIG_CACHE_LOADED = False


@contextmanager
def runtime_config_override(config: UnifiedConfig | None) -> Iterator[None]:
    """Temporarily override the runtime configuration returned by helpers."""

    previous_override = _CONFIG_OVERRIDE
    set_runtime_config_override(config)
    try:
        yield
    finally:
        set_runtime_config_override(previous_override)


def get_runtime_config(path: str | Path | None = None) -> UnifiedConfig:
    """Return the active runtime configuration, falling back to defaults."""

    if path is not None:
        return load_config(str(path))

    override = _CONFIG_OVERRIDE
    if override is not None:
        return override

    global _CONFIG_CACHE_LOADED, _CONFIG_CACHE
    if _CONFIG_CACHE_LOADED and _CONFIG_CACHE is not None:
        return _CONFIG_CACHE

    cfg_path = find_config_file()
    try:
        if not cfg_path:
            logger.debug("No histcache config file discovered; using defaults")
            _CONFIG_CACHE = default_config()
        else:
            _CONFIG_CACHE = load_config(cfg_path)
    finally:
        _CONFIG_CACHE_LOADED = True
    return _CONFIG_CACHE


def get_hass_config(path: str | Path | None = None) -> HassConfig:
    return get_runtime_config(path).hass


def get_cache_config(path: str | Path | None = None) -> CacheConfig:
    return get_runtime_config(path).cache


__all__ = [
    "get_cache_config",
    "get_hass_config",
    "get_runtime_config",
    "reset_runtime_config_cache",
    "runtime_config_override",
    "set_runtime_config_override",
]
