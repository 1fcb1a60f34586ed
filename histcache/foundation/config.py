from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, FrozenSet, Mapping
from urllib.parse import urlparse, urlunparse

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES: tuple[str, ...] = ("histcache.yml", "histcache.yaml")


@dataclass
class HassConfig:
    """Connection settings for the Home Assistant history sources."""

    base_url: str = field(
        default="http://localhost:8123", metadata={"env": "HISTCACHE_HASS_BASE_URL"}
    )
    ws_url: str | None = field(
        default=None, metadata={"env": "HISTCACHE_HASS_WS_URL"}
    )
    token: str | None = field(
        default=None, metadata={"env": "HISTCACHE_HASS_TOKEN"}
    )
    significant_changes_only: bool = field(
        default=False, metadata={"env": "HISTCACHE_HASS_SIGNIFICANT_CHANGES_ONLY"}
    )
    minimal_response: bool = field(
        default=True, metadata={"env": "HISTCACHE_HASS_MINIMAL_RESPONSE"}
    )
    request_timeout_seconds: float = field(
        default=10.0, metadata={"env": "HISTCACHE_HASS_REQUEST_TIMEOUT"}
    )

    @property
    def websocket_url(self) -> str:
        if self.ws_url:
            return self.ws_url
        parts = urlparse(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        path = parts.path.rstrip("/") + "/api/websocket"
        return urlunparse(parts._replace(scheme=scheme, path=path))


@dataclass
class CacheConfig:
    """Defaults applied by callers driving :class:`HistoryCache`."""

    remove_outside_range: bool = field(
        default=False, metadata={"env": "HISTCACHE_REMOVE_OUTSIDE_RANGE"}
    )


CONFIG_SECTION_NAMES: tuple[str, ...] = ("hass", "cache")


@dataclass
class UnifiedConfig:
    hass: HassConfig = field(default_factory=HassConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    present_sections: FrozenSet[str] = field(default_factory=frozenset)


def find_config_file(cwd: Path | None = None) -> str | None:
    """Return the first discoverable configuration file in ``cwd``."""

    base = Path.cwd() if cwd is None else cwd

    for name in CONFIG_FILE_NAMES:
        candidate = base / name
        if candidate.is_file():
            return str(candidate)
    return None


def _read_config_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                logger.error("Failed to parse configuration file %s: %s", path, exc)
                raise ValueError(f"Failed to parse configuration file {path}") from exc
    except (FileNotFoundError, OSError) as exc:
        logger.error("Unable to open configuration file %s: %s", path, exc)
        raise

    if not isinstance(data, dict):
        raise TypeError("Unified config must be a mapping")
    return data


def _extract_sections(data: Mapping[str, Any]) -> tuple[dict[str, dict[str, Any]], FrozenSet[str]]:
    present_sections: FrozenSet[str] = frozenset(
        section
        for section in CONFIG_SECTION_NAMES
        if section in data and isinstance(data.get(section), dict)
    )

    sections: dict[str, dict[str, Any]] = {}
    for section_name in CONFIG_SECTION_NAMES:
        raw_section = data.get(section_name, {})
        if raw_section is None:
            raw_section = {}
        if not isinstance(raw_section, dict):
            raise TypeError(f"{section_name} section must be a mapping")
        sections[section_name] = dict(raw_section)
    return sections, present_sections


def _coerce_env(raw: str, current: Any) -> Any:
    if isinstance(current, bool):
        return raw.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, int):
        return int(raw)
    return raw


def apply_env_overrides(config: Any, environ: Mapping[str, str] | None = None) -> Any:
    """Overwrite fields of ``config`` declared with ``metadata["env"]``."""

    env = os.environ if environ is None else environ
    for f in fields(config):
        key = f.metadata.get("env")
        if not key or key not in env:
            continue
        setattr(config, f.name, _coerce_env(env[key], getattr(config, f.name)))
        logger.debug("config override %s from environment", f.name)
    return config


def load_config(path: str, *, environ: Mapping[str, str] | None = None) -> UnifiedConfig:
    """Parse YAML and populate :class:`UnifiedConfig`."""
    data = _read_config_mapping(path)
    sections, present_sections = _extract_sections(data)

    hass_cfg = apply_env_overrides(HassConfig(**sections["hass"]), environ)
    cache_cfg = apply_env_overrides(CacheConfig(**sections["cache"]), environ)

    return UnifiedConfig(
        hass=hass_cfg,
        cache=cache_cfg,
        present_sections=present_sections,
    )


def default_config(*, environ: Mapping[str, str] | None = None) -> UnifiedConfig:
    """Return defaults with environment overrides applied."""
    return UnifiedConfig(
        hass=apply_env_overrides(HassConfig(), environ),
        cache=apply_env_overrides(CacheConfig(), environ),
    )


__all__ = [
    "CONFIG_FILE_NAMES",
    "CONFIG_SECTION_NAMES",
    "CacheConfig",
    "HassConfig",
    "UnifiedConfig",
    "apply_env_overrides",
    "default_config",
    "find_config_file",
    "load_config",
]
