"""Test configuration and shared fixtures."""

from __future__ import annotations

import pytest

from histcache.runtime.sdk import configuration as sdk_configuration
from histcache.runtime.sdk import metrics as cache_metrics


@pytest.fixture(autouse=True)
def _reset_metrics():
    cache_metrics.reset_metrics()
    yield
    cache_metrics.reset_metrics()


@pytest.fixture(autouse=True)
def _reset_runtime_config():
    sdk_configuration.reset_runtime_config_cache()
    sdk_configuration.set_runtime_config_override(None)
    yield
    sdk_configuration.reset_runtime_config_cache()
    sdk_configuration.set_runtime_config_override(None)
