"""Imagery provider lookup.

One adapter currently backs both Sentinel-2 discovery and batch export:
Earth Engine.  Adapters are registered as loaders returning the adapter
class, so ``earthengine-api`` is imported only when the Earth Engine
adapter is actually requested.

The composition root calls ``provider_from_config``, which reads
``EXPORT_PROVIDER`` and the export targets from ``PipelineConfig``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sentinel_pipeline.providers.base import ImageryProvider, ProviderConfig, ProviderError

if TYPE_CHECKING:
    from collections.abc import Callable

    from sentinel_pipeline.core.config import PipelineConfig

    AdapterLoader = Callable[[], type[ImageryProvider]]

logger = logging.getLogger(__name__)

EARTH_ENGINE = "earth_engine"

_ADAPTER_REGISTRY: dict[str, AdapterLoader] = {}


def _load_earth_engine() -> type[ImageryProvider]:
    from sentinel_pipeline.providers.earth_engine import EarthEngineAdapter

    return EarthEngineAdapter


def _ensure_registry() -> None:
    if EARTH_ENGINE not in _ADAPTER_REGISTRY:
        _ADAPTER_REGISTRY[EARTH_ENGINE] = _load_earth_engine


def register_provider(name: str, loader: AdapterLoader) -> None:
    """Make an additional adapter selectable through ``EXPORT_PROVIDER``.

    Raises:
        ValueError: *name* is empty.
    """
    if not name:
        raise ValueError("Provider name must be non-empty")
    _ensure_registry()
    _ADAPTER_REGISTRY[name] = loader
    logger.debug("Provider adapter registered | name=%s", name)


def get_provider(name: str, config: ProviderConfig | None = None) -> ImageryProvider:
    """Instantiate the adapter registered as *name*.

    Construction never contacts the provider; Earth Engine sessions are
    opened on first use.

    Raises:
        ProviderError: *name* is unknown, or *config* was built for a
            different provider.
    """
    _ensure_registry()
    try:
        loader = _ADAPTER_REGISTRY[name]
    except KeyError:
        msg = f"Unknown imagery provider: {name!r}. Available: {', '.join(list_providers())}"
        raise ProviderError(provider=name, message=msg) from None

    config = config or ProviderConfig(name=name)
    if config.name != name:
        msg = f"ProviderConfig.name {config.name!r} does not match requested provider {name!r}"
        raise ProviderError(provider=name, message=msg)

    adapter = loader()(config)
    logger.info("Imagery provider ready | name=%s | project=%s", name, config.project_id or "-")
    return adapter


def provider_from_config(config: PipelineConfig) -> ImageryProvider:
    """Build the adapter named by ``EXPORT_PROVIDER`` with its export targets."""
    from sentinel_pipeline.utils.helpers import build_provider_config

    return get_provider(config.export_provider, build_provider_config(config))


def list_providers() -> list[str]:
    _ensure_registry()
    return sorted(_ADAPTER_REGISTRY)
