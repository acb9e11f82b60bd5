"""market_sentinel.sources - External price source adapters."""

from market_sentinel.core.config import SourcesConfig
from market_sentinel.sources.abokifx import AbokiFxSource
from market_sentinel.sources.base import (
    HtmlSource,
    SourceAdapter,
    SourceFactory,
    SourceRegistry,
)
from market_sentinel.sources.jumia import JumiaSource
from market_sentinel.sources.nairametrics import NairametricsSource
from market_sentinel.sources.nnpc import NnpcSource
from market_sentinel.sources.punch import PunchSource

# Module-level registry of built-in sources
registry = SourceRegistry()
registry.register(NairametricsSource.name, NairametricsSource)
registry.register(PunchSource.name, PunchSource)
registry.register(AbokiFxSource.name, AbokiFxSource)
registry.register(NnpcSource.name, NnpcSource)
registry.register(JumiaSource.name, JumiaSource)


def build_sources(config: SourcesConfig) -> list[SourceAdapter]:
    """Instantiate the sources enabled in config."""
    return registry.create_enabled(config)


__all__ = [
    "AbokiFxSource",
    "HtmlSource",
    "JumiaSource",
    "NairametricsSource",
    "NnpcSource",
    "PunchSource",
    "SourceAdapter",
    "SourceFactory",
    "SourceRegistry",
    "build_sources",
    "registry",
]
