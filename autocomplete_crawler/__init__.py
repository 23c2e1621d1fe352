"""Prefix-expansion crawler for rate-limited autocomplete endpoints."""

from autocomplete_crawler.accumulator import ResultAccumulator
from autocomplete_crawler.client import FetchResult, RateLimitedClient
from autocomplete_crawler.config import CrawlConfig, load_config
from autocomplete_crawler.errors import (
    ConfigError,
    CrawlerError,
    EndpointUnreachable,
    FatalError,
    FetchError,
    RateLimited,
    Transient,
)
from autocomplete_crawler.frontier import Frontier
from autocomplete_crawler.policy import ExpansionPolicy
from autocomplete_crawler.probe import CapProbe
from autocomplete_crawler.scheduler import CrawlReport, CrawlScheduler

__version__ = "0.1.0"

__all__ = [
    "CapProbe",
    "ConfigError",
    "CrawlConfig",
    "CrawlReport",
    "CrawlScheduler",
    "CrawlerError",
    "EndpointUnreachable",
    "ExpansionPolicy",
    "FatalError",
    "FetchError",
    "FetchResult",
    "Frontier",
    "RateLimited",
    "RateLimitedClient",
    "ResultAccumulator",
    "Transient",
    "load_config",
]
