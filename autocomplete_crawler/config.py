"""
Crawl configuration.

Every tunable of the crawl lives on CrawlConfig. Values are layered as
defaults < JSON config file < command line overrides.
"""

import json
import string
from dataclasses import asdict, dataclass, field, fields
from typing import Optional

from autocomplete_crawler.errors import ConfigError

DEFAULT_ENDPOINT = "http://35.200.185.69:8000/v1/autocomplete"

# Letters that commonly start many words; several of them hitting the same
# result count is the signal that the endpoint caps its results.
DEFAULT_PROBE_PREFIXES = ("a", "b", "c", "j", "m", "s")


@dataclass
class CrawlConfig:
    endpoint: str = DEFAULT_ENDPOINT
    alphabet: str = string.ascii_lowercase
    seed_alphabet: Optional[str] = None  # defaults to alphabet

    # Scheduling
    concurrency: int = 3
    request_delay: float = 0.2  # seconds before every fetch
    request_jitter: float = 0.05  # upper bound of random extra delay

    # Backoff on 429/503
    backoff_base: float = 1.0
    backoff_cap: float = 30.0
    backoff_jitter: float = 0.05
    max_retries: int = 5

    # Expansion policy
    depth_threshold: int = 3
    shallow_threshold: int = 2
    result_cap: Optional[int] = 10  # replaced by the probed cap when one is found
    probe_cap: bool = True
    probe_prefixes: tuple = DEFAULT_PROBE_PREFIXES

    # HTTP
    timeout: float = 10.0
    extra_params: dict = field(default_factory=dict)

    # Bookkeeping
    checkpoint_interval: int = 50  # requests between checkpoints
    status_interval: float = 30.0  # seconds between status log lines

    @property
    def seeds(self):
        return self.seed_alphabet or self.alphabet

    def validate(self):
        if not self.endpoint or not self.endpoint.startswith(("http://", "https://")):
            raise ConfigError(f"Endpoint must be an http(s) URL, got '{self.endpoint}'")
        if not self.alphabet:
            raise ConfigError("Alphabet must not be empty")
        if len(set(self.alphabet)) != len(self.alphabet):
            raise ConfigError(f"Alphabet contains duplicate symbols: '{self.alphabet}'")
        if self.seed_alphabet is not None and not self.seed_alphabet:
            raise ConfigError("Seed alphabet must not be empty")
        if self.concurrency < 1:
            raise ConfigError("Concurrency must be at least 1")
        for name in ("request_delay", "request_jitter", "backoff_base", "backoff_jitter"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")
        if self.backoff_cap < self.backoff_base:
            raise ConfigError("backoff_cap must be >= backoff_base")
        if self.max_retries < 0:
            raise ConfigError("max_retries must not be negative")
        if self.depth_threshold < 1 or self.shallow_threshold < 0:
            raise ConfigError("Expansion thresholds out of range")
        if self.result_cap is not None and self.result_cap < 1:
            raise ConfigError("result_cap must be positive or unset")
        if self.timeout <= 0:
            raise ConfigError("timeout must be positive")
        if self.checkpoint_interval < 1:
            raise ConfigError("checkpoint_interval must be at least 1")
        return self

    @classmethod
    def from_dict(cls, data):
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        data = dict(data)
        if "probe_prefixes" in data:
            data["probe_prefixes"] = tuple(data["probe_prefixes"])
        return cls(**data)

    def to_dict(self):
        data = asdict(self)
        data["probe_prefixes"] = list(self.probe_prefixes)
        return data


def load_config(path=None, overrides=None):
    """
    Build a validated CrawlConfig.

    Keys from the JSON file at `path` replace defaults, then every non-None
    entry of `overrides` replaces those.
    """
    data = {}
    if path:
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a JSON object")

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        config = CrawlConfig.from_dict(data)
    except TypeError as e:
        raise ConfigError(str(e)) from e
    return config.validate()
