class CrawlerError(Exception):
    """Base class for all crawler errors."""


class FetchError(CrawlerError):
    """A single query failed. Contained per prefix, never aborts the crawl."""

    def __init__(self, prefix, message=""):
        self.prefix = prefix
        super().__init__(message or f"Fetch failed for prefix '{prefix}'")


class RateLimited(FetchError):
    """Endpoint answered 429/503. Recovered with bounded exponential backoff."""

    def __init__(self, prefix, status_code):
        self.status_code = status_code
        super().__init__(prefix, f"Rate limited ({status_code}) on prefix '{prefix}'")


class Transient(FetchError):
    """Any other failure: timeout, connection reset, bad status, malformed body."""


class FatalError(CrawlerError):
    """Unrecoverable problem detected before crawling starts."""


class ConfigError(FatalError):
    pass


class EndpointUnreachable(FatalError):
    pass
