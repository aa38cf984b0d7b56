from newswire.providers.base_provider import BaseNewsProvider, FetchOutcome, ProviderConfig
from newswire.providers.serpapi_provider import SerpApiNewsProvider
from newswire.providers.mediastack_provider import MediaStackNewsProvider
from newswire.providers.rss_provider import RssNewsProvider, DEFAULT_FEEDS

__all__ = [
    "BaseNewsProvider",
    "FetchOutcome",
    "ProviderConfig",
    "SerpApiNewsProvider",
    "MediaStackNewsProvider",
    "RssNewsProvider",
    "DEFAULT_FEEDS",
]
