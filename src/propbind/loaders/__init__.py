"""Source fetching and merging into value snapshots."""

from propbind.loaders.fetchers import EnvFetcher, FileFetcher, HttpFetcher, get_fetcher
from propbind.loaders.loader import MergingSourceLoader

__all__ = ["EnvFetcher", "FileFetcher", "HttpFetcher", "MergingSourceLoader", "get_fetcher"]
