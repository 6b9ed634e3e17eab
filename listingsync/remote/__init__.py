"""Backend access: HTTP client, API calls, record normalisation and fetching."""

from listingsync.remote.backend import BackendApi
from listingsync.remote.fetcher import FetchResult, RemoteListingFetcher
from listingsync.remote.http_client import BackendHttpClient
from listingsync.remote.normalizer import normalize

__all__ = [
    "BackendApi",
    "BackendHttpClient",
    "FetchResult",
    "RemoteListingFetcher",
    "normalize",
]
