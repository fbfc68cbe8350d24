"""Remote API clients for the sync engine."""

from src.leadsync.clients.http import ApiRequestError, HttpApiClient, StaticTokenProvider

__all__ = [
    "ApiRequestError",
    "HttpApiClient",
    "StaticTokenProvider",
]
