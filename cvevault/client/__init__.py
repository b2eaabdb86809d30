"""Client library: cached API access, sync polling, filtering and the virtual render window."""

from cvevault.client.api import ApiError, CveApiClient, RequestConfig, RequestExecutor
from cvevault.client.cache import ApiCache, CacheEntry, create_cache_key
from cvevault.client.feed import RecordsFeed
from cvevault.client.filters import RecordFilter, apply_filters, score_category
from cvevault.client.network import NetworkMonitor, NetworkState
from cvevault.client.window import VirtualWindow, WindowRange, WindowRow, compute_window

__all__ = [
    "ApiCache",
    "ApiError",
    "CacheEntry",
    "CveApiClient",
    "NetworkMonitor",
    "NetworkState",
    "RecordFilter",
    "RecordsFeed",
    "RequestConfig",
    "RequestExecutor",
    "VirtualWindow",
    "WindowRange",
    "WindowRow",
    "apply_filters",
    "compute_window",
    "create_cache_key",
    "score_category",
]
