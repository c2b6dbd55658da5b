from .cache_entry import CacheEntry, EntryPhase, RefreshPolicy
from .fetcher import ConditionalFetcher
from .resolver import LocationResolver

__all__ = [
    'CacheEntry',
    'EntryPhase',
    'RefreshPolicy',
    'ConditionalFetcher',
    'LocationResolver'
]
