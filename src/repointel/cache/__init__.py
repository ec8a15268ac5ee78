"""In-memory TTL cache for repointel.

Time-bounded storage of upstream responses and derived results.
"""

from repointel.cache.ttl_cache import CacheEntry, CacheStats, TTLCache, TTLCategory, TTL_SECONDS

__all__ = ["CacheEntry", "CacheStats", "TTLCache", "TTLCategory", "TTL_SECONDS"]
