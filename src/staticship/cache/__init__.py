"""Content-addressed cache APIs."""

from .keys import DependencyCacheInput, cache_key
from .store import CachedLayer, LayerCacheStore

__all__ = ["CachedLayer", "DependencyCacheInput", "LayerCacheStore", "cache_key"]
