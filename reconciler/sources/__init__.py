from reconciler.sources.base import AiSuggestionService, MetadataLookupService, PersistentCacheStore

__all__ = [
    "AiSuggestionService",
    "MetadataLookupService",
    "PersistentCacheStore",
]
