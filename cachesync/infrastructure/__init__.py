"""Infrastructure adapters for cache backends."""
