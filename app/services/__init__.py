"""Source adapters, search aggregation, caching and tracking services."""
