"""Data stores for persistence and caching.

Stores handle:
- MetricsStore: the record interface services depend on
- PostgreSQL: DB session, repository, ORM operations
- Redis: shared cache with TTL policies

No business/ranking logic in stores - that belongs in services.
"""
