"""Counter store adapters.

The limiter depends on the abstract store interface only, so the shared
Redis backend can be swapped for the in-memory store in tests and
single-process development runs.
"""
