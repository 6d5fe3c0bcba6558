"""
Store adapters implementing core.ports.ComplaintStore.

- sqlite_store.py: local SQLite store with an in-process change channel
- rest_store.py: PostgREST-style HTTP store with a polling change feed
"""
