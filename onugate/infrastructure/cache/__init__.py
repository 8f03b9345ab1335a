"""Caching Service Implementation.

Provides concrete implementations of the CacheBackend interface (volatile
in-memory, persistent JSON files, shared diskcache store) and the CacheStore
that composes them with TTL and durable-key semantics.
Bounded Context: Cache Management
"""
