"""Relational store providers.

SQLiteDiscoveryStore keeps sessions, search tasks and analysis records in
data/discovery.db.
"""

from reposcout.providers.store.sqlite_discovery_store import SQLiteDiscoveryStore

__all__ = ["SQLiteDiscoveryStore"]
