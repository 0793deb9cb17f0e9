"""Persistence layer: repository interfaces and their store implementations."""
from repositories.base import Store
from repositories.memory import MemoryStore
from repositories.sql import SqlStore

__all__ = ["Store", "MemoryStore", "SqlStore"]
