"""Storage abstraction for journal entries, folders and settings."""

from .base import EntryStoreBase, StoreError, get_entry_store

__all__ = ["EntryStoreBase", "StoreError", "get_entry_store"]
