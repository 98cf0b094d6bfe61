"""Abstract base class for entry stores and factory function."""

from abc import ABC, abstractmethod
from typing import Any, Iterable

from ..models import (
    ClusterAssignment,
    ClusterFolder,
    ConversationMessage,
    Entry,
    Folder,
    FolderRules,
    ManualFolder,
    RuleFolder,
    SmartFolder,
)
from ..query.rules import filter_by_rules


class StoreError(Exception):
    """Raised when the underlying persistence layer fails."""


# Entry fields that may be changed through update_entry
UPDATABLE_FIELDS = ("transcript", "summary", "name", "embedding", "topics", "cluster_id", "audio_path")


class EntryStoreBase(ABC):
    """Common interface for journal persistence backends."""

    # Entries

    @abstractmethod
    def create_entry(
        self,
        mode: str = "solo",
        audio_path: str | None = None,
        transcript: str | None = None,
        summary: str | None = None,
        name: str | None = None,
        created_at=None,
    ) -> Entry:
        """Insert a new entry and return it."""

    @abstractmethod
    def get_entry(self, entry_id: int) -> Entry | None:
        """Fetch one entry, or None."""

    @abstractmethod
    def list_entries(self, sort_by: str = "date_desc") -> list[Entry]:
        """All entries, newest first unless sort_by == 'date_asc'."""

    @abstractmethod
    def update_entry(self, entry_id: int, **updates: Any) -> None:
        """Update any of UPDATABLE_FIELDS. Unknown fields raise ValueError."""

    @abstractmethod
    def delete_entry(self, entry_id: int) -> None:
        """Delete an entry with its messages and folder memberships."""

    @abstractmethod
    def get_entries_for_clustering(self) -> list[Entry]:
        """Entries that have an embedding."""

    @abstractmethod
    def get_entries_by_cluster(self, cluster_index: int) -> list[Entry]:
        """Entries whose cluster_id equals cluster_index."""

    def update_entry_clusters(self, assignments: Iterable[ClusterAssignment]) -> None:
        for a in assignments:
            self.update_entry(a.entry_id, cluster_id=a.cluster_id)

    # Settings

    @abstractmethod
    def get_setting(self, key: str) -> str | None:
        """Read a setting value, or None."""

    @abstractmethod
    def set_setting(self, key: str, value: str) -> None:
        """Insert or replace a setting."""

    # Leases

    @abstractmethod
    def acquire_lease(self, name: str, owner: str, ttl_seconds: float) -> bool:
        """Take the named lease for owner. False if someone else holds an unexpired one.

        The check and the write happen atomically across every handle and
        process that shares the backing store.
        """

    @abstractmethod
    def release_lease(self, name: str, owner: str) -> None:
        """Drop the lease if owner still holds it."""

    @abstractmethod
    def lease_held(self, name: str) -> bool:
        """True while an unexpired lease exists."""

    # Smart folders (cluster + rule)

    @abstractmethod
    def create_cluster_folder(self, name: str, cluster_index: int, color: str | None = None) -> ClusterFolder:
        """Insert a cluster folder."""

    @abstractmethod
    def create_rule_folder(self, name: str, rules: FolderRules, color: str | None = None) -> RuleFolder:
        """Insert a rule folder."""

    @abstractmethod
    def get_smart_folders(self) -> list[SmartFolder]:
        """All cluster and rule folders, newest first."""

    @abstractmethod
    def get_smart_folder(self, folder_id: int) -> SmartFolder | None:
        """One smart folder, or None."""

    @abstractmethod
    def update_smart_folder(
        self,
        folder_id: int,
        name: str | None = None,
        rules: FolderRules | None = None,
        color: str | None = None,
    ) -> None:
        """Update name, rules or color of a smart folder."""

    @abstractmethod
    def delete_smart_folder(self, folder_id: int) -> None:
        """Delete a smart folder."""

    def get_cluster_folders(self) -> list[ClusterFolder]:
        return [f for f in self.get_smart_folders() if isinstance(f, ClusterFolder)]

    # Manual folders

    @abstractmethod
    def create_manual_folder(self, name: str) -> ManualFolder:
        """Insert a manual folder."""

    @abstractmethod
    def get_manual_folders(self) -> list[ManualFolder]:
        """All manual folders, newest first."""

    @abstractmethod
    def rename_manual_folder(self, folder_id: int, name: str) -> None:
        """Rename a manual folder."""

    @abstractmethod
    def delete_manual_folder(self, folder_id: int) -> None:
        """Delete a manual folder and its memberships."""

    @abstractmethod
    def add_entry_to_folder(self, folder_id: int, entry_id: int) -> None:
        """Add an entry to a manual folder (idempotent)."""

    @abstractmethod
    def remove_entry_from_folder(self, folder_id: int, entry_id: int) -> None:
        """Remove an entry from a manual folder."""

    @abstractmethod
    def get_manual_folder_entries(self, folder_id: int) -> list[Entry]:
        """Entries explicitly added to a manual folder."""

    # Conversation messages

    @abstractmethod
    def add_conversation_message(self, entry_id: int, role: str, content: str) -> None:
        """Append a message to a conversational entry."""

    @abstractmethod
    def get_conversation_messages(self, entry_id: int) -> list[ConversationMessage]:
        """Messages for an entry, oldest first."""

    # Folder membership

    def get_entries_matching_rules(self, rules: FolderRules) -> list[Entry]:
        return filter_by_rules(self.list_entries(), rules)

    def get_entries_in_folder(self, folder: Folder) -> list[Entry]:
        """Resolve membership for any folder kind."""
        if isinstance(folder, ClusterFolder):
            return self.get_entries_by_cluster(folder.cluster_index)
        if isinstance(folder, RuleFolder):
            return self.get_entries_matching_rules(folder.rules)
        return self.get_manual_folder_entries(folder.id)

    def count_entries_in_folder(self, folder: Folder) -> int:
        return len(self.get_entries_in_folder(folder))


def get_entry_store(config: dict[str, Any]) -> EntryStoreBase:
    """Factory: return the right entry store based on config."""
    backend = config.get("storage_backend", "sqlite")

    if backend == "sqlite":
        from .sqlite import SQLiteEntryStore
        return SQLiteEntryStore(config["database_path"])
    else:
        raise ValueError(f"Unknown storage_backend: {backend}")
