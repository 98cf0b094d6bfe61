"""SQLite entry store.

Embeddings and topics are stored as JSON text columns. Every operation
opens its own connection so the store can be shared with the background
enrichment thread.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from ..models import (
    ClusterAssignment,
    ClusterFolder,
    ConversationMessage,
    Entry,
    FolderRules,
    ManualFolder,
    RuleFolder,
    SmartFolder,
    parse_timestamp,
    utcnow,
)
from .base import UPDATABLE_FIELDS, EntryStoreBase, StoreError

logger = logging.getLogger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS journal_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date TEXT NOT NULL,
        mode TEXT NOT NULL,
        audio_path TEXT,
        transcript TEXT,
        summary TEXT,
        name TEXT,
        embedding TEXT,
        topics TEXT,
        cluster_id INTEGER,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversation_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        entry_id INTEGER NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        FOREIGN KEY (entry_id) REFERENCES journal_entries(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS smart_folders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        rules TEXT,
        cluster_id INTEGER,
        color TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS manual_folders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS folder_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        folder_id INTEGER NOT NULL,
        entry_id INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (folder_id, entry_id),
        FOREIGN KEY (folder_id) REFERENCES manual_folders(id) ON DELETE CASCADE,
        FOREIGN KEY (entry_id) REFERENCES journal_entries(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_entries_cluster ON journal_entries(cluster_id)",
    "CREATE INDEX IF NOT EXISTS idx_entries_created ON journal_entries(created_at)",
]


def _ts(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def encode_vector(vector: list[float] | None) -> str | None:
    if vector is None:
        return None
    return json.dumps([float(x) for x in vector])


def decode_vector(raw: str | None) -> list[float] | None:
    if raw is None:
        return None
    return [float(x) for x in json.loads(raw)]


def encode_topics(topics: list[str] | None) -> str | None:
    return None if topics is None else json.dumps(list(topics))


def decode_topics(raw: str | None) -> list[str] | None:
    return None if raw is None else list(json.loads(raw))


def _row_to_entry(row: sqlite3.Row) -> Entry:
    return Entry(
        id=row["id"],
        mode=row["mode"],
        date=row["date"],
        audio_path=row["audio_path"],
        transcript=row["transcript"],
        summary=row["summary"],
        name=row["name"],
        embedding=decode_vector(row["embedding"]),
        topics=decode_topics(row["topics"]),
        cluster_id=row["cluster_id"],
        created_at=parse_timestamp(row["created_at"]),
    )


def _row_to_smart_folder(row: sqlite3.Row) -> SmartFolder:
    created_at = parse_timestamp(row["created_at"])
    if row["type"] == "cluster":
        return ClusterFolder(
            id=row["id"],
            name=row["name"],
            cluster_index=row["cluster_id"],
            color=row["color"],
            created_at=created_at,
        )
    rules = FolderRules.from_dict(json.loads(row["rules"])) if row["rules"] else FolderRules()
    return RuleFolder(id=row["id"], name=row["name"], rules=rules, color=row["color"], created_at=created_at)


class SQLiteEntryStore(EntryStoreBase):
    """SQLite-backed persistent entry store."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=10)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            for statement in SCHEMA:
                conn.execute(statement)
        logger.debug(f"Database ready at {self.db_path}")

    def _fetch_entries(self, where: str = "", params: tuple = (), order: str = "DESC") -> list[Entry]:
        with self.connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM journal_entries {where} ORDER BY created_at {order}, id {order}",
                params,
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    # Entries

    def create_entry(
        self,
        mode: str = "solo",
        audio_path: str | None = None,
        transcript: str | None = None,
        summary: str | None = None,
        name: str | None = None,
        created_at: datetime | None = None,
    ) -> Entry:
        created = parse_timestamp(created_at) or utcnow()
        with self.connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO journal_entries (date, mode, audio_path, transcript, summary, name, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (_ts(created), mode, audio_path, transcript, summary, name, _ts(created)),
            )
            entry_id = cursor.lastrowid
        return self.get_entry(entry_id)

    def get_entry(self, entry_id: int) -> Entry | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM journal_entries WHERE id = ?", (entry_id,)).fetchone()
        return _row_to_entry(row) if row else None

    def list_entries(self, sort_by: str = "date_desc") -> list[Entry]:
        return self._fetch_entries(order="ASC" if sort_by == "date_asc" else "DESC")

    def update_entry(self, entry_id: int, **updates: Any) -> None:
        unknown = set(updates) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        if not updates:
            return

        values = []
        for key, value in updates.items():
            if key == "embedding":
                value = encode_vector(value)
            elif key == "topics":
                value = encode_topics(value)
            values.append(value)

        assignments = ", ".join(f"{key} = ?" for key in updates)
        with self.connect() as conn:
            conn.execute(f"UPDATE journal_entries SET {assignments} WHERE id = ?", (*values, entry_id))

    def delete_entry(self, entry_id: int) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM journal_entries WHERE id = ?", (entry_id,))

    def get_entries_for_clustering(self) -> list[Entry]:
        return self._fetch_entries("WHERE embedding IS NOT NULL")

    def get_entries_by_cluster(self, cluster_index: int) -> list[Entry]:
        return self._fetch_entries("WHERE cluster_id = ?", (cluster_index,))

    def update_entry_clusters(self, assignments: Iterable[ClusterAssignment]) -> None:
        with self.connect() as conn:
            conn.executemany(
                "UPDATE journal_entries SET cluster_id = ? WHERE id = ?",
                [(a.cluster_id, a.entry_id) for a in assignments],
            )

    # Settings

    def get_setting(self, key: str) -> str | None:
        with self.connect() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self.connect() as conn:
            conn.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, str(value)))

    # Leases, kept as settings rows so every process on the same file sees them

    @staticmethod
    def _lease_key(name: str) -> str:
        return f"lease:{name}"

    @staticmethod
    def _read_lease(conn: sqlite3.Connection, key: str) -> dict | None:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        lease = json.loads(row["value"])
        if parse_timestamp(lease["expires_at"]) <= utcnow():
            return None
        return lease

    def acquire_lease(self, name: str, owner: str, ttl_seconds: float) -> bool:
        key = self._lease_key(name)
        with self.connect() as conn:
            # Write lock up front so two processes cannot both see the lease free
            conn.execute("BEGIN IMMEDIATE")
            held = self._read_lease(conn, key)
            if held is not None and held["owner"] != owner:
                logger.debug(f"Lease {name} held by {held['owner']} until {held['expires_at']}")
                return False
            expires_at = utcnow() + timedelta(seconds=ttl_seconds)
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, json.dumps({"owner": owner, "expires_at": _ts(expires_at)})),
            )
        return True

    def release_lease(self, name: str, owner: str) -> None:
        key = self._lease_key(name)
        with self.connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
            if row and json.loads(row["value"])["owner"] == owner:
                conn.execute("DELETE FROM settings WHERE key = ?", (key,))

    def lease_held(self, name: str) -> bool:
        with self.connect() as conn:
            return self._read_lease(conn, self._lease_key(name)) is not None

    # Smart folders

    def _insert_smart_folder(self, name: str, kind: str, rules: str | None, cluster_index: int | None,
                             color: str | None) -> int:
        with self.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO smart_folders (name, type, rules, cluster_id, color, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                (name, kind, rules, cluster_index, color, _ts(utcnow())),
            )
            return cursor.lastrowid

    def create_cluster_folder(self, name: str, cluster_index: int, color: str | None = None) -> ClusterFolder:
        folder_id = self._insert_smart_folder(name, "cluster", None, int(cluster_index), color)
        return self.get_smart_folder(folder_id)

    def create_rule_folder(self, name: str, rules: FolderRules, color: str | None = None) -> RuleFolder:
        folder_id = self._insert_smart_folder(name, "rule", json.dumps(rules.to_dict()), None, color)
        return self.get_smart_folder(folder_id)

    def get_smart_folders(self) -> list[SmartFolder]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM smart_folders ORDER BY created_at DESC, id DESC").fetchall()
        return [_row_to_smart_folder(r) for r in rows]

    def get_smart_folder(self, folder_id: int) -> SmartFolder | None:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM smart_folders WHERE id = ?", (folder_id,)).fetchone()
        return _row_to_smart_folder(row) if row else None

    def update_smart_folder(
        self,
        folder_id: int,
        name: str | None = None,
        rules: FolderRules | None = None,
        color: str | None = None,
    ) -> None:
        fields, values = [], []
        if name is not None:
            fields.append("name = ?")
            values.append(name)
        if rules is not None:
            fields.append("rules = ?")
            values.append(json.dumps(rules.to_dict()))
        if color is not None:
            fields.append("color = ?")
            values.append(color)
        if not fields:
            return
        with self.connect() as conn:
            conn.execute(f"UPDATE smart_folders SET {', '.join(fields)} WHERE id = ?", (*values, folder_id))

    def delete_smart_folder(self, folder_id: int) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM smart_folders WHERE id = ?", (folder_id,))

    # Manual folders

    def create_manual_folder(self, name: str) -> ManualFolder:
        created = utcnow()
        with self.connect() as conn:
            cursor = conn.execute(
                "INSERT INTO manual_folders (name, created_at) VALUES (?, ?)", (name, _ts(created))
            )
        return ManualFolder(id=cursor.lastrowid, name=name, created_at=created)

    def get_manual_folders(self) -> list[ManualFolder]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM manual_folders ORDER BY created_at DESC, id DESC").fetchall()
        return [ManualFolder(id=r["id"], name=r["name"], created_at=parse_timestamp(r["created_at"])) for r in rows]

    def rename_manual_folder(self, folder_id: int, name: str) -> None:
        with self.connect() as conn:
            conn.execute("UPDATE manual_folders SET name = ? WHERE id = ?", (name, folder_id))

    def delete_manual_folder(self, folder_id: int) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM manual_folders WHERE id = ?", (folder_id,))

    def add_entry_to_folder(self, folder_id: int, entry_id: int) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO folder_entries (folder_id, entry_id, created_at) VALUES (?, ?, ?)",
                (folder_id, entry_id, _ts(utcnow())),
            )

    def remove_entry_from_folder(self, folder_id: int, entry_id: int) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM folder_entries WHERE folder_id = ? AND entry_id = ?", (folder_id, entry_id))

    def get_manual_folder_entries(self, folder_id: int) -> list[Entry]:
        return self._fetch_entries(
            "WHERE id IN (SELECT entry_id FROM folder_entries WHERE folder_id = ?)", (folder_id,)
        )

    # Conversation messages

    def add_conversation_message(self, entry_id: int, role: str, content: str) -> None:
        with self.connect() as conn:
            conn.execute(
                "INSERT INTO conversation_messages (entry_id, role, content, timestamp) VALUES (?, ?, ?, ?)",
                (entry_id, role, content, _ts(utcnow())),
            )

    def get_conversation_messages(self, entry_id: int) -> list[ConversationMessage]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM conversation_messages WHERE entry_id = ? ORDER BY timestamp ASC, id ASC",
                (entry_id,),
            ).fetchall()
        return [
            ConversationMessage(
                id=r["id"],
                entry_id=r["entry_id"],
                role=r["role"],
                content=r["content"],
                timestamp=parse_timestamp(r["timestamp"]),
            )
            for r in rows
        ]
