"""
CustodySeal Evidence Vault

Append-only, hash-keyed store of sealed records and their custody entries.

Guarantees:
- store() is idempotent by hash: a second store of the same hash returns
  the existing record id and creates nothing, including under concurrent
  stores for the same hash.
- There is no delete or update operation.
- Every record creation is appended to a hash-chained log:

      payload_hash = SHA-512(canonical JSON of the record)
      entry_hash   = SHA-512(prev_entry_hash + payload_hash)

  so an exported log can be checked offline with verify_log_chain().

Backends:
- InMemoryEvidenceVault: sharded per-hash locks, for tests and
  single-process deployments.
- SqliteEvidenceVault: per-thread connections, WAL, INSERT OR IGNORE on
  a hash primary key inside BEGIN IMMEDIATE transactions.
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .canonicalization import canonicalize
from .custody import CustodyAction, CustodyEntry, CustodyReport
from .errors import VaultConflict
from .hashing import (
    SEAL_DIGEST_HEX_LENGTH,
    chain_entry_hash,
    is_hex,
    normalize_hex,
    sha512_hex,
)
from .logging_config import audit_log
from .util import generate_uuid, parse_rfc3339, utc_now, utc_rfc3339

logger = logging.getLogger(__name__)


class RecordType(str, Enum):
    FORENSIC = "forensic"
    ADVISORY = "advisory"
    SESSION_TRANSCRIPT = "session_transcript"


@dataclass(frozen=True)
class VaultRecord:
    """Write-once record, looked up only by hash."""
    hash: str
    record_type: RecordType
    record_id: str = field(default_factory=generate_uuid)
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recordId": self.record_id,
            "hash": self.hash,
            "timestamp": utc_rfc3339(self.timestamp),
            "type": self.record_type.value,
        }


@dataclass(frozen=True)
class VaultLogEntry:
    seq: int
    record_id: str
    hash: str
    record_type: str
    timestamp: str
    payload_hash: str
    prev_entry_hash: Optional[str]
    entry_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "recordId": self.record_id,
            "hash": self.hash,
            "type": self.record_type,
            "timestamp": self.timestamp,
            "payloadHash": self.payload_hash,
            "prevEntryHash": self.prev_entry_hash,
            "entryHash": self.entry_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VaultLogEntry':
        return cls(
            seq=int(data["seq"]),
            record_id=data["recordId"],
            hash=data["hash"],
            record_type=data["type"],
            timestamp=data["timestamp"],
            payload_hash=data["payloadHash"],
            prev_entry_hash=data.get("prevEntryHash"),
            entry_hash=data["entryHash"],
        )


def record_payload_hash(record_id: str, hash_hex: str, record_type: str, timestamp: str) -> str:
    """SHA-512 over the canonical JSON of a record's wire form."""
    return sha512_hex(canonicalize({
        "recordId": record_id,
        "hash": hash_hex,
        "timestamp": timestamp,
        "type": record_type,
    }))


def verify_log_chain(entries: Iterable[Union[VaultLogEntry, Dict[str, Any]]]) -> Tuple[bool, Optional[int]]:
    """
    Walk an exported vault log.

    Returns (True, None) if every entry links to its predecessor and its
    hashes recompute, otherwise (False, seq) for the first bad entry.
    """
    prev: Optional[str] = None
    for raw in entries:
        entry = raw if isinstance(raw, VaultLogEntry) else VaultLogEntry.from_dict(raw)
        if (entry.prev_entry_hash or None) != prev:
            return False, entry.seq
        payload_hash = record_payload_hash(entry.record_id, entry.hash, entry.record_type, entry.timestamp)
        if payload_hash != entry.payload_hash:
            return False, entry.seq
        if chain_entry_hash(prev, payload_hash) != entry.entry_hash:
            return False, entry.seq
        prev = entry.entry_hash
    return True, None


def _normalize_record_hash(hash_hex: str) -> str:
    if not is_hex(hash_hex, SEAL_DIGEST_HEX_LENGTH):
        raise ValueError("vault hash must be a 128-character hex SHA-512 digest")
    return normalize_hex(hash_hex)


class EvidenceVault(ABC):
    """
    Abstract evidence vault.

    Subclasses implement the atomic compare-and-swap in
    ``_insert_if_absent``; the public store() resolves conflicts to the
    existing record id.
    """

    def store(self, hash_hex: str, record_type: Union[RecordType, str]) -> str:
        """
        Store a record for ``hash_hex`` and return its record id.

        Idempotent: if a record already exists for the hash, its id is
        returned and nothing is written.
        """
        record = VaultRecord(
            hash=_normalize_record_hash(hash_hex),
            record_type=RecordType(record_type),
        )
        try:
            created = self._insert_if_absent(record)
        except VaultConflict as conflict:
            logger.debug("vault store resolved to existing record %s", conflict.existing_record_id)
            audit_log.vault_store(record.hash, conflict.existing_record_id, record.record_type.value, created=False)
            return conflict.existing_record_id
        audit_log.vault_store(created.hash, created.record_id, created.record_type.value, created=True)
        return created.record_id

    def lookup_by_hash(self, hash_hex: str) -> Optional[VaultRecord]:
        if not is_hex(hash_hex, SEAL_DIGEST_HEX_LENGTH):
            return None
        return self._lookup(normalize_hex(hash_hex))

    def contains(self, hash_hex: str) -> bool:
        return self.lookup_by_hash(hash_hex) is not None

    def record_custody(self, entry: CustodyEntry) -> CustodyEntry:
        """Append a custody entry. Entries are never modified or removed."""
        self._append_custody(entry)
        audit_log.custody_recorded(entry.hash, entry.action.value, entry.integrity_check_passed)
        return entry

    def custody_report(self, hash_hex: str) -> CustodyReport:
        return CustodyReport(entries=tuple(self._custody_entries(normalize_hex(hash_hex))))

    @abstractmethod
    def _insert_if_absent(self, record: VaultRecord) -> VaultRecord:
        """Insert atomically or raise VaultConflict carrying the existing id."""
        pass

    @abstractmethod
    def _lookup(self, hash_hex: str) -> Optional[VaultRecord]:
        pass

    @abstractmethod
    def _append_custody(self, entry: CustodyEntry) -> None:
        pass

    @abstractmethod
    def _custody_entries(self, hash_hex: str) -> List[CustodyEntry]:
        pass

    @abstractmethod
    def export_log(self) -> List[VaultLogEntry]:
        """Export the complete record log, oldest first."""
        pass


class InMemoryEvidenceVault(EvidenceVault):
    """
    In-memory vault with hash-sharded locks.

    Stores for different hashes proceed in parallel unless they share a
    shard; the log append is serialized by its own lock.
    """

    SHARD_COUNT = 16

    def __init__(self):
        self._shards = [threading.Lock() for _ in range(self.SHARD_COUNT)]
        self._records: Dict[str, VaultRecord] = {}
        self._log: List[VaultLogEntry] = []
        self._log_lock = threading.Lock()
        self._custody: Dict[str, List[CustodyEntry]] = {}
        self._custody_lock = threading.Lock()

    def _shard(self, hash_hex: str) -> threading.Lock:
        return self._shards[int(hash_hex[:2], 16) % self.SHARD_COUNT]

    def _insert_if_absent(self, record: VaultRecord) -> VaultRecord:
        with self._shard(record.hash):
            existing = self._records.get(record.hash)
            if existing is not None:
                raise VaultConflict(record.hash, existing.record_id)
            self._append_log(record)
            self._records[record.hash] = record
        return record

    def _append_log(self, record: VaultRecord) -> None:
        timestamp = utc_rfc3339(record.timestamp)
        payload_hash = record_payload_hash(record.record_id, record.hash, record.record_type.value, timestamp)
        with self._log_lock:
            prev = self._log[-1].entry_hash if self._log else None
            self._log.append(VaultLogEntry(
                seq=len(self._log) + 1,
                record_id=record.record_id,
                hash=record.hash,
                record_type=record.record_type.value,
                timestamp=timestamp,
                payload_hash=payload_hash,
                prev_entry_hash=prev,
                entry_hash=chain_entry_hash(prev, payload_hash),
            ))

    def _lookup(self, hash_hex: str) -> Optional[VaultRecord]:
        return self._records.get(hash_hex)

    def _append_custody(self, entry: CustodyEntry) -> None:
        with self._custody_lock:
            self._custody.setdefault(entry.hash, []).append(entry)

    def _custody_entries(self, hash_hex: str) -> List[CustodyEntry]:
        with self._custody_lock:
            return list(self._custody.get(hash_hex, ()))

    def export_log(self) -> List[VaultLogEntry]:
        with self._log_lock:
            return list(self._log)


class SqliteEvidenceVault(EvidenceVault):
    """
    SQLite-backed vault.

    Connections are thread-local. Writes use BEGIN IMMEDIATE so the
    existence check, record insert and log append form one atomic unit.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._local = threading.local()
        self.init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, 'conn', None)
        if conn is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._path), check_same_thread=False, isolation_level=None)
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
        return conn

    @contextmanager
    def _transaction(self, immediate: bool = False):
        """
        Context manager for database transactions.
        Commits on success, rolls back on failure.
        """
        conn = self._get_connection()
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        try:
            yield conn
            conn.execute("COMMIT")
        except Exception:
            conn.execute("ROLLBACK")
            raise

    def init_db(self) -> None:
        """Create schema. Safe to call multiple times."""
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS vault_records (
                hash TEXT PRIMARY KEY,
                record_id TEXT NOT NULL UNIQUE,
                record_type TEXT NOT NULL,
                created_at TEXT NOT NULL
            );""")

            conn.execute("""
            CREATE TABLE IF NOT EXISTS vault_log (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                record_id TEXT NOT NULL,
                hash TEXT NOT NULL,
                record_type TEXT NOT NULL,
                created_at TEXT NOT NULL,
                payload_hash TEXT NOT NULL,
                prev_entry_hash TEXT,
                entry_hash TEXT NOT NULL
            );""")

            conn.execute("""
            CREATE TABLE IF NOT EXISTS custody_entries (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                entry_id TEXT NOT NULL UNIQUE,
                hash TEXT NOT NULL,
                action TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                device_id TEXT NOT NULL,
                integrity_check_passed INTEGER NOT NULL,
                created_at TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_custody_entries_hash
            ON custody_entries(hash);""")

    def close(self) -> None:
        """Close this thread's connection."""
        conn = getattr(self._local, 'conn', None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _insert_if_absent(self, record: VaultRecord) -> VaultRecord:
        timestamp = utc_rfc3339(record.timestamp)
        with self._transaction(immediate=True) as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO vault_records(hash, record_id, record_type, created_at) "
                "VALUES(?,?,?,?)",
                (record.hash, record.record_id, record.record_type.value, timestamp)
            )
            if cur.rowcount != 1:
                row = conn.execute(
                    "SELECT record_id FROM vault_records WHERE hash=?", (record.hash,)
                ).fetchone()
                raise VaultConflict(record.hash, row["record_id"])

            row = conn.execute("SELECT entry_hash FROM vault_log ORDER BY seq DESC LIMIT 1").fetchone()
            prev = row["entry_hash"] if row else None
            payload_hash = record_payload_hash(record.record_id, record.hash, record.record_type.value, timestamp)
            conn.execute(
                "INSERT INTO vault_log(record_id, hash, record_type, created_at, "
                "payload_hash, prev_entry_hash, entry_hash) VALUES(?,?,?,?,?,?,?)",
                (record.record_id, record.hash, record.record_type.value, timestamp,
                 payload_hash, prev, chain_entry_hash(prev, payload_hash))
            )
        return record

    def _lookup(self, hash_hex: str) -> Optional[VaultRecord]:
        row = self._get_connection().execute(
            "SELECT hash, record_id, record_type, created_at FROM vault_records WHERE hash=?",
            (hash_hex,)
        ).fetchone()
        if row is None:
            return None
        return VaultRecord(
            hash=row["hash"],
            record_type=RecordType(row["record_type"]),
            record_id=row["record_id"],
            timestamp=parse_rfc3339(row["created_at"]),
        )

    def _append_custody(self, entry: CustodyEntry) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO custody_entries(entry_id, hash, action, actor_id, device_id, "
                "integrity_check_passed, created_at) VALUES(?,?,?,?,?,?,?)",
                (entry.id, entry.hash, entry.action.value, entry.actor_id, entry.device_id,
                 1 if entry.integrity_check_passed else 0, utc_rfc3339(entry.timestamp))
            )

    def _custody_entries(self, hash_hex: str) -> List[CustodyEntry]:
        cur = self._get_connection().execute(
            "SELECT entry_id, hash, action, actor_id, device_id, integrity_check_passed, created_at "
            "FROM custody_entries WHERE hash=? ORDER BY seq ASC",
            (hash_hex,)
        )
        return [
            CustodyEntry(
                action=CustodyAction(row["action"]),
                hash=row["hash"],
                actor_id=row["actor_id"],
                integrity_check_passed=bool(row["integrity_check_passed"]),
                device_id=row["device_id"],
                timestamp=parse_rfc3339(row["created_at"]),
                id=row["entry_id"],
            )
            for row in cur.fetchall()
        ]

    def export_log(self) -> List[VaultLogEntry]:
        cur = self._get_connection().execute(
            "SELECT seq, record_id, hash, record_type, created_at, payload_hash, "
            "prev_entry_hash, entry_hash FROM vault_log ORDER BY seq ASC"
        )
        return [
            VaultLogEntry(
                seq=row["seq"],
                record_id=row["record_id"],
                hash=row["hash"],
                record_type=row["record_type"],
                timestamp=row["created_at"],
                payload_hash=row["payload_hash"],
                prev_entry_hash=row["prev_entry_hash"],
                entry_hash=row["entry_hash"],
            )
            for row in cur.fetchall()
        ]
