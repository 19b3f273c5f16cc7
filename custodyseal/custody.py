"""
CustodySeal Chain of Custody

A custody entry records one action taken on an evidence hash. Entries are
append-only; a custody report is a read-only view over the entries for one
hash, with an integrity status derived from them rather than stored.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .hashing import normalize_hex
from .util import generate_uuid, utc_now, utc_rfc3339


class CustodyAction(str, Enum):
    UPLOADED = "UPLOADED"
    PROCESSED = "PROCESSED"
    SEALED = "SEALED"
    EXPORTED = "EXPORTED"


class CustodyIntegrityStatus(str, Enum):
    """
    ALL_VERIFIED: every entry passed its integrity check (or there are none)
    SOME_FAILED: at least one entry passed and at least one failed
    FAILED: no entry passed
    """
    ALL_VERIFIED = "ALL_VERIFIED"
    SOME_FAILED = "SOME_FAILED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class CustodyEntry:
    action: CustodyAction
    hash: str
    actor_id: str
    integrity_check_passed: bool
    device_id: str = ""
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=generate_uuid)

    def __post_init__(self):
        object.__setattr__(self, "action", CustodyAction(self.action))
        object.__setattr__(self, "hash", normalize_hex(self.hash))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": utc_rfc3339(self.timestamp),
            "action": self.action.value,
            "hash": self.hash,
            "actorId": self.actor_id,
            "deviceId": self.device_id,
            "integrityCheckPassed": self.integrity_check_passed,
        }


def derive_integrity_status(entries: Sequence[CustodyEntry]) -> CustodyIntegrityStatus:
    passed = sum(1 for e in entries if e.integrity_check_passed)
    if passed == len(entries):
        return CustodyIntegrityStatus.ALL_VERIFIED
    if passed == 0:
        return CustodyIntegrityStatus.FAILED
    return CustodyIntegrityStatus.SOME_FAILED


@dataclass(frozen=True)
class CustodyReport:
    """Ordered custody entries for one hash."""
    entries: Tuple[CustodyEntry, ...]

    @property
    def total_entries(self) -> int:
        return len(self.entries)

    @property
    def start_time(self) -> Optional[datetime]:
        return self.entries[0].timestamp if self.entries else None

    @property
    def end_time(self) -> Optional[datetime]:
        return self.entries[-1].timestamp if self.entries else None

    @property
    def integrity_status(self) -> CustodyIntegrityStatus:
        return derive_integrity_status(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "totalEntries": self.total_entries,
            "startTime": utc_rfc3339(self.start_time) if self.start_time else None,
            "endTime": utc_rfc3339(self.end_time) if self.end_time else None,
            "integrityStatus": self.integrity_status.value,
        }
