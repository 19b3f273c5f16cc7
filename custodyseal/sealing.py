"""
CustodySeal Sealing Engine

Implements the triple-hash seal over a forensic work-product:

    1. contentHash  = SHA-512(content)
    2. metadataHash = SHA-512(sorted "key=value" pairs joined by "|")
    3. combined     = contentHash | metadataHash | ISO-8601(timestamp)
    4. sealHash     = HMAC-SHA512(sealKey, combined)
    5. finalHash    = SHA-512(contentHash | metadataHash | sealHash)

finalHash is the value published externally. The 512-bit seal key is the
only randomized input: re-sealing identical inputs with the same key
reproduces every hash.

Verification has two levels:
- Public: recompute steps 1, 2 and 5 from the presented inputs and the
  recorded sealHash. Detects any change to content or metadata, and any
  change to the recorded hashes.
- Keyed: when the seal key is available (argument or key store), also
  recompute steps 3 and 4. Detects a modified timestamp.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

import nacl.exceptions
import nacl.secret
import nacl.utils

from .canonicalization import canonicalize, iso8601, serialize_metadata
from .errors import CustodySealError, HashMismatch
from .hashing import (
    digests_equal,
    generate_seal_key,
    hmac_sha512_hex,
    sha256_hex,
    sha512_hex,
    SEAL_KEY_BYTES,
)
from .logging_config import audit_log
from .util import b64d, b64e, utc_now

logger = logging.getLogger(__name__)

SEAL_FIELD_SEPARATOR = "|"


@dataclass(frozen=True)
class SealKey:
    """A 512-bit seal key. The material is never included in repr."""
    key_id: str
    material: bytes = field(repr=False)

    def __post_init__(self):
        if len(self.material) != SEAL_KEY_BYTES:
            raise ValueError(f"seal key must be {SEAL_KEY_BYTES} bytes")

    @classmethod
    def from_material(cls, material: bytes) -> 'SealKey':
        return cls(key_id=key_id_for(material), material=material)

    @classmethod
    def generate(cls) -> 'SealKey':
        return cls.from_material(generate_seal_key())


def key_id_for(material: bytes) -> str:
    """Stable identifier for a seal key: 'seal-' + 16 hex chars of SHA-256(material)."""
    return "seal-" + sha256_hex(material)[:16]


@dataclass(frozen=True)
class Seal:
    """
    An immutable triple-hash seal.

    finalHash is the externally published value; the other hashes let a
    verifier locate which component changed.
    """
    content_hash: str
    metadata_hash: str
    seal_hash: str
    final_hash: str
    timestamp: str
    seal_key_id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "contentHash": self.content_hash,
            "metadataHash": self.metadata_hash,
            "sealHash": self.seal_hash,
            "finalHash": self.final_hash,
            "timestamp": self.timestamp,
            "sealKeyId": self.seal_key_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Seal':
        return cls(
            content_hash=data["contentHash"],
            metadata_hash=data["metadataHash"],
            seal_hash=data["sealHash"],
            final_hash=data["finalHash"],
            timestamp=data["timestamp"],
            seal_key_id=data.get("sealKeyId", ""),
        )


class SealStatus(str, Enum):
    INTACT = "INTACT"
    TAMPERED = "TAMPERED"


@dataclass
class SealVerification:
    """Result of verifying a seal against presented content and metadata."""
    status: SealStatus
    keyed: bool = False
    component: Optional[str] = None
    expected: Optional[str] = None
    calculated: Optional[str] = None

    def is_intact(self) -> bool:
        return self.status == SealStatus.INTACT

    @classmethod
    def intact(cls, keyed: bool) -> 'SealVerification':
        return cls(status=SealStatus.INTACT, keyed=keyed)

    @classmethod
    def tampered(cls, component: str, expected: str, calculated: str, keyed: bool) -> 'SealVerification':
        return cls(
            status=SealStatus.TAMPERED,
            keyed=keyed,
            component=component,
            expected=expected,
            calculated=calculated,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "keyed": self.keyed,
            "component": self.component,
            "expected": self.expected,
            "calculated": self.calculated,
        }


# ============================================================
# Seal key escrow
# ============================================================

class SealKeyStore(ABC):
    """Abstract escrow for seal keys, looked up by key id."""

    @abstractmethod
    def put(self, key: SealKey) -> None:
        pass

    @abstractmethod
    def get(self, key_id: str) -> Optional[SealKey]:
        pass


class InMemorySealKeyStore(SealKeyStore):
    """In-memory key escrow for tests and single-process use."""

    def __init__(self):
        self._keys: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: SealKey) -> None:
        with self._lock:
            self._keys.setdefault(key.key_id, key.material)

    def get(self, key_id: str) -> Optional[SealKey]:
        with self._lock:
            material = self._keys.get(key_id)
        if material is None:
            return None
        return SealKey(key_id=key_id, material=material)


class SecretBoxSealKeyStore(SealKeyStore):
    """
    File-backed key escrow. Each key is wrapped with a 32-byte master key
    using XSalsa20-Poly1305 (PyNaCl SecretBox) and stored base64 encoded.

    File format: {"keys": {"<key_id>": "<base64 ciphertext>"}}
    """

    def __init__(self, path: str, master_key: bytes):
        if len(master_key) != nacl.secret.SecretBox.KEY_SIZE:
            raise ValueError(f"master key must be {nacl.secret.SecretBox.KEY_SIZE} bytes")
        self._path = path
        self._box = nacl.secret.SecretBox(master_key)
        self._lock = threading.RLock()
        self._wrapped: Dict[str, str] = {}
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                self._wrapped = dict(json.load(f).get("keys", {}))

    @staticmethod
    def generate_master_key() -> bytes:
        return nacl.utils.random(nacl.secret.SecretBox.KEY_SIZE)

    def put(self, key: SealKey) -> None:
        with self._lock:
            if key.key_id in self._wrapped:
                return
            self._wrapped[key.key_id] = b64e(bytes(self._box.encrypt(key.material)))
            self._flush()

    def get(self, key_id: str) -> Optional[SealKey]:
        with self._lock:
            wrapped = self._wrapped.get(key_id)
        if wrapped is None:
            return None
        try:
            material = self._box.decrypt(b64d(wrapped))
        except nacl.exceptions.CryptoError as e:
            raise CustodySealError(f"unable to unwrap seal key {key_id}") from e
        return SealKey(key_id=key_id, material=material)

    def _flush(self) -> None:
        directory = os.path.dirname(os.path.abspath(self._path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".keys-")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"keys": self._wrapped}, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._path)


# ============================================================
# Engine
# ============================================================

Content = Union[bytes, str]


class SealingEngine:
    """
    Produces and verifies triple-hash seals.

    Stateless apart from the optional key store, so a single engine may be
    shared across threads.
    """

    def __init__(self, key_store: Optional[SealKeyStore] = None, clock=utc_now):
        self.key_store = key_store
        self._clock = clock

    @staticmethod
    def content_hash(content: Content) -> str:
        return sha512_hex(content)

    @staticmethod
    def metadata_hash(metadata: Mapping[str, Any]) -> str:
        return sha512_hex(serialize_metadata(metadata))

    @staticmethod
    def _combined(content_hash: str, metadata_hash: str, timestamp: str) -> str:
        return SEAL_FIELD_SEPARATOR.join([content_hash, metadata_hash, timestamp])

    @staticmethod
    def _final(content_hash: str, metadata_hash: str, seal_hash: str) -> str:
        return sha512_hex(SEAL_FIELD_SEPARATOR.join([content_hash, metadata_hash, seal_hash]))

    def seal(
        self,
        content: Content,
        metadata: Mapping[str, Any],
        timestamp: Optional[datetime] = None,
        seal_key: Optional[SealKey] = None,
    ) -> Seal:
        """
        Seal content and metadata.

        A fresh key is generated when none is supplied. If the engine has a
        key store the key is escrowed there after the seal is computed.
        """
        if timestamp is None:
            timestamp = self._clock()
        if seal_key is None:
            seal_key = SealKey.generate()

        c_hash = self.content_hash(content)
        m_hash = self.metadata_hash(metadata)
        ts = iso8601(timestamp)
        s_hash = hmac_sha512_hex(seal_key.material, self._combined(c_hash, m_hash, ts))
        f_hash = self._final(c_hash, m_hash, s_hash)

        seal = Seal(
            content_hash=c_hash,
            metadata_hash=m_hash,
            seal_hash=s_hash,
            final_hash=f_hash,
            timestamp=ts,
            seal_key_id=seal_key.key_id,
        )

        if self.key_store is not None:
            self.key_store.put(seal_key)

        audit_log.seal_created(final_hash=f_hash, seal_key_id=seal_key.key_id)
        return seal

    def seal_document(
        self,
        document: Dict[str, Any],
        metadata: Mapping[str, Any],
        timestamp: Optional[datetime] = None,
        seal_key: Optional[SealKey] = None,
    ) -> Seal:
        """Seal a structured document using its canonical JSON as content."""
        return self.seal(canonicalize(document), metadata, timestamp, seal_key)

    def _resolve_key(self, seal: Seal, seal_key: Optional[SealKey]) -> Optional[SealKey]:
        if seal_key is not None:
            return seal_key
        if self.key_store is not None and seal.seal_key_id:
            return self.key_store.get(seal.seal_key_id)
        return None

    def verify(
        self,
        content: Content,
        metadata: Mapping[str, Any],
        seal: Seal,
        seal_key: Optional[SealKey] = None,
    ) -> SealVerification:
        """
        Verify a seal against presented content and metadata.

        Checks run in order and stop at the first mismatch:
        content, metadata, final, and (keyed only) seal.
        """
        key = self._resolve_key(seal, seal_key)
        keyed = key is not None

        c_hash = self.content_hash(content)
        if not digests_equal(c_hash, seal.content_hash):
            result = SealVerification.tampered("content", seal.content_hash, c_hash, keyed)
            return self._report(seal, result)

        m_hash = self.metadata_hash(metadata)
        if not digests_equal(m_hash, seal.metadata_hash):
            result = SealVerification.tampered("metadata", seal.metadata_hash, m_hash, keyed)
            return self._report(seal, result)

        f_hash = self._final(c_hash, m_hash, seal.seal_hash.lower())
        if not digests_equal(f_hash, seal.final_hash):
            result = SealVerification.tampered("final", seal.final_hash, f_hash, keyed)
            return self._report(seal, result)

        if keyed:
            s_hash = hmac_sha512_hex(key.material, self._combined(c_hash, m_hash, seal.timestamp))
            if not digests_equal(s_hash, seal.seal_hash):
                result = SealVerification.tampered("seal", seal.seal_hash, s_hash, keyed)
                return self._report(seal, result)

        return self._report(seal, SealVerification.intact(keyed))

    def verify_or_raise(
        self,
        content: Content,
        metadata: Mapping[str, Any],
        seal: Seal,
        seal_key: Optional[SealKey] = None,
    ) -> SealVerification:
        """Verify and raise HashMismatch on any tampered component."""
        result = self.verify(content, metadata, seal, seal_key)
        if not result.is_intact():
            raise HashMismatch(result.expected, result.calculated, subject=f"seal {result.component}")
        return result

    @staticmethod
    def _report(seal: Seal, result: SealVerification) -> SealVerification:
        audit_log.seal_verified(
            final_hash=seal.final_hash,
            status=result.status.value,
            component=result.component,
            keyed=result.keyed,
        )
        return result
