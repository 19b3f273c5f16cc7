"""
CustodySeal Hashing Primitives

- Seal digest: SHA-512, lowercase hexadecimal (128 chars)
- Keyed seal: HMAC-SHA512 over UTF-8 input
- Artifact anchor digest: SHA-256, lowercase hexadecimal (64 chars),
  computed over streamed chunks so large artifacts are never loaded whole
- Actor pseudonyms: SHA-256, lowercase hexadecimal (64 chars)

All comparisons of hex digests are case-insensitive and constant-time.
"""

import hashlib
import hmac
import re
import secrets
from typing import BinaryIO, Callable, Optional, Union

SEAL_DIGEST_HEX_LENGTH = 128
ANCHOR_DIGEST_HEX_LENGTH = 64
PSEUDONYM_HEX_LENGTH = 64

SEAL_KEY_BYTES = 64

DEFAULT_CHUNK_SIZE = 64 * 1024

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_LOWER_HEX_RE = re.compile(r"^[0-9a-f]+$")


def _to_bytes(data: Union[bytes, str]) -> bytes:
    if isinstance(data, str):
        return data.encode('utf-8')
    return data


def sha512_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-512 and return lowercase hex."""
    return hashlib.sha512(_to_bytes(data)).hexdigest()


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 and return lowercase hex."""
    return hashlib.sha256(_to_bytes(data)).hexdigest()


def hmac_sha512_hex(key: bytes, data: Union[bytes, str]) -> str:
    """Compute HMAC-SHA512 of data under key and return lowercase hex."""
    return hmac.new(key, _to_bytes(data), hashlib.sha512).hexdigest()


def sha256_stream(
    stream: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Optional[str]:
    """
    SHA-256 a binary stream chunk by chunk.

    Returns None if ``should_stop`` reports True between chunks, which lets
    a caller that has given up on the read stop the worker promptly.
    """
    digest = hashlib.sha256()
    while True:
        if should_stop is not None and should_stop():
            return None
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        digest.update(chunk)
    return digest.hexdigest()


def sha256_file(path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """SHA-256 of a file on disk. Matches ``sha256sum <path>``."""
    with open(path, "rb") as f:
        return sha256_stream(f, chunk_size)


def generate_seal_key() -> bytes:
    """Generate a fresh 512-bit seal key from the OS CSPRNG."""
    return secrets.token_bytes(SEAL_KEY_BYTES)


def is_hex(value: object, expected_length: Optional[int] = None) -> bool:
    """True if value is a hex string (either case) of the expected length."""
    if not isinstance(value, str) or not value:
        return False
    if expected_length is not None and len(value) != expected_length:
        return False
    return _HEX_RE.match(value) is not None


def is_lower_hex(value: object, expected_length: Optional[int] = None) -> bool:
    """True if value is a lowercase hex string of the expected length."""
    if not isinstance(value, str) or not value:
        return False
    if expected_length is not None and len(value) != expected_length:
        return False
    return _LOWER_HEX_RE.match(value) is not None


def normalize_hex(value: str) -> str:
    """Lowercase and strip a hex digest for storage or lookup."""
    return value.strip().lower()


def digests_equal(a: str, b: str) -> bool:
    """
    Compare two hex digests case-insensitively in constant time.
    """
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return hmac.compare_digest(
        normalize_hex(a).encode('ascii', 'replace'),
        normalize_hex(b).encode('ascii', 'replace'),
    )


def pseudonymize(identifier: str, salt: str = "") -> str:
    """
    Derive an actor pseudonym.

    The pseudonym is SHA-256 over ``salt + identifier``. Use a per-case salt
    so pseudonyms cannot be linked across cases.
    """
    return sha256_hex(f"{salt}{identifier}")


def chain_entry_hash(prev_entry_hash: Optional[str], payload_hash: str) -> str:
    """Link a log entry to its predecessor: SHA-512(prev + payload_hash)."""
    return sha512_hex((prev_entry_hash or "") + payload_hash)
