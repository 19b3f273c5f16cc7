"""
CustodySeal Error Taxonomy

Every fault raised by the sealing pipeline derives from CustodySealError.
Integrity and contract failures are fatal to the operation that raised
them; nothing in the pipeline downgrades them to warnings.
"""

from typing import Optional


class CustodySealError(Exception):
    """Base class for all custodyseal errors."""


class HashMismatch(CustodySealError):
    """
    A recomputed digest does not match its recorded value.

    Raised for tampered artifacts and tampered seals. Callers must stop
    processing; there is no recovery path.
    """

    def __init__(self, expected: str, calculated: str, subject: str = "artifact"):
        self.expected = expected
        self.calculated = calculated
        self.subject = subject
        super().__init__(f"{subject} hash mismatch")


class ContractViolation(CustodySealError, ValueError):
    """
    Input rejected by the contract boundary.

    Carries the name of the failing rule only. The offending value is never
    part of the message, so violations are safe to log and return.
    """

    def __init__(self, rule: str, path: Optional[str] = None):
        self.rule = str(rule)
        self.path = path
        message = f"contract violation: {self.rule}"
        if path:
            message += f" at {path}"
        super().__init__(message)


class VaultConflict(CustodySealError):
    """Concurrent store for a hash that already has a record. Internal only."""

    def __init__(self, hash_hex: str, existing_record_id: str):
        self.hash_hex = hash_hex
        self.existing_record_id = existing_record_id
        super().__init__(f"record already exists for {hash_hex[:16]}")


class SessionNotFound(CustodySealError):
    """No session with the given id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"session not found: {session_id}")


class SessionClosedError(CustodySealError):
    """Operation attempted on a session that has been closed."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"session is closed: {session_id}")


class VerificationIOError(CustodySealError):
    """Artifact verification could not complete (missing file, I/O error, timeout)."""
