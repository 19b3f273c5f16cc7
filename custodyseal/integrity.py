"""
CustodySeal Artifact Integrity Verifier

Anchors the running software to a published artifact hash. The artifact
is streamed through SHA-256 and compared, case-insensitively, with the
configured anchor. The result is reproducible with::

    sha256sum <artifact>

Verdicts:
    AUTHENTIC           digest matches the anchor
    TAMPERED            digest differs from the anchor
    VERIFICATION_FAILED the digest could not be computed (missing file,
                        I/O error, or the read exceeded its timeout)

TAMPERED is fatal: ``require_authentic`` raises HashMismatch and callers
must not continue into any sensitive processing path.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, BinaryIO, Callable, Dict, Optional

from .custody import CustodyIntegrityStatus, CustodyReport
from .errors import HashMismatch, VerificationIOError
from .hashing import (
    ANCHOR_DIGEST_HEX_LENGTH,
    DEFAULT_CHUNK_SIZE,
    digests_equal,
    is_hex,
    normalize_hex,
    sha256_stream,
)
from .logging_config import audit_log
from .util import generate_uuid, utc_now, utc_rfc3339

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_TIMEOUT_SECONDS = 30.0

Opener = Callable[[str], BinaryIO]


def _open_binary(path: str) -> BinaryIO:
    return open(path, "rb")


class IntegrityStatus(str, Enum):
    AUTHENTIC = "AUTHENTIC"
    TAMPERED = "TAMPERED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"


@dataclass(frozen=True)
class IntegrityReport:
    """Outcome of one artifact verification. Created per call, never mutated."""
    status: IntegrityStatus
    expected_hash: str
    calculated_hash: Optional[str]
    message: str
    verification_time_ms: int
    timestamp: datetime = field(default_factory=utc_now)
    report_id: str = field(default_factory=generate_uuid)

    @property
    def is_authentic(self) -> bool:
        return self.status == IntegrityStatus.AUTHENTIC

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportId": self.report_id,
            "timestamp": utc_rfc3339(self.timestamp),
            "status": self.status.value,
            "isAuthentic": self.is_authentic,
            "calculatedHash": self.calculated_hash,
            "expectedHash": self.expected_hash,
            "verificationTimeMs": self.verification_time_ms,
            "message": self.message,
        }


@dataclass(frozen=True)
class TamperDetectionResult:
    is_tampered: bool
    expected_hash: str
    actual_hash: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isTampered": self.is_tampered,
            "expectedHash": self.expected_hash,
            "actualHash": self.actual_hash,
            "message": self.message,
        }


@dataclass(frozen=True)
class ChainOfTrust:
    """Binds a case and device to a verified artifact and its custody history."""
    artifact_hash: str
    artifact_verified: bool
    case_id: str
    device_id: str
    custody: CustodyReport
    trust_anchor: str
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=generate_uuid)

    @property
    def is_trusted(self) -> bool:
        return (
            self.artifact_verified
            and self.custody.integrity_status == CustodyIntegrityStatus.ALL_VERIFIED
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": utc_rfc3339(self.timestamp),
            "artifactHash": self.artifact_hash,
            "artifactVerified": self.artifact_verified,
            "caseId": self.case_id,
            "deviceId": self.device_id,
            "custody": self.custody.to_dict(),
            "trustAnchor": self.trust_anchor,
            "trusted": self.is_trusted,
        }


class ArtifactIntegrityVerifier:
    """
    Verifies an artifact against a SHA-256 anchor.

    The anchor and read timeout are supplied at construction. ``opener``
    may be replaced to read from something other than the local
    filesystem; it must return a binary stream usable as a context manager.
    """

    def __init__(
        self,
        anchor: str,
        timeout_seconds: float = DEFAULT_VERIFY_TIMEOUT_SECONDS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        opener: Opener = _open_binary,
    ):
        if not is_hex(anchor, ANCHOR_DIGEST_HEX_LENGTH):
            raise ValueError("artifact anchor must be a 64-character hex SHA-256 digest")
        self.anchor = normalize_hex(anchor)
        self.timeout_seconds = timeout_seconds
        self.chunk_size = chunk_size
        self._opener = opener

    def _digest(self, path: str, should_stop: Callable[[], bool]) -> Optional[str]:
        with self._opener(path) as stream:
            return sha256_stream(stream, self.chunk_size, should_stop)

    def verify(self, path: str) -> IntegrityReport:
        """
        Verify the artifact at ``path``.

        Never raises for I/O problems; they are reported as
        VERIFICATION_FAILED.
        """
        started = time.monotonic()
        stop = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="artifact-verify")
        try:
            future = executor.submit(self._digest, path, stop.is_set)
            calculated = future.result(timeout=self.timeout_seconds)
        except FuturesTimeout:
            stop.set()
            report = self._failed(started, f"Artifact read exceeded {self.timeout_seconds}s timeout")
        except FileNotFoundError:
            report = self._failed(started, "Artifact not found")
        except OSError as e:
            report = self._failed(started, f"Artifact could not be read: {e.__class__.__name__}")
        else:
            report = self._compare(started, calculated)
        finally:
            executor.shutdown(wait=False)

        audit_log.integrity_verdict(
            report_id=report.report_id,
            status=report.status.value,
            calculated_hash=report.calculated_hash,
            expected_hash=report.expected_hash,
        )
        return report

    def _elapsed_ms(self, started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    def _failed(self, started: float, message: str) -> IntegrityReport:
        return IntegrityReport(
            status=IntegrityStatus.VERIFICATION_FAILED,
            expected_hash=self.anchor,
            calculated_hash=None,
            message=message,
            verification_time_ms=self._elapsed_ms(started),
        )

    def _compare(self, started: float, calculated: str) -> IntegrityReport:
        if digests_equal(calculated, self.anchor):
            status = IntegrityStatus.AUTHENTIC
            message = "Artifact matches anchor"
        else:
            status = IntegrityStatus.TAMPERED
            message = "Artifact hash does not match anchor"
        return IntegrityReport(
            status=status,
            expected_hash=self.anchor,
            calculated_hash=calculated,
            message=message,
            verification_time_ms=self._elapsed_ms(started),
        )

    def check_tamper(self, calculated_hash: str) -> TamperDetectionResult:
        """Compare an externally computed digest with the anchor."""
        tampered = not digests_equal(calculated_hash, self.anchor)
        return TamperDetectionResult(
            is_tampered=tampered,
            expected_hash=self.anchor,
            actual_hash=normalize_hex(calculated_hash),
            message="Artifact hash does not match anchor" if tampered else "Artifact matches anchor",
        )

    def chain_of_trust(
        self,
        artifact_hash: str,
        case_id: str,
        device_id: str,
        custody: CustodyReport,
    ) -> ChainOfTrust:
        return ChainOfTrust(
            artifact_hash=normalize_hex(artifact_hash),
            artifact_verified=digests_equal(artifact_hash, self.anchor),
            case_id=case_id,
            device_id=device_id,
            custody=custody,
            trust_anchor=self.anchor,
        )


def require_authentic(report: IntegrityReport) -> IntegrityReport:
    """
    Fail closed on anything but AUTHENTIC.

    Raises:
        HashMismatch: the artifact is TAMPERED
        VerificationIOError: the artifact could not be verified
    """
    if report.status == IntegrityStatus.TAMPERED:
        audit_log.security_event(
            "ARTIFACT_TAMPERED",
            severity="critical",
            report_id=report.report_id,
        )
        raise HashMismatch(report.expected_hash, report.calculated_hash or "", subject="artifact")
    if report.status == IntegrityStatus.VERIFICATION_FAILED:
        raise VerificationIOError(report.message)
    return report
