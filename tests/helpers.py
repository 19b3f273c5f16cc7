"""Shared builders for the test suite."""

import hashlib
import os
import tempfile

from custodyseal.hashing import pseudonymize, sha512_hex

CASE_SALT = "case-1042"

ACTOR_A = pseudonymize("actor-a", CASE_SALT)
ACTOR_B = pseudonymize("actor-b", CASE_SALT)

ABU_DHABI = {"latitude": 24.4539, "longitude": 54.3773}
CAPE_TOWN = {"latitude": -33.9249, "longitude": 18.4241}
JOHANNESBURG = {"latitude": -26.2041, "longitude": 28.0473}
RIYADH = {"latitude": 24.7136, "longitude": 46.6753}
PARIS = {"latitude": 48.8566, "longitude": 2.3522}
GULF_OF_GUINEA = {"latitude": 0.0, "longitude": 0.0}


def report_hash(label: str = "report") -> str:
    return sha512_hex(label)


def summary_dict(report_hash_hex: str, coordinates=None, **overrides) -> dict:
    data = {
        "reportHash": report_hash_hex,
        "integrityScore": 87,
        "findings": [
            {
                "category": "financial",
                "severity": 4,
                "confidence": 82.5,
                "evidenceCount": 3,
                "subcategory": "unexplained_transfer",
                "actorsInvolved": [ACTOR_A],
            },
            {
                "category": "timeline",
                "severity": 2,
                "confidence": 60,
                "evidenceCount": 1,
            },
        ],
        "actors": [
            {"id": ACTOR_A, "consistencyScore": 41.0, "role": "person", "flags": ["inconsistent_dates"]},
            {"id": ACTOR_B, "consistencyScore": 93.0},
        ],
        "gpsCoordinates": [dict(c, source="device", confidence="PROBABLE") for c in (coordinates or [ABU_DHABI])],
        "tripleVerificationStatus": "PASSED",
        "engineVersion": "5.2.0",
        "timelineSummary": {"eventCount": 14, "gapCount": 2, "suspiciousDatesCount": 1},
        "contradictionSummary": {"total": 3, "unresolved": 1, "critical": 0, "high": 1, "medium": 1, "low": 1},
    }
    data.update(overrides)
    return data


def write_artifact(content: bytes = b"custodyseal release build\n"):
    """Write an artifact to a temp file. Returns (path, sha256 hex)."""
    fd, path = tempfile.mkstemp(prefix="artifact-", suffix=".bin")
    with os.fdopen(fd, "wb") as f:
        f.write(content)
    return path, hashlib.sha256(content).hexdigest()


def make_pipeline(tamper: bool = False):
    """A pipeline over in-memory components, verified against a fresh artifact."""
    from custodyseal.integrity import ArtifactIntegrityVerifier
    from custodyseal.jurisdiction import JurisdictionRouter
    from custodyseal.pipeline import CustodyPipeline
    from custodyseal.sealing import InMemorySealKeyStore, SealingEngine
    from custodyseal.vault import InMemoryEvidenceVault

    path, anchor = write_artifact()
    try:
        if tamper:
            with open(path, "ab") as f:
                f.write(b"patched")
        verifier = ArtifactIntegrityVerifier(anchor)
        report = verifier.verify(path)
    finally:
        os.remove(path)
    return CustodyPipeline(
        engine=SealingEngine(InMemorySealKeyStore()),
        vault=InMemoryEvidenceVault(),
        router=JurisdictionRouter(),
        verifier=verifier,
        integrity_report=report,
    )
