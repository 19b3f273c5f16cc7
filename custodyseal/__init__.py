"""
CustodySeal

Version: 1.0.0
License: Apache 2.0

Tamper-evident sealing, chain of custody, and the downstream contract for
forensic work-products.

A report is sealed with a triple hash:
    finalHash = SHA-512(contentHash | metadataHash | HMAC-SHA512(key, ...))

and stored in an append-only, hash-keyed vault. Downstream advisory code
only ever sees a SealedSummary: hashes, scores, counts, pseudonyms and
coordinates, admitted through the input contract and routed to a
jurisdiction by bounding box.

Usage:
    from custodyseal import (
        SealingEngine,
        InMemoryEvidenceVault,
        InputContractValidator,
        JurisdictionRouter,
        SealedSummary,
        RecordType,
    )

    engine = SealingEngine()
    vault = InMemoryEvidenceVault()

    seal = engine.seal(report_bytes, {"caseId": "C-1042", "examiner": "unit-7"})
    vault.store(seal.final_hash, RecordType.FORENSIC)

    summary = SealedSummary.from_dict(summary_json)
    result = InputContractValidator(vault).validate(summary)

    if result.is_valid():
        assignment = JurisdictionRouter().classify(summary.gps_coordinates)
        # assignment.primary, assignment.all, assignment.cross_border
    else:
        # result.rule names the failing rule; never the offending value
        ...
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Errors
from .errors import (
    CustodySealError,
    HashMismatch,
    ContractViolation,
    VaultConflict,
    SessionClosedError,
    SessionNotFound,
    VerificationIOError,
)

# Hashing primitives
from .hashing import (
    sha512_hex,
    sha256_hex,
    sha256_file,
    hmac_sha512_hex,
    digests_equal,
    pseudonymize,
)

# Sealing
from .sealing import (
    SealingEngine,
    Seal,
    SealKey,
    SealStatus,
    SealVerification,
    SealKeyStore,
    InMemorySealKeyStore,
    SecretBoxSealKeyStore,
)

# Artifact integrity
from .integrity import (
    ArtifactIntegrityVerifier,
    IntegrityReport,
    IntegrityStatus,
    ChainOfTrust,
    require_authentic,
)

# Custody and vault
from .custody import CustodyAction, CustodyEntry, CustodyReport, CustodyIntegrityStatus
from .vault import (
    EvidenceVault,
    InMemoryEvidenceVault,
    SqliteEvidenceVault,
    RecordType,
    VaultRecord,
    verify_log_chain,
)

# Contract boundary
from .summary import (
    SealedSummary,
    FindingSummary,
    ActorSummary,
    Coordinate,
    TimelineSummary,
    ContradictionSummary,
)
from .contract import InputContractValidator, ContractResult, ContractRule

# Routing, sessions, advisory
from .jurisdiction import JurisdictionRouter, JurisdictionBox, JurisdictionAssignment, UNKNOWN_JURISDICTION
from .session import SealedSessionManager, SessionState, SessionTranscript
from .advisory import AdvisoryResponse
from .pipeline import CustodyPipeline

# Configuration
from .config import Settings

__all__ = [
    # Errors
    "CustodySealError",
    "HashMismatch",
    "ContractViolation",
    "VaultConflict",
    "SessionClosedError",
    "SessionNotFound",
    "VerificationIOError",
    # Hashing
    "sha512_hex",
    "sha256_hex",
    "sha256_file",
    "hmac_sha512_hex",
    "digests_equal",
    "pseudonymize",
    # Sealing
    "SealingEngine",
    "Seal",
    "SealKey",
    "SealStatus",
    "SealVerification",
    "SealKeyStore",
    "InMemorySealKeyStore",
    "SecretBoxSealKeyStore",
    # Integrity
    "ArtifactIntegrityVerifier",
    "IntegrityReport",
    "IntegrityStatus",
    "ChainOfTrust",
    "require_authentic",
    # Custody and vault
    "CustodyAction",
    "CustodyEntry",
    "CustodyReport",
    "CustodyIntegrityStatus",
    "EvidenceVault",
    "InMemoryEvidenceVault",
    "SqliteEvidenceVault",
    "RecordType",
    "VaultRecord",
    "verify_log_chain",
    # Contract
    "SealedSummary",
    "FindingSummary",
    "ActorSummary",
    "Coordinate",
    "TimelineSummary",
    "ContradictionSummary",
    "InputContractValidator",
    "ContractResult",
    "ContractRule",
    # Routing, sessions, advisory
    "JurisdictionRouter",
    "JurisdictionBox",
    "JurisdictionAssignment",
    "UNKNOWN_JURISDICTION",
    "SealedSessionManager",
    "SessionState",
    "SessionTranscript",
    "AdvisoryResponse",
    "CustodyPipeline",
    # Configuration
    "Settings",
]
