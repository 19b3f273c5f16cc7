"""
CustodySeal Pipeline

Wires the components into the sealing and advisory flow:

    raw report -> SealingEngine -> Seal -> vault (forensic) + custody
    SealedSummary -> InputContractValidator -> JurisdictionRouter
    AdvisoryResponse -> binding check -> SealingEngine -> vault (advisory)
    follow-up -> SealedSessionManager -> vault (session_transcript)

The pipeline holds the integrity report of the running artifact. Every
sensitive operation calls require_authentic() first, so a TAMPERED or
unverifiable artifact stops all sealing, admission and session work.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .advisory import AdvisoryResponse, check_binding
from .config import Settings, load_json_cached
from .contract import ContractRule, InputContractValidator
from .custody import CustodyAction, CustodyEntry, CustodyReport
from .errors import ContractViolation
from .integrity import (
    ArtifactIntegrityVerifier,
    ChainOfTrust,
    IntegrityReport,
    IntegrityStatus,
    require_authentic,
)
from .jurisdiction import JurisdictionAssignment, JurisdictionRouter
from .sealing import (
    InMemorySealKeyStore,
    Seal,
    SealingEngine,
    SealVerification,
    SecretBoxSealKeyStore,
)
from .session import SealedSessionManager, SessionExchange, SessionTranscript
from .summary import SealedSummary
from .util import b64d
from .vault import (
    EvidenceVault,
    InMemoryEvidenceVault,
    RecordType,
    SqliteEvidenceVault,
    VaultRecord,
)

logger = logging.getLogger(__name__)

SummaryInput = Union[SealedSummary, Mapping[str, Any]]


@dataclass(frozen=True)
class SealedReport:
    seal: Seal
    record_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"seal": self.seal.to_dict(), "recordId": self.record_id}


@dataclass(frozen=True)
class AdmittedSummary:
    summary: SealedSummary
    assignment: JurisdictionAssignment
    record: VaultRecord

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reportHash": self.summary.report_hash,
            "jurisdiction": self.assignment.to_dict(),
            "record": self.record.to_dict(),
        }


@dataclass(frozen=True)
class SealedAdvisory:
    advisory: AdvisoryResponse
    seal: Seal

    def to_dict(self) -> Dict[str, Any]:
        return {"advisory": self.advisory.to_dict(), "seal": self.seal.to_dict()}


class CustodyPipeline:
    """
    Coordinator for sealing, admission, advisory sealing and sessions.
    """

    def __init__(
        self,
        engine: SealingEngine,
        vault: EvidenceVault,
        router: JurisdictionRouter,
        verifier: ArtifactIntegrityVerifier,
        integrity_report: IntegrityReport,
    ):
        self.engine = engine
        self.vault = vault
        self.router = router
        self.verifier = verifier
        self.integrity_report = integrity_report
        self.validator = InputContractValidator(vault, anchor=verifier.anchor)
        self.sessions = SealedSessionManager(vault, engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> 'CustodyPipeline':
        """
        Build every component from settings and verify the configured
        artifact. With no artifact configured the report is
        VERIFICATION_FAILED and the pipeline refuses sensitive work.
        """
        if settings.key_store_path and settings.master_key_b64:
            key_store = SecretBoxSealKeyStore(settings.key_store_path, b64d(settings.master_key_b64))
        else:
            key_store = InMemorySealKeyStore()

        if settings.vault_backend == "sqlite":
            vault: EvidenceVault = SqliteEvidenceVault(settings.vault_path)
        else:
            vault = InMemoryEvidenceVault()

        if settings.jurisdiction_table_path:
            router = JurisdictionRouter.from_config(load_json_cached(settings.jurisdiction_table_path))
        else:
            router = JurisdictionRouter()

        verifier = ArtifactIntegrityVerifier(
            anchor=settings.artifact_anchor,
            timeout_seconds=settings.verify_timeout_seconds,
        )
        if settings.artifact_path:
            report = verifier.verify(settings.artifact_path)
        else:
            report = IntegrityReport(
                status=IntegrityStatus.VERIFICATION_FAILED,
                expected_hash=verifier.anchor,
                calculated_hash=None,
                message="No artifact configured",
                verification_time_ms=0,
            )
            logger.warning("no artifact configured; sensitive operations are disabled")

        return cls(SealingEngine(key_store), vault, router, verifier, report)

    # ------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------

    def reverify(self, path: str) -> IntegrityReport:
        """Re-run artifact verification and replace the held report."""
        self.integrity_report = self.verifier.verify(path)
        return self.integrity_report

    def _require_trusted(self) -> None:
        require_authentic(self.integrity_report)

    def chain_of_trust(self, report_hash: str, case_id: str, device_id: str) -> ChainOfTrust:
        return self.verifier.chain_of_trust(
            artifact_hash=self.integrity_report.calculated_hash or "",
            case_id=case_id,
            device_id=device_id,
            custody=self.vault.custody_report(report_hash),
        )

    # ------------------------------------------------------------
    # Sealing
    # ------------------------------------------------------------

    def seal_report(
        self,
        content: Union[bytes, str],
        metadata: Mapping[str, Any],
        actor_id: str,
        device_id: str = "",
        timestamp: Optional[datetime] = None,
    ) -> SealedReport:
        """Seal a forensic report, store it and record its custody."""
        self._require_trusted()
        seal = self.engine.seal(content, metadata, timestamp)
        record_id = self.vault.store(seal.final_hash, RecordType.FORENSIC)
        for action in (CustodyAction.UPLOADED, CustodyAction.SEALED):
            self.vault.record_custody(CustodyEntry(
                action=action,
                hash=seal.final_hash,
                actor_id=actor_id,
                device_id=device_id,
                integrity_check_passed=True,
            ))
        return SealedReport(seal=seal, record_id=record_id)

    def verify_report(
        self,
        content: Union[bytes, str],
        metadata: Mapping[str, Any],
        seal: Seal,
    ) -> SealVerification:
        return self.engine.verify(content, metadata, seal)

    def export_custody(self, report_hash: str, actor_id: str, device_id: str = "") -> CustodyReport:
        """Record an EXPORTED entry and return the custody report."""
        self._require_trusted()
        if not self.vault.contains(report_hash):
            raise ContractViolation(ContractRule.CUSTODY.value, "reportHash")
        self.vault.record_custody(CustodyEntry(
            action=CustodyAction.EXPORTED,
            hash=report_hash,
            actor_id=actor_id,
            device_id=device_id,
            integrity_check_passed=True,
        ))
        return self.vault.custody_report(report_hash)

    # ------------------------------------------------------------
    # Advisory boundary
    # ------------------------------------------------------------

    def classify(self, coordinates: Iterable[Any]) -> JurisdictionAssignment:
        return self.router.classify(coordinates)

    def admit_summary(self, summary: SummaryInput) -> AdmittedSummary:
        """
        Validate a sealed summary and classify its coordinates.

        Raises ContractViolation on the first failing rule.
        """
        self._require_trusted()
        self.validator.enforce(summary)
        if not isinstance(summary, SealedSummary):
            summary = SealedSummary.from_dict(summary)
        return AdmittedSummary(
            summary=summary,
            assignment=self.router.classify(summary.gps_coordinates),
            record=self.vault.lookup_by_hash(summary.report_hash),
        )

    def seal_advisory(
        self,
        advisory: AdvisoryResponse,
        summary: SummaryInput,
        actor_id: str = "advisory",
    ) -> SealedAdvisory:
        """Bind an advisory to its summary, seal it and store it."""
        admitted = self.admit_summary(summary)
        binding = check_binding(advisory, admitted.summary.report_hash, admitted.assignment)
        if not binding.is_valid():
            raise binding.to_exception()

        seal = self.engine.seal_document(
            advisory.document(),
            {
                "type": RecordType.ADVISORY.value,
                "reportHash": admitted.summary.report_hash,
                "jurisdiction": admitted.assignment.primary,
            },
        )
        record_id = self.vault.store(seal.final_hash, RecordType.ADVISORY)
        self.vault.record_custody(CustodyEntry(
            action=CustodyAction.SEALED,
            hash=seal.final_hash,
            actor_id=actor_id,
            integrity_check_passed=True,
        ))
        return SealedAdvisory(advisory=advisory.with_record(record_id), seal=seal)

    # ------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------

    def open_session(self, summary: SummaryInput) -> str:
        admitted = self.admit_summary(summary)
        return self.sessions.open(admitted.summary.report_hash, admitted.assignment.primary)

    def ask(self, session_id: str, question: str, response: str) -> SessionExchange:
        self._require_trusted()
        return self.sessions.exchange(session_id, question, response)

    def close_session(self, session_id: str) -> SessionTranscript:
        self._require_trusted()
        return self.sessions.close(session_id)
