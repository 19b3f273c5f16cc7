"""
CustodySeal Advisory Response

Wire shape of the advisory layer's output. Composition of the advisory
text happens elsewhere; this module binds a response to the sealed
summary it was derived from before the response is sealed and stored.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

from .contract import ContractResult, ContractRule
from .hashing import digests_equal
from .jurisdiction import JurisdictionAssignment


@dataclass(frozen=True)
class AdvisoryResponse:
    report_hash: str
    jurisdiction: str
    all_applicable_jurisdictions: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    next_steps: Tuple[str, ...] = ()
    risk_factors: Tuple[str, ...] = ()
    disclaimers: Tuple[str, ...] = ()
    generated_at: Optional[str] = None
    vault_record_id: Optional[str] = None

    def document(self) -> Dict[str, Any]:
        """Sealed form: everything except the vault record id."""
        d = {
            "reportHash": self.report_hash,
            "jurisdiction": self.jurisdiction,
            "allApplicableJurisdictions": list(self.all_applicable_jurisdictions),
            "recommendations": list(self.recommendations),
            "nextSteps": list(self.next_steps),
            "riskFactors": list(self.risk_factors),
            "disclaimers": list(self.disclaimers),
        }
        if self.generated_at is not None:
            d["generatedAt"] = self.generated_at
        return d

    def to_dict(self) -> Dict[str, Any]:
        d = self.document()
        d["vaultRecordId"] = self.vault_record_id
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AdvisoryResponse':
        return cls(
            report_hash=data["reportHash"],
            jurisdiction=data["jurisdiction"],
            all_applicable_jurisdictions=tuple(data.get("allApplicableJurisdictions", ())),
            recommendations=tuple(data.get("recommendations", ())),
            next_steps=tuple(data.get("nextSteps", ())),
            risk_factors=tuple(data.get("riskFactors", ())),
            disclaimers=tuple(data.get("disclaimers", ())),
            generated_at=data.get("generatedAt"),
            vault_record_id=data.get("vaultRecordId"),
        )

    def with_record(self, record_id: str) -> 'AdvisoryResponse':
        return replace(self, vault_record_id=record_id)


def check_binding(
    advisory: AdvisoryResponse,
    report_hash: str,
    assignment: JurisdictionAssignment,
) -> ContractResult:
    """
    The advisory must name the summary's report hash and the jurisdictions
    of a fresh classification of the summary's coordinates.
    """
    if not digests_equal(advisory.report_hash, report_hash):
        return ContractResult.violation(ContractRule.ADVISORY_BINDING, "reportHash")
    if advisory.jurisdiction != assignment.primary:
        return ContractResult.violation(ContractRule.ADVISORY_BINDING, "jurisdiction")
    if sorted(advisory.all_applicable_jurisdictions) != sorted(assignment.all):
        return ContractResult.violation(ContractRule.ADVISORY_BINDING, "allApplicableJurisdictions")
    return ContractResult.ok()
