"""
CustodySeal Input Contract Validator

The firewall between sealed evidence and the advisory layer. A sealed
summary is admitted only if every rule below passes. Rules run in order
and stop at the first failure:

    1. REPORT_HASH          reportHash is a 128-char hex SHA-512 digest
    2. INTEGRITY_SCORE      integrityScore is an integer in [0, 100]
    3. ACTOR_PSEUDONYM      every actor id is a 64-char lowercase hex pseudonym
    4. FIELD_LENGTH         every string is a single token of at most 64 chars
    5. SCHEMA               no unknown fields; at least one finding; nested
                            values in range
    6. TRIPLE_VERIFICATION  tripleVerificationStatus is not FAILED
    7. ARTIFACT_ANCHOR      apkRootHash, when present, matches the release anchor
    8. CUSTODY              reportHash has a vault record (skipped when detached)

A failure names the rule, and the path of the failing field, but never the
offending value. Paths are built from known field names only: an unknown
key is reported by the position of the object that holds it.

Nothing is fixed up: invalid input is rejected.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Mapping, Optional, Tuple

from .errors import ContractViolation
from .hashing import (
    ANCHOR_DIGEST_HEX_LENGTH,
    PSEUDONYM_HEX_LENGTH,
    SEAL_DIGEST_HEX_LENGTH,
    digests_equal,
    is_hex,
    is_lower_hex,
)
from .logging_config import audit_log


class ContractRule(str, Enum):
    REPORT_HASH = "REPORT_HASH"
    INTEGRITY_SCORE = "INTEGRITY_SCORE"
    ACTOR_PSEUDONYM = "ACTOR_PSEUDONYM"
    FIELD_LENGTH = "FIELD_LENGTH"
    SCHEMA = "SCHEMA"
    TRIPLE_VERIFICATION = "TRIPLE_VERIFICATION"
    ARTIFACT_ANCHOR = "ARTIFACT_ANCHOR"
    CUSTODY = "CUSTODY"
    QUESTION_POLICY = "QUESTION_POLICY"
    ADVISORY_BINDING = "ADVISORY_BINDING"


MAX_TOKEN_LENGTH = 64
TOKEN_RE = re.compile(r"^[A-Za-z0-9_.:+\-]*$")

SUMMARY_FIELDS = frozenset({
    "reportHash", "integrityScore", "findings", "actors", "gpsCoordinates",
    "tripleVerificationStatus", "generatedAt", "engineVersion",
    "timelineSummary", "contradictionSummary", "apkRootHash", "jurisdictionHint",
})
REQUIRED_SUMMARY_FIELDS = ("reportHash", "integrityScore", "findings", "actors", "gpsCoordinates")
FINDING_FIELDS = frozenset({
    "category", "severity", "confidence", "evidenceCount", "subcategory", "actorsInvolved",
})
ACTOR_FIELDS = frozenset({"id", "consistencyScore", "role", "flags"})
COORDINATE_FIELDS = frozenset({"latitude", "longitude", "accuracy", "source", "confidence"})
TIMELINE_FIELDS = frozenset({"eventCount", "gapCount", "suspiciousDatesCount"})
CONTRADICTION_FIELDS = frozenset({"total", "unresolved", "critical", "high", "medium", "low"})
KNOWN_FIELDS = (
    SUMMARY_FIELDS | FINDING_FIELDS | ACTOR_FIELDS | COORDINATE_FIELDS
    | TIMELINE_FIELDS | CONTRADICTION_FIELDS
)

COORDINATE_SOURCES = frozenset({"device", "metadata", "exif", "timestamp_inferred"})
COORDINATE_CONFIDENCE = frozenset({"CERTAIN", "PROBABLE", "POSSIBLE"})
TRIPLE_VERIFICATION_STATUSES = frozenset({"PASSED", "FAILED", "UNKNOWN"})

QUESTION_FORBIDDEN_PATTERNS = (
    re.compile(r"\bupload(s|ed|ing)?\b", re.IGNORECASE),
    re.compile(r"\braw\b", re.IGNORECASE),
    re.compile(r"\bdocuments?\b", re.IGNORECASE),
    re.compile(r"\battach(ed|ment|ments)?\b", re.IGNORECASE),
)


@dataclass(frozen=True)
class ContractResult:
    """Outcome of a contract check. A violation carries the rule and field path only."""
    valid: bool
    rule: Optional[ContractRule] = None
    path: Optional[str] = None

    def is_valid(self) -> bool:
        return self.valid

    @classmethod
    def ok(cls) -> 'ContractResult':
        return cls(valid=True)

    @classmethod
    def violation(cls, rule: ContractRule, path: Optional[str] = None) -> 'ContractResult':
        return cls(valid=False, rule=ContractRule(rule), path=path)

    @property
    def message(self) -> str:
        if self.valid:
            return "valid"
        return f"{self.rule.value} failed"

    def to_exception(self) -> ContractViolation:
        return ContractViolation(self.rule.value, self.path)

    def to_dict(self):
        return {
            "valid": self.valid,
            "rule": self.rule.value if self.rule else None,
            "path": self.path,
        }


# ============================================================
# Helpers
# ============================================================

def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _in_range(value: Any, low: float, high: float) -> bool:
    return _is_number(value) and low <= value <= high


def _items(data: Mapping[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    return value if isinstance(value, list) else []


def _walk_strings(value: Any, path: str) -> Iterator[Tuple[str, str]]:
    # Keys outside KNOWN_FIELDS are caller text; SCHEMA rejects them without naming them.
    if isinstance(value, str):
        yield path, value
    elif isinstance(value, Mapping):
        for k, v in value.items():
            if k in KNOWN_FIELDS:
                yield from _walk_strings(v, f"{path}.{k}" if path else k)
    elif isinstance(value, (list, tuple)):
        for i, v in enumerate(value):
            yield from _walk_strings(v, f"{path}[{i}]")


def _has_unknown_field(item: Any, allowed: frozenset) -> bool:
    return any(key not in allowed for key in item)


# ============================================================
# Rules
# ============================================================

Check = Callable[[Mapping[str, Any]], Optional[ContractResult]]


def check_report_hash(data: Mapping[str, Any]) -> Optional[ContractResult]:
    if not is_hex(data.get("reportHash"), SEAL_DIGEST_HEX_LENGTH):
        return ContractResult.violation(ContractRule.REPORT_HASH, "reportHash")
    return None


def check_integrity_score(data: Mapping[str, Any]) -> Optional[ContractResult]:
    score = data.get("integrityScore")
    if not _is_int(score) or not 0 <= score <= 100:
        return ContractResult.violation(ContractRule.INTEGRITY_SCORE, "integrityScore")
    return None


def check_actor_pseudonyms(data: Mapping[str, Any]) -> Optional[ContractResult]:
    for i, actor in enumerate(_items(data, "actors")):
        actor_id = actor.get("id") if isinstance(actor, Mapping) else None
        if not is_lower_hex(actor_id, PSEUDONYM_HEX_LENGTH):
            return ContractResult.violation(ContractRule.ACTOR_PSEUDONYM, f"actors[{i}].id")
    for i, finding in enumerate(_items(data, "findings")):
        if not isinstance(finding, Mapping):
            continue
        involved = finding.get("actorsInvolved", [])
        if not isinstance(involved, list):
            continue
        for j, actor_id in enumerate(involved):
            if not is_lower_hex(actor_id, PSEUDONYM_HEX_LENGTH):
                return ContractResult.violation(
                    ContractRule.ACTOR_PSEUDONYM, f"findings[{i}].actorsInvolved[{j}]"
                )
    return None


def check_field_lengths(data: Mapping[str, Any]) -> Optional[ContractResult]:
    for key, value in data.items():
        if key == "reportHash" or key not in SUMMARY_FIELDS:
            continue
        for path, text in _walk_strings(value, key):
            if len(text) > MAX_TOKEN_LENGTH or not TOKEN_RE.match(text):
                return ContractResult.violation(ContractRule.FIELD_LENGTH, path)
    return None


def _check_finding(finding: Any, path: str) -> Optional[ContractResult]:
    if not isinstance(finding, Mapping) or _has_unknown_field(finding, FINDING_FIELDS):
        return ContractResult.violation(ContractRule.SCHEMA, path)
    if not isinstance(finding.get("category"), str) or not finding["category"]:
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.category")
    if not _is_int(finding.get("severity")) or not 1 <= finding["severity"] <= 5:
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.severity")
    if not _in_range(finding.get("confidence"), 0, 100):
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.confidence")
    if not _is_int(finding.get("evidenceCount")) or finding["evidenceCount"] < 0:
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.evidenceCount")
    if not isinstance(finding.get("subcategory", ""), str):
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.subcategory")
    if not isinstance(finding.get("actorsInvolved", []), list):
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.actorsInvolved")
    return None


def _check_actor(actor: Any, path: str) -> Optional[ContractResult]:
    if not isinstance(actor, Mapping) or _has_unknown_field(actor, ACTOR_FIELDS):
        return ContractResult.violation(ContractRule.SCHEMA, path)
    if not _in_range(actor.get("consistencyScore"), 0, 100):
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.consistencyScore")
    if not isinstance(actor.get("role", ""), str):
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.role")
    flags = actor.get("flags", [])
    if not isinstance(flags, list) or not all(isinstance(f, str) for f in flags):
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.flags")
    return None


def check_coordinate(coord: Any, path: str = "coordinate") -> Optional[ContractResult]:
    """Validate one coordinate in wire form."""
    if not isinstance(coord, Mapping) or _has_unknown_field(coord, COORDINATE_FIELDS):
        return ContractResult.violation(ContractRule.SCHEMA, path)
    if not _in_range(coord.get("latitude"), -90.0, 90.0):
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.latitude")
    if not _in_range(coord.get("longitude"), -180.0, 180.0):
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.longitude")
    if not _is_number(coord.get("accuracy", 0.0)) or coord.get("accuracy", 0.0) < 0:
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.accuracy")
    if coord.get("source", "device") not in COORDINATE_SOURCES:
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.source")
    if coord.get("confidence", "PROBABLE") not in COORDINATE_CONFIDENCE:
        return ContractResult.violation(ContractRule.SCHEMA, f"{path}.confidence")
    return None


def _check_counts(value: Any, allowed: frozenset, path: str) -> Optional[ContractResult]:
    if not isinstance(value, Mapping) or _has_unknown_field(value, allowed):
        return ContractResult.violation(ContractRule.SCHEMA, path)
    for key, count in value.items():
        if not _is_int(count) or count < 0:
            return ContractResult.violation(ContractRule.SCHEMA, f"{path}.{key}")
    return None


def check_schema(data: Mapping[str, Any]) -> Optional[ContractResult]:
    if _has_unknown_field(data, SUMMARY_FIELDS):
        return ContractResult.violation(ContractRule.SCHEMA)
    for key in REQUIRED_SUMMARY_FIELDS:
        if key not in data:
            return ContractResult.violation(ContractRule.SCHEMA, key)
    for key in ("findings", "actors", "gpsCoordinates"):
        if not isinstance(data[key], list):
            return ContractResult.violation(ContractRule.SCHEMA, key)
    if not data["findings"]:
        return ContractResult.violation(ContractRule.SCHEMA, "findings")

    for i, finding in enumerate(data["findings"]):
        result = _check_finding(finding, f"findings[{i}]")
        if result:
            return result
    for i, actor in enumerate(data["actors"]):
        result = _check_actor(actor, f"actors[{i}]")
        if result:
            return result
    for i, coord in enumerate(data["gpsCoordinates"]):
        result = check_coordinate(coord, f"gpsCoordinates[{i}]")
        if result:
            return result

    if data.get("tripleVerificationStatus", "UNKNOWN") not in TRIPLE_VERIFICATION_STATUSES:
        return ContractResult.violation(ContractRule.SCHEMA, "tripleVerificationStatus")
    for key in ("generatedAt", "engineVersion", "jurisdictionHint"):
        if key in data and not isinstance(data[key], str):
            return ContractResult.violation(ContractRule.SCHEMA, key)
    if "apkRootHash" in data and not is_hex(data["apkRootHash"], ANCHOR_DIGEST_HEX_LENGTH):
        return ContractResult.violation(ContractRule.SCHEMA, "apkRootHash")
    if "timelineSummary" in data:
        result = _check_counts(data["timelineSummary"], TIMELINE_FIELDS, "timelineSummary")
        if result:
            return result
    if "contradictionSummary" in data:
        result = _check_counts(data["contradictionSummary"], CONTRADICTION_FIELDS, "contradictionSummary")
        if result:
            return result
    return None


def check_triple_verification(data: Mapping[str, Any]) -> Optional[ContractResult]:
    if data.get("tripleVerificationStatus") == "FAILED":
        return ContractResult.violation(ContractRule.TRIPLE_VERIFICATION, "tripleVerificationStatus")
    return None


STRUCTURAL_CHECKS: Tuple[Check, ...] = (
    check_report_hash,
    check_integrity_score,
    check_actor_pseudonyms,
    check_field_lengths,
    check_schema,
    check_triple_verification,
)


def check_structure(data: Any) -> ContractResult:
    """
    Run every rule that does not need the vault.

    Used at construction time by SealedSummary and as the first stage of
    InputContractValidator.
    """
    if not isinstance(data, Mapping):
        return ContractResult.violation(ContractRule.SCHEMA)
    for check in STRUCTURAL_CHECKS:
        result = check(data)
        if result is not None:
            return result
    return ContractResult.ok()


def check_question(question: str) -> ContractResult:
    """Reject follow-up questions that reference uploads, raw material or documents."""
    if not isinstance(question, str) or not question.strip():
        return ContractResult.violation(ContractRule.QUESTION_POLICY)
    for pattern in QUESTION_FORBIDDEN_PATTERNS:
        if pattern.search(question):
            return ContractResult.violation(ContractRule.QUESTION_POLICY)
    return ContractResult.ok()


# ============================================================
# Validator
# ============================================================

class InputContractValidator:
    """
    Validates sealed summaries at the advisory boundary.

    Args:
        vault: vault used for the custody rule
        detached: skip the custody rule (offline validation of exported
            summaries). A vault is required unless detached.
        anchor: release SHA-256 anchor; a summary carrying apkRootHash
            must match it. None skips the check.
    """

    def __init__(self, vault=None, detached: bool = False, anchor: Optional[str] = None):
        if vault is None and not detached:
            raise ValueError("a vault is required unless the validator is detached")
        self.vault = vault
        self.detached = detached
        self.anchor = anchor

    def validate(self, summary: Any) -> ContractResult:
        """Validate a SealedSummary or its wire dict."""
        data = summary.to_dict() if hasattr(summary, "to_dict") else summary
        result = check_structure(data)
        if result.is_valid() and self.anchor and "apkRootHash" in data:
            if not digests_equal(data["apkRootHash"], self.anchor):
                result = ContractResult.violation(ContractRule.ARTIFACT_ANCHOR, "apkRootHash")
        if result.is_valid() and not self.detached:
            if not self.vault.contains(data["reportHash"]):
                result = ContractResult.violation(ContractRule.CUSTODY, "reportHash")
        if not result.is_valid():
            audit_log.contract_violation(result.rule.value, result.path)
        return result

    def enforce(self, summary: Any) -> Any:
        """Validate and raise ContractViolation on failure. Returns the summary."""
        result = self.validate(summary)
        if not result.is_valid():
            raise result.to_exception()
        return summary
