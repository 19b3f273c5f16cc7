"""
CustodySeal Sealed Summary

The only object the advisory layer may read. It carries hashes, scores,
counts, pseudonyms and coordinates; never text copied from evidence.

Construction runs the structural contract rules, so an instance that
exists is already well-formed. The custody rule still has to be checked
against a vault at the advisory boundary (InputContractValidator).

Wire form uses camelCase keys::

    {
      "reportHash": "<128 hex>",
      "integrityScore": 87,
      "findings": [{"category": "financial", "severity": 4, ...}],
      "actors": [{"id": "<64 hex>", "consistencyScore": 72.5, ...}],
      "gpsCoordinates": [{"latitude": 24.45, "longitude": 54.37, ...}],
      "tripleVerificationStatus": "PASSED",
      "apkRootHash": "<64 hex release anchor>",
      "jurisdictionHint": "UAE"
    }

jurisdictionHint is informational; the router decides jurisdiction from
the coordinates.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .contract import check_coordinate, check_structure
from .hashing import normalize_hex


@dataclass(frozen=True)
class FindingSummary:
    category: str
    severity: int
    confidence: float
    evidence_count: int
    subcategory: str = ""
    actors_involved: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "severity": self.severity,
            "confidence": self.confidence,
            "evidenceCount": self.evidence_count,
            "subcategory": self.subcategory,
            "actorsInvolved": list(self.actors_involved),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FindingSummary':
        return cls(
            category=data["category"],
            severity=data["severity"],
            confidence=data["confidence"],
            evidence_count=data["evidenceCount"],
            subcategory=data.get("subcategory", ""),
            actors_involved=tuple(data.get("actorsInvolved", ())),
        )


@dataclass(frozen=True)
class ActorSummary:
    id: str
    consistency_score: float
    role: str = "person"
    flags: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "consistencyScore": self.consistency_score,
            "role": self.role,
            "flags": list(self.flags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ActorSummary':
        return cls(
            id=data["id"],
            consistency_score=data["consistencyScore"],
            role=data.get("role", "person"),
            flags=tuple(data.get("flags", ())),
        )


@dataclass(frozen=True)
class Coordinate:
    """A geographic point. Range-checked on construction."""
    latitude: float
    longitude: float
    accuracy: float = 0.0
    source: str = "device"
    confidence: str = "PROBABLE"

    def __post_init__(self):
        result = check_coordinate(self.to_dict())
        if result is not None:
            raise result.to_exception()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "accuracy": self.accuracy,
            "source": self.source,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Coordinate':
        result = check_coordinate(data)
        if result is not None:
            raise result.to_exception()
        return cls(
            latitude=data["latitude"],
            longitude=data["longitude"],
            accuracy=data.get("accuracy", 0.0),
            source=data.get("source", "device"),
            confidence=data.get("confidence", "PROBABLE"),
        )


@dataclass(frozen=True)
class TimelineSummary:
    event_count: int = 0
    gap_count: int = 0
    suspicious_dates_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "eventCount": self.event_count,
            "gapCount": self.gap_count,
            "suspiciousDatesCount": self.suspicious_dates_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TimelineSummary':
        return cls(
            event_count=data.get("eventCount", 0),
            gap_count=data.get("gapCount", 0),
            suspicious_dates_count=data.get("suspiciousDatesCount", 0),
        )


@dataclass(frozen=True)
class ContradictionSummary:
    total: int = 0
    unresolved: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "unresolved": self.unresolved,
            "critical": self.critical,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContradictionSummary':
        return cls(**{k: data.get(k, 0) for k in ("total", "unresolved", "critical", "high", "medium", "low")})


@dataclass(frozen=True)
class SealedSummary:
    """
    Abstracted, sealed view of a forensic report.

    Raises ContractViolation on construction if any structural rule fails.
    """
    report_hash: str
    integrity_score: int
    findings: Tuple[FindingSummary, ...] = ()
    actors: Tuple[ActorSummary, ...] = ()
    gps_coordinates: Tuple[Coordinate, ...] = ()
    triple_verification_status: str = "UNKNOWN"
    generated_at: Optional[str] = None
    engine_version: Optional[str] = None
    timeline_summary: Optional[TimelineSummary] = None
    contradiction_summary: Optional[ContradictionSummary] = None
    apk_root_hash: Optional[str] = None
    jurisdiction_hint: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "findings", tuple(self.findings))
        object.__setattr__(self, "actors", tuple(self.actors))
        object.__setattr__(self, "gps_coordinates", tuple(self.gps_coordinates))
        result = check_structure(self.to_dict())
        if not result.is_valid():
            raise result.to_exception()
        object.__setattr__(self, "report_hash", normalize_hex(self.report_hash))

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "reportHash": self.report_hash,
            "integrityScore": self.integrity_score,
            "findings": [f.to_dict() for f in self.findings],
            "actors": [a.to_dict() for a in self.actors],
            "gpsCoordinates": [c.to_dict() for c in self.gps_coordinates],
            "tripleVerificationStatus": self.triple_verification_status,
        }
        if self.generated_at is not None:
            d["generatedAt"] = self.generated_at
        if self.engine_version is not None:
            d["engineVersion"] = self.engine_version
        if self.timeline_summary is not None:
            d["timelineSummary"] = self.timeline_summary.to_dict()
        if self.contradiction_summary is not None:
            d["contradictionSummary"] = self.contradiction_summary.to_dict()
        if self.apk_root_hash is not None:
            d["apkRootHash"] = self.apk_root_hash
        if self.jurisdiction_hint is not None:
            d["jurisdictionHint"] = self.jurisdiction_hint
        return d

    @classmethod
    def from_dict(cls, data: Any) -> 'SealedSummary':
        """Build from wire form. Raises ContractViolation on malformed input."""
        result = check_structure(data)
        if not result.is_valid():
            raise result.to_exception()
        timeline = data.get("timelineSummary")
        contradictions = data.get("contradictionSummary")
        return cls(
            report_hash=data["reportHash"],
            integrity_score=data["integrityScore"],
            findings=tuple(FindingSummary.from_dict(f) for f in data["findings"]),
            actors=tuple(ActorSummary.from_dict(a) for a in data["actors"]),
            gps_coordinates=tuple(Coordinate.from_dict(c) for c in data["gpsCoordinates"]),
            triple_verification_status=data.get("tripleVerificationStatus", "UNKNOWN"),
            generated_at=data.get("generatedAt"),
            engine_version=data.get("engineVersion"),
            timeline_summary=TimelineSummary.from_dict(timeline) if timeline is not None else None,
            contradiction_summary=(
                ContradictionSummary.from_dict(contradictions) if contradictions is not None else None
            ),
            apk_root_hash=data.get("apkRootHash"),
            jurisdiction_hint=data.get("jurisdictionHint"),
        )
