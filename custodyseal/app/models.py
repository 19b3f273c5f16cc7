from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SealRequest(_CamelModel):
    content: str
    metadata: Dict[str, str] = Field(default_factory=dict)
    actor_id: str = Field(alias="actorId")
    device_id: str = Field(default="", alias="deviceId")
    timestamp: Optional[datetime] = None


class SealVerifyRequest(_CamelModel):
    content: str
    metadata: Dict[str, str] = Field(default_factory=dict)
    seal: Dict[str, Any]


class CustodyExportRequest(_CamelModel):
    actor_id: str = Field(alias="actorId")
    device_id: str = Field(default="", alias="deviceId")


class ClassifyRequest(_CamelModel):
    coordinates: List[Dict[str, Any]]


class SummaryRequest(_CamelModel):
    sealed_summary: Dict[str, Any] = Field(alias="sealedSummary")


class AdvisoryBody(_CamelModel):
    report_hash: str = Field(alias="reportHash")
    jurisdiction: str
    all_applicable_jurisdictions: List[str] = Field(default_factory=list, alias="allApplicableJurisdictions")
    recommendations: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list, alias="nextSteps")
    risk_factors: List[str] = Field(default_factory=list, alias="riskFactors")
    disclaimers: List[str] = Field(default_factory=list)
    generated_at: Optional[str] = Field(default=None, alias="generatedAt")


class AdvisorySealRequest(_CamelModel):
    sealed_summary: Dict[str, Any] = Field(alias="sealedSummary")
    advisory: AdvisoryBody
    actor_id: str = Field(default="advisory", alias="actorId")


class SessionAskRequest(_CamelModel):
    session_id: str = Field(alias="sessionId")
    question: str
    response: str


class SessionCloseRequest(_CamelModel):
    session_id: str = Field(alias="sessionId")
