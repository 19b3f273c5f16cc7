
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..advisory import AdvisoryResponse
from ..config import Settings, validate_config
from ..errors import (
    ContractViolation,
    HashMismatch,
    SessionClosedError,
    SessionNotFound,
    VerificationIOError,
)
from ..logging_config import audit_log, configure_logging, set_request_id
from ..pipeline import CustodyPipeline
from ..sealing import Seal
from .models import (
    AdvisorySealRequest,
    ClassifyRequest,
    CustodyExportRequest,
    SealRequest,
    SealVerifyRequest,
    SessionAskRequest,
    SessionCloseRequest,
    SummaryRequest,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="CustodySeal")

PIPELINE: Optional[CustodyPipeline] = None


def install_pipeline(pipeline: CustodyPipeline) -> None:
    """Use a prebuilt pipeline instead of one built from the environment."""
    global PIPELINE
    PIPELINE = pipeline


def get_pipeline() -> CustodyPipeline:
    if PIPELINE is None:
        raise HTTPException(503, "NOT_INITIALIZED")
    return PIPELINE


def check_config(settings: Settings) -> None:
    """
    Check configured paths. A missing path is a warning in development
    and a startup failure in production.
    """
    missing = [name for name, exists in validate_config(settings).items() if not exists]
    for name in missing:
        logger.warning("configured %s path does not exist", name)
    if missing and settings.is_production():
        raise RuntimeError(f"missing configured paths: {', '.join(missing)}")


@app.on_event("startup")
def _startup():
    if PIPELINE is not None:
        return
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_json, settings.log_file)
    check_config(settings)
    install_pipeline(CustodyPipeline.from_settings(settings))
    logger.info("custodyseal started, artifact %s", PIPELINE.integrity_report.status.value)


@app.middleware("http")
async def _request_id(request: Request, call_next):
    rid = set_request_id(request.headers.get("x-request-id"))
    response = await call_next(request)
    response.headers["x-request-id"] = rid
    return response


# ============================================================
# Error mapping
# ============================================================

@app.exception_handler(RequestValidationError)
def _malformed_request(request: Request, exc: RequestValidationError):
    # Body field names only; nested keys and the rejected input are caller data.
    loc = []
    for error in exc.errors():
        field = [str(part) for part in error.get("loc", ())[:2]]
        if field not in loc:
            loc.append(field)
    return JSONResponse(status_code=422, content={"detail": "MALFORMED_REQUEST", "loc": loc})


@app.exception_handler(ContractViolation)
def _contract_violation(request: Request, exc: ContractViolation):
    return JSONResponse(
        status_code=422,
        content={"detail": "CONTRACT_VIOLATION", "rule": exc.rule, "path": exc.path},
    )


@app.exception_handler(HashMismatch)
def _hash_mismatch(request: Request, exc: HashMismatch):
    audit_log.security_event("REQUEST_REFUSED_HASH_MISMATCH", severity="high", subject=exc.subject)
    return JSONResponse(status_code=503, content={"detail": "INTEGRITY_FAILURE", "subject": exc.subject})


@app.exception_handler(VerificationIOError)
def _verification_io(request: Request, exc: VerificationIOError):
    return JSONResponse(status_code=503, content={"detail": "ARTIFACT_UNVERIFIED"})


@app.exception_handler(SessionNotFound)
def _session_not_found(request: Request, exc: SessionNotFound):
    return JSONResponse(status_code=404, content={"detail": "SESSION_NOT_FOUND"})


@app.exception_handler(SessionClosedError)
def _session_closed(request: Request, exc: SessionClosedError):
    return JSONResponse(status_code=409, content={"detail": "SESSION_CLOSED"})


# ============================================================
# Integrity
# ============================================================

@app.get("/health")
def health():
    pipeline = get_pipeline()
    return {
        "status": "ok",
        "integrity": pipeline.integrity_report.status.value,
    }


@app.get("/integrity")
def integrity():
    return get_pipeline().integrity_report.to_dict()


# ============================================================
# Sealing and vault
# ============================================================

@app.post("/seal")
def seal(req: SealRequest):
    sealed = get_pipeline().seal_report(
        req.content,
        req.metadata,
        actor_id=req.actor_id,
        device_id=req.device_id,
        timestamp=req.timestamp,
    )
    return sealed.to_dict()


@app.post("/seal/verify")
def seal_verify(req: SealVerifyRequest):
    try:
        presented = Seal.from_dict(req.seal)
    except KeyError:
        raise HTTPException(400, "MALFORMED_SEAL")
    return get_pipeline().verify_report(req.content, req.metadata, presented).to_dict()


@app.get("/vault_log")
def vault_log():
    return [entry.to_dict() for entry in get_pipeline().vault.export_log()]


@app.get("/vault/{hash_hex}")
def vault_lookup(hash_hex: str):
    record = get_pipeline().vault.lookup_by_hash(hash_hex)
    if record is None:
        raise HTTPException(404, "NOT_FOUND")
    return record.to_dict()


@app.get("/vault/{hash_hex}/custody")
def vault_custody(hash_hex: str):
    pipeline = get_pipeline()
    if not pipeline.vault.contains(hash_hex):
        raise HTTPException(404, "NOT_FOUND")
    return pipeline.vault.custody_report(hash_hex).to_dict()


@app.post("/vault/{hash_hex}/export")
def vault_export(hash_hex: str, req: CustodyExportRequest):
    report = get_pipeline().export_custody(hash_hex, req.actor_id, req.device_id)
    return report.to_dict()


# ============================================================
# Advisory boundary
# ============================================================

@app.post("/jurisdiction/classify")
def jurisdiction_classify(req: ClassifyRequest):
    return get_pipeline().classify(req.coordinates).to_dict()


@app.post("/advisory/intake")
def advisory_intake(req: SummaryRequest):
    return get_pipeline().admit_summary(req.sealed_summary).to_dict()


@app.post("/advisory/seal")
def advisory_seal(req: AdvisorySealRequest):
    advisory = AdvisoryResponse.from_dict(req.advisory.model_dump(by_alias=True))
    sealed = get_pipeline().seal_advisory(advisory, req.sealed_summary, actor_id=req.actor_id)
    return sealed.to_dict()


# ============================================================
# Sessions
# ============================================================

@app.post("/session/start")
def session_start(req: SummaryRequest):
    return {"sessionId": get_pipeline().open_session(req.sealed_summary)}


@app.post("/session/ask")
def session_ask(req: SessionAskRequest):
    return get_pipeline().ask(req.session_id, req.question, req.response).to_dict()


@app.post("/session/close")
def session_close(req: SessionCloseRequest):
    return get_pipeline().close_session(req.session_id).to_dict()
