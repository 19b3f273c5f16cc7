"""
CustodySeal Sealed Session Manager

Follow-up question/answer sessions bound to a sealed report. Only the
SHA-512 hashes of questions and responses are kept; each exchange extends
a running chain:

    chain_0 = ""
    chain_n = SHA-512(chain_{n-1} + questionHash_n + responseHash_n)

Lifecycle: OPEN -> CLOSED. CLOSED is terminal. Closing freezes the
transcript, seals it and stores it in the vault as session_transcript;
the final chain hash is the transcript's immutable reference.

Exchanges on one session are serialized by that session's lock, so they
are applied in submission order. Different sessions are independent.

A closed session is dropped from the live registry; only its frozen
transcript is kept, in a map bounded by max_closed (oldest evicted first).
Once evicted, the transcript is still in the vault under its seal hash.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .contract import ContractResult, ContractRule, check_question
from .errors import ContractViolation, SessionClosedError, SessionNotFound
from .hashing import SEAL_DIGEST_HEX_LENGTH, is_hex, normalize_hex, sha512_hex
from .jurisdiction import UNKNOWN_JURISDICTION
from .logging_config import audit_log
from .sealing import SealingEngine
from .util import generate_id, utc_now, utc_rfc3339
from .vault import EvidenceVault, RecordType

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLOSED = 1024


class SessionState(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def next_chain_hash(prev_chain_hash: str, question_hash: str, response_hash: str) -> str:
    return sha512_hex(prev_chain_hash + question_hash + response_hash)


@dataclass(frozen=True)
class SessionExchange:
    question_hash: str
    response_hash: str
    chain_hash: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionHash": self.question_hash,
            "responseHash": self.response_hash,
            "timestamp": utc_rfc3339(self.timestamp),
            "chainHash": self.chain_hash,
        }


@dataclass(frozen=True)
class SessionTranscript:
    session_id: str
    report_hash: str
    jurisdiction: str
    exchanges: Tuple[SessionExchange, ...]
    chain_hash: str
    opened_at: datetime
    closed_at: datetime
    vault_record_id: Optional[str] = None
    seal_final_hash: Optional[str] = None

    def document(self) -> Dict[str, Any]:
        """The sealed form of the transcript."""
        return {
            "sessionId": self.session_id,
            "reportHash": self.report_hash,
            "jurisdiction": self.jurisdiction,
            "exchanges": [e.to_dict() for e in self.exchanges],
            "chainHash": self.chain_hash,
            "openedAt": utc_rfc3339(self.opened_at),
            "closedAt": utc_rfc3339(self.closed_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.document()
        d["vaultRecordId"] = self.vault_record_id
        d["sealFinalHash"] = self.seal_final_hash
        return d


class _Session:
    """Mutable session state. Guarded by its own lock."""

    def __init__(self, session_id: str, report_hash: str, jurisdiction: str):
        self.session_id = session_id
        self.report_hash = report_hash
        self.jurisdiction = jurisdiction
        self.state = SessionState.OPEN
        self.exchanges: List[SessionExchange] = []
        self.chain_hash = ""
        self.opened_at = utc_now()
        self.lock = threading.Lock()


class SealedSessionManager:
    """
    Opens, extends and closes sealed sessions.

    Args:
        vault: records must exist for the report hash; closed transcripts
            are stored here
        engine: seals closed transcripts
        max_closed: closed transcripts kept in memory
    """

    def __init__(self, vault: EvidenceVault, engine: SealingEngine, max_closed: int = DEFAULT_MAX_CLOSED):
        self.vault = vault
        self.engine = engine
        self.max_closed = max_closed
        self._sessions: Dict[str, _Session] = {}
        self._closed: "OrderedDict[str, SessionTranscript]" = OrderedDict()
        self._registry_lock = threading.Lock()

    def open(self, report_hash: str, jurisdiction: str = UNKNOWN_JURISDICTION) -> str:
        """Open a session for a sealed report. Returns the session id."""
        if not is_hex(report_hash, SEAL_DIGEST_HEX_LENGTH):
            raise ContractViolation(ContractRule.REPORT_HASH.value, "reportHash")
        if not self.vault.contains(report_hash):
            raise ContractViolation(ContractRule.CUSTODY.value, "reportHash")

        session = _Session("sess_" + generate_id(16), normalize_hex(report_hash), jurisdiction)
        with self._registry_lock:
            self._sessions[session.session_id] = session
        audit_log.session_event("OPENED", session.session_id, jurisdiction=jurisdiction)
        return session.session_id

    def _get(self, session_id: str) -> _Session:
        with self._registry_lock:
            session = self._sessions.get(session_id)
            closed = session_id in self._closed
        if session is not None:
            return session
        if closed:
            raise SessionClosedError(session_id)
        raise SessionNotFound(session_id)

    def state(self, session_id: str) -> SessionState:
        try:
            return self._get(session_id).state
        except SessionClosedError:
            return SessionState.CLOSED

    def exchange(self, session_id: str, question: str, response: str) -> SessionExchange:
        """
        Append a question/response pair.

        Raises:
            SessionNotFound: unknown session id
            SessionClosedError: session already closed
            ContractViolation: question breaks the question policy; the
                exchange is not recorded and the chain does not advance
        """
        session = self._get(session_id)
        with session.lock:
            if session.state == SessionState.CLOSED:
                raise SessionClosedError(session_id)
            policy: ContractResult = check_question(question)
            if not policy.is_valid():
                audit_log.contract_violation(policy.rule.value)
                raise policy.to_exception()

            question_hash = sha512_hex(question)
            response_hash = sha512_hex(response)
            chain_hash = next_chain_hash(session.chain_hash, question_hash, response_hash)
            exchange = SessionExchange(
                question_hash=question_hash,
                response_hash=response_hash,
                chain_hash=chain_hash,
            )
            session.exchanges.append(exchange)
            session.chain_hash = chain_hash

        audit_log.session_event("EXCHANGE", session_id, exchange_count=len(session.exchanges))
        return exchange

    def close(self, session_id: str) -> SessionTranscript:
        """
        Close the session, seal its transcript and store it in the vault.

        Raises SessionClosedError if already closed.
        """
        session = self._get(session_id)
        with session.lock:
            if session.state == SessionState.CLOSED:
                raise SessionClosedError(session_id)

            transcript = SessionTranscript(
                session_id=session.session_id,
                report_hash=session.report_hash,
                jurisdiction=session.jurisdiction,
                exchanges=tuple(session.exchanges),
                chain_hash=session.chain_hash or sha512_hex(""),
                opened_at=session.opened_at,
                closed_at=utc_now(),
            )
            seal = self.engine.seal_document(
                transcript.document(),
                {
                    "type": RecordType.SESSION_TRANSCRIPT.value,
                    "sessionId": session.session_id,
                    "reportHash": session.report_hash,
                },
            )
            record_id = self.vault.store(seal.final_hash, RecordType.SESSION_TRANSCRIPT)
            transcript = replace(transcript, vault_record_id=record_id, seal_final_hash=seal.final_hash)
            session.state = SessionState.CLOSED

        with self._registry_lock:
            self._sessions.pop(session_id, None)
            self._closed[session_id] = transcript
            while len(self._closed) > self.max_closed:
                self._closed.popitem(last=False)

        audit_log.session_event(
            "CLOSED", session_id,
            chain_hash=transcript.chain_hash,
            vault_record_id=record_id,
        )
        return transcript

    def transcript(self, session_id: str) -> Optional[SessionTranscript]:
        """The frozen transcript of a closed session, or None while open."""
        with self._registry_lock:
            if session_id in self._closed:
                return self._closed[session_id]
            if session_id in self._sessions:
                return None
        raise SessionNotFound(session_id)
