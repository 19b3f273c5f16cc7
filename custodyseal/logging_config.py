"""
Logging configuration for CustodySeal.

Provides structured JSON logging for custody audit trails and debugging.
Audit events carry hashes, record ids and rule names only; content,
metadata values and offending inputs are never logged.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for custody events.

    Sealing, verification verdicts, contract rejections, vault writes and
    session lifecycle each have a dedicated method.
    """

    def __init__(self, name: str = "custodyseal.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def seal_created(self, final_hash: str, seal_key_id: str) -> None:
        self._log(
            logging.INFO,
            "SEAL_CREATED",
            final_hash=final_hash,
            seal_key_id=seal_key_id,
            message=f"Seal created {final_hash[:16]}"
        )

    def seal_verified(
        self,
        final_hash: str,
        status: str,
        component: Optional[str] = None,
        keyed: bool = False
    ) -> None:
        level = logging.INFO if status == "INTACT" else logging.ERROR
        self._log(
            level,
            "SEAL_VERIFIED",
            final_hash=final_hash,
            status=status,
            component=component,
            keyed=keyed,
            message=f"Seal verification {status}"
        )

    def integrity_verdict(
        self,
        report_id: str,
        status: str,
        calculated_hash: Optional[str],
        expected_hash: str
    ) -> None:
        """Log an artifact integrity verdict."""
        level = {
            "AUTHENTIC": logging.INFO,
            "TAMPERED": logging.CRITICAL,
        }.get(status, logging.ERROR)
        self._log(
            level,
            "INTEGRITY_VERDICT",
            report_id=report_id,
            status=status,
            calculated_hash=calculated_hash,
            expected_hash=expected_hash,
            message=f"Artifact integrity {status}"
        )

    def contract_violation(self, rule: str, path: Optional[str] = None) -> None:
        """Log a contract rejection. Only the rule name is recorded."""
        self._log(
            logging.WARNING,
            "CONTRACT_VIOLATION",
            rule=rule,
            path=path,
            message=f"Contract rule failed: {rule}"
        )

    def vault_store(self, hash_hex: str, record_id: str, record_type: str, created: bool) -> None:
        self._log(
            logging.INFO,
            "VAULT_STORE",
            hash=hash_hex,
            record_id=record_id,
            record_type=record_type,
            created=created,
            message=f"Vault {'created' if created else 'existing'} record {record_id}"
        )

    def custody_recorded(self, hash_hex: str, action: str, passed: bool) -> None:
        level = logging.INFO if passed else logging.WARNING
        self._log(
            level,
            "CUSTODY_RECORDED",
            hash=hash_hex,
            action=action,
            integrity_check_passed=passed,
            message=f"Custody {action}"
        )

    def session_event(self, event: str, session_id: str, **details) -> None:
        self._log(
            logging.INFO,
            "SESSION_EVENT",
            session_event=event,
            session_id=session_id,
            **details,
            message=f"Session {event}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON structured format
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request ID for the current context."""
    rid = request_id or str(uuid.uuid4())
    request_id_var.set(rid)
    return rid


# Global audit logger instance
audit_log = AuditLogger()
