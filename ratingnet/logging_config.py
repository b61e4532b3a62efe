"""
Logging configuration for RatingNet.

Provides structured JSON logging and an audit logger for rating submissions,
average queries, grant lifecycle and decryption requests. Audit records carry
handle ids, addresses and counts only; plaintext scores, averages and private
keys are never logged.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, List, Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class StructuredFormatter(logging.Formatter):
    """JSON formatter emitting one object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
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

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Specialized logger for audit events.

    One method per event type; each becomes a record on the
    `ratingnet.audit` logger with the event fields attached.
    """

    def __init__(self, name: str = "ratingnet.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs,
        }
        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None,
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def rating_submitted(self, engine: str, subject: str, caller: str, count: int, sum_handle: str) -> None:
        self._log(
            logging.INFO,
            "RATING_SUBMITTED",
            engine=engine,
            subject=subject,
            caller=caller,
            count=count,
            sum_handle=sum_handle,
            message=f"Encrypted rating accepted for {subject}",
        )

    def submission_rejected(self, engine: str, subject: str, caller: str, code: str) -> None:
        self._log(
            logging.WARNING,
            "SUBMISSION_REJECTED",
            engine=engine,
            subject=subject,
            caller=caller,
            code=code,
            message=f"Rating for {subject} rejected: {code}",
        )

    def average_requested(self, engine: str, subject: str, caller: str, count: int, handle: str) -> None:
        self._log(
            logging.INFO,
            "AVERAGE_REQUESTED",
            engine=engine,
            subject=subject,
            caller=caller,
            count=count,
            handle=handle,
            message=f"Encrypted average for {subject} granted to {caller}",
        )

    def grant_signed(self, user: str, contracts: List[str], expires_at: int) -> None:
        self._log(
            logging.INFO,
            "GRANT_SIGNED",
            user=user,
            contracts=contracts,
            expires_at=expires_at,
            message=f"Decryption grant signed by {user}",
        )

    def grant_reused(self, user: str, contracts: List[str]) -> None:
        self._log(
            logging.DEBUG,
            "GRANT_REUSED",
            user=user,
            contracts=contracts,
            message=f"Cached decryption grant reused for {user}",
        )

    def grant_expired(self, user: str, contracts: List[str], expired_at: int) -> None:
        self._log(
            logging.INFO,
            "GRANT_EXPIRED",
            user=user,
            contracts=contracts,
            expired_at=expired_at,
            message=f"Cached decryption grant for {user} expired",
        )

    def signature_declined(self, user: str, contracts: List[str]) -> None:
        self._log(
            logging.WARNING,
            "SIGNATURE_DECLINED",
            user=user,
            contracts=contracts,
            message=f"User {user} declined to sign decryption grant",
        )

    def decrypt_request(self, user: str, handles: List[str]) -> None:
        self._log(
            logging.INFO,
            "DECRYPT_REQUEST",
            user=user,
            handles=handles,
            message=f"Decryption of {len(handles)} handle(s) requested by {user}",
        )

    def decrypt_denied(self, user: str, code: str, reason: str) -> None:
        self._log(
            logging.WARNING,
            "DECRYPT_DENIED",
            user=user,
            code=code,
            reason=reason,
            message=f"Decryption denied: {code}",
        )

    def decrypt_retry(self, attempt: int, delay: float, code: str) -> None:
        self._log(
            logging.WARNING,
            "DECRYPT_RETRY",
            attempt=attempt,
            delay=delay,
            code=code,
            message=f"Transient oracle failure on attempt {attempt}, retrying in {delay:.2f}s",
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure root logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request ID for the current context, generating one if needed."""
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    return request_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
