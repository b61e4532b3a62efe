"""
RatingNet Error Taxonomy

Every failure surfaced by the engine, the authorization protocol or the
decryption path is a `RatingNetError` tagged with one of three kinds:

    INPUT_VALIDATION  rejected before any state mutation; resubmit corrected input
    AUTHORIZATION     never retried automatically; the caller needs a new grant
    TRANSIENT         oracle or network unavailability; retry with backoff

Counter overflow is not an error and has no class here.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    INPUT_VALIDATION = "INPUT_VALIDATION"
    AUTHORIZATION = "AUTHORIZATION"
    TRANSIENT = "TRANSIENT"


class RatingNetError(Exception):
    """Base class for all RatingNet failures."""

    kind: ErrorKind = ErrorKind.INPUT_VALIDATION
    code: str = "RATINGNET_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        d = {"code": self.code, "kind": self.kind.value, "message": self.message}
        if self.details:
            d["details"] = self.details
        return d


# Input validation

class InputValidationError(RatingNetError):
    kind = ErrorKind.INPUT_VALIDATION


class InvalidInputProof(InputValidationError):
    code = "INVALID_INPUT_PROOF"


class TypeMismatch(InputValidationError):
    code = "TYPE_MISMATCH"


class UnknownHandle(InputValidationError):
    code = "UNKNOWN_HANDLE"


class MalformedRequest(InputValidationError):
    """The relayer rejected the request body itself."""
    code = "MALFORMED_REQUEST"


# Authorization

class AuthorizationError(RatingNetError):
    kind = ErrorKind.AUTHORIZATION


class Unauthorized(AuthorizationError):
    code = "UNAUTHORIZED"


class GrantExpired(AuthorizationError):
    code = "GRANT_EXPIRED"


class InvalidGrant(AuthorizationError):
    code = "INVALID_GRANT"


class SignatureDeclined(AuthorizationError):
    code = "SIGNATURE_DECLINED"


# Transient

class TransientError(RatingNetError):
    kind = ErrorKind.TRANSIENT


class OracleUnavailable(TransientError):
    code = "ORACLE_UNAVAILABLE"


class MalformedOracleResponse(TransientError):
    code = "MALFORMED_ORACLE_RESPONSE"


ERRORS_BY_CODE: Dict[str, type] = {
    cls.code: cls
    for cls in (
        InvalidInputProof,
        TypeMismatch,
        UnknownHandle,
        MalformedRequest,
        Unauthorized,
        GrantExpired,
        InvalidGrant,
        SignatureDeclined,
        OracleUnavailable,
        MalformedOracleResponse,
    )
}


def error_from_dict(problem: Dict[str, Any]) -> RatingNetError:
    """Rebuild an error from its `to_dict()` form (used by HTTP transports)."""
    cls = ERRORS_BY_CODE.get(problem.get("code", ""))
    if cls is None:
        return MalformedOracleResponse(
            f"Unrecognized error from oracle: {problem.get('code')}", {"problem": problem}
        )
    return cls(problem.get("message", cls.code), problem.get("details"))
