"""
Certificate Registry - Client Error Taxonomy

This module turns opaque ledger, transport and registry failures into a
closed set of error kinds with a short message and a user-facing detail.
classify_error is the single place where that translation happens.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

import requests

from ledger.base import REVERT_PATTERN, LedgerUnavailableError, RevertError, UserRejectedError
from registry.manager import (
    REASON_ALREADY_REVOKED, REASON_CANNOT_REVOKE_OWNER, REASON_DUPLICATE_ID,
    REASON_NOT_AUTHORIZED_ISSUER, REASON_NOT_AUTHORIZED_REVOKE,
    REASON_NOT_FOUND, REASON_ONLY_OWNER, AlreadyRevokedError,
    CannotRevokeOwnerError, CertificateNotFoundError, DuplicateIdError,
    NotAuthorizedError, RegistryError
)


logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Closed set of client failure kinds."""
    NOT_AUTHORIZED = "not_authorized"
    DUPLICATE_ID = "duplicate_id"
    NOT_FOUND = "not_found"
    ALREADY_REVOKED = "already_revoked"
    CANNOT_REVOKE_OWNER = "cannot_revoke_owner"
    USER_REJECTED = "user_rejected"
    TRANSIENT_UNAVAILABLE = "transient_unavailable"
    NUMERIC_OVERFLOW = "numeric_overflow"
    INVALID_INPUT = "invalid_input"
    UNKNOWN = "unknown"


# Kinds a read may retry: a lagging replica reports a new certificate as missing
READ_RETRYABLE_KINDS = frozenset({ErrorKind.TRANSIENT_UNAVAILABLE, ErrorKind.NOT_FOUND})

USER_REJECTED_MARKER = "User denied transaction signature"
LARGE_NUMBER_MARKER = "can't convert BigInt to number"

REASON_KINDS = {
    REASON_NOT_AUTHORIZED_ISSUER: ErrorKind.NOT_AUTHORIZED,
    REASON_ONLY_OWNER: ErrorKind.NOT_AUTHORIZED,
    REASON_NOT_AUTHORIZED_REVOKE: ErrorKind.NOT_AUTHORIZED,
    REASON_DUPLICATE_ID: ErrorKind.DUPLICATE_ID,
    REASON_NOT_FOUND: ErrorKind.NOT_FOUND,
    REASON_ALREADY_REVOKED: ErrorKind.ALREADY_REVOKED,
    REASON_CANNOT_REVOKE_OWNER: ErrorKind.CANNOT_REVOKE_OWNER,
}

REGISTRY_ERROR_KINDS = {
    NotAuthorizedError: ErrorKind.NOT_AUTHORIZED,
    DuplicateIdError: ErrorKind.DUPLICATE_ID,
    CertificateNotFoundError: ErrorKind.NOT_FOUND,
    AlreadyRevokedError: ErrorKind.ALREADY_REVOKED,
    CannotRevokeOwnerError: ErrorKind.CANNOT_REVOKE_OWNER,
}

FRIENDLY_REASONS = {
    REASON_NOT_FOUND: "Certificate not found",
    REASON_DUPLICATE_ID: "Certificate already exists",
    REASON_ALREADY_REVOKED: "Certificate already revoked",
}

USER_REJECTED_DETAILS = "Transaction was rejected by the account holder"
NUMERIC_OVERFLOW_DETAILS = "Error processing large numbers. Please try again with different values."
UNAVAILABLE_DETAILS = "The ledger could not be reached. Please try again shortly."
READ_LAG_DETAILS = (
    "Certificate not found or ledger sync delay. If you just created this "
    "certificate, please wait a few seconds and try again."
)

TRANSIENT_EXCEPTIONS = (
    LedgerUnavailableError,
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    ConnectionError,
    TimeoutError,
)


class ClientError(Exception):
    """Classified client failure."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        self.kind = kind
        self.message = message
        self.details = details or message
        self.cause = cause
        super().__init__(f"{message}: {self.details}" if details else message)

    @property
    def retryable_read(self) -> bool:
        return self.kind in READ_RETRYABLE_KINDS

    def to_response(self) -> Dict[str, Any]:
        """Caller-facing failure shape."""
        return {
            "success": False,
            "error": {
                "message": self.message,
                "details": self.details,
            }
        }


def friendly_reason(reason: str) -> str:
    return FRIENDLY_REASONS.get(reason, reason)


def _from_reason(reason: str, message: str, cause: BaseException) -> ClientError:
    kind = REASON_KINDS.get(reason, ErrorKind.UNKNOWN)
    return ClientError(kind, message, friendly_reason(reason), cause)


def classify_error(exc: BaseException, message: str = "Operation failed") -> ClientError:
    """
    Classify any failure into a ClientError.

    Args:
        exc: The failure raised by the ledger, transport or registry
        message: Short description of the operation that failed

    Returns:
        ClientError with a kind from ErrorKind
    """
    if isinstance(exc, ClientError):
        return exc

    if isinstance(exc, RegistryError):
        kind = next(
            (k for cls, k in REGISTRY_ERROR_KINDS.items() if isinstance(exc, cls)),
            ErrorKind.UNKNOWN
        )
        return ClientError(kind, message, friendly_reason(exc.reason), exc)

    if isinstance(exc, RevertError):
        return _from_reason(exc.reason, message, exc)

    if isinstance(exc, UserRejectedError):
        return ClientError(ErrorKind.USER_REJECTED, message, USER_REJECTED_DETAILS, exc)

    if isinstance(exc, OverflowError):
        return ClientError(ErrorKind.NUMERIC_OVERFLOW, message, NUMERIC_OVERFLOW_DETAILS, exc)

    if isinstance(exc, TRANSIENT_EXCEPTIONS):
        return ClientError(ErrorKind.TRANSIENT_UNAVAILABLE, message, UNAVAILABLE_DETAILS, exc)

    # Untyped failures: recognize what we can from the text
    text = str(exc)
    match = REVERT_PATTERN.search(text)
    if match:
        return _from_reason(match.group(1), message, exc)
    if USER_REJECTED_MARKER in text:
        return ClientError(ErrorKind.USER_REJECTED, message, USER_REJECTED_DETAILS, exc)
    if LARGE_NUMBER_MARKER in text:
        return ClientError(ErrorKind.NUMERIC_OVERFLOW, message, NUMERIC_OVERFLOW_DETAILS, exc)

    logger.debug(f"Unclassified failure {type(exc).__name__}: {text}")
    return ClientError(ErrorKind.UNKNOWN, message, text or type(exc).__name__, exc)
