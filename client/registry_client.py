"""
Certificate Registry - Registry Client

This module provides the client used to read and write the certificate
registry over an unreliable ledger connection. Identifiers are normalized
before use, mutations are submitted with a cost safety margin, idempotent
reads are retried, and every failure is classified before it reaches the
caller.
"""

import logging
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Sequence

from ledger.base import ContractMethod, LedgerCall
from registry.schema import EventType, TransactionReceipt, normalize_address, normalize_certificate_id

from .config import MAX_COST_LIMIT, ClientConfig
from .context import LedgerContext
from .errors import NUMERIC_OVERFLOW_DETAILS, READ_LAG_DETAILS, ClientError, ErrorKind, classify_error
from .retry import retry_call


CERTIFICATE_FIELDS = ("id", "studentName", "courseName", "issueDate", "valid", "issuer")

ISSUE_FIELDS = ("certificate_id", "student_name", "course_name", "issue_date")


@dataclass
class ClientResponse:
    """Successful client operation result."""
    success: bool = True
    tx_hash: Optional[str] = None
    certificate: Optional[Dict[str, Any]] = None
    is_valid: Optional[bool] = None
    is_owner: Optional[bool] = None
    is_authorized: Optional[bool] = None
    owner: Optional[str] = None
    issuer: Optional[str] = None
    events: Optional[List[Dict[str, Any]]] = None
    receipt: Optional[TransactionReceipt] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        """Caller-facing shape; absent fields are omitted."""
        result: Dict[str, Any] = {"success": self.success}
        optional = {
            "txHash": self.tx_hash,
            "certificate": self.certificate,
            "isValid": self.is_valid,
            "isOwner": self.is_owner,
            "isAuthorized": self.is_authorized,
            "owner": self.owner,
            "issuer": self.issuer,
            "events": self.events,
        }
        result.update({key: value for key, value in optional.items() if value is not None})
        return result


def calculate_cost_with_buffer(
    estimate: Any,
    buffer_percent: float = 20,
    max_cost_limit: int = MAX_COST_LIMIT
) -> int:
    """
    Add a safety margin to a cost estimate.

    Args:
        estimate: Estimated cost as reported by the ledger (int or numeric text)
        buffer_percent: Margin to add, in percent
        max_cost_limit: Largest cost limit that can be submitted

    Returns:
        Buffered cost, rounded half-up

    Raises:
        ClientError: NUMERIC_OVERFLOW if the estimate is not a usable number
            or the buffered value exceeds max_cost_limit
    """
    try:
        if isinstance(estimate, bool):
            raise InvalidOperation
        value = Decimal(str(estimate).strip())
    except InvalidOperation:
        raise ClientError(ErrorKind.NUMERIC_OVERFLOW, "Invalid cost estimate", NUMERIC_OVERFLOW_DETAILS)

    if not value.is_finite() or value < 0:
        raise ClientError(ErrorKind.NUMERIC_OVERFLOW, "Invalid cost estimate", NUMERIC_OVERFLOW_DETAILS)

    buffered = (value * (100 + Decimal(str(buffer_percent))) / 100).quantize(
        Decimal(1), rounding=ROUND_HALF_UP
    )
    if buffered > max_cost_limit:
        raise ClientError(
            ErrorKind.NUMERIC_OVERFLOW,
            "Cost estimate too large",
            NUMERIC_OVERFLOW_DETAILS
        )
    return int(buffered)


def coerce_valid(value: Any) -> bool:
    """Interpret a validity flag as reported by the ledger."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value == 1
    return value in ("true", "1")


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def coerce_certificate(raw: Any) -> Dict[str, Any]:
    """
    Convert raw certificate details into the caller-facing mapping.

    Accepts the ledger's positional form
    (id, studentName, courseName, issueDate, valid, issuer) or a mapping
    keyed by those names.
    """
    if isinstance(raw, dict):
        values = [raw.get(name) for name in CERTIFICATE_FIELDS]
    elif isinstance(raw, (list, tuple)) and len(raw) == len(CERTIFICATE_FIELDS):
        values = list(raw)
    else:
        raise ValueError(f"Unexpected certificate details: {raw!r}")

    certificate = {name: _text(value) for name, value in zip(CERTIFICATE_FIELDS, values)}
    certificate["valid"] = coerce_valid(values[CERTIFICATE_FIELDS.index("valid")])
    return certificate


class RegistryClient:
    """
    Resilient client for the certificate registry.

    Every operation returns a ClientResponse or raises ClientError. The client
    makes no authorization decisions; the registry enforces them on the ledger.
    """

    def __init__(
        self,
        context: LedgerContext,
        config: Optional[ClientConfig] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the registry client.

        Args:
            context: Ledger connection and account
            config: Client tunables (defaults if None)
            sleep: Sleep function used between read attempts
        """
        self.context = context
        self.config = config or ClientConfig()
        self.sleep = sleep
        self.logger = logging.getLogger(__name__)

    # Normalization

    def _certificate_id(self, certificate_id: Any) -> str:
        try:
            normalized = normalize_certificate_id(certificate_id)
        except ValueError as e:
            raise ClientError(ErrorKind.INVALID_INPUT, "Invalid certificate ID", str(e))
        if normalized != certificate_id:
            self.logger.debug(f"Normalized certificate ID {certificate_id!r} -> {normalized!r}")
        return normalized

    def _address(self, address: Any) -> str:
        try:
            return normalize_address(address)
        except ValueError as e:
            raise ClientError(ErrorKind.INVALID_INPUT, "Invalid address", str(e))

    def _sender(self) -> str:
        address = self.context.account.address
        if not address:
            raise ClientError(
                ErrorKind.INVALID_INPUT,
                "No account selected",
                "Select an account before submitting transactions"
            )
        return address

    # Ledger access

    def _read(self, method: ContractMethod, args: Sequence[Any], message: str) -> Any:
        """Execute a read with bounded retry against confirmed state."""
        call = LedgerCall(method, tuple(args))

        def attempt() -> Any:
            try:
                return self.context.ledger.call(call)
            except Exception as e:
                raise classify_error(e, message) from e

        try:
            result = retry_call(
                attempt,
                attempts=self.config.read_attempts,
                delay=self.config.read_retry_delay,
                retryable=lambda e: isinstance(e, ClientError) and e.retryable_read,
                sleep=self.sleep,
                description=f"{method.value}({', '.join(map(str, args))})"
            )
        except ClientError as error:
            self.logger.error(f"{message}: {error.details}")
            if error.kind == ErrorKind.NOT_FOUND:
                raise ClientError(error.kind, error.message, READ_LAG_DETAILS, error.cause) from error
            raise

        self.logger.debug(f"{method.value} raw result: {result!r}")
        return result

    def _transact(self, method: ContractMethod, args: Sequence[Any], message: str) -> ClientResponse:
        """Estimate, approve and submit a mutation, then wait for its receipt."""
        call = LedgerCall(method, tuple(args), self._sender())
        ledger = self.context.ledger

        try:
            estimate = ledger.estimate_cost(call)
            cost_limit = calculate_cost_with_buffer(
                estimate, self.config.cost_buffer_percent, self.config.max_cost_limit
            )
            self.logger.debug(f"{method.value}: estimated cost {estimate}, submitting with {cost_limit}")
            self.context.account.approve(call)
            receipt = ledger.submit(call, cost_limit)
        except Exception as e:
            error = classify_error(e, message)
            self.logger.error(f"{message}: {error.details}")
            if error is e:
                raise
            raise error from e

        self.logger.info(f"{method.value} confirmed in block {receipt.block_number}: {receipt.tx_hash}")
        return ClientResponse(
            tx_hash=receipt.tx_hash,
            events=[event.to_public_dict() for event in receipt.events],
            receipt=receipt
        )

    # Mutations

    def issue_certificate(
        self,
        certificate_id: Any,
        student_name: Any,
        course_name: Any,
        issue_date: Any
    ) -> ClientResponse:
        """Issue a certificate as the current account."""
        values = (certificate_id, student_name, course_name, issue_date)
        missing = [
            name for name, value in zip(ISSUE_FIELDS, values)
            if value is None or not str(value).strip()
        ]
        if missing:
            raise ClientError(
                ErrorKind.INVALID_INPUT,
                "Missing required fields",
                f"Missing required fields: {', '.join(missing)}"
            )

        normalized_id = self._certificate_id(certificate_id)
        response = self._transact(
            ContractMethod.ISSUE_CERTIFICATE,
            (normalized_id, str(student_name), str(course_name), str(issue_date)),
            "Failed to issue certificate"
        )
        response.certificate = {
            "id": normalized_id,
            "studentName": str(student_name),
            "courseName": str(course_name),
            "issueDate": str(issue_date),
            "valid": True,
            "issuer": self.context.account.address,
        }
        return response

    def revoke_certificate(self, certificate_id: Any) -> ClientResponse:
        """Revoke a certificate as the current account."""
        return self._transact(
            ContractMethod.REVOKE_CERTIFICATE,
            (self._certificate_id(certificate_id),),
            "Failed to revoke certificate"
        )

    def authorize_issuer(self, address: Any) -> ClientResponse:
        """Authorize an issuer. The registry accepts this only from its owner."""
        issuer = self._address(address)
        response = self._transact(ContractMethod.AUTHORIZE_ISSUER, (issuer,), "Failed to authorize issuer")
        response.issuer = issuer
        return response

    def revoke_issuer(self, address: Any) -> ClientResponse:
        """Revoke an issuer. The registry accepts this only from its owner."""
        issuer = self._address(address)
        response = self._transact(ContractMethod.REVOKE_ISSUER, (issuer,), "Failed to revoke issuer")
        response.issuer = issuer
        return response

    # Reads

    def verify_certificate(self, certificate_id: Any) -> ClientResponse:
        """Return the current validity of a certificate."""
        raw = self._read(
            ContractMethod.VERIFY_CERTIFICATE,
            (self._certificate_id(certificate_id),),
            "Failed to verify certificate"
        )
        return ClientResponse(is_valid=coerce_valid(raw))

    def get_certificate_details(self, certificate_id: Any) -> ClientResponse:
        """Return a snapshot of a certificate."""
        message = "Failed to get certificate"
        raw = self._read(
            ContractMethod.GET_CERTIFICATE_DETAILS,
            (self._certificate_id(certificate_id),),
            message
        )
        try:
            certificate = coerce_certificate(raw)
        except ValueError as e:
            raise ClientError(ErrorKind.UNKNOWN, message, str(e), e)
        return ClientResponse(certificate=certificate)

    def is_authorized_issuer(self, address: Any) -> ClientResponse:
        raw = self._read(
            ContractMethod.IS_AUTHORIZED_ISSUER,
            (self._address(address),),
            "Failed to check issuer authorization"
        )
        return ClientResponse(is_authorized=coerce_valid(raw))

    def get_owner(self) -> ClientResponse:
        owner = self._read(ContractMethod.OWNER, (), "Failed to get registry owner")
        return ClientResponse(owner=_text(owner).lower())

    def is_owner(self, address: Optional[Any] = None) -> ClientResponse:
        """Check whether an address (default: the current account) owns the registry."""
        candidate = address if address is not None else self.context.account.address
        owner = self.get_owner().owner
        if not candidate:
            return ClientResponse(is_owner=False, owner=owner)
        return ClientResponse(is_owner=self._address(candidate) == owner, owner=owner)

    def get_events(
        self,
        from_block: int = 0,
        event_type: Optional[EventType] = None
    ) -> ClientResponse:
        """Return finalized registry events from a block onwards."""
        message = "Failed to get events"

        def attempt():
            try:
                return self.context.ledger.get_events(from_block, event_type)
            except Exception as e:
                raise classify_error(e, message) from e

        events = retry_call(
            attempt,
            attempts=self.config.read_attempts,
            delay=self.config.read_retry_delay,
            retryable=lambda e: isinstance(e, ClientError) and e.kind == ErrorKind.TRANSIENT_UNAVAILABLE,
            sleep=self.sleep,
            description="get_events"
        )
        return ClientResponse(events=[event.to_public_dict() for event in events])

    def check_health(self) -> Dict[str, Any]:
        """Check the ledger connection. Never raises."""
        start_time = time.time()
        health: Dict[str, Any] = {
            "healthy": False,
            "ledger": type(self.context.ledger).__name__,
            "account": self.context.account.address,
        }

        try:
            health["blockNumber"] = self.context.ledger.block_number()
            health["owner"] = _text(self.context.ledger.call(LedgerCall(ContractMethod.OWNER))).lower()
            health["healthy"] = True
        except Exception as e:
            error = classify_error(e, "Health check failed")
            self.logger.warning(f"Health check failed: {error.details}")
            health["error"] = error.to_response()["error"]

        health["responseTimeMs"] = round((time.time() - start_time) * 1000, 2)
        return health
