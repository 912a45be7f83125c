"""
Certificate Registry - Ledger Interface

This module defines the contract surface the registry exposes on a ledger,
the call description passed to a ledger, and the ledger exception hierarchy.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from registry.schema import EventType, RegistryEvent, TransactionReceipt


# Revert reason inside a node or VM error message: "revert <reason>" or "execution reverted: <reason>"
REVERT_PATTERN = re.compile(r"revert(?:ed)?:? (.*?)(?:'(?![a-z])|$)")


class LedgerError(Exception):
    """Base exception for ledger failures."""
    pass


class RevertError(LedgerError):
    """The ledger rejected an operation with a revert reason."""

    def __init__(self, reason: str, tx_hash: Optional[str] = None):
        self.reason = reason
        self.tx_hash = tx_hash
        super().__init__(f"VM Exception while processing transaction: revert {reason}")


class OutOfCostError(RevertError):
    """Submission cost limit was below the cost of execution."""

    def __init__(self, cost_limit: int, cost_required: int, tx_hash: Optional[str] = None):
        self.cost_limit = cost_limit
        self.cost_required = cost_required
        super().__init__("out of gas", tx_hash)


class LedgerUnavailableError(LedgerError):
    """Ledger could not be reached or did not answer in time."""
    pass


class UserRejectedError(LedgerError):
    """The signer declined a pending submission."""

    def __init__(self, message: str = "User denied transaction signature"):
        super().__init__(message)


class NotDeployedError(LedgerError):
    """No registry has been deployed on the ledger."""
    pass


class ContractMethod(str, Enum):
    """Registry contract methods as named on the ledger."""
    ISSUE_CERTIFICATE = "issueCertificate"
    REVOKE_CERTIFICATE = "revokeCertificate"
    VERIFY_CERTIFICATE = "verifyCertificate"
    GET_CERTIFICATE_DETAILS = "getCertificateDetails"
    AUTHORIZE_ISSUER = "authorizeIssuer"
    REVOKE_ISSUER = "revokeIssuer"
    IS_AUTHORIZED_ISSUER = "isAuthorizedIssuer"
    OWNER = "owner"

    @property
    def is_mutation(self) -> bool:
        return self in MUTATING_METHODS


MUTATING_METHODS = frozenset({
    ContractMethod.ISSUE_CERTIFICATE,
    ContractMethod.REVOKE_CERTIFICATE,
    ContractMethod.AUTHORIZE_ISSUER,
    ContractMethod.REVOKE_ISSUER,
})


@dataclass(frozen=True)
class LedgerCall:
    """A contract method invocation."""
    method: ContractMethod
    args: Tuple[Any, ...] = field(default_factory=tuple)
    sender: Optional[str] = None

    def calldata(self) -> bytes:
        """Canonical encoded form used for cost metering and hashing."""
        payload = {"method": self.method.value, "args": list(self.args)}
        return json.dumps(payload, sort_keys=True, separators=(',', ':'), default=str).encode('utf-8')

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method.value,
            "args": list(self.args),
            "sender": self.sender,
        }


class Ledger(ABC):
    """
    Abstract ledger hosting the certificate registry.

    Implementations execute mutations atomically in one total order and serve
    reads from confirmed state, which may lag behind the latest submission.
    """

    @abstractmethod
    def call(self, call: LedgerCall) -> Any:
        """
        Execute a read-only method against confirmed state.

        Raises:
            RevertError: The method reverted (e.g. unknown certificate)
        """
        pass

    @abstractmethod
    def estimate_cost(self, call: LedgerCall) -> int:
        """
        Dry-run a mutation and return the cost it would consume.

        Raises:
            RevertError: The mutation would revert
        """
        pass

    @abstractmethod
    def submit(self, call: LedgerCall, cost_limit: int) -> TransactionReceipt:
        """
        Submit a mutation and block until it is final.

        Raises:
            RevertError: The mutation was mined but reverted
        """
        pass

    @abstractmethod
    def get_events(
        self,
        from_block: int = 0,
        event_type: Optional[EventType] = None
    ) -> List[RegistryEvent]:
        """Return finalized events from a block onwards."""
        pass

    @abstractmethod
    def block_number(self) -> int:
        pass

    def ping(self) -> bool:
        """Check the ledger answers."""
        try:
            self.block_number()
            return True
        except LedgerError:
            return False

    def close(self) -> None:
        """Release transport resources."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
