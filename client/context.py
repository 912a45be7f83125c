"""
Certificate Registry - Connection Context

A LedgerContext bundles the ledger connection with the account acting on it.
It is created once per session and passed to every client explicitly.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ledger.base import Ledger, LedgerCall, UserRejectedError
from ledger.local import LocalLedger
from ledger.rpc import JSONRPCLedger, RPCConfig
from registry.schema import normalize_address


logger = logging.getLogger(__name__)


class AccountProvider(ABC):
    """Source of the caller identity and approval of submissions."""

    @property
    @abstractmethod
    def address(self) -> Optional[str]:
        """Current account address, or None when no account is selected."""
        pass

    @abstractmethod
    def approve(self, call: LedgerCall) -> None:
        """
        Approve a submission before it is sent.

        Raises:
            UserRejectedError: The account holder declined
        """
        pass


class StaticAccountProvider(AccountProvider):
    """Fixed account with an optional confirmation prompt."""

    def __init__(
        self,
        address: Optional[str] = None,
        confirm: Optional[Callable[[LedgerCall], bool]] = None
    ):
        self._address = normalize_address(address) if address else None
        self.confirm = confirm

    @property
    def address(self) -> Optional[str]:
        return self._address

    def approve(self, call: LedgerCall) -> None:
        if self.confirm is not None and not self.confirm(call):
            logger.info(f"Submission of {call.method.value} declined")
            raise UserRejectedError()


@dataclass(frozen=True)
class LedgerContext:
    """Immutable handle on a ledger and the account using it."""
    ledger: Ledger
    account: AccountProvider

    def close(self) -> None:
        self.ledger.close()

    def __enter__(self) -> 'LedgerContext':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_ledger(settings: Dict[str, Any]) -> Ledger:
    """
    Create a ledger from configuration.

    Args:
        settings: Configuration with a 'ledger' section and, for remote
            ledgers, an 'rpc' section

    Returns:
        Connected ledger
    """
    ledger_settings = settings.get("ledger", {}) or {}
    ledger_type = ledger_settings.get("type", "local")

    if ledger_type == "local":
        return LocalLedger(
            storage_dir=ledger_settings.get("storage_dir", "ledger_data"),
            confirmation_delay=float(ledger_settings.get("confirmation_delay", 0.0)),
            backup_count=int(ledger_settings.get("backup_count", 5))
        )
    if ledger_type == "rpc":
        return JSONRPCLedger(RPCConfig.from_dict(settings.get("rpc", {}) or {}))

    raise ValueError(f"Unknown ledger type: {ledger_type}")


def open_context(
    settings: Dict[str, Any],
    confirm: Optional[Callable[[LedgerCall], bool]] = None
) -> LedgerContext:
    """Open a ledger connection for the configured account."""
    ledger = create_ledger(settings)
    address = (settings.get("account", {}) or {}).get("address")
    account = StaticAccountProvider(address, confirm=confirm)
    logger.debug(f"Opened {type(ledger).__name__} context for account {account.address}")
    return LedgerContext(ledger=ledger, account=account)
