"""
Certificate Registry - In-Process Ledger

This module provides a ledger that hosts the certificate registry state
machine inside the current process. It supplies everything the registry
expects from a ledger: a single total order of mutations, all-or-nothing
execution, cost metering, transaction receipts, a durable event log and,
optionally, propagation lag on reads and JSON persistence.
"""

import hashlib
import logging
import math
import time
from collections import deque
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Deque, List, Optional, Tuple, Union

from registry.manager import CertificateRegistry, RegistryError
from registry.schema import (
    EventType, RegistryDocument, RegistryEvent, RegistryMetadata,
    RegistryState, TransactionReceipt, normalize_address
)
from registry.storage import RegistryStorage

from .base import (
    ContractMethod, Ledger, LedgerCall, LedgerError, NotDeployedError,
    OutOfCostError, RevertError
)


BASE_COST = 21000
CALLDATA_BYTE_COST = 16
SLOT_WRITE_COST = 20000
SLOT_UPDATE_COST = 5000
WORD_SIZE = 32
DEFAULT_BLOCK_COST_LIMIT = 30_000_000

EXPECTED_ARGUMENTS = {
    ContractMethod.ISSUE_CERTIFICATE: 4,
    ContractMethod.REVOKE_CERTIFICATE: 1,
    ContractMethod.VERIFY_CERTIFICATE: 1,
    ContractMethod.GET_CERTIFICATE_DETAILS: 1,
    ContractMethod.AUTHORIZE_ISSUER: 1,
    ContractMethod.REVOKE_ISSUER: 1,
    ContractMethod.IS_AUTHORIZED_ISSUER: 1,
    ContractMethod.OWNER: 0,
}


class LocalLedger(Ledger):
    """Ledger executing the certificate registry in-process."""

    def __init__(
        self,
        owner: Optional[str] = None,
        storage_dir: Optional[Union[str, Path]] = None,
        confirmation_delay: float = 0.0,
        clock: Callable[[], float] = time.time,
        block_cost_limit: int = DEFAULT_BLOCK_COST_LIMIT,
        backup_count: int = 5,
        network: str = "local"
    ):
        """
        Initialize the ledger.

        Args:
            owner: Registry owner, required when nothing is deployed yet
            storage_dir: Directory for the persisted ledger document
            confirmation_delay: Seconds before a block becomes visible to reads
            clock: Time source for confirmation lag
            block_cost_limit: Largest cost limit a submission may carry
            backup_count: Ledger document backups to keep
            network: Network name recorded in the document metadata
        """
        self.logger = logging.getLogger(__name__)
        self.confirmation_delay = confirmation_delay
        self.block_cost_limit = block_cost_limit
        self._clock = clock
        self._lock = RLock()
        self._event_callbacks: List[Callable[[RegistryEvent], None]] = []

        self.storage = RegistryStorage(storage_dir, backup_count=backup_count) if storage_dir else None

        document = self.storage.load_document() if self.storage else None
        if document is None:
            if owner is None:
                raise NotDeployedError("No registry deployed; an owner address is required")
            document = RegistryDocument(
                metadata=RegistryMetadata(network=network),
                state=RegistryState(owner=owner)
            )
            if self.storage:
                self.storage.save_document(document)
            self.logger.info(f"Deployed certificate registry owned by {document.state.owner}")
        elif owner is not None and normalize_address(owner) != document.state.owner:
            self.logger.warning(
                f"Ignoring owner {owner}: registry already deployed with owner {document.state.owner}"
            )

        self._document = document
        self._snapshots: Deque[Tuple[float, int, RegistryState]] = deque(
            [(float('-inf'), document.block_number, document.state)]
        )

    @classmethod
    def deploy(
        cls,
        owner: str,
        storage_dir: Optional[Union[str, Path]] = None,
        **kwargs
    ) -> 'LocalLedger':
        """Deploy a new registry, refusing to overwrite a persisted one."""
        if storage_dir and RegistryStorage(storage_dir).load_document() is not None:
            raise LedgerError(f"A registry is already deployed in {storage_dir}")
        return cls(owner=owner, storage_dir=storage_dir, **kwargs)

    # Event subscription

    def add_event_callback(self, callback: Callable[[RegistryEvent], None]) -> None:
        """Register a callback for finalized events."""
        self._event_callbacks.append(callback)

    def _emit_events(self, events: List[RegistryEvent]) -> None:
        for event in events:
            for callback in self._event_callbacks:
                try:
                    callback(event)
                except Exception as e:
                    # Subscriber failures never undo a finalized transaction
                    self.logger.warning(f"Event callback failed for {event.event_type.value}: {e}")

    # Cost metering

    def compute_cost(self, call: LedgerCall) -> int:
        """Cost of executing a mutation."""
        cost = BASE_COST + CALLDATA_BYTE_COST * len(call.calldata())

        if call.method == ContractMethod.ISSUE_CERTIFICATE:
            words = sum(
                max(1, math.ceil(len(str(arg).encode('utf-8')) / WORD_SIZE))
                for arg in call.args
            )
            # issuer, validity and existence flag plus the string payload
            cost += SLOT_WRITE_COST * (2 + words)
        elif call.method == ContractMethod.AUTHORIZE_ISSUER:
            cost += SLOT_WRITE_COST
        elif call.method in (ContractMethod.REVOKE_CERTIFICATE, ContractMethod.REVOKE_ISSUER):
            cost += SLOT_UPDATE_COST

        return cost

    # Internal helpers

    def _check_arguments(self, call: LedgerCall) -> None:
        expected = EXPECTED_ARGUMENTS[call.method]
        if len(call.args) != expected:
            raise LedgerError(
                f"{call.method.value} expects {expected} arguments, got {len(call.args)}"
            )

    def _require_sender(self, call: LedgerCall) -> str:
        if not call.method.is_mutation:
            raise LedgerError(f"{call.method.value} is read-only; use call()")
        if call.sender is None:
            raise LedgerError(f"{call.method.value} requires a sender")
        self._check_arguments(call)
        try:
            return normalize_address(call.sender)
        except ValueError as e:
            raise LedgerError(f"Invalid sender: {e}")

    def _dispatch_write(self, registry: CertificateRegistry, sender: str, call: LedgerCall) -> RegistryEvent:
        try:
            if call.method == ContractMethod.ISSUE_CERTIFICATE:
                return registry.issue(sender, *call.args)
            if call.method == ContractMethod.REVOKE_CERTIFICATE:
                return registry.revoke(sender, *call.args)
            if call.method == ContractMethod.AUTHORIZE_ISSUER:
                return registry.authorize_issuer(sender, *call.args)
            return registry.revoke_issuer(sender, *call.args)
        except ValueError as e:
            raise RegistryError(f"invalid argument: {e}")

    def _dispatch_read(self, registry: CertificateRegistry, call: LedgerCall) -> Any:
        try:
            if call.method == ContractMethod.VERIFY_CERTIFICATE:
                return registry.verify(*call.args)
            if call.method == ContractMethod.GET_CERTIFICATE_DETAILS:
                return registry.get_details(*call.args).to_tuple()
            if call.method == ContractMethod.IS_AUTHORIZED_ISSUER:
                return registry.is_authorized_issuer(*call.args)
            return registry.owner
        except ValueError as e:
            raise RegistryError(f"invalid argument: {e}")

    def _transaction_hash(self, document: RegistryDocument, sender: str,
                          call: LedgerCall, block_number: int) -> str:
        nonce = document.next_nonce(sender)
        data = f"{sender}:{nonce}:{block_number}:".encode('utf-8') + call.calldata()
        return '0x' + hashlib.sha256(data).hexdigest()

    def _execute(self, document: RegistryDocument, sender: str,
                 call: LedgerCall, cost_limit: int) -> TransactionReceipt:
        """Mine one transaction into the document. State changes only on success."""
        cost = self.compute_cost(call)
        block_number = document.block_number + 1
        tx_hash = self._transaction_hash(document, sender, call, block_number)
        receipt_fields = {
            'tx_hash': tx_hash,
            'block_number': block_number,
            'method': call.method.value,
            'sender': sender,
            'cost_limit': cost_limit,
        }

        if cost > cost_limit:
            receipt = TransactionReceipt(
                status=False, cost_used=cost_limit, revert_reason="out of gas", **receipt_fields
            )
        else:
            registry = CertificateRegistry(document.state.model_copy(deep=True))
            try:
                event = self._dispatch_write(registry, sender, call)
            except RegistryError as e:
                receipt = TransactionReceipt(
                    status=False, cost_used=cost, revert_reason=e.reason, **receipt_fields
                )
            else:
                event.block_number = block_number
                event.tx_hash = tx_hash
                event.log_index = len(document.events)
                document.state = registry.state
                receipt = TransactionReceipt(status=True, cost_used=cost, events=[event], **receipt_fields)

        document.record(receipt)
        return receipt

    def _record_snapshot(self) -> None:
        self._snapshots.append((self._clock(), self._document.block_number, self._document.state))
        self._prune_snapshots()

    def _prune_snapshots(self) -> None:
        """Drop snapshots superseded by a newer confirmed one."""
        if self.confirmation_delay <= 0:
            while len(self._snapshots) > 1:
                self._snapshots.popleft()
            return

        horizon = self._clock() - self.confirmation_delay
        while len(self._snapshots) > 1 and self._snapshots[1][0] <= horizon:
            self._snapshots.popleft()

    def _sync_from_storage(self) -> None:
        """Pick up blocks mined by other processes sharing the storage."""
        if not self.storage:
            return
        document = self.storage.load_document()
        if document is not None and document.block_number != self._document.block_number:
            self._document = document
            self._record_snapshot()

    def _confirmed_state(self) -> RegistryState:
        """Newest state whose block has been visible for confirmation_delay."""
        if self.confirmation_delay <= 0:
            return self._document.state

        self._prune_snapshots()
        return self._snapshots[0][2]

    # Ledger interface

    def call(self, call: LedgerCall) -> Any:
        if call.method.is_mutation:
            raise LedgerError(f"{call.method.value} mutates state; use submit()")
        self._check_arguments(call)

        with self._lock:
            self._sync_from_storage()
            registry = CertificateRegistry(self._confirmed_state())
            try:
                return self._dispatch_read(registry, call)
            except RegistryError as e:
                raise RevertError(e.reason)

    def estimate_cost(self, call: LedgerCall) -> int:
        sender = self._require_sender(call)

        with self._lock:
            self._sync_from_storage()
            registry = CertificateRegistry(self._document.state.model_copy(deep=True))
            try:
                self._dispatch_write(registry, sender, call)
            except RegistryError as e:
                raise RevertError(e.reason)

        return self.compute_cost(call)

    def submit(self, call: LedgerCall, cost_limit: int) -> TransactionReceipt:
        sender = self._require_sender(call)
        if cost_limit > self.block_cost_limit:
            raise LedgerError(
                f"Cost limit {cost_limit} exceeds block cost limit {self.block_cost_limit}"
            )

        with self._lock:
            if self.storage:
                receipts = []

                def updater(current: Optional[RegistryDocument]) -> RegistryDocument:
                    document = current or self._document
                    receipts.append(self._execute(document, sender, call, cost_limit))
                    return document

                self._document = self.storage.update_document(updater)
                receipt = receipts[0]
            else:
                receipt = self._execute(self._document, sender, call, cost_limit)

            self._record_snapshot()

            if receipt.status:
                self.logger.info(
                    f"Block {receipt.block_number}: {call.method.value} from {sender} "
                    f"({receipt.tx_hash}, cost {receipt.cost_used}/{cost_limit})"
                )
                self._emit_events(receipt.events)
                return receipt

        self.logger.info(
            f"Block {receipt.block_number}: {call.method.value} from {sender} reverted: "
            f"{receipt.revert_reason}"
        )
        if receipt.revert_reason == "out of gas":
            raise OutOfCostError(cost_limit, self.compute_cost(call), receipt.tx_hash)
        raise RevertError(receipt.revert_reason, receipt.tx_hash)

    def get_events(
        self,
        from_block: int = 0,
        event_type: Optional[EventType] = None
    ) -> List[RegistryEvent]:
        with self._lock:
            self._sync_from_storage()
            return [
                event for event in self._document.events
                if (event.block_number or 0) >= from_block
                and (event_type is None or event.event_type == event_type)
            ]

    def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        with self._lock:
            self._sync_from_storage()
            return self._document.receipts.get(tx_hash.lower())

    def block_number(self) -> int:
        with self._lock:
            self._sync_from_storage()
            return self._document.block_number

    def state_snapshot(self) -> RegistryState:
        """Deep copy of the latest (unlagged) registry state."""
        with self._lock:
            self._sync_from_storage()
            return self._document.state.model_copy(deep=True)
