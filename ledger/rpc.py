"""
Certificate Registry - JSON-RPC Ledger Client

This module provides a ledger backed by a remote node speaking JSON-RPC 2.0
over HTTP, with authentication, connection pooling, configuration from the
environment and translation of transport failures into ledger errors.
"""

import json
import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from urllib3.util.retry import Retry

from registry.schema import EventType, RegistryEvent, TransactionReceipt

from .base import (
    REVERT_PATTERN, Ledger, LedgerCall, LedgerError, LedgerUnavailableError,
    OutOfCostError, RevertError, UserRejectedError
)


# JSON-RPC error codes used by ledger nodes
EXECUTION_REVERTED_CODE = 3
USER_REJECTED_CODE = 4001


class RPCError(Exception):
    """Base exception for RPC-related errors."""

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC Error {code}: {message}")


class RPCConnectionError(RPCError):
    """Exception for RPC connection failures."""
    pass


class RPCAuthError(RPCError):
    """Exception for RPC authentication failures."""
    pass


class RPCTimeoutError(RPCError):
    """Exception for RPC timeout errors."""
    pass


@dataclass
class RPCConfig:
    """Configuration for a ledger node RPC connection."""
    host: str = "localhost"
    port: int = 8545
    path: str = "/"
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: int = 30
    max_retries: int = 3
    backoff_factor: float = 0.5
    use_ssl: bool = False
    ssl_verify: bool = True
    poll_interval: float = 1.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.host:
            raise ValueError("RPC host is required")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid RPC port: {self.port}")
        if bool(self.username) != bool(self.password):
            raise ValueError("RPC username and password must be given together")
        if self.poll_interval <= 0:
            raise ValueError("Receipt poll interval must be positive")

    @classmethod
    def from_env(cls) -> 'RPCConfig':
        """Create RPC config from environment variables."""
        return cls(
            host=os.getenv("CERTREG_RPC_HOST", "localhost"),
            port=int(os.getenv("CERTREG_RPC_PORT", "8545")),
            path=os.getenv("CERTREG_RPC_PATH", "/"),
            username=os.getenv("CERTREG_RPC_USER"),
            password=os.getenv("CERTREG_RPC_PASSWORD"),
            timeout=int(os.getenv("CERTREG_RPC_TIMEOUT", "30")),
            max_retries=int(os.getenv("CERTREG_RPC_MAX_RETRIES", "3")),
            use_ssl=os.getenv("CERTREG_RPC_USE_SSL", "false").lower() == "true",
            poll_interval=float(os.getenv("CERTREG_RPC_POLL_INTERVAL", "1.0"))
        )

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> 'RPCConfig':
        """Create RPC config from a configuration section, ignoring unknown keys."""
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in values.items() if k in known and v is not None})

    def get_url(self) -> str:
        protocol = "https" if self.use_ssl else "http"
        return f"{protocol}://{self.host}:{self.port}{self.path}"


class ConnectionPool:
    """Pooled HTTP session for RPC requests."""

    def __init__(self, config: RPCConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.session = requests.Session()

        # Only connection establishment is retried: the request never reached
        # the node, so resending cannot submit a transaction twice.
        retry_strategy = Retry(
            total=config.max_retries,
            connect=config.max_retries,
            read=0,
            status=0,
            backoff_factor=config.backoff_factor,
            allowed_methods=["POST"]
        )
        adapter = HTTPAdapter(max_retries=retry_strategy, pool_maxsize=10, pool_block=True)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        if config.username and config.password:
            self.session.auth = HTTPBasicAuth(config.username, config.password)
            self.logger.debug("Using basic authentication")

        self._request_counter = 0
        self._stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "total_time": 0.0,
            "last_request_time": None
        }
        self._stats_lock = threading.Lock()

    def _record(self, success: bool, elapsed: float) -> None:
        with self._stats_lock:
            self._stats["total_requests"] += 1
            self._stats["total_time"] += elapsed
            self._stats["last_request_time"] = datetime.now(timezone.utc)
            self._stats["successful_requests" if success else "failed_requests"] += 1

    def _next_id(self) -> int:
        with self._stats_lock:
            self._request_counter += 1
            return self._request_counter

    def request(self, method: str, params: List[Any]) -> Any:
        """Make an RPC request and return its result."""
        start_time = time.time()
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._next_id()
        }
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "certreg-rpc-client/1.0"
        }

        try:
            response = self.session.post(
                self.config.get_url(),
                data=json.dumps(payload, default=str),
                headers=headers,
                timeout=self.config.timeout,
                verify=self.config.ssl_verify
            )
        except requests.exceptions.Timeout:
            self._record(False, time.time() - start_time)
            raise RPCTimeoutError(-1, f"Request timed out after {self.config.timeout}s")
        except requests.exceptions.ConnectionError as e:
            self._record(False, time.time() - start_time)
            raise RPCConnectionError(-1, f"Connection error: {e}")
        except requests.exceptions.RequestException as e:
            self._record(False, time.time() - start_time)
            raise RPCError(-1, f"Request failed: {e}")

        elapsed = time.time() - start_time

        if response.status_code == 401:
            self._record(False, elapsed)
            raise RPCAuthError(response.status_code, "Authentication failed")

        if response.status_code >= 500:
            self._record(False, elapsed)
            raise RPCConnectionError(response.status_code, f"HTTP {response.status_code}: {response.reason}")

        try:
            response_data = response.json()
        except ValueError as e:
            self._record(False, elapsed)
            raise RPCError(-32700, f"Invalid JSON response: {e}")

        error = response_data.get("error")
        if error:
            self._record(False, elapsed)
            raise RPCError(error.get("code", -1), error.get("message", ""), error.get("data"))

        if response.status_code != 200:
            self._record(False, elapsed)
            raise RPCConnectionError(response.status_code, f"HTTP {response.status_code}: {response.reason}")

        self._record(True, elapsed)
        return response_data.get("result")

    def get_stats(self) -> Dict[str, Any]:
        """Get connection pool statistics."""
        with self._stats_lock:
            stats = self._stats.copy()

        total = stats["total_requests"]
        return {
            **stats,
            "average_request_time": stats["total_time"] / total if total else 0,
            "success_rate": stats["successful_requests"] / total if total else 0,
        }

    def close(self):
        self.session.close()


def parse_quantity(value: Any) -> int:
    """Parse an integer quantity that may arrive as int, decimal or hex text."""
    if isinstance(value, bool):
        raise LedgerError(f"Invalid quantity: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            pass
    raise LedgerError(f"Invalid quantity: {value!r}")


class JSONRPCLedger(Ledger):
    """Ledger reached through a node's JSON-RPC interface."""

    def __init__(self, config: Optional[RPCConfig] = None):
        """
        Initialize the RPC ledger.

        Args:
            config: RPC configuration (uses environment if None)
        """
        self.config = config or RPCConfig.from_env()
        self.pool = ConnectionPool(self.config)
        self.logger = logging.getLogger(__name__)

    def _rpc(self, method: str, *params) -> Any:
        """Make an RPC call, translating failures into ledger errors."""
        try:
            return self.pool.request(method, list(params))
        except (RPCConnectionError, RPCTimeoutError) as e:
            self.logger.warning(f"RPC {method} unavailable: {e.message}")
            raise LedgerUnavailableError(e.message)
        except RPCAuthError as e:
            raise LedgerError(f"Ledger node rejected credentials: {e.message}")
        except RPCError as e:
            raise self._translate_error(e)

    def _translate_error(self, error: RPCError) -> LedgerError:
        if error.code == USER_REJECTED_CODE:
            return UserRejectedError(error.message or "User denied transaction signature")

        if error.code == EXECUTION_REVERTED_CODE or "revert" in (error.message or ""):
            reason = None
            if isinstance(error.data, dict):
                reason = error.data.get("reason")
            if not reason:
                match = REVERT_PATTERN.search(error.message or "")
                reason = match.group(1) if match else error.message
            return RevertError(reason)

        return LedgerError(error.message or f"RPC error {error.code}")

    def call(self, call: LedgerCall) -> Any:
        return self._rpc("ledger_call", call.to_dict())

    def estimate_cost(self, call: LedgerCall) -> int:
        return parse_quantity(self._rpc("ledger_estimateCost", call.to_dict()))

    def submit(self, call: LedgerCall, cost_limit: int) -> TransactionReceipt:
        transaction = {**call.to_dict(), "costLimit": cost_limit}
        tx_hash = self._rpc("ledger_sendTransaction", transaction)
        self.logger.info(f"Submitted {call.method.value}: {tx_hash}")

        receipt = self._wait_for_receipt(tx_hash)
        if receipt.status:
            return receipt

        if receipt.revert_reason == "out of gas":
            raise OutOfCostError(cost_limit, receipt.cost_used, receipt.tx_hash)
        raise RevertError(receipt.revert_reason or "transaction reverted", receipt.tx_hash)

    def get_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        data = self._rpc("ledger_getReceipt", tx_hash)
        if data is None:
            return None
        try:
            return TransactionReceipt.model_validate(data)
        except ValueError as e:
            raise LedgerError(f"Malformed receipt for {tx_hash}: {e}")

    def _wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Poll until the transaction is final. Finality is the node's concern."""
        while True:
            try:
                receipt = self.get_receipt(tx_hash)
            except LedgerUnavailableError as e:
                raise LedgerUnavailableError(f"Lost connection while awaiting {tx_hash}: {e}")
            if receipt is not None:
                return receipt
            time.sleep(self.config.poll_interval)

    def get_events(
        self,
        from_block: int = 0,
        event_type: Optional[EventType] = None
    ) -> List[RegistryEvent]:
        data = self._rpc("ledger_getEvents", from_block, event_type.value if event_type else None)
        return [RegistryEvent.model_validate(item) for item in data or []]

    def block_number(self) -> int:
        return parse_quantity(self._rpc("ledger_blockNumber"))

    def close(self) -> None:
        self.pool.close()
