"""
Certificate Registry Ledger Module

Ledgers hosting the certificate registry: the abstract contract surface, an
in-process ledger and a JSON-RPC client for remote ledger nodes.
"""

from .base import (
    ContractMethod,
    Ledger,
    LedgerCall,
    LedgerError,
    LedgerUnavailableError,
    NotDeployedError,
    OutOfCostError,
    RevertError,
    UserRejectedError
)

from .local import LocalLedger
from .rpc import JSONRPCLedger, RPCConfig

__all__ = [
    "ContractMethod",
    "Ledger",
    "LedgerCall",
    "LedgerError",
    "LedgerUnavailableError",
    "NotDeployedError",
    "OutOfCostError",
    "RevertError",
    "UserRejectedError",
    "LocalLedger",
    "JSONRPCLedger",
    "RPCConfig"
]
