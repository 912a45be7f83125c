"""
Certificate Registry Module

This module provides the certificate registry state machine, its access
policy, the registry data model and JSON persistence for ledger documents.
"""

from .schema import (
    Certificate,
    EventType,
    RegistryDocument,
    RegistryEvent,
    RegistryState,
    TransactionReceipt,
    normalize_address,
    normalize_certificate_id
)

from .policy import AccessPolicy

from .manager import (
    CertificateRegistry,
    RegistryError,
    NotAuthorizedError,
    DuplicateIdError,
    CertificateNotFoundError,
    AlreadyRevokedError,
    CannotRevokeOwnerError
)

__all__ = [
    "Certificate",
    "EventType",
    "RegistryDocument",
    "RegistryEvent",
    "RegistryState",
    "TransactionReceipt",
    "normalize_address",
    "normalize_certificate_id",
    "AccessPolicy",
    "CertificateRegistry",
    "RegistryError",
    "NotAuthorizedError",
    "DuplicateIdError",
    "CertificateNotFoundError",
    "AlreadyRevokedError",
    "CannotRevokeOwnerError"
]
