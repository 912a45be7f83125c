"""
Certificate Registry - Registry Schema Models

This module defines the Pydantic models for certificates, issuer authorization
state, ledger events and transaction receipts within the registry system.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field, field_validator


ADDRESS_PATTERN = re.compile(r'^[a-z0-9_.:-]+$')


def normalize_certificate_id(certificate_id: Any) -> str:
    """
    Normalize a certificate ID so equivalent representations share one key.

    Args:
        certificate_id: Raw identifier (any type, stringified)

    Returns:
        Trimmed string identifier

    Raises:
        ValueError: If the identifier is missing or blank
    """
    if certificate_id is None:
        raise ValueError('Certificate ID is required')

    normalized = str(certificate_id).strip()
    if not normalized:
        raise ValueError('Certificate ID cannot be empty')

    return normalized


def normalize_address(address: Any) -> str:
    """
    Normalize an account address for comparison.

    Addresses are compared case-insensitively, so the canonical form is
    trimmed and lower-cased.
    """
    if address is None:
        raise ValueError('Address is required')

    normalized = str(address).strip().lower()
    if not normalized:
        raise ValueError('Address cannot be empty')

    if not ADDRESS_PATTERN.match(normalized):
        raise ValueError(
            'Address must contain only alphanumeric characters, dots, colons, hyphens and underscores'
        )
    return normalized


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventType(str, Enum):
    """Registry event type enumeration."""
    CERTIFICATE_ISSUED = "CertificateIssued"
    CERTIFICATE_REVOKED = "CertificateRevoked"
    ISSUER_AUTHORIZED = "IssuerAuthorized"
    ISSUER_REVOKED = "IssuerRevoked"


class Certificate(BaseModel):
    """Issued certificate record."""

    id: str = Field(..., description="Normalized certificate identifier")
    student_name: str = Field(..., description="Certificate holder name")
    course_name: str = Field(..., description="Course or qualification name")
    issue_date: str = Field(..., description="Free-form issue date")
    issuer: str = Field(..., description="Address of the issuing account")
    valid: bool = Field(default=True, description="False once revoked")

    @field_validator('id', mode='before')
    @classmethod
    def validate_id(cls, v):
        """Normalize certificate ID."""
        return normalize_certificate_id(v)

    @field_validator('issuer', mode='before')
    @classmethod
    def validate_issuer(cls, v):
        """Normalize issuer address."""
        return normalize_address(v)

    def to_tuple(self) -> Tuple[str, str, str, str, bool, str]:
        """Return the ledger's positional representation."""
        return (self.id, self.student_name, self.course_name, self.issue_date, self.valid, self.issuer)

    def to_public_dict(self) -> Dict[str, Any]:
        """Return the caller-facing representation."""
        return {
            'id': self.id,
            'studentName': self.student_name,
            'courseName': self.course_name,
            'issueDate': self.issue_date,
            'valid': self.valid,
            'issuer': self.issuer,
        }


class RegistryEvent(BaseModel):
    """Durable notification of a finalized registry transition."""

    event_type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)
    block_number: Optional[int] = Field(None, ge=0)
    tx_hash: Optional[str] = None
    log_index: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=utc_now)

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            'event': self.event_type.value,
            'blockNumber': self.block_number,
            'txHash': self.tx_hash,
            **self.data,
        }


class RegistryState(BaseModel):
    """Authoritative registry state: issuer set and certificates."""

    owner: str = Field(..., description="Registry owner address")
    authorized_issuers: Set[str] = Field(default_factory=set, description="Issuers besides the owner")
    certificates: Dict[str, Certificate] = Field(default_factory=dict)

    @field_validator('owner', mode='before')
    @classmethod
    def validate_owner(cls, v):
        return normalize_address(v)

    @field_validator('authorized_issuers', mode='before')
    @classmethod
    def validate_issuers(cls, v):
        return {normalize_address(address) for address in (v or [])}

    def is_authorized(self, address: str) -> bool:
        """Check issuer authorization; the owner is always authorized."""
        return address == self.owner or address in self.authorized_issuers

    def get_certificate(self, certificate_id: str) -> Optional[Certificate]:
        """Get a certificate by normalized ID."""
        return self.certificates.get(certificate_id)


class TransactionReceipt(BaseModel):
    """Outcome of a submitted ledger transaction."""

    tx_hash: str = Field(..., description="Transaction hash (0x-prefixed hex)")
    block_number: int = Field(..., ge=0)
    method: str
    sender: str
    status: bool = Field(..., description="True if the transaction was applied")
    cost_used: int = Field(default=0, ge=0)
    cost_limit: int = Field(default=0, ge=0)
    events: List[RegistryEvent] = Field(default_factory=list)
    revert_reason: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator('tx_hash')
    @classmethod
    def validate_tx_hash(cls, v):
        """Validate transaction hash format."""
        if not re.match(r'^0x[a-fA-F0-9]{64}$', v):
            raise ValueError('Transaction hash must be a 0x-prefixed 64-character hex string')
        return v.lower()


class RegistryMetadata(BaseModel):
    """Registry metadata model."""

    version: str = Field(default="1.0.0", description="Registry schema version")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    description: str = Field(default="Certificate Registry Ledger")
    network: str = Field(default="local", description="Ledger network name")

    def update_timestamp(self) -> None:
        """Update the last modified timestamp."""
        self.updated_at = utc_now()


class RegistryDocument(BaseModel):
    """Complete persisted ledger document."""

    metadata: RegistryMetadata = Field(default_factory=RegistryMetadata)
    state: RegistryState
    block_number: int = Field(default=0, ge=0)
    nonces: Dict[str, int] = Field(default_factory=dict)
    events: List[RegistryEvent] = Field(default_factory=list)
    receipts: Dict[str, TransactionReceipt] = Field(default_factory=dict)

    def next_nonce(self, sender: str) -> int:
        """Consume and return the next nonce for a sender."""
        nonce = self.nonces.get(sender, 0)
        self.nonces[sender] = nonce + 1
        return nonce

    def record(self, receipt: TransactionReceipt) -> None:
        """Append a mined transaction and its events."""
        self.block_number = receipt.block_number
        self.receipts[receipt.tx_hash] = receipt
        self.events.extend(receipt.events)
        self.metadata.update_timestamp()
