"""
Certificate Registry - Registry State Machine

This module provides the certificate registry transition rules: issuance,
revocation, verification and issuer authorization.

The state machine holds no locks. Every transition checks all of its
preconditions before touching state, so a failed transition leaves the state
exactly as it was. Correctness under concurrent submission depends on the
hosting ledger executing operations one at a time in a single total order,
with each operation observing every previously ordered one. A backing store
without that guarantee must serialize operations per certificate ID itself.
"""

import logging
from typing import Any, Optional

from .policy import AccessPolicy
from .schema import (
    Certificate, EventType, RegistryEvent, RegistryState,
    normalize_address, normalize_certificate_id
)


REASON_NOT_AUTHORIZED_ISSUER = "Not authorized to issue certificates"
REASON_ONLY_OWNER = "Only the owner can perform this action"
REASON_NOT_AUTHORIZED_REVOKE = "Only the issuer or owner can revoke this certificate"
REASON_DUPLICATE_ID = "Certificate ID already exists"
REASON_NOT_FOUND = "Certificate doesn't exist"
REASON_ALREADY_REVOKED = "Certificate already revoked"
REASON_CANNOT_REVOKE_OWNER = "Cannot revoke the owner's authorization"


class RegistryError(Exception):
    """Base registry exception carrying a revert reason."""

    default_reason = "Registry operation failed"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class NotAuthorizedError(RegistryError):
    """Caller is not permitted to perform the operation."""
    default_reason = REASON_NOT_AUTHORIZED_ISSUER


class DuplicateIdError(RegistryError):
    """Certificate ID already exists."""
    default_reason = REASON_DUPLICATE_ID


class CertificateNotFoundError(RegistryError):
    """Certificate ID does not exist."""
    default_reason = REASON_NOT_FOUND


class AlreadyRevokedError(RegistryError):
    """Certificate was already revoked."""
    default_reason = REASON_ALREADY_REVOKED


class CannotRevokeOwnerError(RegistryError):
    """The owner's issuer authorization cannot be revoked."""
    default_reason = REASON_CANNOT_REVOKE_OWNER


class CertificateRegistry:
    """Certificate registry state machine over a RegistryState."""

    def __init__(self, state: RegistryState):
        self.state = state
        self.policy = AccessPolicy()
        self.logger = logging.getLogger(__name__)

    @classmethod
    def deploy(cls, owner: str) -> 'CertificateRegistry':
        """Create an empty registry owned by the given address."""
        return cls(RegistryState(owner=owner))

    @property
    def owner(self) -> str:
        return self.state.owner

    def _require_certificate(self, certificate_id: str) -> Certificate:
        certificate = self.state.get_certificate(certificate_id)
        if certificate is None:
            raise CertificateNotFoundError()
        return certificate

    def issue(
        self,
        caller: str,
        certificate_id: Any,
        student_name: str,
        course_name: str,
        issue_date: str
    ) -> RegistryEvent:
        """
        Issue a new certificate.

        Args:
            caller: Address submitting the operation
            certificate_id: Caller-assigned certificate ID
            student_name: Certificate holder name
            course_name: Course name
            issue_date: Issue date

        Returns:
            CertificateIssued event

        Raises:
            NotAuthorizedError: Caller is not an authorized issuer
            DuplicateIdError: Certificate ID already exists
        """
        caller = normalize_address(caller)
        certificate_id = normalize_certificate_id(certificate_id)

        if not self.policy.can_issue(self.state, caller):
            raise NotAuthorizedError(REASON_NOT_AUTHORIZED_ISSUER)

        if certificate_id in self.state.certificates:
            raise DuplicateIdError()

        certificate = Certificate(
            id=certificate_id,
            student_name=student_name,
            course_name=course_name,
            issue_date=issue_date,
            issuer=caller,
        )
        self.state.certificates[certificate_id] = certificate
        self.logger.debug(f"Issued certificate {certificate_id} by {caller}")

        return RegistryEvent(
            event_type=EventType.CERTIFICATE_ISSUED,
            data={
                'id': certificate.id,
                'studentName': certificate.student_name,
                'courseName': certificate.course_name,
                'issueDate': certificate.issue_date,
                'issuer': certificate.issuer,
            }
        )

    def revoke(self, caller: str, certificate_id: Any) -> RegistryEvent:
        """
        Revoke a certificate.

        Raises:
            CertificateNotFoundError: Certificate ID does not exist
            NotAuthorizedError: Caller is neither the owner nor the issuer
            AlreadyRevokedError: Certificate is already invalid
        """
        caller = normalize_address(caller)
        certificate_id = normalize_certificate_id(certificate_id)

        certificate = self._require_certificate(certificate_id)

        if not self.policy.can_revoke(self.state, caller, certificate):
            raise NotAuthorizedError(REASON_NOT_AUTHORIZED_REVOKE)

        if not certificate.valid:
            raise AlreadyRevokedError()

        certificate.valid = False
        self.logger.debug(f"Revoked certificate {certificate_id} by {caller}")

        return RegistryEvent(
            event_type=EventType.CERTIFICATE_REVOKED,
            data={'id': certificate_id}
        )

    def verify(self, certificate_id: Any) -> bool:
        """Return current validity of a certificate."""
        return self._require_certificate(normalize_certificate_id(certificate_id)).valid

    def get_details(self, certificate_id: Any) -> Certificate:
        """Return a snapshot of a certificate."""
        certificate = self._require_certificate(normalize_certificate_id(certificate_id))
        return certificate.model_copy()

    def authorize_issuer(self, caller: str, address: str) -> RegistryEvent:
        """
        Authorize an address to issue certificates (owner only).

        Authorizing an already-authorized address succeeds without change.
        """
        caller = normalize_address(caller)
        address = normalize_address(address)

        if not self.policy.can_manage_issuers(self.state, caller):
            raise NotAuthorizedError(REASON_ONLY_OWNER)

        if address != self.state.owner:
            self.state.authorized_issuers.add(address)

        return RegistryEvent(
            event_type=EventType.ISSUER_AUTHORIZED,
            data={'issuer': address}
        )

    def revoke_issuer(self, caller: str, address: str) -> RegistryEvent:
        """
        Revoke an address's authorization to issue certificates (owner only).

        The owner can never be revoked, whoever asks. Revoking an address
        that is not authorized succeeds without change.
        """
        caller = normalize_address(caller)
        address = normalize_address(address)

        if address == self.state.owner:
            raise CannotRevokeOwnerError()

        if not self.policy.can_manage_issuers(self.state, caller):
            raise NotAuthorizedError(REASON_ONLY_OWNER)

        self.state.authorized_issuers.discard(address)

        return RegistryEvent(
            event_type=EventType.ISSUER_REVOKED,
            data={'issuer': address}
        )

    def is_authorized_issuer(self, address: str) -> bool:
        return self.state.is_authorized(normalize_address(address))

    def snapshot(self) -> RegistryState:
        """Return a deep copy of the current state."""
        return self.state.model_copy(deep=True)
