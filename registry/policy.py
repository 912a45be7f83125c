"""
Certificate Registry - Access Policy

Authorization predicates consulted inline by every mutating registry
transition. Predicates read the state passed to them and keep nothing between
calls, so a check made by a client before submission is only advisory: the
state machine evaluates them again when the operation executes.
"""

from .schema import Certificate, RegistryState


class AccessPolicy:
    """Owner and issuer authorization rules."""

    @staticmethod
    def can_issue(state: RegistryState, caller: str) -> bool:
        """Caller is the owner or an authorized issuer."""
        return state.is_authorized(caller)

    @staticmethod
    def can_revoke(state: RegistryState, caller: str, certificate: Certificate) -> bool:
        """Caller is the owner or the certificate's original issuer."""
        return caller == state.owner or caller == certificate.issuer

    @staticmethod
    def can_manage_issuers(state: RegistryState, caller: str) -> bool:
        """Only the owner manages issuer authorization."""
        return caller == state.owner
