"""
Certificate Registry - Verification

Read-only certificate checks combining a details snapshot with a separate
validity read.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Union

from .errors import ClientError
from .registry_client import RegistryClient


@dataclass
class VerificationResult:
    """Outcome of verifying one certificate."""
    certificate_id: str
    certificate: Dict[str, Any]
    is_valid: bool
    snapshot_valid: bool
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def consistent(self) -> bool:
        """False if validity changed between the two reads."""
        return self.snapshot_valid == self.is_valid

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "certificate": self.certificate,
            "isValid": self.is_valid,
            "consistent": self.consistent,
            "checkedAt": self.checked_at.isoformat(),
        }


class CertificateVerifier:
    """
    Verification façade over a RegistryClient.

    Details and validity are fetched by two reads that are not atomic. The
    validity read happens last and is authoritative: a revocation landing
    between the reads shows up as is_valid False with consistent False.
    """

    def __init__(self, client: RegistryClient):
        self.client = client
        self.logger = logging.getLogger(__name__)

    def check(self, certificate_id: Any) -> VerificationResult:
        """
        Verify a certificate.

        Raises:
            ClientError: NOT_FOUND if the certificate does not exist
        """
        details = self.client.get_certificate_details(certificate_id)
        verification = self.client.verify_certificate(certificate_id)

        certificate = dict(details.certificate)
        snapshot_valid = certificate["valid"]
        certificate["valid"] = verification.is_valid

        result = VerificationResult(
            certificate_id=certificate["id"],
            certificate=certificate,
            is_valid=verification.is_valid,
            snapshot_valid=snapshot_valid
        )
        if not result.consistent:
            self.logger.info(
                f"Validity of {result.certificate_id} changed between reads: "
                f"{snapshot_valid} -> {verification.is_valid}"
            )
        return result

    def check_many(self, certificate_ids: Iterable[Any]) -> List[Union[VerificationResult, ClientError]]:
        """Verify several certificates; failures are returned in place of results."""
        results: List[Union[VerificationResult, ClientError]] = []
        for certificate_id in certificate_ids:
            try:
                results.append(self.check(certificate_id))
            except ClientError as e:
                results.append(e)
        return results
