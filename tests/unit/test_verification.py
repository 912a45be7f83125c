"""
Unit tests for certificate verification.
"""

from unittest.mock import Mock

import pytest

from client.errors import ClientError, ErrorKind
from client.registry_client import ClientResponse, RegistryClient
from client.verification import CertificateVerifier, VerificationResult


def details(valid=True):
    return ClientResponse(certificate={
        "id": "CERT-1",
        "studentName": "Ada Lovelace",
        "courseName": "Analytical Engines",
        "issueDate": "2024-05-01",
        "valid": valid,
        "issuer": "0xowner",
    })


class TestCertificateVerifier:

    def test_valid_certificate(self, owner_client, sample_certificate):
        owner_client.issue_certificate(**sample_certificate)

        result = CertificateVerifier(owner_client).check("CERT-1")

        assert result.is_valid is True
        assert result.consistent is True
        assert result.certificate["studentName"] == "Ada Lovelace"

    def test_revoked_certificate(self, owner_client, sample_certificate):
        owner_client.issue_certificate(**sample_certificate)
        owner_client.revoke_certificate("CERT-1")

        result = CertificateVerifier(owner_client).check("CERT-1")

        assert result.is_valid is False
        assert result.certificate["valid"] is False

    def test_revocation_between_reads(self):
        client = Mock(spec=RegistryClient)
        client.get_certificate_details.return_value = details(valid=True)
        client.verify_certificate.return_value = ClientResponse(is_valid=False)

        result = CertificateVerifier(client).check("CERT-1")

        assert result.is_valid is False
        assert result.certificate["valid"] is False
        assert result.snapshot_valid is True
        assert result.consistent is False

    def test_missing_certificate(self, owner_client):
        with pytest.raises(ClientError) as exc_info:
            CertificateVerifier(owner_client).check("NOPE")

        assert exc_info.value.kind == ErrorKind.NOT_FOUND

    def test_check_many(self, owner_client, sample_certificate):
        owner_client.issue_certificate(**sample_certificate)

        results = CertificateVerifier(owner_client).check_many(["CERT-1", "NOPE"])

        assert isinstance(results[0], VerificationResult)
        assert isinstance(results[1], ClientError)

    def test_result_shape(self):
        client = Mock(spec=RegistryClient)
        client.get_certificate_details.return_value = details()
        client.verify_certificate.return_value = ClientResponse(is_valid=True)

        payload = CertificateVerifier(client).check("CERT-1").to_dict()

        assert payload["success"] is True
        assert payload["isValid"] is True
        assert payload["consistent"] is True
        assert "checkedAt" in payload
