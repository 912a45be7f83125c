"""
Tests for the Certificate Registry Client

Covers identifier normalization, the cost safety margin, read retries
against a lagging ledger, and classification of every failure path.
"""

from unittest.mock import Mock

import pytest

from client.config import MAX_COST_LIMIT
from client.errors import READ_LAG_DETAILS, ClientError, ErrorKind
from client.registry_client import (
    ClientResponse, calculate_cost_with_buffer, coerce_certificate, coerce_valid
)
from ledger.base import ContractMethod, Ledger, LedgerCall, LedgerUnavailableError, RevertError
from ledger.local import LocalLedger
from registry.schema import EventType


OWNER = "0xowner"
ISSUER = "0xissuer1"


def mock_ledger():
    return Mock(spec=Ledger)


class TestCostBuffer:
    """Test the cost safety margin."""

    def test_default_margin(self):
        assert calculate_cost_with_buffer(100000) == 120000

    def test_numeric_text_accepted(self):
        assert calculate_cost_with_buffer("100000") == 120000
        assert calculate_cost_with_buffer(" 21000 ") == 25200

    def test_rounds_half_up(self):
        assert calculate_cost_with_buffer(5) == 6
        assert calculate_cost_with_buffer(2, buffer_percent=25) == 3

    def test_custom_margin(self):
        assert calculate_cost_with_buffer(1000, buffer_percent=50) == 1500
        assert calculate_cost_with_buffer(1000, buffer_percent=0) == 1000

    def test_large_values_exact(self):
        estimate = 10 ** 17 + 1
        assert calculate_cost_with_buffer(estimate) == (estimate * 12 + 5) // 10

    @pytest.mark.parametrize("estimate", [MAX_COST_LIMIT, 2 ** 70, "abc", True, -1, "NaN", "Infinity", None])
    def test_unusable_estimates(self, estimate):
        with pytest.raises(ClientError) as exc_info:
            calculate_cost_with_buffer(estimate)

        assert exc_info.value.kind == ErrorKind.NUMERIC_OVERFLOW


class TestCoercion:

    @pytest.mark.parametrize("raw,expected", [
        (True, True), (False, False), (1, True), (0, False),
        ("true", True), ("1", True), ("false", False), ("0", False), (None, False),
    ])
    def test_coerce_valid(self, raw, expected):
        assert coerce_valid(raw) is expected

    def test_positional_details(self):
        certificate = coerce_certificate(("C-1", "Ada", "Math", "2024", 1, "0xowner"))

        assert certificate == {
            "id": "C-1",
            "studentName": "Ada",
            "courseName": "Math",
            "issueDate": "2024",
            "valid": True,
            "issuer": "0xowner",
        }

    def test_mapping_details(self):
        certificate = coerce_certificate({"id": "C-1", "studentName": "Ada", "valid": "false"})

        assert certificate["valid"] is False
        assert certificate["courseName"] == ""

    def test_malformed_details(self):
        with pytest.raises(ValueError):
            coerce_certificate(("C-1", "Ada"))


class TestClientResponse:

    def test_absent_fields_omitted(self):
        assert ClientResponse(is_valid=False).to_dict() == {"success": True, "isValid": False}
        assert ClientResponse(tx_hash="0xabc").to_dict() == {"success": True, "txHash": "0xabc"}


class TestMutations:
    """Test submissions through the client."""

    def test_issue_certificate(self, owner_client, ledger, sample_certificate):
        response = owner_client.issue_certificate(**sample_certificate)

        assert response.success
        assert response.tx_hash.startswith("0x")
        assert response.certificate["id"] == "CERT-1"
        assert response.certificate["issuer"] == OWNER
        assert response.events[0]["event"] == "CertificateIssued"
        assert ledger.block_number() == 1

    def test_issue_submits_with_buffered_cost(self, owner_client, ledger, sample_certificate):
        estimate = ledger.estimate_cost(LedgerCall(
            ContractMethod.ISSUE_CERTIFICATE,
            ("CERT-1", "Ada Lovelace", "Analytical Engines", "2024-05-01"),
            OWNER
        ))

        response = owner_client.issue_certificate(**sample_certificate)

        assert response.receipt.cost_limit == calculate_cost_with_buffer(estimate)
        assert response.receipt.cost_used == estimate

    def test_identifier_is_trimmed(self, owner_client):
        response = owner_client.issue_certificate("  CERT-7 ", "Ada", "Math", "2024")

        assert response.certificate["id"] == "CERT-7"
        assert owner_client.verify_certificate("CERT-7").is_valid is True

    def test_numeric_identifier_matches_text(self, owner_client):
        owner_client.issue_certificate(42, "Ada", "Math", "2024")

        assert owner_client.verify_certificate("42").is_valid is True

    @pytest.mark.parametrize("field", ["certificate_id", "student_name", "course_name", "issue_date"])
    def test_missing_field(self, owner_client, ledger, sample_certificate, field):
        sample_certificate[field] = "   "

        with pytest.raises(ClientError) as exc_info:
            owner_client.issue_certificate(**sample_certificate)

        assert exc_info.value.kind == ErrorKind.INVALID_INPUT
        assert field in exc_info.value.details
        assert ledger.block_number() == 0

    def test_unauthorized_issue_never_submitted(self, stranger_client, ledger, sample_certificate):
        with pytest.raises(ClientError) as exc_info:
            stranger_client.issue_certificate(**sample_certificate)

        assert exc_info.value.kind == ErrorKind.NOT_AUTHORIZED
        assert exc_info.value.message == "Failed to issue certificate"
        assert ledger.block_number() == 0

    def test_duplicate_issue(self, owner_client, sample_certificate):
        owner_client.issue_certificate(**sample_certificate)

        with pytest.raises(ClientError) as exc_info:
            owner_client.issue_certificate(**sample_certificate)

        assert exc_info.value.kind == ErrorKind.DUPLICATE_ID
        assert exc_info.value.details == "Certificate already exists"

    def test_revoke_by_issuer(self, issuer_client, sample_certificate):
        issuer_client.issue_certificate(**sample_certificate)

        response = issuer_client.revoke_certificate("CERT-1")

        assert response.events[0]["event"] == "CertificateRevoked"
        assert issuer_client.verify_certificate("CERT-1").is_valid is False

    def test_owner_revokes_any_certificate(self, issuer_client, owner_client, sample_certificate):
        issuer_client.issue_certificate(**sample_certificate)

        owner_client.revoke_certificate("CERT-1")

        assert owner_client.verify_certificate("CERT-1").is_valid is False

    def test_revoke_by_other_issuer_refused(self, issuer_client, owner_client, make_client, ledger,
                                            sample_certificate):
        issuer_client.issue_certificate(**sample_certificate)
        owner_client.authorize_issuer("0xissuer2")
        other = make_client(ledger, "0xissuer2")

        with pytest.raises(ClientError) as exc_info:
            other.revoke_certificate("CERT-1")

        assert exc_info.value.kind == ErrorKind.NOT_AUTHORIZED

    def test_revoke_twice(self, owner_client, sample_certificate):
        owner_client.issue_certificate(**sample_certificate)
        owner_client.revoke_certificate("CERT-1")

        with pytest.raises(ClientError) as exc_info:
            owner_client.revoke_certificate("CERT-1")

        assert exc_info.value.kind == ErrorKind.ALREADY_REVOKED

    def test_revoke_missing(self, owner_client):
        with pytest.raises(ClientError) as exc_info:
            owner_client.revoke_certificate("NOPE")

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.details == "Certificate not found"

    def test_declined_submission(self, make_client, ledger):
        client = make_client(ledger, OWNER, confirm=lambda call: False)

        with pytest.raises(ClientError) as exc_info:
            client.authorize_issuer(ISSUER)

        assert exc_info.value.kind == ErrorKind.USER_REJECTED
        assert ledger.block_number() == 0

    def test_confirmation_sees_call(self, make_client, ledger):
        seen = []
        client = make_client(ledger, OWNER, confirm=lambda call: seen.append(call) or True)

        client.authorize_issuer(ISSUER)

        assert [call.method for call in seen] == [ContractMethod.AUTHORIZE_ISSUER]

    def test_no_account_selected(self, make_client, ledger):
        client = make_client(ledger)

        with pytest.raises(ClientError) as exc_info:
            client.authorize_issuer(ISSUER)

        assert exc_info.value.kind == ErrorKind.INVALID_INPUT

    def test_invalid_address(self, owner_client):
        with pytest.raises(ClientError) as exc_info:
            owner_client.authorize_issuer("not an address!")

        assert exc_info.value.kind == ErrorKind.INVALID_INPUT

    def test_issuer_management(self, owner_client):
        response = owner_client.authorize_issuer("0xISSUER1")

        assert response.issuer == ISSUER
        assert owner_client.is_authorized_issuer(ISSUER).is_authorized is True

        owner_client.revoke_issuer(ISSUER)
        assert owner_client.is_authorized_issuer(ISSUER).is_authorized is False

    def test_owner_cannot_be_revoked(self, owner_client):
        with pytest.raises(ClientError) as exc_info:
            owner_client.revoke_issuer(OWNER)

        assert exc_info.value.kind == ErrorKind.CANNOT_REVOKE_OWNER

    def test_issuer_cannot_manage_issuers(self, issuer_client):
        with pytest.raises(ClientError) as exc_info:
            issuer_client.authorize_issuer("0xissuer2")

        assert exc_info.value.kind == ErrorKind.NOT_AUTHORIZED

    def test_mutation_not_retried(self, make_client, sleep):
        ledger = mock_ledger()
        ledger.estimate_cost.return_value = 50000
        ledger.submit.side_effect = LedgerUnavailableError("node down")
        client = make_client(ledger, OWNER)

        with pytest.raises(ClientError) as exc_info:
            client.revoke_certificate("CERT-1")

        assert exc_info.value.kind == ErrorKind.TRANSIENT_UNAVAILABLE
        assert ledger.submit.call_count == 1
        assert sleep.calls == []

    def test_overflowing_estimate_not_submitted(self, make_client):
        ledger = mock_ledger()
        ledger.estimate_cost.return_value = 2 ** 64
        client = make_client(ledger, OWNER)

        with pytest.raises(ClientError) as exc_info:
            client.revoke_certificate("CERT-1")

        assert exc_info.value.kind == ErrorKind.NUMERIC_OVERFLOW
        ledger.submit.assert_not_called()


class TestReads:
    """Test reads and their retry behavior."""

    def test_verify_and_details(self, owner_client, sample_certificate):
        owner_client.issue_certificate(**sample_certificate)

        assert owner_client.verify_certificate("CERT-1").is_valid is True
        certificate = owner_client.get_certificate_details(" CERT-1 ").certificate
        assert certificate == {
            "id": "CERT-1",
            "studentName": "Ada Lovelace",
            "courseName": "Analytical Engines",
            "issueDate": "2024-05-01",
            "valid": True,
            "issuer": OWNER,
        }

    def test_not_found_retried_then_recovers(self, make_client, sleep):
        ledger = mock_ledger()
        ledger.call.side_effect = [RevertError("Certificate doesn't exist"), True]
        client = make_client(ledger, OWNER)

        assert client.verify_certificate("CERT-1").is_valid is True
        assert ledger.call.call_count == 2
        assert sleep.calls == [1.0]

    def test_not_found_after_all_attempts(self, make_client, sleep):
        ledger = mock_ledger()
        ledger.call.side_effect = RevertError("Certificate doesn't exist")
        client = make_client(ledger, OWNER)

        with pytest.raises(ClientError) as exc_info:
            client.get_certificate_details("CERT-1")

        assert exc_info.value.kind == ErrorKind.NOT_FOUND
        assert exc_info.value.message == "Failed to get certificate"
        assert exc_info.value.details == READ_LAG_DETAILS
        assert ledger.call.call_count == 3
        assert sleep.calls == [1.0, 1.0]

    def test_transient_failures_retried(self, make_client, sleep):
        ledger = mock_ledger()
        ledger.call.side_effect = [LedgerUnavailableError("down"), LedgerUnavailableError("down"), 1]
        client = make_client(ledger, OWNER)

        assert client.verify_certificate("CERT-1").is_valid is True
        assert sleep.calls == [1.0, 1.0]

    def test_other_failures_not_retried(self, make_client, sleep):
        ledger = mock_ledger()
        ledger.call.side_effect = RevertError("something odd")
        client = make_client(ledger, OWNER)

        with pytest.raises(ClientError) as exc_info:
            client.verify_certificate("CERT-1")

        assert exc_info.value.kind == ErrorKind.UNKNOWN
        assert ledger.call.call_count == 1
        assert sleep.calls == []

    def test_read_tunables(self, make_client, sleep):
        ledger = mock_ledger()
        ledger.call.side_effect = RevertError("Certificate doesn't exist")
        client = make_client(ledger, OWNER, read_attempts=5, read_retry_delay=0.25)

        with pytest.raises(ClientError):
            client.verify_certificate("CERT-1")

        assert sleep.calls == [0.25] * 4

    def test_lagging_ledger_read_after_issue(self, make_client, clock):
        ledger = LocalLedger(owner=OWNER, confirmation_delay=1.5, clock=clock)
        client = make_client(ledger, OWNER)
        client.sleep = clock.advance

        client.issue_certificate("CERT-1", "Ada", "Math", "2024")

        assert client.verify_certificate("CERT-1").is_valid is True

    def test_details_from_mapping(self, make_client):
        ledger = mock_ledger()
        ledger.call.return_value = {
            "id": "C-1", "studentName": "Ada", "courseName": "Math",
            "issueDate": "2024", "valid": 0, "issuer": "0xowner",
        }
        client = make_client(ledger, OWNER)

        assert client.get_certificate_details("C-1").certificate["valid"] is False

    def test_malformed_details_classified(self, make_client):
        ledger = mock_ledger()
        ledger.call.return_value = ("C-1",)
        client = make_client(ledger, OWNER)

        with pytest.raises(ClientError) as exc_info:
            client.get_certificate_details("C-1")

        assert exc_info.value.kind == ErrorKind.UNKNOWN

    def test_blank_identifier(self, owner_client):
        with pytest.raises(ClientError) as exc_info:
            owner_client.verify_certificate("  ")

        assert exc_info.value.kind == ErrorKind.INVALID_INPUT


class TestOwnership:

    def test_owner(self, owner_client, issuer_client):
        assert owner_client.get_owner().owner == OWNER
        assert owner_client.is_owner().is_owner is True
        assert issuer_client.is_owner().is_owner is False

    def test_owner_comparison_ignores_case(self, make_client, ledger):
        assert make_client(ledger, "0xOWNER").is_owner().is_owner is True
        assert make_client(ledger).is_owner("0xOwner").is_owner is True

    def test_no_account_is_not_owner(self, make_client, ledger):
        response = make_client(ledger).is_owner()

        assert response.is_owner is False
        assert response.owner == OWNER


class TestEventsAndHealth:

    def test_events(self, issuer_client, sample_certificate):
        issuer_client.issue_certificate(**sample_certificate)

        events = issuer_client.get_events().events
        assert [e["event"] for e in events] == ["IssuerAuthorized", "CertificateIssued"]

        issued = issuer_client.get_events(event_type=EventType.CERTIFICATE_ISSUED).events
        assert issued[0]["id"] == "CERT-1"
        assert issued[0]["issuer"] == ISSUER

    def test_healthy(self, owner_client):
        health = owner_client.check_health()

        assert health["healthy"] is True
        assert health["owner"] == OWNER
        assert health["ledger"] == "LocalLedger"
        assert "responseTimeMs" in health

    def test_unhealthy(self, make_client):
        ledger = mock_ledger()
        ledger.block_number.side_effect = LedgerUnavailableError("down")
        health = make_client(ledger, OWNER).check_health()

        assert health["healthy"] is False
        assert health["error"]["message"] == "Health check failed"
