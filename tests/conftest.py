"""
Pytest configuration and fixtures for certificate registry tests.
"""

import pytest

from client import ClientConfig, LedgerContext, RegistryClient, StaticAccountProvider
from ledger.local import LocalLedger
from registry.manager import CertificateRegistry


OWNER = "0xowner"
ISSUER = "0xissuer1"
STRANGER = "0xstranger"


class RecordingSleep:
    """Sleep replacement that records requested delays."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def registry():
    """Fresh registry state machine owned by OWNER."""
    return CertificateRegistry.deploy(OWNER)


@pytest.fixture
def ledger():
    """In-memory ledger hosting a registry owned by OWNER."""
    return LocalLedger(owner=OWNER)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_client(sleep):
    """Factory for clients acting as a given account on a ledger."""
    def factory(ledger, account=None, confirm=None, **config):
        context = LedgerContext(ledger=ledger, account=StaticAccountProvider(account, confirm=confirm))
        return RegistryClient(context, ClientConfig(**config), sleep=sleep)
    return factory


@pytest.fixture
def owner_client(ledger, make_client):
    return make_client(ledger, OWNER)


@pytest.fixture
def issuer_client(ledger, make_client, owner_client):
    """Client for ISSUER, already authorized by the owner."""
    owner_client.authorize_issuer(ISSUER)
    return make_client(ledger, ISSUER)


@pytest.fixture
def stranger_client(ledger, make_client):
    return make_client(ledger, STRANGER)


@pytest.fixture
def sample_certificate():
    return {
        "certificate_id": "CERT-1",
        "student_name": "Ada Lovelace",
        "course_name": "Analytical Engines",
        "issue_date": "2024-05-01",
    }
