"""
Unit tests for CLI output rendering.
"""

import json
from datetime import datetime

import yaml

from cli.output import OutputFormatter, order_columns, to_plain
from registry.schema import EventType


TX_HASH = "0x" + "ab" * 32


def table(data, **kwargs):
    return OutputFormatter('table', color_output=False, **kwargs).format(data)


class TestStructuredFormats:

    def test_json(self):
        output = OutputFormatter('json').format({'success': True, 'event': EventType.CERTIFICATE_ISSUED})

        assert json.loads(output) == {'success': True, 'event': 'CertificateIssued'}

    def test_yaml(self):
        output = OutputFormatter('yaml').format({'checkedAt': datetime(2024, 5, 1, 12, 0)})

        assert yaml.safe_load(output) == {'checkedAt': '2024-05-01T12:00:00'}

    def test_to_plain_sorts_sets(self):
        assert to_plain({'issuers': {'0xb', '0xa'}}) == {'issuers': ['0xa', '0xb']}


class TestTables:

    def test_record_flattens_and_marks_validity(self):
        output = table({'success': True, 'certificate': {'id': 'CERT-1', 'valid': False}})

        assert 'certificate.id' in output
        assert 'CERT-1' in output
        assert 'REVOKED' in output

    def test_hashes_shortened(self):
        output = table({'txHash': TX_HASH})

        assert TX_HASH not in output
        assert f"{TX_HASH[:10]}...{TX_HASH[-6:]}" in output

    def test_event_listing_columns(self):
        output = table([
            {'event': 'IssuerAuthorized', 'blockNumber': 1, 'txHash': TX_HASH, 'issuer': '0xa'},
            {'event': 'CertificateIssued', 'blockNumber': 2, 'txHash': TX_HASH, 'id': 'CERT-1'},
        ])

        header = output.splitlines()[1].split('|')
        assert [h.strip() for h in header if h.strip()] == ['blockNumber', 'event', 'id', 'issuer', 'txHash']

    def test_column_order(self):
        assert order_columns([{'zeta': 1, 'valid': True, 'id': 'C'}]) == ['id', 'valid', 'zeta']

    def test_empty_listing(self):
        assert table([]) == "No data available"

    def test_long_values_truncated(self):
        assert 'xxxxxxx...' in table({'name': 'x' * 40}, max_width=10)

    def test_missing_values(self):
        assert '-' in table({'owner': None})
