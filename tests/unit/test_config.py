"""
Unit tests for CLI configuration management.
"""

import json
import os
from pathlib import Path

import pytest
import yaml

from cli import config as config_module
from cli.config import DEFAULT_CONFIG, ConfigurationManager


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Run each test in an empty directory without CERTREG_ variables."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, 'CONFIG_SEARCH_PATHS', [Path('.certreg.yml'), Path('.certreg.json')])
    for key in list(os.environ):
        if key.startswith('CERTREG_'):
            monkeypatch.delenv(key)
    return tmp_path


class TestLoading:

    def test_defaults(self):
        manager = ConfigurationManager()

        assert manager.get('ledger.type') == 'local'
        assert manager.get('client.cost_buffer_percent') == 20
        assert manager.get('client.read_attempts') == 3
        assert manager.get_sources() == ['defaults']

    def test_set_does_not_touch_defaults(self):
        manager = ConfigurationManager()
        manager.set('client.read_attempts', 7)

        assert manager.get('client.read_attempts') == 7
        assert DEFAULT_CONFIG['client']['read_attempts'] == 3

    def test_profile(self):
        manager = ConfigurationManager(profile='development')

        assert manager.get('ledger.storage_dir') == 'ledger_data/dev'
        assert manager.get('cli.confirm_mutations') is False
        assert 'profile:development' in manager.get_sources()

    def test_unknown_profile(self):
        with pytest.raises(ValueError):
            ConfigurationManager(profile='staging').load()

    def test_discovered_yaml_file(self, isolated_config):
        (isolated_config / '.certreg.yml').write_text(yaml.safe_dump({
            'account': {'address': '0xowner'},
            'client': {'read_retry_delay': 2.5}
        }))

        manager = ConfigurationManager()

        assert manager.get('account.address') == '0xowner'
        assert manager.get('client.read_retry_delay') == 2.5
        assert manager.get('client.read_attempts') == 3

    def test_explicit_json_file(self, isolated_config):
        path = isolated_config / 'custom.json'
        path.write_text(json.dumps({'ledger': {'type': 'rpc'}, 'rpc': {'host': 'node'}}))

        manager = ConfigurationManager(config_file=str(path))

        assert manager.get('ledger.type') == 'rpc'
        assert manager.get('rpc.host') == 'node'
        assert manager.get('rpc.port') == 8545

    def test_missing_explicit_file(self):
        with pytest.raises(FileNotFoundError):
            ConfigurationManager(config_file='nope.yml').load()

    def test_file_must_be_mapping(self, isolated_config):
        (isolated_config / '.certreg.yml').write_text('- just\n- a list\n')

        with pytest.raises(ValueError):
            ConfigurationManager().load()

    def test_missing_key_default(self):
        assert ConfigurationManager().get('client.unknown', 'fallback') == 'fallback'


class TestEnvironment:

    def test_multi_word_keys(self, monkeypatch):
        monkeypatch.setenv('CERTREG_CLIENT_COST_BUFFER_PERCENT', '30')
        monkeypatch.setenv('CERTREG_LEDGER_STORAGE_DIR', '/var/lib/certreg')
        monkeypatch.setenv('CERTREG_CLI_CONFIRM_MUTATIONS', 'no')

        manager = ConfigurationManager()

        assert manager.get('client.cost_buffer_percent') == 30
        assert manager.get('ledger.storage_dir') == '/var/lib/certreg'
        assert manager.get('cli.confirm_mutations') is False
        assert 'environment' in manager.get_sources()

    def test_environment_overrides_file(self, isolated_config, monkeypatch):
        (isolated_config / '.certreg.yml').write_text('account:\n  address: 0xfile\n')
        monkeypatch.setenv('CERTREG_ACCOUNT_ADDRESS', '0xenv')

        assert ConfigurationManager().get('account.address') == '0xenv'

    def test_value_parsing(self):
        manager = ConfigurationManager()

        assert manager._parse_env_value('true') is True
        assert manager._parse_env_value('0.5') == 0.5
        assert manager._parse_env_value('12') == 12
        assert manager._parse_env_value('localhost') == 'localhost'

    def test_export_environment(self):
        env = ConfigurationManager().export_environment()

        assert env['CERTREG_CLIENT_READ_ATTEMPTS'] == '3'
        assert env['CERTREG_CLI_COLOR_OUTPUT'] == 'true'
        assert 'CERTREG_ACCOUNT_ADDRESS' not in env


class TestValidationAndSave:

    def test_defaults_are_valid(self):
        assert ConfigurationManager().validate() == []

    def test_invalid_values(self):
        manager = ConfigurationManager()
        manager.set('ledger.type', 'carrier-pigeon')
        manager.set('client.read_attempts', 0)
        manager.set('cli.output_format', 'xml')

        errors = manager.validate()

        assert len(errors) == 3
        assert any('ledger type' in e for e in errors)

    def test_rpc_requires_host(self):
        manager = ConfigurationManager()
        manager.set('ledger.type', 'rpc')
        manager.set('rpc.host', '')

        assert manager.validate() == ["RPC host is required"]

    def test_save_and_reload(self, isolated_config):
        manager = ConfigurationManager()
        manager.set('account.address', '0xowner')
        manager.save()

        reloaded = ConfigurationManager()
        assert reloaded.get('account.address') == '0xowner'
        assert f"file:{Path('.certreg.yml')}" in reloaded.get_sources()
