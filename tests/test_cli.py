"""Tests for the grantscan command line."""
import json

import pytest
from typer.testing import CliRunner

from grantscan.analyzer.usage import UsageRecord, UsageStore
from grantscan.grants.store_io import read_store, save_store
from grantscan.main import app

from conftest import SAMPLE_PROJECT

runner = CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ('DB_TARGET_USERNAME', 'DB_TARGET_HOST', 'GRANTSCAN_TSCONFIG', 'GRANTSCAN_LOG_LEVEL',
                 'GRANTSCAN_DATABASE_URL'):
        monkeypatch.delenv(name, raising=False)


class TestScan:

    def test_json_output(self):
        result = runner.invoke(app, ['--log-level', 'CRITICAL', 'scan', str(SAMPLE_PROJECT), '--json'])
        assert result.exit_code == 0, result.output
        usage = json.loads(result.stdout)

        assert usage['User'] == {'table': 'users', 'isSelect': True, 'isInsert': True,
                                 'isUpdate': True, 'isDelete': True}
        assert usage['Role'] == {'table': 'roles', 'isSelect': True, 'isInsert': False,
                                 'isUpdate': False, 'isDelete': False}
        assert usage['UserRole']['isInsert'] and not usage['UserRole']['isDelete']
        assert usage['Post']['isInsert'] and usage['Post']['isDelete']
        assert usage['Tag']['table'] == 'Tag' and usage['Tag']['isInsert']
        assert usage['Organization']['table'] == 'crm.organizations'
        assert usage['post_tags'] == {'table': 'post_tags', 'isSelect': True, 'isInsert': True,
                                      'isUpdate': True, 'isDelete': True}

    def test_table_and_output_file(self, tmp_path):
        output = tmp_path / 'usage.json'
        result = runner.invoke(app, ['scan', str(SAMPLE_PROJECT), '--output', str(output)])
        assert result.exit_code == 0, result.output
        assert 'Model Usage' in result.stdout
        assert '1 call(s) could not be analysed' in result.stdout
        assert read_store(output)['User'].insert

    def test_registry_document(self):
        result = runner.invoke(app, [
            '--log-level', 'CRITICAL', 'scan', str(SAMPLE_PROJECT),
            '--models', str(SAMPLE_PROJECT / 'models.json'), '--json',
        ])
        assert result.exit_code == 0, result.output
        assert set(json.loads(result.stdout)) == {'User', 'Role', 'UserRole'}

    def test_missing_tsconfig(self, tmp_path):
        result = runner.invoke(app, ['scan', str(tmp_path), '--tsconfig', 'tsconfig.missing.json'])
        assert result.exit_code == 1
        assert 'Could not find a valid' in result.stdout


class TestGrant:

    def test_prints_grants(self):
        result = runner.invoke(app, ['grant', str(SAMPLE_PROJECT), '--username', 'app', '--clear'])
        assert result.exit_code == 0, result.output
        assert "REVOKE SELECT, INSERT, UPDATE, DELETE ON *.* FROM 'app'@'%';" in result.stdout
        assert "GRANT DELETE ON users TO 'app'@'%';" in result.stdout
        assert "GRANT SELECT ON crm.organizations TO 'app'@'%';" in result.stdout
        assert "GRANT DELETE ON roles TO 'app'@'%';" not in result.stdout
        assert "FLUSH PRIVILEGES;" in result.stdout

    def test_username_from_environment(self, monkeypatch):
        monkeypatch.setenv('DB_TARGET_USERNAME', 'svc')
        monkeypatch.setenv('DB_TARGET_HOST', 'localhost')
        result = runner.invoke(app, ['grant', str(SAMPLE_PROJECT), '--no-flush'])
        assert result.exit_code == 0, result.output
        assert "GRANT INSERT ON users TO 'svc'@'localhost';" in result.stdout
        assert "FLUSH PRIVILEGES;" not in result.stdout

    def test_username_required(self):
        result = runner.invoke(app, ['grant', str(SAMPLE_PROJECT)])
        assert result.exit_code == 1
        assert 'DB_TARGET_USERNAME' in result.stdout

    def test_execute_needs_a_database_url(self):
        result = runner.invoke(app, ['grant', str(SAMPLE_PROJECT), '-u', 'app', '--execute'])
        assert result.exit_code == 1
        assert 'GRANTSCAN_DATABASE_URL' in result.stdout

    def test_execute_reports_database_errors(self):
        result = runner.invoke(app, ['--log-level', 'CRITICAL', 'grant', str(SAMPLE_PROJECT), '-u', 'app',
                                     '--execute', '--database-url', 'sqlite://'])
        assert result.exit_code == 1
        assert 'Error:' in result.stdout
        assert 'Applied' not in result.stdout


class TestStoreCommands:

    def test_sql_from_saved_store(self, tmp_path):
        save_store(UsageStore([UsageRecord('User', 'users', update=True)]), tmp_path / 'usage.json')
        result = runner.invoke(app, ['sql', str(tmp_path / 'usage.json'), '-u', 'app', '--no-flush'])
        assert result.exit_code == 0, result.output
        assert result.stdout.splitlines() == [
            "GRANT SELECT ON users TO 'app'@'%';",
            "GRANT UPDATE ON users TO 'app'@'%';",
        ]

    def test_sql_missing_store(self, tmp_path):
        result = runner.invoke(app, ['sql', str(tmp_path / 'missing.json'), '-u', 'app'])
        assert result.exit_code == 1
        assert 'File not found' in result.stdout

    def test_sql_malformed_store(self, tmp_path):
        (tmp_path / 'usage.json').write_text('{"User": {"isInsert": true}}')
        result = runner.invoke(app, ['sql', str(tmp_path / 'usage.json'), '-u', 'app'])
        assert result.exit_code == 1
        assert 'Error:' in result.stdout

    def test_merge_malformed_store(self, tmp_path):
        (tmp_path / 'bad.json').write_text('[1, 2]')
        result = runner.invoke(app, ['merge', str(tmp_path / 'bad.json'), '-o', str(tmp_path / 'all.json')])
        assert result.exit_code == 1
        assert 'Error:' in result.stdout
        assert not (tmp_path / 'all.json').exists()

    def test_merge(self, tmp_path):
        save_store(UsageStore([UsageRecord('User', 'users', insert=True)]), tmp_path / 'a.json')
        save_store(UsageStore([UsageRecord('Role', 'roles', delete=True)]), tmp_path / 'b.json')
        result = runner.invoke(app, ['merge', str(tmp_path / 'a.json'), str(tmp_path / 'b.json'),
                                     '--output', str(tmp_path / 'all.json')])
        assert result.exit_code == 0, result.output
        merged = read_store(tmp_path / 'all.json')
        assert merged.names() == ['User', 'Role']


class TestModels:

    def test_save_registry(self, tmp_path):
        output = tmp_path / 'models.json'
        result = runner.invoke(app, ['models', str(SAMPLE_PROJECT / 'src' / 'models'), '-o', str(output)])
        assert result.exit_code == 0, result.output
        document = json.loads(output.read_text())
        assert document['models']['User']['associations']['roles'] == {
            'type': 'BelongsToMany', 'target': 'Role', 'through': 'UserRole',
        }

    def test_print_registry(self):
        result = runner.invoke(app, ['models', str(SAMPLE_PROJECT / 'src' / 'models' / 'tag.model.ts')])
        assert result.exit_code == 0, result.output
        assert 'Tag' in result.stdout


def test_version():
    result = runner.invoke(app, ['version'])
    assert result.exit_code == 0
    assert result.stdout.startswith('grantscan ')
