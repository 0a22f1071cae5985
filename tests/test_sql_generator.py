"""Tests for GRANT statement generation."""
from grantscan.analyzer.usage import UsageRecord, UsageStore
from grantscan.grants.sql_generator import generate_grant_statements, record_privileges


def sample_store() -> UsageStore:
    return UsageStore([
        UsageRecord('User', 'users', insert=True, update=True),
        UsageRecord('Role', 'auth.roles'),
    ])


def test_privileges_in_fixed_order():
    record = UsageRecord('User', 'users', insert=True, update=True, delete=True)
    assert record_privileges(record) == ['SELECT', 'INSERT', 'UPDATE', 'DELETE']
    assert record_privileges(UsageRecord('Role', 'roles')) == ['SELECT']


def test_default_statements():
    sql = generate_grant_statements(sample_store(), 'app')
    assert sql.split('\n') == [
        "GRANT SELECT ON users TO 'app'@'%';",
        "GRANT INSERT ON users TO 'app'@'%';",
        "GRANT UPDATE ON users TO 'app'@'%';",
        "GRANT SELECT ON auth.roles TO 'app'@'%';",
        "FLUSH PRIVILEGES;",
    ]


def test_clear_all_grants_and_no_flush():
    sql = generate_grant_statements(sample_store(), 'app', clear_all_grants=True, flush_privileges=False)
    lines = sql.split('\n')
    assert lines[0] == "REVOKE SELECT, INSERT, UPDATE, DELETE ON *.* FROM 'app'@'%';"
    assert lines[-1] == "GRANT SELECT ON auth.roles TO 'app'@'%';"


def test_custom_host():
    sql = generate_grant_statements(sample_store(), 'app', host='10.0.0.%', clear_all_grants=True)
    assert "FROM 'app'@'10.0.0.%';" in sql
    assert "GRANT SELECT ON users TO 'app'@'10.0.0.%';" in sql


def test_empty_store():
    assert generate_grant_statements(UsageStore(), 'app') == 'FLUSH PRIVILEGES;'
    assert generate_grant_statements(UsageStore(), 'app', flush_privileges=False) == ''
