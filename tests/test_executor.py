"""Tests for running grant statements through SQLAlchemy.

SQLite stands in for MySQL: it runs plain statements and rejects GRANT.
"""
import pytest

from grantscan.errors import GrantApplyError
from grantscan.grants.executor import apply_grants, split_statements


def test_split_statements():
    sql = "GRANT SELECT ON users TO 'app'@'%';\n\nFLUSH PRIVILEGES;\n"
    assert split_statements(sql) == ["GRANT SELECT ON users TO 'app'@'%'", "FLUSH PRIVILEGES"]


def test_applies_every_statement(tmp_path):
    url = f"sqlite:///{tmp_path / 'grants.db'}"
    applied = apply_grants("CREATE TABLE t (x TEXT);\nINSERT INTO t VALUES ('a:b');", url)
    assert applied == 2


def test_colons_are_not_bind_parameters():
    assert apply_grants("SELECT ':host';", 'sqlite://') == 1


def test_rejected_statement():
    with pytest.raises(GrantApplyError, match='Applying grants failed'):
        apply_grants("GRANT SELECT ON users TO 'app'@'%';", 'sqlite://')


def test_unknown_dialect():
    with pytest.raises(GrantApplyError, match='Cannot connect'):
        apply_grants("FLUSH PRIVILEGES;", 'nosuchdb://localhost/x')
