"""Tests for the write-method and mixin vocabularies."""
import pytest

from grantscan.analyzer.operations import (
    MIXIN_METHODS,
    WRITE_METHODS,
    Operation,
    is_mixin_method,
    is_tracked_method,
    is_write_method,
    operations_for,
)


class TestWriteMethods:
    """Direct model write methods."""

    @pytest.mark.parametrize('method', [
        'build', 'bulkCreate', 'create', 'findCreateFind', 'findOrBuild', 'findOrCreate',
    ])
    def test_insert_methods(self, method):
        assert operations_for(method) == {Operation.INSERT}

    @pytest.mark.parametrize('method', [
        'bulkUpdate', 'decrement', 'increment', 'restore', 'save', 'set', 'update',
    ])
    def test_update_methods(self, method):
        assert operations_for(method) == {Operation.UPDATE}

    def test_upsert_is_insert_and_update(self):
        assert operations_for('upsert') == {Operation.INSERT, Operation.UPDATE}

    def test_destroy_is_delete(self):
        assert operations_for('destroy') == {Operation.DELETE}

    def test_reads_imply_nothing(self):
        """Finders are reads; SELECT comes from discovery, not classification."""
        for method in ('findAll', 'findOne', 'findByPk', 'count', 'reload'):
            assert operations_for(method) == frozenset()
            assert not is_tracked_method(method)


class TestMixinMethods:
    """sequelize-typescript association helpers."""

    def test_mixins(self):
        assert MIXIN_METHODS == {'$add', '$create', '$set', '$remove'}
        assert all(is_mixin_method(m) for m in MIXIN_METHODS)

    def test_vocabularies_are_disjoint(self):
        assert not set(WRITE_METHODS) & MIXIN_METHODS
        assert not any(is_write_method(m) for m in MIXIN_METHODS)

    def test_mixins_have_no_direct_operations(self):
        """Mixins write to other tables, never to the receiver."""
        assert operations_for('$add') == frozenset()
        assert is_tracked_method('$add')
