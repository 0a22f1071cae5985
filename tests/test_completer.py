"""Tests for the join-entity completion pass."""
import copy

from grantscan.analyzer.completer import complete_join_entities
from grantscan.analyzer.diagnostics import DiagnosticKind, DiagnosticLog
from grantscan.analyzer.usage import UsageRecord, UsageStore

from conftest import build_schema


def store_of(*records: UsageRecord) -> UsageStore:
    return UsageStore(records)


def test_join_entity_inherits_insert_from_target():
    registry = build_schema()
    store = store_of(
        UsageRecord('User', 'users'),
        UsageRecord('Role', 'roles', insert=True),
    )
    complete_join_entities(store, registry, DiagnosticLog())

    assert store['UserRole'] == UsageRecord('UserRole', 'user_roles', insert=True)


def test_flags_of_both_directions_are_combined():
    registry = build_schema()
    store = store_of(
        UsageRecord('User', 'users', delete=True),
        UsageRecord('Role', 'roles', insert=True),
    )
    complete_join_entities(store, registry, DiagnosticLog())

    assert store['UserRole'].insert
    assert store['UserRole'].delete
    assert not store['UserRole'].update


def test_existing_join_record_is_untouched():
    registry = build_schema()
    store = store_of(
        UsageRecord('User', 'users'),
        UsageRecord('Role', 'roles', insert=True, delete=True),
        UsageRecord('UserRole', 'user_roles', update=True),
    )
    complete_join_entities(store, registry, DiagnosticLog())

    assert store['UserRole'] == UsageRecord('UserRole', 'user_roles', update=True)


def test_target_without_record_adds_nothing():
    registry = build_schema()
    store = store_of(UsageRecord('User', 'users', insert=True))
    complete_join_entities(store, registry, DiagnosticLog())

    assert store.names() == ['User']


def test_idempotent():
    registry = build_schema()
    store = store_of(
        UsageRecord('User', 'users', update=True),
        UsageRecord('Role', 'roles', insert=True),
    )
    complete_join_entities(store, registry, DiagnosticLog())
    once = copy.deepcopy(store)
    complete_join_entities(store, registry, DiagnosticLog())

    assert store == once
    assert len(store) == 3


def test_unresolvable_join_entity_is_reported():
    registry = build_schema(through='MissingJoin')
    store = store_of(
        UsageRecord('User', 'users'),
        UsageRecord('Role', 'roles', insert=True),
    )
    diagnostics = DiagnosticLog()
    complete_join_entities(store, registry, diagnostics)

    assert 'MissingJoin' not in store
    assert len(diagnostics.of_kind(DiagnosticKind.THROUGH_UNRESOLVED)) == 2


def test_invalid_through_reference_is_reported():
    registry = build_schema(through={'unique': False})
    store = store_of(
        UsageRecord('User', 'users'),
        UsageRecord('Role', 'roles'),
    )
    diagnostics = DiagnosticLog()
    complete_join_entities(store, registry, diagnostics)

    assert diagnostics.of_kind(DiagnosticKind.THROUGH_INVALID)
    assert len(store) == 2
