"""Write-method vocabulary of Sequelize and sequelize-typescript models.

Reads are never classified: discovering a model at all implies SELECT.
"""
from enum import Enum
from typing import Dict, FrozenSet


class Operation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# Based on https://sequelize.org/api/v6/class/src/model.js~model
WRITE_METHODS: Dict[str, FrozenSet[Operation]] = {
    'build': frozenset({Operation.INSERT}),
    'bulkCreate': frozenset({Operation.INSERT}),
    'create': frozenset({Operation.INSERT}),
    'findCreateFind': frozenset({Operation.INSERT}),
    'findOrBuild': frozenset({Operation.INSERT}),
    'findOrCreate': frozenset({Operation.INSERT}),
    'bulkUpdate': frozenset({Operation.UPDATE}),
    'decrement': frozenset({Operation.UPDATE}),
    'increment': frozenset({Operation.UPDATE}),
    'restore': frozenset({Operation.UPDATE}),
    'save': frozenset({Operation.UPDATE}),
    'set': frozenset({Operation.UPDATE}),
    'update': frozenset({Operation.UPDATE}),
    'upsert': frozenset({Operation.INSERT, Operation.UPDATE}),
    'destroy': frozenset({Operation.DELETE}),
}

# sequelize-typescript generated association helpers:
# https://github.com/sequelize/sequelize-typescript#type-safe-usage-of-auto-generated-functions
MIXIN_METHODS: FrozenSet[str] = frozenset({'$add', '$create', '$set', '$remove'})


def is_write_method(method: str) -> bool:
    """True for direct model write methods (create, update, destroy, ...)."""
    return method in WRITE_METHODS


def is_mixin_method(method: str) -> bool:
    """True for association mixins ($add, $create, $set, $remove)."""
    return method in MIXIN_METHODS


def is_tracked_method(method: str) -> bool:
    """True if a call to `method` may write to the database."""
    return is_write_method(method) or is_mixin_method(method)


def operations_for(method: str) -> FrozenSet[Operation]:
    """Operations implied by a direct write method; empty for anything else."""
    return WRITE_METHODS.get(method, frozenset())
