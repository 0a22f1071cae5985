"""Derived usage of many-to-many join entities.

Join tables are never named in source code (Sequelize manages them behind
`include` and the association mixins), yet every relation write touches them.
For a many-to-many association User <-> Role through UserRole, once Role is
in use UserRole inherits Role's write flags.
"""
import structlog

from .diagnostics import DiagnosticLog
from .mixins import resolve_join_entity
from .registry import EntityRegistry
from .usage import UsageStore

logger = structlog.get_logger(__name__)


def complete_join_entities(store: UsageStore, registry: EntityRegistry,
                           diagnostics: DiagnosticLog) -> UsageStore:
    """Add usage records for join entities of exercised many-to-many associations.

    Only entities already in the store are inspected. A join entity that had a
    record before this pass keeps it unchanged; one created here ORs in the
    write flags of every exercised association target, so the outcome does not
    depend on iteration order. Running the pass again changes nothing.

    Args:
        store: Usage store filled by the traversal; updated in place
        registry: Entity registry with association data
        diagnostics: Log for unresolvable join entities

    Returns:
        The same store, for chaining
    """
    discovered = set(store.names())

    for name in sorted(discovered):
        for association in registry.many_to_many(name):
            if association.target not in discovered:
                # The relation was never exercised
                continue
            target_usage = store[association.target]

            through = resolve_join_entity(association, registry, diagnostics, name)
            if through is None or through.name in discovered:
                continue

            through_usage = store.ensure(through)
            through_usage.absorb(target_usage)
            logger.debug("join_entity_inferred", entity=through.name,
                         source=name, target=association.target)

    return store
