"""sequelize-typescript association mixins: `$add`, `$create`, `$set`, `$remove`.

These write to the associated model (or to the join table of a
many-to-many association), not to the receiver's own row:

    user.$add('roles', role)       -> INSERT into the join table
    user.$create('posts', {...})   -> INSERT into posts (and the join table)
    user.$set('roles', [...])      -> INSERT/UPDATE/DELETE on the join table
    user.$remove('roles', role)    -> DELETE from the join table

Without a join table the target's foreign key column is updated instead.
"""
from typing import List, Optional

from tree_sitter import Node

from .diagnostics import DiagnosticKind, DiagnosticLog
from .registry import AssociationDescriptor, EntityDescriptor, EntityRegistry, through_entity_name
from .syntax import SourceFile, node_text, string_value
from .usage import UsageRecord, UsageStore


def resolve_join_entity(association: AssociationDescriptor, registry: EntityRegistry,
                        diagnostics: DiagnosticLog, source_name: str,
                        node: Optional[Node] = None,
                        source: Optional[SourceFile] = None) -> Optional[EntityDescriptor]:
    """Registered join entity of a many-to-many association.

    Returns:
        The join EntityDescriptor, or None when the association has none or it
        cannot be resolved (the latter is reported)
    """
    if not association.is_many_to_many or association.through is None:
        return None

    through_name = through_entity_name(association.through)
    if through_name is None:
        diagnostics.report(
            DiagnosticKind.THROUGH_INVALID,
            f"Invalid through model {association.through!r} for association "
            f"'{association.name}' in model '{source_name}'",
            node=node, source=source,
        )
        return None

    through = registry.get(through_name)
    if through is None:
        diagnostics.report(
            DiagnosticKind.THROUGH_UNRESOLVED,
            f"Could not find through model ({through_name}) for association "
            f"'{association.name}' in model '{source_name}'",
            node=node, source=source,
        )
    return through


class AssociationMixinHandler:
    """Applies the effect of one mixin call to the usage store."""

    def __init__(self, registry: EntityRegistry, store: UsageStore, diagnostics: DiagnosticLog):
        self.registry = registry
        self.store = store
        self.diagnostics = diagnostics

    def handle(self, entity: EntityDescriptor, method: str, args: List[Node],
               call: Node, source: SourceFile):
        """Process `<instance of entity>.<method>(associationName, values, ...)`.

        Args:
            entity: Model the receiver resolved to
            method: One of $add, $create, $set, $remove
            args: Call arguments
            call: The call expression (for diagnostics)
            source: File containing the call
        """
        if len(args) < 2:
            return

        association_name = string_value(args[0])
        if association_name is None:
            # Only string literals name associations statically
            self.diagnostics.report(
                DiagnosticKind.ASSOCIATION_NAME_NOT_LITERAL,
                f"Association name is not a string literal in '{entity.name}.{method}': "
                f"'{node_text(args[0])}'",
                node=args[0], source=source,
            )
            return

        association = entity.associations.get(association_name)
        if association is None:
            self.diagnostics.report(
                DiagnosticKind.ASSOCIATION_NOT_FOUND,
                f"Association '{association_name}' not found in model '{entity.name}'",
                node=args[0], source=source,
            )
            return

        target = self.registry.get(association.target)
        if target is None:
            self.diagnostics.report(
                DiagnosticKind.TARGET_NOT_REGISTERED,
                f"Could not find target model ({association.target}) for association "
                f"'{association_name}' in model '{entity.name}'",
                node=call, source=source,
            )
            return

        target_usage = self.store.ensure(target)
        through = resolve_join_entity(association, self.registry, self.diagnostics,
                                      entity.name, node=call, source=source)
        through_usage = self.store.ensure(through) if through is not None else None

        self._apply(method, target_usage, through_usage, call, source)

    def _apply(self, method: str, target: UsageRecord, through: Optional[UsageRecord],
               call: Node, source: SourceFile):
        if method == '$add':
            if through is not None:
                through.insert = True
            else:
                target.update = True
        elif method == '$create':
            target.insert = True
            if through is not None:
                through.insert = True
        elif method == '$set':
            if through is not None:
                through.insert = True
                through.update = True
                through.delete = True
            else:
                target.update = True
        elif method == '$remove':
            if through is not None:
                through.delete = True
            else:
                target.update = True
        else:
            self.diagnostics.report(
                DiagnosticKind.UNKNOWN_MIXIN,
                f"Method '{method}' is not a sequelize-typescript association mixin",
                node=call, source=source,
            )
