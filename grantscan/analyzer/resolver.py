"""Entity resolution: which registered model does an expression denote?

Resolution is an ordered list of pure strategies. Each strategy gets the
expression with its static type facts and the registry, and returns an
entity name or None. The first strategy that answers wins; new heuristics
are appended to STRATEGIES rather than nested inside existing ones.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import structlog
from tree_sitter import Node

from .diagnostics import DiagnosticKind, DiagnosticLog
from .registry import EntityDescriptor, EntityRegistry
from .syntax import SourceFile, call_arguments, node_text
from .type_oracle import Declaration, StaticType, TypeOracle

logger = structlog.get_logger(__name__)


@dataclass
class ResolutionContext:
    """Static facts about one receiver expression, computed once."""
    node: Node
    source: SourceFile
    oracle: TypeOracle
    static_type: Optional[StaticType] = None
    declarations: List[Declaration] = field(default_factory=list)

    @classmethod
    def build(cls, node: Node, source: SourceFile, oracle: TypeOracle) -> 'ResolutionContext':
        static_type = oracle.type_of(node, source)
        symbol = static_type.symbol if static_type else None
        return cls(node, source, oracle, static_type, oracle.declarations_of(symbol))

    @property
    def type_text(self) -> str:
        return self.static_type.text if self.static_type else 'any'


Strategy = Callable[[ResolutionContext, EntityRegistry], Optional[str]]


def by_literal_name(ctx: ResolutionContext, registry: EntityRegistry) -> Optional[str]:
    """`User.create()`: the identifier is the model class itself."""
    if ctx.node.type != 'identifier':
        return None
    name = node_text(ctx.node)
    return name if name in registry else None


def by_static_type(ctx: ResolutionContext, registry: EntityRegistry) -> Optional[str]:
    """`user.save()` where `user: User` or `const user = await User.findOne()`."""
    if ctx.static_type is None:
        return None
    symbol = ctx.static_type.symbol
    return symbol if symbol in registry else None


def by_heritage(ctx: ResolutionContext, registry: EntityRegistry) -> Optional[str]:
    """Look one level through the extends/implements clauses of the type.

    Covers:
        interface UserView extends Omit<User, 'password'> {}
        class UserDto extends OmitType(User, ['password']) {}
        class Admin extends User {}
    """
    for declaration in ctx.declarations:
        if declaration.kind not in ('class', 'interface'):
            if declaration.kind == 'type_alias':
                logger.debug("type_alias_unsupported", symbol=declaration.name,
                             location=str(declaration.source.location(declaration.node)))
            continue

        for ref in ctx.oracle.heritage_of(declaration):
            # Omit<User, 'id'>, Partial<User>
            for arg in ref.type_arguments:
                if node_text(arg) in registry:
                    return node_text(arg)

            base = ref.base
            if base.type == 'call_expression':
                # OmitType(User), PickType(User, [...]) from serialization helpers
                for arg in call_arguments(base):
                    if node_text(arg) in registry:
                        return node_text(arg)
            elif base.type in ('identifier', 'type_identifier') and node_text(base) in registry:
                return node_text(base)
    return None


def by_qualified_reference(ctx: ResolutionContext, registry: EntityRegistry) -> Optional[str]:
    """`sequelize.models.User.create()`: the accessed property names the model."""
    if ctx.node.type != 'member_expression':
        return None
    prop = node_text(ctx.node.child_by_field_name('property'))
    return prop if prop in registry else None


STRATEGIES: List[Strategy] = [
    by_literal_name,
    by_static_type,
    by_heritage,
    by_qualified_reference,
]


class EntityResolver:
    """Runs the strategy chain and reports expressions it cannot attribute."""

    def __init__(self, registry: EntityRegistry, oracle: TypeOracle, diagnostics: DiagnosticLog,
                 strategies: Optional[List[Strategy]] = None):
        self.registry = registry
        self.oracle = oracle
        self.diagnostics = diagnostics
        self.strategies = list(strategies) if strategies is not None else list(STRATEGIES)

    def resolve(self, node: Node, source: SourceFile) -> Optional[EntityDescriptor]:
        """Return the entity `node` denotes, or None after recording a diagnostic."""
        ctx = ResolutionContext.build(node, source, self.oracle)
        for strategy in self.strategies:
            name = strategy(ctx, self.registry)
            if name is not None:
                return self.registry[name]

        self.diagnostics.report(
            DiagnosticKind.ENTITY_UNRESOLVED,
            f"Could not find model for `{node_text(node)}` (type: {ctx.type_text})",
            node=node,
            source=source,
            type_text=ctx.type_text,
        )
        return None
