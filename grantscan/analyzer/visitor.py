"""Usage visitor: walks every source file and records model usage.

Only two node shapes produce usage:
- import declarations, which register the imported models as read
- `receiver.method(...)` calls with a write or mixin method name

Every other node is simply descended into.
"""
from pathlib import Path
from typing import Iterable, List, Optional

import structlog
from tree_sitter import Node

from .completer import complete_join_entities
from .diagnostics import DiagnosticLog
from .mixins import AssociationMixinHandler
from .operations import is_mixin_method, is_tracked_method, operations_for
from .project import ProjectConfig, load_source_files
from .registry import EntityRegistry
from .resolver import EntityResolver
from .syntax import SourceFile, call_arguments, member_call_parts, node_text, string_value
from .type_oracle import TypeOracle
from .usage import UsageStore

logger = structlog.get_logger(__name__)


class UsageVisitor:
    """Depth-first visitor feeding one UsageStore."""

    def __init__(self, registry: EntityRegistry, oracle: TypeOracle, store: UsageStore,
                 diagnostics: DiagnosticLog, only_from_module: Optional[str] = None):
        self.registry = registry
        self.store = store
        self.only_from_module = only_from_module
        self.resolver = EntityResolver(registry, oracle, diagnostics)
        self.mixins = AssociationMixinHandler(registry, store, diagnostics)

    def visit(self, source: SourceFile):
        """Visit every node of one file, pre-order."""
        stack = [source.root]
        while stack:
            node = stack.pop()
            if node.type == 'import_statement':
                self.visit_import(node)
                # Nothing usage-relevant below an import
                continue
            if node.type == 'call_expression':
                self.visit_call(node, source)
                # Arguments may hold more model calls: x.build({ y: Model.build() })
            stack.extend(reversed(node.children))

    def visit_import(self, node: Node):
        """`import { User, Role as R } from './models'` marks User and Role as read."""
        if self.only_from_module is not None:
            module = string_value(node.child_by_field_name('source'))
            if module is not None and module != self.only_from_module:
                return

        clause = next((c for c in node.named_children if c.type == 'import_clause'), None)
        if clause is None:
            return

        for named in clause.named_children:
            if named.type != 'named_imports':
                continue
            for spec in named.named_children:
                if spec.type != 'import_specifier':
                    continue
                original = node_text(spec.child_by_field_name('name'))
                alias = node_text(spec.child_by_field_name('alias'))
                entity = self.registry.get(original) or self.registry.get(alias)
                if entity is not None:
                    # ensure() never re-registers an entity already found
                    self.store.ensure(entity)

    def visit_call(self, node: Node, source: SourceFile):
        """`Model.create()`, `entity.destroy()`, `entity.$add('roles', r)`, ..."""
        parts = member_call_parts(node)
        if parts is None:
            return
        receiver, method = parts

        # Cheap name check before any type work; unknown verbs are not diagnosed
        if not is_tracked_method(method):
            return

        entity = self.resolver.resolve(receiver, source)
        if entity is None:
            return

        if is_mixin_method(method):
            self.mixins.handle(entity, method, call_arguments(node), node, source)
        else:
            self.store.ensure(entity).mark(operations_for(method))


class UsageAnalyzer:
    """One analysis run over a set of parsed source files.

    The store and diagnostics belong to the analyzer instance, so separate
    analyses never share state.
    """

    def __init__(self, registry: EntityRegistry, sources: Iterable[SourceFile],
                 only_from_module: Optional[str] = None):
        self.registry = registry
        self.sources: List[SourceFile] = list(sources)
        self.only_from_module = only_from_module
        self.diagnostics = DiagnosticLog()
        self.store = UsageStore()

    def run(self) -> UsageStore:
        """Visit all non-declaration files, then infer join-entity usage.

        Returns:
            The completed UsageStore
        """
        oracle = TypeOracle(self.sources)
        visitor = UsageVisitor(self.registry, oracle, self.store, self.diagnostics,
                               self.only_from_module)

        for source in self.sources:
            # Declaration files only contribute types
            if source.is_declaration_file:
                continue
            visitor.visit(source)

        complete_join_entities(self.store, self.registry, self.diagnostics)
        logger.info("analysis_complete", models=len(self.store), diagnostics=len(self.diagnostics))
        return self.store

    @classmethod
    def for_project(cls, project_root: str | Path, registry: EntityRegistry, *,
                    config_name: str = 'tsconfig.json',
                    only_from_module: Optional[str] = None) -> 'UsageAnalyzer':
        """Load the project's sources through its tsconfig.

        Raises:
            ProjectConfigError: If the tsconfig cannot be found or parsed
        """
        config = ProjectConfig.load(project_root, config_name)
        return cls(registry, load_source_files(config), only_from_module)


def find_model_usage(project_root: str | Path, registry: EntityRegistry, *,
                     config_name: str = 'tsconfig.json',
                     only_from_module: Optional[str] = None) -> UsageStore:
    """Find every registered model used in a project, with its CRUD operations.

    Args:
        project_root: Directory where the search for the tsconfig starts
        registry: Models to look for, usually from load_registry or extract_registry
        config_name: Name or relative location of the tsconfig file
        only_from_module: Only count imports from this module specifier

    Returns:
        UsageStore mapping model name to its usage record

    Raises:
        ProjectConfigError: If the tsconfig cannot be found or parsed
    """
    analyzer = UsageAnalyzer.for_project(project_root, registry, config_name=config_name,
                                         only_from_module=only_from_module)
    return analyzer.run()
