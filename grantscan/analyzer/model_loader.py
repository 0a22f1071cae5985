"""Build an EntityRegistry without a live Sequelize runtime.

Two sources are supported:
- a JSON descriptor document (see EntityRegistry.from_dict), e.g. dumped
  once from `sequelize.models` by a small Node script
- sequelize-typescript model classes, read statically from their decorators:

    @Table({ tableName: 'users' })
    export class User extends Model {
      @BelongsToMany(() => Role, () => UserRole)
      roles: Role[];
    }
"""
import json
import re
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import structlog
from tree_sitter import Node

from ..errors import RegistryError
from .registry import AssociationDescriptor, AssociationKind, EntityDescriptor, EntityRegistry
from .syntax import (
    CLASS_TYPES,
    SourceFile,
    decorator_call,
    decorators_of,
    iter_nodes,
    node_text,
    object_properties,
    string_value,
    unwrap_thunk,
)

logger = structlog.get_logger(__name__)

ASSOCIATION_DECORATORS = {
    'BelongsTo': AssociationKind.BELONGS_TO,
    'HasOne': AssociationKind.HAS_ONE,
    'HasMany': AssociationKind.HAS_MANY,
    'BelongsToMany': AssociationKind.BELONGS_TO_MANY,
}


def load_registry(path: str | Path) -> EntityRegistry:
    """Load a registry from a JSON descriptor document.

    Raises:
        RegistryError: If the file is missing, not JSON, or malformed
    """
    path = Path(path)
    if not path.exists():
        raise RegistryError(f"File not found: {path}")
    try:
        data = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as e:
        raise RegistryError(f"Could not read registry {path}: {e}") from e
    return EntityRegistry.from_dict(data)


def pluralize(name: str) -> str:
    """English plural, as Sequelize derives default table names."""
    if re.search(r'[^aeiou]y$', name, re.IGNORECASE):
        return name[:-1] + 'ies'
    if re.search(r'(s|x|z|ch|sh)$', name, re.IGNORECASE):
        return name + 'es'
    return name + 's'


def extract_registry(sources: Iterable[SourceFile]) -> EntityRegistry:
    """Read sequelize-typescript model classes from parsed sources.

    A class counts as a model when it carries a `@Table` decorator. Join
    tables named only by a string (`through: 'user_roles'`) become models of
    their own, as Sequelize creates them at runtime. Associations refer to
    classes (`() => Role`); they are renamed to the class's `modelName`,
    which is the name Sequelize registers the model under.
    """
    entities: Dict[str, EntityDescriptor] = {}
    model_names: Dict[str, str] = {}
    implicit_through: List[str] = []

    for source in sources:
        for node in iter_nodes(source.root):
            if node.type not in CLASS_TYPES:
                continue
            entity = _entity_from_class(node, implicit_through)
            if entity is not None:
                entities[entity.name] = entity
                model_names[node_text(node.child_by_field_name('name'))] = entity.name
                logger.debug("model_extracted", model=entity.name, table=entity.table,
                             location=str(source.location(node)))

    renamed = {cls: model for cls, model in model_names.items() if cls != model}
    if renamed:
        entities = {name: _rename_references(entity, renamed, set(implicit_through))
                    for name, entity in entities.items()}

    for name in implicit_through:
        if name not in entities:
            entities[name] = EntityDescriptor(name=name, table_name=name)

    return EntityRegistry(entities.values())


def _rename_references(entity: EntityDescriptor, renamed: Dict[str, str],
                       literal_names: Set[str]) -> EntityDescriptor:
    """Point association targets and class `through` references at model names."""
    associations = {}
    for name, association in entity.associations.items():
        through = association.through
        if isinstance(through, dict):
            model = through.get('model')
            if model not in literal_names and model in renamed:
                through = {**through, 'model': renamed[model]}
        elif isinstance(through, str) and through not in literal_names:
            through = renamed.get(through, through)
        associations[name] = replace(
            association,
            target=renamed.get(association.target, association.target),
            through=through,
        )
    return replace(entity, associations=associations)


def extract_registry_from_paths(paths: Iterable[str | Path]) -> EntityRegistry:
    """extract_registry over files and directories of TypeScript sources."""
    files: List[Path] = []
    for path in map(Path, paths):
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob('*.ts')
                                if 'node_modules' not in p.parts and not p.name.endswith('.d.ts')))
        elif path.is_file():
            files.append(path)
    return extract_registry(SourceFile.from_source(p, p.read_bytes()) for p in files)


def _entity_from_class(node: Node, implicit_through: List[str]) -> Optional[EntityDescriptor]:
    name = node_text(node.child_by_field_name('name'))
    if not name:
        return None

    table_options = None
    for decorator in decorators_of(node):
        decorator_name, args = decorator_call(decorator)
        if decorator_name == 'Table':
            table_options = object_properties(args[0]) if args else {}
            break
    if table_options is None:
        return None

    model_name = _literal(table_options.get('modelName')) or name
    table_name = _literal(table_options.get('tableName'))
    if not table_name:
        freeze = node_text(table_options.get('freezeTableName')) == 'true'
        table_name = model_name if freeze else pluralize(model_name)

    body = node.child_by_field_name('body')
    associations = {}
    for member in (body.named_children if body is not None else []):
        if member.type != 'public_field_definition':
            continue
        association = _association_from_field(member, implicit_through)
        if association is not None:
            associations[association.name] = association

    return EntityDescriptor(
        name=model_name,
        table_name=table_name,
        associations=associations,
        schema=_literal(table_options.get('schema')),
    )


def _association_from_field(member: Node, implicit_through: List[str]) -> Optional[AssociationDescriptor]:
    for decorator in decorators_of(member):
        decorator_name, args = decorator_call(decorator)
        kind = ASSOCIATION_DECORATORS.get(decorator_name)
        if kind is None or not args:
            continue

        target = node_text(unwrap_thunk(args[0]))
        options = object_properties(args[-1]) if len(args) > 1 and args[-1].type == 'object' else {}
        association_name = _literal(options.get('as')) or node_text(member.child_by_field_name('name'))

        through = None
        if kind == AssociationKind.BELONGS_TO_MANY:
            through = _through_reference(args, options, implicit_through)

        return AssociationDescriptor(association_name, kind, target, through)
    return None


def _through_reference(args: List[Node], options: dict, implicit_through: List[str]):
    """`() => UserRole`, `'user_roles'`, `{ through: ... }` or `{ through: { model: ... } }`.

    String names are collected in `implicit_through`: Sequelize creates a join
    model for them when no model class of that name exists.
    """
    if len(args) > 1 and args[1].type != 'object':
        raw = args[1]
    else:
        raw = options.get('through')
    if raw is None:
        return None

    raw = unwrap_thunk(raw)
    if raw.type == 'object':
        model = unwrap_thunk(object_properties(raw).get('model'))
        if model is None:
            return None
        if _literal(model):
            implicit_through.append(_literal(model))
        return {'model': _literal(model) or node_text(model)}
    if _literal(raw):
        implicit_through.append(_literal(raw))
        return _literal(raw)
    return node_text(raw)


def _literal(node: Optional[Node]) -> Optional[str]:
    return string_value(node)
