"""Entity registry: the models the analysis can attribute usage to.

The registry is an input. It is built from a JSON descriptor document or
from decorated model sources (see model_loader) and never mutated by the
analysis.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import networkx as nx

from ..errors import RegistryError


class AssociationKind(str, Enum):
    BELONGS_TO = "BelongsTo"
    HAS_ONE = "HasOne"
    HAS_MANY = "HasMany"
    BELONGS_TO_MANY = "BelongsToMany"

    @classmethod
    def parse(cls, value: str) -> 'AssociationKind':
        """Accept Sequelize class names as well as snake/kebab spellings.

        Raises:
            RegistryError: If the value names no association kind
        """
        normalized = value.replace('_', '').replace('-', '').replace(' ', '').lower()
        aliases = {
            'belongsto': cls.BELONGS_TO,
            'hasone': cls.HAS_ONE,
            'hasmany': cls.HAS_MANY,
            'belongstomany': cls.BELONGS_TO_MANY,
            'manytomany': cls.BELONGS_TO_MANY,
        }
        if normalized not in aliases:
            raise RegistryError(f"Unknown association type: {value!r}")
        return aliases[normalized]


@dataclass(frozen=True)
class AssociationDescriptor:
    """A named association of a source entity."""
    name: str
    kind: AssociationKind
    target: str
    # Only for BELONGS_TO_MANY: entity name, EntityDescriptor or {"model": ...}
    through: Any = None

    @property
    def is_many_to_many(self) -> bool:
        return self.kind == AssociationKind.BELONGS_TO_MANY


@dataclass(frozen=True)
class EntityDescriptor:
    """A persistence-mapped model."""
    name: str
    table_name: str
    associations: Mapping[str, AssociationDescriptor] = field(default_factory=dict)
    schema: Optional[str] = None
    delimiter: str = '.'

    @property
    def table(self) -> str:
        """Table name as used in grant statements, schema-qualified if needed."""
        if self.schema:
            return f"{self.schema}{self.delimiter}{self.table_name}"
        return self.table_name


ThroughRef = Union[str, EntityDescriptor, Mapping[str, Any]]


def through_entity_name(through: Optional[ThroughRef]) -> Optional[str]:
    """Extract the join entity name from a many-to-many `through` reference.

    Args:
        through: Entity name, EntityDescriptor, or a mapping with a `model` field

    Returns:
        The join entity name, or None if the reference has no usable shape
    """
    if isinstance(through, str):
        return through
    if isinstance(through, EntityDescriptor):
        return through.name
    if isinstance(through, Mapping) and through.get('model'):
        model = through['model']
        if isinstance(model, str):
            return model
        if isinstance(model, EntityDescriptor):
            return model.name
    return None


class EntityRegistry:
    """Mapping from entity name to EntityDescriptor plus an association graph.

    The graph is a networkx MultiDiGraph with one node per entity and one
    edge per association (source -> target, keyed by association name).
    """

    def __init__(self, entities: Iterable[EntityDescriptor] = ()):
        self._entities: Dict[str, EntityDescriptor] = {}
        self.graph = nx.MultiDiGraph()
        for entity in entities:
            self.add(entity)

    def add(self, entity: EntityDescriptor):
        self._entities[entity.name] = entity
        self.graph.add_node(entity.name)
        for association in entity.associations.values():
            self.graph.add_edge(entity.name, association.target,
                                key=association.name, association=association)

    def get(self, name: Optional[str]) -> Optional[EntityDescriptor]:
        if not name:
            return None
        return self._entities.get(name)

    def __getitem__(self, name: str) -> EntityDescriptor:
        return self._entities[name]

    def __contains__(self, name: object) -> bool:
        return name in self._entities

    def __iter__(self) -> Iterator[str]:
        return iter(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def names(self) -> List[str]:
        return list(self._entities)

    def many_to_many(self, name: str) -> List[AssociationDescriptor]:
        """Many-to-many associations declared by entity `name`."""
        if name not in self.graph:
            return []
        return [
            data['association']
            for _, _, data in self.graph.out_edges(name, data=True)
            if data['association'].is_many_to_many
        ]

    # Serialization -------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'EntityRegistry':
        """Build a registry from a descriptor document.

        Expected shape::

            {"models": {"User": {"tableName": "users",
                                 "associations": {"roles": {"type": "BelongsToMany",
                                                            "target": "Role",
                                                            "through": "UserRole"}}}}}

        Raises:
            RegistryError: If the document does not have that shape
        """
        models = data.get('models') if isinstance(data, Mapping) else None
        if not isinstance(models, Mapping):
            raise RegistryError("Registry document must contain a 'models' object")

        entities = []
        for name, spec in models.items():
            if not isinstance(spec, Mapping):
                raise RegistryError(f"Model '{name}' must be an object")
            associations = {}
            for assoc_name, assoc in (spec.get('associations') or {}).items():
                if not isinstance(assoc, Mapping) or 'target' not in assoc or 'type' not in assoc:
                    raise RegistryError(
                        f"Association '{assoc_name}' of model '{name}' needs 'type' and 'target'"
                    )
                associations[assoc_name] = AssociationDescriptor(
                    name=assoc_name,
                    kind=AssociationKind.parse(assoc['type']),
                    target=assoc['target'],
                    through=assoc.get('through'),
                )
            entities.append(EntityDescriptor(
                name=name,
                table_name=spec.get('tableName') or name,
                associations=associations,
                schema=spec.get('schema'),
                delimiter=spec.get('delimiter') or '.',
            ))
        return cls(entities)

    def to_dict(self) -> Dict[str, Any]:
        models = {}
        for name, entity in self._entities.items():
            spec: Dict[str, Any] = {'tableName': entity.table_name}
            if entity.schema:
                spec['schema'] = entity.schema
                spec['delimiter'] = entity.delimiter
            associations = {}
            for assoc in entity.associations.values():
                entry: Dict[str, Any] = {'type': assoc.kind.value, 'target': assoc.target}
                if assoc.through is not None:
                    through = through_entity_name(assoc.through)
                    entry['through'] = through if through is not None else assoc.through
                associations[assoc.name] = entry
            spec['associations'] = associations
            models[name] = spec
        return {'models': models}
