"""Usage records: accumulated CRUD flags per entity."""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..errors import StoreFormatError
from .operations import Operation
from .registry import EntityDescriptor


@dataclass
class UsageRecord:
    """CRUD flags for one entity.

    A record only exists once its entity was discovered, so `select` is
    always true. Write flags only ever go from False to True.
    """
    entity: str
    table: str
    select: bool = True
    insert: bool = False
    update: bool = False
    delete: bool = False

    def mark(self, operations: Iterable[Operation]):
        for op in operations:
            if op == Operation.INSERT:
                self.insert = True
            elif op == Operation.UPDATE:
                self.update = True
            elif op == Operation.DELETE:
                self.delete = True

    def absorb(self, other: 'UsageRecord'):
        """OR another record's write flags into this one."""
        self.mark(other.operations())

    def operations(self) -> List[Operation]:
        ops = []
        if self.insert:
            ops.append(Operation.INSERT)
        if self.update:
            ops.append(Operation.UPDATE)
        if self.delete:
            ops.append(Operation.DELETE)
        return ops

    def to_dict(self) -> Dict[str, Any]:
        # Same keys as the JavaScript tool so stores can be exchanged
        return {
            'table': self.table,
            'isSelect': True,
            'isInsert': self.insert,
            'isUpdate': self.update,
            'isDelete': self.delete,
        }

    @classmethod
    def from_dict(cls, entity: str, data: Mapping[str, Any]) -> 'UsageRecord':
        """Build a record from its saved JSON form.

        Raises:
            StoreFormatError: If the entry is not an object with a string `table`
        """
        if not isinstance(data, Mapping) or not isinstance(data.get('table'), str):
            raise StoreFormatError(f"Usage record for {entity!r} needs a string 'table' field")
        return cls(
            entity=entity,
            table=data['table'],
            insert=bool(data.get('isInsert', False)),
            update=bool(data.get('isUpdate', False)),
            delete=bool(data.get('isDelete', False)),
        )


class UsageStore:
    """Mapping from entity name to UsageRecord, returned by the analysis.

    Each analysis creates its own store; there is no shared instance.
    """

    def __init__(self, records: Iterable[UsageRecord] = ()):
        self._records: Dict[str, UsageRecord] = {}
        for record in records:
            self._records[record.entity] = record

    def ensure(self, entity: EntityDescriptor) -> UsageRecord:
        """Return the entity's record, creating a select-only one if needed."""
        record = self._records.get(entity.name)
        if record is None:
            record = UsageRecord(entity=entity.name, table=entity.table)
            self._records[entity.name] = record
        return record

    def get(self, name: str) -> Optional[UsageRecord]:
        return self._records.get(name)

    def __getitem__(self, name: str) -> UsageRecord:
        return self._records[name]

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def names(self) -> List[str]:
        return list(self._records)

    def items(self) -> List[Tuple[str, UsageRecord]]:
        return list(self._records.items())

    def records(self) -> List[UsageRecord]:
        return list(self._records.values())

    def merge(self, other: 'UsageStore'):
        """OR every record of `other` into this store (used to combine repositories)."""
        for name, record in other.items():
            existing = self._records.get(name)
            if existing is None:
                self._records[name] = UsageRecord(
                    entity=name, table=record.table,
                    insert=record.insert, update=record.update, delete=record.delete,
                )
            else:
                existing.absorb(record)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {name: record.to_dict() for name, record in self._records.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> 'UsageStore':
        if not isinstance(data, Mapping):
            raise StoreFormatError("A usage store must be a JSON object keyed by model name")
        return cls(UsageRecord.from_dict(name, entry) for name, entry in data.items())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UsageStore):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"UsageStore({self.to_dict()!r})"
