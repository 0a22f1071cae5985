"""Recoverable analysis diagnostics.

A diagnostic never interrupts the traversal: the offending call contributes
nothing to the usage store and the problem is recorded here and logged.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional

import structlog
from tree_sitter import Node

from .syntax import SourceFile, SourceLocation, node_text

logger = structlog.get_logger(__name__)


class DiagnosticKind(str, Enum):
    ENTITY_UNRESOLVED = "entity_unresolved"
    ASSOCIATION_NAME_NOT_LITERAL = "association_name_not_literal"
    ASSOCIATION_NOT_FOUND = "association_not_found"
    TARGET_NOT_REGISTERED = "target_not_registered"
    THROUGH_INVALID = "through_invalid"
    THROUGH_UNRESOLVED = "through_unresolved"
    UNKNOWN_MIXIN = "unknown_mixin"


# Kinds that may silently under-grant privileges are logged as errors
_ERROR_KINDS = {
    DiagnosticKind.ENTITY_UNRESOLVED,
    DiagnosticKind.TARGET_NOT_REGISTERED,
    DiagnosticKind.THROUGH_UNRESOLVED,
}


@dataclass(frozen=True)
class Diagnostic:
    """One recoverable problem found while analysing a call."""
    kind: DiagnosticKind
    message: str
    location: Optional[SourceLocation] = None
    expression: Optional[str] = None
    type_text: Optional[str] = None

    def __str__(self) -> str:
        where = f" at {self.location}" if self.location else ""
        return f"{self.message}{where}"


class DiagnosticLog:
    """Ordered collection of diagnostics emitted during one analysis."""

    def __init__(self):
        self._items: List[Diagnostic] = []

    def report(self, kind: DiagnosticKind, message: str,
               node: Optional[Node] = None, source: Optional[SourceFile] = None,
               type_text: Optional[str] = None) -> Diagnostic:
        """Record a diagnostic and log it.

        Args:
            kind: Diagnostic category
            message: Human-readable description
            node: Offending syntax node, used for expression text and location
            source: File containing `node`
            type_text: Display text of the node's static type, if relevant

        Returns:
            The recorded Diagnostic
        """
        location = source.location(node) if node is not None and source is not None else None
        expression = node_text(node) if node is not None else None
        diagnostic = Diagnostic(kind, message, location, expression, type_text)
        self._items.append(diagnostic)

        log = logger.error if kind in _ERROR_KINDS else logger.warning
        log(
            kind.value,
            message=message,
            expression=expression,
            type=type_text,
            location=str(location) if location else None,
        )
        return diagnostic

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self._items if d.kind == kind]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)
