"""Syntax-tree helpers shared by the usage analysis.

Everything that knows about concrete tree-sitter node shapes for the
TypeScript/JavaScript grammars lives here, so the analysis modules only ask
questions like "is this a member call" or "where is this node".
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

from tree_sitter import Node, Tree

from .parser import LanguageParser


# Node types that open a new lexical scope for bindings
SCOPE_TYPES = {
    'program',
    'statement_block',
    'class_body',
    'function_declaration',
    'generator_function_declaration',
    'function_expression',
    'function',
    'arrow_function',
    'method_definition',
    'for_statement',
    'for_in_statement',
    'catch_clause',
}

FUNCTION_TYPES = {
    'function_declaration',
    'generator_function_declaration',
    'function_expression',
    'function',
    'arrow_function',
    'method_definition',
}

CLASS_TYPES = {'class_declaration', 'abstract_class_declaration', 'class'}


@dataclass(frozen=True)
class SourceLocation:
    """A position in a source file, 1-based like compiler output."""
    path: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.path}:{self.line}:{self.column}"


@dataclass
class SourceFile:
    """A parsed source file of the analysed project."""
    path: Path
    source: bytes
    tree: Tree
    language: str = 'typescript'
    display_path: str = field(default='')

    def __post_init__(self):
        if not self.display_path:
            self.display_path = str(self.path)

    @property
    def root(self) -> Node:
        return self.tree.root_node

    @property
    def is_declaration_file(self) -> bool:
        """Declaration files (.d.ts) carry types only, never database calls."""
        name = self.path.name
        return any(name.endswith(ext) for ext in ('.d.ts', '.d.mts', '.d.cts'))

    @classmethod
    def from_source(cls, path: str | Path, source_code: bytes | str,
                    language: Optional[str] = None) -> 'SourceFile':
        """Parse in-memory source code into a SourceFile.

        Args:
            path: Path the code is reported under
            source_code: Source text or UTF-8 bytes
            language: Grammar name; guessed from the extension when omitted

        Returns:
            Parsed SourceFile
        """
        path = Path(path)
        if isinstance(source_code, str):
            source_code = source_code.encode('utf-8')
        language = language or LanguageParser.language_for(path) or 'typescript'
        tree = LanguageParser(language).parse_source(source_code)
        return cls(path=path, source=source_code, tree=tree, language=language)

    def location(self, node: Node) -> SourceLocation:
        row, column = node.start_point
        return SourceLocation(self.display_path, row + 1, column + 1)


def node_text(node: Optional[Node]) -> str:
    """Return the source text spanned by a node ('' for None)."""
    if node is None or node.text is None:
        return ''
    return node.text.decode('utf-8', errors='replace')


def expression_children(node: Node) -> List[Node]:
    """Named children without comments, e.g. the arguments of a call."""
    return [child for child in node.named_children if child.type != 'comment']


def call_arguments(call: Node) -> List[Node]:
    args = call.child_by_field_name('arguments')
    if args is None or args.type != 'arguments':
        return []
    return expression_children(args)


def member_call_parts(call: Node) -> Optional[tuple[Node, str]]:
    """Split `receiver.method(...)` into (receiver, method name).

    Only a plain property access qualifies: the callee must be a member
    expression whose property is an identifier. Computed access
    (`x["save"]()`) and plain function calls return None. Optional chaining
    (`x?.save()`) is accepted, the receiver is the same static expression.
    """
    callee = call.child_by_field_name('function')
    if callee is None or callee.type != 'member_expression':
        return None

    receiver = callee.child_by_field_name('object')
    prop = callee.child_by_field_name('property')
    if receiver is None or prop is None or prop.type != 'property_identifier':
        return None

    return receiver, node_text(prop)


def string_value(node: Optional[Node]) -> Optional[str]:
    """Return the value of a plain string literal, or None for anything else."""
    if node is None or node.type != 'string':
        return None
    text = node_text(node)
    if len(text) < 2:
        return None
    return text[1:-1]


def iter_nodes(root: Node) -> Iterator[Node]:
    """Iteratively traverse a tree depth-first, pre-order.

    Yields:
        All nodes in tree
    """
    stack = [root]
    while stack:
        current = stack.pop()
        yield current
        # Reversed so children come out left to right
        stack.extend(reversed(current.children))


def enclosing(node: Node, types: set) -> Optional[Node]:
    """Nearest strict ancestor whose type is in `types`."""
    current = node.parent
    while current is not None:
        if current.type in types:
            return current
        current = current.parent
    return None


def decorators_of(node: Node) -> List[Node]:
    """Decorators attached to a class or field declaration.

    A class decorated before `export` hangs its decorators on the
    export_statement; field decorators may precede the field in the class body.
    """
    found = [child for child in node.children if child.type == 'decorator']

    parent = node.parent
    if parent is not None and parent.type == 'export_statement':
        found = [c for c in parent.children if c.type == 'decorator'] + found
    elif parent is not None and parent.type == 'class_body':
        preceding = []
        sibling = node.prev_sibling
        while sibling is not None and sibling.type == 'decorator':
            preceding.insert(0, sibling)
            sibling = sibling.prev_sibling
        found = preceding + found

    return found


def decorator_call(decorator: Node) -> tuple[str, List[Node]]:
    """Return (name, arguments) of `@Name(...)` or `@Name`."""
    expression = expression_children(decorator)
    if not expression:
        return '', []
    expr = expression[0]
    if expr.type == 'call_expression':
        name = node_text(expr.child_by_field_name('function'))
        return name.split('.')[-1], call_arguments(expr)
    return node_text(expr).split('.')[-1], []


def object_properties(node: Optional[Node]) -> dict:
    """Map property names of an object literal to their value nodes."""
    props = {}
    if node is None or node.type != 'object':
        return props
    for child in node.named_children:
        if child.type == 'pair':
            key = child.child_by_field_name('key')
            key_name = string_value(key) if key is not None and key.type == 'string' else node_text(key)
            props[key_name] = child.child_by_field_name('value')
        elif child.type == 'shorthand_property_identifier':
            props[node_text(child)] = child
    return props


def unwrap_thunk(node: Optional[Node]) -> Optional[Node]:
    """`() => Role` gives the `Role` node; anything else comes back unchanged."""
    if node is not None and node.type == 'arrow_function':
        body = node.child_by_field_name('body')
        if body is not None and body.type != 'statement_block':
            return body
    return node
