"""Static type oracle over the project's syntax trees.

TYPE INFERENCE ENGINE: answers "what is the static type of this expression"
and "where is this symbol declared" using declarations, annotations and a
handful of inference rules, without ever executing code.

Typing rules (first applicable wins):
- identifier: innermost enclosing binding (annotated variable, inferable
  initializer, parameter, import, class or function declaration)
- `this`: the enclosing class (the class itself inside static methods)
- `new X()`: X
- `await e`: the awaited type of `Promise<T>`
- `e as T`, `<T>e`: T; `e!`, `(e)`: type of e
- `a.b`: declared type of member `b` on the type of `a`
- `f()`, `a.m()`: declared return type; `Model.create()` and the other
  static finders return instances of the model class
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from tree_sitter import Node

from .syntax import (
    CLASS_TYPES,
    FUNCTION_TYPES,
    SCOPE_TYPES,
    SourceFile,
    enclosing,
    expression_children,
    iter_nodes,
    member_call_parts,
    node_text,
)

logger = structlog.get_logger(__name__)

# Guards against cycles such as `let a = b; let b = a;`
MAX_DEPTH = 8

# Callbacks whose first parameter is an element of the receiver array
ARRAY_CALLBACK_METHODS = {
    'forEach', 'map', 'flatMap', 'filter', 'find', 'findLast', 'some', 'every',
}

# Static Sequelize finders: method -> (returns a Promise, returns an array)
MODEL_FINDERS = {
    'build': (False, False),
    'create': (True, False),
    'findOne': (True, False),
    'findByPk': (True, False),
    'findAll': (True, True),
    'bulkCreate': (True, True),
}

NULLISH = {'null', 'undefined'}


@dataclass(frozen=True)
class StaticType:
    """A static type as seen by the oracle.

    `symbol` is the name of the type's symbol (None for anonymous, primitive
    or unsupported types); `text` is the display form used in diagnostics.
    """
    symbol: Optional[str]
    text: str
    args: Tuple['StaticType', ...] = ()
    class_ref: bool = False  # the class itself (typeof X), not an instance

    @classmethod
    def named(cls, name: str, class_ref: bool = False) -> 'StaticType':
        return cls(name, f"typeof {name}" if class_ref else name, class_ref=class_ref)

    @classmethod
    def array_of(cls, element: 'StaticType') -> 'StaticType':
        return cls('Array', f"{element.text}[]", (element,))

    @classmethod
    def promise_of(cls, inner: 'StaticType') -> 'StaticType':
        return cls('Promise', f"Promise<{inner.text}>", (inner,))

    @property
    def element(self) -> Optional['StaticType']:
        if self.symbol in ('Array', 'ReadonlyArray') and self.args:
            return self.args[0]
        return None

    def awaited(self) -> 'StaticType':
        if self.symbol == 'Promise' and self.args:
            return self.args[0]
        return self


@dataclass
class Declaration:
    """A named class, interface, type alias or function declaration."""
    kind: str
    name: str
    node: Node
    source: SourceFile


@dataclass
class HeritageRef:
    """One entry of an extends/implements clause."""
    base: Node
    type_arguments: List[Node]


@dataclass
class Binding:
    """A name bound in a lexical scope, with what is needed to type it."""
    name: str
    kind: str  # annotated | value | import | class | function | iteration | callback
    node: Node
    scope_start: int
    scope_end: int
    original: Optional[str] = None

    def covers(self, offset: int) -> bool:
        return self.scope_start <= offset < self.scope_end

    @property
    def size(self) -> int:
        return self.scope_end - self.scope_start


def type_from_node(node: Optional[Node]) -> Optional[StaticType]:
    """Convert a type annotation / type node into a StaticType."""
    if node is None:
        return None

    kind = node.type
    if kind == 'type_annotation':
        inner = expression_children(node)
        return type_from_node(inner[0]) if inner else None
    if kind in ('type_identifier', 'identifier'):
        name = node_text(node)
        return StaticType(name, name)
    if kind == 'nested_type_identifier':
        name = node.child_by_field_name('name')
        return StaticType(node_text(name) or None, node_text(node))
    if kind == 'generic_type':
        name = node_text(node.child_by_field_name('name')).split('.')[-1]
        type_args = node.child_by_field_name('type_arguments')
        args = tuple(
            type_from_node(arg) or StaticType(None, node_text(arg))
            for arg in (expression_children(type_args) if type_args is not None else [])
        )
        return StaticType(name or None, node_text(node), args)
    if kind == 'array_type':
        inner = expression_children(node)
        element = type_from_node(inner[0]) if inner else None
        return StaticType.array_of(element or StaticType(None, 'any'))
    if kind == 'union_type':
        members = [m for m in _union_members(node) if node_text(m) not in NULLISH]
        if len(members) == 1:
            return type_from_node(members[0])
        return StaticType(None, node_text(node))
    if kind == 'parenthesized_type':
        inner = expression_children(node)
        return type_from_node(inner[0]) if inner else None
    if kind == 'type_query':
        # typeof User, typeof db.User: the class itself
        inner = expression_children(node)
        queried = node_text(inner[0]).split('<')[0].split('.')[-1].strip() if inner else ''
        if queried.isidentifier():
            return StaticType.named(queried, class_ref=True)
        return StaticType(None, node_text(node))
    return StaticType(None, node_text(node))


def _union_members(node: Node) -> List[Node]:
    members = []
    for child in expression_children(node):
        if child.type == 'union_type':
            members.extend(_union_members(child))
        else:
            members.append(child)
    return members


class TypeOracle:
    """Project-wide declaration index plus per-file scoped bindings."""

    DECLARATION_KINDS = {
        'class_declaration': 'class',
        'abstract_class_declaration': 'class',
        'interface_declaration': 'interface',
        'type_alias_declaration': 'type_alias',
        'function_declaration': 'function',
        'generator_function_declaration': 'function',
    }

    def __init__(self, sources: Iterable[SourceFile] = ()):
        # symbol name -> declarations across the whole project
        self._declarations: Dict[str, List[Declaration]] = {}
        # file -> name -> bindings
        self._bindings: Dict[str, Dict[str, List[Binding]]] = {}
        for source in sources:
            self.index(source)

    # Indexing ------------------------------------------------------------

    def index(self, source: SourceFile):
        """Record the declarations and bindings of one file."""
        bindings: Dict[str, List[Binding]] = {}
        for node in iter_nodes(source.root):
            self._index_node(node, source, bindings)
        self._bindings[str(source.path)] = bindings

    def _index_node(self, node: Node, source: SourceFile, bindings: Dict[str, List[Binding]]):
        kind = node.type

        if kind in self.DECLARATION_KINDS:
            name = node_text(node.child_by_field_name('name'))
            if not name:
                return
            decl_kind = self.DECLARATION_KINDS[kind]
            self._declarations.setdefault(name, []).append(Declaration(decl_kind, name, node, source))
            if decl_kind in ('class', 'function'):
                self._bind(bindings, name, decl_kind, node, enclosing(node, SCOPE_TYPES))

        elif kind == 'variable_declarator':
            name_node = node.child_by_field_name('name')
            if name_node is None or name_node.type != 'identifier':
                return
            annotation = node.child_by_field_name('type')
            value = node.child_by_field_name('value')
            scope = enclosing(node, SCOPE_TYPES)
            if annotation is not None:
                self._bind(bindings, node_text(name_node), 'annotated', annotation, scope)
            elif value is not None:
                self._bind(bindings, node_text(name_node), 'value', value, scope)

        elif kind in ('required_parameter', 'optional_parameter'):
            self._index_parameter(node, bindings)

        elif kind == 'arrow_function':
            # `user => user.save()`: single untyped parameter
            param = node.child_by_field_name('parameter')
            if param is not None and param.type == 'identifier':
                self._bind(bindings, node_text(param), 'callback', node, node)

        elif kind == 'for_in_statement':
            left = node.child_by_field_name('left')
            right = node.child_by_field_name('right')
            operator = node.child_by_field_name('operator')
            if (left is not None and left.type == 'identifier' and right is not None
                    and node_text(operator) == 'of'):
                self._bind(bindings, node_text(left), 'iteration', right, node)

        elif kind == 'import_statement':
            self._index_import(node, source, bindings)

    def _index_parameter(self, node: Node, bindings: Dict[str, List[Binding]]):
        pattern = node.child_by_field_name('pattern')
        if pattern is None or pattern.type != 'identifier':
            return
        params = node.parent
        function = params.parent if params is not None else None
        if function is None or function.type not in FUNCTION_TYPES:
            # Parameters of function *types* bind nothing
            return

        annotation = node.child_by_field_name('type')
        if annotation is not None:
            self._bind(bindings, node_text(pattern), 'annotated', annotation, function)
        elif params.named_children and params.named_children[0] == node:
            self._bind(bindings, node_text(pattern), 'callback', function, function)

    def _index_import(self, node: Node, source: SourceFile, bindings: Dict[str, List[Binding]]):
        clause = next((c for c in node.named_children if c.type == 'import_clause'), None)
        if clause is None:
            return
        root = source.root
        for child in clause.named_children:
            if child.type == 'identifier':
                name = node_text(child)
                self._bind(bindings, name, 'import', child, root, original=name)
            elif child.type == 'named_imports':
                for spec in child.named_children:
                    if spec.type != 'import_specifier':
                        continue
                    original = node_text(spec.child_by_field_name('name'))
                    alias = spec.child_by_field_name('alias')
                    local = node_text(alias) if alias is not None else original
                    self._bind(bindings, local, 'import', spec, root, original=original)

    @staticmethod
    def _bind(bindings: Dict[str, List[Binding]], name: str, kind: str, node: Node,
              scope: Optional[Node], original: Optional[str] = None):
        if scope is None:
            return
        bindings.setdefault(name, []).append(
            Binding(name, kind, node, scope.start_byte, scope.end_byte, original)
        )

    # Queries -------------------------------------------------------------

    def declarations_of(self, symbol: Optional[str]) -> List[Declaration]:
        """All class/interface/type-alias/function declarations named `symbol`."""
        if not symbol:
            return []
        return list(self._declarations.get(symbol, []))

    def lookup(self, name: str, node: Node, source: SourceFile) -> Optional[Binding]:
        """Innermost binding of `name` whose scope contains `node`."""
        candidates = self._bindings.get(str(source.path), {}).get(name, [])
        covering = [b for b in candidates if b.covers(node.start_byte)]
        if not covering:
            return None
        return min(covering, key=lambda b: b.size)

    def type_of(self, node: Node, source: SourceFile, depth: int = 0) -> Optional[StaticType]:
        """Static type of an expression node, or None if it cannot be inferred."""
        if node is None or depth > MAX_DEPTH:
            return None

        kind = node.type
        if kind == 'identifier':
            return self._identifier_type(node, source, depth)
        if kind == 'this':
            return self._this_type(node)
        if kind in ('parenthesized_expression', 'non_null_expression', 'satisfies_expression'):
            inner = expression_children(node)
            return self.type_of(inner[0], source, depth + 1) if inner else None
        if kind == 'await_expression':
            inner = expression_children(node)
            awaited = self.type_of(inner[0], source, depth + 1) if inner else None
            return awaited.awaited() if awaited else None
        if kind == 'as_expression':
            inner = expression_children(node)
            return type_from_node(inner[-1]) if len(inner) > 1 else None
        if kind == 'type_assertion':
            type_args = next((c for c in node.named_children if c.type == 'type_arguments'), None)
            asserted = expression_children(type_args) if type_args is not None else []
            return type_from_node(asserted[0]) if asserted else None
        if kind == 'new_expression':
            return self._new_type(node, source)
        if kind == 'call_expression':
            return self._call_type(node, source, depth)
        if kind == 'member_expression':
            owner = self.type_of(node.child_by_field_name('object'), source, depth + 1)
            prop = node_text(node.child_by_field_name('property'))
            return self.member_type(owner, prop, depth + 1)
        return None

    def member_type(self, owner: Optional[StaticType], member: str, depth: int = 0) -> Optional[StaticType]:
        """Declared type of a field/property `member` on `owner`."""
        if owner is None or owner.symbol is None:
            return None
        found = self._find_member(owner.symbol, member, depth)
        if found is None or found[0] != 'field':
            return None
        return type_from_node(found[1].child_by_field_name('type'))

    def heritage_of(self, declaration: Declaration) -> List[HeritageRef]:
        """extends/implements entries of a class or interface declaration."""
        refs: List[HeritageRef] = []
        for child in declaration.node.named_children:
            if child.type == 'class_heritage':
                clauses = expression_children(child)
                if not any(c.type in ('extends_clause', 'implements_clause') for c in clauses):
                    # JavaScript grammar: `extends <expression>` directly
                    refs.extend(HeritageRef(c, []) for c in clauses)
                for clause in clauses:
                    if clause.type == 'extends_clause':
                        refs.extend(self._extends_refs(clause))
                    elif clause.type == 'implements_clause':
                        refs.extend(self._type_refs(clause))
            elif child.type in ('extends_type_clause', 'extends_clause'):
                refs.extend(self._type_refs(child))
        return refs

    # Internals -----------------------------------------------------------

    def _identifier_type(self, node: Node, source: SourceFile, depth: int) -> Optional[StaticType]:
        name = node_text(node)
        binding = self.lookup(name, node, source)
        if binding is None:
            # Script-global or ambient (.d.ts) classes need no import
            if any(d.kind == 'class' for d in self.declarations_of(name)):
                return StaticType.named(name, class_ref=True)
            return None
        return self._binding_type(binding, source, depth)

    def _binding_type(self, binding: Binding, source: SourceFile, depth: int) -> Optional[StaticType]:
        kind = binding.kind
        if kind == 'annotated':
            return type_from_node(binding.node)
        if kind == 'value':
            return self.type_of(binding.node, source, depth + 1)
        if kind in ('import', 'class'):
            return StaticType.named(binding.original or binding.name, class_ref=True)
        if kind == 'iteration':
            iterable = self.type_of(binding.node, source, depth + 1)
            return iterable.element if iterable else None
        if kind == 'callback':
            return self._callback_parameter_type(binding.node, source, depth)
        return None

    def _callback_parameter_type(self, function: Node, source: SourceFile, depth: int) -> Optional[StaticType]:
        """`users.forEach(user => ...)`: `user` is an element of `users`."""
        args = function.parent
        call = args.parent if args is not None else None
        if call is None or call.type != 'call_expression' or args.type != 'arguments':
            return None
        if not expression_children(args) or expression_children(args)[0] != function:
            return None
        parts = member_call_parts(call)
        if parts is None or parts[1] not in ARRAY_CALLBACK_METHODS:
            return None
        receiver = self.type_of(parts[0], source, depth + 1)
        return receiver.element if receiver else None

    def _this_type(self, node: Node) -> Optional[StaticType]:
        cls = enclosing(node, CLASS_TYPES)
        if cls is None:
            return None
        name = node_text(cls.child_by_field_name('name'))
        if not name:
            return None
        method = enclosing(node, {'method_definition'})
        is_static = (
            method is not None
            and method.start_byte > cls.start_byte
            and any(c.type == 'static' for c in method.children)
        )
        return StaticType.named(name, class_ref=is_static)

    def _new_type(self, node: Node, source: SourceFile) -> Optional[StaticType]:
        constructor = node.child_by_field_name('constructor')
        if constructor is None:
            return None
        name = node_text(constructor).split('.')[-1]
        if constructor.type == 'identifier':
            binding = self.lookup(name, constructor, source)
            if binding is not None and binding.original:
                name = binding.original
        return StaticType.named(name) if name else None

    def _call_type(self, node: Node, source: SourceFile, depth: int) -> Optional[StaticType]:
        callee = node.child_by_field_name('function')
        if callee is None:
            return None

        if callee.type == 'identifier':
            name = node_text(callee)
            binding = self.lookup(name, callee, source)
            if binding is not None and binding.kind == 'import':
                name = binding.original or name
            elif binding is not None and binding.kind == 'value':
                # const loadUser = async (id): Promise<User> => ...
                return type_from_node(binding.node.child_by_field_name('return_type'))
            for decl in self.declarations_of(name):
                if decl.kind == 'function':
                    return type_from_node(decl.node.child_by_field_name('return_type'))
            return None

        if callee.type != 'member_expression':
            return None

        owner = self.type_of(callee.child_by_field_name('object'), source, depth + 1)
        method = node_text(callee.child_by_field_name('property'))
        if owner is None or owner.symbol is None:
            return None

        found = self._find_member(owner.symbol, method, depth)
        if found is not None and found[0] == 'method':
            return type_from_node(found[1].child_by_field_name('return_type'))

        if owner.class_ref and method in MODEL_FINDERS:
            is_async, is_array = MODEL_FINDERS[method]
            result = StaticType.named(owner.symbol)
            if is_array:
                result = StaticType.array_of(result)
            return StaticType.promise_of(result) if is_async else result
        return None

    def _find_member(self, symbol: str, member: str, depth: int) -> Optional[Tuple[str, Node]]:
        """Find a member declaration on a class/interface or its bases.

        Returns:
            ('field', node) or ('method', node), or None
        """
        if depth > MAX_DEPTH:
            return None

        for decl in self.declarations_of(symbol):
            if decl.kind not in ('class', 'interface'):
                continue
            body = decl.node.child_by_field_name('body')
            found = self._member_in_body(body, member) if body is not None else None
            if found is not None:
                return found
            for ref in self.heritage_of(decl):
                if ref.base.type in ('identifier', 'type_identifier'):
                    inherited = self._find_member(node_text(ref.base), member, depth + 1)
                    if inherited is not None:
                        return inherited
        return None

    @staticmethod
    def _member_in_body(body: Node, member: str) -> Optional[Tuple[str, Node]]:
        for child in body.named_children:
            name = node_text(child.child_by_field_name('name'))
            if child.type in ('public_field_definition', 'property_signature') and name == member:
                return 'field', child
            if child.type in ('method_signature', 'abstract_method_signature') and name == member:
                return 'method', child
            if child.type == 'method_definition':
                if name == member:
                    return 'method', child
                if name == 'constructor':
                    prop = _parameter_property(child, member)
                    if prop is not None:
                        return 'field', prop
        return None

    def _extends_refs(self, clause: Node) -> List[HeritageRef]:
        refs: List[HeritageRef] = []
        for child in expression_children(clause):
            if child.type == 'type_arguments' and refs:
                refs[-1].type_arguments.extend(expression_children(child))
            else:
                refs.append(HeritageRef(child, []))
        return refs

    @staticmethod
    def _type_refs(clause: Node) -> List[HeritageRef]:
        refs = []
        for child in expression_children(clause):
            if child.type == 'generic_type':
                type_args = child.child_by_field_name('type_arguments')
                refs.append(HeritageRef(
                    child.child_by_field_name('name'),
                    expression_children(type_args) if type_args is not None else [],
                ))
            else:
                refs.append(HeritageRef(child, []))
        return refs


def _parameter_property(constructor: Node, member: str) -> Optional[Node]:
    """`constructor(private readonly users: UserRepo)` declares field `users`."""
    params = constructor.child_by_field_name('parameters')
    if params is None:
        return None
    for param in params.named_children:
        if param.type not in ('required_parameter', 'optional_parameter'):
            continue
        is_property = any(c.type in ('accessibility_modifier', 'readonly') for c in param.children)
        if is_property and node_text(param.child_by_field_name('pattern')) == member:
            return param
    return None
