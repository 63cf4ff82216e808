"""
JS Parser — tree-sitter adapter producing a uniform syntax tree.

Turns JavaScript / TypeScript source into ``SyntaxTree``:
  • ``SyntaxNode`` per named grammar node, tagged with a ``NodeKind``
  • Field name in the parent and operator/keyword token (``+``, ``const``, ``of``)
  • Lexical scope boundaries (program, function, block, for-head, catch)
  • Comments, kept out of the node tree and attached by line

Malformed input (any ERROR or MISSING node) raises ``ParseError``.
"""

import os
import logging
import threading
from enum import Enum
from typing import Dict, Iterator, List, Optional
import dataclasses
from dataclasses import dataclass, field

import tree_sitter_javascript as tsjs
import tree_sitter_typescript as tsts
from tree_sitter import Language, Parser

from simplifier.errors import ParseError
from simplifier.models import Span

logger = logging.getLogger(__name__)

JS_LANGUAGE = Language(tsjs.language())
TS_LANGUAGE = Language(tsts.language_typescript())
TSX_LANGUAGE = Language(tsts.language_tsx())

_LANGUAGES = {
    "javascript": JS_LANGUAGE,
    "typescript": TS_LANGUAGE,
    "tsx": TSX_LANGUAGE,
}

_EXTENSION_LANGUAGE = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
}

SOURCE_EXTENSIONS = frozenset(_EXTENSION_LANGUAGE)


def detect_language(file_path: str) -> str:
    """Language name for a path; unknown extensions are parsed as JavaScript."""
    ext = os.path.splitext(file_path)[1].lower()
    return _EXTENSION_LANGUAGE.get(ext, "javascript")


# ═══════════════════════════════════════════════════════════════════════
#  Node kinds
# ═══════════════════════════════════════════════════════════════════════

class NodeKind(str, Enum):
    PROGRAM = "program"
    BLOCK = "block"
    EXPRESSION_STATEMENT = "expression_statement"
    VARIABLE_DECLARATION = "variable_declaration"
    DECLARATOR = "declarator"
    FUNCTION = "function"
    CLASS = "class"
    CLASS_BODY = "class_body"
    FORMAL_PARAMETERS = "formal_parameters"
    IF = "if"
    ELSE = "else"
    FOR = "for"
    FOR_IN = "for_in"
    WHILE = "while"
    DO = "do"
    SWITCH = "switch"
    SWITCH_BODY = "switch_body"
    SWITCH_CASE = "switch_case"
    TRY = "try"
    CATCH = "catch"
    FINALLY = "finally"
    RETURN = "return"
    THROW = "throw"
    BREAK = "break"
    CONTINUE = "continue"
    LABELED = "labeled"
    EXPORT = "export"
    IMPORT = "import"
    IMPORT_SPECIFIER = "import_specifier"
    EXPORT_SPECIFIER = "export_specifier"
    IDENTIFIER = "identifier"
    SHORTHAND_PROPERTY = "shorthand_property"
    PROPERTY_NAME = "property_name"
    CALL = "call"
    NEW = "new"
    MEMBER = "member"
    SUBSCRIPT = "subscript"
    ARGUMENTS = "arguments"
    ASSIGNMENT = "assignment"
    AUGMENTED_ASSIGNMENT = "augmented_assignment"
    UPDATE = "update"
    UNARY = "unary"
    BINARY = "binary"
    TERNARY = "ternary"
    PARENTHESIZED = "parenthesized"
    SEQUENCE = "sequence"
    AWAIT = "await"
    YIELD = "yield"
    SPREAD = "spread"
    OBJECT = "object"
    PAIR = "pair"
    ARRAY = "array"
    TEMPLATE = "template"
    TEMPLATE_SUBSTITUTION = "template_substitution"
    LITERAL = "literal"
    THIS = "this"
    PATTERN = "pattern"
    JSX = "jsx"
    TYPE = "type"
    TYPE_EXPRESSION = "type_expression"     # `x as T`, `x!`, `<T>x`, `x satisfies T`
    OTHER = "other"


_KIND_BY_TYPE: Dict[str, NodeKind] = {
    "program": NodeKind.PROGRAM,
    "statement_block": NodeKind.BLOCK,
    "expression_statement": NodeKind.EXPRESSION_STATEMENT,
    "lexical_declaration": NodeKind.VARIABLE_DECLARATION,
    "variable_declaration": NodeKind.VARIABLE_DECLARATION,
    "variable_declarator": NodeKind.DECLARATOR,
    "function_declaration": NodeKind.FUNCTION,
    "generator_function_declaration": NodeKind.FUNCTION,
    "function_expression": NodeKind.FUNCTION,
    "function": NodeKind.FUNCTION,
    "generator_function": NodeKind.FUNCTION,
    "arrow_function": NodeKind.FUNCTION,
    "method_definition": NodeKind.FUNCTION,
    "function_signature": NodeKind.TYPE,
    "class_declaration": NodeKind.CLASS,
    "abstract_class_declaration": NodeKind.CLASS,
    "class": NodeKind.CLASS,
    "class_body": NodeKind.CLASS_BODY,
    "formal_parameters": NodeKind.FORMAL_PARAMETERS,
    "if_statement": NodeKind.IF,
    "else_clause": NodeKind.ELSE,
    "for_statement": NodeKind.FOR,
    "for_in_statement": NodeKind.FOR_IN,
    "while_statement": NodeKind.WHILE,
    "do_statement": NodeKind.DO,
    "switch_statement": NodeKind.SWITCH,
    "switch_body": NodeKind.SWITCH_BODY,
    "switch_case": NodeKind.SWITCH_CASE,
    "switch_default": NodeKind.SWITCH_CASE,
    "try_statement": NodeKind.TRY,
    "catch_clause": NodeKind.CATCH,
    "finally_clause": NodeKind.FINALLY,
    "return_statement": NodeKind.RETURN,
    "throw_statement": NodeKind.THROW,
    "break_statement": NodeKind.BREAK,
    "continue_statement": NodeKind.CONTINUE,
    "labeled_statement": NodeKind.LABELED,
    "export_statement": NodeKind.EXPORT,
    "import_statement": NodeKind.IMPORT,
    "import_specifier": NodeKind.IMPORT_SPECIFIER,
    "export_specifier": NodeKind.EXPORT_SPECIFIER,
    "identifier": NodeKind.IDENTIFIER,
    "shorthand_property_identifier": NodeKind.SHORTHAND_PROPERTY,
    "property_identifier": NodeKind.PROPERTY_NAME,
    "private_property_identifier": NodeKind.PROPERTY_NAME,
    "statement_identifier": NodeKind.PROPERTY_NAME,
    "call_expression": NodeKind.CALL,
    "new_expression": NodeKind.NEW,
    "member_expression": NodeKind.MEMBER,
    "subscript_expression": NodeKind.SUBSCRIPT,
    "arguments": NodeKind.ARGUMENTS,
    "assignment_expression": NodeKind.ASSIGNMENT,
    "augmented_assignment_expression": NodeKind.AUGMENTED_ASSIGNMENT,
    "update_expression": NodeKind.UPDATE,
    "unary_expression": NodeKind.UNARY,
    "binary_expression": NodeKind.BINARY,
    "ternary_expression": NodeKind.TERNARY,
    "parenthesized_expression": NodeKind.PARENTHESIZED,
    "sequence_expression": NodeKind.SEQUENCE,
    "await_expression": NodeKind.AWAIT,
    "yield_expression": NodeKind.YIELD,
    "spread_element": NodeKind.SPREAD,
    "object": NodeKind.OBJECT,
    "pair": NodeKind.PAIR,
    "array": NodeKind.ARRAY,
    "template_string": NodeKind.TEMPLATE,
    "template_substitution": NodeKind.TEMPLATE_SUBSTITUTION,
    "string": NodeKind.LITERAL,
    "number": NodeKind.LITERAL,
    "regex": NodeKind.LITERAL,
    "true": NodeKind.LITERAL,
    "false": NodeKind.LITERAL,
    "null": NodeKind.LITERAL,
    "undefined": NodeKind.LITERAL,
    "this": NodeKind.THIS,
    "super": NodeKind.THIS,
    "object_pattern": NodeKind.PATTERN,
    "array_pattern": NodeKind.PATTERN,
    "assignment_pattern": NodeKind.PATTERN,
    "object_assignment_pattern": NodeKind.PATTERN,
    "pair_pattern": NodeKind.PATTERN,
    "rest_pattern": NodeKind.PATTERN,
    "shorthand_property_identifier_pattern": NodeKind.PATTERN,
    "required_parameter": NodeKind.PATTERN,
    "optional_parameter": NodeKind.PATTERN,
    "as_expression": NodeKind.TYPE_EXPRESSION,
    "satisfies_expression": NodeKind.TYPE_EXPRESSION,
    "non_null_expression": NodeKind.TYPE_EXPRESSION,
    "type_assertion": NodeKind.TYPE_EXPRESSION,
    "type_annotation": NodeKind.TYPE,
    "type_arguments": NodeKind.TYPE,
    "type_parameters": NodeKind.TYPE,
    "interface_declaration": NodeKind.TYPE,
    "type_alias_declaration": NodeKind.TYPE,
    "enum_declaration": NodeKind.TYPE,
    "ambient_declaration": NodeKind.TYPE,
}

LOOP_KINDS = frozenset({NodeKind.FOR, NodeKind.FOR_IN, NodeKind.WHILE, NodeKind.DO})
STATEMENT_LIST_KINDS = frozenset({NodeKind.PROGRAM, NodeKind.BLOCK, NodeKind.SWITCH_CASE})

# Anonymous tokens recorded as SyntaxNode.operator
_KEYWORD_TOKENS = {"var", "let", "const"}


# ═══════════════════════════════════════════════════════════════════════
#  Data types
# ═══════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class SyntaxNode:
    """One named grammar node.  Identity-compared; ``index`` is preorder."""
    kind: NodeKind
    type: str
    span: Span
    field: Optional[str] = None
    operator: Optional[str] = None
    keyword: Optional[str] = None           # const / let / var
    optional_chain: bool = False
    children: List["SyntaxNode"] = dataclasses.field(default_factory=list, repr=False)
    parent: Optional["SyntaxNode"] = dataclasses.field(default=None, repr=False)
    scope_id: int = 0
    index: int = 0

    def child(self, field_name: str) -> Optional["SyntaxNode"]:
        for c in self.children:
            if c.field == field_name:
                return c
        return None

    def walk(self) -> Iterator["SyntaxNode"]:
        """Preorder traversal of this node and its descendants."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def ancestors(self) -> Iterator["SyntaxNode"]:
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def is_ancestor_of(self, other: "SyntaxNode") -> bool:
        return any(a is self for a in other.ancestors())

    def unparenthesized(self) -> "SyntaxNode":
        node = self
        while node.kind == NodeKind.PARENTHESIZED and len(node.children) == 1:
            node = node.children[0]
        return node


@dataclass
class Scope:
    id: int
    kind: str                   # "program" | "function" | "block" | "for" | "catch"
    node: SyntaxNode
    parent: Optional[int]
    function_scope: int         # nearest enclosing function/program scope (var hoisting)


@dataclass
class Comment:
    span: Span
    text: str
    own_line: bool              # nothing but whitespace precedes it on its line


@dataclass
class SyntaxTree:
    """Parsed file: root node, raw source bytes, scopes and comments."""
    root: SyntaxNode
    source: bytes
    language: str
    scopes: List[Scope] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)
    nodes: List[SyntaxNode] = field(default_factory=list, repr=False)

    def text(self, node: SyntaxNode) -> str:
        return self.source[node.span.start_byte:node.span.end_byte].decode("utf-8", errors="replace")

    # ── comment attachment ──

    def comment_ending_on(self, line: int) -> Optional[Comment]:
        """The own-line comment whose last line is ``line``, if any."""
        for c in self.comments:
            if c.span.end_line == line and c.own_line:
                return c
        return None

    def trailing_comment(self, node: SyntaxNode) -> Optional[Comment]:
        """A comment that follows ``node`` on its last line, separated only by whitespace."""
        for c in self.comments:
            if c.span.start_line != node.span.end_line or c.span.start_byte < node.span.end_byte:
                continue
            gap = self.source[node.span.end_byte:c.span.start_byte]
            if gap.strip() in (b"", b";"):
                return c
        return None

    # ── line helpers ──

    def indentation_at(self, offset: int) -> str:
        line_start = self.source.rfind(b"\n", 0, offset) + 1
        prefix = self.source[line_start:offset]
        indent = prefix[:len(prefix) - len(prefix.lstrip(b" \t"))]
        return indent.decode("utf-8", errors="replace")

    def only_whitespace_before(self, offset: int) -> bool:
        line_start = self.source.rfind(b"\n", 0, offset) + 1
        return self.source[line_start:offset].strip() == b""

    def scope(self, scope_id: int) -> Scope:
        return self.scopes[scope_id]


# ═══════════════════════════════════════════════════════════════════════
#  Parser
# ═══════════════════════════════════════════════════════════════════════

_thread_local = threading.local()


def _get_parser(language: str) -> Parser:
    """Thread-local tree-sitter parser (Parser objects are not thread-safe)."""
    if not hasattr(_thread_local, "parsers"):
        _thread_local.parsers = {}
    parser = _thread_local.parsers.get(language)
    if parser is None:
        lang = _LANGUAGES.get(language)
        if lang is None:
            raise ValueError(f"Unsupported language: {language}")
        parser = Parser(lang)
        _thread_local.parsers[language] = parser
    return parser


def parse(source, language: str = "javascript") -> SyntaxTree:
    """Parse ``source`` (str or UTF-8 bytes) into a SyntaxTree.

    Raises ParseError on syntax tree-sitter could not represent cleanly.
    """
    if isinstance(source, str):
        source = source.encode("utf-8")
    if b"\x00" in source[:8192]:
        raise ParseError("Binary content is not JavaScript source")

    ts_tree = _get_parser(language).parse(source)
    root = ts_tree.root_node
    if root.has_error:
        bad = _first_error_node(root)
        span = Span.from_ts_node(bad) if bad is not None else Span.from_ts_node(root)
        what = "missing token" if bad is not None and bad.is_missing else "syntax error"
        raise ParseError(f"{what} near '{_snippet(source, span)}'", span)

    tree = _Converter(source, language).convert(root)
    logger.debug("Parsed %d bytes (%s): %d nodes, %d scopes, %d comments",
                 len(source), language, len(tree.nodes), len(tree.scopes), len(tree.comments))
    return tree


def _snippet(source: bytes, span: Span) -> str:
    text = source[span.start_byte:span.end_byte].decode("utf-8", errors="replace")
    text = text.splitlines()[0] if text else ""
    return text[:40]


def _first_error_node(root):
    cursor = root.walk()
    visited = False
    while True:
        node = cursor.node
        if not visited and (node.type == "ERROR" or node.is_missing):
            return node
        if not visited and cursor.goto_first_child():
            continue
        if cursor.goto_next_sibling():
            visited = False
            continue
        if cursor.goto_parent():
            visited = True
            continue
        return None


class _Converter:
    """Walks a tree-sitter tree with a cursor and builds SyntaxNodes."""

    def __init__(self, source: bytes, language: str):
        self.source = source
        self.language = language
        self.nodes: List[SyntaxNode] = []
        self.comments: List[Comment] = []

    def convert(self, ts_root) -> SyntaxTree:
        root = self._make(ts_root, None)
        cursor = ts_root.walk()
        if cursor.goto_first_child():
            stack = [root]
            while True:
                node = cursor.node
                parent = stack[-1]
                descended = False
                if node.type == "comment":
                    self._add_comment(node)
                elif node.type == "optional_chain":
                    parent.optional_chain = True
                elif node.is_named:
                    sn = self._make(node, cursor.field_name)
                    sn.parent = parent
                    parent.children.append(sn)
                    if node.child_count and cursor.goto_first_child():
                        stack.append(sn)
                        descended = True
                else:
                    self._record_token(parent, node, cursor.field_name)
                if descended:
                    continue
                finished = False
                while not cursor.goto_next_sibling():
                    cursor.goto_parent()
                    stack.pop()
                    if not stack:
                        finished = True
                        break
                if finished:
                    break

        tree = SyntaxTree(root=root, source=self.source, language=self.language,
                          comments=sorted(self.comments, key=lambda c: c.span.start_byte))
        _assign_scopes(tree)
        for i, n in enumerate(root.walk()):
            n.index = i
            tree.nodes.append(n)
        return tree

    def _make(self, ts_node, field_name: Optional[str]) -> SyntaxNode:
        kind = _KIND_BY_TYPE.get(ts_node.type)
        if kind is None:
            kind = NodeKind.JSX if ts_node.type.startswith("jsx_") else NodeKind.OTHER
        if kind == NodeKind.OTHER and ts_node.type.endswith("_type"):
            kind = NodeKind.TYPE
        return SyntaxNode(kind=kind, type=ts_node.type, span=Span.from_ts_node(ts_node),
                          field=field_name)

    def _record_token(self, parent: SyntaxNode, ts_node, field_name: Optional[str]):
        tok = ts_node.type
        if tok == "?." or field_name == "optional_chain":
            parent.optional_chain = True
        elif field_name == "kind" or (tok in _KEYWORD_TOKENS and parent.keyword is None):
            parent.keyword = tok
        elif field_name == "operator":
            parent.operator = tok
        elif tok in ("in", "of") and parent.type == "for_in_statement":
            parent.operator = tok

    def _add_comment(self, ts_node):
        span = Span.from_ts_node(ts_node)
        line_start = self.source.rfind(b"\n", 0, span.start_byte) + 1
        own_line = self.source[line_start:span.start_byte].strip() == b""
        text = self.source[span.start_byte:span.end_byte].decode("utf-8", errors="replace")
        self.comments.append(Comment(span=span, text=text, own_line=own_line))


# ═══════════════════════════════════════════════════════════════════════
#  Scopes
# ═══════════════════════════════════════════════════════════════════════

_NAME_STAYS_OUTSIDE = {"function_declaration", "generator_function_declaration",
                       "class_declaration", "abstract_class_declaration"}


def _assign_scopes(tree: SyntaxTree):
    root = tree.root
    tree.scopes.append(Scope(id=0, kind="program", node=root, parent=None, function_scope=0))
    root.scope_id = 0
    stack = [root]
    while stack:
        node = stack.pop()
        outer = node.scope_id
        inner = outer
        new_kind = _scope_kind(node)
        if new_kind is not None:
            fn_scope = tree.scopes[outer].function_scope
            sid = len(tree.scopes)
            tree.scopes.append(Scope(id=sid, kind=new_kind, node=node, parent=outer,
                                     function_scope=sid if new_kind == "function" else fn_scope))
            inner = sid
        for child in node.children:
            if child.field == "name" and node.type in _NAME_STAYS_OUTSIDE:
                child.scope_id = outer
            else:
                child.scope_id = inner
            stack.append(child)


def _scope_kind(node: SyntaxNode) -> Optional[str]:
    if node.kind == NodeKind.FUNCTION:
        return "function"
    if node.kind in (NodeKind.FOR, NodeKind.FOR_IN):
        return "for"
    if node.kind == NodeKind.CATCH:
        return "catch"
    if node.kind == NodeKind.SWITCH_BODY:
        return "block"
    if node.kind == NodeKind.BLOCK:
        parent = node.parent
        if parent is not None and parent.kind in (NodeKind.FUNCTION, NodeKind.CATCH):
            return None
        return "block"
    return None


# ═══════════════════════════════════════════════════════════════════════
#  Query helpers
# ═══════════════════════════════════════════════════════════════════════

def enclosing_statement(node: SyntaxNode) -> Optional[SyntaxNode]:
    """The ancestor-or-self that sits directly in a statement list."""
    current = node
    while current is not None:
        if current.parent is not None and current.parent.kind in STATEMENT_LIST_KINDS:
            return current
        current = current.parent
    return None


def call_parts(tree: SyntaxTree, node: SyntaxNode):
    """For ``recv.method(args)`` return (receiver, method_name, argument nodes).

    Returns (None, callee_text, args) for plain calls and None for non-calls.
    """
    if node.kind != NodeKind.CALL:
        return None
    fn = node.child("function")
    args_node = node.child("arguments")
    args = list(args_node.children) if args_node is not None and args_node.kind == NodeKind.ARGUMENTS else []
    if fn is None:
        return None
    if fn.kind == NodeKind.MEMBER:
        obj = fn.child("object")
        prop = fn.child("property")
        if obj is not None and prop is not None:
            return obj, tree.text(prop), args
    return None, tree.text(fn), args


def statement_siblings(stmt: SyntaxNode) -> List[SyntaxNode]:
    """Statements in the same list as ``stmt`` (switch-case values excluded)."""
    parent = stmt.parent
    if parent is None:
        return [stmt]
    if parent.kind == NodeKind.SWITCH_CASE:
        return [c for c in parent.children if c.field == "body"]
    return list(parent.children)


def next_statement(stmt: SyntaxNode) -> Optional[SyntaxNode]:
    siblings = statement_siblings(stmt)
    for i, s in enumerate(siblings):
        if s is stmt:
            return siblings[i + 1] if i + 1 < len(siblings) else None
    return None
