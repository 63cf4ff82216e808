"""
Binding Analyzer — declarations, references and single-use inlining candidates.

Builds a binding table for one ``SyntaxTree``:
  • every declaration (const/let/var, params, functions, classes, catch,
    imports, for-of heads) registered in its scope, var hoisted
  • every identifier reference resolved through the scope chain and
    classified as a write, a plain read, or some other use
  • single-use classification for ``const``/``let`` bindings

A binding is single-use only when inlining its initializer at its one
usage provably preserves evaluation order and count; every check is
conservative and a failed check records the reason on the binding.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from simplifier import effects
from simplifier.js_parser import (
    LOOP_KINDS, STATEMENT_LIST_KINDS, NodeKind, SyntaxNode, SyntaxTree,
    next_statement,
)
from simplifier.models import Finding, FindingKind, Span

logger = logging.getLogger(__name__)


@dataclass
class Usage:
    node: SyntaxNode
    is_write: bool = False
    plain_read: bool = False

    @property
    def span(self) -> Span:
        return self.node.span


@dataclass
class Binding:
    """A declared name.  Frozen by convention once ``BindingAnalyzer.analyze`` returns."""
    id: int
    name: str
    kind: str                               # const/let/var/param/function/class/catch/import
    name_node: SyntaxNode
    scope_id: int
    declaration: Optional[SyntaxNode] = None    # statement node for const/let/var
    declarator: Optional[SyntaxNode] = None
    initializer: Optional[SyntaxNode] = None
    usages: List[Usage] = field(default_factory=list)
    exported: bool = False
    single_use: bool = False
    annotated: bool = False
    narrowed: bool = False
    exclusion: Optional[str] = None

    @property
    def declaration_span(self) -> Span:
        node = self.declaration or self.name_node
        return node.span

    @property
    def reads(self) -> List[Usage]:
        return [u for u in self.usages if not u.is_write]

    @property
    def writes(self) -> List[Usage]:
        return [u for u in self.usages if u.is_write]


class BindingTable:
    """Lookup structure produced by the analyzer."""

    def __init__(self, tree: SyntaxTree):
        self.tree = tree
        self.bindings: List[Binding] = []
        self.by_scope: Dict[int, Dict[str, Binding]] = {}
        self.by_node: Dict[int, Binding] = {}       # identifier node index -> binding

    def declare(self, binding: Binding):
        self.bindings.append(binding)
        self.by_scope.setdefault(binding.scope_id, {})[binding.name] = binding
        self.by_node[binding.name_node.index] = binding

    def resolve(self, name: str, scope_id: int) -> Optional[Binding]:
        """Innermost binding of ``name`` visible from ``scope_id``."""
        sid: Optional[int] = scope_id
        while sid is not None:
            found = self.by_scope.get(sid, {}).get(name)
            if found is not None:
                return found
            sid = self.tree.scopes[sid].parent
        return None

    def binding_of(self, node: SyntaxNode) -> Optional[Binding]:
        """Binding an identifier node declares or refers to."""
        return self.by_node.get(node.index)

    def kind_of(self, node: SyntaxNode) -> Optional[str]:
        binding = self.binding_of(node)
        return binding.kind if binding is not None else None

    def named(self, name: str) -> List[Binding]:
        return [b for b in self.bindings if b.name == name]

    def single_use_bindings(self) -> List[Binding]:
        return [b for b in self.bindings if b.single_use]

    def findings(self) -> List[Finding]:
        """INLINABLE_SINGLE_USE findings, one per single-use binding."""
        result = []
        for b in self.single_use_bindings():
            usage = b.reads[0]
            result.append(Finding(
                kind=FindingKind.INLINABLE_SINGLE_USE,
                primary_span=b.declaration_span,
                rationale=(f"'{b.name}' is read exactly once, in the next statement; "
                           f"its initializer can be inlined at line {usage.span.start_line}"),
                symbol=b.name,
                referenced_spans=[usage.span],
                subject=b,
            ))
        return result


# ═══════════════════════════════════════════════════════════════════════
#  Analyzer
# ═══════════════════════════════════════════════════════════════════════

_TYPE_GUARD_FUNCTIONS = {"Array.isArray", "Number.isInteger", "Number.isFinite", "Number.isNaN"}


class BindingAnalyzer:
    """Builds a BindingTable and classifies single-use bindings."""

    def __init__(self, tree: SyntaxTree, pure_functions: FrozenSet[str] = frozenset(),
                 max_inline_depth: int = 5,
                 suppression_marker: str = "simplify-ignore"):
        self.tree = tree
        self.pure_functions = pure_functions
        self.max_inline_depth = max_inline_depth
        self.suppression_marker = suppression_marker
        self.table = BindingTable(tree)

    def analyze(self) -> BindingTable:
        self._collect_declarations()
        self._resolve_references()
        for b in self.table.bindings:
            if b.kind in ("const", "let"):
                self._classify(b)
        logger.debug("%d bindings, %d single-use",
                     len(self.table.bindings), len(self.table.single_use_bindings()))
        return self.table

    # ── declarations ──

    def _declare(self, name_node: SyntaxNode, kind: str, scope_id: int, **extra) -> Binding:
        binding = Binding(id=len(self.table.bindings), name=self.tree.text(name_node),
                          kind=kind, name_node=name_node, scope_id=scope_id, **extra)
        self.table.declare(binding)
        return binding

    def _collect_declarations(self):
        tree = self.tree
        for node in tree.nodes:
            if node.kind == NodeKind.VARIABLE_DECLARATION:
                self._declare_variables(node)
            elif node.kind == NodeKind.FUNCTION:
                name = node.child("name")
                if name is not None and name.kind == NodeKind.IDENTIFIER:
                    self._declare(name, "function", name.scope_id)
                self._declare_parameters(node)
            elif node.kind == NodeKind.CLASS:
                name = node.child("name")
                if name is not None and name.kind == NodeKind.IDENTIFIER:
                    self._declare(name, "class", name.scope_id)
            elif node.kind == NodeKind.CATCH:
                param = node.child("parameter")
                if param is not None:
                    for ident in pattern_names(param):
                        self._declare(ident, "catch", ident.scope_id)
            elif node.kind == NodeKind.IMPORT:
                self._declare_imports(node)

    def _declare_variables(self, decl: SyntaxNode):
        keyword = decl.keyword or "var"
        exported = decl.parent is not None and decl.parent.kind == NodeKind.EXPORT
        statement = decl.parent if exported else decl
        for declarator in decl.children:
            if declarator.kind != NodeKind.DECLARATOR:
                continue
            name = declarator.child("name")
            if name is None:
                continue
            for ident in pattern_names(name):
                scope_id = ident.scope_id
                if keyword == "var":
                    scope_id = self.tree.scopes[scope_id].function_scope
                self._declare(ident, keyword, scope_id,
                              declaration=statement, declarator=declarator,
                              initializer=declarator.child("value") if ident is name else None,
                              exported=exported)

    def _declare_parameters(self, fn: SyntaxNode):
        single = fn.child("parameter")
        if single is not None:
            for ident in pattern_names(single):
                self._declare(ident, "param", ident.scope_id)
        params = fn.child("parameters")
        if params is not None:
            for p in params.children:
                for ident in pattern_names(p):
                    self._declare(ident, "param", ident.scope_id)

    def _declare_imports(self, node: SyntaxNode):
        for n in node.walk():
            if n.kind != NodeKind.IDENTIFIER:
                continue
            parent = n.parent
            if parent is not None and parent.kind == NodeKind.IMPORT_SPECIFIER:
                alias = parent.child("alias")
                if alias is not None and alias is not n:
                    continue
            self._declare(n, "import", 0)

    # ── references ──

    def _resolve_references(self):
        tree = self.tree
        for_heads = self._for_head_declarations()
        for node in tree.nodes:
            if node.kind not in (NodeKind.IDENTIFIER, NodeKind.SHORTHAND_PROPERTY) \
                    and node.type != "shorthand_property_identifier_pattern":
                continue
            if node.index in self.table.by_node:
                continue
            if _inside_kind(node, (NodeKind.IMPORT, NodeKind.TYPE)):
                continue
            name = tree.text(node)
            if node.index in for_heads:
                keyword = for_heads[node.index]
                scope_id = node.scope_id
                if keyword == "var":
                    scope_id = tree.scopes[scope_id].function_scope
                self._declare(node, keyword, scope_id)
                continue
            binding = self.table.resolve(name, node.scope_id)
            if binding is None:
                continue
            self.table.by_node[node.index] = binding
            is_write = _is_write(node)
            binding.usages.append(Usage(node=node, is_write=is_write,
                                        plain_read=not is_write and _is_plain_read(node)))

    def _for_head_declarations(self) -> Dict[int, str]:
        """Identifiers declared by ``for (const x of ...)`` heads."""
        heads = {}
        for node in self.tree.nodes:
            if node.kind != NodeKind.FOR_IN or node.keyword is None:
                continue
            left = node.child("left")
            if left is None:
                continue
            for ident in pattern_names(left):
                heads[ident.index] = node.keyword
        return heads

    # ── single-use classification ──

    def _classify(self, b: Binding):
        reason = self._exclusion_reason(b)
        if reason is None:
            b.single_use = True
        else:
            b.exclusion = reason
            logger.debug("'%s' at %s is not inlinable: %s", b.name, b.name_node.span.format(), reason)

    def _exclusion_reason(self, b: Binding) -> Optional[str]:
        tree = self.tree
        decl = b.declaration
        if decl is None or b.declarator is None:
            return "declared in a loop head"
        if b.exported:
            return "exported"
        if decl.parent is None or decl.parent.kind not in STATEMENT_LIST_KINDS:
            return "not declared in a statement list"
        if len([c for c in decl.children if c.kind == NodeKind.DECLARATOR]) != 1:
            return "declaration has several declarators"
        if b.name_node.kind != NodeKind.IDENTIFIER or b.declarator.child("name") is not b.name_node:
            return "destructuring declaration"
        if b.initializer is None:
            return "no initializer"
        if b.declarator.child("type") is not None:
            return "type-annotated declaration"
        if b.writes:
            return "reassigned"
        if self._is_narrowing_subject(b):
            b.narrowed = True
            return "type-narrowing subject"
        if len(b.usages) != 1:
            return f"{len(b.usages)} usages"
        usage = b.usages[0]
        if not usage.plain_read:
            return "usage is not a plain read"

        following = next_statement(decl)
        if following is None or not _is_descendant(usage.node, following):
            return "usage is not in the next statement"

        init = b.initializer
        if effects.expression_depth(init) > self.max_inline_depth:
            return "initializer too complex"
        if _contains_kind(init, (NodeKind.YIELD, NodeKind.AWAIT)) and \
                _crosses_function(usage.node, following):
            return "await/yield would move into a nested function"

        path = _evaluation_path(usage.node, following)
        if path is None:
            return "usage is inside a function or repeated loop part"
        preceding, conditional = path
        init_trivial = effects.is_trivially_pure(init)
        if conditional and not init_trivial:
            return "usage is conditionally evaluated"
        init_pure = init_trivial or not effects.has_side_effects(tree, init, self.pure_functions)
        for p in preceding:
            if effects.has_side_effects(tree, p, self.pure_functions):
                return "earlier evaluation has side effects"
            if not init_pure and not effects.reads_only_stable(p, self.table.kind_of, tree):
                return "earlier evaluation reads mutable state"

        if self._shadowed_at_usage(init, usage.node):
            return "initializer name is shadowed at the usage"
        if self._is_annotated(decl):
            b.annotated = True
            return "annotated by a preceding comment"
        return None

    def _shadowed_at_usage(self, init: SyntaxNode, usage: SyntaxNode) -> bool:
        for n in init.walk():
            if n.kind not in (NodeKind.IDENTIFIER, NodeKind.SHORTHAND_PROPERTY):
                continue
            here = self.table.binding_of(n)
            if here is not None and _is_descendant(here.name_node, init):
                continue
            there = self.table.resolve(self.tree.text(n), usage.scope_id)
            if here is not there:
                return True
        return False

    def _is_annotated(self, decl: SyntaxNode) -> bool:
        comment = self.tree.comment_ending_on(decl.span.start_line - 1)
        # a suppression marker is not an explanation of the value
        return comment is not None and self.suppression_marker not in comment.text

    # ── narrowing ──

    def _is_narrowing_subject(self, b: Binding) -> bool:
        for chain in self._condition_chains():
            conditions, branches = chain
            hits = sum(1 for c in conditions if self._tests_binding(c, b))
            if hits >= 2:
                return True
            subjects = [self._tested_expression(c) for c in conditions]
            if subjects and None not in subjects and len(set(subjects)) == 1:
                read_branches = sum(
                    1 for br in branches
                    if any(_is_descendant(u.node, br) for u in b.usages)
                )
                if read_branches >= 2:
                    return True
        return False

    def _condition_chains(self):
        """(conditions, branches) for every if/else-if chain, ternary and switch."""
        cached = getattr(self, "_chains", None)
        if cached is not None:
            return cached
        chains = []
        for node in self.tree.nodes:
            if node.kind == NodeKind.IF and not _is_else_if(node):
                conditions, branches = [], []
                current = node
                while current is not None:
                    cond = current.child("condition")
                    if cond is not None:
                        conditions.append(cond)
                    cons = current.child("consequence")
                    if cons is not None:
                        branches.append(cons)
                    alt = current.child("alternative")
                    current = None
                    if alt is not None:
                        inner = alt.children[0] if alt.kind == NodeKind.ELSE and alt.children else alt
                        if inner.kind == NodeKind.IF:
                            current = inner
                        else:
                            branches.append(inner)
                chains.append((conditions, branches))
            elif node.kind == NodeKind.TERNARY:
                cond = node.child("condition")
                branches = [c for c in (node.child("consequence"), node.child("alternative")) if c]
                if cond is not None:
                    chains.append(([cond], branches))
            elif node.kind == NodeKind.SWITCH:
                value = node.child("value")
                body = node.child("body")
                if value is not None and body is not None:
                    cases = [c for c in body.children if c.kind == NodeKind.SWITCH_CASE]
                    chains.append(([value], cases))
        self._chains = chains
        return chains

    def _tested_expression(self, cond: SyntaxNode) -> Optional[str]:
        """Text of the expression whose type/shape ``cond`` tests, if it is a type test."""
        for n in cond.walk():
            subject = self._type_test_subject(n)
            if subject is not None:
                return self.tree.text(subject)
        return None

    def _tests_binding(self, cond: SyntaxNode, b: Binding) -> bool:
        for n in cond.walk():
            subject = self._type_test_subject(n)
            if subject is not None and subject.kind == NodeKind.IDENTIFIER \
                    and self.table.binding_of(subject) is b:
                return True
        return False

    def _type_test_subject(self, n: SyntaxNode) -> Optional[SyntaxNode]:
        if n.kind == NodeKind.UNARY and n.operator == "typeof":
            return n.child("argument")
        if n.kind == NodeKind.BINARY and n.operator == "instanceof":
            return n.child("left")
        if n.kind == NodeKind.BINARY and n.operator == "in":
            return n.child("right")
        if n.kind == NodeKind.BINARY and n.operator in ("===", "==", "!==", "!="):
            left = n.child("left")
            if left is not None and left.kind == NodeKind.MEMBER:
                return left.child("object")
        if n.kind == NodeKind.CALL:
            fn = n.child("function")
            args = n.child("arguments")
            if fn is None or args is None or len(args.children) != 1:
                return None
            name = "".join(self.tree.text(fn).split())
            short = name.rsplit(".", 1)[-1]
            if name in _TYPE_GUARD_FUNCTIONS or (short.startswith("is") and short[2:3].isupper()):
                return args.children[0]
        return None


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def pattern_names(node: SyntaxNode) -> List[SyntaxNode]:
    """Identifier nodes a binding pattern declares."""
    names = []
    stack = [node]
    while stack:
        n = stack.pop()
        if n.kind == NodeKind.IDENTIFIER or n.type == "shorthand_property_identifier_pattern":
            names.append(n)
        elif n.type == "pair_pattern":
            value = n.child("value")
            if value is not None:
                stack.append(value)
        elif n.type in ("assignment_pattern", "object_assignment_pattern"):
            left = n.child("left")
            if left is not None:
                stack.append(left)
        elif n.type in ("required_parameter", "optional_parameter"):
            pattern = n.child("pattern")
            if pattern is not None:
                stack.append(pattern)
        elif n.type in ("object_pattern", "array_pattern", "rest_pattern"):
            stack.extend(reversed(n.children))
    return names


_DESTRUCTURING_KINDS = (NodeKind.PATTERN, NodeKind.OBJECT, NodeKind.ARRAY, NodeKind.PAIR,
                        NodeKind.SPREAD)


def _is_write(node: SyntaxNode) -> bool:
    child = node
    parent = node.parent
    while parent is not None and parent.kind in _DESTRUCTURING_KINDS:
        if parent.type in ("assignment_pattern", "object_assignment_pattern") and child.field == "right":
            return False
        if parent.kind in (NodeKind.PAIR, NodeKind.PATTERN) and child.field == "key":
            return False
        child, parent = parent, parent.parent
    if parent is None:
        return False
    if parent.kind in (NodeKind.ASSIGNMENT, NodeKind.AUGMENTED_ASSIGNMENT):
        return child.field == "left"
    if parent.kind == NodeKind.UPDATE:
        return child is node
    if parent.kind == NodeKind.FOR_IN and parent.keyword is None:
        return child.field == "left"
    return False


def _is_plain_read(node: SyntaxNode) -> bool:
    """A read whose value alone is consumed, so substituting an expression is sound."""
    parent = node.parent
    if parent is None:
        return False
    if parent.kind in (NodeKind.EXPORT_SPECIFIER, NodeKind.EXPORT):
        return False
    if parent.kind == NodeKind.JSX and parent.type != "jsx_expression":
        return False
    if parent.kind == NodeKind.UNARY and parent.operator == "delete":
        return False
    if node.kind == NodeKind.IDENTIFIER and parent.kind in (NodeKind.MEMBER, NodeKind.SUBSCRIPT) \
            and node.field == "object":
        # x.a = 1 mutates through x; keep x
        outer = parent
        while outer.parent is not None and outer.parent.kind in (NodeKind.MEMBER, NodeKind.SUBSCRIPT) \
                and outer.field == "object":
            outer = outer.parent
        grand = outer.parent
        if grand is not None and grand.kind in (NodeKind.ASSIGNMENT, NodeKind.AUGMENTED_ASSIGNMENT) \
                and outer.field == "left":
            return False
        if grand is not None and grand.kind == NodeKind.UPDATE:
            return False
    return True


def _evaluation_path(usage: SyntaxNode, stmt: SyntaxNode):
    """Sub-expressions of ``stmt`` evaluated before ``usage``, and whether
    reaching ``usage`` is conditional.  None when ``usage`` sits in a nested
    function or a loop part evaluated more than once."""
    preceding: List[SyntaxNode] = []
    conditional = False
    child = usage
    while child is not stmt:
        parent = child.parent
        if parent is None:
            return None
        kind = parent.kind
        if (kind == NodeKind.FUNCTION and child.field != "name") or kind == NodeKind.CLASS_BODY:
            return None
        if kind in LOOP_KINDS:
            if not ((kind == NodeKind.FOR_IN and child.field == "right")
                    or (kind == NodeKind.FOR and child.field == "initializer")):
                return None
        if kind == NodeKind.IF and child.field in ("consequence", "alternative"):
            conditional = True
        elif kind == NodeKind.TERNARY and child.field in ("consequence", "alternative"):
            conditional = True
        elif kind == NodeKind.BINARY and parent.operator in ("&&", "||", "??") and child.field == "right":
            conditional = True
        elif kind == NodeKind.AUGMENTED_ASSIGNMENT and child.field == "right":
            conditional = conditional or parent.operator in ("&&=", "||=", "??=")
        elif kind in (NodeKind.SWITCH_CASE, NodeKind.SWITCH_BODY, NodeKind.TRY,
                      NodeKind.CATCH, NodeKind.FINALLY, NodeKind.PATTERN):
            conditional = True
        elif kind in (NodeKind.CALL, NodeKind.SUBSCRIPT, NodeKind.MEMBER) \
                and child.field not in ("function", "object") and _has_optional_chain(parent):
            conditional = True

        for sib in parent.children:
            if sib is child:
                break
            if _evaluated(sib, parent):
                preceding.append(sib)
        child = parent
    return preceding, conditional


def _evaluated(node: SyntaxNode, parent: SyntaxNode) -> bool:
    """Whether ``node`` produces an evaluation (as opposed to naming a target)."""
    if node.kind in (NodeKind.TYPE, NodeKind.PROPERTY_NAME):
        return False
    if parent.kind in (NodeKind.DECLARATOR, NodeKind.FOR_IN) and node.field in ("name", "left"):
        return node.kind not in (NodeKind.IDENTIFIER, NodeKind.PATTERN)
    if parent.kind == NodeKind.ASSIGNMENT and node.field == "left":
        return node.kind != NodeKind.IDENTIFIER
    return True


def _has_optional_chain(node: SyntaxNode) -> bool:
    current = node
    while current is not None and current.kind in (NodeKind.CALL, NodeKind.MEMBER, NodeKind.SUBSCRIPT):
        if current.optional_chain:
            return True
        current = current.child("function") or current.child("object")
    return False


def _crosses_function(node: SyntaxNode, stop: SyntaxNode) -> bool:
    for a in node.ancestors():
        if a is stop:
            return False
        if a.kind == NodeKind.FUNCTION:
            return True
    return False


def _contains_kind(node: SyntaxNode, kinds) -> bool:
    return any(n.kind in kinds for n in node.walk())


def _inside_kind(node: SyntaxNode, kinds) -> bool:
    return any(a.kind in kinds for a in node.ancestors())


def _is_descendant(node: SyntaxNode, ancestor: SyntaxNode) -> bool:
    return node is ancestor or ancestor.is_ancestor_of(node)


def _is_else_if(node: SyntaxNode) -> bool:
    parent = node.parent
    return parent is not None and parent.kind == NodeKind.ELSE


def analyze_bindings(tree: SyntaxTree, pure_functions: FrozenSet[str] = frozenset(),
                     max_inline_depth: int = 5,
                     suppression_marker: str = "simplify-ignore") -> BindingTable:
    """Convenience wrapper around ``BindingAnalyzer(...).analyze()``."""
    return BindingAnalyzer(tree, pure_functions, max_inline_depth, suppression_marker).analyze()
