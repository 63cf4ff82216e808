"""
Effect classification for expressions.

Conservative, allowlist-driven answers to three questions:
  • can evaluating this expression have side effects?
  • is it trivially pure (no calls, no property reads, nothing that can throw)?
  • does it read only values an intervening evaluation cannot change?

Calls are side-effect-free only when the callee is in the configured
pure-function allowlist (``SimplifyConfig.pure_functions``).
"""

from typing import Callable, FrozenSet, Optional

from simplifier.js_parser import NodeKind, SyntaxNode, SyntaxTree

# Globals whose identity a well-behaved program never rebinds
STABLE_GLOBALS = frozenset({
    "undefined", "NaN", "Infinity", "Math", "JSON", "Object", "Array", "String",
    "Number", "Boolean", "Symbol", "BigInt", "Date", "RegExp", "Map", "Set",
    "Promise", "Reflect", "console", "window", "document", "globalThis",
})

STABLE_BINDING_KINDS = frozenset({"const", "function", "class", "import"})

_ALWAYS_EFFECTFUL = frozenset({
    NodeKind.ASSIGNMENT, NodeKind.AUGMENTED_ASSIGNMENT, NodeKind.UPDATE,
    NodeKind.AWAIT, NodeKind.YIELD, NodeKind.JSX,
})

_TRIVIAL_KINDS = frozenset({
    NodeKind.LITERAL, NodeKind.IDENTIFIER, NodeKind.THIS, NodeKind.UNARY,
    NodeKind.BINARY, NodeKind.TERNARY, NodeKind.PARENTHESIZED, NodeKind.TEMPLATE,
    NodeKind.TEMPLATE_SUBSTITUTION, NodeKind.ARRAY, NodeKind.OBJECT, NodeKind.PAIR,
    NodeKind.SHORTHAND_PROPERTY, NodeKind.PROPERTY_NAME, NodeKind.TYPE_EXPRESSION,
    NodeKind.TYPE, NodeKind.SPREAD,
})

# Resolves an identifier node to its binding kind ("const", "let", ...) or
# None when the name is not declared in the file.
BindingKindLookup = Callable[[SyntaxNode], Optional[str]]


def callee_name(tree: SyntaxTree, call: SyntaxNode) -> str:
    """Dotted callee text with whitespace removed (``Math.max``, ``el.closest``)."""
    fn = call.child("function") if call.kind == NodeKind.CALL else call.child("constructor")
    if fn is None:
        return ""
    return "".join(tree.text(fn).split())


def is_pure_call(tree: SyntaxTree, call: SyntaxNode, pure_functions: FrozenSet[str]) -> bool:
    name = callee_name(tree, call)
    if not name:
        return False
    if name in pure_functions:
        return True
    fn = call.child("function") if call.kind == NodeKind.CALL else call.child("constructor")
    if fn is not None and fn.kind == NodeKind.MEMBER:
        method = name.rsplit(".", 1)[-1].lstrip("?")
        return f".{method}" in pure_functions
    return False


def has_side_effects(tree: SyntaxTree, node: SyntaxNode, pure_functions: FrozenSet[str]) -> bool:
    """True unless every sub-evaluation is known to be free of side effects.

    Function bodies are inspected too: a callback handed to an allowlisted
    method (``map``, ``filter``) still runs.
    """
    for n in node.walk():
        if n.kind in _ALWAYS_EFFECTFUL:
            return True
        if n.kind == NodeKind.UNARY and n.operator == "delete":
            return True
        if n.kind in (NodeKind.CALL, NodeKind.NEW) and not is_pure_call(tree, n, pure_functions):
            return True
    return False


def is_trivially_pure(node: SyntaxNode) -> bool:
    """Literals, identifiers and operators only: evaluating it can neither
    observe nor change program state, nor throw (closures are not entered)."""
    stack = [node]
    while stack:
        n = stack.pop()
        if n.kind == NodeKind.FUNCTION:
            continue
        if n.kind == NodeKind.UNARY and n.operator == "delete":
            return False
        if n.kind == NodeKind.TEMPLATE and n.parent is not None and n.parent.kind == NodeKind.CALL:
            return False
        if n.kind not in _TRIVIAL_KINDS:
            return False
        stack.extend(n.children)
    return True


def reads_only_stable(node: SyntaxNode, lookup: BindingKindLookup, tree: SyntaxTree) -> bool:
    """Every value read is immune to intervening evaluations.

    Stable: literals, identifiers bound by const/function/class/import, and
    non-computed property chains rooted at a stable global (``console.log``).
    """
    stack = [node]
    while stack:
        n = stack.pop()
        if n.kind in (NodeKind.IDENTIFIER, NodeKind.SHORTHAND_PROPERTY):
            kind = lookup(n)
            if kind is None:
                if tree.text(n) not in STABLE_GLOBALS:
                    return False
            elif kind not in STABLE_BINDING_KINDS:
                return False
            continue
        if n.kind == NodeKind.MEMBER:
            if not _global_property_chain(n, lookup, tree):
                return False
            continue
        if n.kind in (NodeKind.CALL, NodeKind.NEW, NodeKind.SUBSCRIPT, NodeKind.THIS,
                      NodeKind.FUNCTION, NodeKind.AWAIT, NodeKind.YIELD, NodeKind.JSX):
            return False
        stack.extend(n.children)
    return True


def _global_property_chain(member: SyntaxNode, lookup: BindingKindLookup, tree: SyntaxTree) -> bool:
    current = member
    while current.kind == NodeKind.MEMBER and not current.optional_chain:
        current = current.child("object")
        if current is None:
            return False
    if current.kind != NodeKind.IDENTIFIER:
        return False
    kind = lookup(current)
    if kind is None:
        return tree.text(current) in STABLE_GLOBALS
    return kind == "import"


def expression_depth(node: SyntaxNode) -> int:
    """Nesting depth of operators and calls; property chains and
    parentheses do not add depth."""
    passthrough = {NodeKind.PARENTHESIZED, NodeKind.MEMBER, NodeKind.SUBSCRIPT,
                   NodeKind.ARGUMENTS, NodeKind.TEMPLATE_SUBSTITUTION, NodeKind.PAIR,
                   NodeKind.TYPE_EXPRESSION}
    leaves = {NodeKind.FUNCTION}
    best = 0
    stack = [(node, 0)]
    while stack:
        n, depth = stack.pop()
        if n.kind not in passthrough:
            depth += 1
        best = max(best, depth)
        if n.kind in leaves:
            continue
        for c in n.children:
            stack.append((c, depth))
    return best
