"""
Operator precedence for expression substitution.

When an initializer replaces an identifier, it must be wrapped in
parentheses whenever its own precedence is lower than the slot it lands
in requires.  Levels follow the ECMAScript grammar (higher binds tighter).
"""

from simplifier.js_parser import NodeKind, SyntaxNode

SEQUENCE = 1
ASSIGNMENT = 2
CONDITIONAL = 3
COALESCE = 4
LOGICAL_AND = 5
UNARY = 15
UPDATE = 16
NEW_NO_ARGS = 17
CALL = 18
PRIMARY = 20

_BINARY = {
    "??": COALESCE, "||": COALESCE,
    "&&": LOGICAL_AND,
    "|": 6, "^": 7, "&": 8,
    "==": 9, "!=": 9, "===": 9, "!==": 9,
    "<": 10, ">": 10, "<=": 10, ">=": 10, "instanceof": 10, "in": 10,
    "<<": 11, ">>": 11, ">>>": 11,
    "+": 12, "-": 12,
    "*": 13, "/": 13, "%": 13,
    "**": 14,
}

# Slots that accept any AssignmentExpression (everything but a comma sequence)
_ASSIGNMENT_SLOTS = frozenset({
    NodeKind.ARGUMENTS, NodeKind.ARRAY, NodeKind.PAIR, NodeKind.SPREAD,
    NodeKind.DECLARATOR, NodeKind.PATTERN,
})

# Slots that accept a full Expression, comma included
_EXPRESSION_SLOTS = frozenset({
    NodeKind.PARENTHESIZED, NodeKind.RETURN, NodeKind.THROW,
    NodeKind.EXPRESSION_STATEMENT, NodeKind.TEMPLATE_SUBSTITUTION, NodeKind.SWITCH,
    NodeKind.SUBSCRIPT,
})


def expression_precedence(node: SyntaxNode) -> int:
    kind = node.kind
    if kind == NodeKind.SEQUENCE:
        return SEQUENCE
    if kind in (NodeKind.ASSIGNMENT, NodeKind.AUGMENTED_ASSIGNMENT, NodeKind.YIELD):
        return ASSIGNMENT
    if kind == NodeKind.FUNCTION and node.type == "arrow_function":
        return ASSIGNMENT
    if kind == NodeKind.TERNARY:
        return CONDITIONAL
    if kind == NodeKind.BINARY:
        return _BINARY.get(node.operator or "", COALESCE)
    if kind == NodeKind.TYPE_EXPRESSION:
        return CALL - 1 if node.type == "non_null_expression" else _BINARY["<"]
    if kind in (NodeKind.UNARY, NodeKind.AWAIT):
        return UNARY
    if kind == NodeKind.UPDATE:
        return UPDATE
    if kind == NodeKind.NEW:
        return CALL if node.child("arguments") is not None else NEW_NO_ARGS
    if kind in (NodeKind.CALL, NodeKind.MEMBER, NodeKind.SUBSCRIPT):
        return CALL
    return PRIMARY


def needs_parentheses(expr: SyntaxNode, expr_text: str, site: SyntaxNode) -> bool:
    """Whether ``expr`` (rendered as ``expr_text``) needs wrapping to replace ``site``."""
    parent = site.parent
    if parent is None:
        return False
    prec = expression_precedence(expr)
    kind = parent.kind
    slot = site.field

    if kind == NodeKind.BINARY:
        op = parent.operator or ""
        required = _BINARY.get(op, COALESCE)
        if expr.kind == NodeKind.BINARY and _mixes_coalesce(op, expr.operator or ""):
            return True
        if op == "**":
            if slot == "left":
                return prec <= required or expr.kind in (NodeKind.UNARY, NodeKind.AWAIT)
            return prec < required
        if slot == "left":
            return prec < required
        return prec <= required

    if kind in (NodeKind.UNARY, NodeKind.AWAIT):
        if prec < UNARY:
            return True
        op = parent.operator or ""
        return op in ("+", "-") and expr_text.startswith(op)

    if kind in (NodeKind.MEMBER, NodeKind.SUBSCRIPT) and slot == "object":
        return prec < CALL or _bare_integer(expr, expr_text)
    if kind == NodeKind.CALL and slot == "function":
        return prec < CALL
    if kind == NodeKind.NEW and slot == "constructor":
        return prec < PRIMARY and expr.kind != NodeKind.MEMBER
    if kind == NodeKind.TYPE_EXPRESSION:
        return prec < CALL

    if kind == NodeKind.TERNARY:
        if slot == "condition":
            return prec <= CONDITIONAL
        return prec < ASSIGNMENT

    if kind in (NodeKind.ASSIGNMENT, NodeKind.AUGMENTED_ASSIGNMENT):
        return prec < ASSIGNMENT

    if kind == NodeKind.FUNCTION and slot == "body":
        return prec < ASSIGNMENT or expr_text.lstrip().startswith("{")

    if kind in _ASSIGNMENT_SLOTS:
        return prec < ASSIGNMENT
    if kind in _EXPRESSION_SLOTS:
        return False
    if kind == NodeKind.SWITCH_CASE or kind == NodeKind.FOR_IN:
        return prec < ASSIGNMENT
    # Unknown slot: only primaries and member/call chains go in bare
    return prec < CALL


def starts_statement_ambiguously(expr_text: str) -> bool:
    """Text that would be read as a block, declaration or labelled statement."""
    text = expr_text.lstrip()
    if text.startswith("{"):
        return True
    for keyword in ("function", "class", "async function", "let ["):
        if text.startswith(keyword) and (len(text) == len(keyword) or not text[len(keyword)].isalnum()):
            return True
    return False


def _mixes_coalesce(outer: str, inner: str) -> bool:
    """`??` cannot be combined with `||`/`&&` without parentheses."""
    logical = {"||", "&&"}
    return (outer == "??" and inner in logical) or (inner == "??" and outer in logical)


def _bare_integer(expr: SyntaxNode, text: str) -> bool:
    """`1.toFixed()` is a syntax error; `(1).toFixed()` is not."""
    return expr.type == "number" and text.isdigit()
