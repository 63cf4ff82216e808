"""
Rewrite Engine — concrete, behavior-preserving edits for findings.

Instead of describing a fix, the engine produces the exact byte edits:
  1. INLINABLE_SINGLE_USE: substitute the initializer at the usage
     (parenthesized per the precedence table) and delete the declaration
  2. DUPLICATED_PARALLEL_COLLECTION: replace the member declarations with
     one derivation of composite records and rewrite every member usage

Design principle:  **fail closed.**  Any shape the engine cannot prove it
handles leaves the finding informational, with the reason recorded.
"""

import re
import logging
from typing import Dict, List, Optional, Set

from simplifier import effects
from simplifier.binding_analyzer import Binding, BindingTable
from simplifier.correlation import (
    CO_BUILT, CollectionNode, CorrelationDetector, CorrelationGroup, ZipContext,
    _function_params,
)
from simplifier.errors import UnsupportedConstruct
from simplifier.js_parser import NodeKind, SyntaxNode, SyntaxTree, Comment, statement_siblings
from simplifier.models import Edit, Finding, FindingKind, Rewrite, RewriteStatus, Span
from simplifier.naming import field_name, singularize, suggest_group_name
from simplifier.precedence import (
    ASSIGNMENT, expression_precedence, needs_parentheses, starts_statement_ambiguously,
)

logger = logging.getLogger(__name__)

# Comments that steer tools rather than document intent
_DIRECTIVE_RE = re.compile(
    r"^\s*(eslint[- ]|@ts-|prettier-ignore|istanbul |c8 |jshint |jscs:|global |tslint:|@flow|#\s*sourceMappingURL)"
)
_WORD_RE = re.compile(r"[A-Za-z]{2,}")

# Leading characters that continue an unterminated previous statement
_ASI_HAZARD = ("(", "[", "`", "+", "-", "/")

# Iteration methods whose result is unchanged when elements become records
# that are destructured back in the callback parameter
_RECORD_SAFE_METHODS = frozenset({"forEach", "map", "some", "every", "findIndex"})

_NO_TERMINATOR_NEEDED = frozenset({
    NodeKind.FUNCTION, NodeKind.CLASS, NodeKind.IF, NodeKind.FOR, NodeKind.FOR_IN,
    NodeKind.WHILE, NodeKind.BLOCK, NodeKind.TRY, NodeKind.SWITCH, NodeKind.TYPE,
})


class RewriteEngine:
    """Synthesizes Rewrites for the findings of one file."""

    def __init__(self, tree: SyntaxTree, table: BindingTable,
                 detector: Optional[CorrelationDetector] = None,
                 suppression_marker: str = "simplify-ignore",
                 pure_functions: frozenset = frozenset()):
        self.tree = tree
        self.table = table
        self.detector = detector
        self.suppression_marker = suppression_marker
        self.pure_functions = pure_functions
        self._names: Optional[Set[str]] = None

    def synthesize(self, finding: Finding) -> Finding:
        """Attach a Rewrite to ``finding`` or record why none is available."""
        try:
            if finding.kind == FindingKind.INLINABLE_SINGLE_USE:
                finding.rewrite = self.inline(finding.subject)
            else:
                finding.rewrite = self.merge(finding.subject)
            finding.unavailable_reason = None
        except UnsupportedConstruct as e:
            finding.rewrite = None
            finding.unavailable_reason = str(e)
            finding.status = RewriteStatus.UNAVAILABLE
            logger.debug("No rewrite for %s '%s': %s", finding.kind.value, finding.symbol, e)
        return finding

    # ═══════════════════════════════════════════════════════════════════
    #  Single-use inlining
    # ═══════════════════════════════════════════════════════════════════

    def inline(self, b: Binding) -> Rewrite:
        tree = self.tree
        if b is None or not b.single_use or b.initializer is None or b.declaration is None:
            raise UnsupportedConstruct("binding is not an inlining candidate")
        usage = b.reads[0].node
        init = b.initializer
        init_text = tree.text(init)

        if usage.kind == NodeKind.SHORTHAND_PROPERTY:
            value = f"({init_text})" if expression_precedence(init) < ASSIGNMENT else init_text
            replacement = f"{b.name}: {value}"
        else:
            wrap = needs_parentheses(init, init_text, usage)
            starts = self._statement_start_context(usage)
            if starts is not None and starts_statement_ambiguously(init_text):
                wrap = True
            replacement = f"({init_text})" if wrap else init_text
            if starts is not None and starts.kind == NodeKind.EXPRESSION_STATEMENT \
                    and replacement.startswith(_ASI_HAZARD) and self._needs_asi_guard(b.declaration):
                replacement = ";" + replacement

        edits = [Edit(usage.span, replacement)]
        edits.append(self._removal_edit(b.declaration, keep_comment=self._keep_inline_comment))
        try:
            return Rewrite(edits)
        except ValueError as e:
            raise UnsupportedConstruct(str(e))

    def _statement_start_context(self, node: SyntaxNode) -> Optional[SyntaxNode]:
        """The expression statement or arrow body that ``node`` begins, if any."""
        current = node
        while current.parent is not None:
            parent = current.parent
            if parent.kind == NodeKind.FUNCTION and current.field == "body":
                return parent
            if parent.span.start_byte != current.span.start_byte:
                return None
            if parent.kind == NodeKind.EXPRESSION_STATEMENT:
                return parent
            if parent.kind in (NodeKind.PARENTHESIZED, NodeKind.BLOCK, NodeKind.PROGRAM):
                return None
            current = parent
        return None

    def _needs_asi_guard(self, decl: SyntaxNode) -> bool:
        """The statement before ``decl`` would absorb a line starting with ``(``."""
        siblings = statement_siblings(decl)
        prev = None
        for s in siblings:
            if s is decl:
                break
            prev = s
        if prev is None:
            return False
        text = self.tree.text(prev).rstrip()
        if text.endswith(";"):
            return False
        if text.endswith("}") and prev.kind in _NO_TERMINATOR_NEEDED:
            return False
        return True

    def _keep_inline_comment(self, comment: Comment) -> bool:
        body = _comment_body(comment.text)
        if self.suppression_marker and self.suppression_marker in comment.text:
            return False
        if _DIRECTIVE_RE.match(body):
            return False
        return bool(_WORD_RE.search(body))

    # ═══════════════════════════════════════════════════════════════════
    #  Statement removal
    # ═══════════════════════════════════════════════════════════════════

    def _removal_edit(self, stmt: SyntaxNode, keep_comment=None) -> Edit:
        """Delete ``stmt``; whole lines when it stands alone.  A trailing
        comment accepted by ``keep_comment`` stays behind on its own line."""
        tree = self.tree
        source = tree.source
        start, end = stmt.span.start_byte, stmt.span.end_byte
        comment = tree.trailing_comment(stmt)
        tail = comment.span.end_byte if comment is not None else end
        line_end = source.find(b"\n", tail)
        line_end = len(source) if line_end == -1 else line_end
        alone = tree.only_whitespace_before(start) and source[tail:line_end].strip() in (b"", b";")

        kept = ""
        if comment is not None and keep_comment is not None and keep_comment(comment):
            kept = comment.text
        if alone:
            line_start = source.rfind(b"\n", 0, start) + 1
            cut_end = min(line_end + 1, len(source))
            replacement = f"{tree.indentation_at(start)}{kept}\n" if kept else ""
            return Edit(Span.from_offsets(source, line_start, cut_end), replacement)

        # Shares its line with other code: remove the statement and the spaces after it
        cut_end = end
        while cut_end < len(source) and source[cut_end:cut_end + 1] in (b" ", b"\t"):
            cut_end += 1
        if comment is not None and tail > end and not kept:
            cut_end = max(cut_end, tail)
        return Edit(Span.from_offsets(source, start, cut_end), "")

    # ═══════════════════════════════════════════════════════════════════
    #  Parallel collection merging
    # ═══════════════════════════════════════════════════════════════════

    def merge(self, group: CorrelationGroup) -> Rewrite:
        if group is None or self.detector is None:
            raise UnsupportedConstruct("no correlation context")
        plan = _MergePlan(self, group)
        if group.pattern == CO_BUILT:
            edits = plan.co_built_edits()
        else:
            edits = plan.derived_view_edits()
        edits.extend(plan.usage_edits())
        try:
            return Rewrite(_dedupe(edits))
        except ValueError as e:
            raise UnsupportedConstruct(f"conflicting edits: {e}")

    def visible_names(self) -> Set[str]:
        """Every identifier spelled anywhere in the file."""
        if self._names is None:
            self._names = {
                self.tree.text(n) for n in self.tree.nodes
                if n.kind in (NodeKind.IDENTIFIER, NodeKind.SHORTHAND_PROPERTY)
                or n.type == "shorthand_property_identifier_pattern"
            }
        return self._names


class _MergePlan:
    """Naming and edit construction for one CorrelationGroup."""

    def __init__(self, engine: RewriteEngine, group: CorrelationGroup):
        self.engine = engine
        self.tree = engine.tree
        self.table = engine.table
        self.detector = engine.detector
        self.group = group

        if group.pattern == CO_BUILT:
            self.removed = list(group.members)
        else:
            self.removed = group.derived
        self.removed_ids = {m.binding.id for m in self.removed}
        self.element_ids = {m.binding.id for m in group.members}
        self.marker_ids = {s.index for m in self.removed for s, _ in m.markers}

        names = engine.visible_names()
        base = group.anchor.name
        self.record_name = suggest_group_name(base, names)
        self.fields: Dict[int, str] = {}
        taken: List[str] = []
        for m in group.members:
            f = field_name(m.name, taken)
            self.fields[m.binding.id] = f
            taken.append(f)
        self.ready = self.detector.ready_offset(group)
        self.handled: Set[int] = set()      # node indexes already rewritten

    def field_of(self, b: Binding) -> str:
        return self.fields[b.id]

    # ── declarations: derived views ──

    def derived_view_edits(self) -> List[Edit]:
        group, tree = self.group, self.tree
        anchor = group.anchor
        for m in self.removed:
            if m.origin != anchor.index:
                raise UnsupportedConstruct(f"'{m.name}' is derived through an intermediate collection")
            if m.derivation not in ("map", "copy"):
                raise UnsupportedConstruct(f"'{m.name}' is not a map or copy of '{anchor.name}'")
            if m.binding.kind not in ("const", "let") or m.binding.declaration is None \
                    or m.binding.declaration.kind != NodeKind.VARIABLE_DECLARATION:
                raise UnsupportedConstruct(f"'{m.name}' is not a plain const/let declaration")
            if len([c for c in m.binding.declaration.children if c.kind == NodeKind.DECLARATOR]) != 1:
                raise UnsupportedConstruct(f"'{m.name}' shares its declaration with other names")
        decls = self._adjacent_declarations(self.removed)
        self._reject_member_reads(decls)

        callbacks = [m for m in self.removed if m.derivation == "map"]
        for m in callbacks:
            self._check_callback(m)
        param = self._record_param(callbacks)
        if len(callbacks) >= 2:
            for m in callbacks:
                body = m.callback.child("body")
                if effects.has_side_effects(tree, body, self.engine.pure_functions):
                    raise UnsupportedConstruct(
                        f"callback of '{m.name}' may have side effects; merging would reorder them")

        entries = []
        if group.anchor_joined:
            entries.append(_entry(self.field_of(anchor.binding), param))
        for m in self.removed:
            if m.derivation == "copy":
                value = param
            else:
                value = self._renamed_body(m, param)
            entries.append(_entry(self.field_of(m.binding), value))
        record = "{ " + ", ".join(entries) + " }"

        uses_method = all(self._derived_by_method(m) for m in self.removed)
        if uses_method:
            derivation = f"{anchor.name}.map({param} => ({record}))"
        else:
            derivation = f"Array.from({anchor.name}, {param} => ({record}))"
        first = decls[0]
        terminator = ";" if tree.text(first).rstrip().endswith(";") else ""
        edits = [Edit(first.span, f"const {self.record_name} = {derivation}{terminator}")]
        for d in decls[1:]:
            edits.append(self.engine._removal_edit(d, keep_comment=self.engine._keep_inline_comment))
        return edits

    def _derived_by_method(self, m: CollectionNode) -> bool:
        init = m.binding.initializer.unparenthesized()
        if init.kind != NodeKind.CALL:
            return False
        fn = init.child("function")
        if fn is None or fn.kind != NodeKind.MEMBER:
            return False
        obj = fn.child("object")
        return obj is not None and self.table.binding_of(obj) is self.group.anchor.binding

    def _check_callback(self, m: CollectionNode):
        cb = m.callback
        if cb is None:
            raise UnsupportedConstruct(f"callback of '{m.name}' is not a function expression")
        params = _function_params(cb)
        body = cb.child("body")
        if len(params) > 1 or params and params[0].kind != NodeKind.IDENTIFIER:
            raise UnsupportedConstruct(f"callback of '{m.name}' is not a single-parameter callback")
        if body is None or body.kind == NodeKind.BLOCK:
            raise UnsupportedConstruct(f"callback of '{m.name}' has a statement body")
        if self.tree.text(cb).lstrip().startswith("async") or any(
                n.kind in (NodeKind.AWAIT, NodeKind.YIELD) for n in body.walk()):
            raise UnsupportedConstruct(f"callback of '{m.name}' is asynchronous")

    def _record_param(self, callbacks: List[CollectionNode]) -> str:
        for m in callbacks:
            params = _function_params(m.callback)
            if params:
                return self.tree.text(params[0])
        names = self.engine.visible_names()
        candidate = singularize(self.group.anchor.name)
        if candidate == self.group.anchor.name:
            candidate = "item"
        counter = 2
        base = candidate
        while candidate in names:
            candidate = f"{base}{counter}"
            counter += 1
        return candidate

    def _renamed_body(self, m: CollectionNode, param: str) -> str:
        """Callback body text with its parameter renamed to ``param``."""
        tree = self.tree
        cb = m.callback
        params = _function_params(cb)
        own = self.table.binding_of(params[0]) if params else None
        body = cb.child("body")
        edits = []
        for n in body.walk():
            if n.kind not in (NodeKind.IDENTIFIER, NodeKind.SHORTHAND_PROPERTY):
                continue
            target = self.table.binding_of(n)
            if tree.text(n) == param and (own is None or target is not own):
                raise UnsupportedConstruct(f"'{param}' already names something else in '{m.name}'")
            if own is not None and target is own and own.name != param:
                text = f"{own.name}: {param}" if n.kind == NodeKind.SHORTHAND_PROPERTY else param
                edits.append((n.span.start_byte, n.span.end_byte, text))
        text = _splice(tree.source, body.span.start_byte, body.span.end_byte, edits)
        if expression_precedence(body) < ASSIGNMENT:
            text = f"({text})"
        return text

    # ── declarations: co-built ──

    def co_built_edits(self) -> List[Edit]:
        tree = self.tree
        for m in self.removed:
            if m.shape != "sequence" or m.populate is None \
                    or m.populate.kind != NodeKind.EXPRESSION_STATEMENT:
                raise UnsupportedConstruct(f"'{m.name}' is not filled by a push statement")
            if m.binding.kind not in ("const", "let"):
                raise UnsupportedConstruct(f"'{m.name}' is not a const/let declaration")
        decls = self._adjacent_declarations(self.removed)

        pushes = sorted(self.removed, key=lambda m: m.populate.span.start_byte)
        body = pushes[0].populate.parent
        siblings = list(body.children)
        positions = [siblings.index(m.populate) for m in pushes]
        adjacent = positions == list(range(positions[0], positions[0] + len(positions)))
        first_start = pushes[0].populate.span.start_byte
        args = [m.populate.children[0].child("arguments").children[0] for m in pushes]
        self._reject_member_reads(args)
        entries = []
        for m, arg in zip(pushes, args):
            if not adjacent and m is not pushes[0]:
                if not effects.is_trivially_pure(arg) or \
                        not effects.reads_only_stable(arg, self.table.kind_of, tree):
                    raise UnsupportedConstruct("pushes are not adjacent and their values cannot move")
                for n in arg.walk():
                    b = self.table.binding_of(n)
                    if b is not None and b.kind != "function" \
                            and b.name_node.span.start_byte > first_start:
                        raise UnsupportedConstruct(
                            f"value pushed to '{m.name}' reads '{b.name}', declared after the first push")
            entries.append(_entry(self.field_of(m.binding), tree.text(arg)))
        first_decl = decls[0]
        terminator = ";" if tree.text(first_decl).rstrip().endswith(";") else ""
        edits = [Edit(first_decl.span, f"const {self.record_name} = []{terminator}")]
        for d in decls[1:]:
            edits.append(self.engine._removal_edit(d, keep_comment=self.engine._keep_inline_comment))
        first_push = pushes[0].populate
        push_terminator = ";" if tree.text(first_push).rstrip().endswith(";") else ""
        edits.append(Edit(first_push.span,
                          f"{self.record_name}.push({{ {', '.join(entries)} }}){push_terminator}"))
        for m in pushes[1:]:
            edits.append(self.engine._removal_edit(m.populate, keep_comment=self.engine._keep_inline_comment))
        for m in pushes:
            for n in m.populate.walk():
                self.handled.add(n.index)
        return edits

    def _adjacent_declarations(self, members: List[CollectionNode]) -> List[SyntaxNode]:
        decls = sorted((m.binding.declaration for m in members), key=lambda d: d.span.start_byte)
        parent = decls[0].parent
        if any(d.parent is not parent for d in decls):
            raise UnsupportedConstruct("member declarations live in different blocks")
        siblings = statement_siblings(decls[0])
        try:
            positions = [siblings.index(d) for d in decls]
        except ValueError:
            raise UnsupportedConstruct("member declarations are not statements")
        if positions != list(range(positions[0], positions[0] + len(positions))):
            raise UnsupportedConstruct("member declarations are not adjacent")
        for d in decls:
            for n in d.walk():
                self.handled.add(n.index)
        return decls

    def _reject_member_reads(self, regions: List[SyntaxNode]):
        """Removed members must not be read by the code that builds the records."""
        for m in self.removed:
            for u in m.binding.usages:
                if any(r is u.node or r.is_ancestor_of(u.node) for r in regions):
                    raise UnsupportedConstruct(f"'{m.name}' is read while the merged collection is built")

    # ── usages ──

    def usage_edits(self) -> List[Edit]:
        edits: List[Edit] = []
        for ctx in self.detector.zip_contexts:
            edits.extend(self._context_edits(ctx))
        for m in self.removed:
            for u in m.binding.usages:
                if u.node.index in self.handled:
                    continue
                edits.extend(self._member_usage_edits(m, u.node))
        return edits

    def _context_edits(self, ctx: ZipContext) -> List[Edit]:
        """Rewrite a loop/callback that zips group collections by index."""
        tree = self.tree
        if ctx.collection.id not in self.element_ids:
            return []
        accesses = [(n, t) for n, t in ctx.indexed_accesses(self.table)
                    if t.id in self.element_ids]
        touches_removed = ctx.collection.id in self.removed_ids or any(
            t.id in self.removed_ids for _, t in accesses)
        if not touches_removed:
            return []
        if ctx.node.span.start_byte < self.ready:
            raise UnsupportedConstruct(f"'{ctx.collection.name}' is zipped before it is complete")

        edits = []
        R = self.record_name
        local_fields: Dict[int, str] = {}
        if ctx.kind == "callback":
            if ctx.method not in _RECORD_SAFE_METHODS:
                raise UnsupportedConstruct(f"'{ctx.method}' over zipped collections returns elements")
            _check_element_callback(tree, ctx.callback, f"'{ctx.method}' over '{ctx.collection.name}'")
            first = _function_params(ctx.callback)[0]
            own_field = self.field_of(ctx.collection)
            entries = [_entry(own_field, tree.text(first))]
            names = self.engine.visible_names()
            marked = {t.id for n, t in accesses if n.index in self.marker_ids}
            for _, t in accesses:
                if t is ctx.collection or t.id in local_fields or t.id in marked:
                    continue
                f = self.field_of(t)
                if f not in names and f not in (tree.text(first), own_field):
                    local_fields[t.id] = f
                    entries.append(f)
            edits.append(Edit(ctx.receiver.span, R))
            edits.append(Edit(first.span, "{ " + ", ".join(entries) + " }"))
            self.handled.add(ctx.receiver.index)
            for n in first.walk():
                self.handled.add(n.index)
        else:
            obj = ctx.length_node.child("object")
            edits.append(Edit(obj.span, R))
            self.handled.add(obj.index)

        for node, t in accesses:
            if t.id in local_fields:
                text = local_fields[t.id]
            else:
                text = f"{R}[{ctx.index.name}].{self.field_of(t)}"
            if _is_assignment_target(node) and node.index not in self.marker_ids:
                raise UnsupportedConstruct(f"'{t.name}' is written through an index")
            edits.append(Edit(node.span, text))
            for n in node.walk():
                self.handled.add(n.index)
        return edits

    def _member_usage_edits(self, m: CollectionNode, ident: SyntaxNode) -> List[Edit]:
        tree = self.tree
        R = self.record_name
        parent = ident.parent
        where = f"usage of '{m.name}' at {ident.span.start_line}:{ident.span.start_column}"
        if parent is None:
            raise UnsupportedConstruct(f"{where} cannot be rewritten")

        if parent.kind == NodeKind.MEMBER and ident.field == "object" and not parent.optional_chain:
            prop = parent.child("property")
            name = tree.text(prop) if prop is not None else ""
            if name == "length" and not _is_assignment_target(parent):
                self.handled.add(ident.index)
                return [Edit(ident.span, R)]
            call = parent.parent
            if name in _RECORD_SAFE_METHODS and call is not None and call.kind == NodeKind.CALL \
                    and parent.field == "function":
                args = call.child("arguments")
                cb = args.children[0] if args is not None and args.children else None
                if cb is None or cb.kind != NodeKind.FUNCTION:
                    raise UnsupportedConstruct(f"{where}: '{name}' callback is not a function expression")
                _check_element_callback(tree, cb, where)
                params = _function_params(cb)
                if not params or cb.child("parameters") is None and cb.child("parameter") is None:
                    raise UnsupportedConstruct(f"{where}: callback takes no element parameter")
                first = params[0]
                pattern = _entry(self.field_of(m.binding), tree.text(first))
                text = "{ " + pattern + " }"
                if cb.child("parameter") is not None:
                    text = f"({text})"
                self.handled.add(ident.index)
                return [Edit(ident.span, R), Edit(first.span, text)]

        if parent.kind == NodeKind.FOR_IN and ident.field == "right" and parent.operator == "of":
            left = parent.child("left")
            if left is None:
                raise UnsupportedConstruct(f"{where} cannot be rewritten")
            pattern = "{ " + _entry(self.field_of(m.binding), tree.text(left)) + " }"
            self.handled.add(ident.index)
            return [Edit(ident.span, R), Edit(left.span, pattern)]

        if parent.kind == NodeKind.SUBSCRIPT and ident.field == "object":
            raise UnsupportedConstruct(f"{where}: index is not proven in range")
        raise UnsupportedConstruct(f"{where} cannot be rewritten")


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def _entry(key: str, value: str) -> str:
    return key if key == value else f"{key}: {value}"


def _splice(source: bytes, start: int, end: int, edits) -> str:
    """Text of source[start:end] with (start, end, text) edits applied."""
    chunk = bytearray(source[start:end])
    for s, e, text in sorted(edits, reverse=True):
        chunk[s - start:e - start] = text.encode("utf-8")
    return chunk.decode("utf-8", errors="replace")


def _comment_body(text: str) -> str:
    if text.startswith("//"):
        return text[2:]
    if text.startswith("/*"):
        return text[2:-2] if text.endswith("*/") else text[2:]
    return text


def _is_assignment_target(node: SyntaxNode) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.kind in (NodeKind.ASSIGNMENT, NodeKind.AUGMENTED_ASSIGNMENT) and node.field == "left":
        return True
    if parent.kind == NodeKind.UPDATE:
        return True
    return parent.kind == NodeKind.UNARY and parent.operator == "delete"


def _check_element_callback(tree: SyntaxTree, cb: SyntaxNode, where: str):
    """Callbacks that see the iterated array itself would observe records."""
    if len(_function_params(cb)) > 2:
        raise UnsupportedConstruct(f"{where}: callback also takes the array parameter")
    if cb.type == "arrow_function":
        return
    body = cb.child("body")
    for n in body.walk() if body is not None else ():
        if n.kind == NodeKind.THIS or n.kind == NodeKind.IDENTIFIER and tree.text(n) == "arguments":
            raise UnsupportedConstruct(f"{where}: callback reads '{tree.text(n)}'")


def _dedupe(edits: List[Edit]) -> List[Edit]:
    seen = set()
    result = []
    for e in edits:
        key = (e.span.start_byte, e.span.end_byte, e.replacement)
        if key in seen:
            continue
        seen.add(key)
        result.append(e)
    return result


def synthesize_all(findings: List[Finding], engine: RewriteEngine) -> List[Finding]:
    for f in findings:
        engine.synthesize(f)
    return findings
