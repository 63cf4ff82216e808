"""
Collection-Correlation Detector — index-aligned collections with one origin.

Builds an origin arena over collection-valued bindings (indexed by
declaration order, so every origin points at a strictly earlier node) and
groups collections that are 1-to-1 views of the same alignment anchor:

  • derived views — ``src.map(..)`` / ``[...src]`` / ``Array.from(src)``
    siblings, optionally joined by ``src`` itself when some loop zips it
    with a member by index
  • co-built      — several ``[]`` collections each appended once per
    iteration of the same loop

Only one finding is produced per maximal group.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from simplifier.binding_analyzer import Binding, BindingTable
from simplifier.js_parser import (
    LOOP_KINDS, NodeKind, SyntaxNode, SyntaxTree, call_parts,
)
from simplifier.models import Finding, FindingKind

logger = logging.getLogger(__name__)

PRESERVING = frozenset({"map", "copy", "append"})

MUTATING_METHODS = frozenset({
    "push", "pop", "shift", "unshift", "splice", "sort", "reverse", "fill",
    "copyWithin", "set", "delete", "clear", "add",
})

# Iteration methods whose callback receives (element, index)
INDEXED_METHODS = frozenset({"forEach", "map", "some", "every", "find", "findIndex", "filter"})

DERIVED_VIEWS = "derived-views"
CO_BUILT = "co-built"


@dataclass
class CollectionNode:
    index: int
    binding: Binding
    shape: str = "sequence"                 # sequence | record | map
    origin: Optional[int] = None            # arena index of the source collection
    derivation: str = "root"                # root | map | filter | slice | copy | append
    index_preserving: bool = False
    callback: Optional[SyntaxNode] = None   # map callback, when it is a function
    loop: Optional[SyntaxNode] = None       # populating loop of an append node
    populate: Optional[SyntaxNode] = None   # the X.push(v) statement
    mutated: bool = False
    # `X[i] = v` completion marks, each with the zip context that owns i
    markers: List[Tuple[SyntaxNode, "ZipContext"]] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.binding.name


@dataclass
class ZipContext:
    """An iteration over ``collection`` exposing an in-range ``index``."""
    node: SyntaxNode                        # for statement, or the iterating call
    kind: str                               # "index-loop" | "callback"
    collection: Binding
    index: Binding
    body: SyntaxNode
    method: str = ""
    receiver: Optional[SyntaxNode] = None   # `L` in L.forEach(...)
    callback: Optional[SyntaxNode] = None
    length_node: Optional[SyntaxNode] = None    # `L.length` in the loop test

    def indexed_accesses(self, table: BindingTable) -> List[Tuple[SyntaxNode, Binding]]:
        """``X[i]`` reads in the body, with i this context's index."""
        found = []
        for n in self.body.walk():
            if n.kind != NodeKind.SUBSCRIPT:
                continue
            obj = n.child("object")
            idx = n.child("index")
            if obj is None or idx is None or obj.kind != NodeKind.IDENTIFIER:
                continue
            if idx.kind != NodeKind.IDENTIFIER or table.binding_of(idx) is not self.index:
                continue
            target = table.binding_of(obj)
            if target is not None:
                found.append((n, target))
        return found


@dataclass
class CorrelationGroup:
    members: List[CollectionNode]
    anchor: CollectionNode
    pattern: str                            # derived-views | co-built
    loop: Optional[SyntaxNode] = None
    anchor_joined: bool = False

    @property
    def member_ids(self) -> frozenset:
        return frozenset(m.binding.id for m in self.members)

    @property
    def derived(self) -> List[CollectionNode]:
        """Members other than a joined anchor."""
        return [m for m in self.members if m is not self.anchor]


class CorrelationDetector:
    """Builds the origin arena and reports correlation groups."""

    def __init__(self, tree: SyntaxTree, table: BindingTable):
        self.tree = tree
        self.table = table
        self.arena: List[CollectionNode] = []
        self._by_binding: Dict[int, CollectionNode] = {}
        self.zip_contexts: List[ZipContext] = []

    # ── arena ──

    def build_arena(self) -> List[CollectionNode]:
        candidates: Dict[int, Tuple[Binding, dict]] = {}
        for b in self.table.bindings:
            if b.kind not in ("const", "let", "var") or b.initializer is None:
                continue
            info = self._classify_initializer(b.initializer)
            if info is None:
                continue
            if info["derivation"] == "container":
                appended = self._detect_append(b, info["shape"])
                info = dict(info, **appended) if appended else dict(info, derivation="root")
            candidates[b.id] = (b, info)
            source = info.get("source")
            if source is not None and source.id not in candidates:
                candidates[source.id] = (source, {"derivation": "root"})

        ordered = sorted(candidates.values(), key=lambda pair: pair[0].name_node.span.start_byte)
        for idx, (b, info) in enumerate(ordered):
            node = CollectionNode(index=idx, binding=b,
                                  shape=info.get("shape", "sequence"),
                                  derivation=info.get("derivation", "root"),
                                  callback=info.get("callback"),
                                  loop=info.get("loop"),
                                  populate=info.get("populate"))
            self.arena.append(node)
            self._by_binding[b.id] = node

        for node, (b, info) in zip(self.arena, ordered):
            source = info.get("source")
            origin = self._by_binding.get(source.id) if source is not None else None
            if origin is not None and origin.index < node.index:
                node.origin = origin.index
            else:
                node.derivation = "root"
                node.loop = node.populate = None
            node.index_preserving = node.derivation in PRESERVING
        self.find_zip_contexts()
        for node in self.arena:
            node.mutated = self._is_mutated(node)
        logger.debug("Origin arena: %d collection nodes", len(self.arena))
        return self.arena

    def _source_binding(self, expr: Optional[SyntaxNode]) -> Optional[Binding]:
        if expr is None:
            return None
        expr = _strip(expr)
        if expr.kind != NodeKind.IDENTIFIER:
            return None
        return self.table.binding_of(expr)

    def _classify_initializer(self, init: SyntaxNode) -> Optional[dict]:
        init = _strip(init)
        if init.kind == NodeKind.ARRAY:
            items = list(init.children)
            if not items:
                return {"derivation": "container", "shape": "sequence"}
            if len(items) == 1 and items[0].kind == NodeKind.SPREAD and items[0].children:
                source = self._source_binding(items[0].children[0])
                if source is not None:
                    return {"derivation": "copy", "source": source}
            return None
        if init.kind == NodeKind.OBJECT and not init.children:
            return {"derivation": "container", "shape": "record"}
        if init.kind == NodeKind.NEW:
            ctor = init.child("constructor")
            args = init.child("arguments")
            if ctor is not None and self.tree.text(ctor) == "Map" and (args is None or not args.children):
                return {"derivation": "container", "shape": "map"}
            return None
        parts = call_parts(self.tree, init)
        if parts is None:
            return None
        receiver, method, args = parts
        if receiver is None:
            return None
        if receiver.kind == NodeKind.IDENTIFIER and self.tree.text(receiver) == "Array" and method == "from":
            if not args or args[0].kind == NodeKind.SPREAD:
                return None
            source = self._source_binding(args[0])
            if source is None:
                return None
            if len(args) == 1:
                return {"derivation": "copy", "source": source}
            if len(args) == 2:
                return {"derivation": "map", "source": source, "callback": _function_arg(args[1])}
            return None
        source = self._source_binding(receiver)
        if source is None:
            return None
        if method == "map" and len(args) == 1 and args[0].kind != NodeKind.SPREAD:
            return {"derivation": "map", "source": source, "callback": _function_arg(args[0])}
        if method == "slice":
            return {"derivation": "copy" if not args else "slice", "source": source}
        if method in ("filter", "flatMap"):
            return {"derivation": method, "source": source}
        return None

    # ── append detection ──

    def _detect_append(self, b: Binding, shape: str) -> Optional[dict]:
        """Loop that fills the empty container ``b`` exactly once per iteration."""
        if b.writes:
            return None
        populating = [u for u in b.usages if self._populate_kind(u.node, shape) is not None]
        if len(populating) != 1:
            return None
        usage = populating[0].node
        expr = usage.parent.parent
        if expr is None:
            return None
        if expr.parent is not None and expr.parent.kind == NodeKind.FUNCTION and expr.field == "body":
            populate = expr
            loop, source = self._callback_iteration(expr.parent)
        else:
            stmt = expr.parent
            if stmt is None or stmt.kind != NodeKind.EXPRESSION_STATEMENT:
                return None
            populate = stmt
            loop, source = self._enclosing_iteration(stmt)
        if loop is None or source is None or source is b:
            return None
        if b.declaration is None or b.declaration.span.end_byte > loop.span.start_byte:
            return None
        if self.tree.scopes[b.scope_id].function_scope != self.tree.scopes[loop.scope_id].function_scope:
            return None
        return {"derivation": "append", "source": source, "loop": loop, "populate": populate}

    def _populate_kind(self, ident: SyntaxNode, shape: str) -> Optional[str]:
        """``X.push(v)`` / ``X.set(k, v)`` / ``X[k] = v`` with ``ident`` as X."""
        parent = ident.parent
        if parent is None or ident.field != "object":
            return None
        if parent.kind == NodeKind.MEMBER:
            call = parent.parent
            prop = parent.child("property")
            if call is None or call.kind != NodeKind.CALL or parent.field != "function" or prop is None:
                return None
            args = call.child("arguments")
            argv = list(args.children) if args is not None and args.kind == NodeKind.ARGUMENTS else []
            if args is None or args.kind != NodeKind.ARGUMENTS or any(a.kind == NodeKind.SPREAD for a in argv):
                return None
            method = self.tree.text(prop)
            if shape == "sequence" and method == "push" and len(argv) == 1:
                return "push"
            if shape == "map" and method == "set" and len(argv) == 2:
                return "set"
            return None
        if parent.kind == NodeKind.SUBSCRIPT and shape == "record":
            assign = parent.parent
            if assign is not None and assign.kind == NodeKind.ASSIGNMENT and parent.field == "left":
                return "index-assign"
        return None

    def _enclosing_iteration(self, stmt: SyntaxNode):
        """(loop node, source binding) when ``stmt`` runs unconditionally
        once per iteration of a loop over a bound collection."""
        body = stmt.parent
        if body is None or body.kind != NodeKind.BLOCK:
            return None, None
        owner = body.parent
        if owner is None or body.field != "body":
            return None, None
        if _has_early_exit(body):
            return None, None
        if owner.kind == NodeKind.FOR_IN and owner.operator == "of":
            return owner, self._source_binding(owner.child("right"))
        if owner.kind == NodeKind.FOR:
            ctx = self._index_loop(owner)
            if ctx is None:
                return None, None
            return owner, ctx.collection
        if owner.kind == NodeKind.FUNCTION:
            return self._callback_iteration(owner)
        return None, None

    def _callback_iteration(self, fn: SyntaxNode):
        """(call, source) for ``src.forEach(fn)``."""
        args = fn.parent
        call = args.parent if args is not None else None
        if call is None or args.kind != NodeKind.ARGUMENTS or args.children[0] is not fn:
            return None, None
        parts = call_parts(self.tree, call)
        if parts is None or parts[1] != "forEach" or parts[0] is None:
            return None, None
        return call, self._source_binding(parts[0])

    def _is_mutated(self, node: CollectionNode) -> bool:
        b = node.binding
        if b.writes:
            return True
        for u in b.usages:
            n = u.node
            if node.populate is not None and node.populate.is_ancestor_of(n):
                continue
            parent = n.parent
            if parent is None:
                continue
            if parent.kind == NodeKind.MEMBER and n.field == "object":
                prop = parent.child("property")
                name = self.tree.text(prop) if prop is not None else ""
                grand = parent.parent
                if grand is not None and grand.kind == NodeKind.CALL and parent.field == "function" \
                        and name in MUTATING_METHODS:
                    return True
                if grand is not None and grand.kind in (NodeKind.ASSIGNMENT, NodeKind.AUGMENTED_ASSIGNMENT) \
                        and parent.field == "left":
                    return True
            if parent.kind == NodeKind.SUBSCRIPT and n.field == "object":
                grand = parent.parent
                ctx = self._marker_context(parent) if node.derivation in ("map", "copy") else None
                if ctx is not None:
                    node.markers.append((parent, ctx))
                    continue
                if grand is not None and grand.kind in (NodeKind.ASSIGNMENT, NodeKind.AUGMENTED_ASSIGNMENT,
                                                        NodeKind.UPDATE) \
                        and parent.field in ("left", "argument"):
                    return True
                if grand is not None and grand.kind == NodeKind.UNARY and grand.operator == "delete":
                    return True
        return False

    def _marker_context(self, subscript: SyntaxNode) -> Optional[ZipContext]:
        """The zip context of a ``X[i] = v;`` statement marking element i."""
        assign = subscript.parent
        if assign.kind != NodeKind.ASSIGNMENT or subscript.field != "left" \
                or assign.operator not in (None, "="):
            return None
        stmt = assign.parent
        if stmt is None or stmt.kind != NodeKind.EXPRESSION_STATEMENT:
            return None
        idx = subscript.child("index")
        if idx is None or idx.kind != NodeKind.IDENTIFIER:
            return None
        index = self.table.binding_of(idx)
        for ctx in self.zip_contexts:
            if ctx.index is index and ctx.body.is_ancestor_of(subscript):
                return ctx
        return None

    # ── anchors ──

    def anchor_of(self, node: CollectionNode) -> Optional[CollectionNode]:
        """Follow preserving derivations upward.  None when a mutated node
        sits on the path, so alignment cannot be trusted."""
        current = node
        while True:
            if current.mutated:
                return None
            if current.derivation not in PRESERVING or current.origin is None:
                return current
            current = self.arena[current.origin]

    # ── zip contexts ──

    def find_zip_contexts(self) -> List[ZipContext]:
        contexts = []
        for n in self.tree.nodes:
            if n.kind == NodeKind.FOR:
                ctx = self._index_loop(n)
            elif n.kind == NodeKind.CALL:
                ctx = self._indexed_callback(n)
            else:
                ctx = None
            if ctx is not None:
                contexts.append(ctx)
        self.zip_contexts = contexts
        return contexts

    def _index_loop(self, loop: SyntaxNode) -> Optional[ZipContext]:
        """``for (let i = 0; i < L.length; i++)`` with ``i`` untouched in the body."""
        init = loop.child("initializer")
        cond = loop.child("condition")
        incr = loop.child("increment")
        body = loop.child("body")
        if init is None or cond is None or incr is None or body is None:
            return None
        if init.kind != NodeKind.VARIABLE_DECLARATION or len(init.children) != 1:
            return None
        declarator = init.children[0]
        name = declarator.child("name")
        value = declarator.child("value")
        if name is None or value is None or self.tree.text(value) != "0":
            return None
        index = self.table.binding_of(name)
        if index is None:
            return None
        test = cond.children[0] if cond.kind == NodeKind.EXPRESSION_STATEMENT and cond.children else cond
        if test.kind != NodeKind.BINARY or test.operator != "<":
            return None
        left, right = test.child("left"), test.child("right")
        if left is None or right is None or self.table.binding_of(left) is not index:
            return None
        if right.kind != NodeKind.MEMBER or right.optional_chain:
            return None
        prop = right.child("property")
        obj = right.child("object")
        if prop is None or self.tree.text(prop) != "length" or obj is None:
            return None
        collection = self._source_binding(obj)
        if collection is None:
            return None
        text = "".join(self.tree.text(incr).split())
        if text not in (f"{index.name}++", f"++{index.name}", f"{index.name}+=1"):
            return None
        for w in index.writes:
            if not (incr is w.node or incr.is_ancestor_of(w.node)):
                return None
        return ZipContext(node=loop, kind="index-loop", collection=collection, index=index,
                          body=body, length_node=right)

    def _indexed_callback(self, call: SyntaxNode) -> Optional[ZipContext]:
        parts = call_parts(self.tree, call)
        if parts is None:
            return None
        receiver, method, args = parts
        if receiver is None or method not in INDEXED_METHODS or not args:
            return None
        collection = self._source_binding(receiver)
        cb = args[0]
        if collection is None or cb.kind != NodeKind.FUNCTION:
            return None
        params = _function_params(cb)
        if len(params) < 2 or params[1].kind != NodeKind.IDENTIFIER:
            return None
        index = self.table.binding_of(params[1])
        body = cb.child("body")
        if index is None or index.writes or body is None:
            return None
        return ZipContext(node=call, kind="callback", collection=collection, index=index,
                          body=body, method=method, receiver=_strip(receiver), callback=cb)

    # ── groups ──

    def detect(self) -> List[CorrelationGroup]:
        if not self.arena:
            self.build_arena()
        groups: List[CorrelationGroup] = []
        groups.extend(self._co_built_groups())
        groups.extend(self._derived_view_groups())

        kept: List[CorrelationGroup] = []
        for g in groups:
            ids = g.member_ids
            if any(ids < other.member_ids for other in groups):
                continue
            if any(ids == other.member_ids for other in kept):
                continue
            kept.append(g)
        kept.sort(key=lambda g: g.members[0].index)
        logger.debug("%d correlation groups", len(kept))
        return kept

    def _derived_view_groups(self) -> List[CorrelationGroup]:
        by_anchor: Dict[int, List[CollectionNode]] = {}
        for node in self.arena:
            if node.derivation not in PRESERVING or node.origin is None:
                continue
            anchor = self.anchor_of(node)
            if anchor is None or anchor is node or not self._markers_aligned(node, anchor):
                continue
            by_anchor.setdefault(anchor.index, []).append(node)

        groups = []
        for anchor_idx, members in by_anchor.items():
            anchor = self.arena[anchor_idx]
            joined = self._zipped_with_anchor(anchor, members)
            group_members = ([anchor] if joined else []) + members
            if len(group_members) < 2:
                continue
            groups.append(CorrelationGroup(members=sorted(group_members, key=lambda m: m.index),
                                           anchor=anchor, pattern=DERIVED_VIEWS, anchor_joined=joined))
        return groups

    def _markers_aligned(self, node: CollectionNode, anchor: CollectionNode) -> bool:
        for _, ctx in node.markers:
            owner = self._by_binding.get(ctx.collection.id)
            if owner is None or self.anchor_of(owner) is not anchor:
                return False
        return True

    def _zipped_with_anchor(self, anchor: CollectionNode, members: List[CollectionNode]) -> bool:
        member_ids = {m.binding.id for m in members}
        ready = max(self._ready_offset(m) for m in members + [anchor])
        for ctx in self.zip_contexts:
            if ctx.node.span.start_byte < ready:
                continue
            for _, target in ctx.indexed_accesses(self.table):
                if ctx.collection is anchor.binding and target.id in member_ids:
                    return True
                if ctx.collection.id in member_ids and target is anchor.binding:
                    return True
        return False

    def _ready_offset(self, node: CollectionNode) -> int:
        """Offset after which ``node`` holds all of its elements."""
        if node.loop is not None:
            return node.loop.span.end_byte
        decl = node.binding.declaration
        return decl.span.end_byte if decl is not None else node.binding.name_node.span.end_byte

    def _co_built_groups(self) -> List[CorrelationGroup]:
        by_loop: Dict[int, List[CollectionNode]] = {}
        for node in self.arena:
            if node.derivation == "append" and node.loop is not None and not node.mutated:
                by_loop.setdefault(node.loop.index, []).append(node)
        groups = []
        for members in by_loop.values():
            if len(members) < 2:
                continue
            anchor = self.arena[members[0].origin]
            groups.append(CorrelationGroup(members=members, anchor=anchor, pattern=CO_BUILT,
                                           loop=members[0].loop))
        return groups

    def ready_offset(self, group: CorrelationGroup) -> int:
        return max(self._ready_offset(m) for m in group.members + [group.anchor])


# ═══════════════════════════════════════════════════════════════════════
#  Findings
# ═══════════════════════════════════════════════════════════════════════

def group_findings(groups: List[CorrelationGroup]) -> List[Finding]:
    findings = []
    for g in groups:
        removed = g.derived or g.members
        primary = removed[0].binding.declaration_span
        referenced = [m.binding.declaration_span for m in g.members if m is not removed[0]]
        names = ", ".join(m.name for m in g.members)
        if g.pattern == CO_BUILT:
            rationale = (f"{names} are appended once per iteration of the same loop; "
                         f"consolidate them into one sequence of composite records")
        else:
            rationale = (f"{names} are index-aligned views of '{g.anchor.name}'; derived 1-to-1 "
                         f"views of the same source should be produced inside one derivation")
        findings.append(Finding(
            kind=FindingKind.DUPLICATED_PARALLEL_COLLECTION,
            primary_span=primary,
            rationale=rationale,
            symbol=names,
            referenced_spans=referenced,
            subject=g,
        ))
    return findings


def detect_correlations(tree: SyntaxTree, table: BindingTable):
    """Returns (detector, groups); the detector keeps arena and zip contexts."""
    detector = CorrelationDetector(tree, table)
    detector.build_arena()
    return detector, detector.detect()


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def _strip(node: SyntaxNode) -> SyntaxNode:
    """Drop parentheses and TypeScript assertions (``x as T``, ``x!``)."""
    current = node
    while current.kind in (NodeKind.PARENTHESIZED, NodeKind.TYPE_EXPRESSION) and current.children:
        inner = [c for c in current.children if c.kind != NodeKind.TYPE]
        if not inner:
            break
        current = inner[0]
    return current


def _function_arg(node: SyntaxNode) -> Optional[SyntaxNode]:
    return node if node.kind == NodeKind.FUNCTION else None


def _function_params(fn: SyntaxNode) -> List[SyntaxNode]:
    single = fn.child("parameter")
    if single is not None:
        return [single]
    params = fn.child("parameters")
    if params is None:
        return []
    result = []
    for p in params.children:
        if p.type in ("required_parameter", "optional_parameter"):
            inner = p.child("pattern")
            result.append(inner if inner is not None else p)
        elif p.kind != NodeKind.TYPE:
            result.append(p)
    return result


def _has_early_exit(body: SyntaxNode) -> bool:
    """break/continue/return that can cut an iteration of the owning loop short."""
    stack = list(body.children)
    while stack:
        n = stack.pop()
        if n.kind == NodeKind.FUNCTION:
            continue
        if n.kind in (NodeKind.BREAK, NodeKind.CONTINUE):
            if n.children:      # labelled
                return True
            inner = LOOP_KINDS | {NodeKind.SWITCH_BODY} if n.kind == NodeKind.BREAK else LOOP_KINDS
            if not any(a.kind in inner for a in _ancestors_until(n, body)):
                return True
        if n.kind == NodeKind.RETURN:
            return True
        stack.extend(n.children)
    return False


def _ancestors_until(node: SyntaxNode, stop: SyntaxNode):
    for a in node.ancestors():
        if a is stop:
            return
        yield a
