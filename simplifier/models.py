"""
Core value types shared by every analysis stage.

  • Span      — byte range plus 1-indexed line/column bounds
  • Edit      — a single (span, replacement) text edit
  • Rewrite   — ordered, non-overlapping edits realising one Finding
  • Finding   — a detected simplification opportunity

All of these belong to the analysis pass of a single file; nothing here is
shared between files.
"""

from enum import Enum
from typing import List, Optional, Tuple
from dataclasses import dataclass, field


class FindingKind(str, Enum):
    INLINABLE_SINGLE_USE = "INLINABLE_SINGLE_USE"
    DUPLICATED_PARALLEL_COLLECTION = "DUPLICATED_PARALLEL_COLLECTION"


class RewriteStatus(str, Enum):
    APPLIED = "applied"
    AVAILABLE = "available"                 # accepted, apply_fixes is off
    SUPERSEDED = "skipped: superseded"
    INVALID_RESULT = "skipped: invalid-result"
    UNAVAILABLE = "unavailable"


# ═══════════════════════════════════════════════════════════════════════
#  Spans & edits
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Span:
    """A source range.  Bytes are end-exclusive, lines/columns 1-indexed."""
    start_byte: int
    end_byte: int
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    @classmethod
    def from_ts_node(cls, node) -> "Span":
        return cls(
            start_byte=node.start_byte,
            end_byte=node.end_byte,
            start_line=node.start_point[0] + 1,
            start_column=node.start_point[1] + 1,
            end_line=node.end_point[0] + 1,
            end_column=node.end_point[1] + 1,
        )

    @classmethod
    def from_offsets(cls, source: bytes, start: int, end: int) -> "Span":
        """Build a span from raw byte offsets into ``source``."""
        sl, sc = _line_col(source, start)
        el, ec = _line_col(source, end)
        return cls(start, end, sl, sc, el, ec)

    @property
    def length(self) -> int:
        return self.end_byte - self.start_byte

    def overlaps(self, other: "Span") -> bool:
        """Strict overlap.  Zero-width spans overlap when strictly inside,
        and two zero-width spans overlap when they sit on the same offset."""
        if self.length == 0 and other.length == 0:
            return self.start_byte == other.start_byte
        if self.length == 0:
            return other.start_byte < self.start_byte < other.end_byte
        if other.length == 0:
            return self.start_byte < other.start_byte < self.end_byte
        return self.start_byte < other.end_byte and other.start_byte < self.end_byte

    def format(self) -> str:
        return f"{self.start_line}:{self.start_column}-{self.end_line}:{self.end_column}"


def _line_col(source: bytes, offset: int) -> Tuple[int, int]:
    line = source.count(b"\n", 0, offset) + 1
    line_start = source.rfind(b"\n", 0, offset) + 1
    return line, offset - line_start + 1


def union_span(spans: List[Span]) -> Span:
    """Smallest span covering all of ``spans``."""
    first = min(spans, key=lambda s: s.start_byte)
    last = max(spans, key=lambda s: s.end_byte)
    return Span(first.start_byte, last.end_byte,
                first.start_line, first.start_column,
                last.end_line, last.end_column)


@dataclass(frozen=True)
class Edit:
    span: Span
    replacement: str


@dataclass
class Rewrite:
    """Edits sorted by start offset.  Invariant: pairwise non-overlapping."""
    edits: List[Edit] = field(default_factory=list)

    def __post_init__(self):
        self.edits.sort(key=lambda e: (e.span.start_byte, e.span.end_byte))
        for prev, cur in zip(self.edits, self.edits[1:]):
            if prev.span.overlaps(cur.span):
                raise ValueError(
                    f"Rewrite edits overlap at {prev.span.format()} / {cur.span.format()}"
                )

    def overlaps(self, other: "Rewrite") -> bool:
        return any(a.span.overlaps(b.span) for a in self.edits for b in other.edits)

    def as_byte_edits(self) -> List[dict]:
        """Edits in the {start_byte, end_byte, text} shape BatchFixer consumes."""
        return [
            {"start_byte": e.span.start_byte, "end_byte": e.span.end_byte, "text": e.replacement}
            for e in self.edits
        ]


# ═══════════════════════════════════════════════════════════════════════
#  Findings
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class Finding:
    kind: FindingKind
    primary_span: Span
    rationale: str
    symbol: str = ""                        # binding name or merged-group label
    referenced_spans: List[Span] = field(default_factory=list)
    rewrite: Optional[Rewrite] = None
    unavailable_reason: Optional[str] = None
    suppressed: bool = False
    status: RewriteStatus = RewriteStatus.UNAVAILABLE
    # Binding or CorrelationGroup the finding was raised for
    subject: object = field(default=None, repr=False, compare=False)

    @property
    def combined_span(self) -> Span:
        spans = [self.primary_span] + list(self.referenced_spans)
        if self.rewrite:
            spans.extend(e.span for e in self.rewrite.edits)
        return union_span(spans)

    @property
    def dedupe_key(self) -> tuple:
        return (self.kind, self.primary_span.start_byte, self.primary_span.end_byte, self.symbol)
