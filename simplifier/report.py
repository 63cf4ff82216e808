"""
Structured run report.

Pydantic models so the CLI can emit JSON (``model_dump_json``) or render a
markdown summary from the same data.  Built from the per-file analysis
results by the engine; nothing here refers back to syntax trees.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from simplifier.models import Finding, RewriteStatus


class FileOutcome(str, Enum):
    OK = "ok"
    PARSE_ERROR = "parse_error"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ERROR = "error"


class EditEntry(BaseModel):
    span: str
    start_byte: int
    end_byte: int
    replacement: str


class FindingEntry(BaseModel):
    kind: str
    span: str
    line: int
    column: int
    symbol: str = ""
    rationale: str
    status: str
    unavailable_reason: Optional[str] = None
    referenced: List[str] = []
    edits: List[EditEntry] = []

    @classmethod
    def from_finding(cls, f: Finding) -> "FindingEntry":
        edits = []
        if f.rewrite is not None:
            edits = [
                EditEntry(span=e.span.format(), start_byte=e.span.start_byte,
                          end_byte=e.span.end_byte, replacement=e.replacement)
                for e in f.rewrite.edits
            ]
        return cls(
            kind=f.kind.value,
            span=f.primary_span.format(),
            line=f.primary_span.start_line,
            column=f.primary_span.start_column,
            symbol=f.symbol,
            rationale=f.rationale,
            status=f.status.value,
            unavailable_reason=f.unavailable_reason,
            referenced=[s.format() for s in f.referenced_spans],
            edits=edits,
        )


class FileReport(BaseModel):
    path: str
    language: str = "javascript"
    outcome: FileOutcome = FileOutcome.OK
    diagnostics: List[str] = []
    findings: List[FindingEntry] = []
    suppressed: int = 0
    truncated: int = 0
    rewritten_source: Optional[str] = None
    written: bool = False
    write_error: Optional[str] = None
    fix_passes: int = 0
    remaining: int = 0                  # unsuppressed findings not fixed
    elapsed: float = 0.0

    @property
    def applied(self) -> int:
        return sum(1 for f in self.findings if f.status == RewriteStatus.APPLIED.value)

    def to_markdown(self) -> str:
        header = f"### `{self.path}`"
        if self.outcome != FileOutcome.OK:
            lines = [f"{header} — **{self.outcome.value}**"]
            lines.extend(f"- {d}" for d in self.diagnostics)
            return "\n".join(lines)

        if not self.findings:
            return f"{header} — no findings"

        lines = [header, "", "| Location | Rule | Symbol | Status |",
                 "|----------|------|--------|--------|"]
        for f in self.findings:
            lines.append(f"| {f.span} | `{f.kind}` | `{f.symbol}` | {f.status} |")
        lines.append("")
        for f in self.findings:
            lines.append(f"- **{f.span}** {f.rationale}")
            if f.unavailable_reason:
                lines.append(f"  - _{f.unavailable_reason}_")
        for d in self.diagnostics:
            lines.append(f"- {d}")
        if self.fix_passes:
            lines.append("")
            lines.append(f"Fix passes: {self.fix_passes}, remaining findings: {self.remaining}")
        return "\n".join(lines)


class RunReport(BaseModel):
    files: List[FileReport] = []

    @property
    def total_findings(self) -> int:
        return sum(len(f.findings) for f in self.files)

    @property
    def remaining(self) -> int:
        return sum(f.remaining for f in self.files)

    def exit_code(self) -> int:
        """0 clean, 1 findings remain, 2 internal error, failed write or nothing parsed."""
        if any(f.outcome == FileOutcome.ERROR or f.write_error for f in self.files):
            return 2
        if self.files and all(f.outcome == FileOutcome.PARSE_ERROR for f in self.files):
            return 2
        incomplete = any(f.outcome in (FileOutcome.TIMED_OUT, FileOutcome.CANCELLED) for f in self.files)
        if self.remaining or incomplete:
            return 1
        return 0

    def to_markdown(self) -> str:
        sections = [f.to_markdown() for f in self.files]
        by_outcome = {}
        for f in self.files:
            by_outcome[f.outcome.value] = by_outcome.get(f.outcome.value, 0) + 1
        summary = ", ".join(f"{n} {k}" for k, n in sorted(by_outcome.items()))
        applied = sum(f.applied for f in self.files)
        sections.append(
            f"**Summary:** {len(self.files)} file(s) ({summary or 'none'}), "
            f"{self.total_findings} finding(s), {applied} applied, {self.remaining} remaining"
        )
        return "\n\n".join(sections)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)
