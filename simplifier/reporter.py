"""
Reporter — turns raw findings into the final, ordered per-file result.

Steps, in order:
  1. Suppression   — a finding whose primary span starts on the line right
                     after a comment carrying the marker is dropped
  2. Dedupe        — exact duplicates (same kind, span and symbol) collapse
  3. Ordering/cap  — ascending start offset, truncated to the per-file cap
  4. Acceptance    — rewrites are accepted greedily, larger combined span
                     first; a rewrite touching an accepted one is superseded
  5. Application   — accepted edits go through BatchFixer, the result is
                     re-parsed, and a parse failure rolls everything back
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from simplifier.batch_fixer import BatchFixer
from simplifier.errors import ParseError, RewriteConflict
from simplifier.js_parser import SyntaxTree, parse
from simplifier.models import Finding, RewriteStatus

logger = logging.getLogger(__name__)


@dataclass
class ReportResult:
    findings: List[Finding] = field(default_factory=list)
    suppressed: int = 0
    truncated: int = 0
    applied: int = 0
    rewritten_source: Optional[bytes] = None     # set only when edits were written
    diagnostics: List[str] = field(default_factory=list)


class Reporter:
    """Filters, orders and resolves the findings of one file."""

    def __init__(self, tree: SyntaxTree, suppression_marker: str = "simplify-ignore",
                 max_findings: int = 200, apply_fixes: bool = False):
        self.tree = tree
        self.suppression_marker = suppression_marker
        self.max_findings = max_findings
        self.apply_fixes = apply_fixes
        self._fixer = BatchFixer()

    def process(self, findings: List[Finding]) -> ReportResult:
        result = ReportResult()

        kept = []
        for f in findings:
            if self.is_suppressed(f):
                f.suppressed = True
                result.suppressed += 1
                logger.debug("Suppressed %s '%s' at %s", f.kind.value, f.symbol, f.primary_span.format())
                continue
            kept.append(f)

        kept = dedupe(kept)
        kept.sort(key=lambda f: (f.primary_span.start_byte, f.primary_span.end_byte, f.kind.value))
        if len(kept) > self.max_findings:
            result.truncated = len(kept) - self.max_findings
            logger.info("Capping %d findings at %d", len(kept), self.max_findings)
            kept = kept[:self.max_findings]

        accepted = accept_rewrites(kept)
        if accepted:
            if self.apply_fixes:
                self._apply(accepted, result)
            else:
                for f in accepted:
                    f.status = RewriteStatus.AVAILABLE

        result.findings = kept
        return result

    # ────────────────────────────────────────────────────────────────
    #  Suppression
    # ────────────────────────────────────────────────────────────────

    def is_suppressed(self, finding: Finding) -> bool:
        line = finding.primary_span.start_line - 1
        if line < 1:
            return False
        for c in self.tree.comments:
            if c.span.end_line == line and self.suppression_marker in c.text:
                return True
        return False

    # ────────────────────────────────────────────────────────────────
    #  Application
    # ────────────────────────────────────────────────────────────────

    def _apply(self, accepted: List[Finding], result: ReportResult):
        edits = []
        for f in accepted:
            edits.extend(f.rewrite.as_byte_edits())

        original = self.tree.source
        new_source, applied = self._fixer.apply_edits(original, edits)
        if applied != len(edits):
            # accept_rewrites guarantees disjoint edits; a skip means a bug upstream
            raise RewriteConflict(f"{len(edits) - applied} of {len(edits)} accepted edit(s) were skipped")

        try:
            parse(new_source, self.tree.language)
        except ParseError as e:
            logger.warning("Rewrite produced invalid source (%s); rolled back %d finding(s)", e, len(accepted))
            result.diagnostics.append(f"rewrite rolled back: {e}")
            for f in accepted:
                f.status = RewriteStatus.INVALID_RESULT
            return

        for f in accepted:
            f.status = RewriteStatus.APPLIED
        result.applied = len(accepted)
        result.rewritten_source = new_source
        logger.debug("Applied %d edit(s) for %d finding(s)", applied, len(accepted))


def dedupe(findings: List[Finding]) -> List[Finding]:
    seen = set()
    result = []
    for f in findings:
        if f.dedupe_key in seen:
            continue
        seen.add(f.dedupe_key)
        result.append(f)
    return result


def accept_rewrites(findings: List[Finding]) -> List[Finding]:
    """Greedy acceptance: larger combined span first, then earlier position.

    Findings whose rewrite overlaps an accepted one are marked superseded;
    findings without a rewrite keep their unavailable status.
    """
    candidates = [f for f in findings if f.rewrite is not None and f.rewrite.edits]
    candidates.sort(key=lambda f: (-f.combined_span.length, f.combined_span.start_byte))

    accepted: List[Finding] = []
    for f in candidates:
        winner = next((a for a in accepted if a.rewrite.overlaps(f.rewrite)), None)
        if winner is not None:
            f.status = RewriteStatus.SUPERSEDED
            f.unavailable_reason = (
                f"overlaps the rewrite for {winner.kind.value} '{winner.symbol}' "
                f"at {winner.primary_span.format()}"
            )
            continue
        accepted.append(f)
    return accepted
