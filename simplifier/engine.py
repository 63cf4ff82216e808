"""
Simplify Engine — runs the per-file pipeline over many files.

Per file (synchronous):
  parse → binding analysis → correlation detection → rewrite synthesis
  → reporter (suppression, ordering, acceptance, optional application)

With ``apply_fixes`` the pipeline is repeated on its own output until a
pass applies nothing (bounded by MAX_FIX_PASSES), so rewrites that were
superseded by an overlapping one get their turn on the next pass.

Files run as independent tasks on a thread pool.  A task that exceeds
``file_timeout`` is reported as timed out and asked to stop; cancelling the
run stops tasks that have not started and asks running ones to stop.
Results are returned in input order.
"""

import time
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, Iterable, List, Optional, Tuple, Union

from simplifier.batch_fixer import BatchFixer
from simplifier.binding_analyzer import BindingAnalyzer
from simplifier.config import SimplifyConfig
from simplifier.correlation import detect_correlations, group_findings
from simplifier.errors import AnalysisCancelled, ParseError
from simplifier.js_parser import SyntaxTree, detect_language, parse
from simplifier.models import Finding, FindingKind
from simplifier.report import FileOutcome, FileReport, FindingEntry, RunReport
from simplifier.reporter import Reporter, ReportResult
from simplifier.rewrite_engine import RewriteEngine, synthesize_all

logger = logging.getLogger(__name__)

MAX_FIX_PASSES = 10
_POLL_INTERVAL = 0.05


class TaskControl:
    """Stop signal for one file task, linked to the run-wide cancel event."""

    def __init__(self, run_cancel: Optional[threading.Event] = None):
        self.run_cancel = run_cancel or threading.Event()
        self.stop = threading.Event()
        self.started: Optional[float] = None

    def check(self):
        if self.stop.is_set() or self.run_cancel.is_set():
            raise AnalysisCancelled("analysis cancelled")


# ═══════════════════════════════════════════════════════════════════════
#  Single file
# ═══════════════════════════════════════════════════════════════════════

def collect_findings(tree: SyntaxTree, config: SimplifyConfig) -> List[Finding]:
    """Run the enabled detectors and attach a rewrite (or reason) to each finding."""
    table = BindingAnalyzer(tree, config.pure_functions, config.max_inline_depth,
                            config.suppression_marker).analyze()
    findings: List[Finding] = []
    detector = None

    if config.rule_enabled(FindingKind.INLINABLE_SINGLE_USE):
        findings.extend(table.findings())
    if config.rule_enabled(FindingKind.DUPLICATED_PARALLEL_COLLECTION):
        detector, groups = detect_correlations(tree, table)
        findings.extend(group_findings(groups))

    rewriter = RewriteEngine(tree, table, detector, config.suppression_marker, config.pure_functions)
    return synthesize_all(findings, rewriter)


def analyze_tree(tree: SyntaxTree, config: SimplifyConfig,
                 apply_fixes: Optional[bool] = None) -> ReportResult:
    """One pass over an already-parsed file."""
    if apply_fixes is None:
        apply_fixes = config.apply_fixes
    findings = collect_findings(tree, config)
    reporter = Reporter(tree, config.suppression_marker, config.max_findings_per_file, apply_fixes)
    return reporter.process(findings)


def analyze_source(path: str, source: Union[str, bytes], config: SimplifyConfig,
                   control: Optional[TaskControl] = None) -> FileReport:
    """Analyze (and with ``apply_fixes``, rewrite) one file's source text.

    The findings reported are those of the first pass; ``rewritten_source``
    is the result after the last pass and ``remaining`` counts what the
    last pass could not fix.
    """
    control = control or TaskControl()
    started = time.monotonic()
    language = detect_language(path)
    report = FileReport(path=path, language=language)

    if isinstance(source, str):
        source = source.encode("utf-8")
    apply_fixes = config.apply_fixes
    if apply_fixes:
        try:
            source.decode("utf-8")
        except UnicodeDecodeError:
            report.diagnostics.append("source is not valid UTF-8; rewrites were not applied")
            apply_fixes = False

    try:
        tree = parse(source, language)
    except ParseError as e:
        logger.warning("Parse error in %s: %s", path, e)
        report.outcome = FileOutcome.PARSE_ERROR
        report.diagnostics.append(f"parse error: {e}")
        report.elapsed = time.monotonic() - started
        return report

    control.check()
    first = analyze_tree(tree, config, apply_fixes)
    report.findings = [FindingEntry.from_finding(f) for f in first.findings]
    report.suppressed = first.suppressed
    report.truncated = first.truncated
    report.diagnostics.extend(first.diagnostics)

    result = first
    passes = 0
    current = source
    while result.rewritten_source is not None:
        passes += 1
        current = result.rewritten_source
        control.check()
        if passes >= MAX_FIX_PASSES:
            logger.warning("%s: stopped after %d fix passes", path, passes)
            report.diagnostics.append(f"stopped after {passes} fix passes")
            result = analyze_tree(parse(current, language), config, apply_fixes=False)
            break
        result = analyze_tree(parse(current, language), config, apply_fixes=True)
        report.diagnostics.extend(result.diagnostics)

    if passes:
        report.rewritten_source = current.decode("utf-8")
        report.fix_passes = passes
    report.remaining = len(result.findings)
    report.elapsed = time.monotonic() - started
    logger.info("%s: %d finding(s), %d remaining, %d fix pass(es) in %.2fs",
                path, len(report.findings), report.remaining, passes, report.elapsed)
    return report


# ═══════════════════════════════════════════════════════════════════════
#  Many files
# ═══════════════════════════════════════════════════════════════════════

class SimplifyEngine:
    """Runs file tasks concurrently with per-file timeout and cancellation."""

    def __init__(self, config: SimplifyConfig):
        self.config = config
        self._cancel = threading.Event()

    def cancel(self):
        self._cancel.set()

    def run(self, sources: Iterable[Tuple[str, Union[str, bytes]]]) -> RunReport:
        sources = list(sources)
        reports: List[Optional[FileReport]] = [None] * len(sources)
        if not sources:
            return RunReport()

        workers = min(self.config.max_workers, len(sources))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="jssimplify")
        tasks: Dict[Future, Tuple[int, str, TaskControl]] = {}
        try:
            for i, (path, source) in enumerate(sources):
                control = TaskControl(self._cancel)
                future = executor.submit(self._run_task, path, source, control)
                tasks[future] = (i, path, control)

            pending = set(tasks)
            while pending:
                done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    i, path, _ = tasks[future]
                    reports[i] = future.result()
                self._expire(pending, tasks, reports)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
            # a cancel applies to one run; running tasks keep the old event
            self._cancel = threading.Event()

        return RunReport(files=reports)

    def _expire(self, pending: set, tasks: dict, reports: list):
        now = time.monotonic()
        for future in list(pending):
            i, path, control = tasks[future]
            if self._cancel.is_set() and future.cancel():
                reports[i] = _failed(path, FileOutcome.CANCELLED, "cancelled before analysis started")
                pending.discard(future)
            elif control.started is not None and now - control.started > self.config.file_timeout:
                control.stop.set()
                logger.warning("%s: timed out after %.1fs", path, self.config.file_timeout)
                reports[i] = _failed(path, FileOutcome.TIMED_OUT,
                                     f"analysis exceeded {self.config.file_timeout:g}s")
                pending.discard(future)

    def _run_task(self, path: str, source, control: TaskControl) -> FileReport:
        control.started = time.monotonic()
        try:
            control.check()
            return analyze_source(path, source, self.config, control)
        except AnalysisCancelled:
            return _failed(path, FileOutcome.CANCELLED, "analysis cancelled")
        except Exception as e:
            logger.exception("Unexpected error analysing %s", path)
            return _failed(path, FileOutcome.ERROR, f"{type(e).__name__}: {e}")


def _failed(path: str, outcome: FileOutcome, message: str) -> FileReport:
    return FileReport(path=path, language=detect_language(path), outcome=outcome, diagnostics=[message])


def write_rewritten(report: RunReport, dry_run: bool = False) -> Dict[str, int]:
    """Write every rewritten source in ``report`` back to its path."""
    file_map = {
        f.path: f.rewritten_source.encode("utf-8")
        for f in report.files
        if f.outcome == FileOutcome.OK and f.rewritten_source is not None
    }
    if not file_map:
        return {}
    fixer = BatchFixer()
    summary = fixer.apply_fixes_by_file(file_map, dry_run=dry_run)
    for f in report.files:
        if f.path in fixer.errors:
            f.write_error = fixer.errors[f.path]
            f.diagnostics.append(f"could not write rewritten source: {f.write_error}")
        elif summary.get(f.path) and not dry_run:
            f.written = True
    return summary
