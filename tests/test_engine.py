"""
Engine tests — fix passes, per-file outcomes, and the concurrent run
(ordering, timeout, cancellation, internal errors).
"""

import os
import sys
import shutil
import tempfile
import unittest
from unittest import mock

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from simplifier.config import SimplifyConfig
from simplifier.engine import SimplifyEngine, analyze_source, write_rewritten
from simplifier.models import RewriteStatus
from simplifier.report import FileOutcome, RunReport


SCENARIO_A = "function check(item) {\n  const ok = isValid(item);\n  return ok;\n}\n"
SCENARIO_D = (
    "function f(x, y, z) {\n"
    "  const a = compute(x, y, z);\n"
    "  const b = a + 1;\n"
    "  return b;\n"
    "}\n"
)
BROKEN = "function (\n"


class TestAnalyzeSource(unittest.TestCase):

    def test_report_without_fixing(self):
        report = analyze_source("check.js", SCENARIO_A, SimplifyConfig())
        self.assertEqual(report.outcome, FileOutcome.OK)
        self.assertEqual(len(report.findings), 1)
        entry = report.findings[0]
        self.assertEqual(entry.kind, "INLINABLE_SINGLE_USE")
        self.assertEqual(entry.span, "2:3-2:28")
        self.assertEqual(entry.status, RewriteStatus.AVAILABLE.value)
        self.assertEqual(len(entry.edits), 2)
        self.assertIsNone(report.rewritten_source)
        self.assertEqual(report.remaining, 1)

    def test_fix_passes_reach_fixpoint(self):
        report = analyze_source("f.js", SCENARIO_D, SimplifyConfig(apply_fixes=True))
        self.assertEqual([f.symbol for f in report.findings], ["a", "b"])
        self.assertEqual([f.status for f in report.findings],
                         [RewriteStatus.APPLIED.value, RewriteStatus.SUPERSEDED.value])
        self.assertEqual(report.rewritten_source,
                         "function f(x, y, z) {\n  return compute(x, y, z) + 1;\n}\n")
        self.assertEqual(report.fix_passes, 2)
        self.assertEqual(report.remaining, 0)

    def test_rewritten_output_is_stable(self):
        config = SimplifyConfig(apply_fixes=True)
        first = analyze_source("f.js", SCENARIO_D, config)
        again = analyze_source("f.js", first.rewritten_source, config)
        self.assertEqual(again.findings, [])
        self.assertIsNone(again.rewritten_source)
        self.assertEqual(again.fix_passes, 0)

    def test_parse_error(self):
        report = analyze_source("broken.js", BROKEN, SimplifyConfig())
        self.assertEqual(report.outcome, FileOutcome.PARSE_ERROR)
        self.assertTrue(report.diagnostics[0].startswith("parse error"))
        self.assertEqual(report.findings, [])

    def test_typescript_by_extension(self):
        report = analyze_source("check.ts", "function f(x: string) {\n  const n = x.trim();\n  return n;\n}\n",
                                SimplifyConfig())
        self.assertEqual(report.language, "typescript")
        self.assertEqual(len(report.findings), 1)

    def test_disabled_rule(self):
        config = SimplifyConfig(enabled_rule_ids=frozenset({"DUPLICATED_PARALLEL_COLLECTION"}))
        report = analyze_source("check.js", SCENARIO_A, config)
        self.assertEqual(report.findings, [])


class TestSimplifyEngine(unittest.TestCase):

    def test_results_in_input_order(self):
        sources = [("a.js", SCENARIO_A), ("b.js", BROKEN), ("c.js", SCENARIO_D)]
        report = SimplifyEngine(SimplifyConfig(max_workers=3)).run(sources)
        self.assertEqual([f.path for f in report.files], ["a.js", "b.js", "c.js"])
        self.assertEqual([f.outcome for f in report.files],
                         [FileOutcome.OK, FileOutcome.PARSE_ERROR, FileOutcome.OK])
        self.assertEqual(report.exit_code(), 1)

    def test_only_parse_errors_exit_2(self):
        report = SimplifyEngine(SimplifyConfig()).run([("b.js", BROKEN)])
        self.assertEqual(report.exit_code(), 2)

    def test_clean_run_exit_0(self):
        report = SimplifyEngine(SimplifyConfig()).run([("a.js", "export const a = 1;\n")])
        self.assertEqual(report.exit_code(), 0)

    def test_empty_run(self):
        report = SimplifyEngine(SimplifyConfig()).run([])
        self.assertEqual(report, RunReport())
        self.assertEqual(report.exit_code(), 0)

    def test_timeout(self):
        def _slow(path, source, config, control):
            control.stop.wait(5)
            control.check()

        config = SimplifyConfig(file_timeout=0.2)
        with mock.patch("simplifier.engine.analyze_source", side_effect=_slow):
            report = SimplifyEngine(config).run([("slow.js", SCENARIO_A)])
        self.assertEqual(report.files[0].outcome, FileOutcome.TIMED_OUT)
        self.assertIn("0.2s", report.files[0].diagnostics[0])
        self.assertEqual(report.exit_code(), 1)

    def test_cancel_before_run(self):
        engine = SimplifyEngine(SimplifyConfig(max_workers=1))
        engine.cancel()
        report = engine.run([("a.js", SCENARIO_A), ("c.js", SCENARIO_D)])
        self.assertEqual([f.outcome for f in report.files], [FileOutcome.CANCELLED] * 2)
        self.assertEqual(report.exit_code(), 1)

    def test_cancel_applies_to_one_run(self):
        engine = SimplifyEngine(SimplifyConfig(max_workers=1))
        engine.cancel()
        first = engine.run([("a.js", SCENARIO_A)])
        self.assertEqual(first.files[0].outcome, FileOutcome.CANCELLED)
        second = engine.run([("a.js", SCENARIO_A)])
        self.assertEqual(second.files[0].outcome, FileOutcome.OK)

    def test_internal_error_is_isolated(self):
        with mock.patch("simplifier.engine.collect_findings", side_effect=RuntimeError("boom")):
            with self.assertLogs("simplifier.engine", level="ERROR"):
                report = SimplifyEngine(SimplifyConfig()).run([("a.js", SCENARIO_A)])
        self.assertEqual(report.files[0].outcome, FileOutcome.ERROR)
        self.assertEqual(report.files[0].diagnostics, ["RuntimeError: boom"])
        self.assertEqual(report.exit_code(), 2)


class TestWriteRewritten(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.path = os.path.join(self.tmp, "check.js")
        with open(self.path, "w") as f:
            f.write(SCENARIO_A)

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def _run(self):
        with open(self.path, "rb") as f:
            source = f.read()
        return SimplifyEngine(SimplifyConfig(apply_fixes=True)).run([(self.path, source)])

    def test_write(self):
        report = self._run()
        summary = write_rewritten(report)
        self.assertIn(self.path, summary)
        self.assertTrue(report.files[0].written)
        with open(self.path) as f:
            self.assertEqual(f.read(), "function check(item) {\n  return isValid(item);\n}\n")
        self.assertEqual(report.exit_code(), 0)

    def test_dry_run_leaves_file(self):
        report = self._run()
        write_rewritten(report, dry_run=True)
        self.assertFalse(report.files[0].written)
        with open(self.path) as f:
            self.assertEqual(f.read(), SCENARIO_A)

    def test_failed_write_is_reported(self):
        report = self._run()
        with mock.patch("simplifier.batch_fixer.os.replace", side_effect=OSError("disk full")):
            with self.assertLogs("simplifier.batch_fixer", level="ERROR"):
                summary = write_rewritten(report)
        self.assertEqual(summary, {self.path: 0})
        f = report.files[0]
        self.assertFalse(f.written)
        self.assertEqual(f.write_error, "disk full")
        self.assertIn("could not write rewritten source: disk full", f.diagnostics)
        self.assertEqual(report.exit_code(), 2)
        self.assertEqual(os.listdir(self.tmp), ["check.js"])
        with open(self.path) as fh:
            self.assertEqual(fh.read(), SCENARIO_A)


if __name__ == "__main__":
    unittest.main()
