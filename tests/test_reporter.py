"""
Reporter tests — suppression, dedupe, ordering and cap, greedy rewrite
acceptance, and application with rollback.
"""

import os
import sys
import unittest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from simplifier.config import SimplifyConfig
from simplifier.engine import collect_findings
from simplifier.js_parser import parse
from simplifier.models import Edit, Finding, FindingKind, Rewrite, RewriteStatus, Span
from simplifier.reporter import Reporter, accept_rewrites, dedupe


SCENARIO_D = (
    "function f(x, y, z) {\n"
    "  const a = compute(x, y, z);\n"
    "  const b = a + 1;\n"
    "  return b;\n"
    "}\n"
)


def _process(source, **kwargs):
    tree = parse(source)
    findings = collect_findings(tree, SimplifyConfig())
    return Reporter(tree, **kwargs).process(findings)


def _finding(source: bytes, start, end, symbol="a", edits=None):
    rewrite = None
    if edits is not None:
        rewrite = Rewrite([Edit(Span.from_offsets(source, s, e), text) for s, e, text in edits])
    return Finding(
        kind=FindingKind.INLINABLE_SINGLE_USE,
        primary_span=Span.from_offsets(source, start, end),
        rationale="test finding",
        symbol=symbol,
        rewrite=rewrite,
    )


class TestAcceptance(unittest.TestCase):

    def test_scenario_d_larger_rewrite_wins(self):
        result = _process(SCENARIO_D, apply_fixes=True)
        self.assertEqual([f.symbol for f in result.findings], ["a", "b"])
        a, b = result.findings
        self.assertEqual(a.status, RewriteStatus.APPLIED)
        self.assertEqual(b.status, RewriteStatus.SUPERSEDED)
        self.assertIn("'a'", b.unavailable_reason)
        self.assertGreater(a.combined_span.length, b.combined_span.length)
        self.assertEqual(result.applied, 1)
        self.assertEqual(result.rewritten_source, (
            b"function f(x, y, z) {\n"
            b"  const b = compute(x, y, z) + 1;\n"
            b"  return b;\n"
            b"}\n"
        ))

    def test_available_when_not_applying(self):
        result = _process("function check(item) {\n  const ok = isValid(item);\n  return ok;\n}\n")
        self.assertEqual(len(result.findings), 1)
        self.assertEqual(result.findings[0].status, RewriteStatus.AVAILABLE)
        self.assertIsNone(result.rewritten_source)
        self.assertEqual(result.applied, 0)

    def test_disjoint_rewrites_are_all_accepted(self):
        source = b"const a = 1;\nconst b = 2;\n"
        first = _finding(source, 0, 12, "a", [(10, 11, "10")])
        second = _finding(source, 13, 25, "b", [(23, 24, "20")])
        self.assertEqual(accept_rewrites([first, second]), [first, second])

    def test_tie_goes_to_earlier_start(self):
        source = b"const a = 1;\n"
        first = _finding(source, 0, 5, "x", [(0, 5, "let")])
        second = _finding(source, 2, 7, "y", [(2, 7, "b = 2")])
        accepted = accept_rewrites([second, first])
        self.assertEqual(accepted, [first])
        self.assertEqual(second.status, RewriteStatus.SUPERSEDED)

    def test_finding_without_rewrite_keeps_unavailable(self):
        source = b"const a = 1;\n"
        bare = _finding(source, 0, 12)
        self.assertEqual(accept_rewrites([bare]), [])
        self.assertEqual(bare.status, RewriteStatus.UNAVAILABLE)


class TestApplication(unittest.TestCase):

    def test_invalid_result_is_rolled_back(self):
        tree = parse("const a = 1;\n")
        bad = _finding(tree.source, 0, 12, "a", [(10, 11, "(")])
        result = Reporter(tree, apply_fixes=True).process([bad])
        self.assertEqual(bad.status, RewriteStatus.INVALID_RESULT)
        self.assertIsNone(result.rewritten_source)
        self.assertEqual(result.applied, 0)
        self.assertEqual(len(result.diagnostics), 1)
        self.assertTrue(result.diagnostics[0].startswith("rewrite rolled back"))


class TestSuppression(unittest.TestCase):

    def test_marker_on_preceding_line(self):
        result = _process(
            "function f(x) {\n"
            "  // simplify-ignore\n"
            "  const a = g(x);\n"
            "  return a;\n"
            "}\n"
        )
        self.assertEqual(result.suppressed, 1)
        self.assertEqual(result.findings, [])

    def test_marker_in_trailing_comment(self):
        result = _process(
            "function f(x) {\n"
            "  h(x); // simplify-ignore\n"
            "  const a = g(x);\n"
            "  return a;\n"
            "}\n"
        )
        self.assertEqual(result.suppressed, 1)

    def test_marker_two_lines_up_does_not_apply(self):
        result = _process(
            "// simplify-ignore\n"
            "function f(x) {\n"
            "  const a = g(x);\n"
            "  return a;\n"
            "}\n"
        )
        self.assertEqual(result.suppressed, 0)
        self.assertEqual(len(result.findings), 1)

    def test_custom_marker(self):
        source = "function f(x) {\n  // keep-it\n  const a = g(x);\n  return a;\n}\n"
        tree = parse(source)
        findings = collect_findings(tree, SimplifyConfig(suppression_marker="keep-it"))
        result = Reporter(tree, suppression_marker="keep-it").process(findings)
        self.assertEqual(result.suppressed, 1)

    def test_suppressed_merge_finding(self):
        source = (
            "function label(root) {\n"
            "  const lis = selectAll('li');\n"
            "  // simplify-ignore\n"
            "  const imgs = lis.map(li => li.querySelector('img'));\n"
            "  lis.forEach((li, i) => {\n"
            "    imgs[i].alt = li.title;\n"
            "  });\n"
            "}\n"
        )
        result = _process(source)
        self.assertEqual(result.suppressed, 1)
        kinds = [f.kind for f in result.findings]
        self.assertNotIn(FindingKind.DUPLICATED_PARALLEL_COLLECTION, kinds)


class TestOrdering(unittest.TestCase):

    SOURCE = (
        "function f(x) {\n  const a = g(x);\n  return a;\n}\n"
        "function h(x) {\n  const b = g(x);\n  return b;\n}\n"
        "function k(x) {\n  const c = g(x);\n  return c;\n}\n"
    )

    def test_sorted_by_position(self):
        result = _process(self.SOURCE)
        self.assertEqual([f.symbol for f in result.findings], ["a", "b", "c"])

    def test_cap(self):
        result = _process(self.SOURCE, max_findings=2)
        self.assertEqual([f.symbol for f in result.findings], ["a", "b"])
        self.assertEqual(result.truncated, 1)

    def test_dedupe(self):
        source = b"const a = 1;\n"
        first = _finding(source, 0, 12)
        again = _finding(source, 0, 12)
        other = _finding(source, 0, 12, "b")
        self.assertEqual(dedupe([first, again, other]), [first, other])


if __name__ == "__main__":
    unittest.main()
