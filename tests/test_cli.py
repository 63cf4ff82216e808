"""
CLI tests — exit codes, --write, JSON output and the rule commands.
"""

import io
import os
import sys
import json
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from simplifier.cli import build_parser, main


SCENARIO_A = "function check(item) {\n  const ok = isValid(item);\n  return ok;\n}\n"


class CliTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def write(self, name, content):
        path = os.path.join(self.tmp, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w") as f:
            f.write(content)
        return path

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(list(argv))
        return code, out.getvalue(), err.getvalue()


class TestAnalyze(CliTestCase):

    def test_findings_remaining_exit_1(self):
        path = self.write("check.js", SCENARIO_A)
        code, out, _ = self.run_cli("analyze", path)
        self.assertEqual(code, 1)
        self.assertIn("INLINABLE_SINGLE_USE", out)
        self.assertIn("2:3-2:28", out)

    def test_write_fixes_file(self):
        path = self.write("check.js", SCENARIO_A)
        code, _, _ = self.run_cli("analyze", "--write", path)
        self.assertEqual(code, 0)
        with open(path) as f:
            self.assertEqual(f.read(), "function check(item) {\n  return isValid(item);\n}\n")

    def test_directory_walk(self):
        self.write("src/check.js", SCENARIO_A)
        self.write("src/node_modules/dep/index.js", SCENARIO_A)
        self.write("src/notes.txt", "not code")
        code, out, _ = self.run_cli("analyze", "--format", "json", self.tmp)
        self.assertEqual(code, 1)
        data = json.loads(out)
        self.assertEqual([os.path.basename(f["path"]) for f in data["files"]], ["check.js"])

    def test_json_output(self):
        path = self.write("check.js", SCENARIO_A)
        code, out, _ = self.run_cli("analyze", "--format", "json", path)
        self.assertEqual(code, 1)
        data = json.loads(out)
        finding = data["files"][0]["findings"][0]
        self.assertEqual(finding["kind"], "INLINABLE_SINGLE_USE")
        self.assertEqual(finding["symbol"], "ok")
        self.assertEqual(finding["status"], "available")
        self.assertEqual(data["files"][0]["outcome"], "ok")

    def test_rule_filter(self):
        path = self.write("check.js", SCENARIO_A)
        code, _, _ = self.run_cli("analyze", "--rule", "duplicated-parallel-collection", path)
        self.assertEqual(code, 0)

    def test_unknown_rule_is_config_error(self):
        path = self.write("check.js", SCENARIO_A)
        code, _, err = self.run_cli("analyze", "--rule=BOGUS", path)
        self.assertEqual(code, 2)
        self.assertIn("BOGUS", err)

    def test_negative_depth_is_config_error(self):
        path = self.write("check.js", SCENARIO_A)
        code, _, _ = self.run_cli("analyze", "--max-depth", "-1", path)
        self.assertEqual(code, 2)

    def test_only_parse_errors_exit_2(self):
        path = self.write("broken.js", "function (\n")
        code, out, _ = self.run_cli("analyze", path)
        self.assertEqual(code, 2)
        self.assertIn("parse_error", out)

    def test_missing_file_exit_2(self):
        code, out, _ = self.run_cli("analyze", os.path.join(self.tmp, "missing.js"))
        self.assertEqual(code, 2)
        self.assertIn("could not read file", out)

    def test_no_sources_exit_2(self):
        self.write("notes.txt", "not code")
        code, _, err = self.run_cli("analyze", self.tmp)
        self.assertEqual(code, 2)
        self.assertIn("no JavaScript", err)


class TestRuleCommands(CliTestCase):

    def test_explain(self):
        code, out, _ = self.run_cli("explain", "INLINABLE_SINGLE_USE")
        self.assertEqual(code, 0)
        self.assertIn("Single-use local binding", out)

    def test_explain_unknown(self):
        code, _, err = self.run_cli("explain", "NOPE")
        self.assertEqual(code, 2)
        self.assertIn("Unknown rule", err)

    def test_rules(self):
        code, out, _ = self.run_cli("rules")
        self.assertEqual(code, 0)
        self.assertIn("DUPLICATED_PARALLEL_COLLECTION", out)

    def test_command_required(self):
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                build_parser().parse_args([])


if __name__ == "__main__":
    unittest.main()
