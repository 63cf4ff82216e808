"""
Configuration, rule catalog, source discovery and batch fixer tests.
"""

import os
import sys
import shutil
import tempfile
import unittest

from pydantic import ValidationError

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from simplifier.batch_fixer import BatchFixer
from simplifier.config import DEFAULT_PURE_FUNCTIONS, RULE_IDS, SimplifyConfig, build_config
from simplifier.errors import ConfigError
from simplifier.models import FindingKind
from simplifier.rule_catalog import format_rule_explanation, get_all_rules, get_rule
from simplifier.source_reader import discover_sources, load_sources, read_source


class TestConfig(unittest.TestCase):

    def test_defaults(self):
        config = build_config()
        self.assertEqual(config.enabled_rule_ids, RULE_IDS)
        self.assertEqual(config.max_findings_per_file, 200)
        self.assertEqual(config.suppression_marker, "simplify-ignore")
        self.assertFalse(config.apply_fixes)
        self.assertTrue(config.rule_enabled(FindingKind.INLINABLE_SINGLE_USE))

    def test_none_values_are_ignored(self):
        config = build_config(max_findings_per_file=None, suppression_marker=None)
        self.assertEqual(config, SimplifyConfig())

    def test_rule_subset(self):
        config = build_config(enabled_rule_ids=["INLINABLE_SINGLE_USE"])
        self.assertFalse(config.rule_enabled(FindingKind.DUPLICATED_PARALLEL_COLLECTION))

    def test_unknown_rule(self):
        with self.assertRaises(ConfigError) as cm:
            build_config(enabled_rule_ids=["NOT_A_RULE"])
        self.assertIn("NOT_A_RULE", str(cm.exception))

    def test_empty_rule_set(self):
        with self.assertRaises(ConfigError):
            build_config(enabled_rule_ids=[])

    def test_invalid_numbers(self):
        for overrides in ({"max_findings_per_file": -1}, {"max_inline_depth": -2},
                          {"file_timeout": 0}, {"max_workers": 0}):
            with self.subTest(overrides=overrides):
                with self.assertRaises(ConfigError):
                    build_config(**overrides)

    def test_blank_marker(self):
        with self.assertRaises(ConfigError):
            build_config(suppression_marker="  ")

    def test_frozen(self):
        config = build_config()
        with self.assertRaises(ValidationError):
            config.apply_fixes = True

    def test_pure_functions_extend_defaults(self):
        config = build_config(pure_functions=["myLib.format"])
        self.assertIn("myLib.format", config.pure_functions)
        self.assertTrue(DEFAULT_PURE_FUNCTIONS <= config.pure_functions)


class TestRuleCatalog(unittest.TestCase):

    def test_every_kind_has_a_rule(self):
        self.assertEqual(set(get_all_rules()), {k.value for k in FindingKind})

    def test_lookup_is_lenient(self):
        self.assertIs(get_rule("inlinable-single-use"), get_rule("INLINABLE_SINGLE_USE"))
        self.assertIsNone(get_rule("missing"))

    def test_explanation(self):
        text = format_rule_explanation("DUPLICATED_PARALLEL_COLLECTION")
        self.assertIn("### Before", text)
        self.assertIn("liRecords", text)
        self.assertEqual(format_rule_explanation("X"), "Unknown rule: X")


class TestSourceReader(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def write(self, name, content):
        path = os.path.join(self.tmp, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(content)
        return path

    def test_discovery(self):
        self.write("b.ts", b"")
        self.write("a.js", b"")
        self.write("types.d.ts", b"")
        self.write("readme.md", b"")
        self.write("node_modules/x/index.js", b"")
        self.write(".cache/y.js", b"")
        self.write("lib/c.jsx", b"")
        found = [os.path.relpath(p, self.tmp) for p in discover_sources([self.tmp])]
        self.assertEqual(found, ["a.js", "b.ts", os.path.join("lib", "c.jsx")])

    def test_explicit_file_is_kept_once(self):
        path = self.write("script", b"run();\n")
        self.assertEqual(discover_sources([path, path]), [path])

    def test_binary_and_missing(self):
        binary = self.write("blob.js", b"\x00\x01\x02")
        self.assertIsNone(read_source(binary))
        self.assertIsNone(read_source(os.path.join(self.tmp, "missing.js")))
        good = self.write("ok.js", b"const a = 1;\n")
        pairs, unreadable = load_sources([good, binary])
        self.assertEqual(pairs, [(good, b"const a = 1;\n")])
        self.assertEqual(unreadable, [binary])


class TestBatchFixer(unittest.TestCase):

    def test_edits_apply_bottom_up(self):
        source = b"const a = 1;\nconst b = 2;\n"
        edits = [
            {"start_byte": 10, "end_byte": 11, "text": "100"},
            {"start_byte": 23, "end_byte": 24, "text": "200"},
        ]
        new_source, applied = BatchFixer().apply_edits(source, edits)
        self.assertEqual(applied, 2)
        self.assertEqual(new_source, b"const a = 100;\nconst b = 200;\n")

    def test_overlapping_edit_is_skipped(self):
        source = b"const a = 1;\n"
        edits = [
            {"start_byte": 6, "end_byte": 11, "text": "x = 2"},
            {"start_byte": 10, "end_byte": 12, "text": "3;"},
        ]
        with self.assertLogs("simplifier.batch_fixer", level="WARNING"):
            _, applied = BatchFixer().apply_edits(source, edits)
        self.assertEqual(applied, 1)

    def test_write_and_dry_run(self):
        tmp = tempfile.mkdtemp()
        try:
            path = os.path.join(tmp, "a.js")
            with open(path, "wb") as f:
                f.write(b"old\n")
            fixer = BatchFixer()
            self.assertEqual(fixer.apply_fixes_by_file({path: b"new\n"}, dry_run=True), {path: 4})
            with open(path, "rb") as f:
                self.assertEqual(f.read(), b"old\n")
            fixer.apply_fixes_by_file({path: b"new\n"})
            with open(path, "rb") as f:
                self.assertEqual(f.read(), b"new\n")
            missing = os.path.join(tmp, "gone.js")
            with self.assertLogs("simplifier.batch_fixer", level="ERROR"):
                self.assertEqual(fixer.apply_fixes_by_file({missing: b"x"}), {missing: 0})
        finally:
            shutil.rmtree(tmp)

    def test_failed_write_removes_temp_file(self):
        tmp = tempfile.mkdtemp()
        try:
            target = os.path.join(tmp, "pkg.js")
            os.mkdir(target)
            fixer = BatchFixer()
            with self.assertLogs("simplifier.batch_fixer", level="ERROR"):
                self.assertEqual(fixer.apply_fixes_by_file({target: b"x"}), {target: 0})
            self.assertIn(target, fixer.errors)
            self.assertFalse(os.path.exists(target + ".jssimplify.tmp"))
        finally:
            shutil.rmtree(tmp)


if __name__ == "__main__":
    unittest.main()
