"""
AST adapter tests — node kinds, scopes, comments and parse failures.

Validates that the adapter can:
  1. Map tree-sitter node types onto uniform NodeKinds
  2. Record operators, declaration keywords and optional chaining
  3. Assign lexical scopes (function, block, for, catch)
  4. Attach comments with own-line information
  5. Reject malformed source with a located ParseError
"""

import os
import sys
import unittest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from simplifier.errors import ParseError
from simplifier.js_parser import (
    NodeKind, SyntaxNode, call_parts, detect_language, enclosing_statement, next_statement, parse,
)
from simplifier.models import Span


def _first(tree, kind, text=None):
    for n in tree.nodes:
        if n.kind == kind and (text is None or tree.text(n) == text):
            return n
    raise AssertionError(f"no {kind} node {text or ''}")


class TestLanguageDetection(unittest.TestCase):

    def test_extensions(self):
        self.assertEqual(detect_language("a/b.js"), "javascript")
        self.assertEqual(detect_language("a/b.mjs"), "javascript")
        self.assertEqual(detect_language("a/b.ts"), "typescript")
        self.assertEqual(detect_language("a/b.tsx"), "tsx")

    def test_unknown_extension_defaults_to_javascript(self):
        self.assertEqual(detect_language("script"), "javascript")


class TestNodeKinds(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.tree = parse(
            "const total = a?.b + count++;\n"
            "let flag = typeof x === 'string';\n"
            "items.forEach((item, i) => use(item, i));\n"
        )

    def test_program_root(self):
        self.assertEqual(self.tree.root.kind, NodeKind.PROGRAM)
        self.assertEqual(len(self.tree.root.children), 3)

    def test_declaration_keyword(self):
        decls = [n for n in self.tree.nodes if n.kind == NodeKind.VARIABLE_DECLARATION]
        self.assertEqual([d.keyword for d in decls], ["const", "let"])

    def test_binary_operator_recorded(self):
        plus = _first(self.tree, NodeKind.BINARY, "a?.b + count++")
        self.assertEqual(plus.operator, "+")

    def test_unary_operator_recorded(self):
        typeof = _first(self.tree, NodeKind.UNARY)
        self.assertEqual(typeof.operator, "typeof")

    def test_optional_chain_flag(self):
        member = _first(self.tree, NodeKind.MEMBER, "a?.b")
        self.assertTrue(member.optional_chain)

    def test_update_expression(self):
        self.assertEqual(_first(self.tree, NodeKind.UPDATE).kind, NodeKind.UPDATE)

    def test_call_parts(self):
        call = _first(self.tree, NodeKind.CALL, "items.forEach((item, i) => use(item, i))")
        receiver, method, args = call_parts(self.tree, call)
        self.assertEqual(self.tree.text(receiver), "items")
        self.assertEqual(method, "forEach")
        self.assertEqual(len(args), 1)
        self.assertEqual(args[0].kind, NodeKind.FUNCTION)

    def test_plain_call_parts(self):
        call = _first(self.tree, NodeKind.CALL, "use(item, i)")
        receiver, callee, args = call_parts(self.tree, call)
        self.assertIsNone(receiver)
        self.assertEqual(callee, "use")
        self.assertEqual(len(args), 2)

    def test_preorder_indexes(self):
        for i, n in enumerate(self.tree.nodes):
            self.assertEqual(n.index, i)

    def test_spans_are_one_indexed(self):
        first = self.tree.root.children[0]
        self.assertEqual((first.span.start_line, first.span.start_column), (1, 1))
        self.assertEqual(first.span.format(), "1:1-1:30")

    def test_field_name_recorded(self):
        call = _first(self.tree, NodeKind.CALL, "use(item, i)")
        self.assertEqual(call.child("function").field, "function")
        self.assertEqual(call.child("arguments").field, "arguments")

    def test_node_defaults_are_not_shared(self):
        span = Span(0, 1, 1, 1, 1, 2)
        first = SyntaxNode(kind=NodeKind.OTHER, type="x", span=span)
        second = SyntaxNode(kind=NodeKind.OTHER, type="x", span=span, field="left")
        first.children.append(second)
        self.assertEqual(second.children, [])
        self.assertIsNone(first.field)
        self.assertIsNone(second.parent)
        self.assertEqual(second.field, "left")


class TestStatements(unittest.TestCase):

    def test_enclosing_and_next_statement(self):
        tree = parse("function f() {\n  const a = g();\n  return a;\n}\n")
        ident = [n for n in tree.nodes if n.kind == NodeKind.IDENTIFIER and tree.text(n) == "a"][-1]
        stmt = enclosing_statement(ident)
        self.assertEqual(stmt.kind, NodeKind.RETURN)
        decl = _first(tree, NodeKind.VARIABLE_DECLARATION)
        self.assertIs(next_statement(decl), stmt)
        self.assertIsNone(next_statement(stmt))


class TestScopes(unittest.TestCase):

    def test_function_block_and_for_scopes(self):
        tree = parse(
            "function f(a) {\n"
            "  for (let i = 0; i < a; i++) { const x = i; }\n"
            "  try { g(); } catch (err) { h(err); }\n"
            "}\n"
        )
        kinds = [s.kind for s in tree.scopes]
        self.assertEqual(kinds[0], "program")
        self.assertIn("function", kinds)
        self.assertIn("for", kinds)
        self.assertIn("catch", kinds)
        self.assertIn("block", kinds)

    def test_function_body_shares_function_scope(self):
        tree = parse("function f(a) { const b = a; }\n")
        fn = _first(tree, NodeKind.FUNCTION)
        param = _first(tree, NodeKind.IDENTIFIER, "a")
        b = _first(tree, NodeKind.IDENTIFIER, "b")
        self.assertEqual(param.scope_id, b.scope_id)
        self.assertNotEqual(fn.scope_id, b.scope_id)
        self.assertEqual(tree.scope(b.scope_id).function_scope, b.scope_id)

    def test_declaration_name_in_outer_scope(self):
        tree = parse("function outer() {}\n")
        name = _first(tree, NodeKind.IDENTIFIER, "outer")
        self.assertEqual(name.scope_id, 0)


class TestComments(unittest.TestCase):

    def test_own_line_and_trailing(self):
        tree = parse("// leading\nconst a = 1; // trailing\n")
        self.assertEqual(len(tree.comments), 2)
        leading, trailing = tree.comments
        self.assertTrue(leading.own_line)
        self.assertFalse(trailing.own_line)
        self.assertIs(tree.comment_ending_on(1), leading)
        decl = _first(tree, NodeKind.VARIABLE_DECLARATION)
        self.assertIs(tree.trailing_comment(decl), trailing)

    def test_block_comment_end_line(self):
        tree = parse("/*\n * doc\n */\nconst a = 1;\n")
        self.assertIsNotNone(tree.comment_ending_on(3))
        self.assertIsNone(tree.comment_ending_on(1))


class TestParseErrors(unittest.TestCase):

    def test_syntax_error_has_span(self):
        with self.assertRaises(ParseError) as cm:
            parse("const = ;\n")
        self.assertIsNotNone(cm.exception.span)
        self.assertEqual(cm.exception.span.start_line, 1)
        self.assertIn("1:", str(cm.exception))

    def test_binary_content_rejected(self):
        with self.assertRaises(ParseError):
            parse(b"\x00\x01\x02")

    def test_unsupported_language(self):
        with self.assertRaises(ValueError):
            parse("x", "cobol")


class TestTypeScript(unittest.TestCase):

    def test_type_annotation_is_type_node(self):
        tree = parse("const n: number = 1;\n", "typescript")
        declarator = _first(tree, NodeKind.DECLARATOR)
        self.assertIsNotNone(declarator.child("type"))
        self.assertEqual(declarator.child("type").kind, NodeKind.TYPE)

    def test_as_expression(self):
        tree = parse("const el = node as HTMLElement;\n", "typescript")
        self.assertEqual(_first(tree, NodeKind.TYPE_EXPRESSION).type, "as_expression")

    def test_tsx(self):
        tree = parse("const view = <div>{label}</div>;\n", "tsx")
        self.assertTrue(any(n.kind == NodeKind.JSX for n in tree.nodes))


if __name__ == "__main__":
    unittest.main()
