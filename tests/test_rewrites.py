from __future__ import annotations

import pytest
from lark import Token

from tests.support.harness import Options, compile_code, compile_ok, parse_pipeline
from elementary.compiler import CompileOK, compile_tree
from elementary.emit import emit_expr, emit_program
from elementary.tree import find_trees, walk_tokens

LOADER = "var rts = elementaryjs;\n"


def _body(code: str) -> str:
    text = compile_code(code)
    assert text.startswith(LOADER)
    return text[len(LOADER):]


REWRITES = [
    pytest.param("x = a == b;", "x = a === b;\n", id="loose-equality"),
    pytest.param("x = a != b;", "x = a !== b;\n", id="loose-inequality"),
    pytest.param("x = a === b;", "x = a === b;\n", id="strict-kept"),
    pytest.param("x = a + b;", 'x = rts.applyNumOrStringOp("+", a, b);\n', id="add"),
    pytest.param("x = a * b;", 'x = rts.applyNumOp("*", a, b);\n', id="mul"),
    pytest.param("x = a < b;", 'x = rts.applyNumOp("<", a, b);\n', id="less"),
    pytest.param("x = a >>> b;", 'x = rts.applyNumOp(">>>", a, b);\n', id="unsigned-shift"),
    pytest.param("o.x;", 'rts.dot(o, "x");\n', id="member-read"),
    pytest.param("a[i];", "rts.arrayBoundsCheck(a, i);\n", id="index-read"),
    pytest.param("o.x = 1;", 'rts.checkMember(o, "x", 1);\n', id="member-write"),
    pytest.param("a[0] = v;", "rts.checkArray(a, 0, v);\n", id="index-write"),
    pytest.param("x += 2;", 'x = rts.applyNumOrStringOp("+", x, 2);\n', id="compound-ident"),
    pytest.param("x %= 2;", 'x = rts.applyNumOp("%", x, 2);\n', id="compound-ident-mod"),
    pytest.param("++x;", 'rts.updateOnlyNumbers("++", x), (++x);\n', id="prefix-ident"),
    pytest.param("--o.n;", 'rts.checkUpdateOperand("--", o, "n");\n', id="prefix-member"),
    pytest.param("++a[0];", 'rts.checkUpdateOperand("++", a, 0);\n', id="prefix-index"),
    pytest.param("o.f(1);", "o.f(1);\n", id="method-call-callee-deferred"),
    pytest.param("f(o.x);", 'f(rts.dot(o, "x"));\n', id="member-in-argument"),
    pytest.param("x = o.a.b;", 'x = rts.dot(rts.dot(o, "a"), "b");\n', id="nested-member"),
    pytest.param("new Array(2, 0);", "new rts.SafeArray(2, 0);\n", id="new-array"),
    pytest.param("x = a && b;", "x = a && b;\n", id="logical-untouched"),
]


@pytest.mark.parametrize("code, expected", REWRITES)
def test_rewrites(code: str, expected: str) -> None:
    assert _body(code) == expected


def test_standalone_loader_uses_require() -> None:
    text = compile_code("let x = 1;", Options(is_online=False))
    assert text == 'var rts = require("./runtime");\nlet x = 1;\n'


def test_empty_program_gets_no_loader() -> None:
    assert compile_code("") == ""


def test_compound_member_assignment_uses_one_temporary() -> None:
    text = compile_code("o.x += 1;")

    assert text == (
        "var rts = elementaryjs;\n"
        '(_tmp = o), rts.checkMember(_tmp, "x", rts.applyNumOrStringOp("+", rts.dot(_tmp, "x"), 1));\n'
        "var _tmp;\n"
    )


def test_compound_index_assignment() -> None:
    text = _body("a[i] -= 1;")

    assert text == (
        '(_tmp = a), rts.checkArray(_tmp, i, rts.applyNumOp("-", rts.arrayBoundsCheck(_tmp, i), 1));\n'
        "var _tmp;\n"
    )


def test_temporary_avoids_names_in_use() -> None:
    text = _body("let _tmp = 1; o.x *= 2;")

    assert "var _tmp2;" in text
    assert "(_tmp2 = o)" in text


def test_temporary_declared_in_enclosing_function() -> None:
    text = _body("function f(o) { o.n += 1; return o; }")

    assert text == (
        "function f(o) {\n"
        '  (_tmp = o), rts.checkMember(_tmp, "n", rts.applyNumOrStringOp("+", rts.dot(_tmp, "n"), 1));\n'
        "  return o;\n"
        "  var _tmp;\n"
        "}\n"
    )


def test_arrow_expression_body_becomes_block() -> None:
    text = _body("let f = (x) => x + 1;")

    assert text == (
        "let f = (x) => {\n"
        '  return rts.applyNumOrStringOp("+", x, 1);\n'
        "};\n"
    )


def test_no_loose_equality_survives() -> None:
    ok = compile_ok("let b = (1 == 2) != (3 == 4);")
    ops = {str(t) for t in walk_tokens(ok.node) if str(t) in ("==", "!=", "===", "!==")}

    assert ops == {"===", "!=="}


def test_no_unrewritten_arithmetic_survives() -> None:
    ok = compile_ok("let z = (a + b) * (c - d) / e % f;")
    binaries = list(find_trees(ok.node, lambda t: t.data == "binary"))

    assert binaries == []


def test_pass_is_idempotent() -> None:
    source = "let o = { x: 1 }; o.x += 2; let a = new Array(2, 0); a[1] = o.x + 1; ++a[0];"
    first = compile_ok(source)
    once = first.code()

    again = compile_tree(first.node)

    assert isinstance(again, CompileOK)
    assert again.code() == once
    assert once.count("var rts") == 1


def test_emit_round_trips_plain_programs() -> None:
    source = "if (a) {\n  f(1, [2, 3]);\n} else {\n  g({ k: 1 });\n}\n"
    assert emit_program(parse_pipeline(source)) == source


def test_emit_parenthesises_compound_operands() -> None:
    expr = parse_pipeline("(a + b) * c;").children[0].children[0]
    assert emit_expr(expr) == "(a + b) * c"


def test_generated_nodes_carry_positions() -> None:
    ok = compile_ok("let x = 1;\n\nx = o.y;")
    calls = list(find_trees(ok.node, lambda t: t.data == "call"))

    assert calls
    name = calls[0].children[0].children[1]
    assert isinstance(name, Token) and name.line == 3
