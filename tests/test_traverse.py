from __future__ import annotations

from typing import List

import pytest
from lark import Tree

from tests.support.harness import parse_pipeline
from elementary.traverse import TraversalError, traverse
from elementary.tree import ident, make, mark_processed, number_lit


class Recorder:
    def __init__(self) -> None:
        self.events: List[str] = []

    def __getattr__(self, name: str):
        if not name.startswith(("enter_", "exit_")):
            raise AttributeError(name)

        def record(path, state) -> None:
            self.events.append(name)

        return record


def test_enter_and_exit_are_paired_depth_first() -> None:
    rec = Recorder()
    traverse(parse_pipeline("a + b;"), rec, None)

    assert rec.events == [
        "enter_program",
        "enter_expr_stmt",
        "enter_binary",
        "exit_binary",
        "exit_expr_stmt",
        "exit_program",
    ]


def test_processed_nodes_are_not_entered() -> None:
    program = parse_pipeline("a + b;")
    mark_processed(program.children[0])
    rec = Recorder()
    traverse(program, rec, None)

    assert rec.events == ["enter_program", "exit_program"]


def test_skip_at_enter_suppresses_children_and_exit() -> None:
    class Skipper(Recorder):
        def enter_binary(self, path, state) -> None:
            self.events.append("enter_binary")
            path.skip()

    rec = Skipper()
    traverse(parse_pipeline("(a + b) * c;"), rec, None)

    assert rec.events.count("enter_binary") == 1
    assert "exit_binary" not in rec.events


def test_replacement_at_enter_is_entered_again() -> None:
    class Rewriter(Recorder):
        def enter_unary(self, path, state) -> None:
            self.events.append("enter_unary")
            path.replace_with(make("binary", [ident("x"), "-", ident("y")], path.node))

        def enter_binary(self, path, state) -> None:
            self.events.append("enter_binary")

    rec = Rewriter()
    program = traverse(parse_pipeline("-a;"), rec, None)

    assert rec.events[:4] == ["enter_program", "enter_expr_stmt", "enter_unary", "enter_binary"]
    assert program.children[0].children[0].data == "binary"


def test_replacement_at_exit_without_skip_is_revisited() -> None:
    class Rewriter(Recorder):
        def exit_member(self, path, state) -> None:
            self.events.append("exit_member")
            path.replace_with(make("array_lit", [number_lit(1, path.node)], path.node))

    rec = Rewriter()
    traverse(parse_pipeline("a.b;"), rec, None)

    assert rec.events.index("exit_member") < rec.events.index("enter_array_lit")
    assert "exit_array_lit" in rec.events


def test_stop_ends_the_walk() -> None:
    class Stopper(Recorder):
        def enter_expr_stmt(self, path, state) -> None:
            self.events.append("enter_expr_stmt")
            path.stop()

    rec = Stopper()
    traverse(parse_pipeline("a; b;"), rec, None)

    assert rec.events == ["enter_program", "enter_expr_stmt"]


def test_appended_statements_are_visited() -> None:
    class Appender(Recorder):
        def enter_expr_stmt(self, path, state) -> None:
            self.events.append("enter_expr_stmt")
            if len(path.scope_body()) < 3:
                path.scope_body().append(make("empty_stmt", [], path.node))

    rec = Appender()
    program = traverse(parse_pipeline("a; b;"), rec, None)

    assert len(program.children) == 3
    assert "enter_empty_stmt" in rec.events


def test_scope_body_is_the_enclosing_function_block() -> None:
    seen = []

    class Finder:
        def enter_binary(self, path, state) -> None:
            seen.append(path.scope_body())

    program = parse_pipeline("function f() { return a + b; }")
    traverse(program, Finder(), None)

    body = program.children[0].children[2]
    assert seen == [body.children]


def test_stale_replace_raises() -> None:
    class Stale:
        def enter_expr_stmt(self, path, state) -> None:
            path.container[path.key] = Tree("empty_stmt", [])
            path.replace_with(Tree("empty_stmt", []))

    with pytest.raises(TraversalError):
        traverse(parse_pipeline("a;"), Stale(), None)
