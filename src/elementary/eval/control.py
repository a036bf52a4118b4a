from __future__ import annotations

from lark import Tree

from ..runtime import elementary_bug, to_js_string
from ..tree import is_token
from ..types import (
    UNDEFINED,
    ElementaryRuntimeError,
    Frame,
    JsBreakSignal,
    JsContinueSignal,
    JsReturnSignal,
)

def eval_var_decl(n: Tree, frame: Frame, eval_func) -> None:
    kind, *declarators = n.children
    kind = str(kind)

    for declarator in declarators:
        target, init = declarator.children

        if not is_token(target):
            elementary_bug("destructuring declaration reached the evaluator")

        name = str(target)

        if kind == "var":
            if not frame.has(name):
                frame.declare_var(name)
            if init is not None:
                frame.set(name, eval_func(init, frame))
            continue

        value = UNDEFINED if init is None else eval_func(init, frame)
        frame.define(name, value, const=kind == "const")

    return None

def eval_return_stmt(n: Tree, frame: Frame, eval_func) -> None:
    (value_node,) = n.children
    value = UNDEFINED if value_node is None else eval_func(value_node, frame)
    raise JsReturnSignal(value)

def eval_break_stmt(n: Tree, frame: Frame, eval_func) -> None:
    raise JsBreakSignal()

def eval_continue_stmt(n: Tree, frame: Frame, eval_func) -> None:
    raise JsContinueSignal()

def eval_throw_stmt(n: Tree, frame: Frame, eval_func) -> None:
    value = eval_func(n.children[0], frame)
    raise ElementaryRuntimeError(f"Uncaught {to_js_string(value)}")
