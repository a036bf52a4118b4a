from __future__ import annotations

from typing import List, Optional

from lark import Tree

from ..tree import Node, tree_label
from ..types import Frame, JsValue
from .fn import make_function
from .helpers import collect_var_names

def hoist(statements: List[Node], frame: Frame) -> None:
    """Bind ``var`` names and function declarations before the body runs."""
    for name in collect_var_names(statements):
        frame.declare_var(name)

    for stmt in statements:
        if tree_label(stmt) == "func_decl":
            fn = make_function(stmt, frame)
            frame.define(fn.name, fn)

def eval_statements(statements: List[Node], frame: Frame, eval_func) -> Optional[JsValue]:
    """Run statements in order; the completion value is the last expression statement's."""
    completion: Optional[JsValue] = None

    for stmt in statements:
        value = eval_func(stmt, frame)
        if value is not None:
            completion = value

    return completion

def eval_program(n: Tree, frame: Frame, eval_func) -> Optional[JsValue]:
    hoist(n.children, frame)
    return eval_statements(n.children, frame, eval_func)

def eval_block(n: Tree, frame: Frame, eval_func) -> Optional[JsValue]:
    block_frame = Frame(parent=frame)

    for stmt in n.children:
        if tree_label(stmt) == "func_decl":
            fn = make_function(stmt, block_frame)
            block_frame.define(fn.name, fn)

    return eval_statements(n.children, block_frame, eval_func)

def eval_function_body(body: Tree, frame: Frame, eval_func) -> None:
    # the call frame doubles as the body scope so parameters and lets share it
    hoist(body.children, frame)
    eval_statements(body.children, frame, eval_func)
