from __future__ import annotations

from types import SimpleNamespace
from typing import Callable, List, Optional

from lark import Token

from .runtime import elementary_bug, init_stdlib
from .tree import Node, Tree, is_token, node_position, unquote_string
from .types import (
    UNDEFINED,
    ElementaryError,
    Frame,
    JsBool,
    JsNull,
    JsNumber,
    JsString,
    JsValue,
)

from .eval.blocks import eval_block, eval_program
from .eval.control import (
    eval_break_stmt,
    eval_continue_stmt,
    eval_return_stmt,
    eval_throw_stmt,
    eval_var_decl,
)
from .eval.expr import (
    eval_array_lit,
    eval_assign,
    eval_binary,
    eval_call,
    eval_conditional,
    eval_logical,
    eval_member,
    eval_new,
    eval_object_lit,
    eval_post_update,
    eval_pre_update,
    eval_sequence,
    eval_unary,
)
from .eval.fn import call_value as _call_value, eval_func_decl, eval_function_value
from .eval.helpers import parse_number_token
from .eval.loops import eval_do_while, eval_for_stmt, eval_if_stmt, eval_while_stmt


def _maybe_attach_location(exc: ElementaryError, node: Node) -> None:
    if exc.js_meta is not None:
        return

    line, column = node_position(node)
    if line is None:
        return

    exc.js_meta = SimpleNamespace(line=line, column=column)

# ---------------- Public API ----------------

def eval_tree(program: Tree, frame: Optional[Frame]=None) -> Optional[JsValue]:
    """Evaluate a whole program; returns the completion value of the last expression statement."""
    init_stdlib()

    if frame is None:
        frame = Frame()

    return eval_node(program, frame)

def call_value(fn: JsValue, args: List[JsValue], this: JsValue=UNDEFINED) -> JsValue:
    return _call_value(fn, args, this, eval_node)

# ---------------- Core evaluator ----------------

def eval_node(n: Node, frame: Frame) -> Optional[JsValue]:
    try:
        return _eval_node_inner(n, frame)
    except ElementaryError as e:
        _maybe_attach_location(e, n)
        raise

def _eval_node_inner(n: Node, frame: Frame) -> Optional[JsValue]:
    if is_token(n):
        return _eval_token(n, frame)

    handler = _NODE_DISPATCH.get(n.data)
    if handler is None:
        elementary_bug(f"no evaluation rule for '{n.data}'")

    return handler(n, frame)

# ---------------- Tokens ----------------

def _eval_token(t: Token, frame: Frame) -> JsValue:
    handler = _TOKEN_DISPATCH.get(t.type)
    if handler is None:
        elementary_bug(f"unhandled token {t.type}:{t.value}")

    return handler(t, frame)

def _eval_this(frame: Frame) -> JsValue:
    return frame.get("this") if frame.has("this") else UNDEFINED

def _eval_expr_stmt(n: Tree, frame: Frame) -> JsValue:
    return eval_node(n.children[0], frame)

_NODE_DISPATCH: dict[str, Callable[[Tree, Frame], Optional[JsValue]]] = {
    'program': lambda n, frame: eval_program(n, frame, eval_node),
    'block': lambda n, frame: eval_block(n, frame, eval_node),
    'empty_stmt': lambda _, __: None,
    'expr_stmt': _eval_expr_stmt,
    'var_decl': lambda n, frame: eval_var_decl(n, frame, eval_node),
    'if_stmt': lambda n, frame: eval_if_stmt(n, frame, eval_node),
    'for_stmt': lambda n, frame: eval_for_stmt(n, frame, eval_node),
    'while_stmt': lambda n, frame: eval_while_stmt(n, frame, eval_node),
    'do_while': lambda n, frame: eval_do_while(n, frame, eval_node),
    'return_stmt': lambda n, frame: eval_return_stmt(n, frame, eval_node),
    'break_stmt': lambda n, frame: eval_break_stmt(n, frame, eval_node),
    'continue_stmt': lambda n, frame: eval_continue_stmt(n, frame, eval_node),
    'throw_stmt': lambda n, frame: eval_throw_stmt(n, frame, eval_node),
    'func_decl': lambda n, frame: eval_func_decl(n, frame, eval_node),
    'func_expr': lambda n, frame: eval_function_value(n, frame, eval_node),
    'arrow_func': lambda n, frame: eval_function_value(n, frame, eval_node),
    'sequence': lambda n, frame: eval_sequence(n, frame, eval_node),
    'assign': lambda n, frame: eval_assign(n, frame, eval_node),
    'conditional': lambda n, frame: eval_conditional(n, frame, eval_node),
    'logical': lambda n, frame: eval_logical(n, frame, eval_node),
    'binary': lambda n, frame: eval_binary(n, frame, eval_node),
    'unary': lambda n, frame: eval_unary(n, frame, eval_node),
    'pre_update': lambda n, frame: eval_pre_update(n, frame, eval_node),
    'post_update': lambda n, frame: eval_post_update(n, frame, eval_node),
    'member': lambda n, frame: eval_member(n, frame, eval_node),
    'index': lambda n, frame: eval_member(n, frame, eval_node),
    'call': lambda n, frame: eval_call(n, frame, eval_node),
    'new_expr': lambda n, frame: eval_new(n, frame, eval_node),
    'array_lit': lambda n, frame: eval_array_lit(n, frame, eval_node),
    'object_lit': lambda n, frame: eval_object_lit(n, frame, eval_node),
}

_TOKEN_DISPATCH: dict[str, Callable[[Token, Frame], JsValue]] = {
    'IDENT': lambda t, frame: frame.get(str(t)),
    'NUMBER': lambda t, _: JsNumber(parse_number_token(str(t))),
    'STRING': lambda t, _: JsString(unquote_string(str(t))),
    'TRUE': lambda _, __: JsBool(True),
    'FALSE': lambda _, __: JsBool(False),
    'NULL': lambda _, __: JsNull(),
    'THIS': lambda _, frame: _eval_this(frame),
}
