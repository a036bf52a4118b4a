from __future__ import annotations

from typing import Any, List

from lark import Tree

from ..runtime import check_budget, to_js_string
from ..tree import is_token, tree_children, tree_label
from ..types import (
    UNDEFINED,
    BuiltinMethod,
    Builtins,
    ElementaryError,
    Frame,
    JsArray,
    JsFunction,
    JsReturnSignal,
    JsTypeError,
    JsValue,
    NativeFunction,
)

def extract_param_names(params_node: Any) -> List[str]:
    names: List[str] = []

    for p in tree_children(params_node):
        if not is_token(p) or p.type != "IDENT":
            raise ElementaryError(f"Unsupported parameter node: {p}")
        names.append(str(p))

    return names

def make_function(n: Tree, frame: Frame) -> JsFunction:
    """Closure for a func_decl, func_expr or arrow_func node."""
    if tree_label(n) == "arrow_func":
        params, body = n.children
        return JsFunction(extract_param_names(params), body, frame, is_arrow=True)

    name, params, body = n.children
    fn_name = str(name) if name is not None else None

    if tree_label(n) == "func_expr" and fn_name is not None:
        # named function expressions see their own name
        own = Frame(parent=frame)
        fn = JsFunction(extract_param_names(params), body, own, name=fn_name)
        own.define(fn_name, fn, const=True)
        return fn

    return JsFunction(extract_param_names(params), body, frame, name=fn_name)

def eval_func_decl(n: Tree, frame: Frame, eval_func) -> None:
    # declarations are bound while hoisting; nothing happens at the statement itself
    return None

def eval_function_value(n: Tree, frame: Frame, eval_func) -> JsValue:
    return make_function(n, frame)

def call_js_function(fn: JsFunction, args: List[JsValue], this: JsValue, eval_func) -> JsValue:
    from .blocks import eval_function_body  # local import to avoid cycle

    check_budget()

    call_frame = Frame(parent=fn.frame, function_frame=True)

    if not fn.is_arrow:
        call_frame.define("this", this)

    for i, param in enumerate(fn.params):
        call_frame.define(param, args[i] if i < len(args) else UNDEFINED)

    body = fn.body

    if tree_label(body) != "block":
        return eval_func(body, call_frame)

    try:
        eval_function_body(body, call_frame, eval_func)
    except JsReturnSignal as signal:
        return signal.value

    return UNDEFINED

def call_value(fn: JsValue, args: List[JsValue], this: JsValue, eval_func) -> JsValue:
    match fn:
        case JsFunction():
            return call_js_function(fn, args, this, eval_func)
        case NativeFunction(fn=native):
            return native(this, list(args))
        case BuiltinMethod(name=name, subject=subject):
            registry = Builtins.array_methods if isinstance(subject, JsArray) else Builtins.string_methods
            method = registry.get(name)
            if method is None:
                raise JsTypeError(f"{name} is not a function")
            return method(subject, list(args))
        case _:
            raise JsTypeError(f"{to_js_string(fn)} is not a function")
