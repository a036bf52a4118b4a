from __future__ import annotations

from typing import List, Tuple

from lark import Tree

from ..runtime import (
    apply_num_op,
    apply_num_or_string_op,
    elementary_bug,
    get_property,
    property_key,
    set_property,
    to_int32,
)
from ..tree import Node, is_token, tree_label
from ..types import (
    UNDEFINED,
    ElementaryError,
    Frame,
    JsArray,
    JsBool,
    JsFunction,
    JsNumber,
    JsObject,
    JsString,
    JsTypeError,
    JsValue,
    NativeFunction,
    type_of,
)
from .fn import call_value
from .helpers import is_truthy, object_key, strict_equals, to_number

# ---------------- binary / logical ----------------

def apply_binary(op: str, lhs: JsValue, rhs: JsValue) -> JsValue:
    match op:
        case "===" | "==":
            return JsBool(strict_equals(lhs, rhs))
        case "!==" | "!=":
            return JsBool(not strict_equals(lhs, rhs))
        case "+":
            return apply_num_or_string_op(JsString(op), lhs, rhs)
        case "-" | "*" | "/" | "%" | "<" | ">" | "<=" | ">=" | "<<" | ">>" | ">>>" | "&" | "|" | "^":
            return apply_num_op(JsString(op), lhs, rhs)
        case _:
            elementary_bug(f"binary operator '{op}' reached the evaluator")

def eval_binary(n: Tree, frame: Frame, eval_func) -> JsValue:
    lhs_node, op, rhs_node = n.children
    lhs = eval_func(lhs_node, frame)
    rhs = eval_func(rhs_node, frame)
    return apply_binary(str(op), lhs, rhs)

def eval_logical(n: Tree, frame: Frame, eval_func) -> JsValue:
    lhs_node, op, rhs_node = n.children
    lhs = eval_func(lhs_node, frame)

    if str(op) == "&&":
        return eval_func(rhs_node, frame) if is_truthy(lhs) else lhs

    return lhs if is_truthy(lhs) else eval_func(rhs_node, frame)

def eval_conditional(n: Tree, frame: Frame, eval_func) -> JsValue:
    test, cons, alt = n.children
    return eval_func(cons if is_truthy(eval_func(test, frame)) else alt, frame)

def eval_sequence(n: Tree, frame: Frame, eval_func) -> JsValue:
    value: JsValue = UNDEFINED

    for child in n.children:
        value = eval_func(child, frame)

    return value

# ---------------- unary / update ----------------

def eval_unary(n: Tree, frame: Frame, eval_func) -> JsValue:
    op, arg = n.children
    symbol = str(op)

    if symbol == "typeof":
        if is_token(arg) and arg.type == "IDENT" and not frame.has(str(arg)):
            return JsString("undefined")
        return JsString(type_of(eval_func(arg, frame)))

    if symbol == "delete":
        if tree_label(arg) in ("member", "index"):
            obj, key = resolve_reference(arg, frame, eval_func)
            if isinstance(obj, JsObject):
                obj.slots.pop(key, None)
        return JsBool(True)

    value = eval_func(arg, frame)

    match symbol:
        case "!":
            return JsBool(not is_truthy(value))
        case "-":
            return JsNumber(-to_number(value))
        case "+":
            return JsNumber(to_number(value))
        case "~":
            return JsNumber(float(~to_int32(to_number(value))))
        case "void":
            return UNDEFINED
        case _:
            elementary_bug(f"unary operator '{symbol}'")

def resolve_reference(target: Node, frame: Frame, eval_func) -> Tuple[JsValue, str]:
    """Evaluate the object and key of a member or index target, once."""
    obj_node, key_node = target.children
    obj = eval_func(obj_node, frame)

    if tree_label(target) == "member":
        return obj, str(key_node)

    return obj, property_key(eval_func(key_node, frame))

def _read_target(target: Node, frame: Frame, eval_func) -> Tuple[JsValue, Tuple]:
    if is_token(target):
        return frame.get(str(target)), ("name", str(target))

    obj, key = resolve_reference(target, frame, eval_func)
    current = get_property(obj, key)
    return (UNDEFINED if current is None else current), ("prop", obj, key)

def _write_target(ref: Tuple, value: JsValue, frame: Frame) -> None:
    if ref[0] == "name":
        frame.set(ref[1], value)
        return

    _, obj, key = ref
    set_property(obj, key, value)

def _update(n: Tree, frame: Frame, eval_func, prefix: bool) -> JsValue:
    op, target = n.children
    old, ref = _read_target(target, frame, eval_func)
    old_num = to_number(old)
    new = JsNumber(old_num + 1 if str(op) == "++" else old_num - 1)
    _write_target(ref, new, frame)
    return new if prefix else JsNumber(old_num)

def eval_pre_update(n: Tree, frame: Frame, eval_func) -> JsValue:
    return _update(n, frame, eval_func, prefix=True)

def eval_post_update(n: Tree, frame: Frame, eval_func) -> JsValue:
    return _update(n, frame, eval_func, prefix=False)

# ---------------- assignment ----------------

def eval_assign(n: Tree, frame: Frame, eval_func) -> JsValue:
    target, op, value_node = n.children
    symbol = str(op)

    if symbol == "=":
        if is_token(target):
            value = eval_func(value_node, frame)
            frame.set(str(target), value)
            return value

        if tree_label(target) not in ("member", "index"):
            elementary_bug(f"assignment to {tree_label(target)}")

        obj, key = resolve_reference(target, frame, eval_func)
        value = eval_func(value_node, frame)
        return set_property(obj, key, value)

    old, ref = _read_target(target, frame, eval_func)
    value = apply_binary(symbol[:-1], old, eval_func(value_node, frame))
    _write_target(ref, value, frame)
    return value

# ---------------- access / call / new ----------------

def eval_member(n: Tree, frame: Frame, eval_func) -> JsValue:
    obj, key = resolve_reference(n, frame, eval_func)
    value = get_property(obj, key)
    return UNDEFINED if value is None else value

def _eval_args(args_node: Tree, frame: Frame, eval_func) -> List[JsValue]:
    return [eval_func(a, frame) for a in args_node.children]

def eval_call(n: Tree, frame: Frame, eval_func) -> JsValue:
    callee, args_node = n.children
    this: JsValue = UNDEFINED

    if tree_label(callee) in ("member", "index"):
        this, key = resolve_reference(callee, frame, eval_func)
        fn = get_property(this, key)
        if fn is None:
            raise JsTypeError(f"{key} is not a function")
    else:
        fn = eval_func(callee, frame)

    return call_value(fn, _eval_args(args_node, frame, eval_func), this, eval_func)

def eval_new(n: Tree, frame: Frame, eval_func) -> JsValue:
    callee, args_node = n.children
    ctor = eval_func(callee, frame)
    args = _eval_args(args_node, frame, eval_func)

    match ctor:
        case NativeFunction(constructor=construct) if construct is not None:
            return construct(args)
        case JsFunction(is_arrow=False):
            instance = JsObject({})
            result = call_value(ctor, args, instance, eval_func)
            return result if isinstance(result, (JsObject, JsArray)) else instance
        case _:
            raise JsTypeError(f"{getattr(ctor, 'name', None) or type_of(ctor)} is not a constructor")

# ---------------- literals ----------------

def eval_array_lit(n: Tree, frame: Frame, eval_func) -> JsValue:
    return JsArray([eval_func(c, frame) for c in n.children])

def eval_object_lit(n: Tree, frame: Frame, eval_func) -> JsValue:
    slots = {}

    for prop in n.children:
        key_node, value_node = prop.children
        try:
            key = object_key(key_node)
        except ValueError as exc:
            raise ElementaryError(str(exc)) from exc
        slots[key] = eval_func(value_node, frame)

    return JsObject(slots)
