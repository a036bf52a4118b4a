"""Builtin methods on arrays and strings, reachable as ``a.push(...)`` etc."""

from __future__ import annotations

import math
from typing import List, Optional

from ..runtime import call_function, register_array, register_string, split_string, to_js_string
from ..types import (
    UNDEFINED,
    JsArray,
    JsBool,
    JsNumber,
    JsString,
    JsTypeError,
    JsUndefined,
    JsValue,
)
from .helpers import is_truthy, strict_equals, to_number

def _arg(args: List[JsValue], i: int) -> JsValue:
    return args[i] if i < len(args) else UNDEFINED

def _relative_index(value: JsValue, length: int, default: int) -> int:
    """JS slice-style index: negative counts from the end, clamped to [0, length]."""
    if isinstance(value, JsUndefined):
        return default

    num = to_number(value)
    if math.isnan(num):
        return 0

    idx = int(math.trunc(num)) if not math.isinf(num) else (length if num > 0 else -length)
    if idx < 0:
        return max(length + idx, 0)

    return min(idx, length)

def _callback(value: JsValue, method: str) -> JsValue:
    if isinstance(value, JsUndefined):
        raise JsTypeError(f"undefined is not a function (in {method})")

    return value

# ---------------- strings ----------------

@register_string("split")
def _split(recv: JsString, args: List[JsValue]) -> JsValue:
    return JsArray([JsString(p) for p in split_string(recv.value, _arg(args, 0))])

@register_string("toUpperCase")
def _upper(recv: JsString, args: List[JsValue]) -> JsValue:
    return JsString(recv.value.upper())

@register_string("toLowerCase")
def _lower(recv: JsString, args: List[JsValue]) -> JsValue:
    return JsString(recv.value.lower())

@register_string("trim")
def _trim(recv: JsString, args: List[JsValue]) -> JsValue:
    return JsString(recv.value.strip())

@register_string("indexOf")
def _string_index_of(recv: JsString, args: List[JsValue]) -> JsValue:
    return JsNumber(float(recv.value.find(to_js_string(_arg(args, 0)))))

@register_string("slice")
def _string_slice(recv: JsString, args: List[JsValue]) -> JsValue:
    n = len(recv.value)
    start = _relative_index(_arg(args, 0), n, 0)
    end = _relative_index(_arg(args, 1), n, n)
    return JsString(recv.value[start:end])

@register_string("charAt")
def _char_at(recv: JsString, args: List[JsValue]) -> JsValue:
    idx = int(to_number(_arg(args, 0))) if not isinstance(_arg(args, 0), JsUndefined) else 0
    return JsString(recv.value[idx] if 0 <= idx < len(recv.value) else "")

# ---------------- arrays ----------------

@register_array("push")
def _push(recv: JsArray, args: List[JsValue]) -> JsValue:
    recv.items.extend(args)
    return JsNumber(float(len(recv.items)))

@register_array("pop")
def _pop(recv: JsArray, args: List[JsValue]) -> JsValue:
    return recv.items.pop() if recv.items else UNDEFINED

@register_array("slice")
def _array_slice(recv: JsArray, args: List[JsValue]) -> JsValue:
    n = len(recv.items)
    start = _relative_index(_arg(args, 0), n, 0)
    end = _relative_index(_arg(args, 1), n, n)
    return JsArray(recv.items[start:end])

@register_array("indexOf")
def _array_index_of(recv: JsArray, args: List[JsValue]) -> JsValue:
    needle = _arg(args, 0)

    for i, item in enumerate(recv.items):
        if strict_equals(item, needle):
            return JsNumber(float(i))

    return JsNumber(-1.0)

@register_array("join")
def _join(recv: JsArray, args: List[JsValue]) -> JsValue:
    sep = _arg(args, 0)
    sep_text = "," if isinstance(sep, JsUndefined) else to_js_string(sep)
    return JsString(sep_text.join(to_js_string(x) for x in recv.items))

@register_array("map")
def _map(recv: JsArray, args: List[JsValue]) -> JsValue:
    fn = _callback(_arg(args, 0), "map")
    return JsArray([call_function(fn, [x, JsNumber(float(i)), recv]) for i, x in enumerate(list(recv.items))])

@register_array("filter")
def _filter(recv: JsArray, args: List[JsValue]) -> JsValue:
    fn = _callback(_arg(args, 0), "filter")
    kept = [x for i, x in enumerate(list(recv.items)) if is_truthy(call_function(fn, [x, JsNumber(float(i)), recv]))]
    return JsArray(kept)

@register_array("forEach")
def _for_each(recv: JsArray, args: List[JsValue]) -> JsValue:
    fn = _callback(_arg(args, 0), "forEach")

    for i, x in enumerate(list(recv.items)):
        call_function(fn, [x, JsNumber(float(i)), recv])

    return UNDEFINED

@register_array("reduce")
def _reduce(recv: JsArray, args: List[JsValue]) -> JsValue:
    fn = _callback(_arg(args, 0), "reduce")
    items = list(recv.items)
    acc: Optional[JsValue] = args[1] if len(args) > 1 else None
    start = 0

    if acc is None:
        if not items:
            raise JsTypeError("Reduce of empty array with no initial value")
        acc, start = items[0], 1

    for i in range(start, len(items)):
        acc = call_function(fn, [acc, items[i], JsNumber(float(i)), recv])

    return acc

@register_array("includes")
def _includes(recv: JsArray, args: List[JsValue]) -> JsValue:
    needle = _arg(args, 0)
    return JsBool(any(strict_equals(x, needle) for x in recv.items))
