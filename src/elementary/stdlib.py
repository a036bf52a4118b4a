"""Built-in globals (console, Math, ...) registered via elementary.runtime."""

from __future__ import annotations

import math
import random
from typing import List

from .runtime import (
    RuntimeContext,
    array_stub,
    register_global,
    runtime_object,
)
from .types import (
    UNDEFINED,
    Builtins,
    Frame,
    JsNumber,
    JsObject,
    JsReferenceError,
    JsString,
    JsTypeError,
    JsUndefined,
    JsValue,
    NativeFunction,
)
from .eval import methods as _methods  # noqa: F401  (registers array/string methods)
from .eval.helpers import display, to_number

RUNTIME_MODULE = "./runtime"

@register_global("log", namespace="console")
def std_log(_this: JsValue, args: List[JsValue]) -> JsValue:
    print(*(display(arg) for arg in args))
    return UNDEFINED

@register_global("error", namespace="console")
def std_error(_this: JsValue, args: List[JsValue]) -> JsValue:
    return std_log(_this, args)

def _math_unary(name: str, fn) -> None:
    def apply(_this: JsValue, args: List[JsValue]) -> JsValue:
        x = to_number(args[0]) if args else math.nan
        try:
            return JsNumber(float(fn(x)))
        except (ValueError, OverflowError):
            return JsNumber(math.nan)

    register_global(name, namespace="Math")(apply)

def _js_round(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x

    return float(math.floor(x + 0.5))

for _name, _fn in (
    ("floor", lambda x: x if math.isinf(x) or math.isnan(x) else math.floor(x)),
    ("ceil", lambda x: x if math.isinf(x) or math.isnan(x) else math.ceil(x)),
    ("round", _js_round),
    ("abs", abs),
    ("sqrt", lambda x: math.nan if x < 0 else math.sqrt(x)),
):
    _math_unary(_name, _fn)

@register_global("max", namespace="Math")
def std_max(_this: JsValue, args: List[JsValue]) -> JsValue:
    nums = [to_number(a) for a in args]
    if any(math.isnan(n) for n in nums):
        return JsNumber(math.nan)
    return JsNumber(max(nums, default=-math.inf))

@register_global("min", namespace="Math")
def std_min(_this: JsValue, args: List[JsValue]) -> JsValue:
    nums = [to_number(a) for a in args]
    if any(math.isnan(n) for n in nums):
        return JsNumber(math.nan)
    return JsNumber(min(nums, default=math.inf))

@register_global("pow", namespace="Math")
def std_pow(_this: JsValue, args: List[JsValue]) -> JsValue:
    base = to_number(args[0]) if args else math.nan
    exp = to_number(args[1]) if len(args) > 1 else math.nan
    try:
        return JsNumber(float(math.pow(base, exp)))
    except (ValueError, OverflowError):
        return JsNumber(math.nan)

@register_global("random", namespace="Math")
def std_random(_this: JsValue, args: List[JsValue]) -> JsValue:
    return JsNumber(random.random())

Builtins.globals["Math"].slots["PI"] = JsNumber(math.pi)

def _copy_global(value: JsValue) -> JsValue:
    # namespaces are per run so programs cannot leak writes into later runs
    if isinstance(value, JsObject):
        return JsObject(dict(value.slots))

    return value

def global_frame(ctx: RuntimeContext) -> Frame:
    """Top-level frame for one run: builtins, the loader bindings and the test hooks."""
    frame = Frame()

    for name, value in Builtins.globals.items():
        frame.define(name, _copy_global(value))

    frame.define("undefined", UNDEFINED, const=True)
    frame.define("NaN", JsNumber(math.nan), const=True)
    frame.define("Infinity", JsNumber(math.inf), const=True)

    rts = runtime_object(ctx)
    frame.define("Array", array_stub(ctx))
    frame.define("elementaryjs", rts, const=True)
    frame.define("test", rts.slots["test"])
    frame.define("assert", rts.slots["assert"])

    def require(_this: JsValue, args: List[JsValue]) -> JsValue:
        target = args[0] if args else UNDEFINED
        if isinstance(target, JsUndefined):
            raise JsTypeError("require expects a module name")
        if isinstance(target, JsString) and target.value == RUNTIME_MODULE:
            return rts
        raise JsReferenceError(f"Cannot find module '{display(target)}'")

    frame.define("require", NativeFunction("require", require), const=True)
    return frame
