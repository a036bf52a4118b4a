"""Safety runtime: the functions instrumented programs call through ``rts``.

Every ABI function is registered under its exported name with ``@export``
(pure functions) or ``@export_bound`` (functions that need the per-run
``RuntimeContext``: runner port and test session). ``runtime_object(ctx)``
builds the object the loader expression evaluates to.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import math
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, NoReturn, Optional, Tuple
from typing_extensions import Protocol

from . import __version__
from .testing import DEFAULT_TIMEOUT_MS, TestSession
from .types import (
    UNDEFINED,
    Builtins,
    BuiltinMethod,
    ElementaryBugError,
    ElementaryRuntimeError,
    ElementaryTestingError,
    ElementaryTimeoutError,
    JsArray,
    JsBool,
    JsFunction,
    JsNull,
    JsNumber,
    JsObject,
    JsString,
    JsTypeError,
    JsUndefined,
    JsValue,
    Method,
    MethodRegistry,
    NativeFunction,
    is_js_value,
    number_to_string,
    type_of,
)

logger = logging.getLogger(__name__)

BUG_MESSAGE = (
    "You have encountered a potential bug in ElementaryJS. Please report this "
    "to the developers, along with the following stack trace:\n"
)

_STDLIB_INITIALIZED = False

def init_stdlib() -> None:
    """Load stdlib modules (idempotent) so the register_* hooks run."""
    global _STDLIB_INITIALIZED

    if _STDLIB_INITIALIZED:
        return

    importlib.import_module("elementary.stdlib")
    _STDLIB_INITIALIZED = True

# ---------- builtin method registries ----------

def register_method(registry: MethodRegistry, name: str):
    def dec(fn: Method):
        registry[name] = fn
        return fn

    return dec

def register_array(name: str):
    return register_method(Builtins.array_methods, name)

def register_string(name: str):
    return register_method(Builtins.string_methods, name)

def register_global(name: str, *, namespace: Optional[str] = None):
    """Expose ``fn(this, args)`` as a global function, or as ``namespace.name``."""
    def dec(fn: Callable[[JsValue, List[JsValue]], JsValue]):
        native = NativeFunction(name, fn)

        if namespace is None:
            Builtins.globals[name] = native
        else:
            holder = Builtins.globals.setdefault(namespace, JsObject({}))
            holder.slots[name] = native

        return fn

    return dec

# ---------- conversions and native property access ----------

def to_js_string(value: JsValue) -> str:
    match value:
        case JsUndefined():
            return "undefined"
        case JsNull():
            return "null"
        case JsNumber(value=num):
            return number_to_string(num)
        case JsString(value=s):
            return s
        case JsBool(value=b):
            return "true" if b else "false"
        case JsArray(items=items):
            return ",".join("" if isinstance(x, (JsUndefined, JsNull)) else to_js_string(x) for x in items)
        case JsObject():
            return "[object Object]"
        case _:
            return f"function {getattr(value, 'name', None) or ''}() {{ [native code] }}"

def property_key(value: JsValue) -> str:
    if isinstance(value, JsString):
        return value.value

    return to_js_string(value)

def _index_of_key(key: str) -> Optional[int]:
    if key.isdigit() and (key == "0" or not key.startswith("0")):
        return int(key)

    return None

def get_property(obj: JsValue, key: str) -> Optional[JsValue]:
    """Native property read; ``None`` when the property does not exist."""
    match obj:
        case JsUndefined() | JsNull():
            raise JsTypeError(f"Cannot read properties of {to_js_string(obj)} (reading '{key}')")
        case JsObject(slots=slots):
            return slots.get(key)
        case JsArray(items=items):
            if key == "length":
                return JsNumber(float(len(items)))
            idx = _index_of_key(key)
            if idx is not None:
                return items[idx] if idx < len(items) else None
            if key in Builtins.array_methods:
                return BuiltinMethod(key, obj)
            return None
        case JsString(value=s):
            if key == "length":
                return JsNumber(float(len(s)))
            idx = _index_of_key(key)
            if idx is not None:
                return JsString(s[idx]) if idx < len(s) else None
            if key in Builtins.string_methods:
                return BuiltinMethod(key, obj)
            return None
        case JsFunction(props=props) | NativeFunction(props=props):
            return props.get(key)
        case _:
            return None

def has_own_property(obj: JsValue, key: str) -> bool:
    match obj:
        case JsObject(slots=slots):
            return key in slots
        case JsArray(items=items):
            idx = _index_of_key(key)
            return key == "length" or (idx is not None and idx < len(items))
        case JsString(value=s):
            idx = _index_of_key(key)
            return key == "length" or (idx is not None and idx < len(s))
        case _:
            return False

def set_property(obj: JsValue, key: str, value: JsValue) -> JsValue:
    """Native property write. Writes to primitives are ignored."""
    match obj:
        case JsUndefined() | JsNull():
            raise JsTypeError(f"Cannot set properties of {to_js_string(obj)} (setting '{key}')")
        case JsObject(slots=slots):
            slots[key] = value
        case JsArray(items=items):
            idx = _index_of_key(key)
            if idx is None:
                raise ElementaryRuntimeError(f"cannot set .{key} of an array")
            if idx >= len(items):
                items.extend([UNDEFINED] * (idx + 1 - len(items)))
            items[idx] = value
        case JsFunction(props=props) | NativeFunction(props=props):
            props[key] = value

    return value

def call_function(fn: JsValue, args: List[JsValue], this: JsValue = UNDEFINED) -> JsValue:
    from .evaluator import call_value  # local import to avoid cycle
    return call_value(fn, args, this)

# ---------- JS numeric semantics ----------

def to_int32(x: float) -> int:
    if math.isnan(x) or math.isinf(x):
        return 0

    n = int(math.trunc(x)) & 0xFFFFFFFF
    return n - 0x100000000 if n >= 0x80000000 else n

def to_uint32(x: float) -> int:
    if math.isnan(x) or math.isinf(x):
        return 0

    return int(math.trunc(x)) & 0xFFFFFFFF

def js_divide(lhs: float, rhs: float) -> float:
    if rhs == 0:
        if lhs == 0 or math.isnan(lhs):
            return math.nan
        return math.copysign(math.inf, lhs) * math.copysign(1.0, rhs)

    return lhs / rhs

def js_remainder(lhs: float, rhs: float) -> float:
    if math.isnan(lhs) or math.isnan(rhs) or math.isinf(lhs) or rhs == 0:
        return math.nan

    if math.isinf(rhs):
        return lhs

    return math.fmod(lhs, rhs)

_NUM_OPS: Dict[str, Callable[[float, float], JsValue]] = {
    "-": lambda a, b: JsNumber(a - b),
    "*": lambda a, b: JsNumber(a * b),
    "/": lambda a, b: JsNumber(js_divide(a, b)),
    "%": lambda a, b: JsNumber(js_remainder(a, b)),
    ">": lambda a, b: JsBool(a > b),
    "<": lambda a, b: JsBool(a < b),
    ">=": lambda a, b: JsBool(a >= b),
    "<=": lambda a, b: JsBool(a <= b),
    ">>": lambda a, b: JsNumber(float(to_int32(a) >> (to_uint32(b) & 31))),
    ">>>": lambda a, b: JsNumber(float(to_uint32(a) >> (to_uint32(b) & 31))),
    "<<": lambda a, b: JsNumber(float(to_int32(float(to_int32(a) << (to_uint32(b) & 31))))),
    "|": lambda a, b: JsNumber(float(to_int32(a) | to_int32(b))),
    "&": lambda a, b: JsNumber(float(to_int32(a) & to_int32(b))),
    "^": lambda a, b: JsNumber(float(to_int32(a) ^ to_int32(b))),
}

# ---------- runner port and time budget ----------

class Runner(Protocol):
    def stopify_array(self, array: JsArray) -> JsArray: ...
    def run_test(self, body: Callable[[], object], timeout_ms: int) -> None: ...

class NoRunner:
    """No cooperative scheduler installed: arrays pass through, tests run directly."""

    def stopify_array(self, array: JsArray) -> JsArray:
        return array

    def run_test(self, body: Callable[[], object], timeout_ms: int) -> None:
        with time_budget(timeout_ms):
            body()

    def __repr__(self) -> str:
        return "NoRunner()"

NO_RUNNER = NoRunner()

_deadlines: List[float] = []

@contextmanager
def time_budget(ms: int) -> Iterator[None]:
    _deadlines.append(time.monotonic() + ms / 1000.0)
    try:
        yield
    finally:
        _deadlines.pop()

def check_budget() -> None:
    if _deadlines and time.monotonic() > min(_deadlines):
        raise ElementaryTimeoutError("timed out")

class RuntimeContext:
    """Per-run state reachable from the ABI: the runner port and the test session."""

    def __init__(self, runner: Optional[Runner] = None, session: Optional[TestSession] = None):
        self.runner = runner
        self.session = session if session is not None else TestSession(self.get_runner)

    def set_runner(self, runner: Optional[Runner]) -> None:
        self.runner = runner

    def get_runner(self) -> Runner:
        return self.runner if self.runner is not None else NO_RUNNER

    def has_runner(self) -> bool:
        return self.runner is not None

DEFAULT_CONTEXT = RuntimeContext()

# ---------- ABI export registry ----------

@dataclass(frozen=True)
class _Export:
    fn: Callable[..., JsValue]
    arity: int
    bound: bool
    constructor: bool

_EXPORTS: Dict[str, _Export] = {}

def _positional_count(fn: Callable[..., JsValue]) -> int:
    return len(inspect.signature(fn).parameters)

def export(name: str, *, constructor: bool = False):
    def dec(fn: Callable[..., JsValue]):
        _EXPORTS[name] = _Export(fn, _positional_count(fn), False, constructor)
        return fn

    return dec

def export_bound(name: str, *, constructor: bool = False):
    def dec(fn: Callable[..., JsValue]):
        _EXPORTS[name] = _Export(fn, _positional_count(fn) - 1, True, constructor)
        return fn

    return dec

def _native(name: str, entry: _Export, ctx: RuntimeContext) -> NativeFunction:
    def invoke(args: List[JsValue]) -> JsValue:
        padded = list(args[:entry.arity]) + [UNDEFINED] * (entry.arity - len(args))
        result = entry.fn(ctx, *padded) if entry.bound else entry.fn(*padded)
        if not is_js_value(result):
            elementary_bug(f"{name} returned a non-JavaScript value {result!r}")
        return result

    ctor = invoke if entry.constructor else None
    return NativeFunction(name, lambda _this, args: invoke(args), ctor)

def exported_names() -> Tuple[str, ...]:
    return (*_EXPORTS, "SafeArray", "Array")

def runtime_object(ctx: Optional[RuntimeContext] = None) -> JsObject:
    """Object bound to the loader identifier: every ABI function by name."""
    init_stdlib()
    ctx = ctx or DEFAULT_CONTEXT
    slots: Dict[str, JsValue] = {name: _native(name, entry, ctx) for name, entry in _EXPORTS.items()}
    slots["SafeArray"] = _safe_array(ctx)
    slots["Array"] = array_stub(ctx)
    return JsObject(slots)

# ---------- internal bugs ----------

def elementary_bug(what: str) -> NoReturn:
    logger.error("internal consistency check failed: %s", what, stack_info=True)
    raise ElementaryBugError(BUG_MESSAGE + what)

# ---------- member and index checks ----------

_MEMBER_BASE_CLASSES = ("object", "string", "boolean", "number")

@export_bound("dot")
def dot(ctx: RuntimeContext, obj: JsValue, index: JsValue) -> JsValue:
    if type_of(obj) not in _MEMBER_BASE_CLASSES or isinstance(obj, JsNull):
        raise ElementaryRuntimeError("cannot access member of non-object value types")

    key = property_key(index)
    value = get_property(obj, key)

    if value is None or isinstance(value, JsUndefined):
        raise ElementaryRuntimeError(f"object does not have member '{key}'")

    if isinstance(obj, JsString) and key == "split":
        return _string_split_function(ctx, obj)

    return value

def _string_split_function(ctx: RuntimeContext, s: JsString) -> NativeFunction:
    def split(_this: JsValue, args: List[JsValue]) -> JsValue:
        return check_call(ctx, s, JsString("split"), JsArray(list(args)))

    return NativeFunction("split", split)

@export_bound("checkCall")
def check_call(ctx: RuntimeContext, obj: JsValue, field: JsValue, args: JsValue) -> JsValue:
    if isinstance(obj, JsString) and property_key(field) == "split":
        items = args.items if isinstance(args, JsArray) else []
        return stopify_array(ctx, JsArray([JsString(p) for p in split_string(obj.value, items[0] if items else UNDEFINED)]))

    elementary_bug(f"checkCall with {property_key(field)} on {type_of(obj)}")

def split_string(s: str, sep: JsValue) -> List[str]:
    if isinstance(sep, JsUndefined):
        return [s]

    sep_text = to_js_string(sep)
    if sep_text == "":
        return list(s)

    return s.split(sep_text)

def _checked_index(obj: JsValue, index: JsValue) -> int:
    if not isinstance(obj, JsArray):
        raise ElementaryRuntimeError("array indexing called on a non-array value type")

    if not isinstance(index, JsNumber) or not (index.value >= 0) or not float(index.value).is_integer():
        raise ElementaryRuntimeError(f"array index '{to_js_string(index)}' is not valid")

    i = int(index.value)
    if i >= len(obj.items) or isinstance(obj.items[i], JsUndefined):
        raise ElementaryRuntimeError(f"index '{to_js_string(index)}' is out of array bounds")

    return i

@export("arrayBoundsCheck")
def array_bounds_check(obj: JsValue, index: JsValue) -> JsValue:
    i = _checked_index(obj, index)
    return obj.items[i]

@export_bound("checkMember")
def check_member(ctx: RuntimeContext, obj: JsValue, key: JsValue, value: JsValue) -> JsValue:
    if isinstance(obj, JsArray):
        raise ElementaryRuntimeError(f"cannot set .{property_key(key)} of an array")

    dot(ctx, obj, key)
    return set_property(obj, property_key(key), value)

@export("checkArray")
def check_array(obj: JsValue, index: JsValue, value: JsValue) -> JsValue:
    i = _checked_index(obj, index)
    obj.items[i] = value
    return value

# ---------- update operators ----------

@export("checkUpdateOperand")
def check_update_operand(opcode: JsValue, obj: JsValue, member: JsValue) -> JsValue:
    op = property_key(opcode)
    key = property_key(member)

    if not has_own_property(obj, key):
        if isinstance(member, JsNumber):
            raise ElementaryRuntimeError(f"index '{key}' is out of array bounds")
        raise ElementaryRuntimeError(f"object does not have member '{key}'")

    current = get_property(obj, key)
    if not isinstance(current, JsNumber):
        raise ElementaryRuntimeError(f"argument of operator '{op}' must be a number")

    if op == "++":
        updated = JsNumber(current.value + 1)
    elif op == "--":
        updated = JsNumber(current.value - 1)
    else:
        elementary_bug("UpdateOperand dynamic check")

    return set_property(obj, key, updated)

@export("updateOnlyNumbers")
def update_only_numbers(opcode: JsValue, value: JsValue) -> JsValue:
    if not isinstance(value, JsNumber):
        raise ElementaryRuntimeError(f"argument of operator '{property_key(opcode)}' must be a number")

    return UNDEFINED

@export("checkNumberAndReturn")
def check_number_and_return(opcode: JsValue, value: JsValue) -> JsValue:
    update_only_numbers(opcode, value)
    return value

# ---------- binary operators ----------

@export("applyNumOrStringOp")
def apply_num_or_string_op(op: JsValue, lhs: JsValue, rhs: JsValue) -> JsValue:
    symbol = property_key(op)
    both_strings = isinstance(lhs, JsString) and isinstance(rhs, JsString)
    both_numbers = isinstance(lhs, JsNumber) and isinstance(rhs, JsNumber)

    if not (both_strings or both_numbers):
        raise ElementaryRuntimeError(f"arguments of operator '{symbol}' must both be numbers or strings")

    if symbol != "+":
        elementary_bug(f"applyNumOrStringOp '{symbol}'")

    if both_strings:
        return JsString(lhs.value + rhs.value)

    return JsNumber(lhs.value + rhs.value)

@export("applyNumOp")
def apply_num_op(op: JsValue, lhs: JsValue, rhs: JsValue) -> JsValue:
    symbol = property_key(op)

    if not (isinstance(lhs, JsNumber) and isinstance(rhs, JsNumber)):
        raise ElementaryRuntimeError(f"arguments of operator '{symbol}' must both be numbers")

    handler = _NUM_OPS.get(symbol)
    if handler is None:
        elementary_bug(f"applyNumOp '{symbol}'")

    return handler(lhs.value, rhs.value)

@export("applyBinaryBooleanOp")
def apply_binary_boolean_op(op: JsValue, lhs: JsValue, rhs: JsValue) -> JsValue:
    symbol = property_key(op)

    if not (isinstance(lhs, JsBool) and isinstance(rhs, JsBool)):
        raise ElementaryRuntimeError(f"arguments of operator '{symbol}' must both be booleans")

    if symbol == "&&":
        return JsBool(lhs.value and rhs.value)
    if symbol == "||":
        return JsBool(lhs.value or rhs.value)

    elementary_bug(f"applyBinaryBooleanOp '{symbol}'")

# ---------- functions ----------

def _plural(n: str) -> str:
    return f"{n} argument" if n == "1" else f"{n} arguments"

@export("arityCheck")
def arity_check(name: JsValue, expected: JsValue, actual: JsValue) -> JsValue:
    if to_js_string(expected) != to_js_string(actual):
        raise ElementaryRuntimeError(
            f"function {to_js_string(name)} expected {_plural(to_js_string(expected))} "
            f"but received {_plural(to_js_string(actual))}"
        )

    return UNDEFINED

# ---------- arrays ----------

@export_bound("stopifyArray")
def stopify_array(ctx: RuntimeContext, array: JsValue) -> JsValue:
    if not isinstance(array, JsArray):
        elementary_bug(f"stopifyArray on {type_of(array)}")

    return ctx.get_runner().stopify_array(array)

def create_array(ctx: RuntimeContext, args: List[JsValue]) -> JsValue:
    if len(args) != 2:
        raise ElementaryRuntimeError(f".create expects 2 arguments, received {len(args)}")

    n, init = args
    if not isinstance(n, JsNumber) or to_int32(n.value) != n.value or n.value <= 0:
        raise ElementaryRuntimeError("array size must be a positive integer")

    return stopify_array(ctx, JsArray([init] * int(n.value)))

def array_stub(ctx: RuntimeContext) -> NativeFunction:
    """``Array`` as seen by programs: not constructible, only ``Array.create``."""
    def refuse(*_args: object) -> JsValue:
        raise ElementaryRuntimeError("use Array.create(length, init)")

    create = NativeFunction("create", lambda _this, args: create_array(ctx, args))
    return NativeFunction("Array", refuse, constructor=refuse, props={"create": create})

def _safe_array(ctx: RuntimeContext) -> NativeFunction:
    def construct(args: List[JsValue]) -> JsValue:
        if len(args) != 2:
            raise ElementaryRuntimeError(f"new Array expects 2 arguments, received {len(args)}")
        return create_array(ctx, args)

    return NativeFunction("SafeArray", lambda _this, args: construct(args), constructor=construct)

# ---------- embedded tests ----------

@export_bound("enableTests")
def enable_tests(ctx: RuntimeContext, enable: JsValue, timeout: JsValue) -> JsValue:
    timeout_ms = DEFAULT_TIMEOUT_MS
    if isinstance(timeout, JsNumber) and math.isfinite(timeout.value) and timeout.value > 0:
        timeout_ms = int(timeout.value)
    ctx.session.enable_tests(isinstance(enable, JsBool) and enable.value, timeout_ms)
    return UNDEFINED

@export("assert")
def check_assertion(value: JsValue) -> JsValue:
    if not isinstance(value, JsBool):
        raise ElementaryTestingError(f"assertion argument '{to_js_string(value)}' is not a boolean value")

    if not value.value:
        raise ElementaryTestingError("assertion failed")

    return JsBool(True)

@export_bound("test")
def register_test(ctx: RuntimeContext, description: JsValue, body: JsValue) -> JsValue:
    ctx.session.test(to_js_string(description), lambda: call_function(body, []))
    return UNDEFINED

@export_bound("summary")
def render_summary(ctx: RuntimeContext, has_styles: JsValue) -> JsValue:
    result = ctx.session.summary(isinstance(has_styles, JsBool) and has_styles.value)
    return JsObject({
        "output": JsString(result.output),
        "style": JsArray([JsString(s) for s in result.style]),
    })

# ---------- version and runner accessors ----------

@export("version")
def version() -> JsValue:
    return JsString(__version__)

@export_bound("getRunner")
def get_runner(ctx: RuntimeContext) -> JsValue:
    if not ctx.has_runner():
        return JsObject({"kind": JsString("error")})

    return JsObject({"kind": JsString("ok")})

@export_bound("setRunner")
def set_runner(ctx: RuntimeContext, runner: JsValue) -> JsValue:
    if not isinstance(runner, (JsUndefined, JsNull)):
        raise ElementaryRuntimeError("a runner can only be installed by the host")

    ctx.set_runner(None)
    return UNDEFINED
