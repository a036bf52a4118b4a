from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple
from typing_extensions import Protocol, TypeAlias, TypeGuard

from .tree import Node

# ---------- Value Model ----------

@dataclass
class JsUndefined:
    def __repr__(self) -> str:
        return "undefined"

@dataclass
class JsNull:
    def __repr__(self) -> str:
        return "null"

@dataclass
class JsNumber:
    value: float
    def __repr__(self) -> str:
        return number_to_string(self.value)

@dataclass
class JsString:
    value: str
    def __repr__(self) -> str:
        return f"'{self.value}'"

@dataclass
class JsBool:
    value: bool
    def __repr__(self) -> str:
        return "true" if self.value else "false"

@dataclass(eq=False)
class JsArray:
    items: List['JsValue']
    def __repr__(self) -> str:
        return "[ " + ", ".join(repr(x) for x in self.items) + " ]" if self.items else "[]"

@dataclass(eq=False)
class JsObject:
    slots: Dict[str, 'JsValue']
    def __repr__(self) -> str:
        if not self.slots:
            return "{}"

        pairs = []

        for k, v in self.slots.items():
            pairs.append(f"{k}: {repr(v)}")

        return "{ " + ", ".join(pairs) + " }"

@dataclass(eq=False)
class JsFunction:
    params: List[str]
    body: Node                    # block node
    frame: 'Frame'                # closure frame
    name: Optional[str] = None
    is_arrow: bool = False
    props: Dict[str, 'JsValue'] = field(default_factory=dict)
    def __repr__(self) -> str:
        return f"[Function: {self.name}]" if self.name else "[Function (anonymous)]"

NativeFn = Callable[['JsValue', List['JsValue']], 'JsValue']
NativeCtor = Callable[[List['JsValue']], 'JsValue']

@dataclass(eq=False)
class NativeFunction:
    name: str
    fn: NativeFn
    constructor: Optional[NativeCtor] = None
    props: Dict[str, 'JsValue'] = field(default_factory=dict)
    def __repr__(self) -> str:
        return f"[Function: {self.name}]"

@dataclass(eq=False)
class BuiltinMethod:
    name: str
    subject: 'JsValue'
    def __repr__(self) -> str:
        return f"[Function: {self.name}]"

JsValue: TypeAlias = (
    JsUndefined
    | JsNull
    | JsNumber
    | JsString
    | JsBool
    | JsArray
    | JsObject
    | JsFunction
    | NativeFunction
    | BuiltinMethod
)

_JS_VALUE_TYPES: Tuple[type, ...] = (
    JsUndefined,
    JsNull,
    JsNumber,
    JsString,
    JsBool,
    JsArray,
    JsObject,
    JsFunction,
    NativeFunction,
    BuiltinMethod,
)

UNDEFINED = JsUndefined()

def is_js_value(value: object) -> TypeGuard[JsValue]:
    return isinstance(value, _JS_VALUE_TYPES)

def type_of(value: JsValue) -> str:
    """Operand class of a value, as JavaScript's ``typeof`` reports it."""
    match value:
        case JsUndefined():
            return "undefined"
        case JsNumber():
            return "number"
        case JsString():
            return "string"
        case JsBool():
            return "boolean"
        case JsFunction() | NativeFunction() | BuiltinMethod():
            return "function"
        case _:
            return "object"

_EXP_RE = re.compile(r"e([+-])0*(\d)")

def number_to_string(v: float) -> str:
    if math.isnan(v):
        return "NaN"

    if math.isinf(v):
        return "Infinity" if v > 0 else "-Infinity"

    if v.is_integer() and abs(v) < 1e21:
        return str(int(v))

    return _EXP_RE.sub(r"e\1\2", repr(v))

# ---------- Frames ----------

class Frame:
    def __init__(self, parent: Optional['Frame']=None, function_frame: bool=False):
        self.parent = parent
        self.vars: Dict[str, JsValue] = {}
        self.consts: Set[str] = set()
        self._is_function_frame = function_frame or parent is None

    def define(self, name: str, val: JsValue, const: bool=False) -> None:
        self.vars[name] = val

        if const:
            self.consts.add(name)
        else:
            self.consts.discard(name)

    def declare_var(self, name: str) -> None:
        """Hoist a function-scoped binding to the nearest function frame."""
        target = self.function_frame()

        if name not in target.vars:
            target.vars[name] = UNDEFINED

    def has(self, name: str) -> bool:
        if name in self.vars:
            return True

        return self.parent is not None and self.parent.has(name)

    def get(self, name: str) -> JsValue:
        if name in self.vars:
            return self.vars[name]

        if self.parent is not None:
            return self.parent.get(name)

        raise JsReferenceError(f"{name} is not defined")

    def set(self, name: str, val: JsValue) -> None:
        if name in self.vars:
            if name in self.consts:
                raise JsTypeError("Assignment to constant variable.")
            self.vars[name] = val
            return

        if self.parent is not None:
            self.parent.set(name, val)
            return

        raise JsReferenceError(f"{name} is not defined")

    def function_frame(self) -> 'Frame':
        cur = self

        while not cur._is_function_frame and cur.parent is not None:
            cur = cur.parent

        return cur

# ---------- Exceptions ----------

class ElementaryError(Exception):
    js_meta: Optional[object]

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        self.js_meta = None

    def __str__(self) -> str:  # pragma: no cover - trivial formatting
        msg = super().__str__()

        line = getattr(self.js_meta, "line", None)
        if line is None:
            return msg

        return f"{msg} (line {line})"

class ElementaryRuntimeError(ElementaryError):
    """A runtime safety check rejected an operation."""

class ElementaryBugError(ElementaryError):
    """A state the restriction pass should have made unreachable."""

class ElementaryTestingError(ElementaryError):
    """An assertion inside the embedded test harness failed."""

class ElementaryTimeoutError(ElementaryError):
    """A time budget was exhausted."""

class JsReferenceError(ElementaryError):
    pass

class JsTypeError(ElementaryError):
    pass

class JsRangeError(ElementaryError):
    pass

class ElementaryCompileError(ElementaryError):
    """Raised by the run pipeline when compilation produced diagnostics."""
    def __init__(self, errors: List[object]):
        lines = "\n".join(f"- {err}" for err in errors)
        super().__init__(f"compilation failed:\n{lines}")
        self.errors = list(errors)

class InternalCompilerError(ElementaryError):
    """The restriction pass reached an inconsistent state."""

class JsReturnSignal(Exception):
    """Internal control-flow exception used to implement `return`."""
    def __init__(self, value: JsValue):
        self.value = value

class JsBreakSignal(Exception):
    """Internal control flow for `break`."""

class JsContinueSignal(Exception):
    """Internal control flow for `continue`."""

# ---------- Builtin method registries ----------

class Method(Protocol):
    def __call__(self, recv: JsValue, args: List[JsValue]) -> JsValue: ...

MethodRegistry = Dict[str, Method]

class Builtins:
    array_methods: MethodRegistry = {}
    string_methods: MethodRegistry = {}
    globals: Dict[str, JsValue] = {}
