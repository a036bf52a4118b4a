from __future__ import annotations

import math
from typing import List, Optional, Set

from ..runtime import to_js_string
from ..tree import FUNCTION_LABELS, Node, is_token, is_tree, tree_label
from ..types import (
    JsBool,
    JsNull,
    JsNumber,
    JsString,
    JsUndefined,
    JsValue,
)

def is_truthy(val: JsValue) -> bool:
    match val:
        case JsBool(value=b):
            return b
        case JsUndefined() | JsNull():
            return False
        case JsNumber(value=num):
            return not (num == 0 or math.isnan(num))
        case JsString(value=s):
            return bool(s)
        case _:
            return True

def strict_equals(lhs: JsValue, rhs: JsValue) -> bool:
    if type(lhs) is not type(rhs):
        return False

    match lhs:
        case JsUndefined() | JsNull():
            return True
        case JsNumber(value=num):
            return num == rhs.value
        case JsString(value=s) | JsBool(value=s):
            return s == rhs.value
        case _:
            return lhs is rhs

def to_number(val: JsValue) -> float:
    match val:
        case JsNumber(value=num):
            return num
        case JsBool(value=b):
            return 1.0 if b else 0.0
        case JsNull():
            return 0.0
        case JsString(value=s):
            text = s.strip()
            if not text:
                return 0.0
            try:
                if text.lower().startswith("0x"):
                    return float(int(text, 16))
                return float(text)
            except ValueError:
                return math.nan
        case _:
            return math.nan

def display(val: JsValue) -> str:
    """console.log rendering: strings bare at the top level, quoted inside containers."""
    if isinstance(val, JsString):
        return val.value

    return repr(val)

def parse_number_token(text: str) -> float:
    if text[:2] in ("0x", "0X"):
        return float(int(text, 16))

    return float(text)

def object_key(node: Node) -> str:
    from ..tree import unquote_string

    if is_token(node):
        if node.type == "STRING":
            return unquote_string(str(node))
        if node.type == "NUMBER":
            return to_js_string(JsNumber(parse_number_token(str(node))))
        return str(node)

    raise ValueError(f"unsupported object key {node!r}")

def collect_var_names(statements: List[Node]) -> Set[str]:
    """Names declared with ``var`` in a function body, not descending into nested functions."""
    names: Set[str] = set()

    def visit(node: Optional[Node]) -> None:
        if not is_tree(node) or tree_label(node) in FUNCTION_LABELS:
            return

        if tree_label(node) == "var_decl" and str(node.children[0]) == "var":
            for declarator in node.children[1:]:
                target = declarator.children[0]
                if is_token(target):
                    names.add(str(target))

        for child in node.children:
            visit(child)

    for stmt in statements:
        visit(stmt)

    return names
