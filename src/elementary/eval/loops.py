from __future__ import annotations

from typing import Optional

from lark import Tree

from ..runtime import check_budget
from ..types import Frame, JsBreakSignal, JsContinueSignal, JsValue
from .helpers import is_truthy

def _next_iteration(current: Frame, parent: Frame) -> Frame:
    # each iteration gets its own copy of the loop bindings
    nxt = Frame(parent=parent)
    nxt.vars = dict(current.vars)
    nxt.consts = set(current.consts)
    return nxt

def eval_if_stmt(n: Tree, frame: Frame, eval_func) -> Optional[JsValue]:
    test, cons, alt = n.children

    if is_truthy(eval_func(test, frame)):
        return eval_func(cons, frame)

    if alt is not None:
        return eval_func(alt, frame)

    return None

def eval_for_stmt(n: Tree, frame: Frame, eval_func) -> None:
    init, test, update, body = n.children
    current = Frame(parent=frame)

    if init is not None:
        eval_func(init, current)

    while True:
        check_budget()

        if test is not None and not is_truthy(eval_func(test, current)):
            break

        try:
            eval_func(body, current)
        except JsBreakSignal:
            break
        except JsContinueSignal:
            pass

        current = _next_iteration(current, frame)

        if update is not None:
            eval_func(update, current)

    return None

def eval_while_stmt(n: Tree, frame: Frame, eval_func) -> None:
    test, body = n.children

    while True:
        check_budget()

        if not is_truthy(eval_func(test, frame)):
            break

        try:
            eval_func(body, frame)
        except JsBreakSignal:
            break
        except JsContinueSignal:
            continue

    return None

def eval_do_while(n: Tree, frame: Frame, eval_func) -> None:
    body, test = n.children

    while True:
        check_budget()

        try:
            eval_func(body, frame)
        except JsBreakSignal:
            break
        except JsContinueSignal:
            pass

        if not is_truthy(eval_func(test, frame)):
            break

    return None
