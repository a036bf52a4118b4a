"""Render a (rewritten) program tree as JavaScript source text."""

from __future__ import annotations

from typing import Callable, Dict, Optional

from lark import Tree

from .tree import Node, is_token, tree_label

INDENT = "  "

_COMPOUND = frozenset({
    "assign", "binary", "logical", "conditional", "sequence", "unary",
    "pre_update", "post_update", "arrow_func", "func_expr", "new_expr",
})


class EmitError(Exception):
    pass


def emit_program(program: Tree) -> str:
    return "\n".join(_stmt(s, 0) for s in program.children) + ("\n" if program.children else "")


def emit_expr(node: Node) -> str:
    return _expr(node)

# ---------------- statements ----------------

def _stmt(node: Node, level: int) -> str:
    pad = INDENT * level
    label = tree_label(node)
    handler = _STMT_DISPATCH.get(label) if label is not None else None

    if handler is None:
        raise EmitError(f"cannot emit statement {label or node!r}")

    return pad + handler(node, level)

def _body(node: Node, level: int) -> str:
    """Statement in a body position: blocks stay on the header line."""
    if tree_label(node) == "block":
        return " " + _block(node, level)

    return "\n" + _stmt(node, level + 1)

def _block(node: Tree, level: int) -> str:
    if not node.children:
        return "{}"

    inner = "\n".join(_stmt(s, level + 1) for s in node.children)
    return "{\n" + inner + "\n" + INDENT * level + "}"

def _var_decl(node: Tree) -> str:
    kind, *declarators = node.children
    return f"{kind} " + ", ".join(_declarator(d) for d in declarators)

def _declarator(node: Tree) -> str:
    target, init = node.children
    text = _target(target)

    if init is not None:
        text += " = " + _item(init)

    return text

def _target(node: Node) -> str:
    label = tree_label(node)

    if label == "array_pattern":
        return "[" + ", ".join(str(c) for c in node.children) + "]"

    if label == "object_pattern":
        return "{ " + ", ".join(str(c) for c in node.children) + " }"

    return _expr(node)

def _expr_stmt(node: Tree, level: int) -> str:
    text = _expr(node.children[0])

    if text.startswith(("{", "function")):
        text = f"({text})"

    return text + ";"

def _if_stmt(node: Tree, level: int) -> str:
    test, cons, alt = node.children
    text = f"if ({_expr(test)})" + _body(cons, level)

    if alt is not None:
        sep = " " if tree_label(cons) == "block" else "\n" + INDENT * level
        if tree_label(alt) == "if_stmt":
            text += sep + "else " + _if_stmt(alt, level)
        else:
            text += sep + "else" + _body(alt, level)

    return text

def _for_init(node: Optional[Node]) -> str:
    if node is None:
        return ""

    if tree_label(node) == "var_decl":
        return _var_decl(node)

    return _expr(node)

def _for_stmt(node: Tree, level: int) -> str:
    init, test, update, body = node.children
    parts = [
        _for_init(init),
        "" if test is None else " " + _expr(test),
        "" if update is None else " " + _expr(update),
    ]
    return f"for ({parts[0]};{parts[1]};{parts[2]})" + _body(body, level)

def _for_each(keyword: str) -> Callable[[Tree, int], str]:
    def render(node: Tree, level: int) -> str:
        left, right, body = node.children
        return f"for ({_for_init(left)} {keyword} {_expr(right)})" + _body(body, level)
    return render

def _switch_stmt(node: Tree, level: int) -> str:
    disc, *cases = node.children
    pad = INDENT * (level + 1)
    lines = [f"switch ({_expr(disc)}) {{"]

    for case in cases:
        test, *stmts = case.children
        lines.append(pad + ("default:" if test is None else f"case {_expr(test)}:"))
        lines.extend(_stmt(s, level + 2) for s in stmts)

    lines.append(INDENT * level + "}")
    return "\n".join(lines)

def _function(keyword_name: str, params: Tree, body: Tree, level: int) -> str:
    return f"{keyword_name}({', '.join(str(p) for p in params.children)}) " + _block(body, level)

def _func_decl(node: Tree, level: int) -> str:
    name, params, body = node.children
    return _function(f"function {name}", params, body, level)

_STMT_DISPATCH: Dict[str, Callable[[Tree, int], str]] = {
    "var_decl": lambda n, lvl: _var_decl(n) + ";",
    "expr_stmt": _expr_stmt,
    "block": _block,
    "empty_stmt": lambda n, lvl: ";",
    "if_stmt": _if_stmt,
    "for_stmt": _for_stmt,
    "for_in": _for_each("in"),
    "for_of": _for_each("of"),
    "while_stmt": lambda n, lvl: f"while ({_expr(n.children[0])})" + _body(n.children[1], lvl),
    "do_while": lambda n, lvl: "do" + _body(n.children[0], lvl) + f" while ({_expr(n.children[1])});",
    "return_stmt": lambda n, lvl: "return;" if n.children[0] is None else f"return {_expr(n.children[0])};",
    "break_stmt": lambda n, lvl: "break;" if n.children[0] is None else f"break {n.children[0]};",
    "continue_stmt": lambda n, lvl: "continue;" if n.children[0] is None else f"continue {n.children[0]};",
    "throw_stmt": lambda n, lvl: f"throw {_expr(n.children[0])};",
    "with_stmt": lambda n, lvl: f"with ({_expr(n.children[0])})" + _body(n.children[1], lvl),
    "switch_stmt": _switch_stmt,
    "labeled_stmt": lambda n, lvl: f"{n.children[0]}: " + _stmt(n.children[1], lvl).lstrip(),
    "func_decl": _func_decl,
}

# ---------------- expressions ----------------

def _operand(node: Node) -> str:
    """Sub-expression position: compound forms are parenthesised."""
    text = _expr(node)

    if tree_label(node) in _COMPOUND:
        return f"({text})"

    return text

def _item(node: Node) -> str:
    """List-element position (arguments, array items, initialisers)."""
    text = _expr(node)

    if tree_label(node) == "sequence":
        return f"({text})"

    return text

def _args(node: Tree) -> str:
    return "(" + ", ".join(_item(a) for a in node.children) + ")"

def _arrow(node: Tree) -> str:
    params, body = node.children
    head = "(" + ", ".join(str(p) for p in params.children) + ") => "

    if tree_label(body) == "block":
        return head + _block(body, 0)

    text = _item(body)
    if tree_label(body) == "object_lit":
        text = f"({text})"

    return head + text

def _unary(node: Tree) -> str:
    op, arg = node.children
    sep = " " if str(op).isalpha() else ""
    return f"{op}{sep}{_operand(arg)}"

def _func_expr(node: Tree) -> str:
    name, params, body = node.children
    head = "function" if name is None else f"function {name}"
    return _function(head, params, body, 0)

def _object_lit(node: Tree) -> str:
    if not node.children:
        return "{}"

    return "{ " + ", ".join(f"{p.children[0]}: {_item(p.children[1])}" for p in node.children) + " }"

_EXPR_DISPATCH: Dict[str, Callable[[Tree], str]] = {
    "member": lambda n: f"{_operand(n.children[0])}.{n.children[1]}",
    "index": lambda n: f"{_operand(n.children[0])}[{_expr(n.children[1])}]",
    "call": lambda n: _operand(n.children[0]) + _args(n.children[1]),
    "new_expr": lambda n: f"new {_operand(n.children[0])}" + _args(n.children[1]),
    "assign": lambda n: f"{_expr(n.children[0])} {n.children[1]} {_item(n.children[2])}",
    "binary": lambda n: f"{_operand(n.children[0])} {n.children[1]} {_operand(n.children[2])}",
    "logical": lambda n: f"{_operand(n.children[0])} {n.children[1]} {_operand(n.children[2])}",
    "unary": _unary,
    "pre_update": lambda n: f"{n.children[0]}{_operand(n.children[1])}",
    "post_update": lambda n: f"{_operand(n.children[1])}{n.children[0]}",
    "conditional": lambda n: " ".join([_operand(n.children[0]), "?", _operand(n.children[1]), ":", _operand(n.children[2])]),
    "sequence": lambda n: ", ".join(_operand(c) for c in n.children),
    "array_lit": lambda n: "[" + ", ".join(_item(c) for c in n.children) + "]",
    "object_lit": _object_lit,
    "arrow_func": _arrow,
    "func_expr": _func_expr,
}

def _expr(node: Node) -> str:
    if is_token(node):
        return str(node)

    label = tree_label(node)
    handler = _EXPR_DISPATCH.get(label) if label is not None else None

    if handler is None:
        raise EmitError(f"cannot emit expression {label or node!r}")

    return handler(node)
