"""Shared helpers for working with the lark Tree/Token nodes used across the project.

Builders in this module create nodes in the canonical shapes produced by
``ast_transforms.Normalize`` so the pass, the emitter and the evaluator all see
one representation whether a node came from the parser or was generated.
"""
from __future__ import annotations

import json
from typing import Callable, Iterable, Iterator, List, Optional, Set, Tuple
from typing_extensions import TypeAlias, TypeGuard

from lark import Token, Tree
from lark.tree import Meta

Node: TypeAlias = Tree | Token

RUNTIME_IDENT = "rts"

_PROCESSED_ATTR = "elementary_processed"

OPERATOR_TERMINALS = {
    "=": "ASSIGN", "+=": "PLUS_ASSIGN", "-=": "MINUS_ASSIGN", "*=": "STAR_ASSIGN",
    "/=": "SLASH_ASSIGN", "%=": "PERCENT_ASSIGN", "<<=": "LSHIFT_ASSIGN",
    ">>=": "RSHIFT_ASSIGN", ">>>=": "URSHIFT_ASSIGN", "&=": "AND_ASSIGN",
    "|=": "OR_ASSIGN", "^=": "XOR_ASSIGN", "**=": "POW_ASSIGN",
    "||": "OR_OP", "&&": "AND_OP", "|": "PIPE", "^": "CARET", "&": "AMP",
    "==": "EQ", "!=": "NE", "===": "SEQ", "!==": "SNE",
    "<": "LT", ">": "GT", "<=": "LE", ">=": "GE",
    "<<": "LSHIFT", ">>": "RSHIFT", ">>>": "URSHIFT",
    "+": "PLUS", "-": "MINUS", "*": "STAR", "/": "SLASH", "%": "PERCENT", "**": "POW",
    "!": "BANG", "~": "TILDE", "++": "INCR", "--": "DECR",
    "in": "IN", "instanceof": "INSTANCEOF", "typeof": "TYPEOF", "void": "VOID", "delete": "DELETE",
}

FUNCTION_LABELS = frozenset({"func_decl", "func_expr", "arrow_func"})


def is_tree(node: object) -> TypeGuard[Tree]:
    return isinstance(node, Tree)

def is_token(node: object) -> TypeGuard[Token]:
    return isinstance(node, Token)

def tree_label(node: object) -> Optional[str]:
    return node.data if is_tree(node) else None

def tree_children(node: object) -> List[Node]:
    if not is_tree(node):
        return []

    return list(node.children)

def node_meta(node: object) -> Optional[Meta]:
    if not is_tree(node):
        return None

    meta = node.meta
    if getattr(meta, "empty", True):
        return None

    return meta

def token_kind(node: object) -> Optional[str]:
    if not is_token(node):
        return None

    return str(node.type)

def is_ident(node: object, name: Optional[str] = None) -> bool:
    if token_kind(node) != "IDENT":
        return False

    return name is None or str(node) == name

def node_position(node: object) -> Tuple[Optional[int], Optional[int]]:
    """Return (line, column) of the first positioned token or meta in ``node``."""
    if is_token(node):
        return node.line, node.column

    meta = node_meta(node)
    if meta is not None and getattr(meta, "line", None) is not None:
        return meta.line, getattr(meta, "column", None)

    for child in tree_children(node):
        line, column = node_position(child)
        if line is not None:
            return line, column

    return None, None

def node_line(node: object) -> Optional[int]:
    return node_position(node)[0]

def walk_tokens(node: object) -> Iterator[Token]:
    if is_token(node):
        yield node
        return

    for child in tree_children(node):
        yield from walk_tokens(child)

def collect_identifiers(node: Node) -> Set[str]:
    return {str(tok) for tok in walk_tokens(node) if tok.type == "IDENT"}

def find_trees(node: Node, predicate: Callable[[Tree], bool]) -> Iterator[Tree]:
    if not is_tree(node):
        return

    if predicate(node):
        yield node

    for child in node.children:
        yield from find_trees(child, predicate)

# ---------- processed marker ----------

def mark_processed(node: Node) -> Node:
    if is_tree(node):
        setattr(node, _PROCESSED_ATTR, True)

    return node

def is_processed(node: object) -> bool:
    return bool(getattr(node, _PROCESSED_ATTR, False))

# ---------- builders ----------

def _meta_like(like: Optional[object]) -> Meta:
    meta = Meta()
    if like is None:
        return meta

    line, column = node_position(like)
    if line is not None:
        meta.line = line
        meta.column = column if column is not None else 1
        meta.empty = False

    return meta

def _token_like(type_: str, value: str, like: Optional[object]) -> Token:
    line, column = node_position(like) if like is not None else (None, None)
    return Token(type_, value, line=line, column=column)

def make(label: str, children: Iterable[Optional[Node]], like: Optional[object] = None) -> Tree:
    return Tree(label, list(children), _meta_like(like))

def ident(name: str, like: Optional[object] = None) -> Token:
    return _token_like("IDENT", name, like)

def string_lit(value: str, like: Optional[object] = None) -> Token:
    return _token_like("STRING", json.dumps(value), like)

def number_lit(value: int, like: Optional[object] = None) -> Token:
    return _token_like("NUMBER", str(value), like)

def op_token(op: str, like: Optional[object] = None) -> Token:
    return _token_like(OPERATOR_TERMINALS.get(op, "OP"), op, like)

def keyword(type_: str, like: Optional[object] = None) -> Token:
    return _token_like(type_, type_.lower(), like)

def runtime_member(name: str, like: Optional[object] = None) -> Tree:
    return make("member", [ident(RUNTIME_IDENT, like), ident(name, like)], like)

def runtime_call(name: str, *args: Node, like: Optional[object] = None) -> Tree:
    """Build ``rts.<name>(args...)``, marked processed."""
    call = make("call", [runtime_member(name, like), make("args", args, like)], like)
    return mark_processed(call)

def var_declaration(name: str, init: Optional[Node], like: Optional[object] = None) -> Tree:
    declarator = make("declarator", [ident(name, like), init], like)
    return make("var_decl", [keyword("VAR", like), declarator], like)

def unquote_string(raw: str) -> str:
    """Decode a STRING token's source text into its value."""
    body = raw[1:-1] if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'" else raw
    out: List[str] = []
    i = 0

    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 >= len(body):
            out.append(ch)
            i += 1
            continue

        esc = body[i + 1]
        i += 2
        match esc:
            case "n":
                out.append("\n")
            case "t":
                out.append("\t")
            case "r":
                out.append("\r")
            case "b":
                out.append("\b")
            case "f":
                out.append("\f")
            case "v":
                out.append("\v")
            case "0":
                out.append("\0")
            case "u" if i + 4 <= len(body):
                out.append(chr(int(body[i:i + 4], 16)))
                i += 4
            case "x" if i + 2 <= len(body):
                out.append(chr(int(body[i:i + 2], 16)))
                i += 2
            case _:
                out.append(esc)

    return "".join(out)
