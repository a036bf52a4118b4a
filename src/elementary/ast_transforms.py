"""
Normalize transformer: canonicalises lark's parse tree into the node shapes the
restriction pass, the emitter and the evaluator expect (one shape per
construct, absent optional parts as ``None``, positions preserved).
"""

from __future__ import annotations

from typing import List, Optional

from lark import Token, Transformer, Tree, v_args

from .tree import Node, is_token, is_tree, make, tree_label


def _present(children: List[Optional[Node]]) -> List[Node]:
    return [ch for ch in children if ch is not None]


class Normalize(Transformer):
    @v_args(meta=True)
    def declarator(self, meta, children):
        target, *rest = children
        init = None

        for ch in rest:
            if ch is None or (is_token(ch) and ch.type == "ASSIGN"):
                continue
            init = ch

        return Tree("declarator", [target, init], meta)

    @v_args(meta=True)
    def for_binding(self, meta, children):
        kind, target = children
        declarator = Tree("declarator", [target, None], meta)
        return Tree("var_decl", [kind, declarator], meta)

    @v_args(meta=True)
    def post_update(self, meta, children):
        arg, op = children
        return Tree("post_update", [op, arg], meta)

    @v_args(meta=True)
    def new_bare(self, meta, children):
        (callee,) = children
        return Tree("new_expr", [callee, make("args", [], like=callee)], meta)

    @v_args(meta=True)
    def sequence(self, meta, children):
        flat: List[Node] = []

        for ch in children:
            if tree_label(ch) == "sequence":
                flat.extend(ch.children)
            else:
                flat.append(ch)

        return Tree("sequence", flat, meta)

    @v_args(meta=True)
    def for_in(self, meta, children):
        left, _keyword, right, body = children
        return Tree("for_in", [left, right, body], meta)

    @v_args(meta=True)
    def for_of(self, meta, children):
        left, _keyword, right, body = children
        return Tree("for_of", [left, right, body], meta)

    @v_args(meta=True)
    def default_case(self, meta, children):
        return Tree("switch_case", [None, *children], meta)

    @v_args(meta=True)
    def arrow_func(self, meta, children):
        params, body = children

        if is_token(params):
            params = Tree("params", [params], meta)

        return Tree("arrow_func", [params, body], meta)

    @v_args(meta=True)
    def params(self, meta, children):
        return Tree("params", _present(children), meta)

    @v_args(meta=True)
    def args(self, meta, children):
        return Tree("args", _present(children), meta)

    @v_args(meta=True)
    def array_lit(self, meta, children):
        return Tree("array_lit", _present(children), meta)

    @v_args(meta=True)
    def object_lit(self, meta, children):
        return Tree("object_lit", _present(children), meta)

    @v_args(meta=True)
    def array_pattern(self, meta, children):
        return Tree("array_pattern", _present(children), meta)

    @v_args(meta=True)
    def object_pattern(self, meta, children):
        return Tree("object_pattern", _present(children), meta)


def is_block(node: Optional[Node]) -> bool:
    return is_tree(node) and node.data == "block"


def is_loader_binding(node: Node, loader_name: str) -> bool:
    """True for ``var <loader_name> = ...;`` declarations."""
    if tree_label(node) != "var_decl" or len(node.children) != 2:
        return False

    declarator = node.children[1]
    target = declarator.children[0] if is_tree(declarator) else None

    return isinstance(target, Token) and target.type == "IDENT" and str(target) == loader_name
