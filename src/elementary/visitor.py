"""Restriction and desugaring pass.

The visitor enforces the static checks of Elementary JS and inserts the
dynamic checks. A failed static check does not abort the walk: messages are
accumulated on the visitor state and reported together once the program root
has been exited.

Guidelines for new checks:

- ``enter_<label>`` records diagnostics via ``state.error(path, message)``.
  If the node is too malformed to analyse further, call ``path.skip()``.
  Desugaring happens here too, without ``skip()``, so that the rewritten
  node is visited again.
- ``exit_<label>`` inserts dynamic checks. Replacements built with
  ``runtime_call`` are marked processed; call ``path.skip()`` afterwards so
  generated code is never checked.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Set

from .ast_transforms import is_block, is_loader_binding
from .traverse import NodePath, traverse
from .tree import (
    RUNTIME_IDENT,
    Node,
    collect_identifiers,
    ident,
    is_ident,
    is_processed,
    is_token,
    make,
    mark_processed,
    node_line,
    op_token,
    runtime_call,
    runtime_member,
    string_lit,
    tree_label,
    var_declaration,
)
from .types import InternalCompilerError

logger = logging.getLogger(__name__)

EQUALITY_OPERATORS = {"==": "===", "!=": "!=="}
STRICT_OPERATORS = ("===", "!==")
NUM_OR_STRING_OPERATORS = ("+",)
NUM_OPERATORS = ("<=", ">=", "<", ">", "<<", ">>", ">>>", "-", "*", "/", "%", "&", "|", "^")
ALLOWED_BINARY_OPERATORS = frozenset(
    (*EQUALITY_OPERATORS, *STRICT_OPERATORS, *NUM_OR_STRING_OPERATORS, *NUM_OPERATORS)
)
ALLOWED_ASSIGN_OPERATORS = ("=", "+=", "-=", "*=", "/=", "%=")

MEMBER_LABELS = ("member", "index")


@dataclass(frozen=True)
class Diagnostic:
    line: int
    message: str

    def __str__(self) -> str:
        return f"{self.message} (line {self.line})"


class VisitorState:
    """Per-compilation state: accumulated diagnostics plus read-only options."""

    def __init__(self, opts: Any):
        self.opts = opts
        self.errors: List[Diagnostic] = []
        self.used_names: Set[str] = set()

    def error(self, path: NodePath, message: str) -> None:
        line = node_line(path.node)
        if line is None and path.parent is not None:
            line = node_line(path.parent.node)
        self.errors.append(Diagnostic(line or 0, message))

    def fresh_temp(self, base: str = "tmp") -> str:
        name = f"_{base}"
        n = 1

        while name in self.used_names:
            n += 1
            name = f"_{base}{n}"

        self.used_names.add(name)
        return name

    def __str__(self) -> str:
        if not self.errors:
            return "VisitorState with no errors"

        lines = "\n".join(f"- {err}" for err in self.errors)
        return f"VisitorState with the following errors:\n{lines}"


def loader_expression(opts: Any, like: Optional[Node] = None) -> Node:
    """The expression that loads the runtime."""
    if getattr(opts, "is_online", False):
        return ident("elementaryjs", like)

    args = make("args", [string_lit("./runtime", like)], like)
    return make("call", [ident("require", like), args], like)


def _unassign(op: str) -> str:
    if op not in ALLOWED_ASSIGN_OPERATORS[1:]:
        raise InternalCompilerError(f"no binary operator for '{op}'")

    return op[:-1]


def _property_as_expr(member: Node) -> Node:
    """Computed key for ``o[k]``, string literal for ``o.k``."""
    obj_key = member.children[1]

    if tree_label(member) == "index":
        return obj_key

    return string_lit(str(obj_key), obj_key)


def _is_member(node: Any) -> bool:
    return tree_label(node) in MEMBER_LABELS


class Visitor:
    # ---- program ----

    def enter_program(self, path: NodePath, st: VisitorState) -> None:
        st.errors = []
        st.used_names = collect_identifiers(path.node)

    def exit_program(self, path: NodePath, st: VisitorState) -> None:
        body = path.node.children

        if body and not (is_processed(body[0]) and is_loader_binding(body[0], RUNTIME_IDENT)):
            binding = var_declaration(RUNTIME_IDENT, loader_expression(st.opts, body[0]), body[0])
            body.insert(0, mark_processed(binding))

        path.stop()
        logger.debug("restriction pass finished with %d diagnostic(s)", len(st.errors))

    # ---- declarations ----

    def enter_var_decl(self, path: NodePath, st: VisitorState) -> None:
        kind = str(path.node.children[0])

        if kind not in ("let", "const"):
            st.error(path, "Use 'let' or 'const' to declare a variable.")

    def enter_declarator(self, path: NodePath, st: VisitorState) -> None:
        if not is_ident(path.node.children[0]):
            st.error(path, "Do not use destructuring patterns.")

    def enter_arrow_func(self, path: NodePath, st: VisitorState) -> None:
        params, body = path.node.children

        if not is_block(body):
            ret = make("return_stmt", [body], body)
            path.node.children[1] = make("block", [ret], body)

    # ---- calls and members ----

    def enter_call(self, path: NodePath, st: VisitorState) -> None:
        if is_ident(path.node.children[0], "Array"):
            st.error(path, "You must use the 'new' keyword to create a new array.")

    def enter_new_expr(self, path: NodePath, st: VisitorState) -> None:
        callee, args = path.node.children

        if is_ident(callee, "Array") and len(args.children) != 2:
            st.error(path, "You must call 'new Array' with two arguments: the length and the initial value.")

    def exit_new_expr(self, path: NodePath, st: VisitorState) -> None:
        callee, args = path.node.children

        if is_ident(callee, "Array"):
            # new Array(n, v) => new rts.SafeArray(n, v)
            safe = make("new_expr", [runtime_member("SafeArray", callee), args], path.node)
            path.replace_with(mark_processed(safe))
            path.skip()

    def _member_is_deferred(self, path: NodePath) -> bool:
        parent = tree_label(path.parent_node)

        if parent == "assign":
            return path.key == 0
        if parent in ("pre_update", "post_update"):
            return path.key == 1
        if parent == "call":
            return path.key == 0

        return False

    def exit_member(self, path: NodePath, st: VisitorState) -> None:
        if self._member_is_deferred(path):
            return

        obj, prop = path.node.children
        if not is_token(prop):
            raise InternalCompilerError("expected identifier in member expression")

        path.replace_with(runtime_call("dot", obj, string_lit(str(prop), prop), like=path.node))
        path.skip()

    def exit_index(self, path: NodePath, st: VisitorState) -> None:
        if self._member_is_deferred(path):
            return

        obj, prop = path.node.children
        path.replace_with(runtime_call("arrayBoundsCheck", obj, prop, like=path.node))
        path.skip()

    # ---- assignment ----

    def enter_assign(self, path: NodePath, st: VisitorState) -> None:
        left, op_tok, right = path.node.children
        op = str(op_tok)

        if op not in ALLOWED_ASSIGN_OPERATORS:
            st.error(path, f"Do not use the '{op}' operator.")
            path.skip()
            return

        if not is_ident(left) and not _is_member(left):
            st.error(path, "Do not use patterns")
            path.skip()
            return

        if op == "=":
            return

        bin_op = op_token(_unassign(op), op_tok)

        if is_ident(left):
            # x += rhs => x = x + rhs
            rhs = make("binary", [left, bin_op, right], path.node)
            path.replace_with(make("assign", [left, op_token("=", op_tok), rhs], path.node))
            return

        # e.x += rhs => (tmp = e, tmp.x = tmp.x + rhs)
        tmp = st.fresh_temp()
        path.scope_body().append(mark_processed(var_declaration(tmp, None, path.node)))

        label = tree_label(left)
        obj, prop = left.children
        target = make(label, [ident(tmp, obj), prop], left)
        current = make(label, [ident(tmp, obj), copy.deepcopy(prop)], left)
        seq = make("sequence", [
            make("assign", [ident(tmp, obj), op_token("=", op_tok), obj], path.node),
            make("assign", [target, op_token("=", op_tok), make("binary", [current, bin_op, right], path.node)], path.node),
        ], path.node)
        path.replace_with(seq)

    def exit_assign(self, path: NodePath, st: VisitorState) -> None:
        left, op_tok, right = path.node.children

        if str(op_tok) != "=":
            raise InternalCompilerError("desugaring error")

        if is_ident(left):
            return

        if not _is_member(left):
            raise InternalCompilerError("syntactic check error")

        obj = left.children[0]

        if tree_label(left) == "index":
            # e[k] = rhs => checkArray(e, k, rhs)
            call = runtime_call("checkArray", obj, left.children[1], right, like=path.node)
        else:
            # e.k = rhs => checkMember(e, "k", rhs)
            call = runtime_call("checkMember", obj, _property_as_expr(left), right, like=path.node)

        path.replace_with(call)
        path.skip()

    # ---- operators ----

    def enter_binary(self, path: NodePath, st: VisitorState) -> None:
        op_tok = path.node.children[1]
        op = str(op_tok)

        if op not in ALLOWED_BINARY_OPERATORS:
            st.error(path, f"Do not use the '{op}' operator.")
            path.skip()
            return

        if op in EQUALITY_OPERATORS:
            path.node.children[1] = op_token(EQUALITY_OPERATORS[op], op_tok)

    def exit_binary(self, path: NodePath, st: VisitorState) -> None:
        left, op_tok, right = path.node.children
        op = str(op_tok)

        if op in NUM_OR_STRING_OPERATORS:
            name = "applyNumOrStringOp"
        elif op in NUM_OPERATORS:
            name = "applyNumOp"
        else:
            return

        path.replace_with(runtime_call(name, string_lit(op, op_tok), left, right, like=path.node))
        path.skip()

    def enter_unary(self, path: NodePath, st: VisitorState) -> None:
        op = str(path.node.children[0])

        if op in ("delete", "typeof"):
            st.error(path, f"Do not use the '{op}' operator.")

    def enter_post_update(self, path: NodePath, st: VisitorState) -> None:
        st.error(path, "Do not use post-increment or post-decrement operators.")
        path.skip()

    def enter_pre_update(self, path: NodePath, st: VisitorState) -> None:
        arg = path.node.children[1]

        if not is_ident(arg) and not _is_member(arg):
            st.error(path, "Invalid left-hand side in prefix operation.")
            path.skip()

    def exit_pre_update(self, path: NodePath, st: VisitorState) -> None:
        op_tok, arg = path.node.children
        op = string_lit(str(op_tok), op_tok)

        if is_ident(arg):
            # ++x => (updateOnlyNumbers("++", x), ++x)
            check = runtime_call("updateOnlyNumbers", op, arg, like=path.node)
            replacement = mark_processed(make("sequence", [check, path.node], path.node))
        elif _is_member(arg):
            replacement = runtime_call("checkUpdateOperand", op, arg.children[0], _property_as_expr(arg), like=path.node)
        else:
            raise InternalCompilerError("not an l-value in update expression")

        path.replace_with(replacement)
        path.skip()

    # ---- statements ----

    def _require_block_body(self, path: NodePath, st: VisitorState) -> None:
        if not is_block(path.node.children[-1]):
            st.error(path, "Loop body must be enclosed in braces.")

    enter_for_stmt = _require_block_body
    enter_while_stmt = _require_block_body

    def enter_throw_stmt(self, path: NodePath, st: VisitorState) -> None:
        st.error(path, "Do not use the 'throw' operator.")

    def enter_with_stmt(self, path: NodePath, st: VisitorState) -> None:
        st.error(path, "Do not use the 'with' statement.")

    def enter_switch_stmt(self, path: NodePath, st: VisitorState) -> None:
        st.error(path, "Do not use the 'switch' statement.")

    def enter_labeled_stmt(self, path: NodePath, st: VisitorState) -> None:
        st.error(path, "Do not use labels to alter control-flow")

    def enter_for_of(self, path: NodePath, st: VisitorState) -> None:
        st.error(path, "Do not use for-of loops.")

    def enter_for_in(self, path: NodePath, st: VisitorState) -> None:
        st.error(path, "Do not use for-in loops.")


def run_pass(program: Node, opts: Any) -> tuple[Node, List[Diagnostic]]:
    """Run the restriction pass over ``program`` in place.

    Returns the rewritten root and the diagnostics in traversal order. A
    fresh ``VisitorState`` is allocated per call.
    """
    if tree_label(program) != "program":
        raise InternalCompilerError(f"expected a program root, got {tree_label(program)!r}")

    state = VisitorState(opts)
    root = traverse(program, Visitor(), state)
    return root, list(state.errors)
