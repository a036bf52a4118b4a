"""Enter/exit tree traversal with replaceable node paths.

A visitor exposes ``enter_<label>(path, state)`` and ``exit_<label>(path,
state)`` methods. Rules:

- a node marked processed is never entered;
- a node replaced during ``enter`` (without ``skip``) is entered again;
- ``skip()`` during ``enter`` suppresses both the children and ``exit``;
- a node replaced during ``exit`` (without ``skip``) is visited from the top;
- ``stop()`` ends the whole traversal after the current callback.

Children are visited in order by index, so statements appended to a body
while the walk is under way are visited as well (unless processed).
"""

from __future__ import annotations

from typing import Any, List, Optional

from .tree import FUNCTION_LABELS, Node, is_processed, is_tree, tree_label


class TraversalError(Exception):
    """Misuse of the traversal primitives."""


class _Walk:
    def __init__(self, visitor: Any, state: Any):
        self.visitor = visitor
        self.state = state
        self.stopped = False


class NodePath:
    def __init__(self, node: Node, parent: Optional["NodePath"], container: List[Any], key: int, walk: _Walk):
        self.node = node
        self.parent = parent
        self.container = container
        self.key = key
        self._walk = walk
        self.replaced = False
        self.skipped = False

    def __repr__(self) -> str:
        return f"NodePath({self.label!r}, key={self.key})"

    @property
    def label(self) -> Optional[str]:
        return tree_label(self.node)

    @property
    def parent_node(self) -> Optional[Node]:
        return self.parent.node if self.parent is not None else None

    def replace_with(self, node: Node) -> None:
        if self.container[self.key] is not self.node:
            raise TraversalError(f"stale path for {self.label!r}")

        self.container[self.key] = node
        self.node = node
        self.replaced = True

    def skip(self) -> None:
        self.skipped = True

    def stop(self) -> None:
        self._walk.stopped = True

    def function_parent(self) -> "NodePath":
        """Nearest enclosing function path, or the program root."""
        cur: Optional[NodePath] = self.parent

        while cur is not None:
            if cur.label in FUNCTION_LABELS or cur.parent is None:
                return cur
            cur = cur.parent

        return self

    def scope_body(self) -> List[Any]:
        """Statement list of the enclosing function (or program) body."""
        owner = self.function_parent()

        if owner.label in FUNCTION_LABELS:
            body = owner.node.children[-1]
            if tree_label(body) != "block":
                raise TraversalError(f"{owner.label} body is not a block")
            return body.children

        return owner.node.children

    def _reset(self) -> None:
        self.replaced = False
        self.skipped = False


def traverse(root: Node, visitor: Any, state: Any) -> Node:
    """Walk ``root`` with ``visitor`` and return the (possibly replaced) root."""
    holder: List[Any] = [root]
    walk = _Walk(visitor, state)
    _visit(NodePath(root, None, holder, 0, walk), walk)
    return holder[0]


def _call(walk: _Walk, phase: str, path: NodePath) -> None:
    handler = getattr(walk.visitor, f"{phase}_{path.label}", None)
    if handler is not None:
        handler(path, walk.state)


def _visit(path: NodePath, walk: _Walk) -> None:
    while True:
        if not is_tree(path.node) or is_processed(path.node):
            return

        path._reset()
        _call(walk, "enter", path)

        if walk.stopped or path.skipped:
            return
        if not path.replaced:
            break

    node = path.node
    index = 0

    while index < len(node.children):
        child = node.children[index]
        if is_tree(child):
            _visit(NodePath(child, path, node.children, index, walk), walk)
            if walk.stopped:
                return
        index += 1

    path._reset()
    _call(walk, "exit", path)

    if walk.stopped:
        return

    if path.replaced and not path.skipped:
        _visit(path, walk)
