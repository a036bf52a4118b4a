"""Compile pipeline: parse, run the restriction pass, report an explicit result.

``compile_source`` never raises for problems in the user's program: parse
failures and pass diagnostics both come back as a ``CompileError``. An
``InternalCompilerError`` escaping from here is a bug in the pass itself.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Union

from lark import Tree

from .emit import emit_program
from .parser import ParseError, parse_source
from .visitor import Diagnostic, run_pass

logger = logging.getLogger(__name__)

DEFAULT_TEST_TIMEOUT_MS = 3000
TEST_TIMEOUT_ENV = "ELEMENTARY_TEST_TIMEOUT_MS"


def default_test_timeout_ms() -> int:
    raw = os.getenv(TEST_TIMEOUT_ENV)
    if raw is None:
        return DEFAULT_TEST_TIMEOUT_MS

    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("ignoring non-integer %s=%r", TEST_TIMEOUT_ENV, raw)
        return DEFAULT_TEST_TIMEOUT_MS

    return value if value > 0 else DEFAULT_TEST_TIMEOUT_MS


@dataclass(frozen=True)
class Options:
    """Compilation options.

    is_online: the runtime is pre-bound as the global ``elementaryjs``
        instead of being loaded with ``require('./runtime')``.
    run_tests: embedded tests registered with ``test(...)`` are executed.
    test_timeout_ms: time budget for each embedded test.
    """

    is_online: bool = False
    run_tests: bool = False
    test_timeout_ms: int = field(default_factory=default_test_timeout_ms)


@dataclass
class CompileOK:
    node: Tree
    kind: Literal["ok"] = "ok"

    def code(self) -> str:
        return emit_program(self.node)


@dataclass
class CompileError:
    errors: List[Diagnostic]
    kind: Literal["error"] = "error"

    def messages(self) -> List[str]:
        return [err.message for err in self.errors]

    def __str__(self) -> str:
        if not self.errors:
            return "CompileError with no errors"

        return "\n".join(f"- {err}" for err in self.errors)


CompileResult = Union[CompileOK, CompileError]


def compile_tree(program: Tree, opts: Optional[Options] = None) -> CompileResult:
    """Run the restriction pass over an already parsed program."""
    opts = opts or Options()
    root, errors = run_pass(program, opts)

    if errors:
        logger.debug("compile failed: %d diagnostic(s)", len(errors))
        return CompileError(errors)

    return CompileOK(root)


def compile_source(source: str, opts: Optional[Options] = None) -> CompileResult:
    try:
        program = parse_source(source)
    except ParseError as exc:
        logger.debug("parse failed: %s", exc)
        return CompileError([Diagnostic(exc.line or 0, exc.message)])

    return compile_tree(program, opts)
