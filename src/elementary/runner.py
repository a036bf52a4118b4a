from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from .compiler import CompileError, Options, compile_source
from .evaluator import eval_tree
from .runtime import RuntimeContext, Runner, init_stdlib
from .stdlib import global_frame
from .types import (
    UNDEFINED,
    ElementaryCompileError,
    ElementaryError,
    Frame,
    JsRangeError,
    JsUndefined,
    JsValue,
)

logger = logging.getLogger(__name__)

DEBUG_TRACE_ENV = "ELEMENTARY_DEBUG_PY_TRACE"

USAGE = """usage: elementary [run|compile] [--standalone] [--tests] [--timeout MS] [--verbose] [FILE|SOURCE|-]

  run            compile and execute (default)
  compile        print the instrumented program instead of running it
  --standalone   load the runtime with require('./runtime') (default: online global)
  --tests        run tests registered with test(...) and print the summary
  --timeout MS   per-test time budget in milliseconds
  --verbose      log compiler and runtime activity to stderr
"""

def debug_py_trace_enabled() -> bool:
    return os.getenv(DEBUG_TRACE_ENV, "").strip() not in ("", "0")

def run(
    src: str,
    opts: Optional[Options]=None,
    ctx: Optional[RuntimeContext]=None,
    runner: Optional[Runner]=None,
) -> JsValue:
    """Compile ``src`` and evaluate it; returns the completion value.

    Raises ``ElementaryCompileError`` when the program is rejected and any
    ``ElementaryError`` the program raises while running.
    """
    init_stdlib()
    opts = opts or Options(is_online=True)

    result = compile_source(src, opts)
    if isinstance(result, CompileError):
        raise ElementaryCompileError(result.errors)

    ctx = ctx or RuntimeContext(runner)

    if opts.run_tests:
        ctx.session.enable_tests(True, opts.test_timeout_ms)

    program_frame = Frame(parent=global_frame(ctx), function_frame=True)

    try:
        value = eval_tree(result.node, program_frame)
    except RecursionError:
        raise JsRangeError("Maximum call stack size exceeded") from None

    return UNDEFINED if value is None else value

def _load_source(arg: Optional[str]) -> str:
    """
    Resolve CLI input into source text.
    - None or "-" => read stdin.
    - Existing path => read file contents.
    - Otherwise treat the argument as literal source.
    """

    if arg is None or arg == "-":
        data = sys.stdin.read()
        if not data:
            raise SystemExit("No input provided on stdin")
        return data

    candidate = Path(arg)
    if candidate.exists():
        return candidate.read_text(encoding="utf-8")

    return arg

def _report_compile_errors(errors: List[object]) -> None:
    for err in errors:
        print(f"Line {err.line}: {err.message}", file=sys.stderr)

def main(argv: Optional[List[str]]=None) -> int:
    mode: Optional[str] = None
    online = True
    run_tests = False
    timeout_ms: Optional[int] = None
    verbose = False
    arg = None
    it = iter(sys.argv[1:] if argv is None else argv)

    for token in it:
        if token in ("-h", "--help"):
            print(USAGE, end="")
            return 0

        if token in ("run", "compile") and mode is None and arg is None:
            mode = token
            continue

        if token == "--standalone":
            online = False
            continue

        if token == "--tests":
            run_tests = True
            continue

        if token == "--verbose":
            verbose = True
            continue

        if token.startswith("--timeout"):
            if "=" in token:
                raw = token.split("=", 1)[1]
            else:
                try:
                    raw = next(it)
                except StopIteration:
                    raise SystemExit("--timeout flag requires a value") from None
            try:
                timeout_ms = int(raw)
            except ValueError:
                raise SystemExit(f"--timeout expects milliseconds, got {raw!r}") from None
            continue

        if arg is None:
            arg = token
        else:
            raise SystemExit(f"Unexpected argument: {token}")

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    source = _load_source(arg or "-")
    opts = Options(is_online=online, run_tests=run_tests)
    if timeout_ms is not None:
        opts = Options(is_online=online, run_tests=run_tests, test_timeout_ms=timeout_ms)

    if mode == "compile":
        result = compile_source(source, opts)
        if isinstance(result, CompileError):
            _report_compile_errors(result.errors)
            return 1
        print(result.code(), end="")
        return 0

    ctx = RuntimeContext()

    try:
        value = run(source, opts, ctx)
    except ElementaryCompileError as exc:
        _report_compile_errors(exc.errors)
        return 1
    except ElementaryError as exc:
        if debug_py_trace_enabled():
            raise
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    if run_tests:
        print(ctx.session.summary().output)
    elif not isinstance(value, JsUndefined):
        print(repr(value))

    return 0

if __name__ == "__main__":
    sys.exit(main())
