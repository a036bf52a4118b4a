"""Elementary JS: a restricted JavaScript subset with a dynamic safety runtime."""

__version__ = "0.4.0"

from .compiler import CompileError, CompileOK, Options, compile_source  # noqa: E402
from .runner import run  # noqa: E402

__all__ = [
    "__version__",
    "CompileError",
    "CompileOK",
    "Options",
    "compile_source",
    "run",
]
