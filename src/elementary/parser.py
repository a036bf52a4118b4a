from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from lark import Lark, Tree, UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from .ast_transforms import Normalize

GRAMMAR_PATH = Path(__file__).resolve().parent / "grammar.lark"


class ParseError(Exception):
    """Source text does not match the grammar."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column

    def __str__(self) -> str:
        if self.line is None:
            return self.message

        if self.column is None:
            return f"{self.message} (line {self.line})"

        return f"{self.message} (line {self.line}, col {self.column})"


def _read_grammar(grammar_path: Optional[str] = None) -> str:
    path = Path(grammar_path) if grammar_path else GRAMMAR_PATH

    if not path.exists():
        raise FileNotFoundError(f"grammar not found: {path}")

    return path.read_text(encoding="utf-8")


@lru_cache(maxsize=None)
def make_parser(grammar_path: Optional[str] = None) -> Lark:
    return Lark(
        _read_grammar(grammar_path),
        parser="earley",
        lexer="basic",
        start="program",
        propagate_positions=True,
        maybe_placeholders=True,
    )


def _describe(exc: UnexpectedInput) -> str:
    if isinstance(exc, UnexpectedEOF):
        return "Unexpected end of input"

    if isinstance(exc, UnexpectedToken):
        token = exc.token
        if token.type == "$END":
            return "Unexpected end of input"
        return f"Unexpected token {str(token)!r}"

    if isinstance(exc, UnexpectedCharacters):
        return f"Unexpected character {exc.char!r}"

    return "Syntax error"


def parse_raw(source: str, grammar_path: Optional[str] = None) -> Tree:
    """Parse source into lark's unnormalized parse tree."""
    parser = make_parser(grammar_path)

    try:
        return parser.parse(source)
    except UnexpectedInput as exc:
        line = getattr(exc, "line", None)
        column = getattr(exc, "column", None)
        if line is None or line < 0:
            # end of input: report the last non-blank line
            line, column = max(len(source.rstrip().splitlines()), 1), None
        raise ParseError(_describe(exc), line, column) from exc


def parse_source(source: str, grammar_path: Optional[str] = None) -> Tree:
    """Parse source into a canonical ``program`` tree."""
    return Normalize().transform(parse_raw(source, grammar_path))
