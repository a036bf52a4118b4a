"""Evaluator helper modules for the Elementary JS execution engine."""

__all__ = [
    "blocks",
    "control",
    "expr",
    "fn",
    "helpers",
    "loops",
    "methods",
]
