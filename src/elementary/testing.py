"""Embedded test harness for programs written in Elementary JS.

A ``TestSession`` owns the enabled flag, the per-test time budget and the
accumulated records. Starting a session with ``enable_tests`` clears earlier
records, and ``summary`` consumes them: it renders the report and then
disables the session again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .types import ElementaryError, ElementaryTimeoutError, JsRangeError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 3000

NO_TESTS_MESSAGE = (
    "◈ You don't seem to have any tests written\n"
    "◈ To run a test, begin a function name with 'test'"
)
NOT_ENABLED_MESSAGE = "Test not enabled"

FAILED_BADGE_STYLE = "background-color: #f44336; font-weight: bold"
PASSED_BADGE_STYLE = "background-color: #2ac093; font-weight: bold"
FAILED_COUNT_STYLE = "color: #f44336; font-weight: bold"
PASSED_COUNT_STYLE = "color: #2ac093; font-weight: bold"
TOTAL_STYLE = "font-weight: bold"
NO_TESTS_STYLE = "color: #e87ce8"


@dataclass(frozen=True)
class TestRecord:
    __test__ = False

    description: str
    failed: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class TestSummary:
    __test__ = False

    output: str
    style: List[str] = field(default_factory=list)


class TestSession:
    __test__ = False

    def __init__(self, runner: Optional[Callable[[], object]] = None):
        # runner() returns the object used to execute test bodies; it must
        # provide run_test(body, timeout_ms).
        self._runner = runner
        self.enabled = False
        self.timeout_ms = DEFAULT_TIMEOUT_MS
        self.records: List[TestRecord] = []

    def enable_tests(self, enable: bool, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        self.enabled = enable
        self.records = []
        self.timeout_ms = timeout_ms

    def test(self, description: str, body: Callable[[], object]) -> None:
        if not self.enabled:
            return

        try:
            self._run(body)
        except ElementaryTimeoutError:
            logger.debug("test %r timed out after %d ms", description, self.timeout_ms)
            self.records.append(TestRecord(description, True, "Timed out"))
            return
        except ElementaryError as exc:
            self.records.append(TestRecord(description, True, exc.message))
            return

        self.records.append(TestRecord(description, False))

    def _run(self, body: Callable[[], object]) -> None:
        try:
            if self._runner is None:
                from .runtime import time_budget  # local import to avoid cycle
                with time_budget(self.timeout_ms):
                    body()
                return

            self._runner().run_test(body, self.timeout_ms)
        except RecursionError:
            raise JsRangeError("Maximum call stack size exceeded") from None

    def summary(self, has_styles: bool = False) -> TestSummary:
        if not self.enabled:
            return TestSummary(NOT_ENABLED_MESSAGE, [])

        mark = "%c" if has_styles else ""

        if not self.records:
            self.enable_tests(False)
            return TestSummary(f"{mark}{NO_TESTS_MESSAGE}", [NO_TESTS_STYLE] if has_styles else [])

        output: List[str] = []
        style: List[str] = []
        passed = 0
        failed = 0

        for record in self.records:
            if record.failed:
                output.append(f"{mark} FAILED {mark} {record.description}\n         {record.error}")
                style.extend([FAILED_BADGE_STYLE, ""])
                failed += 1
                continue

            output.append(f"{mark} OK {mark}     {record.description}")
            style.extend([PASSED_BADGE_STYLE, ""])
            passed += 1

        total = passed + failed
        if failed > 0:
            output.append(f"Tests:     {mark}{failed} failed, {mark}{passed} passed, {mark}{total} total")
            style.extend([FAILED_COUNT_STYLE, PASSED_COUNT_STYLE, TOTAL_STYLE])
        else:
            output.append(f"Tests:     {mark}{passed} passed, {mark}{total} total")
            style.extend([PASSED_COUNT_STYLE, TOTAL_STYLE])

        self.enable_tests(False)
        return TestSummary("\n".join(output), style if has_styles else [])
