from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List

import pytest

BASE_DIR = Path(__file__).resolve().parent.parent
SRC_DIR = (BASE_DIR / "src").resolve()

if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))
if str(SRC_DIR) not in sys.path:
    sys.path.append(str(SRC_DIR))

from elementary.runtime import RuntimeContext, init_stdlib  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def stdlib() -> None:
    """Register console, Math and the array/string methods once per session."""
    init_stdlib()


@pytest.fixture
def ctx() -> RuntimeContext:
    return RuntimeContext()


@pytest.fixture(autouse=True)
def _no_env_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ELEMENTARY_TEST_TIMEOUT_MS", raising=False)
    monkeypatch.delenv("ELEMENTARY_DEBUG_PY_TRACE", raising=False)


def pytest_collection_modifyitems(
    session: pytest.Session,
    config: pytest.Config,
    items: List[pytest.Item],
) -> None:
    """Scenario tables are keyed by id; a repeated id hides a case."""
    del session
    del config

    seen: Dict[str, int] = {}
    duplicates: List[str] = []
    for item in items:
        if item.nodeid in seen:
            duplicates.append(item.nodeid)
            continue
        seen[item.nodeid] = 1

    if not duplicates:
        return

    lines = "\n".join(f"- {nodeid}" for nodeid in sorted(set(duplicates)))
    raise pytest.UsageError(f"Duplicate scenario ids:\n{lines}")
