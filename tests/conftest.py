"""Pytest configuration and fixtures for svhist tests."""

from pathlib import Path
from typing import Generator

import pytest

from fakes import SCOPE, FakeRepository, change, commit
from svhist.persistence import StateManager


SPARSE_REVISIONS = (10, 14, 17, 22, 30)


@pytest.fixture
def branch_repo() -> FakeRepository:
    """Trunk file copied to /branches/x at r50."""
    return FakeRepository(
        [
            commit(1, change("A", "/trunk", kind="dir"), change("A", "/branches", kind="dir")),
            commit(5, change("A", "/trunk/file.txt")),
            commit(20, change("M", "/trunk/file.txt")),
            commit(49, change("M", "/trunk/file.txt")),
            commit(50, change("A", "/branches/x/file.txt", "/trunk/file.txt@49")),
            commit(55, change("M", "/branches/x/file.txt")),
            commit(58, change("M", "/trunk/other.txt")),
            commit(60, change("M", "/branches/x/file.txt")),
        ]
    )


@pytest.fixture
def sparse_repo() -> FakeRepository:
    """Revisions 10, 14, 17, 22 and 30 touch /trunk/app; the rest touch other paths."""
    records = [commit(rev, change("M", f"{SCOPE}/main.c")) for rev in SPARSE_REVISIONS]
    records += [commit(rev, change("M", "/trunk/docs/readme")) for rev in (11, 12, 15, 16, 21, 25)]
    return FakeRepository(records)


@pytest.fixture
def state_manager(tmp_path: Path) -> Generator[StateManager, None, None]:
    """StateManager backed by a temporary SQLite database."""
    manager = StateManager(str(tmp_path / "state" / "svhist.db"))
    yield manager
    manager.close()
