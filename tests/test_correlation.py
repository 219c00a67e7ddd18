"""Tests for lineage reconstruction."""

import threading
from concurrent.futures import CancelledError

import pytest

from fakes import FakeRepository, change, commit
from svhist.core.correlation import (
    AmbiguousCopyError,
    CorrelationEngine,
    CyclicCopyError,
    PathNotFoundError,
    join_paths,
    normalize_path,
)
from svhist.source.base import LogFetchError, MissingPathError


class TestResolveLineage:
    """Tests for CorrelationEngine.resolve_lineage."""

    def test_branch_copy_splits_into_two_segments(self, branch_repo):
        lineage = CorrelationEngine(branch_repo).resolve_lineage("/branches/x/file.txt", 60)

        assert [(s.path, s.start, s.end) for s in lineage] == [
            ("/trunk/file.txt", 5, 49),
            ("/branches/x/file.txt", 50, 60),
        ]
        assert lineage.head.predecessor is lineage.creation
        assert lineage.creation.predecessor is None

    def test_segment_commits_are_ascending_and_scoped(self, branch_repo):
        lineage = CorrelationEngine(branch_repo).resolve_lineage("/branches/x/file.txt", 60)

        assert lineage.creation.revisions == (5, 20, 49)
        assert lineage.head.revisions == (50, 55, 60)
        assert lineage.head.last_commit.revision == 60

    def test_resolution_is_deterministic(self, branch_repo):
        engine = CorrelationEngine(branch_repo)

        first = engine.resolve_lineage("/branches/x/file.txt", 60)
        second = engine.resolve_lineage("/branches/x/file.txt", 60)

        assert first == second

    def test_segments_cover_creation_to_bound_without_overlap(self, branch_repo):
        lineage = CorrelationEngine(branch_repo).resolve_lineage("/branches/x/file.txt", 60)

        segments = list(lineage)
        assert segments[0].start == 5
        assert segments[-1].end == 60
        for older, newer in zip(segments, segments[1:]):
            assert older.end < newer.start
            assert newer.predecessor.end == older.end

    def test_head_segment_open_without_bound(self, branch_repo):
        lineage = CorrelationEngine(branch_repo).resolve_lineage("/branches/x/file.txt")

        assert lineage.head.is_open
        assert lineage.head.contains(1000)
        assert lineage.segment_at(30).path == "/trunk/file.txt"

    def test_bound_before_copy_stays_on_trunk(self, branch_repo):
        lineage = CorrelationEngine(branch_repo).resolve_lineage("trunk/file.txt/", 40)

        assert lineage.keys == (("/trunk/file.txt", 5),)
        assert lineage.head.end == 40

    def test_copy_of_ancestor_directory(self):
        repo = FakeRepository(
            [
                commit(3, change("A", "/trunk/src/main.c")),
                commit(8, change("M", "/trunk/src/main.c")),
                commit(12, change("A", "/branches/rel", "/trunk@10", kind="dir")),
                commit(15, change("M", "/branches/rel/src/main.c")),
            ]
        )

        lineage = CorrelationEngine(repo).resolve_lineage("/branches/rel/src/main.c")

        assert [(s.path, s.start, s.end) for s in lineage] == [
            ("/trunk/src/main.c", 3, 10),
            ("/branches/rel/src/main.c", 12, None),
        ]

    def test_replace_with_origin_is_followed(self):
        repo = FakeRepository(
            [
                commit(2, change("A", "/trunk/old.txt")),
                commit(4, change("A", "/trunk/new.txt")),
                commit(6, change("R", "/trunk/new.txt", "/trunk/old.txt@5")),
            ]
        )

        lineage = CorrelationEngine(repo).resolve_lineage("/trunk/new.txt", 6)

        assert lineage.keys == (("/trunk/old.txt", 2), ("/trunk/new.txt", 6))

    def test_path_without_addition_starts_at_oldest_record(self):
        repo = FakeRepository(
            [commit(1, change("M", "/README")), commit(2, change("M", "/trunk/x"))]
        )

        lineage = CorrelationEngine(repo).resolve_lineage("/")

        assert len(lineage) == 1
        assert lineage.creation.start == 1

    def test_paged_fetching_matches_single_fetch(self):
        records = [commit(1, change("A", "/trunk/f"))]
        records += [commit(rev, change("M", "/trunk/f")) for rev in range(2, 12)]
        records += [commit(12, change("A", "/branches/b/f", "/trunk/f@11"))]
        records += [commit(rev, change("M", "/branches/b/f")) for rev in range(13, 20)]
        repo = FakeRepository(records)

        paged = CorrelationEngine(repo, page_size=3).resolve_lineage("/branches/b/f")
        fetch_count = len(repo.fetches)
        whole = CorrelationEngine(repo).resolve_lineage("/branches/b/f")

        assert paged == whole
        assert fetch_count > 2
        assert all(limit == 3 for _, _, limit in repo.fetches[:fetch_count])


class TestResolveLineageErrors:
    """Error reporting of resolve_lineage."""

    def test_unknown_path(self, branch_repo):
        with pytest.raises(PathNotFoundError) as excinfo:
            CorrelationEngine(branch_repo).resolve_lineage("/trunk/missing.txt", 60)

        assert excinfo.value.path == "/trunk/missing.txt"
        assert excinfo.value.revision == 60

    def test_path_deleted_at_bound(self):
        repo = FakeRepository(
            [
                commit(2, change("A", "/trunk/f")),
                commit(5, change("M", "/trunk/f")),
                commit(9, change("D", "/trunk/f")),
            ]
        )
        engine = CorrelationEngine(repo)

        with pytest.raises(PathNotFoundError):
            engine.resolve_lineage("/trunk/f", 9)
        assert engine.resolve_lineage("/trunk/f", 8).keys == (("/trunk/f", 2),)

    def test_path_under_deleted_directory(self):
        repo = FakeRepository(
            [
                commit(2, change("A", "/trunk/lib/f")),
                commit(7, change("D", "/trunk/lib", kind="dir")),
            ]
        )

        with pytest.raises(PathNotFoundError):
            CorrelationEngine(repo).resolve_lineage("/trunk/lib/f")

    def test_origin_not_older_than_copy_is_cyclic(self):
        repo = FakeRepository(
            [
                commit(3, change("A", "/trunk/a")),
                commit(10, change("A", "/trunk/b", "/trunk/a@10")),
            ]
        )

        with pytest.raises(CyclicCopyError) as excinfo:
            CorrelationEngine(repo).resolve_lineage("/trunk/b")

        assert excinfo.value.path == "/trunk/a"
        assert excinfo.value.revision == 10

    def test_conflicting_duplicate_additions(self):
        repo = FakeRepository(
            [
                commit(2, change("A", "/trunk/x"), change("A", "/trunk/y")),
                commit(
                    6,
                    change("A", "/branches/b/f", "/trunk/x@2"),
                    change("A", "/branches/b/f", "/trunk/y@2"),
                ),
            ]
        )

        with pytest.raises(AmbiguousCopyError) as excinfo:
            CorrelationEngine(repo).resolve_lineage("/branches/b/f")

        assert excinfo.value.revision == 6
        assert len(excinfo.value.entries) == 2

    def test_identical_duplicate_additions_pick_first(self):
        repo = FakeRepository(
            [
                commit(2, change("A", "/trunk/x")),
                commit(
                    6,
                    change("A", "/branches/b/f", "/trunk/x@2"),
                    change("A", "/branches/b/f", "/trunk/x@2"),
                ),
            ]
        )

        lineage = CorrelationEngine(repo).resolve_lineage("/branches/b/f")

        assert lineage.keys == (("/trunk/x", 2), ("/branches/b/f", 6))

    def test_source_errors_propagate_unchanged(self):
        repo = FakeRepository([commit(1, change("A", "/trunk/f"))], missing=["/trunk/f"])

        with pytest.raises(MissingPathError):
            CorrelationEngine(repo).resolve_lineage("/trunk/f")
        assert issubclass(MissingPathError, LogFetchError)

    def test_cancelled_before_fetch(self, branch_repo):
        event = threading.Event()
        event.set()

        with pytest.raises(CancelledError):
            CorrelationEngine(branch_repo).resolve_lineage("/branches/x/file.txt", cancel_event=event)
        assert branch_repo.fetches == []

    def test_cancelled_between_pages(self):
        event = threading.Event()

        class CancellingRepository(FakeRepository):
            def fetch_log(self, *args, **kwargs):
                event.set()
                return super().fetch_log(*args, **kwargs)

        repo = CancellingRepository(
            [commit(1, change("A", "/trunk/f"))]
            + [commit(rev, change("M", "/trunk/f")) for rev in range(2, 21)]
        )

        with pytest.raises(CancelledError):
            CorrelationEngine(repo, page_size=2).resolve_lineage("/trunk/f", cancel_event=event)
        assert len(repo.fetches) == 1


def test_path_helpers():
    assert normalize_path("trunk/a/") == "/trunk/a"
    assert normalize_path("/") == "/"
    assert join_paths("/branches/x", "src/f.c") == "/branches/x/src/f.c"
    assert join_paths("/trunk", "") == "/trunk"
