#!/usr/bin/env python3
"""Revision History Correlation Engine.

Reconstructs the lineage of a file or subtree from path-scoped commit logs
by following copy origins backward, and merges lineages resolved for
several branches/tags into one history.
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from svhist.core.models import Action, ChangedPath, CommitRecord, Lineage, LineageSegment
from svhist.source.base import DEFAULT_PAGE_SIZE, CommitLogSource, MissingPathError, iter_log


logger = logging.getLogger(__name__)


class CorrelationError(Exception):
    """Base exception for lineage reconstruction errors."""


class PathNotFoundError(CorrelationError):
    """Path does not exist at the requested revision."""

    def __init__(self, path: str, revision: Optional[int]) -> None:
        self.path = path
        self.revision = revision
        where = "HEAD" if revision is None else f"r{revision}"
        super().__init__(f"Path {path} does not exist at {where}")


class CyclicCopyError(CorrelationError):
    """Copy origins lead back to an already visited (path, revision) pair."""

    def __init__(self, path: str, revision: int) -> None:
        self.path = path
        self.revision = revision
        super().__init__(f"Copy history of {path}@{revision} forms a cycle")


class AmbiguousCopyError(CorrelationError):
    """A commit adds the same path more than once with different origins."""

    def __init__(self, path: str, revision: int, entries: Iterable[ChangedPath]) -> None:
        self.path = path
        self.revision = revision
        self.entries = tuple(entries)
        origins = ", ".join(
            f"{e.copy_origin.path}@{e.copy_origin.revision}" if e.copy_origin else "<none>"
            for e in self.entries
        )
        super().__init__(f"r{revision} adds {path} with conflicting copy origins: {origins}")


def join_paths(base: str, leaf: str) -> str:
    """Join two repository paths with exactly one separator."""
    leaf = leaf.strip("/")
    base = base.rstrip("/")
    return f"{base}/{leaf}" if leaf else (base or "/")


def normalize_path(path: str) -> str:
    """Return an absolute repository path without a trailing slash."""
    path = "/" + path.strip("/")
    return path


def is_ancestor(parent: str, path: str) -> bool:
    """True if ``parent`` is a proper ancestor directory of ``path``."""
    prefix = parent.rstrip("/") + "/"
    return path != parent and path.startswith(prefix)


def _creating_entry(record: CommitRecord, path: str) -> Optional[ChangedPath]:
    """Find the entry in ``record`` that (re)creates ``path``.

    Entries naming the path itself win. Otherwise the nearest ancestor
    directory copied from elsewhere counts, since copying a directory
    carries everything below it.

    Raises:
        AmbiguousCopyError: If matching entries disagree on their copy origin
    """
    exact = [e for e in record.changed_paths if e.path == path and e.action.creates]
    if not exact:
        ancestors = [
            e
            for e in record.changed_paths
            if e.action.creates and e.copy_origin is not None and is_ancestor(e.path, path)
        ]
        if not ancestors:
            return None
        nearest = max(len(e.path) for e in ancestors)
        exact = [e for e in ancestors if len(e.path) == nearest]

    first = exact[0]
    if any(other.copy_origin != first.copy_origin for other in exact[1:]):
        raise AmbiguousCopyError(path, record.revision, exact)
    return first


def _deletes(record: CommitRecord, path: str) -> bool:
    return any(
        e.path == path or is_ancestor(e.path, path)
        for e in record.changed_paths
        if e.action is Action.DELETED
    )


class CorrelationEngine:
    """Branch-aware lineage reconstruction over a commit log source.

    Attributes:
        source: Commit log source queried for path histories
        page_size: Records requested per log fetch
        max_workers: Worker pool size for cross-branch fan-out
    """

    def __init__(
        self,
        source: CommitLogSource,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_workers: Optional[int] = None,
    ) -> None:
        self.source = source
        self.page_size = page_size
        self.max_workers = max_workers or os.cpu_count() or 1

    def resolve_lineage(
        self,
        path: str,
        at_revision: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Lineage:
        """Reconstruct the lineage of a path.

        Walks the path's history newest to oldest. Each addition with a copy
        origin closes the current segment and continues the walk on the
        origin path, bounded by the origin revision. The walk ends at an
        addition without origin or when the history is exhausted.

        Args:
            path: Repository path of the file or directory
            at_revision: Upper revision bound (None for HEAD, leaving the
                newest segment open)
            cancel_event: When set, the walk stops at the next fetch

        Returns:
            Lineage ordered oldest first

        Raises:
            PathNotFoundError: If a path in the chain has no history at its bound
            CyclicCopyError: If a copy origin repeats or does not precede its copy
            AmbiguousCopyError: If duplicate additions disagree on their origin
            CancelledError: If ``cancel_event`` was set
        """
        current = normalize_path(path)
        bound = at_revision
        end = at_revision
        visited: Set[Tuple[str, Optional[int]]] = {(current, at_revision)}
        pieces: List[Tuple[str, int, Optional[int], Tuple[CommitRecord, ...]]] = []

        while True:
            commits: List[CommitRecord] = []
            creation: Optional[ChangedPath] = None
            records = iter_log(
                self.source, current, bound, self.page_size, cancel_event=cancel_event
            )
            for record in records:
                if not commits and _deletes(record, current):
                    logger.debug(f"{current} was deleted in r{record.revision}")
                    raise PathNotFoundError(current, bound)
                commits.append(record)
                creation = _creating_entry(record, current)
                if creation is not None:
                    break

            if not commits:
                raise PathNotFoundError(current, bound)

            commits.reverse()
            start = commits[0].revision
            pieces.append((current, start, end, tuple(commits)))
            logger.debug(f"Segment {current} [{start}, {end if end is not None else 'open'}]")

            if creation is None:
                logger.debug(f"History of {current} exhausted at r{start}")
                break
            origin = creation.copy_origin
            if origin is None:
                logger.debug(f"{current} created in r{start}")
                break

            origin_path = normalize_path(origin.path + current[len(creation.path):])
            if origin.revision >= start or (origin_path, origin.revision) in visited:
                raise CyclicCopyError(origin_path, origin.revision)
            visited.add((origin_path, origin.revision))

            logger.debug(f"r{start} copied {current} from {origin_path}@{origin.revision}")
            current = origin_path
            bound = origin.revision
            end = origin.revision

        segments: List[LineageSegment] = []
        predecessor: Optional[LineageSegment] = None
        for seg_path, start, seg_end, commits in reversed(pieces):
            predecessor = LineageSegment(seg_path, start, seg_end, predecessor, commits)
            segments.append(predecessor)
        return Lineage(tuple(segments))

    def resolve_across(
        self,
        rel_path: str,
        roots: Mapping[str, Optional[int]],
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Optional[Lineage]]:
        """Resolve the lineage of one relative path under several roots.

        Each root is resolved independently on a bounded worker pool; the
        results are collected only after every worker has finished.

        Args:
            rel_path: Path relative to a trunk/branch/tag root
            roots: Mapping of root prefix to tip revision (None for HEAD)
            cancel_event: When set, pending resolutions are cancelled and
                running ones stop at their next fetch

        Returns:
            Mapping of root to lineage, None where the path does not exist

        Raises:
            CorrelationError: Any error other than a missing path
            CancelledError: If ``cancel_event`` was set
        """
        results: Dict[str, Optional[Lineage]] = {}
        logger.info(f"Resolving {rel_path} across {len(roots)} roots")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(
                    self.resolve_lineage, join_paths(root, rel_path), tip, cancel_event
                ): root
                for root, tip in roots.items()
            }
            try:
                for future in as_completed(futures):
                    root = futures[future]
                    try:
                        results[root] = future.result()
                    except (PathNotFoundError, MissingPathError):
                        logger.debug(f"  [{root}] {rel_path} does not exist")
                        results[root] = None
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

        return {root: results[root] for root in sorted(results)}


@dataclass(frozen=True)
class MergedSegment:
    """Segment shared by one or more lineages.

    Attributes:
        path: Repository path of the segment
        start: First revision of the segment
        end: Latest end seen across lineages (None if live in any of them)
        roots: Roots whose lineage passes through this segment, sorted
        copied_from: (path, revision) this segment was copied from
        commits: Union of commits seen for the segment, oldest first
    """

    path: str
    start: int
    end: Optional[int]
    roots: Tuple[str, ...]
    copied_from: Optional[Tuple[str, int]]
    commits: Tuple[CommitRecord, ...]

    @property
    def key(self) -> Tuple[str, int]:
        return (self.path, self.start)


@dataclass(frozen=True)
class MergedHistory:
    """Cross-branch history: lineages per root and their merged segments.

    Segments are ordered by start revision, then path. Roots are ordered
    lexically wherever several share a segment.
    """

    lineages: Mapping[str, Optional[Lineage]]
    segments: Tuple[MergedSegment, ...]

    def segment(self, path: str, start: int) -> Optional[MergedSegment]:
        for segment in self.segments:
            if segment.key == (path, start):
                return segment
        return None

    def children(self, parent: MergedSegment) -> Tuple[MergedSegment, ...]:
        """Segments copied from ``parent``'s path within its range."""
        return tuple(
            s
            for s in self.segments
            if s.copied_from is not None
            and s.copied_from[0] == parent.path
            and parent.start <= s.copied_from[1]
            and (parent.end is None or s.copied_from[1] <= parent.end)
        )

    def shared_ancestor(self, first: str, second: str) -> Optional[MergedSegment]:
        """Newest segment both roots' lineages pass through."""
        shared = [s for s in self.segments if first in s.roots and second in s.roots]
        return shared[-1] if shared else None


def _later_end(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None or b is None:
        return None
    return max(a, b)


def merge_lineages(lineages: Mapping[str, Optional[Lineage]]) -> MergedHistory:
    """Merge per-root lineages on their shared (path, start) segments.

    The result depends only on the contents of ``lineages``, never on the
    order the roots arrive in.
    """
    ends: Dict[Tuple[str, int], Optional[int]] = {}
    roots: Dict[Tuple[str, int], Set[str]] = {}
    origins: Dict[Tuple[str, int], Optional[Tuple[str, int]]] = {}
    commits: Dict[Tuple[str, int], Dict[int, CommitRecord]] = {}

    for root in sorted(lineages):
        lineage = lineages[root]
        if lineage is None:
            continue
        for segment in lineage:
            key = segment.key
            if key in ends:
                ends[key] = _later_end(ends[key], segment.end)
            else:
                ends[key] = segment.end
                roots[key] = set()
                commits[key] = {}
                pred = segment.predecessor
                origins[key] = (pred.path, pred.end) if pred is not None else None
            roots[key].add(root)
            for commit in segment.commits:
                commits[key][commit.revision] = commit

    merged = tuple(
        MergedSegment(
            path=key[0],
            start=key[1],
            end=ends[key],
            roots=tuple(sorted(roots[key])),
            copied_from=origins[key],
            commits=tuple(commits[key][rev] for rev in sorted(commits[key])),
        )
        for key in sorted(ends, key=lambda k: (k[1], k[0]))
    )
    return MergedHistory(lineages={root: lineages[root] for root in sorted(lineages)}, segments=merged)
