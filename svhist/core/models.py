#!/usr/bin/env python3
"""Commit and lineage data model.

Commit records are produced by a commit log source and never mutated.
Lineages are produced fresh for every correlation query.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class Action(Enum):
    """Kind of change applied to a path in a commit."""

    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"
    REPLACED = "R"

    @property
    def creates(self) -> bool:
        """True for actions that (re)create the path."""
        return self in (Action.ADDED, Action.REPLACED)


@dataclass(frozen=True)
class CopyOrigin:
    """Source of a server-side copy.

    Attributes:
        path: Repository path the addition was copied from
        revision: Revision of the copy source
    """

    path: str
    revision: int


@dataclass(frozen=True)
class ChangedPath:
    """Single changed path inside a commit.

    Attributes:
        path: Repository path (absolute, starting with '/')
        action: Change kind
        copy_origin: Copy source, only for additions/replacements made by copy
        kind: Node kind reported by the server ("file", "dir" or "")
    """

    path: str
    action: Action
    copy_origin: Optional[CopyOrigin] = None
    kind: str = ""

    def __post_init__(self) -> None:
        if self.copy_origin is not None and not self.action.creates:
            raise ValueError(
                f"Copy origin is only valid for added or replaced paths: {self.path}"
            )


@dataclass(frozen=True)
class CommitRecord:
    """One commit as returned by the commit log source.

    Attributes:
        revision: Revision number (unique, totally ordered)
        author: Commit author
        timestamp: Commit time (None when the server does not report it)
        message: Full commit message
        changed_paths: Changed paths in server order
    """

    revision: int
    author: str = ""
    timestamp: Optional[datetime] = None
    message: str = ""
    changed_paths: Tuple[ChangedPath, ...] = ()

    @property
    def summary(self) -> str:
        """First line of the commit message."""
        return self.message.splitlines()[0] if self.message else ""


@dataclass(frozen=True)
class LineageSegment:
    """Range of revisions during which one path was the tracked file.

    Attributes:
        path: Repository path of this segment
        start: First revision of the segment (creation or copy revision)
        end: Last revision of the segment, None while the segment is live
        predecessor: Segment this one was copied from (None at creation)
        commits: Commits touching ``path`` inside the range, oldest first
    """

    path: str
    start: int
    end: Optional[int]
    predecessor: Optional["LineageSegment"] = field(default=None, repr=False)
    commits: Tuple[CommitRecord, ...] = field(default=(), repr=False)

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def revisions(self) -> Tuple[int, ...]:
        return tuple(commit.revision for commit in self.commits)

    @property
    def last_commit(self) -> Optional[CommitRecord]:
        return self.commits[-1] if self.commits else None

    @property
    def key(self) -> Tuple[str, int]:
        """Merge key shared by every lineage passing through this segment."""
        return (self.path, self.start)

    def contains(self, revision: int) -> bool:
        if revision < self.start:
            return False
        return self.end is None or revision <= self.end


@dataclass(frozen=True)
class Lineage:
    """Ordered chain of segments, oldest first."""

    segments: Tuple[LineageSegment, ...]

    def __post_init__(self) -> None:
        if not self.segments:
            raise ValueError("A lineage needs at least one segment")

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self):
        return iter(self.segments)

    @property
    def creation(self) -> LineageSegment:
        return self.segments[0]

    @property
    def head(self) -> LineageSegment:
        return self.segments[-1]

    @property
    def keys(self) -> Tuple[Tuple[str, int], ...]:
        return tuple(segment.key for segment in self.segments)

    def segment_at(self, revision: int) -> Optional[LineageSegment]:
        """Return the segment covering ``revision``, if any."""
        for segment in reversed(self.segments):
            if segment.contains(revision):
                return segment
        return None
