#!/usr/bin/env python3
"""Bisect Controller.

Binary search over the revisions touching a scope path, driven one step at
a time. Every transition takes a session and returns a new one; the caller
persists the session between invocations while the candidate revision is
verified outside the tool.
"""

import logging
import math
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from svhist.core.correlation import normalize_path
from svhist.core.models import LineageSegment
from svhist.source.base import (
    DEFAULT_PAGE_SIZE,
    CommitLogSource,
    WorkingCopyUpdater,
    revisions_between,
)


logger = logging.getLogger(__name__)

# Constants
TERM_PATTERN = re.compile(r"^[A-Za-z][-_A-Za-z]*$")
RESERVED_TERMS = frozenset(
    [
        "start", "next", "good", "bad", "mark", "skip", "unskip",
        "terms", "status", "log", "replay", "run", "reset",
    ]
)


class BisectError(Exception):
    """Base exception for bisect session errors."""


class EmptyRangeError(BisectError):
    """No revision touching the scope lies strictly between the bounds."""

    def __init__(self, scope_path: str, good: int, bad: int) -> None:
        self.scope_path = scope_path
        self.good = good
        self.bad = bad
        super().__init__(
            f"No revision touching {scope_path} lies between r{good} and r{bad}"
        )


class SessionClosedError(BisectError):
    """Session already reached a terminal state."""

    def __init__(self, status: "SessionStatus") -> None:
        self.status = status
        super().__init__(f"Bisect session is {status.value}; start a new session")


class UpdateFailedError(BisectError):
    """Working copy could not be updated to the selected candidate."""

    def __init__(self, revision: int, reason: str = "") -> None:
        self.revision = revision
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Failed to update working copy to r{revision}{detail}")


class InvalidRevisionError(BisectError):
    """Revision cannot be used as a bound or verdict target."""


class InvalidTermError(BisectError):
    """Alternate verdict term is malformed or clashes with a command."""


class SessionStatus(Enum):
    """Bisect session status."""

    ACTIVE = "active"
    FOUND = "found"
    UNDECIDABLE = "undecidable"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class Verdict(Enum):
    """Outcome of verifying a candidate revision."""

    GOOD = "good"
    BAD = "bad"
    SKIP = "skip"


def validate_term(term: str) -> str:
    """Check an alternate name for the good or bad verdict.

    Raises:
        InvalidTermError: If the term is malformed or masks a subcommand
    """
    if not TERM_PATTERN.match(term):
        raise InvalidTermError(
            f"Term '{term}' must start with a letter and contain only letters, '-', or '_'"
        )
    if term in RESERVED_TERMS:
        raise InvalidTermError(f"Term '{term}' cannot mask another bisect command")
    return term


def estimate_steps(remaining: int) -> int:
    """Rough number of steps left for ``remaining`` candidates."""
    if remaining < 2:
        return 0 if remaining < 1 else 1
    return int(math.log2(remaining))


@dataclass(frozen=True)
class BisectSession:
    """Persisted bisect state.

    Attributes:
        scope_path: Repository path whose revisions are searched
        good_revision: Revision known not to show the defect
        bad_revision: Revision known to show the defect
        skipped: Revisions that cannot be verified
        status: Session status
        current: Candidate currently materialized in the working copy
        culprit: First bad revision once found
        blocking: Skipped revisions that left the search undecidable
        term_good: Alternate name for the good verdict
        term_bad: Alternate name for the bad verdict
        original_revision: Working-copy revision before the session started
        peg_revision: Revision at which ``scope_path`` is looked up; fixed at
            start so the scope keeps resolving as the bounds move below a
            branch point
    """

    scope_path: str
    good_revision: int
    bad_revision: int
    skipped: FrozenSet[int] = field(default_factory=frozenset)
    status: SessionStatus = SessionStatus.ACTIVE
    current: Optional[int] = None
    culprit: Optional[int] = None
    blocking: Tuple[int, ...] = ()
    term_good: Optional[str] = None
    term_bad: Optional[str] = None
    original_revision: Optional[int] = None
    peg_revision: Optional[int] = None

    @property
    def good_name(self) -> str:
        return self.term_good or Verdict.GOOD.value

    @property
    def bad_name(self) -> str:
        return self.term_bad or Verdict.BAD.value

    @property
    def low(self) -> int:
        return min(self.good_revision, self.bad_revision)

    @property
    def high(self) -> int:
        return max(self.good_revision, self.bad_revision)

    @property
    def scope_peg(self) -> int:
        """Revision at which ``scope_path`` names the bisected node."""
        return self.peg_revision if self.peg_revision is not None else self.high

    def verdict_for(self, term: str) -> Verdict:
        """Translate a term (default or alternate) into a verdict.

        Raises:
            InvalidTermError: If the term names neither verdict
        """
        if term in (self.good_name, Verdict.GOOD.value):
            return Verdict.GOOD
        if term in (self.bad_name, Verdict.BAD.value):
            return Verdict.BAD
        if term == Verdict.SKIP.value:
            return Verdict.SKIP
        raise InvalidTermError(
            f"Unknown term '{term}'; expected '{self.good_name}', '{self.bad_name}' or 'skip'"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "scope_path": self.scope_path,
            "good_revision": self.good_revision,
            "bad_revision": self.bad_revision,
            "skipped": sorted(self.skipped),
            "status": self.status.value,
            "current": self.current,
            "culprit": self.culprit,
            "blocking": list(self.blocking),
            "term_good": self.term_good,
            "term_bad": self.term_bad,
            "original_revision": self.original_revision,
            "peg_revision": self.peg_revision,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BisectSession":
        """Rebuild a session from :meth:`to_dict` output."""
        return cls(
            scope_path=data["scope_path"],
            good_revision=int(data["good_revision"]),
            bad_revision=int(data["bad_revision"]),
            skipped=frozenset(int(rev) for rev in data.get("skipped", [])),
            status=SessionStatus(data.get("status", SessionStatus.ACTIVE.value)),
            current=data.get("current"),
            culprit=data.get("culprit"),
            blocking=tuple(int(rev) for rev in data.get("blocking", [])),
            term_good=data.get("term_good"),
            term_bad=data.get("term_bad"),
            original_revision=data.get("original_revision"),
            peg_revision=data.get("peg_revision"),
        )


class BisectController:
    """Drives bisect sessions against a commit log source.

    Candidate lists are never stored; each transition recomputes them from
    the session bounds, the skipped set and a fresh log query.

    Attributes:
        source: Commit log source used to list revisions touching the scope
        updater: Working-copy updater invoked by :meth:`step` (optional)
        page_size: Records requested per log fetch
    """

    def __init__(
        self,
        source: CommitLogSource,
        updater: Optional[WorkingCopyUpdater] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.source = source
        self.updater = updater
        self.page_size = page_size

    def interior(self, session: BisectSession) -> List[int]:
        """Revisions touching the scope strictly between the bounds, ascending.

        History inherited through copies counts, so a branch scope includes
        the revisions of its copy source before the branch point.
        """
        revisions = revisions_between(
            self.source,
            session.scope_path,
            session.low,
            session.high,
            self.page_size,
            peg_revision=session.scope_peg,
        )
        return [rev for rev in revisions if session.low < rev < session.high]

    def candidates(self, session: BisectSession) -> List[int]:
        """Interior revisions that are not skipped, ascending."""
        return [rev for rev in self.interior(session) if rev not in session.skipped]

    def start(
        self,
        good_revision: int,
        bad_revision: int,
        scope_path: str = "/",
        term_good: Optional[str] = None,
        term_bad: Optional[str] = None,
        original_revision: Optional[int] = None,
        segment: Optional[LineageSegment] = None,
    ) -> BisectSession:
        """Open a session between a good and a bad revision.

        The bounds may be given in either numeric order.

        Args:
            good_revision: Revision known not to show the defect
            bad_revision: Revision known to show the defect
            scope_path: Repository path whose revisions are searched
            term_good: Alternate name for the good verdict
            term_bad: Alternate name for the bad verdict
            original_revision: Working-copy revision to restore on reset
            segment: Lineage segment to restrict the search to; overrides
                ``scope_path`` and must contain both bounds

        Returns:
            Active session without a current candidate

        Raises:
            InvalidRevisionError: If the bounds are equal or outside ``segment``
            InvalidTermError: If the terms are malformed or identical
            EmptyRangeError: If no revision touches the scope between the bounds
        """
        if good_revision == bad_revision:
            raise InvalidRevisionError(
                f"The good and bad revisions cannot be the same (r{good_revision})"
            )
        if term_good is not None:
            validate_term(term_good)
        if term_bad is not None:
            validate_term(term_bad)
        if term_good is not None and term_good == term_bad:
            raise InvalidTermError("The good and bad terms cannot be the same")

        if segment is not None:
            for rev in (good_revision, bad_revision):
                if not segment.contains(rev):
                    raise InvalidRevisionError(
                        f"r{rev} lies outside segment {segment.path} starting at r{segment.start}"
                    )
            scope_path = segment.path

        session = BisectSession(
            scope_path=normalize_path(scope_path),
            good_revision=good_revision,
            bad_revision=bad_revision,
            term_good=term_good,
            term_bad=term_bad,
            original_revision=original_revision,
            peg_revision=max(good_revision, bad_revision, original_revision or 0),
        )
        if not self.interior(session):
            raise EmptyRangeError(session.scope_path, good_revision, bad_revision)

        logger.info(
            f"Started bisect of {session.scope_path} between "
            f"r{good_revision} ({session.good_name}) and r{bad_revision} ({session.bad_name})"
        )
        return session

    def step(self, session: BisectSession) -> BisectSession:
        """Select the next candidate and materialize it in the working copy.

        The lower median of the remaining candidates is chosen. When only
        skipped revisions remain the session becomes undecidable.

        Raises:
            SessionClosedError: If the session is terminal
            UpdateFailedError: If the working copy update fails; the session
                is left unchanged so the step can be retried
        """
        if session.status.terminal:
            raise SessionClosedError(session.status)

        interior = self.interior(session)
        remaining = [rev for rev in interior if rev not in session.skipped]

        if not interior:
            return self._found(session)
        if not remaining:
            blocking = tuple(sorted(set(interior) & session.skipped))
            logger.info(f"Only skipped revisions remain: {', '.join(map(str, blocking))}")
            return replace(
                session, status=SessionStatus.UNDECIDABLE, current=None, blocking=blocking
            )

        candidate = remaining[(len(remaining) - 1) // 2]
        logger.debug(f"Candidates {remaining}, selected r{candidate}")

        if self.updater is not None:
            try:
                updated = self.updater.update_to(candidate)
            except Exception as exc:
                raise UpdateFailedError(candidate, str(exc)) from exc
            if not updated:
                raise UpdateFailedError(candidate)

        return replace(session, current=candidate)

    def mark(
        self, session: BisectSession, verdict: Verdict, revision: Optional[int] = None
    ) -> BisectSession:
        """Record the verdict for the current candidate or an explicit revision.

        Good raises the good bound, bad moves the bad bound, skip only adds
        the revision to the skipped set. Marking a skipped revision good or
        bad un-skips it.

        Raises:
            SessionClosedError: If the session is terminal
            InvalidRevisionError: If there is no target or it lies outside the bounds
        """
        if session.status.terminal:
            raise SessionClosedError(session.status)

        target = revision if revision is not None else session.current
        if target is None:
            raise InvalidRevisionError("No candidate selected; step the session first")

        if not session.low < target < session.high:
            raise InvalidRevisionError(
                f"r{target} must lie between r{session.good_revision} ({session.good_name}) "
                f"and r{session.bad_revision} ({session.bad_name})"
            )

        if verdict is Verdict.SKIP:
            logger.info(f"Skipping r{target}")
            return self.skip(session, [target])

        skipped = session.skipped - {target}
        if verdict is Verdict.GOOD:
            session = replace(session, good_revision=target, skipped=skipped, current=None)
        else:
            session = replace(session, bad_revision=target, skipped=skipped, current=None)
        logger.info(f"Marked r{target} {verdict.value}")

        if not self.interior(session):
            return self._found(session)
        return session

    def skip(self, session: BisectSession, revisions: Iterable[int]) -> BisectSession:
        """Add several revisions to the skipped set.

        The current candidate is kept unless it is one of them.
        """
        if session.status.terminal:
            raise SessionClosedError(session.status)
        skipped = session.skipped | frozenset(revisions)
        current = None if session.current in skipped else session.current
        return replace(session, skipped=skipped, current=current)

    def unskip(self, session: BisectSession, revisions: Iterable[int]) -> BisectSession:
        """Reinstate previously skipped revisions."""
        if session.status.terminal:
            raise SessionClosedError(session.status)
        return replace(session, skipped=session.skipped - frozenset(revisions), current=None)

    def abort(self, session: Optional[BisectSession]) -> Optional[BisectSession]:
        """Terminate a session; aborting twice is harmless."""
        if session is None or session.status is SessionStatus.ABORTED:
            return session
        logger.info(f"Aborted bisect of {session.scope_path}")
        return replace(session, status=SessionStatus.ABORTED, current=None)

    def _found(self, session: BisectSession) -> BisectSession:
        logger.info(f"First {session.bad_name} revision is r{session.bad_revision}")
        return replace(
            session, status=SessionStatus.FOUND, current=None, culprit=session.bad_revision
        )
