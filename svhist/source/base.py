#!/usr/bin/env python3
"""Abstract base classes for repository collaborators.

Provides the interfaces the core consumes: a commit log source and a
working-copy updater.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import CancelledError
from typing import Iterator, List, Optional

from svhist.core.models import CommitRecord


logger = logging.getLogger(__name__)

# Constants
DEFAULT_PAGE_SIZE = 500


class LogFetchError(Exception):
    """Base exception for commit log retrieval errors."""


class MissingPathError(LogFetchError):
    """Requested path does not exist at the requested revision."""


class CommitLogSource(ABC):
    """Abstract source of commit records.

    Implementations handle the transport (svn command line, a mirror, an
    in-memory fixture) and return already parsed records.
    """

    @abstractmethod
    def fetch_log(
        self,
        path: str,
        upper_bound: Optional[int] = None,
        limit: Optional[int] = None,
        stop_on_copy: bool = True,
        peg_revision: Optional[int] = None,
    ) -> List[CommitRecord]:
        """Fetch commits affecting a path.

        Args:
            path: Repository path
            upper_bound: Highest revision to include (None for HEAD)
            limit: Maximum number of records to return (None for all)
            stop_on_copy: Stop at the copy that created the path instead of
                continuing with the history of the copy source
            peg_revision: Revision at which ``path`` names the node
                (None for ``upper_bound``)

        Returns:
            Commit records affecting ``path``, newest first

        Raises:
            LogFetchError: If the path is missing or the transport fails
        """


class WorkingCopyUpdater(ABC):
    """Abstract updater for a local checkout."""

    @abstractmethod
    def update_to(self, revision: int) -> bool:
        """Update the working copy to a revision.

        Args:
            revision: Target revision

        Returns:
            True if the update succeeded, False otherwise
        """


def iter_log(
    source: CommitLogSource,
    path: str,
    upper_bound: Optional[int] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    stop_on_copy: bool = True,
    peg_revision: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> Iterator[CommitRecord]:
    """Iterate over a path's commits newest first, one page per fetch.

    Every page names the path at the same peg revision, so paging keeps
    working once the history crosses a copy.

    Args:
        source: Commit log source to query
        path: Repository path
        upper_bound: Highest revision to include (None for HEAD)
        page_size: Records requested per fetch
        stop_on_copy: Stop at the copy that created the path
        peg_revision: Revision at which ``path`` names the node
            (None for ``upper_bound``)
        cancel_event: When set, iteration stops before the next fetch

    Yields:
        Commit records, newest first

    Raises:
        CancelledError: If ``cancel_event`` is set before a fetch
    """
    bound = upper_bound
    peg = upper_bound if peg_revision is None else peg_revision
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise CancelledError(f"Log fetch for {path} cancelled")
        logger.debug(f"Fetching log for {path} at or below r{bound} (limit {page_size})")
        page = source.fetch_log(path, bound, page_size, stop_on_copy, peg)
        for record in page:
            if bound is not None and record.revision > bound:
                continue
            yield record
        if len(page) < page_size or not page:
            return
        bound = page[-1].revision - 1
        if bound < 0:
            return


def revisions_between(
    source: CommitLogSource,
    path: str,
    low: int,
    high: int,
    page_size: int = DEFAULT_PAGE_SIZE,
    peg_revision: Optional[int] = None,
) -> List[int]:
    """Return revisions touching ``path`` in the inclusive range [low, high].

    Copies are followed, so a branch path also yields the revisions it
    inherited from its copy source.

    Args:
        source: Commit log source to query
        path: Repository path
        low: Lowest revision of the range
        high: Highest revision of the range
        page_size: Records requested per fetch
        peg_revision: Revision at which ``path`` names the node
            (None for ``high``)

    Returns:
        Revision numbers in ascending order
    """
    revisions = []
    for record in iter_log(
        source, path, high, page_size, stop_on_copy=False, peg_revision=peg_revision
    ):
        if record.revision < low:
            break
        revisions.append(record.revision)
    return sorted(set(revisions))
