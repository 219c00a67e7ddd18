"""Commit log sources and working-copy updaters."""

from svhist.source.base import CommitLogSource, LogFetchError, MissingPathError, WorkingCopyUpdater
from svhist.source.svn import SvnClient, SvnError, SvnInfo


__all__ = [
    # Interfaces
    "CommitLogSource",
    "WorkingCopyUpdater",
    "LogFetchError",
    "MissingPathError",
    # Subversion
    "SvnClient",
    "SvnError",
    "SvnInfo",
]
