"""Core lineage correlation and bisect components."""

from svhist.core.bisect import BisectController, BisectSession, SessionStatus, Verdict
from svhist.core.correlation import CorrelationEngine, merge_lineages
from svhist.core.models import CommitRecord, Lineage, LineageSegment


__all__ = [
    "BisectController",
    "BisectSession",
    "CommitRecord",
    "CorrelationEngine",
    "Lineage",
    "LineageSegment",
    "SessionStatus",
    "Verdict",
    "merge_lineages",
]
