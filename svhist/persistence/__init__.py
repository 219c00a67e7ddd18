"""Database models and state management for bisect sessions."""

from svhist.persistence.models import BisectLogEntry, SessionRecord
from svhist.persistence.state_manager import DatabaseError, StateManager


__all__ = [
    # Models
    "SessionRecord",
    "BisectLogEntry",
    # State Manager
    "DatabaseError",
    "StateManager",
]
