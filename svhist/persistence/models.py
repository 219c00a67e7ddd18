#!/usr/bin/env python3
"""SQLAlchemy ORM Models for the bisect session database.

One row per working copy holds the serialized session; the log table keeps
the replayable command history of that session.
"""

from typing import List, Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class SessionRecord(Base):
    """Bisect session bound to a working copy.

    Bounds, status and culprit are mirrored into columns for inspection;
    ``session_state`` is the authoritative JSON state.
    """

    __tablename__ = "bisect_sessions"

    session_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workingcopy: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    scope_path: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    good_revision: Mapped[int] = mapped_column(Integer, nullable=False)
    bad_revision: Mapped[int] = mapped_column(Integer, nullable=False)
    culprit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    start_time: Mapped[str] = mapped_column(String, nullable=False)
    update_time: Mapped[str] = mapped_column(String, nullable=False)
    session_state: Mapped[str] = mapped_column(Text, nullable=False)  # JSON as TEXT

    # Relationships
    log_entries: Mapped[List["BisectLogEntry"]] = relationship(
        "BisectLogEntry",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="BisectLogEntry.entry_id",
    )

    def __repr__(self) -> str:
        return (
            f"<SessionRecord(id={self.session_id}, wc={self.workingcopy}, "
            f"status={self.status}, good={self.good_revision}, bad={self.bad_revision})>"
        )


class BisectLogEntry(Base):
    """One line of a session's bisect log."""

    __tablename__ = "bisect_log"

    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bisect_sessions.session_id", ondelete="CASCADE"), nullable=False
    )
    timestamp: Mapped[str] = mapped_column(String, nullable=False)
    line: Mapped[str] = mapped_column(Text, nullable=False)

    # Relationships
    session: Mapped["SessionRecord"] = relationship("SessionRecord", back_populates="log_entries")

    def __repr__(self) -> str:
        return f"<BisectLogEntry(id={self.entry_id}, session={self.session_id}, line={self.line[:30]!r})>"
