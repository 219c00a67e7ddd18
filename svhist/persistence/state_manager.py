#!/usr/bin/env python3
"""State Manager - Persistent bisect session storage using SQLAlchemy ORM.

Each working copy has at most one bisect session. The session survives
between command invocations together with its replayable log.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from sqlalchemy import create_engine, select
from sqlalchemy.orm import scoped_session, sessionmaker

from svhist.config.config import DEFAULT_DB_PATH
from svhist.core.bisect import BisectSession
from svhist.persistence.models import Base, BisectLogEntry, SessionRecord


logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Base exception for database-related errors."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateManager:
    """Store bisect sessions keyed by working copy.

    Attributes:
        db_path: Path to SQLite database file
        engine: SQLAlchemy engine
        Session: Scoped session factory
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH) -> None:
        """Initialize state manager.

        Args:
            db_path: Path to SQLite database file ("~" is expanded)

        Raises:
            DatabaseError: If the schema cannot be created
        """
        self.db_path = str(Path(db_path).expanduser())

        db_parent = Path(self.db_path).parent
        if db_parent != Path():
            db_parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )
        session_factory = sessionmaker(bind=self.engine)
        self.Session = scoped_session(session_factory)

        try:
            Base.metadata.create_all(self.engine)
            logger.debug(f"Database initialized at {self.db_path}")
        except Exception as exc:
            msg = f"Failed to initialize database: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc

    @staticmethod
    def _find(session, workingcopy: str) -> Optional[SessionRecord]:
        stmt = select(SessionRecord).where(SessionRecord.workingcopy == workingcopy)
        return session.execute(stmt).scalar_one_or_none()

    def load_session(self, workingcopy: str) -> Optional[BisectSession]:
        """Load the bisect session of a working copy.

        Returns:
            BisectSession or None if the working copy has no session

        Raises:
            DatabaseError: If the stored state cannot be read
        """
        session = self.Session()
        try:
            record = self._find(session, workingcopy)
            if record is None:
                return None
            return BisectSession.from_dict(json.loads(record.session_state))
        except Exception as exc:
            msg = f"Failed to load session for {workingcopy}: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def save_session(self, workingcopy: str, bisect_session: BisectSession) -> None:
        """Create or replace the session of a working copy.

        Raises:
            DatabaseError: If the write fails
        """
        session = self.Session()
        try:
            record = self._find(session, workingcopy)
            now = _now()
            if record is None:
                record = SessionRecord(workingcopy=workingcopy, start_time=now)
                session.add(record)

            record.scope_path = bisect_session.scope_path
            record.status = bisect_session.status.value
            record.good_revision = bisect_session.good_revision
            record.bad_revision = bisect_session.bad_revision
            record.culprit = bisect_session.culprit
            record.update_time = now
            record.session_state = json.dumps(bisect_session.to_dict())

            session.commit()
            logger.debug(f"Saved {bisect_session.status.value} session for {workingcopy}")
        except Exception as exc:
            session.rollback()
            msg = f"Failed to save session for {workingcopy}: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def delete_session(self, workingcopy: str) -> bool:
        """Delete the session of a working copy and its log.

        Returns:
            True if a session was deleted

        Raises:
            DatabaseError: If the delete fails
        """
        session = self.Session()
        try:
            record = self._find(session, workingcopy)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            logger.debug(f"Deleted session for {workingcopy}")
            return True
        except Exception as exc:
            session.rollback()
            msg = f"Failed to delete session for {workingcopy}: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def append_log(self, workingcopy: str, *lines: str) -> None:
        """Append lines to the bisect log of a working copy.

        Raises:
            DatabaseError: If the write fails
        """
        session = self.Session()
        try:
            record = self._find(session, workingcopy)
            if record is None:
                logger.warning(f"No session for {workingcopy}; log lines dropped")
                return
            now = _now()
            for line in lines:
                session.add(BisectLogEntry(session_id=record.session_id, timestamp=now, line=line))
            session.commit()
        except Exception as exc:
            session.rollback()
            msg = f"Failed to append bisect log for {workingcopy}: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def get_log(self, workingcopy: str) -> List[str]:
        """Return the bisect log lines of a working copy, oldest first.

        Raises:
            DatabaseError: If the log cannot be read
        """
        session = self.Session()
        try:
            stmt = (
                select(BisectLogEntry.line)
                .join(SessionRecord)
                .where(SessionRecord.workingcopy == workingcopy)
                .order_by(BisectLogEntry.entry_id)
            )
            return list(session.execute(stmt).scalars())
        except Exception as exc:
            msg = f"Failed to read bisect log for {workingcopy}: {exc}"
            logger.error(msg)
            raise DatabaseError(msg) from exc
        finally:
            session.close()

    def close(self) -> None:
        """Close database connections."""
        self.Session.remove()
        self.engine.dispose()
