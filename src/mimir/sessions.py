"""Session repository and the session status transition table."""

from __future__ import annotations

import logging
import sqlite3

from mimir.db import Database
from mimir.errors import InvalidTransitionError
from mimir.models import Session, SessionStatus, _new_id, _now_iso

logger = logging.getLogger(__name__)

_SESSION_COLUMNS = (
	"id, project_id, agent_type, worktree_path, branch_name, "
	"status, metadata, created_at, updated_at"
)

ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
	SessionStatus.CREATED: frozenset({
		SessionStatus.ACTIVE,
		SessionStatus.CANCELLED,
		SessionStatus.ERROR,
	}),
	SessionStatus.ACTIVE: frozenset({
		SessionStatus.COMPLETED,
		SessionStatus.ERROR,
		SessionStatus.CANCELLED,
	}),
	SessionStatus.COMPLETED: frozenset(),
	SessionStatus.ERROR: frozenset(),
	SessionStatus.CANCELLED: frozenset(),
}


def validate_transition(current: str | SessionStatus, target: str | SessionStatus) -> SessionStatus:
	"""Check a status change against ALLOWED_TRANSITIONS.

	Returns:
		The target as a SessionStatus.

	Raises:
		ValueError: If either value is not a known status.
		InvalidTransitionError: If the change is not allowed.
	"""
	src = SessionStatus(current)
	dst = SessionStatus(target)
	if dst not in ALLOWED_TRANSITIONS[src]:
		raise InvalidTransitionError(src.value, dst.value)
	return dst


class SessionRepository:
	"""CRUD and status updates over the sessions table."""

	def __init__(self, db: Database) -> None:
		self._db = db

	def create(self, session: Session) -> Session:
		"""Insert a session, filling in id, timestamps and an empty status.

		Raises:
			ConstraintError: If project_id does not name an existing project.
		"""
		session_id = session.id or _new_id()
		now = _now_iso()
		created_at = session.created_at or now
		status = session.status or SessionStatus.CREATED.value

		self._db.execute(
			f"""INSERT INTO sessions ({_SESSION_COLUMNS})
			VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
			(
				session_id, session.project_id, session.agent_type,
				session.worktree_path, session.branch_name, status,
				session.metadata, created_at, now,
			),
		)
		# Only a stored row gets its generated fields
		session.id = session_id
		session.created_at = created_at
		session.updated_at = now
		session.status = status
		logger.info(
			"Created session %s (agent=%s) for project %s",
			session.id, session.agent_type, session.project_id,
		)
		return session

	def get(self, session_id: str) -> Session | None:
		row = self._db.fetch_one(
			f"SELECT {_SESSION_COLUMNS} FROM sessions WHERE id=?", (session_id,),
		)
		if row is None:
			return None
		return self._row_to_session(row)

	def list(self) -> list[Session]:
		rows = self._db.fetch_all(
			f"SELECT {_SESSION_COLUMNS} FROM sessions ORDER BY created_at DESC",
		)
		return [self._row_to_session(r) for r in rows]

	def list_by_project(self, project_id: str) -> list[Session]:
		rows = self._db.fetch_all(
			f"""SELECT {_SESSION_COLUMNS} FROM sessions
			WHERE project_id=? ORDER BY created_at DESC""",
			(project_id,),
		)
		return [self._row_to_session(r) for r in rows]

	def list_by_status(self, status: str | SessionStatus) -> list[Session]:
		value = SessionStatus(status).value
		rows = self._db.fetch_all(
			f"""SELECT {_SESSION_COLUMNS} FROM sessions
			WHERE status=? ORDER BY created_at DESC""",
			(value,),
		)
		return [self._row_to_session(r) for r in rows]

	def count_by_status(self) -> dict[str, int]:
		"""Session counts keyed by status, including zero counts."""
		counts = {s.value: 0 for s in SessionStatus}
		for row in self._db.fetch_all("SELECT status, COUNT(*) FROM sessions GROUP BY status"):
			counts[row[0]] = row[1]
		return counts

	def update_status(self, session_id: str, status: str | SessionStatus) -> None:
		"""Set status and updated_at only. Transition order is not checked here.

		Raises:
			ValueError: If status is not a known SessionStatus.
		"""
		value = SessionStatus(status).value
		self._db.execute(
			"UPDATE sessions SET status=?, updated_at=? WHERE id=?",
			(value, _now_iso(), session_id),
		)

	def transition(self, session_id: str, target: str | SessionStatus) -> Session | None:
		"""Move a session to ``target`` if ALLOWED_TRANSITIONS permits it.

		Returns the updated session, or None when the session does not exist.
		The write only lands if the status is still the one that was checked.

		Raises:
			InvalidTransitionError: If the change is not allowed, including when
				another caller moved the session after it was read.
		"""
		session = self.get(session_id)
		if session is None:
			return None
		dst = validate_transition(session.status, target)
		updated = self._db.execute(
			"UPDATE sessions SET status=?, updated_at=? WHERE id=? AND status=?",
			(dst.value, _now_iso(), session_id, session.status),
		)
		if not updated:
			current = self.get(session_id)
			if current is None:
				return None
			logger.warning(
				"Session %s changed from %s to %s before the move to %s",
				session_id, session.status, current.status, dst.value,
			)
			raise InvalidTransitionError(current.status, dst.value)
		logger.info("Session %s: %s -> %s", session_id, session.status, dst.value)
		return self.get(session_id)

	def delete(self, session_id: str) -> None:
		"""Remove a session. Its worktrees go with it through the schema cascade."""
		removed = self._db.execute("DELETE FROM sessions WHERE id=?", (session_id,))
		if removed:
			logger.info("Deleted session %s", session_id)

	@staticmethod
	def _row_to_session(row: sqlite3.Row) -> Session:
		return Session(
			id=row["id"],
			project_id=row["project_id"],
			agent_type=row["agent_type"],
			worktree_path=row["worktree_path"],
			branch_name=row["branch_name"],
			status=row["status"],
			metadata=row["metadata"],
			created_at=row["created_at"],
			updated_at=row["updated_at"],
		)
