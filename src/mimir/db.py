"""Encrypted SQLite store for Mimir projects, sessions and worktrees."""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from types import ModuleType
from typing import Any, Generator, Sequence

from mimir.errors import BusyError, ConstraintError, SchemaError, StoreConnectionError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"
DEFAULT_BUSY_TIMEOUT_MS = 5000
SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sessions (
	id TEXT PRIMARY KEY,
	project_id TEXT NOT NULL,
	agent_type TEXT NOT NULL,
	worktree_path TEXT,
	branch_name TEXT,
	status TEXT NOT NULL DEFAULT 'created'
		CHECK (status IN ('created', 'active', 'completed', 'error', 'cancelled')),
	metadata TEXT,
	created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
	updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

CREATE TABLE IF NOT EXISTS projects (
	id TEXT PRIMARY KEY,
	name TEXT NOT NULL UNIQUE,
	path TEXT NOT NULL CHECK (length(path) > 0),
	opencode_port INTEGER NOT NULL,
	project_type TEXT,
	created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
	updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);

CREATE TABLE IF NOT EXISTS worktrees (
	id TEXT PRIMARY KEY,
	session_id TEXT NOT NULL,
	path TEXT NOT NULL,
	branch_name TEXT NOT NULL,
	status TEXT NOT NULL DEFAULT 'active',
	created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
	deleted_at TEXT,
	FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_sessions_project ON sessions(project_id);
CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);
CREATE INDEX IF NOT EXISTS idx_worktrees_session ON worktrees(session_id);

-- Sessions must point at an existing project when written, but project
-- deletion neither cascades nor is blocked.
CREATE TRIGGER IF NOT EXISTS trg_sessions_project_exists
BEFORE INSERT ON sessions
FOR EACH ROW
WHEN NOT EXISTS (SELECT 1 FROM projects WHERE id = NEW.project_id)
BEGIN
	SELECT RAISE(ABORT, 'FOREIGN KEY constraint failed: sessions.project_id');
END;
"""


def expand_path(path: str | Path) -> str:
	"""Expand a leading ``~`` to the invoking user's home directory."""
	raw = str(path)
	if raw == MEMORY_PATH:
		return raw
	return os.path.expanduser(raw)


def _load_driver(encrypted: bool) -> ModuleType:
	if not encrypted:
		return sqlite3
	try:
		from sqlcipher3 import dbapi2
	except ImportError as exc:
		raise StoreConnectionError(
			"An encryption key is configured but the sqlcipher3 driver is not installed. "
			"Install with: pip install 'mimir[encryption]'"
		) from exc
	return dbapi2


def _is_busy(exc: Exception) -> bool:
	msg = str(exc).lower()
	return "database is locked" in msg or "busy" in msg


def _quote_literal(value: str) -> str:
	return "'" + value.replace("'", "''") + "'"


class Database:
	"""Single shared connection to the Mimir store.

	Every statement goes through one in-process lock that is acquired with the
	busy timeout as its bound, so concurrent callers queue behind the current
	statement instead of interleaving on the raw connection. Repositories
	borrow the instance and must not close it.
	"""

	def __init__(
		self,
		path: str | Path = MEMORY_PATH,
		encryption_key: str = "",
		busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
	) -> None:
		self.path = expand_path(path)
		self.busy_timeout_ms = busy_timeout_ms
		self.encrypted = bool(encryption_key)
		self._driver = _load_driver(self.encrypted)
		self._lock = threading.RLock()

		if self.encrypted and "\x00" in encryption_key:
			raise StoreConnectionError("Invalid encryption key: contains a NUL byte")

		if self.path != MEMORY_PATH:
			try:
				Path(self.path).parent.mkdir(parents=True, exist_ok=True)
			except OSError as exc:
				raise StoreConnectionError(
					f"Failed to create database directory for {self.path}: {exc}"
				) from exc

		try:
			self.conn = self._driver.connect(
				self.path,
				timeout=busy_timeout_ms / 1000,
				check_same_thread=False,
			)
		except self._driver.Error as exc:
			raise StoreConnectionError(f"Failed to open database {self.path}: {exc}") from exc
		self.conn.row_factory = self._driver.Row

		try:
			if self.encrypted:
				# The key must be the first statement on an SQLCipher connection.
				self.conn.execute(f"PRAGMA key = {_quote_literal(encryption_key)}")
				self.conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
			self.conn.execute("PRAGMA foreign_keys=ON")
			if self.path != MEMORY_PATH:
				self.conn.execute("PRAGMA journal_mode=WAL")
			self.conn.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
		except self._driver.Error as exc:
			self.conn.close()
			raise StoreConnectionError(f"Failed to initialize database {self.path}: {exc}") from exc

		logger.debug(
			"Opened database connection: %s (encrypted=%s, busy_timeout=%dms)",
			self.path, self.encrypted, busy_timeout_ms,
		)

	def migrate(self) -> None:
		"""Create tables, indexes and triggers if missing. Safe on every startup."""
		with self._lock:
			try:
				self.conn.executescript(SCHEMA_SQL)
				current = self.conn.execute("PRAGMA user_version").fetchone()[0]
				if current < SCHEMA_VERSION:
					self.conn.execute(f"PRAGMA user_version={SCHEMA_VERSION}")
					logger.debug("Migration: schema version %d -> %d", current, SCHEMA_VERSION)
				self.conn.commit()
			except self._driver.Error as exc:
				logger.warning("Migration failed for %s: %s", self.path, exc)
				raise SchemaError(f"Migration failed: {exc}") from exc

	def schema_version(self) -> int:
		row = self.fetch_one("PRAGMA user_version")
		return int(row[0]) if row is not None else 0

	def close(self) -> None:
		logger.debug("Closing database connection: %s", self.path)
		self.conn.close()

	def __enter__(self) -> Database:
		return self

	def __exit__(self, *args: object) -> None:
		self.close()

	@contextmanager
	def _statement(self, sql: str) -> Generator[sqlite3.Connection, None, None]:
		"""Serialize one statement on the shared connection and translate driver errors."""
		verb = sql.split(None, 1)[0].upper() if sql.strip() else "STATEMENT"
		if not self._lock.acquire(timeout=self.busy_timeout_ms / 1000):
			raise BusyError(f"{verb} waited more than {self.busy_timeout_ms}ms for the connection")
		try:
			yield self.conn
		except self._driver.IntegrityError as exc:
			self.conn.rollback()
			raise ConstraintError(f"{verb} failed: {exc}") from exc
		except self._driver.OperationalError as exc:
			self.conn.rollback()
			if not _is_busy(exc):
				raise
			raise BusyError(f"{verb} failed: {exc}") from exc
		finally:
			self._lock.release()

	def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
		"""Run one autocommit write statement. Returns the affected row count."""
		with self._statement(sql) as conn:
			cursor = conn.execute(sql, params)
			conn.commit()
			return cursor.rowcount

	def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
		with self._statement(sql) as conn:
			return conn.execute(sql, params).fetchone()

	def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
		with self._statement(sql) as conn:
			return conn.execute(sql, params).fetchall()
