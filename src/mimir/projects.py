"""Project repository and project-type detection."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from mimir.db import Database
from mimir.models import Project, ProjectType, _new_id, _now_iso

logger = logging.getLogger(__name__)

DEFAULT_OPENCODE_PORT = 4096

_PROJECT_COLUMNS = "id, name, path, opencode_port, project_type, created_at, updated_at"

# Checked in order; the first marker present wins.
_TYPE_MARKERS: list[tuple[str, ProjectType]] = [
	("go.mod", ProjectType.GO),
	("Cargo.toml", ProjectType.RUST),
	("tsconfig.json", ProjectType.TYPESCRIPT),
	("package.json", ProjectType.TYPESCRIPT),
	("pyproject.toml", ProjectType.PYTHON),
	("setup.py", ProjectType.PYTHON),
	("requirements.txt", ProjectType.PYTHON),
]


def detect_project_type(path: str | Path) -> ProjectType:
	"""Guess a project's language from marker files in its root directory."""
	root = Path(path).expanduser()
	if not root.is_dir():
		return ProjectType.UNKNOWN
	for marker, project_type in _TYPE_MARKERS:
		if (root / marker).exists():
			return project_type
	return ProjectType.UNKNOWN


class ProjectRepository:
	"""CRUD over the projects table."""

	def __init__(self, db: Database) -> None:
		self._db = db

	def create(self, project: Project) -> Project:
		"""Insert a project, filling in id and timestamps.

		Raises:
			ConstraintError: If the name is already registered or the path is empty.
		"""
		project_id = project.id or _new_id()
		now = _now_iso()
		created_at = project.created_at or now

		self._db.execute(
			f"""INSERT INTO projects ({_PROJECT_COLUMNS})
			VALUES (?, ?, ?, ?, ?, ?, ?)""",
			(
				project_id, project.name, project.path, project.opencode_port,
				project.project_type, created_at, now,
			),
		)
		project.id = project_id
		project.created_at = created_at
		project.updated_at = now
		logger.info("Registered project %s (%s) at %s", project.name, project.id, project.path)
		return project

	def get(self, project_id: str) -> Project | None:
		row = self._db.fetch_one(
			f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id=?", (project_id,),
		)
		if row is None:
			return None
		return self._row_to_project(row)

	def get_by_name(self, name: str) -> Project | None:
		row = self._db.fetch_one(
			f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE name=?", (name,),
		)
		if row is None:
			return None
		return self._row_to_project(row)

	def list(self) -> list[Project]:
		"""All projects, newest first."""
		rows = self._db.fetch_all(
			f"SELECT {_PROJECT_COLUMNS} FROM projects ORDER BY created_at DESC",
		)
		return [self._row_to_project(r) for r in rows]

	def update(self, project: Project) -> None:
		"""Overwrite name, path, port and type. A missing id updates nothing."""
		project.updated_at = _now_iso()
		self._db.execute(
			"""UPDATE projects SET
			name=?, path=?, opencode_port=?, project_type=?, updated_at=?
			WHERE id=?""",
			(
				project.name, project.path, project.opencode_port,
				project.project_type, project.updated_at, project.id,
			),
		)

	def delete(self, project_id: str) -> None:
		"""Remove a project row. Its sessions are left in place."""
		removed = self._db.execute("DELETE FROM projects WHERE id=?", (project_id,))
		if removed:
			logger.info("Deleted project %s", project_id)

	def next_free_port(self, base: int = DEFAULT_OPENCODE_PORT) -> int:
		"""One above the highest registered opencode port, or ``base`` if none."""
		row = self._db.fetch_one("SELECT MAX(opencode_port) FROM projects")
		if row is None or row[0] is None:
			return base
		return max(int(row[0]) + 1, base)

	@staticmethod
	def _row_to_project(row: sqlite3.Row) -> Project:
		return Project(
			id=row["id"],
			name=row["name"],
			path=row["path"],
			opencode_port=row["opencode_port"],
			project_type=row["project_type"],
			created_at=row["created_at"],
			updated_at=row["updated_at"],
		)
