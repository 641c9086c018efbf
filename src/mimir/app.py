"""Dependency container wiring config, store and repositories."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from mimir.config import MimirConfig
from mimir.db import Database
from mimir.metrics import RequestMetrics
from mimir.models import Project
from mimir.projects import ProjectRepository, detect_project_type
from mimir.sessions import SessionRepository

logger = logging.getLogger(__name__)


@dataclass
class Container:
	"""Shared dependencies, built once at startup and passed to the server and CLI."""

	config: MimirConfig
	db: Database
	projects: ProjectRepository
	sessions: SessionRepository
	metrics: RequestMetrics = field(default_factory=RequestMetrics)

	@classmethod
	def from_config(cls, config: MimirConfig) -> Container:
		"""Open and migrate the configured store and build the repositories."""
		db = Database(
			config.database.path,
			encryption_key=config.database.encryption_key,
			busy_timeout_ms=config.database.busy_timeout_ms,
		)
		try:
			db.migrate()
		except Exception:
			db.close()
			raise
		return cls.from_database(config, db)

	@classmethod
	def from_database(cls, config: MimirConfig, db: Database) -> Container:
		return cls(
			config=config,
			db=db,
			projects=ProjectRepository(db),
			sessions=SessionRepository(db),
		)

	def close(self) -> None:
		self.db.close()

	def __enter__(self) -> Container:
		return self

	def __exit__(self, *args: object) -> None:
		self.close()


def sync_configured_projects(container: Container) -> list[Project]:
	"""Register [[projects]] config entries missing from the store.

	Entries already present by name are left untouched. Returns the projects
	that were created.
	"""
	created: list[Project] = []
	for pc in container.config.projects:
		if not pc.name or not pc.path:
			logger.warning("Skipping configured project with missing name or path: %r", pc)
			continue
		if container.projects.get_by_name(pc.name) is not None:
			continue
		port = pc.opencode_port or container.projects.next_free_port()
		project = Project(
			name=pc.name,
			path=pc.path,
			opencode_port=port,
			project_type=detect_project_type(pc.path).value,
		)
		created.append(container.projects.create(project))
	if created:
		logger.info("Synced %d configured project(s) into the store", len(created))
	return created
