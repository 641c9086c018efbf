"""Shared pytest fixtures and factory functions for Mimir tests."""

from __future__ import annotations

from typing import Any

import pytest

from mimir.db import Database
from mimir.models import Project, Session
from mimir.projects import ProjectRepository
from mimir.sessions import SessionRepository


@pytest.fixture()
def db() -> Database:
	"""In-memory Database with schema applied."""
	d = Database(":memory:")
	d.migrate()
	yield d
	d.close()


@pytest.fixture()
def projects(db: Database) -> ProjectRepository:
	return ProjectRepository(db)


@pytest.fixture()
def sessions(db: Database) -> SessionRepository:
	return SessionRepository(db)


def make_project(**overrides: Any) -> Project:
	"""Create a Project with sensible defaults, overridable via kwargs."""
	defaults: dict[str, Any] = {
		"name": "demo",
		"path": "/tmp/demo",
		"opencode_port": 4096,
		"project_type": "python",
	}
	defaults.update(overrides)
	return Project(**defaults)


def make_session(**overrides: Any) -> Session:
	"""Create a Session with sensible defaults, overridable via kwargs."""
	defaults: dict[str, Any] = {
		"project_id": "p1",
		"agent_type": "coder",
	}
	defaults.update(overrides)
	return Session(**defaults)
