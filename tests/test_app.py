"""Tests for the dependency container and config-driven project sync."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import make_project

from mimir.app import Container, sync_configured_projects
from mimir.config import MimirConfig, ProjectConfig
from mimir.db import Database
from mimir.errors import StoreConnectionError


@pytest.fixture()
def container(db: Database) -> Container:
	return Container.from_database(MimirConfig(), db)


class TestContainer:
	def test_from_config_opens_and_migrates(self, tmp_path: Path) -> None:
		config = MimirConfig()
		config.database.path = str(tmp_path / "data" / "mimir.db")
		config.database.busy_timeout_ms = 1234
		with Container.from_config(config) as c:
			assert c.db.schema_version() == 1
			assert c.db.busy_timeout_ms == 1234
			assert c.projects.list() == []
			assert c.sessions.list() == []
		assert (tmp_path / "data" / "mimir.db").exists()

	def test_repositories_share_one_store(self, container: Container) -> None:
		project = container.projects.create(make_project())
		assert container.projects.get(project.id) is not None
		assert container.sessions.list_by_project(project.id) == []

	def test_unopenable_store(self, tmp_path: Path) -> None:
		blocker = tmp_path / "blocker"
		blocker.write_text("")
		config = MimirConfig()
		config.database.path = str(blocker / "mimir.db")
		with pytest.raises(StoreConnectionError):
			Container.from_config(config)


class TestSyncConfiguredProjects:
	def test_registers_missing_projects(self, container: Container, tmp_path: Path) -> None:
		api = tmp_path / "api"
		api.mkdir()
		(api / "go.mod").write_text("module api")
		container.config.projects = [
			ProjectConfig(name="api", path=str(api), opencode_port=4300),
			ProjectConfig(name="web", path=str(tmp_path / "web")),
		]

		created = sync_configured_projects(container)
		assert [p.name for p in created] == ["api", "web"]

		registered = container.projects.get_by_name("api")
		assert registered is not None
		assert registered.opencode_port == 4300
		assert registered.project_type == "go"

		web = container.projects.get_by_name("web")
		assert web is not None
		assert web.opencode_port == 4301
		assert web.project_type == "unknown"

	def test_existing_names_left_alone(self, container: Container) -> None:
		existing = container.projects.create(make_project(name="api", path="/srv/old", opencode_port=5000))
		container.config.projects = [ProjectConfig(name="api", path="/srv/new", opencode_port=6000)]

		assert sync_configured_projects(container) == []
		fetched = container.projects.get(existing.id)
		assert fetched is not None
		assert fetched.path == "/srv/old"
		assert fetched.opencode_port == 5000

	def test_skips_incomplete_entries(self, container: Container) -> None:
		container.config.projects = [
			ProjectConfig(name="", path="/srv/x"),
			ProjectConfig(name="nopath", path=""),
		]
		assert sync_configured_projects(container) == []
		assert container.projects.list() == []
