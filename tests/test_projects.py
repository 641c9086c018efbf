"""Tests for the project repository and project-type detection."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import make_project

from mimir.errors import ConstraintError
from mimir.models import ProjectType
from mimir.projects import DEFAULT_OPENCODE_PORT, ProjectRepository, detect_project_type


class TestCreate:
	def test_create_then_get(self, projects: ProjectRepository) -> None:
		created = projects.create(make_project())
		assert created.id
		assert created.created_at
		assert created.updated_at

		fetched = projects.get(created.id)
		assert fetched == created

	def test_keeps_caller_id(self, projects: ProjectRepository) -> None:
		created = projects.create(make_project(id="fixed-id"))
		assert created.id == "fixed-id"
		assert projects.get("fixed-id") is not None

	def test_duplicate_name_rejected(self, projects: ProjectRepository) -> None:
		projects.create(make_project(name="demo", path="/tmp/one"))
		with pytest.raises(ConstraintError):
			projects.create(make_project(name="demo", path="/tmp/two"))
		rows = projects.list()
		assert len(rows) == 1
		assert rows[0].path == "/tmp/one"

	def test_empty_path_rejected(self, projects: ProjectRepository) -> None:
		with pytest.raises(ConstraintError):
			projects.create(make_project(path=""))
		assert projects.list() == []

	def test_failed_create_leaves_caller_object_untouched(self, projects: ProjectRepository) -> None:
		projects.create(make_project(name="demo"))
		duplicate = make_project(name="demo", path="/tmp/two")
		with pytest.raises(ConstraintError):
			projects.create(duplicate)
		assert duplicate.id == ""
		assert duplicate.created_at == ""
		assert duplicate.updated_at == ""

	def test_nullable_project_type(self, projects: ProjectRepository) -> None:
		created = projects.create(make_project(project_type=None))
		fetched = projects.get(created.id)
		assert fetched is not None
		assert fetched.project_type is None


class TestRead:
	def test_get_missing(self, projects: ProjectRepository) -> None:
		assert projects.get("nope") is None

	def test_get_by_name(self, projects: ProjectRepository) -> None:
		created = projects.create(make_project(name="alpha"))
		projects.create(make_project(name="beta", path="/tmp/beta"))
		fetched = projects.get_by_name("alpha")
		assert fetched is not None
		assert fetched.id == created.id
		assert projects.get_by_name("gamma") is None

	def test_list_empty(self, projects: ProjectRepository) -> None:
		assert projects.list() == []

	def test_list_newest_first(self, projects: ProjectRepository) -> None:
		projects.create(make_project(name="old", created_at="2026-01-01T00:00:00+00:00"))
		projects.create(make_project(name="new", created_at="2026-03-01T00:00:00+00:00"))
		projects.create(make_project(name="mid", created_at="2026-02-01T00:00:00+00:00"))
		assert [p.name for p in projects.list()] == ["new", "mid", "old"]


class TestUpdateDelete:
	def test_update_overwrites_fields(self, projects: ProjectRepository) -> None:
		created = projects.create(make_project(created_at="2026-01-01T00:00:00+00:00"))
		created.name = "renamed"
		created.path = "/srv/renamed"
		created.opencode_port = 5000
		created.project_type = ProjectType.GO.value
		projects.update(created)

		fetched = projects.get(created.id)
		assert fetched is not None
		assert fetched.name == "renamed"
		assert fetched.path == "/srv/renamed"
		assert fetched.opencode_port == 5000
		assert fetched.project_type == "go"
		assert fetched.created_at == "2026-01-01T00:00:00+00:00"
		assert fetched.updated_at == created.updated_at

	def test_update_missing_is_noop(self, projects: ProjectRepository) -> None:
		projects.update(make_project(id="ghost"))
		assert projects.get("ghost") is None
		assert projects.list() == []

	def test_update_to_taken_name_rejected(self, projects: ProjectRepository) -> None:
		projects.create(make_project(name="a", path="/tmp/a"))
		b = projects.create(make_project(name="b", path="/tmp/b"))
		b.name = "a"
		with pytest.raises(ConstraintError):
			projects.update(b)
		fetched = projects.get(b.id)
		assert fetched is not None
		assert fetched.name == "b"

	def test_delete(self, projects: ProjectRepository) -> None:
		created = projects.create(make_project())
		projects.delete(created.id)
		assert projects.get(created.id) is None

	def test_delete_missing(self, projects: ProjectRepository) -> None:
		projects.delete("nope")
		assert projects.list() == []


class TestNextFreePort:
	def test_empty_uses_base(self, projects: ProjectRepository) -> None:
		assert projects.next_free_port() == DEFAULT_OPENCODE_PORT
		assert projects.next_free_port(9000) == 9000

	def test_one_above_highest(self, projects: ProjectRepository) -> None:
		projects.create(make_project(name="a", opencode_port=4096))
		projects.create(make_project(name="b", path="/tmp/b", opencode_port=4100))
		assert projects.next_free_port() == 4101

	def test_never_below_base(self, projects: ProjectRepository) -> None:
		projects.create(make_project(opencode_port=3000))
		assert projects.next_free_port(4096) == 4096


class TestDetectProjectType:
	@pytest.mark.parametrize(
		("marker", "expected"),
		[
			("go.mod", ProjectType.GO),
			("Cargo.toml", ProjectType.RUST),
			("tsconfig.json", ProjectType.TYPESCRIPT),
			("package.json", ProjectType.TYPESCRIPT),
			("pyproject.toml", ProjectType.PYTHON),
			("setup.py", ProjectType.PYTHON),
			("requirements.txt", ProjectType.PYTHON),
		],
	)
	def test_marker(self, tmp_path: Path, marker: str, expected: ProjectType) -> None:
		(tmp_path / marker).write_text("")
		assert detect_project_type(tmp_path) == expected

	def test_first_marker_wins(self, tmp_path: Path) -> None:
		(tmp_path / "go.mod").write_text("module x")
		(tmp_path / "package.json").write_text("{}")
		assert detect_project_type(tmp_path) == ProjectType.GO

	def test_no_marker(self, tmp_path: Path) -> None:
		assert detect_project_type(tmp_path) == ProjectType.UNKNOWN

	def test_missing_directory(self, tmp_path: Path) -> None:
		assert detect_project_type(tmp_path / "absent") == ProjectType.UNKNOWN
