"""Data models for projects and agent sessions."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4


def _now_iso() -> str:
	return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
	return str(uuid4())


class ProjectType(str, Enum):
	"""Language tag recorded for a registered project."""

	GO = "go"
	PYTHON = "python"
	TYPESCRIPT = "typescript"
	RUST = "rust"
	UNKNOWN = "unknown"


class SessionStatus(str, Enum):
	"""Lifecycle states of an agent session."""

	CREATED = "created"
	ACTIVE = "active"
	COMPLETED = "completed"
	ERROR = "error"
	CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[SessionStatus] = frozenset({
	SessionStatus.COMPLETED,
	SessionStatus.ERROR,
	SessionStatus.CANCELLED,
})


@dataclass
class Project:
	"""A registered project with its agent-service port.

	Empty ``id`` and ``created_at`` are filled in by the repository on create.
	"""

	id: str = ""
	name: str = ""
	path: str = ""
	opencode_port: int = 0
	project_type: str | None = None  # go/python/typescript/rust/unknown
	created_at: str = ""
	updated_at: str = ""


@dataclass
class Session:
	"""An agent session owned by a project."""

	id: str = ""
	project_id: str = ""
	agent_type: str = ""
	worktree_path: str | None = None
	branch_name: str | None = None
	status: str = SessionStatus.CREATED.value
	metadata: str | None = None  # opaque serialized blob
	created_at: str = ""
	updated_at: str = ""

	@property
	def is_terminal(self) -> bool:
		return self.status in {s.value for s in TERMINAL_STATUSES}
