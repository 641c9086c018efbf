"""FastAPI gateway exposing health, metrics and the project/session API."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from mimir import __version__
from mimir.app import Container
from mimir.errors import BusyError, ConstraintError, InvalidTransitionError
from mimir.metrics import UNMATCHED_PATH
from mimir.models import Session, SessionStatus

logger = logging.getLogger(__name__)


class SessionCreate(BaseModel):
	"""Inbound session creation request."""

	project: str
	agent_type: str
	worktree_path: str | None = None
	branch_name: str | None = None
	metadata: str | None = None


class StatusChange(BaseModel):
	status: str


def create_app(container: Container) -> FastAPI:
	"""Build the gateway app around an already-initialized container."""
	app = FastAPI(title="Mimir Gateway", version=__version__)
	projects = container.projects
	sessions = container.sessions
	metrics = container.metrics

	@app.middleware("http")
	async def record_request(request: Request, call_next: Any) -> Any:
		start = time.monotonic()
		response = await call_next(request)
		duration = time.monotonic() - start
		route = request.scope.get("route")
		path = getattr(route, "path", UNMATCHED_PATH)
		metrics.record(path, duration)
		logger.info(
			"request method=%s path=%s status=%d duration=%.3fs",
			request.method, request.url.path, response.status_code, duration,
		)
		return response

	@app.exception_handler(BusyError)
	async def busy_handler(request: Request, exc: BusyError) -> JSONResponse:
		logger.warning("Store busy while serving %s: %s", request.url.path, exc)
		return JSONResponse(status_code=503, content={"detail": "Store is busy, retry later"})

	@app.get("/health")
	def health() -> dict[str, str]:
		return {"status": "healthy", "version": __version__}

	@app.get("/metrics")
	def get_metrics() -> Response:
		return Response(content=metrics.to_prometheus(), media_type=metrics.content_type)

	@app.get("/api")
	def api_root() -> dict[str, str]:
		return {"message": f"Mimir API v{__version__}"}

	# -- Projects --

	@app.get("/api/projects")
	def list_projects() -> list[dict[str, Any]]:
		return [asdict(p) for p in projects.list()]

	@app.get("/api/projects/{name}")
	def get_project(name: str) -> dict[str, Any]:
		project = projects.get_by_name(name)
		if project is None:
			raise HTTPException(status_code=404, detail="Project not found")
		return asdict(project)

	@app.get("/api/projects/{name}/sessions")
	def list_project_sessions(name: str) -> list[dict[str, Any]]:
		project = projects.get_by_name(name)
		if project is None:
			raise HTTPException(status_code=404, detail="Project not found")
		return [asdict(s) for s in sessions.list_by_project(project.id)]

	# -- Sessions --

	@app.post("/api/sessions", status_code=201)
	def create_session(req: SessionCreate) -> dict[str, Any]:
		project = projects.get_by_name(req.project)
		if project is None:
			raise HTTPException(status_code=404, detail="Project not found")
		session = Session(
			project_id=project.id,
			agent_type=req.agent_type,
			worktree_path=req.worktree_path,
			branch_name=req.branch_name,
			metadata=req.metadata,
		)
		try:
			session = sessions.create(session)
		except ConstraintError as exc:
			raise HTTPException(status_code=409, detail=str(exc)) from exc
		return asdict(session)

	@app.get("/api/sessions/{session_id}")
	def get_session(session_id: str) -> dict[str, Any]:
		session = sessions.get(session_id)
		if session is None:
			raise HTTPException(status_code=404, detail="Session not found")
		return asdict(session)

	@app.post("/api/sessions/{session_id}/status")
	def change_status(session_id: str, req: StatusChange) -> dict[str, Any]:
		if req.status not in {s.value for s in SessionStatus}:
			raise HTTPException(status_code=422, detail=f"Unknown status: {req.status}")
		try:
			session = sessions.transition(session_id, req.status)
		except InvalidTransitionError as exc:
			raise HTTPException(status_code=409, detail=str(exc)) from exc
		if session is None:
			raise HTTPException(status_code=404, detail="Session not found")
		return asdict(session)

	return app
