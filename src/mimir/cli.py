"""CLI interface for the Mimir gateway."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from mimir import __version__
from mimir.app import Container, sync_configured_projects
from mimir.config import CONFIG_FILENAME, MimirConfig, config_dir, load_config, validate_config
from mimir.errors import InvalidTransitionError, MimirError, StoreError
from mimir.models import Project, ProjectType, Session, SessionStatus
from mimir.projects import detect_project_type

logger = logging.getLogger(__name__)

INIT_TEMPLATE = """\
[server]
host = "127.0.0.1"
http_port = 8080
ws_port = 8081

[database]
path = "{db_path}"
# encryption_key = ""  # or set MIMIR_DB_KEY
busy_timeout_ms = 5000

[opencode]
default_model = "anthropic/claude-sonnet-4"

[logging]
level = "INFO"

# [[projects]]
# name = "demo"
# path = "~/code/demo"
# opencode_port = 4096
"""


def _add_config_arg(parser: argparse.ArgumentParser) -> None:
	parser.add_argument(
		"--config", default=None,
		help="Config file path (default: $MIMIR_CONFIG or ~/.mimir/config.toml)",
	)


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="mimir",
		description="Mimir - AI agent orchestration gateway",
	)
	parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
	sub = parser.add_subparsers(dest="command")

	# mimir serve
	serve = sub.add_parser("serve", help="Start the Mimir gateway")
	_add_config_arg(serve)
	serve.add_argument("--host", default=None, help="Host to bind to (default: server.host)")
	serve.add_argument("--port", type=int, default=None, help="HTTP port (default: server.http_port)")

	# mimir status
	status = sub.add_parser("status", help="Show gateway and database status")
	_add_config_arg(status)

	# mimir init
	init_cmd = sub.add_parser("init", help="Write a default config file")
	init_cmd.add_argument("path", nargs="?", default=None, help="Config directory (default: ~/.mimir)")

	# mimir validate-config
	vc = sub.add_parser("validate-config", help="Validate config file semantically")
	_add_config_arg(vc)

	# mimir projects ...
	projects = sub.add_parser("projects", help="Manage registered projects")
	projects.set_defaults(print_group_help=projects.print_help)
	projects_sub = projects.add_subparsers(dest="projects_command")
	p_list = projects_sub.add_parser("list", help="List registered projects")
	_add_config_arg(p_list)
	p_add = projects_sub.add_parser("add", help="Register a new project")
	_add_config_arg(p_add)
	p_add.add_argument("path", help="Project root directory")
	p_add.add_argument("--name", default=None, help="Project name (defaults to directory name)")
	p_add.add_argument("--port", type=int, default=None, help="opencode port (default: next free)")
	p_add.add_argument(
		"--type", dest="project_type", default=None,
		choices=[t.value for t in ProjectType],
		help="Project type (default: detected from marker files)",
	)
	p_remove = projects_sub.add_parser("remove", help="Remove a registered project")
	_add_config_arg(p_remove)
	p_remove.add_argument("name", help="Project name")
	p_sync = projects_sub.add_parser("sync", help="Register projects declared in the config file")
	_add_config_arg(p_sync)

	# mimir sessions ...
	sessions = sub.add_parser("sessions", help="Inspect and manage agent sessions")
	sessions.set_defaults(print_group_help=sessions.print_help)
	sessions_sub = sessions.add_subparsers(dest="sessions_command")
	s_list = sessions_sub.add_parser("list", help="List sessions")
	_add_config_arg(s_list)
	s_list.add_argument("--project", default=None, help="Only sessions of this project")
	s_create = sessions_sub.add_parser("create", help="Create a session")
	_add_config_arg(s_create)
	s_create.add_argument("--project", required=True, help="Owning project name")
	s_create.add_argument("--agent-type", required=True, help="Agent label, e.g. coder")
	s_create.add_argument("--branch", default=None, help="Branch name")
	s_create.add_argument("--worktree", default=None, help="Worktree path")
	s_status = sessions_sub.add_parser("set-status", help="Change a session's status")
	_add_config_arg(s_status)
	s_status.add_argument("session_id")
	s_status.add_argument("status", choices=[s.value for s in SessionStatus])
	s_delete = sessions_sub.add_parser("delete", help="Delete a session")
	_add_config_arg(s_delete)
	s_delete.add_argument("session_id")

	return parser


def _load(args: argparse.Namespace) -> MimirConfig:
	"""Load the config named on the command line and apply its log level."""
	config = load_config(args.config)
	logging.getLogger().setLevel(getattr(logging, config.logging.level, logging.INFO))
	return config


def cmd_serve(args: argparse.Namespace) -> int:
	"""Start the HTTP gateway."""
	try:
		import uvicorn

		from mimir.server import create_app
	except ImportError:
		print("Server dependencies not installed. Run: pip install -e .")
		return 1

	config = _load(args)
	host = args.host or config.server.host
	port = args.port or config.server.http_port

	with Container.from_config(config) as container:
		sync_configured_projects(container)
		app = create_app(container)
		logger.info("Starting Mimir Gateway on http://%s:%d (health: /health)", host, port)
		uvicorn.run(app, host=host, port=port, log_level="warning")
		logger.info("Mimir Gateway stopped")
	return 0


def cmd_status(args: argparse.Namespace) -> int:
	"""Show database and registry status."""
	config = _load(args)
	print("Mimir Gateway Status:")
	print(f"  Database: {config.database.resolved_path}")
	print(f"  Encrypted: {'yes' if config.database.encryption_key else 'no'}")

	with Container.from_config(config) as container:
		print(f"  Schema version: {container.db.schema_version()}")
		print(f"  Projects: {len(container.projects.list())} registered")
		counts = container.sessions.count_by_status()
		summary = ", ".join(f"{status}={n}" for status, n in counts.items())
		print(f"  Sessions: {sum(counts.values())} ({summary})")
	return 0


def cmd_init(args: argparse.Namespace) -> int:
	"""Write a default config file."""
	target = Path(args.path).expanduser().resolve() if args.path else config_dir()
	config_path = target / CONFIG_FILENAME
	if config_path.exists():
		print(f"Config already exists: {config_path}")
		return 1

	target.mkdir(parents=True, exist_ok=True)
	config_path.write_text(INIT_TEMPLATE.format(db_path=str(target / "mimir.db")))
	print(f"Created {config_path}")
	return 0


def cmd_validate_config(args: argparse.Namespace) -> int:
	"""Validate config file semantically."""
	config = _load(args)
	issues = validate_config(config)

	errors = [(lvl, msg) for lvl, msg in issues if lvl == "error"]
	warnings = [(lvl, msg) for lvl, msg in issues if lvl == "warning"]

	for level, msg in issues:
		print(f"[{level.upper()}] {msg}")

	if not issues:
		print("Config OK")

	print(f"\n{len(errors)} error(s), {len(warnings)} warning(s)")
	return 1 if errors else 0


def cmd_projects_list(args: argparse.Namespace) -> int:
	with Container.from_config(_load(args)) as container:
		projects = container.projects.list()
		if not projects:
			print("No projects registered.")
			print("Use 'mimir projects add <path>' to register a project.")
			return 0

		print("Registered Projects:")
		for i, p in enumerate(projects, start=1):
			print(f"  {i}. {p.name} [{p.project_type or '-'}] port={p.opencode_port}")
			print(f"     Path: {p.path}")
		return 0


def cmd_projects_add(args: argparse.Namespace) -> int:
	"""Register a project directory."""
	path = Path(args.path).expanduser().resolve()
	if not path.is_dir():
		print(f"Error: not a directory: {path}")
		return 1

	with Container.from_config(_load(args)) as container:
		name = args.name or path.name
		if container.projects.get_by_name(name) is not None:
			print(f"Error: project '{name}' is already registered")
			return 1
		project = Project(
			name=name,
			path=str(path),
			opencode_port=args.port or container.projects.next_free_port(),
			project_type=args.project_type or detect_project_type(path).value,
		)
		container.projects.create(project)
		print(f"Registered '{project.name}' -> {project.path} (port {project.opencode_port})")
		return 0


def cmd_projects_remove(args: argparse.Namespace) -> int:
	with Container.from_config(_load(args)) as container:
		project = container.projects.get_by_name(args.name)
		if project is None:
			print(f"Project '{args.name}' not found")
			return 1
		container.projects.delete(project.id)
		remaining = len(container.sessions.list_by_project(project.id))
		print(f"Removed '{args.name}'")
		if remaining:
			print(f"  {remaining} session(s) still reference project id {project.id}")
		return 0


def cmd_projects_sync(args: argparse.Namespace) -> int:
	with Container.from_config(_load(args)) as container:
		created = sync_configured_projects(container)
		for p in created:
			print(f"Registered '{p.name}' -> {p.path}")
		print(f"{len(created)} project(s) added")
		return 0


def cmd_sessions_list(args: argparse.Namespace) -> int:
	with Container.from_config(_load(args)) as container:
		if args.project:
			project = container.projects.get_by_name(args.project)
			if project is None:
				print(f"Project '{args.project}' not found")
				return 1
			sessions = container.sessions.list_by_project(project.id)
		else:
			sessions = container.sessions.list()

		if not sessions:
			print("No sessions yet.")
			return 0
		for s in sessions:
			branch = f" branch={s.branch_name}" if s.branch_name else ""
			print(f"[{s.status}] {s.id} | {s.agent_type} | project={s.project_id}{branch}")
		return 0


def cmd_sessions_create(args: argparse.Namespace) -> int:
	with Container.from_config(_load(args)) as container:
		project = container.projects.get_by_name(args.project)
		if project is None:
			print(f"Project '{args.project}' not found")
			return 1
		session = container.sessions.create(Session(
			project_id=project.id,
			agent_type=args.agent_type,
			branch_name=args.branch,
			worktree_path=args.worktree,
		))
		print(f"Created session {session.id} [{session.status}]")
		return 0


def cmd_sessions_set_status(args: argparse.Namespace) -> int:
	with Container.from_config(_load(args)) as container:
		try:
			session = container.sessions.transition(args.session_id, args.status)
		except InvalidTransitionError as e:
			print(f"Error: {e}")
			return 1
		if session is None:
			print(f"Session '{args.session_id}' not found")
			return 1
		print(f"Session {session.id} is now {session.status}")
		return 0


def cmd_sessions_delete(args: argparse.Namespace) -> int:
	with Container.from_config(_load(args)) as container:
		if container.sessions.get(args.session_id) is None:
			print(f"Session '{args.session_id}' not found")
			return 1
		container.sessions.delete(args.session_id)
		print(f"Deleted session {args.session_id}")
		return 0


COMMANDS = {
	"serve": cmd_serve,
	"status": cmd_status,
	"init": cmd_init,
	"validate-config": cmd_validate_config,
	"projects list": cmd_projects_list,
	"projects add": cmd_projects_add,
	"projects remove": cmd_projects_remove,
	"projects sync": cmd_projects_sync,
	"sessions list": cmd_sessions_list,
	"sessions create": cmd_sessions_create,
	"sessions set-status": cmd_sessions_set_status,
	"sessions delete": cmd_sessions_delete,
}


def _command_key(args: argparse.Namespace) -> str | None:
	if args.command == "projects":
		sub = getattr(args, "projects_command", None)
		return f"projects {sub}" if sub else None
	if args.command == "sessions":
		sub = getattr(args, "sessions_command", None)
		return f"sessions {sub}" if sub else None
	return args.command


def main(argv: list[str] | None = None) -> int:
	logging.basicConfig(
		level=logging.INFO,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		force=True,
	)
	parser = build_parser()
	args = parser.parse_args(argv)

	if args.command is None:
		parser.print_help()
		return 0

	key = _command_key(args)
	if key is None:
		args.print_group_help()
		return 0

	handler = COMMANDS.get(key)
	if handler is None:
		print(f"Unknown command: {key}")
		return 1

	try:
		return handler(args)
	except FileNotFoundError as e:
		print(f"Error: {e}")
		return 1
	except StoreError as e:
		logger.error("%s failed: %s", key, e)
		print(f"Error: {e}")
		return 1
	except MimirError as e:
		print(f"Error: {e}")
		return 1


if __name__ == "__main__":
	sys.exit(main())
