"""TOML configuration loader for the Mimir gateway."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mimir.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.toml"
DEFAULT_CONFIG_DIR = "~/.mimir"
DEFAULT_DB_PATH = "~/.mimir/mimir.db"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"

ENV_CONFIG = "MIMIR_CONFIG"
ENV_CONFIG_DIR = "MIMIR_CONFIG_DIR"
ENV_DB_KEY = "MIMIR_DB_KEY"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class ServerConfig:
	"""HTTP and WebSocket listener settings."""

	host: str = "127.0.0.1"
	http_port: int = 8080
	ws_port: int = 8081


@dataclass
class DatabaseConfig:
	"""Store location and encryption settings."""

	path: str = DEFAULT_DB_PATH
	encryption_key: str = ""
	busy_timeout_ms: int = 5000

	@property
	def resolved_path(self) -> Path:
		return Path(os.path.expanduser(self.path))


@dataclass
class OpencodeConfig:
	"""Defaults passed to opencode agent instances."""

	default_model: str = DEFAULT_MODEL


@dataclass
class LoggingConfig:
	level: str = "INFO"


@dataclass
class ProjectConfig:
	"""A project declared in the config file."""

	name: str = ""
	path: str = ""
	opencode_port: int = 0


@dataclass
class SentryProjectMap:
	"""Maps a Sentry project to a Mimir project."""

	sentry_project: str = ""
	mimir_project: str = ""


@dataclass
class SentryWebhookConfig:
	secret: str = ""
	projects: list[SentryProjectMap] = field(default_factory=list)


@dataclass
class WebhooksConfig:
	sentry: SentryWebhookConfig = field(default_factory=SentryWebhookConfig)


@dataclass
class CronJob:
	"""A scheduled action against a project."""

	name: str = ""
	schedule: str = ""
	project: str = ""
	action: str = ""


@dataclass
class MimirConfig:
	"""Top-level Mimir configuration."""

	server: ServerConfig = field(default_factory=ServerConfig)
	database: DatabaseConfig = field(default_factory=DatabaseConfig)
	opencode: OpencodeConfig = field(default_factory=OpencodeConfig)
	logging: LoggingConfig = field(default_factory=LoggingConfig)
	projects: list[ProjectConfig] = field(default_factory=list)
	webhooks: WebhooksConfig = field(default_factory=WebhooksConfig)
	cron: list[CronJob] = field(default_factory=list)


def config_dir() -> Path:
	"""Directory holding the config file, from $MIMIR_CONFIG_DIR or ~/.mimir."""
	return Path(os.path.expanduser(os.environ.get(ENV_CONFIG_DIR) or DEFAULT_CONFIG_DIR))


def default_config_path() -> Path:
	env_path = os.environ.get(ENV_CONFIG)
	if env_path:
		return Path(os.path.expanduser(env_path))
	return config_dir() / CONFIG_FILENAME


def _build_server(data: dict[str, Any]) -> ServerConfig:
	sc = ServerConfig()
	if "host" in data:
		sc.host = str(data["host"])
	if "http_port" in data:
		sc.http_port = int(data["http_port"])
	if "ws_port" in data:
		sc.ws_port = int(data["ws_port"])
	return sc


def _build_database(data: dict[str, Any]) -> DatabaseConfig:
	dc = DatabaseConfig()
	if "path" in data:
		dc.path = str(data["path"])
	if "encryption_key" in data:
		dc.encryption_key = str(data["encryption_key"])
	if "busy_timeout_ms" in data:
		dc.busy_timeout_ms = int(data["busy_timeout_ms"])
	return dc


def _build_opencode(data: dict[str, Any]) -> OpencodeConfig:
	oc = OpencodeConfig()
	if data.get("default_model"):
		oc.default_model = str(data["default_model"])
	return oc


def _build_logging(data: dict[str, Any]) -> LoggingConfig:
	lc = LoggingConfig()
	if "level" in data:
		lc.level = str(data["level"]).upper()
	return lc


def _build_projects(data: list[dict[str, Any]]) -> list[ProjectConfig]:
	projects: list[ProjectConfig] = []
	for item in data:
		pc = ProjectConfig()
		for key in ("name", "path"):
			if key in item:
				setattr(pc, key, str(item[key]))
		if "opencode_port" in item:
			pc.opencode_port = int(item["opencode_port"])
		projects.append(pc)
	return projects


def _build_webhooks(data: dict[str, Any]) -> WebhooksConfig:
	wc = WebhooksConfig()
	sentry = data.get("sentry", {})
	if "secret" in sentry:
		wc.sentry.secret = str(sentry["secret"])
	for item in sentry.get("projects", []):
		wc.sentry.projects.append(SentryProjectMap(
			sentry_project=str(item.get("sentry_project", "")),
			mimir_project=str(item.get("mimir_project", "")),
		))
	return wc


def _build_cron(data: list[dict[str, Any]]) -> list[CronJob]:
	jobs: list[CronJob] = []
	for item in data:
		job = CronJob()
		for key in ("name", "schedule", "project", "action"):
			if key in item:
				setattr(job, key, str(item[key]))
		jobs.append(job)
	return jobs


def load_config(path: str | Path | None = None) -> MimirConfig:
	"""Load the Mimir TOML config.

	Args:
		path: Explicit config file. When omitted, $MIMIR_CONFIG or
			~/.mimir/config.toml is used and a missing file yields defaults.

	Returns:
		Parsed MimirConfig.

	Raises:
		FileNotFoundError: If an explicit config path doesn't exist.
		ConfigError: If the file is not valid TOML or has wrongly typed values.
	"""
	if path is not None:
		config_path = Path(os.path.expanduser(str(path)))
		if not config_path.exists():
			raise FileNotFoundError(f"Config file not found: {config_path}")
	else:
		config_path = default_config_path()

	if config_path.exists():
		try:
			with open(config_path, "rb") as f:
				data = tomllib.load(f)
		except tomllib.TOMLDecodeError as exc:
			raise ConfigError(f"Failed to parse config {config_path}: {exc}") from exc
		logger.debug("Loaded config from %s", config_path)
	else:
		logger.debug("No config at %s, using defaults", config_path)
		data = {}

	mc = MimirConfig()
	try:
		if "server" in data:
			mc.server = _build_server(data["server"])
		if "database" in data:
			mc.database = _build_database(data["database"])
		if "opencode" in data:
			mc.opencode = _build_opencode(data["opencode"])
		if "logging" in data:
			mc.logging = _build_logging(data["logging"])
		if "projects" in data:
			mc.projects = _build_projects(data["projects"])
		if "webhooks" in data:
			mc.webhooks = _build_webhooks(data["webhooks"])
		if "cron" in data:
			mc.cron = _build_cron(data["cron"])
	except (TypeError, ValueError, AttributeError) as exc:
		raise ConfigError(f"Invalid value in config {config_path}: {exc}") from exc

	# Key from the environment when the file leaves it empty
	if not mc.database.encryption_key:
		mc.database.encryption_key = os.environ.get(ENV_DB_KEY, "")
	return mc


def _valid_port(port: int) -> bool:
	return 0 < port <= 65535


def validate_config(config: MimirConfig) -> list[tuple[str, str]]:
	"""Perform semantic validation of a loaded MimirConfig.

	Returns a list of (level, message) tuples where level is 'error' or 'warning'.
	"""
	issues: list[tuple[str, str]] = []

	if not _valid_port(config.server.http_port):
		issues.append(("error", f"invalid HTTP port: {config.server.http_port}"))
	if not _valid_port(config.server.ws_port):
		issues.append(("error", f"invalid WebSocket port: {config.server.ws_port}"))

	if not config.database.path:
		issues.append(("error", "database path is required"))
	if config.database.busy_timeout_ms <= 0:
		issues.append(("warning", f"busy_timeout_ms is not positive: {config.database.busy_timeout_ms}"))
	if not config.database.encryption_key:
		issues.append(("warning", f"no encryption key configured (set {ENV_DB_KEY}); database is unencrypted"))

	if config.logging.level not in _LOG_LEVELS:
		issues.append(("error", f"unknown logging level: {config.logging.level}"))

	seen: set[str] = set()
	for project in config.projects:
		if not project.name:
			issues.append(("error", "project name is required"))
		elif project.name in seen:
			issues.append(("error", f"duplicate project name: {project.name}"))
		else:
			seen.add(project.name)
		if not project.path:
			issues.append(("error", f"project path is required: {project.name or '<unnamed>'}"))
		if project.opencode_port and not _valid_port(project.opencode_port):
			issues.append(("error", f"invalid opencode port for {project.name}: {project.opencode_port}"))

	for mapping in config.webhooks.sentry.projects:
		if mapping.mimir_project not in seen:
			issues.append(("warning", f"sentry mapping names unknown project: {mapping.mimir_project}"))

	for job in config.cron:
		if job.project and job.project not in seen:
			issues.append(("warning", f"cron job '{job.name}' names unknown project: {job.project}"))

	return issues
