"""Mimir exception hierarchy."""

from __future__ import annotations


class MimirError(Exception):
	"""Base exception for all Mimir errors."""


class ConfigError(MimirError):
	"""Raised when the configuration file cannot be read or parsed."""


class StoreError(MimirError):
	"""Base for failures raised by the persistent store."""


class StoreConnectionError(StoreError):
	"""Raised when the store cannot be opened (bad path, directory, or key)."""


class SchemaError(StoreError):
	"""Raised when a migration statement fails."""


class ConstraintError(StoreError):
	"""Raised on a uniqueness or referential-integrity violation."""


class BusyError(StoreError):
	"""Raised when a lock could not be acquired within the busy timeout."""


class InvalidTransitionError(MimirError):
	"""Raised when a session status change is not in the allow-list."""

	def __init__(self, current: str, target: str) -> None:
		super().__init__(f"Cannot move session from '{current}' to '{target}'")
		self.current = current
		self.target = target
