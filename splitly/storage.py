from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError

from .schemas import AppState

log = logging.getLogger(__name__)


class StateStore(Protocol):
	def load(self) -> AppState: ...
	def save(self, state: AppState) -> None: ...


class MemoryStateStore:
	def __init__(self, state: AppState | None = None) -> None:
		self._state = state or AppState()

	def load(self) -> AppState:
		return self._state

	def save(self, state: AppState) -> None:
		self._state = state


class JsonStateStore:
	"""Keeps the whole ``AppState`` in one JSON file, rewritten on every change."""

	def __init__(self, path: str | os.PathLike) -> None:
		self.path = Path(path)

	def load(self) -> AppState:
		if not self.path.exists():
			return AppState()
		try:
			return AppState.model_validate_json(self.path.read_bytes())
		except (OSError, UnicodeDecodeError, PydanticValidationError) as exc:
			log.warning(
				"failed to load saved sessions, starting empty",
				extra={"path": str(self.path), "error": str(exc)},
			)
			return AppState()

	def save(self, state: AppState) -> None:
		if not state.sessions and state.active_session_id is None:
			self.path.unlink(missing_ok=True)
			return
		self.path.parent.mkdir(parents=True, exist_ok=True)
		tmp = self.path.with_suffix(self.path.suffix + ".tmp")
		tmp.write_text(state.model_dump_json(), encoding="utf-8")
		os.replace(tmp, self.path)
		log.debug("saved sessions", extra={"path": str(self.path), "sessions": len(state.sessions)})


def open_store(path: str | None) -> StateStore:
	return JsonStateStore(path) if path else MemoryStateStore()
