from __future__ import annotations

from .config import MAX_UNDO_HISTORY
from .schemas import Assignments


def snapshot(assignments: Assignments) -> Assignments:
	return {item_id: list(names) for item_id, names in assignments.items()}


def push_history(
	history: list[Assignments],
	assignments: Assignments,
	limit: int = MAX_UNDO_HISTORY,
) -> list[Assignments]:
	"""Return a new history with ``assignments`` on top, oldest entries evicted past ``limit``."""
	out = [*history, snapshot(assignments)]
	if len(out) > limit:
		out = out[len(out) - limit:]
	return out


def pop_history(
	history: list[Assignments],
) -> tuple[Assignments | None, list[Assignments]]:
	"""Return ``(previous, remaining)``; ``previous`` is None when there is nothing to undo."""
	if not history:
		return None, history
	return snapshot(history[-1]), history[:-1]
