from __future__ import annotations

import logging

from . import actions as a
from .config import MAX_UNDO_HISTORY
from .machine import reduce_session
from .schemas import AppState

log = logging.getLogger(__name__)


def reduce_app(
	state: AppState, action: a.Action, history_limit: int = MAX_UNDO_HISTORY
) -> AppState:
	"""Apply one action to the whole session collection.

	Session actions are routed by ``session_id``; an id that no longer exists
	(for instance a parse result arriving after the session was deleted) leaves
	the state untouched.
	"""
	if isinstance(action, a.LoadSessions):
		return action.state

	if isinstance(action, a.ResetApp):
		return AppState()

	if isinstance(action, a.AddSessions):
		return state.model_copy(
			update={
				"sessions": [*state.sessions, *action.sessions],
				"active_session_id": action.make_active_id,
			}
		)

	if isinstance(action, a.SwitchSession):
		if state.get(action.session_id) is None:
			return state
		return state.model_copy(update={"active_session_id": action.session_id})

	if isinstance(action, a.GoHome):
		return state.model_copy(update={"active_session_id": None})

	if isinstance(action, a.DeleteSession):
		sessions = [s for s in state.sessions if s.id != action.session_id]
		active = state.active_session_id
		if active == action.session_id:
			active = sessions[0].id if sessions else None
		return AppState(sessions=sessions, active_session_id=active)

	target = state.get(action.session_id)
	if target is None:
		log.debug(
			"action for unknown session dropped",
			extra={"session_id": action.session_id, "action": action.type},
		)
		return state

	updated = reduce_session(target, action, history_limit)
	if updated is target:
		return state
	return state.model_copy(
		update={
			"sessions": [updated if s.id == target.id else s for s in state.sessions]
		}
	)
