"""Session lifecycle transitions.

``reduce_session`` is a pure function: it takes one immutable ``ReceiptSession``
and an action and returns the next session value. Input validation is the
caller's job; actions that reference an unknown item, or arrive in a status
that cannot accept them, leave the session unchanged.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from . import actions as a
from .config import MAX_UNDO_HISTORY
from .errors import NOT_A_RECEIPT_MESSAGE
from .formatting import (
	format_assignment_message,
	format_assignment_update_message,
	format_quantity_split_message,
)
from .history import pop_history, push_history
from .schemas import (
	Assignments,
	ChatMessage,
	ParsedReceipt,
	ReceiptItem,
	ReceiptSession,
	Status,
)

log = logging.getLogger(__name__)

NAMES_PROMPT = (
	"I've analyzed the receipt! First, tell me who is splitting the bill. "
	"Please enter their names separated by commas (e.g., Alice, Bob, Charlie)."
)

# statuses in which assignments may change
EDITABLE = frozenset({Status.READY, Status.ASSIGNING})

Handler = Callable[[ReceiptSession, Any, int], ReceiptSession]
_HANDLERS: dict[type, Handler] = {}


def _handles(action_type: type) -> Callable[[Handler], Handler]:
	def register(fn: Handler) -> Handler:
		_HANDLERS[action_type] = fn
		return fn

	return register


def reduce_session(
	session: ReceiptSession,
	action: a.SessionAction,
	history_limit: int = MAX_UNDO_HISTORY,
) -> ReceiptSession:
	handler = _HANDLERS.get(type(action))
	if handler is None:
		log.debug("no session transition for %s", type(action).__name__)
		return session
	return handler(session, action, history_limit)


def parse_names(raw: str) -> list[str]:
	"""Split comma separated input into trimmed, non-empty, unique names."""
	names = (part.strip() for part in raw.split(","))
	return list(dict.fromkeys(n for n in names if n))


def _union(existing: list[str], extra: list[str]) -> list[str]:
	return list(dict.fromkeys([*existing, *extra]))


def _chat(session: ReceiptSession, *messages: ChatMessage) -> list[ChatMessage]:
	return [*session.chat_history, *messages]


def _system(text: str) -> ChatMessage:
	return ChatMessage(sender="system", text=text)


def _bot(text: str) -> ChatMessage:
	return ChatMessage(sender="bot", text=text)


def _user(text: str) -> ChatMessage:
	return ChatMessage(sender="user", text=text)


def _item(session: ReceiptSession, item_id: str) -> ReceiptItem | None:
	if session.parsed_receipt is None:
		return None
	return session.parsed_receipt.find_item(item_id)


def _commit(
	session: ReceiptSession, assignments: Assignments, message: str, limit: int
) -> ReceiptSession:
	"""Replace the assignment map, remembering the previous one for undo."""
	return session.model_copy(
		update={
			"assignments": assignments,
			"assignments_history": push_history(
				session.assignments_history, session.assignments, limit
			),
			"chat_history": _chat(session, _system(message)),
		}
	)


def _replace_receipt(session: ReceiptSession, **changes) -> ReceiptSession:
	receipt = session.parsed_receipt.model_copy(update=changes)
	return session.model_copy(update={"parsed_receipt": receipt})


# lifecycle


@_handles(a.SetSessionImage)
def _set_image(session: ReceiptSession, action: a.SetSessionImage, limit: int):
	return session.model_copy(update={"receipt_image": action.image})


@_handles(a.SubmitForParsing)
def _submit(session: ReceiptSession, action: a.SubmitForParsing, limit: int):
	notice = "Re-parsing receipt..." if session.status == Status.ERROR else "Parsing receipt..."
	return session.model_copy(
		update={
			"status": Status.PARSING,
			"error_message": None,
			"chat_history": [_system(notice)],
		}
	)


def _fail(session: ReceiptSession, message: str) -> ReceiptSession:
	return session.model_copy(
		update={
			"status": Status.ERROR,
			"error_message": message,
			"chat_history": [_system(f"Receipt parsing failed: {message}")],
		}
	)


@_handles(a.ParseSucceeded)
def _parsed(session: ReceiptSession, action: a.ParseSucceeded, limit: int):
	if session.status != Status.PARSING:
		log.debug("late parse result ignored", extra={"session_id": session.id})
		return session
	if not action.receipt.items:
		return _fail(session, NOT_A_RECEIPT_MESSAGE)
	return session.model_copy(
		update={
			"status": Status.AWAITING_NAMES,
			"error_message": None,
			"parsed_receipt": action.receipt,
			"assignments": {item.id: [] for item in action.receipt.items},
			"quantity_assignments": {},
			"assignments_history": [],
			"chat_history": [_bot(NAMES_PROMPT)],
		}
	)


@_handles(a.ParseFailed)
def _parse_failed(session: ReceiptSession, action: a.ParseFailed, limit: int):
	if session.status != Status.PARSING:
		log.debug("late parse failure ignored", extra={"session_id": session.id})
		return session
	return _fail(session, action.message)


@_handles(a.SetPeople)
def _set_people(session: ReceiptSession, action: a.SetPeople, limit: int):
	names = parse_names(action.user_input)
	if not names or session.parsed_receipt is None:
		return session
	people = _union(session.people, names)
	ack = (
		f"Got it! I've added {', '.join(people)}. Now you can tell me who had what, "
		"or click on items to assign them directly."
	)
	return session.model_copy(
		update={
			"status": (
				Status.ASSIGNING if session.status == Status.ASSIGNING else Status.READY
			),
			"people": people,
			"chat_history": _chat(session, _user(action.user_input), _bot(ack)),
		}
	)


@_handles(a.SendMessageStart)
def _send_start(session: ReceiptSession, action: a.SendMessageStart, limit: int):
	if session.status not in EDITABLE:
		return session
	return session.model_copy(
		update={
			"status": Status.ASSIGNING,
			"chat_history": _chat(session, _user(action.message)),
		}
	)


def _changed_item_names(
	receipt: ParsedReceipt | None, old: Assignments, new: Assignments
) -> list[str]:
	if receipt is None:
		return []
	changed = []
	for item_id in dict.fromkeys([*old, *new]):
		if set(old.get(item_id, [])) == set(new.get(item_id, [])):
			continue
		item = receipt.find_item(item_id)
		if item is not None:
			changed.append(item.name)
	return changed


@_handles(a.SendMessageSuccess)
def _send_success(session: ReceiptSession, action: a.SendMessageSuccess, limit: int):
	if session.status not in EDITABLE:
		log.debug("late assignment result ignored", extra={"session_id": session.id})
		return session
	new = {item_id: list(names) for item_id, names in action.update.new_assignments.items()}
	messages = [_bot(action.update.bot_response)]
	changed = _changed_item_names(session.parsed_receipt, session.assignments, new)
	if changed:
		messages.append(_system(format_assignment_update_message(changed)))
	assignees = [name for names in new.values() for name in names]
	return session.model_copy(
		update={
			"status": Status.READY,
			"assignments": new,
			"assignments_history": push_history(
				session.assignments_history, session.assignments, limit
			),
			"people": _union(session.people, assignees),
			"chat_history": _chat(session, *messages),
		}
	)


@_handles(a.SendMessageError)
def _send_error(session: ReceiptSession, action: a.SendMessageError, limit: int):
	if session.status not in EDITABLE:
		return session
	return session.model_copy(
		update={
			"status": Status.READY,
			"chat_history": _chat(session, _system(f"Error: {action.message}")),
		}
	)


# assignment edits


@_handles(a.DirectAssignment)
def _direct(session: ReceiptSession, action: a.DirectAssignment, limit: int):
	item = _item(session, action.item_id)
	if item is None or session.status not in EDITABLE:
		return session
	names = list(dict.fromkeys(action.names))
	assignments = {**session.assignments, item.id: names}
	return _commit(session, assignments, format_assignment_message(item.name, names), limit)


@_handles(a.SetQuantitySplit)
def _quantity_split(session: ReceiptSession, action: a.SetQuantitySplit, limit: int):
	item = _item(session, action.item_id)
	if item is None or session.status not in EDITABLE:
		return session
	split = {name: qty for name, qty in action.quantities.items() if qty > 0}
	quantity_assignments = {
		k: v for k, v in session.quantity_assignments.items() if k != item.id
	}
	if split:
		quantity_assignments[item.id] = split
	return session.model_copy(
		update={
			"quantity_assignments": quantity_assignments,
			"chat_history": _chat(
				session, _system(format_quantity_split_message(item.name, split))
			),
		}
	)


@_handles(a.AssignAllUnassigned)
def _assign_unassigned(session: ReceiptSession, action: a.AssignAllUnassigned, limit: int):
	if session.parsed_receipt is None or session.status not in EDITABLE:
		return session
	assignments = dict(session.assignments)
	count = 0
	for item in session.parsed_receipt.items:
		if not assignments.get(item.id):
			assignments[item.id] = [action.person_name]
			count += 1
	if count == 0:
		return session.model_copy(
			update={
				"chat_history": _chat(
					session, _system("There were no unassigned items to assign.")
				)
			}
		)
	message = f"Assigned the remaining {count} items to {action.person_name}."
	return _commit(session, assignments, message, limit)


@_handles(a.SplitAllEqually)
def _split_all(session: ReceiptSession, action: a.SplitAllEqually, limit: int):
	if session.parsed_receipt is None or not session.people or session.status not in EDITABLE:
		return session
	assignments = {item.id: list(session.people) for item in session.parsed_receipt.items}
	message = f"Split all items equally between {len(session.people)} people."
	return _commit(session, assignments, message, limit)


@_handles(a.SplitItemEvenly)
def _split_item(session: ReceiptSession, action: a.SplitItemEvenly, limit: int):
	item = _item(session, action.item_id)
	if item is None or not session.people or session.status not in EDITABLE:
		return session
	assignments = {**session.assignments, item.id: list(session.people)}
	return _commit(session, assignments, f"Split {item.name} evenly amongst everyone.", limit)


@_handles(a.ClearItemAssignment)
def _clear_item(session: ReceiptSession, action: a.ClearItemAssignment, limit: int):
	item = _item(session, action.item_id)
	if item is None or session.status not in EDITABLE:
		return session
	assignments = {**session.assignments, item.id: []}
	return _commit(session, assignments, f"Cleared assignment for {item.name}.", limit)


@_handles(a.Undo)
def _undo(session: ReceiptSession, action: a.Undo, limit: int):
	if session.status not in EDITABLE:
		return session
	previous, history = pop_history(session.assignments_history)
	if previous is None:
		return session
	return session.model_copy(
		update={
			"assignments": previous,
			"assignments_history": history,
			"chat_history": _chat(session, _system("Undid the last assignment action.")),
		}
	)


# structural edits, never recorded for undo


def _relabel(names: list[str], old: str, new: str) -> list[str]:
	return [new if name == old else name for name in names]


def _relabel_map(assignments: Assignments, old: str, new: str) -> Assignments:
	return {item_id: _relabel(names, old, new) for item_id, names in assignments.items()}


@_handles(a.EditPersonName)
def _rename(session: ReceiptSession, action: a.EditPersonName, limit: int):
	old, new = action.old_name, action.new_name
	quantity_assignments = {}
	for item_id, split in session.quantity_assignments.items():
		relabelled: dict[str, int] = {}
		for name, qty in split.items():
			key = new if name == old else name
			relabelled[key] = relabelled.get(key, 0) + qty
		quantity_assignments[item_id] = relabelled
	return session.model_copy(
		update={
			"people": _relabel(session.people, old, new),
			"assignments": _relabel_map(session.assignments, old, new),
			"quantity_assignments": quantity_assignments,
			"assignments_history": [
				_relabel_map(entry, old, new) for entry in session.assignments_history
			],
		}
	)


@_handles(a.EditItem)
def _edit_item(session: ReceiptSession, action: a.EditItem, limit: int):
	if _item(session, action.item_id) is None:
		return session
	items = [
		item.model_copy(update={"name": action.name, "price": action.price})
		if item.id == action.item_id
		else item
		for item in session.parsed_receipt.items
	]
	return _replace_receipt(session, items=items)


def next_item_id(items: list[ReceiptItem]) -> str:
	taken = {item.id for item in items}
	candidate = f"item-{len(items) + 1}"
	suffix = 1
	while candidate in taken:
		candidate = f"item-{len(items) + 1}-{suffix}"
		suffix += 1
	return candidate


@_handles(a.AddItem)
def _add_item(session: ReceiptSession, action: a.AddItem, limit: int):
	if session.parsed_receipt is None:
		return session
	items = session.parsed_receipt.items
	item = ReceiptItem(
		id=next_item_id(items),
		name=action.name,
		quantity=action.quantity,
		price=action.price,
	)
	session = _replace_receipt(session, items=[*items, item])
	return session.model_copy(
		update={"assignments": {**session.assignments, item.id: []}}
	)


@_handles(a.DeleteItem)
def _delete_item(session: ReceiptSession, action: a.DeleteItem, limit: int):
	if _item(session, action.item_id) is None:
		return session
	items = [i for i in session.parsed_receipt.items if i.id != action.item_id]
	session = _replace_receipt(session, items=items)
	return session.model_copy(
		update={
			"assignments": {
				k: v for k, v in session.assignments.items() if k != action.item_id
			},
			"quantity_assignments": {
				k: v for k, v in session.quantity_assignments.items() if k != action.item_id
			},
		}
	)


@_handles(a.EditTotals)
def _edit_totals(session: ReceiptSession, action: a.EditTotals, limit: int):
	if session.parsed_receipt is None:
		return session
	return _replace_receipt(
		session, subtotal=action.subtotal, tax=action.tax, tip=action.tip
	)


@_handles(a.ClearChatHistory)
def _clear_chat(session: ReceiptSession, action: a.ClearChatHistory, limit: int):
	return session.model_copy(update={"chat_history": [_system("Chat history cleared.")]})
