"""Tagged actions consumed by the session and container reducers.

Every action is a small pydantic model with a literal ``type`` so the union can
be decoded straight from JSON at the transport boundary.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing_extensions import Annotated

from .schemas import AppState, AssignmentUpdate, ParsedReceipt, ReceiptSession


class _Action(BaseModel):
	model_config = ConfigDict(frozen=True)


class _SessionAction(_Action):
	session_id: str


# container-level


class LoadSessions(_Action):
	type: Literal["load_sessions"] = "load_sessions"
	state: AppState


class AddSessions(_Action):
	type: Literal["add_sessions"] = "add_sessions"
	sessions: list[ReceiptSession]
	make_active_id: str | None = None


class SwitchSession(_Action):
	type: Literal["switch_session"] = "switch_session"
	session_id: str


class DeleteSession(_Action):
	type: Literal["delete_session"] = "delete_session"
	session_id: str


class GoHome(_Action):
	type: Literal["go_home"] = "go_home"


class ResetApp(_Action):
	type: Literal["reset_app"] = "reset_app"


# lifecycle


class SetSessionImage(_SessionAction):
	type: Literal["set_session_image"] = "set_session_image"
	image: str


class SubmitForParsing(_SessionAction):
	type: Literal["submit_for_parsing"] = "submit_for_parsing"


class ParseSucceeded(_SessionAction):
	type: Literal["parse_succeeded"] = "parse_succeeded"
	receipt: ParsedReceipt


class ParseFailed(_SessionAction):
	type: Literal["parse_failed"] = "parse_failed"
	message: str


class SetPeople(_SessionAction):
	type: Literal["set_people"] = "set_people"
	user_input: str


class SendMessageStart(_SessionAction):
	type: Literal["send_message_start"] = "send_message_start"
	message: str


class SendMessageSuccess(_SessionAction):
	type: Literal["send_message_success"] = "send_message_success"
	update: AssignmentUpdate


class SendMessageError(_SessionAction):
	type: Literal["send_message_error"] = "send_message_error"
	message: str


# assignment edits


class DirectAssignment(_SessionAction):
	type: Literal["direct_assignment"] = "direct_assignment"
	item_id: str
	names: list[str]


class SetQuantitySplit(_SessionAction):
	type: Literal["set_quantity_split"] = "set_quantity_split"
	item_id: str
	quantities: dict[str, Annotated[int, Field(ge=0)]]


class AssignAllUnassigned(_SessionAction):
	type: Literal["assign_all_unassigned"] = "assign_all_unassigned"
	person_name: str


class SplitAllEqually(_SessionAction):
	type: Literal["split_all_equally"] = "split_all_equally"


class SplitItemEvenly(_SessionAction):
	type: Literal["split_item_evenly"] = "split_item_evenly"
	item_id: str


class ClearItemAssignment(_SessionAction):
	type: Literal["clear_item_assignment"] = "clear_item_assignment"
	item_id: str


class Undo(_SessionAction):
	type: Literal["undo"] = "undo"


# structural edits


class EditPersonName(_SessionAction):
	type: Literal["edit_person_name"] = "edit_person_name"
	old_name: str
	new_name: str


class EditItem(_SessionAction):
	type: Literal["edit_item"] = "edit_item"
	item_id: str
	name: str
	price: float


class AddItem(_SessionAction):
	type: Literal["add_item"] = "add_item"
	name: str
	price: float
	quantity: Annotated[int, Field(ge=1)] = 1


class DeleteItem(_SessionAction):
	type: Literal["delete_item"] = "delete_item"
	item_id: str


class EditTotals(_SessionAction):
	type: Literal["edit_totals"] = "edit_totals"
	subtotal: float
	tax: float
	tip: float


class ClearChatHistory(_SessionAction):
	type: Literal["clear_chat_history"] = "clear_chat_history"


SessionAction = Union[
	SetSessionImage,
	SubmitForParsing,
	ParseSucceeded,
	ParseFailed,
	SetPeople,
	SendMessageStart,
	SendMessageSuccess,
	SendMessageError,
	DirectAssignment,
	SetQuantitySplit,
	AssignAllUnassigned,
	SplitAllEqually,
	SplitItemEvenly,
	ClearItemAssignment,
	Undo,
	EditPersonName,
	EditItem,
	AddItem,
	DeleteItem,
	EditTotals,
	ClearChatHistory,
]

ContainerAction = Union[
	LoadSessions,
	AddSessions,
	SwitchSession,
	DeleteSession,
	GoHome,
	ResetApp,
]

Action = Annotated[
	Union[ContainerAction, SessionAction], Field(discriminator="type")
]

action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(data: dict | str | bytes) -> Action:
	if isinstance(data, (str, bytes)):
		return action_adapter.validate_json(data)
	return action_adapter.validate_python(data)
