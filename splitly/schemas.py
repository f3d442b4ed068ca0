from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

ItemId = str
Assignments = dict[ItemId, list[str]]
QuantityAssignments = dict[ItemId, dict[str, Annotated[int, Field(ge=0)]]]


class Status(str, Enum):
	PARSING = "parsing"
	AWAITING_NAMES = "awaiting_names"
	READY = "ready"
	ASSIGNING = "assigning"
	ERROR = "error"


class ReceiptItem(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: ItemId
	name: str
	quantity: Annotated[int, Field(ge=1)] = 1
	price: float  # line total, not unit price


class ParsedReceipt(BaseModel):
	model_config = ConfigDict(frozen=True)

	items: list[ReceiptItem] = Field(default_factory=list)
	subtotal: float = 0.0
	tax: float = 0.0
	tip: float = 0.0

	def find_item(self, item_id: ItemId) -> ReceiptItem | None:
		for item in self.items:
			if item.id == item_id:
				return item
		return None


class ChatMessage(BaseModel):
	model_config = ConfigDict(frozen=True)

	sender: Literal["user", "bot", "system"]
	text: str


class ReceiptSession(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: str
	name: str
	status: Status = Status.PARSING
	error_message: Optional[str] = None
	parsed_receipt: Optional[ParsedReceipt] = None
	receipt_image: Optional[str] = None  # data URL
	assignments: Assignments = Field(default_factory=dict)
	quantity_assignments: QuantityAssignments = Field(default_factory=dict)
	assignments_history: list[Assignments] = Field(default_factory=list)
	chat_history: list[ChatMessage] = Field(default_factory=list)
	people: list[str] = Field(default_factory=list)


class AppState(BaseModel):
	model_config = ConfigDict(frozen=True)

	sessions: list[ReceiptSession] = Field(default_factory=list)
	active_session_id: Optional[str] = None

	def get(self, session_id: str) -> ReceiptSession | None:
		for session in self.sessions:
			if session.id == session_id:
				return session
		return None


class AssignmentUpdate(BaseModel):
	new_assignments: Assignments
	bot_response: str


class LineShare(BaseModel):
	name: str
	price: float


class PersonTotal(BaseModel):
	name: str
	items: list[LineShare] = Field(default_factory=list)
	subtotal: float = 0.0
	tax: float = 0.0
	tip: float = 0.0
	total: float = 0.0


BillSummary = list[PersonTotal]


class ProviderState(BaseModel):
	name: str
	kind: str  # "remote" | "local"
	available: bool
	reason: Optional[str] = None
	model: Optional[str] = None


class ErrorBody(BaseModel):
	code: str
	message: str
	details: dict = Field(default_factory=dict)


class ErrorResponse(BaseModel):
	error: ErrorBody
