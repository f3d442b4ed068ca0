from __future__ import annotations

from typing import Protocol

from ..schemas import AssignmentUpdate, Assignments, ParsedReceipt, ReceiptItem


class Provider(Protocol):
	name: str
	kind: str  # "remote" | "local"

	def model_id(self) -> str | None: ...
	def available(self) -> tuple[bool, str | None]: ...
	def parse_receipt(self, image_bytes: bytes, mime_type: str | None) -> ParsedReceipt: ...
	def update_assignments(
		self,
		instruction: str,
		items: list[ReceiptItem],
		current: Assignments,
	) -> AssignmentUpdate: ...
