"""Shared fixtures: a small receipt, a session ready for assignments and a fake provider."""

from __future__ import annotations

from typing import Callable

import pytest

from splitly.errors import ReceiptParseError
from splitly.schemas import (
	AssignmentUpdate,
	Assignments,
	ParsedReceipt,
	ReceiptItem,
	ReceiptSession,
	Status,
)


@pytest.fixture
def receipt() -> ParsedReceipt:
	return ParsedReceipt(
		items=[
			ReceiptItem(id="item-1", name="Nachos", quantity=1, price=12.0),
			ReceiptItem(id="item-2", name="Wings", quantity=3, price=9.0),
			ReceiptItem(id="item-3", name="Soda", quantity=2, price=4.0),
		],
		subtotal=25.0,
		tax=2.5,
		tip=5.0,
	)


@pytest.fixture
def ready_session(receipt: ParsedReceipt) -> ReceiptSession:
	return ReceiptSession(
		id="s1",
		name="dinner.jpg",
		status=Status.READY,
		parsed_receipt=receipt,
		assignments={item.id: [] for item in receipt.items},
		people=["Al", "Bo"],
	)


class FakeProvider:
	name = "fake"
	kind = "local"

	def __init__(self) -> None:
		self.receipt: ParsedReceipt | None = None
		self.parse_error: Exception | None = None
		self.update: AssignmentUpdate | None = None
		self.update_error: Exception | None = None
		self.on_update: Callable[[], None] | None = None
		self.is_available = True
		self.parse_calls: list[tuple[bytes, str | None]] = []
		self.update_calls: list[tuple[str, list[str], Assignments]] = []

	def model_id(self) -> str | None:
		return "fake-1"

	def available(self) -> tuple[bool, str | None]:
		if self.is_available:
			return True, None
		return False, "switched off"

	def parse_receipt(self, image_bytes: bytes, mime_type: str | None) -> ParsedReceipt:
		self.parse_calls.append((image_bytes, mime_type))
		if self.parse_error is not None:
			raise self.parse_error
		if self.receipt is None:
			raise ReceiptParseError("nothing configured")
		return self.receipt

	def update_assignments(
		self, instruction: str, items: list[ReceiptItem], current: Assignments
	) -> AssignmentUpdate:
		self.update_calls.append((instruction, [i.id for i in items], current))
		if self.on_update is not None:
			self.on_update()
		if self.update_error is not None:
			raise self.update_error
		assert self.update is not None
		return self.update


@pytest.fixture
def provider(receipt: ParsedReceipt) -> FakeProvider:
	fake = FakeProvider()
	fake.receipt = receipt
	return fake
