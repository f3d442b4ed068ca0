from __future__ import annotations

import json

import pytest

from splitly.errors import NOT_A_RECEIPT_MESSAGE, AssignmentUpdateError, ReceiptParseError
from splitly.providers.gemini import (
	DEFAULT_BOT_RESPONSE,
	GeminiProvider,
	assignment_cache_key,
	parse_assignment_response,
	reconcile_assignments,
	sanitize_receipt,
)
from splitly.schemas import ReceiptItem


def test_sanitize_fills_defaults_and_dedupes_ids() -> None:
	receipt = sanitize_receipt(
		{
			"items": [
				{"id": "item-1", "name": "Burger", "quantity": 2, "price": "15.5"},
				{"id": "item-1", "name": "Fries", "quantity": 0},
				{"name": None, "price": 3},
			],
			"subtotal": 18.5,
			"tax": None,
		}
	)
	assert [i.id for i in receipt.items] == ["item-1", "item-1-1", "item-3"]
	assert receipt.items[0].price == 15.5
	assert receipt.items[1].quantity == 1
	assert receipt.items[1].price == 0
	assert receipt.items[2].name == "Unnamed Item"
	assert receipt.subtotal == 18.5
	assert receipt.tax == 0
	assert receipt.tip == 0


def test_sanitize_replaces_non_finite_numbers() -> None:
	data = json.loads(
		'{"items": [{"id": "a", "name": "Tea", "quantity": NaN, "price": Infinity}],'
		' "subtotal": -Infinity, "tax": NaN, "tip": 1}'
	)
	receipt = sanitize_receipt(data)
	assert receipt.items[0].quantity == 1
	assert receipt.items[0].price == 0
	assert receipt.subtotal == 0
	assert receipt.tax == 0
	assert receipt.tip == 1


def test_empty_items_is_not_a_receipt() -> None:
	with pytest.raises(ReceiptParseError) as exc:
		sanitize_receipt({"items": [], "subtotal": 0, "tax": 0, "tip": 0})
	assert str(exc.value) == NOT_A_RECEIPT_MESSAGE


def test_missing_items_is_invalid_structure() -> None:
	with pytest.raises(ReceiptParseError):
		sanitize_receipt({"subtotal": 3})


def test_reconcile_fills_missing_items() -> None:
	result = reconcile_assignments(
		[{"item_id": "i1", "names": ["Al", " Al ", ""]}], ["i1", "i2", "i3"]
	)
	assert result == {"i1": ["Al"], "i2": [], "i3": []}


def test_reconcile_drops_unknown_ids_and_accepts_camel_case() -> None:
	result = reconcile_assignments(
		[{"itemId": "i2", "names": ["Bo"]}, {"item_id": "ghost", "names": ["Cy"]}],
		["i1", "i2"],
	)
	assert result == {"i1": [], "i2": ["Bo"]}


def test_parse_assignment_response_defaults_bot_text() -> None:
	update = parse_assignment_response(json.dumps({"assignments": []}), ["i1"])
	assert update.new_assignments == {"i1": []}
	assert update.bot_response == DEFAULT_BOT_RESPONSE


def test_parse_assignment_response_rejects_garbage() -> None:
	with pytest.raises(AssignmentUpdateError):
		parse_assignment_response("not json", ["i1"])
	with pytest.raises(AssignmentUpdateError):
		parse_assignment_response("[1, 2]", ["i1"])


def test_cache_key_ignores_name_order() -> None:
	items = [ReceiptItem(id="i1", name="Soup", price=4)]
	assert assignment_cache_key("x", items, {"i1": ["A", "B"]}) == assignment_cache_key(
		"x", items, {"i1": ["B", "A"]}
	)
	assert assignment_cache_key("x", items, {}) != assignment_cache_key("y", items, {})


def test_update_assignments_is_memoized(monkeypatch) -> None:
	monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
	monkeypatch.delenv("GEMINI_API_KEY", raising=False)
	provider = GeminiProvider(cache_size=4)
	calls: list[str] = []

	def fake_generate(span_name, contents, schema):
		calls.append(span_name)
		return json.dumps(
			{"bot_response": "ok", "assignments": [{"item_id": "i1", "names": ["Al"]}]}
		)

	monkeypatch.setattr(provider, "_generate", fake_generate)
	items = [ReceiptItem(id="i1", name="Soup", price=4), ReceiptItem(id="i2", name="Tea", price=2)]

	first = provider.update_assignments("Al had soup", items, {"i1": [], "i2": []})
	first.new_assignments["i1"].append("mutated")
	second = provider.update_assignments("Al had soup", items, {"i1": [], "i2": []})

	assert calls == ["provider.gemini.update_assignments"]
	assert second.new_assignments == {"i1": ["Al"], "i2": []}

	provider.update_assignments("Bo had tea", items, {"i1": [], "i2": []})
	assert len(calls) == 2


def test_failures_are_not_cached(monkeypatch) -> None:
	provider = GeminiProvider(cache_size=4)
	responses = iter(["garbage", json.dumps({"bot_response": "ok", "assignments": []})])
	monkeypatch.setattr(provider, "_generate", lambda *args: next(responses))
	items = [ReceiptItem(id="i1", name="Soup", price=4)]

	with pytest.raises(AssignmentUpdateError):
		provider.update_assignments("x", items, {})
	assert provider.update_assignments("x", items, {}).bot_response == "ok"
