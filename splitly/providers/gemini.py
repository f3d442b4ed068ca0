from __future__ import annotations

import functools
import json
import logging
import math
from typing import Any

from google import genai
from google.genai import types
from opentelemetry import trace
from pydantic import BaseModel

from ..config import ASSIGNMENT_CACHE_SIZE, GEMINI_MODEL, PROVIDER_TIMEOUT_SECS
from ..errors import (
	NOT_A_RECEIPT_MESSAGE,
	AssignmentUpdateError,
	ProviderError,
	ReceiptParseError,
)
from ..schemas import AssignmentUpdate, Assignments, ParsedReceipt, ReceiptItem

log = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_BOT_RESPONSE = "I've updated the assignments."


# response schemas handed to the model


class _RawItem(BaseModel):
	id: str
	name: str
	quantity: int
	price: float


class _RawReceipt(BaseModel):
	items: list[_RawItem]
	subtotal: float
	tax: float
	tip: float


class _RawAssignment(BaseModel):
	item_id: str
	names: list[str]


class _RawAssignmentUpdate(BaseModel):
	bot_response: str
	assignments: list[_RawAssignment]


RECEIPT_PROMPT = (
	"You are a receipt parsing expert. First decide whether the image is a receipt.\n"
	"- if it is, extract every line item with its quantity and line total price,"
	" plus the subtotal, tax and tip\n"
	"- if it is not a receipt, or is unreadable, return an empty items array\n"
	"- give every item a unique id such as 'item-1'\n"
	"- use 0 for any missing number; emit only JSON matching the schema\n"
)

ASSIGNMENT_PROMPT = """You are a bill splitting assistant. Update the item assignments according to the user's command and summarize what you did.

Respond only with JSON containing "bot_response" and "assignments".
- "bot_response": a short, friendly sentence describing the change.
- "assignments": one object per receipt item with "item_id" and "names". Every item must be present; use an empty "names" array for unassigned items.

Current items: {items}
Current assignments: {assignments}
User command: "{instruction}"
"""


def _number(value: Any, default: float = 0.0) -> float:
	if value in (None, ""):
		return default
	try:
		number = float(value)
	except (TypeError, ValueError):
		return default
	return number if math.isfinite(number) else default


def sanitize_receipt(data: Any) -> ParsedReceipt:
	"""Coerce a model response into a ``ParsedReceipt``.

	Missing fields get defaults, ids are made unique and a response without
	items is rejected: an empty item list means the image was not a receipt.
	"""
	if not isinstance(data, dict) or not isinstance(data.get("items"), list):
		raise ReceiptParseError(
			"The AI returned an invalid structure. The 'items' array is missing."
		)
	if not data["items"]:
		raise ReceiptParseError(NOT_A_RECEIPT_MESSAGE)

	seen: set[str] = set()
	items: list[ReceiptItem] = []
	for index, raw in enumerate(data["items"]):
		raw = raw if isinstance(raw, dict) else {}
		item_id = str(raw.get("id") or f"item-{index + 1}")
		if item_id in seen:
			item_id = f"{item_id}-{index}"
		while item_id in seen:
			item_id = f"{item_id}-{index}"
		seen.add(item_id)

		items.append(
			ReceiptItem(
				id=item_id,
				name=str(raw.get("name") or "Unnamed Item"),
				quantity=max(1, int(_number(raw.get("quantity"), 1))),
				price=_number(raw.get("price")),
			)
		)

	return ParsedReceipt(
		items=items,
		subtotal=_number(data.get("subtotal")),
		tax=_number(data.get("tax")),
		tip=_number(data.get("tip")),
	)


def reconcile_assignments(
	raw_assignments: Any, item_ids: list[str]
) -> Assignments:
	"""Build an assignment map with exactly one entry per known item id."""
	out: Assignments = {item_id: [] for item_id in item_ids}
	if not isinstance(raw_assignments, list):
		return out
	for entry in raw_assignments:
		if not isinstance(entry, dict):
			continue
		item_id = entry.get("item_id", entry.get("itemId"))
		if item_id not in out:
			log.debug("dropping assignment for unknown item", extra={"item_id": item_id})
			continue
		names = entry.get("names") or []
		cleaned = (str(n).strip() for n in names if n is not None)
		out[item_id] = list(dict.fromkeys(n for n in cleaned if n))
	return out


def parse_assignment_response(raw: str, item_ids: list[str]) -> AssignmentUpdate:
	try:
		data = json.loads(raw)
	except (json.JSONDecodeError, TypeError) as exc:
		log.error("gemini returned non-json", extra={"error": str(exc)})
		raise AssignmentUpdateError(
			"The AI failed to return a valid assignment structure. "
			"Please try rephrasing your command."
		) from exc
	if not isinstance(data, dict):
		raise AssignmentUpdateError(
			"The AI failed to return a valid assignment structure. "
			"Please try rephrasing your command."
		)
	return AssignmentUpdate(
		new_assignments=reconcile_assignments(data.get("assignments"), item_ids),
		bot_response=str(data.get("bot_response") or DEFAULT_BOT_RESPONSE),
	)


def assignment_cache_key(
	instruction: str, items: list[ReceiptItem], current: Assignments
) -> str:
	return json.dumps(
		{
			"instruction": instruction,
			"items": [{"id": i.id, "name": i.name} for i in items],
			"assignments": {k: sorted(v) for k, v in current.items()},
		},
		sort_keys=True,
	)


class GeminiProvider:
	name = "gemini"
	kind = "remote"

	def __init__(
		self,
		model: str = GEMINI_MODEL,
		timeout_secs: int = PROVIDER_TIMEOUT_SECS,
		cache_size: int = ASSIGNMENT_CACHE_SIZE,
	) -> None:
		self._model = model
		self._timeout_secs = timeout_secs
		# relies on GOOGLE_API_KEY in env; genai.Client() reads it
		self._client: genai.Client | None = None
		try:
			self._client = genai.Client(
				http_options=types.HttpOptions(timeout=timeout_secs * 1000)
			)
		except Exception as e:
			log.debug("gemini client init failed: %s", e)
			self._client = None
		self._cached_update = functools.lru_cache(maxsize=cache_size)(
			self._update_from_key
		)

	def model_id(self) -> str | None:
		return self._model

	def available(self) -> tuple[bool, str | None]:
		if self._client is None:
			return False, "missing or invalid GOOGLE_API_KEY"
		return True, None

	def _generate(self, span_name: str, contents: list, schema: type[BaseModel]) -> str:
		if self._client is None:
			raise ProviderError("Gemini provider not configured")

		cfg = types.GenerateContentConfig(
			response_mime_type="application/json",
			response_schema=schema,
		)
		with tracer.start_as_current_span(span_name) as span:
			span.set_attribute("llm.provider", "gemini")
			span.set_attribute("llm.model", self._model)
			span.set_attribute("request.timeout_secs", self._timeout_secs)
			try:
				resp = self._client.models.generate_content(
					model=self._model, contents=contents, config=cfg
				)
			except Exception as exc:
				log.exception("gemini request failed")
				raise ProviderError(f"Gemini request failed: {exc}") from exc

			raw = resp.text or ""
			span.set_attribute("response.size_bytes", len(raw.encode("utf-8")))
		return raw

	def parse_receipt(self, image_bytes: bytes, mime_type: str | None) -> ParsedReceipt:
		img_part = types.Part.from_bytes(
			data=image_bytes, mime_type=mime_type or "image/jpeg"
		)
		raw = self._generate(
			"provider.gemini.parse_receipt",
			# must use keyword-only for from_text
			[img_part, types.Part.from_text(text=RECEIPT_PROMPT)],
			_RawReceipt,
		)
		try:
			data: dict[str, Any] = json.loads(raw)
		except json.JSONDecodeError as exc:
			log.error("gemini returned non-json", extra={"error": str(exc)})
			raise ReceiptParseError(
				"The AI could not read the receipt. Please try again with a clearer image."
			) from exc

		receipt = sanitize_receipt(data)
		log.info(
			"parsed receipt",
			extra={"items": len(receipt.items), "subtotal": receipt.subtotal},
		)
		return receipt

	def update_assignments(
		self, instruction: str, items: list[ReceiptItem], current: Assignments
	) -> AssignmentUpdate:
		key = assignment_cache_key(instruction, items, current)
		hits = self._cached_update.cache_info().hits
		update = self._cached_update(key)
		if self._cached_update.cache_info().hits > hits:
			log.info("returning cached assignment result")
		return update.model_copy(deep=True)

	def _update_from_key(self, key: str) -> AssignmentUpdate:
		request = json.loads(key)
		prompt = ASSIGNMENT_PROMPT.format(
			items=json.dumps(request["items"], indent=2),
			assignments=json.dumps(request["assignments"], indent=2),
			instruction=request["instruction"],
		)
		raw = self._generate(
			"provider.gemini.update_assignments",
			[types.Part.from_text(text=prompt)],
			_RawAssignmentUpdate,
		)
		item_ids = [i["id"] for i in request["items"]]
		return parse_assignment_response(raw, item_ids)
