from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import time
import uuid
from dataclasses import dataclass

from opentelemetry import trace

from . import actions as a
from .allocation import calculate_bill_summary
from .config import Settings
from .container import reduce_app
from .errors import (
	ProviderError,
	SessionBusyError,
	SessionNotFoundError,
	SplitError,
	ValidationError,
)
from .export import export_filename, format_summary_text
from .logging import session_context
from .machine import parse_names
from .providers.base import Provider
from .schemas import AppState, BillSummary, ProviderState, ReceiptSession, Status
from .storage import StateStore

log = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

UNKNOWN_ERROR = "An unknown error occurred."


@dataclass(frozen=True)
class ReceiptUpload:
	filename: str
	data: bytes
	mime_type: str


def to_data_url(data: bytes, mime_type: str) -> str:
	return f"data:{mime_type};base64,{base64.b64encode(data).decode()}"


def from_data_url(url: str | None) -> tuple[bytes, str]:
	if not url or not url.startswith("data:") or "," not in url:
		raise SplitError("Cannot retry: image data is missing.")
	header, payload = url[5:].split(",", 1)
	mime_type = header.split(";", 1)[0]
	try:
		data = base64.b64decode(payload, validate=True)
	except (binascii.Error, ValueError) as exc:
		raise SplitError("Cannot retry, image data is corrupt.") from exc
	if not mime_type or not data:
		raise SplitError("Cannot retry, image data is corrupt.")
	return data, mime_type


class SplitService:
	"""Owns the session collection and feeds external results back as actions.

	State is replaced wholesale on every dispatch and handed to the store.
	"""

	def __init__(self, settings: Settings, provider: Provider, store: StateStore) -> None:
		self.settings = settings
		self.provider = provider
		self.store = store
		self._state = store.load()
		log.info("loaded sessions", extra={"sessions": len(self._state.sessions)})

	@property
	def state(self) -> AppState:
		return self._state

	def dispatch(self, action: a.Action) -> AppState:
		new = reduce_app(self._state, action, self.settings.max_undo_history)
		if new is not self._state:
			self._state = new
			self.store.save(new)
		return new

	def session(self, session_id: str) -> ReceiptSession:
		session = self._state.get(session_id)
		if session is None:
			raise SessionNotFoundError(session_id)
		return session

	def provider_states(self) -> list[ProviderState]:
		ok, reason = self.provider.available()
		return [
			ProviderState(
				name=self.provider.name,
				kind=self.provider.kind,
				available=ok,
				reason=reason,
				model=self.provider.model_id(),
			)
		]

	# parsing

	async def add_receipts(self, uploads: list[ReceiptUpload]) -> list[str]:
		if not uploads:
			return []
		sessions = [
			ReceiptSession(id=f"session-{uuid.uuid4().hex}", name=upload.filename)
			for upload in uploads
		]
		self.dispatch(a.AddSessions(sessions=sessions, make_active_id=sessions[0].id))
		for session, upload in zip(sessions, uploads):
			self.dispatch(
				a.SetSessionImage(
					session_id=session.id,
					image=to_data_url(upload.data, upload.mime_type),
				)
			)
			self.dispatch(a.SubmitForParsing(session_id=session.id))

		await asyncio.gather(
			*(
				self._parse(session.id, upload.data, upload.mime_type)
				for session, upload in zip(sessions, uploads)
			)
		)
		return [session.id for session in sessions]

	async def retry_parsing(self, session_id: str) -> ReceiptSession:
		session = self.session(session_id)
		if session.status != Status.ERROR:
			raise SessionBusyError(
				f"session {session_id!r} can only be re-parsed after a failed parse"
			)
		data, mime_type = from_data_url(session.receipt_image)
		self.dispatch(a.SubmitForParsing(session_id=session_id))
		await self._parse(session_id, data, mime_type)
		return self.session(session_id)

	async def _parse(self, session_id: str, data: bytes, mime_type: str) -> None:
		with session_context(session_id), tracer.start_as_current_span(
			"service.parse"
		) as span:
			span.set_attribute("session.id", session_id)
			span.set_attribute("provider.name", self.provider.name)
			t0 = time.perf_counter()
			try:
				ok, reason = self.provider.available()
				if not ok:
					raise ProviderError(
						f"provider {self.provider.name!r} unavailable: {reason or 'unknown'}"
					)
				receipt = await asyncio.to_thread(
					self.provider.parse_receipt, data, mime_type
				)
			except ProviderError as exc:
				log.warning(
					"receipt parse failed",
					extra={"session_id": session_id, "error": str(exc)},
				)
				self.dispatch(a.ParseFailed(session_id=session_id, message=str(exc)))
				return
			except Exception:
				log.exception("unexpected error while parsing receipt")
				self.dispatch(a.ParseFailed(session_id=session_id, message=UNKNOWN_ERROR))
				return

			span.set_attribute("items.count", len(receipt.items))
			span.set_attribute("elapsed_secs", round(time.perf_counter() - t0, 3))
		self.dispatch(a.ParseSucceeded(session_id=session_id, receipt=receipt))

	# people

	def set_people(self, session_id: str, raw: str) -> ReceiptSession:
		self.session(session_id)
		if not parse_names(raw):
			raise ValidationError("Please enter at least one name.")
		self.dispatch(a.SetPeople(session_id=session_id, user_input=raw))
		return self.session(session_id)

	def rename_person(self, session_id: str, old_name: str, new_name: str) -> ReceiptSession:
		session = self.session(session_id)
		new_name = new_name.strip()
		if not new_name:
			raise ValidationError("Name cannot be empty.")
		if old_name not in session.people:
			raise ValidationError(f"Unknown person {old_name!r}.")
		if old_name == new_name:
			return session
		taken = {p.lower() for p in session.people if p != old_name}
		if new_name.lower() in taken:
			raise ValidationError(f"The name '{new_name}' already exists.")
		self.dispatch(
			a.EditPersonName(session_id=session_id, old_name=old_name, new_name=new_name)
		)
		return self.session(session_id)

	# assignments

	async def send_message(self, session_id: str, text: str) -> ReceiptSession:
		session = self.session(session_id)
		if not text.strip():
			raise ValidationError("Message cannot be empty.")
		if session.status != Status.READY or session.parsed_receipt is None:
			raise SessionBusyError(
				f"session {session_id!r} cannot take instructions while {session.status.value}"
			)

		self.dispatch(a.SendMessageStart(session_id=session_id, message=text))
		with session_context(session_id), tracer.start_as_current_span(
			"service.update_assignments"
		) as span:
			span.set_attribute("session.id", session_id)
			try:
				update = await asyncio.to_thread(
					self.provider.update_assignments,
					text,
					list(session.parsed_receipt.items),
					session.assignments,
				)
			except ProviderError as exc:
				log.warning(
					"assignment update failed",
					extra={"session_id": session_id, "error": str(exc)},
				)
				self.dispatch(a.SendMessageError(session_id=session_id, message=str(exc)))
			except Exception:
				log.exception("unexpected error while updating assignments")
				self.dispatch(a.SendMessageError(session_id=session_id, message=UNKNOWN_ERROR))
			else:
				self.dispatch(a.SendMessageSuccess(session_id=session_id, update=update))

		# the session may have been deleted while the request was in flight
		return self._state.get(session_id) or session

	def undo(self, session_id: str) -> bool:
		"""Restore the previous assignment map; False when there is nothing to undo."""
		self.session(session_id)
		before = self._state
		self.dispatch(a.Undo(session_id=session_id))
		return self._state is not before

	# read side

	def summary(self, session_id: str) -> BillSummary:
		session = self.session(session_id)
		return calculate_bill_summary(
			session.parsed_receipt,
			session.assignments,
			session.quantity_assignments,
			session.people,
		)

	def export_text(self, session_id: str) -> tuple[str, str]:
		session = self.session(session_id)
		text = format_summary_text(self.summary(session_id), session.parsed_receipt, session.name)
		return export_filename(session.name), text
