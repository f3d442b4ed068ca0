from __future__ import annotations

import asyncio

import pytest

from splitly import actions as a
from splitly.config import Settings
from splitly.errors import (
	AssignmentUpdateError,
	ReceiptParseError,
	SessionBusyError,
	SessionNotFoundError,
	SplitError,
	ValidationError,
)
from splitly.schemas import AssignmentUpdate, Status
from splitly.service import ReceiptUpload, SplitService, from_data_url, to_data_url
from splitly.storage import MemoryStateStore

UPLOAD = ReceiptUpload(filename="dinner.jpg", data=b"\xff\xd8jpeg", mime_type="image/jpeg")


@pytest.fixture
def service(provider) -> SplitService:
	return SplitService(Settings(), provider, MemoryStateStore())


def _ready(service: SplitService) -> str:
	(session_id,) = asyncio.run(service.add_receipts([UPLOAD]))
	service.set_people(session_id, "Al, Bo")
	return session_id


def test_add_receipts_parses_each_upload(service: SplitService, provider) -> None:
	ids = asyncio.run(
		service.add_receipts([UPLOAD, ReceiptUpload("lunch.png", b"png", "image/png")])
	)
	assert len(ids) == 2
	assert service.state.active_session_id == ids[0]
	first = service.session(ids[0])
	assert first.name == "dinner.jpg"
	assert first.status == Status.AWAITING_NAMES
	assert first.receipt_image == to_data_url(UPLOAD.data, "image/jpeg")
	assert set(first.assignments) == {"item-1", "item-2", "item-3"}
	assert sorted(provider.parse_calls) == sorted([(b"\xff\xd8jpeg", "image/jpeg"), (b"png", "image/png")])


def test_parse_failure_moves_session_to_error(service: SplitService, provider) -> None:
	provider.parse_error = ReceiptParseError("not a receipt")
	(session_id,) = asyncio.run(service.add_receipts([UPLOAD]))
	session = service.session(session_id)
	assert session.status == Status.ERROR
	assert session.error_message == "not a receipt"


def test_unexpected_parse_error_is_reported_generically(service: SplitService, provider) -> None:
	provider.parse_error = RuntimeError("socket closed")
	(session_id,) = asyncio.run(service.add_receipts([UPLOAD]))
	assert service.session(session_id).error_message == "An unknown error occurred."


def test_unavailable_provider_fails_parse(service: SplitService, provider) -> None:
	provider.is_available = False
	(session_id,) = asyncio.run(service.add_receipts([UPLOAD]))
	assert "switched off" in service.session(session_id).error_message
	assert provider.parse_calls == []


def test_retry_parsing_uses_stored_image(service: SplitService, provider) -> None:
	provider.parse_error = ReceiptParseError("blurry")
	(session_id,) = asyncio.run(service.add_receipts([UPLOAD]))
	provider.parse_error = None

	session = asyncio.run(service.retry_parsing(session_id))
	assert session.status == Status.AWAITING_NAMES
	assert provider.parse_calls[-1] == (UPLOAD.data, "image/jpeg")


def test_retry_keeps_assignment_work_of_parsed_session(service: SplitService, provider) -> None:
	session_id = _ready(service)
	service.dispatch(a.SplitAllEqually(session_id=session_id))
	before = service.session(session_id)

	with pytest.raises(SessionBusyError):
		asyncio.run(service.retry_parsing(session_id))
	assert service.session(session_id) == before
	assert len(provider.parse_calls) == 1


def test_retry_is_rejected_while_parsing(service: SplitService, provider) -> None:
	service.dispatch(
		a.AddSessions(sessions=[{"id": "s1", "name": "x.jpg"}], make_active_id="s1")
	)
	service.dispatch(
		a.SetSessionImage(session_id="s1", image=to_data_url(UPLOAD.data, "image/jpeg"))
	)
	with pytest.raises(SessionBusyError):
		asyncio.run(service.retry_parsing("s1"))
	assert provider.parse_calls == []


def test_retry_without_image_is_rejected(service: SplitService) -> None:
	service.dispatch(
		a.AddSessions(
			sessions=[{"id": "s1", "name": "x.jpg", "status": "error"}], make_active_id="s1"
		)
	)
	with pytest.raises(SplitError):
		asyncio.run(service.retry_parsing("s1"))


def test_data_url_round_trip_and_corruption() -> None:
	assert from_data_url(to_data_url(b"abc", "image/png")) == (b"abc", "image/png")
	with pytest.raises(SplitError):
		from_data_url("data:image/png;base64,@@@")
	with pytest.raises(SplitError):
		from_data_url(None)


def test_set_people_validates_input(service: SplitService) -> None:
	(session_id,) = asyncio.run(service.add_receipts([UPLOAD]))
	with pytest.raises(ValidationError):
		service.set_people(session_id, " , ")
	session = service.set_people(session_id, "Al, Bo")
	assert session.people == ["Al", "Bo"]
	assert session.status == Status.READY


def test_rename_person_validation(service: SplitService) -> None:
	session_id = _ready(service)
	with pytest.raises(ValidationError):
		service.rename_person(session_id, "Al", "  ")
	with pytest.raises(ValidationError):
		service.rename_person(session_id, "Al", "bo")
	with pytest.raises(ValidationError):
		service.rename_person(session_id, "Zed", "Zoe")

	assert service.rename_person(session_id, "Al", "Al").people == ["Al", "Bo"]
	assert service.rename_person(session_id, "Al", " al ").people == ["al", "Bo"]


def test_send_message_applies_update(service: SplitService, provider) -> None:
	session_id = _ready(service)
	provider.update = AssignmentUpdate(
		new_assignments={"item-1": ["Al"], "item-2": ["Cy"], "item-3": []},
		bot_response="Sure.",
	)
	session = asyncio.run(service.send_message(session_id, "Al had nachos, Cy wings"))
	assert session.status == Status.READY
	assert session.assignments["item-1"] == ["Al"]
	assert session.people == ["Al", "Bo", "Cy"]
	instruction, item_ids, current = provider.update_calls[0]
	assert instruction == "Al had nachos, Cy wings"
	assert item_ids == ["item-1", "item-2", "item-3"]
	assert current == {"item-1": [], "item-2": [], "item-3": []}

	assert service.undo(session_id) is True
	assert service.session(session_id).assignments["item-1"] == []
	assert service.undo(session_id) is False


def test_send_message_failure_is_logged_in_chat(service: SplitService, provider) -> None:
	session_id = _ready(service)
	provider.update_error = AssignmentUpdateError("try rephrasing")
	session = asyncio.run(service.send_message(session_id, "hmm"))
	assert session.status == Status.READY
	assert session.chat_history[-1].text == "Error: try rephrasing"


def test_send_message_requires_ready_session(service: SplitService) -> None:
	(session_id,) = asyncio.run(service.add_receipts([UPLOAD]))
	with pytest.raises(SessionBusyError):
		asyncio.run(service.send_message(session_id, "Al had nachos"))


def test_result_for_session_deleted_mid_flight_is_dropped(service: SplitService, provider) -> None:
	session_id = _ready(service)
	provider.update = AssignmentUpdate(new_assignments={"item-1": ["Al"]}, bot_response="ok")
	provider.on_update = lambda: service.dispatch(a.DeleteSession(session_id=session_id))

	asyncio.run(service.send_message(session_id, "Al had nachos"))
	assert service.state.get(session_id) is None
	assert service.state.sessions == []


def test_names_added_mid_flight_keep_assignment_result(service: SplitService, provider) -> None:
	session_id = _ready(service)
	provider.update = AssignmentUpdate(
		new_assignments={"item-1": ["Al"], "item-2": [], "item-3": []},
		bot_response="Sure.",
	)
	seen = []

	def add_name() -> None:
		seen.append(service.set_people(session_id, "Cy").status)

	provider.on_update = add_name

	session = asyncio.run(service.send_message(session_id, "Al had nachos"))
	assert seen == [Status.ASSIGNING]
	assert session.status == Status.READY
	assert session.assignments["item-1"] == ["Al"]
	assert session.people == ["Al", "Bo", "Cy"]
	assert session.chat_history[-2].text == "Sure."
	assert len(session.assignments_history) == 1


def test_unknown_session_raises(service: SplitService) -> None:
	with pytest.raises(SessionNotFoundError):
		service.summary("missing")


def test_summary_and_export(service: SplitService) -> None:
	session_id = _ready(service)
	service.dispatch(a.SplitAllEqually(session_id=session_id))
	summary = service.summary(session_id)
	assert [p.name for p in summary] == ["Al", "Bo"]
	assert summary[0].subtotal == pytest.approx(12.5)
	assert summary[0].total == pytest.approx(12.5 + 1.25 + 2.5)

	filename, text = service.export_text(session_id)
	assert filename == "bill_summary_dinner_jpg.txt"
	assert "--- Al --- Total: $16.25 ---" in text


def test_state_is_saved_on_change(provider) -> None:
	store = MemoryStateStore()
	service = SplitService(Settings(), provider, store)
	(session_id,) = asyncio.run(service.add_receipts([UPLOAD]))
	assert store.load().get(session_id).status == Status.AWAITING_NAMES
	assert SplitService(Settings(), provider, store).session(session_id) is not None
