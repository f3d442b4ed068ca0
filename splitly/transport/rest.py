from __future__ import annotations

import logging

from fastapi import APIRouter, Body, File, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..actions import DeleteSession, parse_action
from ..config import Settings
from ..errors import (
	SessionBusyError,
	SessionNotFoundError,
	SplitError,
	ValidationError,
)
from ..schemas import ErrorBody, ErrorResponse, ProviderState
from ..service import ReceiptUpload, SplitService

log = logging.getLogger(__name__)


class Health(BaseModel):
	status: str = "ok"


class PeopleRequest(BaseModel):
	names: str


class MessageRequest(BaseModel):
	text: str


class RenameRequest(BaseModel):
	old_name: str
	new_name: str


class UndoResult(BaseModel):
	undone: bool


def http_error(
	code: str, message: str, status: int, details: dict | None = None
) -> JSONResponse:
	return JSONResponse(
		status_code=status,
		content=ErrorResponse(
			error=ErrorBody(code=code, message=message, details=details or {})
		).model_dump(),
	)


def split_error(exc: SplitError) -> JSONResponse:
	if isinstance(exc, SessionNotFoundError):
		return http_error("SESSION_NOT_FOUND", str(exc), 404)
	if isinstance(exc, SessionBusyError):
		return http_error("SESSION_BUSY", str(exc), 409)
	if isinstance(exc, ValidationError):
		return http_error("VALIDATION_ERROR", str(exc), 422)
	return http_error("BAD_REQUEST", str(exc), 400)


def _json(model: BaseModel) -> JSONResponse:
	return JSONResponse(model.model_dump(mode="json"))


def build_router(settings: Settings, svc: SplitService) -> APIRouter:
	router = APIRouter(prefix="/v1")

	@router.get("/health", response_model=Health)
	async def health() -> Health:
		return Health()

	@router.get("/providers", response_model=list[ProviderState])
	async def providers() -> list[ProviderState]:
		return svc.provider_states()

	@router.get("/state")
	async def state() -> JSONResponse:
		return _json(svc.state)

	@router.post("/sessions")
	async def upload(files: list[UploadFile] = File(...)) -> JSONResponse:
		if not files:
			return http_error("VALIDATION_ERROR", "at least one file is required", 400)

		uploads: list[ReceiptUpload] = []
		for file in files:
			if file.content_type not in settings.allowed_mime_types:
				return http_error(
					"UNSUPPORTED_MEDIA_TYPE",
					"only JPEG, PNG or WEBP images are supported",
					415,
					{"filename": file.filename},
				)
			blob = await file.read()
			if len(blob) > settings.max_upload_mb * 1024 * 1024:
				return http_error(
					"PAYLOAD_TOO_LARGE",
					f"file exceeds {settings.max_upload_mb} MB",
					413,
					{"filename": file.filename},
				)
			uploads.append(
				ReceiptUpload(
					filename=file.filename or "receipt",
					data=blob,
					mime_type=file.content_type,
				)
			)

		log.info("received receipts", extra={"count": len(uploads)})
		ids = await svc.add_receipts(uploads)
		sessions = [svc.state.get(i) for i in ids]
		return JSONResponse(
			[s.model_dump(mode="json") for s in sessions if s is not None],
			status_code=201,
		)

	@router.delete("/sessions/{session_id}")
	async def delete(session_id: str) -> JSONResponse:
		try:
			svc.session(session_id)
		except SplitError as e:
			return split_error(e)
		return _json(svc.dispatch(DeleteSession(session_id=session_id)))

	@router.post("/sessions/{session_id}/retry")
	async def retry(session_id: str) -> JSONResponse:
		try:
			return _json(await svc.retry_parsing(session_id))
		except SplitError as e:
			return split_error(e)

	@router.post("/sessions/{session_id}/people")
	async def people(session_id: str, body: PeopleRequest) -> JSONResponse:
		try:
			return _json(svc.set_people(session_id, body.names))
		except SplitError as e:
			return split_error(e)

	@router.post("/sessions/{session_id}/rename")
	async def rename(session_id: str, body: RenameRequest) -> JSONResponse:
		try:
			return _json(svc.rename_person(session_id, body.old_name, body.new_name))
		except SplitError as e:
			return split_error(e)

	@router.post("/sessions/{session_id}/messages")
	async def message(session_id: str, body: MessageRequest) -> JSONResponse:
		try:
			return _json(await svc.send_message(session_id, body.text))
		except SplitError as e:
			return split_error(e)

	@router.post("/sessions/{session_id}/undo", response_model=UndoResult)
	async def undo(session_id: str) -> JSONResponse:
		try:
			return _json(UndoResult(undone=svc.undo(session_id)))
		except SplitError as e:
			return split_error(e)

	@router.get("/sessions/{session_id}/summary")
	async def summary(session_id: str) -> JSONResponse:
		try:
			return JSONResponse([p.model_dump(mode="json") for p in svc.summary(session_id)])
		except SplitError as e:
			return split_error(e)

	@router.get("/sessions/{session_id}/export")
	async def export(session_id: str):
		try:
			filename, text = svc.export_text(session_id)
		except SplitError as e:
			return split_error(e)
		return PlainTextResponse(
			text, headers={"Content-Disposition": f'attachment; filename="{filename}"'}
		)

	@router.post("/actions")
	async def action(payload: dict = Body(...)) -> JSONResponse:
		try:
			act = parse_action(payload)
		except PydanticValidationError as e:
			return http_error(
				"VALIDATION_ERROR",
				"invalid action",
				422,
				{"errors": e.errors(include_url=False, include_context=False)},
			)
		return _json(svc.dispatch(act))

	return router
