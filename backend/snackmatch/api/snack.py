"""FastAPI routes for Snack matchmaking."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from snackmatch.domain.snack import schemas
from snackmatch.domain.snack.exceptions import SnackError, SnackRateLimited
from snackmatch.domain.snack.service import SnackService
from snackmatch.infra.auth import AuthenticatedUser, get_current_user

router = APIRouter(prefix="/snack", tags=["snack"])

_service = SnackService()


def _as_http_error(exc: SnackError) -> HTTPException:
	headers = None
	if isinstance(exc, SnackRateLimited) and exc.retry_after:
		headers = {"Retry-After": str(exc.retry_after)}
	return HTTPException(status_code=exc.status_code, detail=exc.reason, headers=headers)


@router.post("/request", response_model=schemas.CreateRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request_endpoint(
	payload: schemas.CreateSnackRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.CreateRequestResponse:
	try:
		return await _service.create_request(auth_user, payload)
	except SnackError as exc:
		raise _as_http_error(exc) from exc


@router.delete("/request/{request_id}", response_model=schemas.SuccessResponse)
async def cancel_request_endpoint(
	request_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.SuccessResponse:
	try:
		await _service.cancel_request(auth_user, request_id)
	except SnackError as exc:
		raise _as_http_error(exc) from exc
	return schemas.SuccessResponse()


@router.get("/match-status", response_model=schemas.MatchStatusResponse)
async def match_status_endpoint(
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.MatchStatusResponse:
	return await _service.match_status(auth_user)


@router.post("/rate", response_model=schemas.SessionActionResponse)
async def rate_session_endpoint(
	payload: schemas.RateSessionRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.SessionActionResponse:
	try:
		session = await _service.rate_session(auth_user, payload.session_id, payload.rating)
	except SnackError as exc:
		raise _as_http_error(exc) from exc
	return schemas.SessionActionResponse(session=session)


@router.post("/report", response_model=schemas.SuccessResponse, status_code=status.HTTP_201_CREATED)
async def report_user_endpoint(
	payload: schemas.ReportUserRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.SuccessResponse:
	try:
		await _service.report_user(auth_user, payload)
	except SnackError as exc:
		raise _as_http_error(exc) from exc
	return schemas.SuccessResponse()


@router.post("/block", response_model=schemas.SuccessResponse)
async def block_user_endpoint(
	payload: schemas.BlockUserRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.SuccessResponse:
	try:
		await _service.block_user(auth_user, payload.user_id)
	except SnackError as exc:
		raise _as_http_error(exc) from exc
	return schemas.SuccessResponse()


@router.get("/session/{session_id}/messages", response_model=List[schemas.SnackMessageView])
async def list_messages_endpoint(
	session_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> List[schemas.SnackMessageView]:
	try:
		return await _service.list_messages(auth_user.id, session_id)
	except SnackError as exc:
		raise _as_http_error(exc) from exc


@router.post(
	"/session/{session_id}/message",
	response_model=schemas.SnackMessageView,
	status_code=status.HTTP_201_CREATED,
)
async def send_message_endpoint(
	session_id: str,
	payload: schemas.SendMessageRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.SnackMessageView:
	try:
		return await _service.send_message(auth_user.id, session_id, payload.content)
	except SnackError as exc:
		raise _as_http_error(exc) from exc


@router.post("/session/{session_id}/extend", response_model=schemas.SessionActionResponse)
async def extend_session_endpoint(
	session_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.SessionActionResponse:
	try:
		session = await _service.extend_session(auth_user.id, session_id)
	except SnackError as exc:
		raise _as_http_error(exc) from exc
	return schemas.SessionActionResponse(session=session)


@router.post("/session/{session_id}/end", response_model=schemas.SessionActionResponse)
async def end_session_endpoint(
	session_id: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> schemas.SessionActionResponse:
	try:
		session = await _service.end_session(auth_user.id, session_id)
	except SnackError as exc:
		raise _as_http_error(exc) from exc
	return schemas.SessionActionResponse(session=session)
