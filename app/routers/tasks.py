"""
Task-queue endpoint.

The queue delivers one task per session; the response status code is the
only retry signal it reads.
"""

import asyncio
import hmac
from functools import lru_cache
from typing import Optional, Union

from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.config import GEMINI_API_KEY, TASKS_AUTH_TOKEN, logger
from app.core.errors import error_code_for, guest_message_for
from app.core.repositories import NotFoundError, SessionRepository
from app.core.repositories.models import ProcessingStatus
from app.core.storage import StorageGateway
from app.core.workflow import process_session
from app.schemas import ProcessMediaResponse, ProcessMediaTask, TaskSkippedResponse

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@lru_cache(maxsize=1)
def get_session_repository() -> SessionRepository:
    return SessionRepository()


@lru_cache(maxsize=1)
def get_storage_gateway() -> StorageGateway:
    return StorageGateway()


def get_ai_api_key() -> str:
    return GEMINI_API_KEY


def verify_task_token(x_task_token: Optional[str] = Header(default=None)) -> None:
    """Require the shared task token when one is configured."""
    if not TASKS_AUTH_TOKEN:
        return
    if not x_task_token or not hmac.compare_digest(x_task_token, TASKS_AUTH_TOKEN):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid task token")


def _attempt_number(retry_count: Optional[str]) -> int:
    try:
        return max(int(retry_count or 0), 0) + 1
    except ValueError:
        return 1


@router.post(
    "/process-media",
    response_model=Union[ProcessMediaResponse, TaskSkippedResponse],
    response_model_by_alias=True,
    dependencies=[Depends(verify_task_token)],
)
async def process_media(
    task: ProcessMediaTask,
    x_cloudtasks_taskname: Optional[str] = Header(default=None),
    x_cloudtasks_taskretrycount: Optional[str] = Header(default=None),
    sessions: SessionRepository = Depends(get_session_repository),
    storage: StorageGateway = Depends(get_storage_gateway),
    api_key: str = Depends(get_ai_api_key),
) -> Union[ProcessMediaResponse, TaskSkippedResponse]:
    """
    Process one session delivered by the task queue.

    A 500 response hands the retry decision back to the queue; the pipeline
    itself never retries.
    """
    session_id = task.session_id
    attempt = _attempt_number(x_cloudtasks_taskretrycount)

    try:
        session = await asyncio.to_thread(sessions.get_session, session_id)
    except NotFoundError:
        logger.warning(f"Task for unknown session {session_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from None

    if session.is_completed:
        logger.info(f"Session {session_id} already completed, skipping duplicate delivery")
        return TaskSkippedResponse(session_id=session_id)

    if session.processing and session.processing.state == ProcessingStatus.RUNNING:
        logger.warning(
            f"Session {session_id} found running (attempt {session.processing.attempt_number}), "
            f"recovering as attempt {attempt}"
        )

    try:
        await asyncio.to_thread(sessions.mark_pending, session_id, attempt, x_cloudtasks_taskname)
        output = await process_session(
            session_id,
            task.output_format,
            task.options,
            sessions=sessions,
            storage=storage,
            api_key=api_key,
            session=session,
        )
    except Exception as e:
        code = error_code_for(e)
        logger.error(f"Task for session {session_id} failed on attempt {attempt}: {code.value}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"code": code.value, "message": guest_message_for(code)},
        ) from e

    return ProcessMediaResponse(output=output)
