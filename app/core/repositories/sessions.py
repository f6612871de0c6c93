"""
Session processing-state repository for Firestore.

The session document is shared with other subsystems (guest UI, admin
tools), so every write here is a narrow ``update()`` of the ``processing``
or ``outputs`` fields and never a full-document ``set()``. Timestamps are
server-assigned.
"""

import logging
from typing import Any, Dict, Optional

from google.api_core.exceptions import NotFound
from google.cloud import firestore

from app.core.firebase_client import get_firestore_client
from app.core.repositories.exceptions import (
    NotFoundError,
    SessionRepositoryError,
    ValidationError,
)
from app.core.repositories.models import (
    PipelineStep,
    ProcessingStatus,
    Session,
    SessionOutputs,
)

logger = logging.getLogger(__name__)

SESSIONS_COLLECTION = "sessions"
MAX_ERROR_MESSAGE_LENGTH = 1000


class SessionRepository:
    """
    Repository for a session's processing lifecycle.

    State machine:
        mark_pending -> mark_running -> update_step* -> finalize
                                     \\-> mark_failed
    """

    def __init__(self, db: Optional[Any] = None, collection: str = SESSIONS_COLLECTION):
        self.db = db or get_firestore_client()
        self.sessions_collection = self.db.collection(collection)

    def _update(self, session_id: str, data: Dict[str, Any], action: str) -> None:
        if not session_id or not isinstance(session_id, str):
            raise ValidationError("Invalid session_id")
        try:
            self.sessions_collection.document(session_id).update(data)
        except NotFound as e:
            raise NotFoundError(f"Session {session_id} not found") from e
        except Exception as e:
            logger.error(f"Failed to {action} for session {session_id}: {e}", exc_info=True)
            raise SessionRepositoryError(f"Failed to {action}: {e}") from e
        logger.debug(f"Session {session_id}: {action}")

    def get_session(self, session_id: str) -> Session:
        """
        Fetch and parse a session document.

        Raises:
            NotFoundError: If the session does not exist.
            SessionRepositoryError: If the read fails.
        """
        try:
            doc = self.sessions_collection.document(session_id).get()
        except Exception as e:
            logger.error(f"Failed to get session {session_id}: {e}", exc_info=True)
            raise SessionRepositoryError(f"Failed to get session: {e}") from e

        if not doc.exists:
            raise NotFoundError(f"Session {session_id} not found")

        data = doc.to_dict() or {}
        data["id"] = doc.id
        return Session.from_dict(data)

    def mark_pending(
        self,
        session_id: str,
        attempt_number: int,
        task_id: Optional[str] = None,
    ) -> None:
        """Initialise ``processing`` for a new attempt; drops any previous outputs."""
        if attempt_number < 1:
            raise ValidationError("attempt_number must be >= 1")

        processing: Dict[str, Any] = {
            "state": ProcessingStatus.PENDING.value,
            "startedAt": firestore.SERVER_TIMESTAMP,
            "updatedAt": firestore.SERVER_TIMESTAMP,
            "attemptNumber": attempt_number,
        }
        if task_id:
            processing["taskId"] = task_id

        self._update(
            session_id,
            {"processing": processing, "outputs": firestore.DELETE_FIELD},
            "mark pending",
        )

    def mark_running(self, session_id: str, step: Optional[PipelineStep] = None) -> None:
        update: Dict[str, Any] = {
            "processing.state": ProcessingStatus.RUNNING.value,
            "processing.updatedAt": firestore.SERVER_TIMESTAMP,
            "processing.error": firestore.DELETE_FIELD,
        }
        if step is not None:
            update["processing.currentStep"] = PipelineStep(step).value
        self._update(session_id, update, "mark running")

    def update_step(self, session_id: str, step: PipelineStep) -> None:
        """Touch only ``currentStep`` and ``updatedAt``."""
        self._update(
            session_id,
            {
                "processing.currentStep": PipelineStep(step).value,
                "processing.updatedAt": firestore.SERVER_TIMESTAMP,
            },
            f"update step to {PipelineStep(step).value}",
        )

    def mark_failed(self, session_id: str, code: str, message: str) -> None:
        code_value = getattr(code, "value", code)
        self._update(
            session_id,
            {
                "processing.state": ProcessingStatus.FAILED.value,
                "processing.updatedAt": firestore.SERVER_TIMESTAMP,
                "processing.error": {
                    "code": code_value,
                    "message": (message or "")[:MAX_ERROR_MESSAGE_LENGTH],
                    "timestamp": firestore.SERVER_TIMESTAMP,
                },
            },
            f"mark failed ({code_value})",
        )

    def finalize(self, session_id: str, outputs: SessionOutputs) -> None:
        """Replace ``processing`` with ``outputs`` in a single write."""
        outputs_data = outputs.to_dict()
        outputs_data["completedAt"] = firestore.SERVER_TIMESTAMP
        self._update(
            session_id,
            {"processing": firestore.DELETE_FIELD, "outputs": outputs_data},
            "finalize",
        )
