"""
Tests for SessionRepository against a mocked Firestore client.
"""

from unittest.mock import MagicMock

import pytest
from google.api_core.exceptions import NotFound
from google.cloud import firestore

from app.core.errors import ErrorCode
from app.core.pipeline_config import ArtifactFormat
from app.core.repositories import (
    NotFoundError,
    SessionRepository,
    SessionRepositoryError,
    ValidationError,
)
from app.core.repositories.models import (
    Dimensions,
    PipelineStep,
    ProcessingStatus,
    SessionOutputs,
)


@pytest.fixture
def db():
    return MagicMock()


@pytest.fixture
def doc_ref(db):
    return db.collection.return_value.document.return_value


@pytest.fixture
def repo(db):
    return SessionRepository(db=db)


def _update_payload(doc_ref):
    doc_ref.update.assert_called_once()
    return doc_ref.update.call_args[0][0]


class TestGetSession:
    def test_parses_document(self, repo, db, doc_ref):
        snapshot = MagicMock()
        snapshot.exists = True
        snapshot.id = "s1"
        snapshot.to_dict.return_value = {
            "projectId": "p1",
            "companyId": "acme",
            "inputAssets": [{"url": "gs://b/p1/a.jpg", "filename": "a.jpg"}],
            "overlays": {"square": {"filePath": "media/acme/overlays/sq.png"}, "story": None},
            "processing": {"state": "running", "currentStep": "processing", "attemptNumber": 2},
            "someOtherSubsystemField": True,
        }
        doc_ref.get.return_value = snapshot

        session = repo.get_session("s1")

        db.collection.assert_called_with("sessions")
        assert session.id == "s1"
        assert session.project_id == "p1"
        assert len(session.input_assets) == 1
        assert list(session.overlays) == ["square"]
        assert session.processing.state == ProcessingStatus.RUNNING
        assert session.processing.current_step == PipelineStep.PROCESSING

    def test_missing_document(self, repo, doc_ref):
        doc_ref.get.return_value.exists = False
        with pytest.raises(NotFoundError):
            repo.get_session("missing")

    def test_read_failure_is_wrapped(self, repo, doc_ref):
        doc_ref.get.side_effect = RuntimeError("unavailable")
        with pytest.raises(SessionRepositoryError):
            repo.get_session("s1")


class TestStateTransitions:
    """Every write is a narrow update() with server timestamps."""

    def test_mark_pending(self, repo, doc_ref):
        repo.mark_pending("s1", 2, task_id="task-abc")

        payload = _update_payload(doc_ref)
        processing = payload["processing"]
        assert processing["state"] == "pending"
        assert processing["attemptNumber"] == 2
        assert processing["taskId"] == "task-abc"
        assert processing["startedAt"] is firestore.SERVER_TIMESTAMP
        assert processing["updatedAt"] is firestore.SERVER_TIMESTAMP
        assert payload["outputs"] is firestore.DELETE_FIELD
        doc_ref.set.assert_not_called()

    def test_mark_pending_without_task_id(self, repo, doc_ref):
        repo.mark_pending("s1", 1)
        assert "taskId" not in _update_payload(doc_ref)["processing"]

    def test_mark_pending_rejects_bad_attempt(self, repo, doc_ref):
        with pytest.raises(ValidationError):
            repo.mark_pending("s1", 0)
        doc_ref.update.assert_not_called()

    def test_mark_running(self, repo, doc_ref):
        repo.mark_running("s1", PipelineStep.DOWNLOADING)

        payload = _update_payload(doc_ref)
        assert payload["processing.state"] == "running"
        assert payload["processing.currentStep"] == "downloading"
        assert payload["processing.updatedAt"] is firestore.SERVER_TIMESTAMP
        assert payload["processing.error"] is firestore.DELETE_FIELD

    def test_update_step_touches_only_step_and_timestamp(self, repo, doc_ref):
        repo.update_step("s1", PipelineStep.AI_TRANSFORM)

        assert _update_payload(doc_ref) == {
            "processing.currentStep": "ai-transform",
            "processing.updatedAt": firestore.SERVER_TIMESTAMP,
        }

    def test_mark_failed_truncates_message(self, repo, doc_ref):
        repo.mark_failed("s1", ErrorCode.TIMEOUT, "x" * 5000)

        payload = _update_payload(doc_ref)
        assert payload["processing.state"] == "failed"
        error = payload["processing.error"]
        assert error["code"] == "TIMEOUT"
        assert len(error["message"]) == 1000
        assert error["timestamp"] is firestore.SERVER_TIMESTAMP

    def test_finalize_is_a_single_write(self, repo, doc_ref):
        outputs = SessionOutputs(
            primary_url="https://storage.googleapis.com/b/p1/results/s1-output.gif",
            thumbnail_url="https://storage.googleapis.com/b/p1/results/s1-thumb.jpg",
            format=ArtifactFormat.GIF,
            dimensions=Dimensions(width=1080, height=1920),
            size_bytes=1234,
            processing_time_ms=800,
        )
        repo.finalize("s1", outputs)

        payload = _update_payload(doc_ref)
        assert payload["processing"] is firestore.DELETE_FIELD
        assert payload["outputs"]["primaryUrl"].endswith("s1-output.gif")
        assert payload["outputs"]["format"] == "gif"
        assert payload["outputs"]["dimensions"] == {"width": 1080, "height": 1920}
        assert payload["outputs"]["completedAt"] is firestore.SERVER_TIMESTAMP

    def test_missing_document_on_update(self, repo, doc_ref):
        doc_ref.update.side_effect = NotFound("no document")
        with pytest.raises(NotFoundError):
            repo.update_step("missing", PipelineStep.UPLOADING)

    def test_write_failure_is_wrapped(self, repo, doc_ref):
        doc_ref.update.side_effect = RuntimeError("deadline exceeded")
        with pytest.raises(SessionRepositoryError):
            repo.mark_running("s1")

    def test_invalid_session_id(self, repo, doc_ref):
        with pytest.raises(ValidationError):
            repo.update_step("", PipelineStep.UPLOADING)
