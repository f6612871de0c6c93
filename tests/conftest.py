"""
Shared fixtures: in-memory session repository, in-memory storage gateway,
and a fake FFmpeg runner that writes placeholder output files.
"""

import copy
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

os.environ.setdefault("LOG_LEVEL", "INFO")

from app.core import media
from app.core.errors import StorageError
from app.core.repositories.exceptions import NotFoundError
from app.core.repositories.models import PipelineStep, Session, SessionOutputs
from app.core.storage import public_url, resolve_storage_key
from app.core.utils.ffmpeg import FFmpegResult
from app.core.workflow import context as workflow_context

TEST_BUCKET = "test-bucket"
PROJECT_ID = "project-1"
COMPANY_ID = "company-1"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySessionRepository:
    """Session repository with the same interface as SessionRepository, backed by dicts."""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.steps: List[str] = []
        self.calls: List[tuple] = []

    def add(self, doc: Dict[str, Any]) -> None:
        self.docs[doc["id"]] = copy.deepcopy(doc)

    def _doc(self, session_id: str) -> Dict[str, Any]:
        if session_id not in self.docs:
            raise NotFoundError(f"Session {session_id} not found")
        return self.docs[session_id]

    def get_session(self, session_id: str) -> Session:
        self.calls.append(("get_session", session_id))
        return Session.from_dict(copy.deepcopy(self._doc(session_id)))

    def mark_pending(self, session_id: str, attempt_number: int, task_id: Optional[str] = None) -> None:
        self.calls.append(("mark_pending", session_id, attempt_number, task_id))
        doc = self._doc(session_id)
        doc["processing"] = {
            "state": "pending",
            "startedAt": _now(),
            "updatedAt": _now(),
            "attemptNumber": attempt_number,
        }
        if task_id:
            doc["processing"]["taskId"] = task_id
        doc.pop("outputs", None)

    def mark_running(self, session_id: str, step: Optional[PipelineStep] = None) -> None:
        self.calls.append(("mark_running", session_id, step))
        processing = self._doc(session_id).setdefault("processing", {})
        processing["state"] = "running"
        processing["updatedAt"] = _now()
        processing.pop("error", None)
        if step is not None:
            processing["currentStep"] = PipelineStep(step).value
            self.steps.append(PipelineStep(step).value)

    def update_step(self, session_id: str, step: PipelineStep) -> None:
        self.calls.append(("update_step", session_id, step))
        processing = self._doc(session_id).setdefault("processing", {})
        processing["currentStep"] = PipelineStep(step).value
        processing["updatedAt"] = _now()
        self.steps.append(PipelineStep(step).value)

    def mark_failed(self, session_id: str, code: Any, message: str) -> None:
        self.calls.append(("mark_failed", session_id, getattr(code, "value", code)))
        processing = self._doc(session_id).setdefault("processing", {})
        processing["state"] = "failed"
        processing["updatedAt"] = _now()
        processing["error"] = {
            "code": getattr(code, "value", code),
            "message": message[:1000],
            "timestamp": _now(),
        }

    def finalize(self, session_id: str, outputs: SessionOutputs) -> None:
        self.calls.append(("finalize", session_id))
        doc = self._doc(session_id)
        doc.pop("processing", None)
        doc["outputs"] = {**outputs.to_dict(), "completedAt": _now()}


class FakeStorage:
    """Storage gateway keeping blobs in memory."""

    def __init__(self, bucket_name: str = TEST_BUCKET):
        self.bucket_name = bucket_name
        self.blobs: Dict[str, bytes] = {}
        self.downloaded: List[str] = []
        self.uploaded: List[str] = []

    @property
    def call_count(self) -> int:
        return len(self.downloaded) + len(self.uploaded)

    def put(self, key: str, data: bytes = b"\xff\xd8fake-jpeg") -> None:
        self.blobs[key] = data

    def download(self, storage_key: str, local_path) -> None:
        self.downloaded.append(storage_key)
        data = self.blobs.get(storage_key)
        if data is None:
            raise StorageError(f"File not found in storage: {storage_key}")
        Path(local_path).write_bytes(data)

    def download_bytes(self, storage_key: str) -> bytes:
        self.downloaded.append(storage_key)
        data = self.blobs.get(storage_key)
        if data is None:
            raise StorageError(f"File not found in storage: {storage_key}")
        return data

    def upload(self, local_path, storage_key: str, content_type: Optional[str] = None) -> str:
        data = Path(local_path).read_bytes()
        if not data:
            raise StorageError(f"Refusing to upload empty file: {local_path}")
        self.uploaded.append(storage_key)
        self.blobs[storage_key] = data
        return public_url(self.bucket_name, storage_key)


@dataclass
class FFmpegCall:
    args: List[str]
    timeout_seconds: float
    description: str


class FakeFFmpeg:
    """
    Stand-in for ``run_ffmpeg``: records each call and writes placeholder
    bytes to the output path (always the last argument).
    """

    def __init__(self):
        self.calls: List[FFmpegCall] = []
        self.failures: Dict[str, Exception] = {}
        self.hooks: Dict[str, Callable[[List[str]], None]] = {}
        self.write_output = True

    def fail_on(self, description: str, exc: Exception) -> None:
        self.failures[description] = exc

    def descriptions(self) -> List[str]:
        return [call.description for call in self.calls]

    async def __call__(self, args, *, timeout_seconds=60.0, description="FFmpeg operation", binary=None):
        args = list(args)
        self.calls.append(FFmpegCall(args, timeout_seconds, description))
        if description in self.hooks:
            self.hooks[description](args)
        if description in self.failures:
            raise self.failures[description]
        if self.write_output:
            Path(args[-1]).write_bytes(b"fake-media-output")
        return FFmpegResult(stdout="", stderr="", elapsed_seconds=0.01)


def make_session_doc(
    session_id: str = "session-1",
    frames: int = 1,
    **extra: Any,
) -> Dict[str, Any]:
    doc = {
        "id": session_id,
        "projectId": PROJECT_ID,
        "companyId": COMPANY_ID,
        "inputAssets": [
            {
                "url": f"https://storage.googleapis.com/{TEST_BUCKET}/{PROJECT_ID}/inputs/{session_id}/photo-{i}.jpg",
                "filename": f"photo-{i}.jpg",
                "mimeType": "image/jpeg",
                "sizeBytes": 2048,
            }
            for i in range(1, frames + 1)
        ],
    }
    doc.update(extra)
    return doc


def seed_inputs(storage: FakeStorage, doc: Dict[str, Any]) -> None:
    for asset in doc["inputAssets"]:
        storage.put(resolve_storage_key(asset["url"]))


@pytest.fixture
def sessions() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_ffmpeg(monkeypatch) -> FakeFFmpeg:
    fake = FakeFFmpeg()
    monkeypatch.setattr(media, "run_ffmpeg", fake)
    return fake


@pytest.fixture
def scratch_root(tmp_path, monkeypatch) -> Path:
    root = tmp_path / "scratch"
    monkeypatch.setattr(workflow_context, "SCRATCH_ROOT", root)
    return root
