"""
Tests for the operator CLI.
"""

import json
from unittest.mock import MagicMock

import pytest

from app.cli import build_parser, main

from tests.conftest import make_session_doc, seed_inputs


def _printed_json(out: str):
    # log lines may share stdout with the printed document
    return json.loads(out[out.index("{\n"):])


class TestParser:
    def test_process_defaults(self):
        parsed = build_parser().parse_args(["process", "s1"])
        assert parsed.command == "process"
        assert parsed.output_format == "image"
        assert parsed.aspect_ratio == "square"
        assert parsed.overlay is False
        assert parsed.ai_transform is False

    def test_process_options(self):
        parsed = build_parser().parse_args(
            ["process", "s1", "--format", "video", "--aspect-ratio", "story", "--overlay", "--ai-transform"]
        )
        assert parsed.output_format == "video"
        assert parsed.aspect_ratio == "story"
        assert parsed.overlay and parsed.ai_transform

    def test_rejects_unknown_format(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["process", "s1", "--format", "webm"])


class TestMain:
    def test_process_session(self, sessions, storage, fake_ffmpeg, scratch_root, capsys):
        doc = make_session_doc("cli-session", frames=3)
        sessions.add(doc)
        seed_inputs(storage, doc)

        code = main(["process", "cli-session", "--format", "gif"], sessions=sessions, storage=storage)

        assert code == 0
        output = _printed_json(capsys.readouterr().out)
        assert output["format"] == "gif"
        assert sessions.docs["cli-session"]["outputs"]["format"] == "gif"

    def test_process_failure_exit_code(self, sessions, storage, fake_ffmpeg, scratch_root):
        sessions.add(make_session_doc("cli-session", frames=0))
        assert main(["process", "cli-session"], sessions=sessions, storage=storage) == 1

    def test_status(self, sessions, storage, capsys):
        sessions.add(make_session_doc("cli-session", frames=2))

        assert main(["status", "cli-session"], sessions=sessions, storage=storage) == 0
        printed = _printed_json(capsys.readouterr().out)
        assert printed["inputAssets"] == 2
        assert printed["outputs"] is None

    def test_unknown_session(self, sessions, storage):
        assert main(["status", "ghost"], sessions=sessions, storage=storage) == 1

    def test_malformed_document_exit_code(self, sessions, storage):
        sessions.add({"id": "cli-session", "inputAssets": []})
        assert main(["status", "cli-session"], sessions=sessions, storage=storage) == 1

    def test_unexpected_error_exit_code(self, storage):
        sessions = MagicMock()
        sessions.get_session.side_effect = RuntimeError("firebase not initialised")
        assert main(["process", "cli-session"], sessions=sessions, storage=storage) == 1
