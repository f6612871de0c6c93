"""
Operator command line for the media pipeline.

Runs a session through the same orchestrators the task endpoint uses, or
prints a session's processing state.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from app.config import GEMINI_API_KEY
from app.core.errors import PipelineError
from app.core.pipeline_config import AspectRatio, OutputFormat
from app.core.repositories import NotFoundError, RepositoryError, SessionRepository
from app.core.storage import StorageGateway
from app.core.workflow import PipelineOptions, process_session

logger = logging.getLogger("photobooth.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m app.cli",
        description="Photobooth media pipeline operator tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Re-run a session as a square image
  %(prog)s process abc123

  # Boomerang GIF in story format with the company overlay
  %(prog)s process abc123 --format gif --aspect-ratio story --overlay

  # Show the processing state of a session
  %(prog)s status abc123
        """,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Process a session locally")
    process.add_argument("session_id", help="Session document ID")
    process.add_argument(
        "--format", "-f",
        dest="output_format",
        choices=[f.value for f in OutputFormat],
        default=OutputFormat.IMAGE.value,
        help="Requested output format (default: image)",
    )
    process.add_argument(
        "--aspect-ratio", "-a",
        choices=[a.value for a in AspectRatio],
        default=AspectRatio.SQUARE.value,
        help="Output aspect ratio (default: square)",
    )
    process.add_argument("--overlay", action="store_true", help="Composite the company overlay")
    process.add_argument("--ai-transform", action="store_true", help="Apply the AI transform step")

    status = subparsers.add_parser("status", help="Print a session's processing state")
    status.add_argument("session_id", help="Session document ID")

    return parser


def _print_status(sessions: SessionRepository, session_id: str) -> int:
    session = sessions.get_session(session_id)
    data = {
        "id": session.id,
        "projectId": session.project_id,
        "inputAssets": len(session.input_assets),
        "processing": session.processing.to_dict() if session.processing else None,
        "outputs": session.outputs.to_dict() if session.outputs else None,
    }
    print(json.dumps(data, indent=2, default=str))
    return 0


def _process(sessions: SessionRepository, storage: StorageGateway, parsed: argparse.Namespace) -> int:
    options = PipelineOptions(
        aspect_ratio=AspectRatio(parsed.aspect_ratio),
        overlay=parsed.overlay,
        ai_transform=parsed.ai_transform,
    )
    session = sessions.get_session(parsed.session_id)
    attempt = (session.processing.attempt_number or 0) + 1 if session.processing else 1
    sessions.mark_pending(parsed.session_id, attempt)

    output = asyncio.run(
        process_session(
            parsed.session_id,
            OutputFormat(parsed.output_format),
            options,
            sessions=sessions,
            storage=storage,
            api_key=GEMINI_API_KEY,
            session=session,
        )
    )
    print(output.model_dump_json(by_alias=True, indent=2))
    return 0


def main(
    args: Optional[list] = None,
    sessions: Optional[SessionRepository] = None,
    storage: Optional[StorageGateway] = None,
) -> int:
    """Main CLI entry point."""
    parsed = build_parser().parse_args(args)

    if parsed.verbose:
        logging.getLogger("photobooth").setLevel(logging.DEBUG)
        logging.getLogger("app").setLevel(logging.DEBUG)

    try:
        sessions = sessions or SessionRepository()
        if parsed.command == "status":
            return _print_status(sessions, parsed.session_id)
        return _process(sessions, storage or StorageGateway(), parsed)
    except NotFoundError:
        logger.error(f"Session not found: {parsed.session_id}")
        return 1
    except (PipelineError, RepositoryError) as e:
        logger.error(f"Session {parsed.session_id} failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error for session {parsed.session_id}: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
