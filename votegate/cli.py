from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

import requests

from votegate.core.config import Settings, get_settings
from votegate.exceptions import VoteGateError
from votegate.logger import configure_logging
from votegate.services.orchestrator import FlowOutcome, FlowPurpose, FlowRequest, SessionOrchestrator

logger = logging.getLogger("votegate.cli")


def _parse_choice(raw: str) -> tuple[str, int]:
    position, sep, candidate = raw.partition("=")
    if not sep or not position.strip():
        raise argparse.ArgumentTypeError(f"Expected POSITION=CANDIDATE, got '{raw}'.")
    try:
        return position.strip(), int(candidate)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Candidate id must be an integer in '{raw}'.") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Biometric liveness and face-match gate for student elections")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the verification API")
    serve.add_argument("--host", default="127.0.0.1", help="Host interface")
    serve.add_argument("--port", type=int, default=8000, help="Port")

    enroll = subparsers.add_parser("enroll", help="Capture a live face and register it for an identity")
    enroll.add_argument("--identity", type=int, required=True, help="Identity id")
    enroll.add_argument("--camera", type=int, default=None, help="Camera index override")

    login = subparsers.add_parser("login", help="Verify a live face and open a login session")
    login.add_argument("--identity", type=int, required=True, help="Identity id")
    login.add_argument("--camera", type=int, default=None, help="Camera index override")

    vote = subparsers.add_parser("vote", help="Verify a live face, obtain a vote token and cast a ballot")
    vote.add_argument("--identity", type=int, required=True, help="Identity id")
    vote.add_argument("--election", type=int, required=True, help="Election id")
    vote.add_argument(
        "--choice",
        type=_parse_choice,
        action="append",
        default=[],
        help="Ballot choice as POSITION=CANDIDATE (repeatable)",
    )
    vote.add_argument("--camera", type=int, default=None, help="Camera index override")

    return parser


def build_orchestrator(settings: Settings, backend, camera_index: Optional[int] = None) -> SessionOrchestrator:
    from votegate.vision.camera import CameraStream
    from votegate.vision.face_engine import FaceEngine
    from votegate.vision.landmarks import MediaPipeLandmarkDetector

    index = settings.camera_index if camera_index is None else camera_index
    detector = MediaPipeLandmarkDetector()
    try:
        extractor = FaceEngine()
    except Exception:
        detector.close()
        raise
    return SessionOrchestrator(
        camera_factory=lambda: CameraStream(
            index,
            width=settings.frame_width,
            height=settings.frame_height,
            fps=settings.frame_fps,
        ),
        detector=detector,
        extractor=extractor,
        backend=backend,
        ear_threshold=settings.ear_threshold,
        mar_threshold=settings.mar_threshold,
        head_turn_low=settings.head_turn_low,
        head_turn_high=settings.head_turn_high,
        liveness_timeout=settings.liveness_timeout_seconds,
        extraction_timeout=settings.extraction_timeout_seconds,
        max_attempts=settings.max_attempts,
        reset_delay=settings.reset_delay_seconds,
        on_status=lambda message: print(f"[status] {message}"),
    )


def close_models(orchestrator: SessionOrchestrator) -> None:
    for model in (orchestrator.detector, orchestrator.extractor):
        close = getattr(model, "close", None)
        if close is not None:
            close()


def _report(outcome: FlowOutcome) -> int:
    print(f"[{outcome.status.value}] {outcome.message} (attempts={outcome.attempts})")
    return 0 if outcome.succeeded else 1


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_dir, level=settings.log_level, json_output=settings.log_json)

    if args.command == "serve":
        import uvicorn

        uvicorn.run("votegate.main:app", host=args.host, port=args.port)
        return 0

    from votegate.client import ApiBackend, VoteGateApiClient

    client = VoteGateApiClient.from_settings(settings)
    orchestrator: Optional[SessionOrchestrator] = None
    try:
        orchestrator = build_orchestrator(settings, ApiBackend(client), camera_index=args.camera)

        if args.command == "enroll":
            outcome = asyncio.run(orchestrator.run(FlowRequest(args.identity, FlowPurpose.ENROLL)))
            return _report(outcome)

        if args.command == "login":
            outcome = asyncio.run(orchestrator.run(FlowRequest(args.identity, FlowPurpose.LOGIN)))
            return _report(outcome)

        if args.command == "vote":
            if not args.choice:
                print("At least one --choice is required.", file=sys.stderr)
                return 2
            outcome = asyncio.run(
                orchestrator.run(FlowRequest(args.identity, FlowPurpose.VOTING, election_id=args.election))
            )
            code = _report(outcome)
            if code != 0 or not outcome.vote_token:
                return code
            result = client.cast_votes(dict(args.choice), outcome.vote_token)
            print(f"[ballot] {result.get('message')}")
            for entry in result.get("receipt", []):
                print(f"  position {entry['position']}: candidate {entry['candidate']}")
            return 0
    except VoteGateError as exc:
        logger.error("%s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except requests.RequestException as exc:
        logger.error("API request failed: %s", exc)
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1
    finally:
        if orchestrator is not None:
            close_models(orchestrator)
        client.session.close()

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
