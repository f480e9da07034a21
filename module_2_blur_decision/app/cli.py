"""Convenience CLI for running one image through detection and decision logic."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from module_1_content_detection.app.config.settings import load_settings as load_detection_settings
from module_1_content_detection.app.errors import InvalidFrame
from module_1_content_detection.app.services.detector import ContentDetector
from module_1_content_detection.app.utils.frames import load_image
from module_2_blur_decision.adapters.persistence import JsonPersistence
from module_2_blur_decision.app.settings import DecisionSettings, get_settings
from module_2_blur_decision.core.decision_engine import DecisionEngine
from module_2_blur_decision.core.warning_session import WarningSessionMachine
from module_2_blur_decision.services.blur_service import BlurDecisionService


def _build_service(settings: DecisionSettings, tier: str | None, persist: bool) -> BlurDecisionService:
    detection_settings = load_detection_settings(**({"performance_tier": tier} if tier else {}))
    session = WarningSessionMachine(
        default_seconds=settings.reflection_seconds,
        repeat_penalty_seconds=settings.repeat_penalty_seconds,
        repeat_window_seconds=settings.repeat_window_seconds,
        escalation_seconds=settings.escalation_seconds,
    )
    persistence = (
        JsonPersistence(settings.history_path, settings.state_snapshot_path, history_limit=settings.history_limit)
        if persist
        else None
    )
    return BlurDecisionService(
        ContentDetector(detection_settings),
        DecisionEngine(settings.thresholds()),
        session,
        persistence,
        blur_on_timeout=settings.blur_on_timeout,
        history_limit=settings.history_limit,
    )


def _dump(obj: object) -> str:
    return json.dumps(
        obj,
        indent=2,
        default=lambda value: value.isoformat() if hasattr(value, "isoformat") else value,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Analyse one image and print the blur decision.")
    parser.add_argument("image", type=Path, help="Image file to analyse.")
    parser.add_argument("--tier", type=str, default=None, help="Performance tier override.")
    parser.add_argument(
        "--simulate-reflection",
        action="store_true",
        help="Tick any started reflection session to completion and dismiss it.",
    )
    parser.add_argument("--no-persist", action="store_true", help="Do not write history or state files.")
    args = parser.parse_args()

    settings = get_settings()
    service = _build_service(settings, args.tier, persist=settings.persist_history and not args.no_persist)
    now = datetime.now(timezone.utc)

    try:
        frame = load_image(args.image)
    except InvalidFrame as exc:
        print(f"Unable to analyse {args.image}: {exc}", file=sys.stderr)
        sys.exit(2)

    try:
        outcome = service.process_frame(frame, now)
        decision = outcome.decision
        print(
            "[Frame {frame:02d}] Action: {action} | Level: {level} | Coverage: {coverage:.1%} | Regions: {count}".format(
                frame=outcome.record.frame_id,
                action=decision.action.name,
                level=decision.warning_level.name,
                coverage=decision.coverage_percentage,
                count=decision.metric.region_count,
            )
        )
        print(f"Reason: {decision.reason}")
        print("Decision record:")
        print(_dump(outcome.record.model_dump(mode="json")))

        if outcome.session_started:
            print(f"Reflection session started ({outcome.warning.required_seconds}s)")
            if args.simulate_reflection:
                ticks = 0
                while not service.session.snapshot().dismissible:
                    service.session.tick()
                    ticks += 1
                print(f"Dismissible after {ticks} ticks; continue allowed: {service.continue_warning()}")

        print("Warning status:")
        print(_dump(service.warning_status().model_dump(mode="json")))
    finally:
        service.detector.close()


if __name__ == "__main__":
    main()
