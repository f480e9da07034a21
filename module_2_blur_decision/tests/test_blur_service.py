import json
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import pytest

from module_1_content_detection.app.config.settings import load_settings as load_detection_settings
from module_1_content_detection.app.models import DetectionResult, DetectionSource, PerformanceTier, Region
from module_1_content_detection.app.services.classifier import ClassificationBackend
from module_1_content_detection.app.services.detector import ContentDetector, DetectionContext
from module_1_content_detection.app.services.performance_monitor import PerformanceMonitor
from module_1_content_detection.app.utils.geometry import Rect
from module_2_blur_decision.adapters.persistence import JsonPersistence
from module_2_blur_decision.core.decision_engine import DecisionEngine
from module_2_blur_decision.core.models import ContentAction, FrameDecisionRecord, WarningLevel, WarningState
from module_2_blur_decision.core.warning_session import WarningSessionMachine
from module_2_blur_decision.services.blur_service import BlurDecisionService, RecordingOverlayRenderer


class SlowModel:
    def score(self, pixels: np.ndarray) -> float:
        time.sleep(0.5)
        return 0.1


def grey(size: int = 224) -> np.ndarray:
    return np.full((size, size, 3), 128, dtype=np.uint8)


def fixed_result(regions: list) -> DetectionResult:
    overall = max((region.confidence for region in regions), default=0.0)
    return DetectionResult.from_regions(regions, overall, 0.3, DetectionSource.MODEL)


@pytest.fixture()
def build_service(tmp_path: Path):
    created = []

    def _build(model: object = None, tier: PerformanceTier = PerformanceTier.BALANCED, **kwargs) -> BlurDecisionService:
        settings = load_detection_settings(
            data_dir=tmp_path / "data",
            preview_dir=tmp_path / "previews",
            max_workers=2,
            performance_tier=tier,
        )
        backend = ClassificationBackend(model=model) if model is not None else ClassificationBackend()
        detector = ContentDetector(settings, context=DetectionContext(settings, backend=backend), sink=PerformanceMonitor())
        service = BlurDecisionService(
            detector,
            DecisionEngine(),
            WarningSessionMachine(default_seconds=3),
            JsonPersistence(tmp_path / "history.json", tmp_path / "state.json", history_limit=50),
            RecordingOverlayRenderer(),
            **kwargs,
        )
        created.append(detector)
        return service

    yield _build
    for detector in created:
        detector.close()


def test_clean_frame_is_recorded_and_persisted(build_service, tmp_path: Path) -> None:
    service = build_service()

    outcome = service.process_frame(grey())

    assert outcome.decision.action is ContentAction.NO_ACTION
    assert not outcome.session_started
    assert outcome.record.frame_id == 1
    assert outcome.record.source == DetectionSource.HEURISTIC.value
    assert len(service.history()) == 1

    history = json.loads((tmp_path / "history.json").read_text())
    assert history[0]["action"] == "NO_ACTION"
    assert history[0]["warning_level"] == "NONE"
    state = json.loads((tmp_path / "state.json").read_text())
    assert state["frames_processed"] == 1
    assert state["warning"]["state"] == "idle"


def test_timeout_blurs_without_starting_session(build_service) -> None:
    service = build_service(SlowModel(), tier=PerformanceTier.ULTRA_FAST)

    outcome = service.process_frame(grey())

    assert outcome.record.source == DetectionSource.TIMEOUT_DEFAULT.value
    assert outcome.decision.action is ContentAction.FULL_SCREEN_BLUR
    assert outcome.decision.warning_level is WarningLevel.LOW
    assert not outcome.session_started
    assert service.session.state is WarningState.IDLE
    assert service.renderer.last_action is ContentAction.FULL_SCREEN_BLUR


def test_timeout_policy_can_be_disabled(build_service) -> None:
    service = build_service(SlowModel(), tier=PerformanceTier.ULTRA_FAST, blur_on_timeout=False)

    outcome = service.process_frame(grey())

    assert outcome.decision.action is ContentAction.NO_ACTION


def test_severe_frame_starts_reflection_session(build_service) -> None:
    service = build_service()
    regions = [Region(rect=Rect(0, 0, 200, 200), confidence=0.9)]
    service.detector.analyze_frame = lambda frame, tier=None: fixed_result(regions)

    outcome = service.process_frame(grey())

    assert outcome.decision.action is ContentAction.FULL_SCREEN_BLUR
    assert outcome.session_started
    assert outcome.warning.state is WarningState.ACTIVE
    assert outcome.record.warning_state is WarningState.ACTIVE
    assert service.renderer.last_regions == [Rect(0, 0, 200, 200)]

    assert not service.continue_warning()
    for _ in range(3):
        service.session.tick()
    assert service.continue_warning()
    assert service.warning_status().state is WarningState.CLOSED
    assert service.renderer.last_action is ContentAction.NO_ACTION


def test_immediate_close_escalates_live_session(build_service) -> None:
    service = build_service()
    service.engine = DecisionEngine(service.engine.thresholds.model_copy(update={"immediate_close_coverage": 0.5}))
    block = [Region(rect=Rect(i * 30, 0, i * 30 + 20, 20), confidence=0.9) for i in range(6)]
    service.detector.analyze_frame = lambda frame, tier=None: fixed_result(block)
    started = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert service.process_frame(grey(), started).session_started

    severe = [Region(rect=Rect(0, 0, 224, 224), confidence=0.95)]
    service.detector.analyze_frame = lambda frame, tier=None: fixed_result(severe)
    outcome = service.process_frame(grey(), started + timedelta(seconds=1))

    assert outcome.decision.action is ContentAction.IMMEDIATE_CLOSE
    assert not outcome.session_started
    assert outcome.warning.escalations == 1
    assert outcome.warning.remaining_seconds == 13


def test_close_and_reset(build_service, tmp_path: Path) -> None:
    service = build_service()
    service.process_frame(grey())
    service.close_warning()
    assert service.warning_status().state is WarningState.CLOSED

    service.reset()

    assert service.history() == []
    assert service.warning_status().state is WarningState.IDLE
    assert service.metrics()["frames_processed"] == 0
    assert len(service.detector.context.cache) == 0
    assert json.loads((tmp_path / "history.json").read_text()) == []


def test_metrics_and_tier_switch(build_service) -> None:
    service = build_service()
    service.process_frame(grey())
    service.process_frame(grey())

    metrics = service.metrics()
    assert metrics["frames_processed"] == 2
    assert metrics["actions"] == {"NO_ACTION": 2}
    assert metrics["performance"]["sample_count"] == 2

    assert service.set_performance_tier("quality")
    assert service.metrics()["tier"] == "QUALITY"
    with pytest.raises(ValueError):
        service.set_performance_tier("warp")
    assert [record.frame_id for record in service.history(1)] == [2]


def test_persistence_trims_history(tmp_path: Path) -> None:
    persistence = JsonPersistence(tmp_path / "nested" / "history.json", tmp_path / "nested" / "state.json", history_limit=2)
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    records = [
        FrameDecisionRecord(
            frame_id=index,
            decided_at=now,
            action=ContentAction.SELECTIVE_BLUR,
            warning_level=WarningLevel.LOW,
            coverage_percentage=0.05,
            region_count=1,
            max_confidence=0.4,
            overall_confidence=0.4,
            source=DetectionSource.MODEL.value,
            latency_ms=3.0,
        )
        for index in range(1, 4)
    ]

    persistence.append_history(records[:2])
    persistence.append_history(records[2:])
    persistence.save_state({"last_updated": now, "last_action": ContentAction.SELECTIVE_BLUR, "state": WarningState.ACTIVE})

    assert [item["frame_id"] for item in persistence.load_history()] == [2, 3]
    assert persistence.load_state() == {
        "last_updated": now.isoformat(),
        "last_action": "SELECTIVE_BLUR",
        "state": "active",
    }
