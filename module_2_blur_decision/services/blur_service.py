import logging
import threading
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Deque, List, Optional, Protocol, Sequence, Union

import numpy as np
from pydantic import BaseModel

from module_1_content_detection.app.models import DetectionSource, PerformanceTier
from module_1_content_detection.app.services.detector import ContentDetector
from module_1_content_detection.app.utils.frames import Frame
from module_1_content_detection.app.utils.geometry import Rect
from module_2_blur_decision.adapters.persistence import JsonPersistence
from module_2_blur_decision.core.decision_engine import DecisionEngine
from module_2_blur_decision.core.models import (
    ActionDecision,
    ContentAction,
    FrameDecisionRecord,
    WarningLevel,
    WarningSessionSnapshot,
)
from module_2_blur_decision.core.spatial import analyze_spatial_distribution
from module_2_blur_decision.core.warning_session import WarningSessionMachine

logger = logging.getLogger(__name__)


class OverlayRenderer(Protocol):
    def render(self, action: ContentAction, regions: Sequence[Rect]) -> None:
        ...


class RecordingOverlayRenderer:
    """Keeps the last overlay instruction so it can be polled by a UI."""

    def __init__(self) -> None:
        self.last_action: ContentAction = ContentAction.NO_ACTION
        self.last_regions: List[Rect] = []
        self.renders = 0

    def render(self, action: ContentAction, regions: Sequence[Rect]) -> None:
        self.last_action = action
        self.last_regions = list(regions)
        self.renders += 1
        logger.debug("Overlay -> %s with %d regions", action.name, len(self.last_regions))


class FrameOutcome(BaseModel):
    record: FrameDecisionRecord
    decision: ActionDecision
    warning: WarningSessionSnapshot
    session_started: bool = False


class BlurDecisionService:
    """Coordinate detection, action decisions, the reflection session and persistence."""

    def __init__(
        self,
        detector: ContentDetector,
        engine: DecisionEngine,
        session: WarningSessionMachine,
        persistence: Optional[JsonPersistence] = None,
        renderer: Optional[OverlayRenderer] = None,
        *,
        blur_on_timeout: bool = True,
        history_limit: int = 500,
    ) -> None:
        self.detector = detector
        self.engine = engine
        self.session = session
        self.persistence = persistence
        self.renderer = renderer or RecordingOverlayRenderer()
        self.blur_on_timeout = blur_on_timeout
        self._history: Deque[FrameDecisionRecord] = deque(maxlen=history_limit)
        self._frame_counter = 0
        self._lock = threading.Lock()

    def process_frame(
        self,
        frame: Union[Frame, np.ndarray],
        now: Optional[datetime] = None,
    ) -> FrameOutcome:
        now = now or datetime.now(timezone.utc)
        if not isinstance(frame, Frame):
            frame = Frame.from_array(frame)

        result = self.detector.analyze_frame(frame)
        decision = self.engine.decide(result, frame.area)
        timed_out = result.source is DetectionSource.TIMEOUT_DEFAULT
        if timed_out and self.blur_on_timeout and decision.action is ContentAction.NO_ACTION:
            decision = decision.model_copy(
                update={
                    "action": ContentAction.FULL_SCREEN_BLUR,
                    "warning_level": WarningLevel.LOW,
                    "reason": "analysis timed out; blurring as a precaution",
                }
            )
        rects = result.region_rects()
        decision = decision.model_copy(update={"spatial": analyze_spatial_distribution(rects, frame.width, frame.height)})

        session_started = False
        if not timed_out:
            if decision.action is ContentAction.IMMEDIATE_CLOSE and self.session.is_alive:
                self.session.escalate()
            else:
                session_started = self.session.on_decision(decision.action, now)
        self.renderer.render(decision.action, rects)

        with self._lock:
            self._frame_counter += 1
            frame_id = self._frame_counter
        warning = self.session.snapshot()
        record = FrameDecisionRecord(
            frame_id=frame_id,
            decided_at=now,
            action=decision.action,
            warning_level=decision.warning_level,
            coverage_percentage=decision.coverage_percentage,
            region_count=decision.metric.region_count,
            max_confidence=decision.metric.max_confidence,
            overall_confidence=result.overall_confidence,
            source=result.source.value,
            latency_ms=result.latency_ms,
            regions=[rect.to_list() for rect in rects],
            reason=decision.reason,
            warning_state=warning.state,
            spatial=decision.spatial,
        )
        self._history.append(record)
        if decision.action is not ContentAction.NO_ACTION:
            logger.info(
                "Frame %d -> %s (%s): %s",
                frame_id,
                decision.action.name,
                decision.warning_level.name,
                decision.reason,
            )
        if self.persistence:
            self.persistence.append_history([record])
            self.persistence.save_state(self.snapshot(now))
        return FrameOutcome(record=record, decision=decision, warning=warning, session_started=session_started)

    def warning_status(self) -> WarningSessionSnapshot:
        return self.session.snapshot()

    def continue_warning(self, now: Optional[datetime] = None) -> bool:
        allowed = self.session.try_continue(now)
        if allowed:
            self.renderer.render(ContentAction.NO_ACTION, [])
        self._save_state(now)
        return allowed

    def close_warning(self, now: Optional[datetime] = None) -> None:
        self.session.close(now)
        self.renderer.render(ContentAction.NO_ACTION, [])
        self._save_state(now)

    def set_performance_tier(self, tier: Union[str, PerformanceTier]) -> bool:
        return self.detector.set_performance_tier(tier)

    def history(self, limit: Optional[int] = None) -> List[FrameDecisionRecord]:
        items = list(self._history)
        if limit is not None:
            return items[-limit:]
        return items

    def snapshot(self, now: Optional[datetime] = None) -> dict:
        last = self._history[-1] if self._history else None
        return {
            "last_updated": now or datetime.now(timezone.utc),
            "tier": self.detector.context.tier.value,
            "frames_processed": self._frame_counter,
            "last_action": last.action.name if last else None,
            "last_frame_id": last.frame_id if last else None,
            "warning": self.session.snapshot().model_dump(),
        }

    def metrics(self) -> dict:
        actions = Counter(record.action.name for record in self._history)
        sources = Counter(record.source for record in self._history)
        report = getattr(self.detector.sink, "report", None)
        return {
            "frames_processed": self._frame_counter,
            "actions": dict(actions),
            "sources": dict(sources),
            "tier": self.detector.context.tier.value,
            "warning_state": self.session.state.value,
            "performance": report().to_dict() if callable(report) else None,
        }

    def reset(self) -> None:
        self.session.reset()
        self.detector.context.cache.clear()
        reset_sink = getattr(self.detector.sink, "reset", None)
        if callable(reset_sink):
            reset_sink()
        with self._lock:
            self._frame_counter = 0
        self._history.clear()
        self.renderer.render(ContentAction.NO_ACTION, [])
        if self.persistence:
            self.persistence.clear_history()
            self.persistence.save_state(self.snapshot())

    def _save_state(self, now: Optional[datetime]) -> None:
        if self.persistence:
            self.persistence.save_state(self.snapshot(now))
