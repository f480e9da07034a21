import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from module_2_blur_decision.core.models import ContentAction, WarningSessionSnapshot, WarningState

logger = logging.getLogger(__name__)

SESSION_ACTIONS = (
    ContentAction.FULL_SCREEN_BLUR,
    ContentAction.BLOCK_AND_WARN,
    ContentAction.IMMEDIATE_CLOSE,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WarningSessionMachine:
    """Mandatory reflection countdown shown before a full-screen warning can be dismissed."""

    def __init__(
        self,
        default_seconds: int = 15,
        repeat_penalty_seconds: int = 10,
        repeat_window_seconds: float = 60.0,
        escalation_seconds: int = 10,
    ) -> None:
        self.default_seconds = max(int(default_seconds), 1)
        self.repeat_penalty_seconds = max(int(repeat_penalty_seconds), 0)
        self.repeat_window = timedelta(seconds=max(repeat_window_seconds, 0.0))
        self.escalation_seconds = max(int(escalation_seconds), 0)
        self._lock = threading.RLock()
        self._state = WarningState.IDLE
        self._started_at: Optional[datetime] = None
        self._required = 0
        self._remaining = 0
        self._escalations = 0
        self._last_closed_at: Optional[datetime] = None

    @property
    def state(self) -> WarningState:
        with self._lock:
            return self._state

    @property
    def is_alive(self) -> bool:
        with self._lock:
            return self._state in (WarningState.ACTIVE, WarningState.DISMISSIBLE)

    def start_session(self, required_seconds: Optional[int] = None, now: Optional[datetime] = None) -> bool:
        """Open a session unless one is already running; repeat offences add a penalty."""

        now = now or _utcnow()
        with self._lock:
            if self._state in (WarningState.ACTIVE, WarningState.DISMISSIBLE):
                return False
            required = int(required_seconds) if required_seconds is not None else self.default_seconds
            if self._last_closed_at is not None and now - self._last_closed_at <= self.repeat_window:
                required += self.repeat_penalty_seconds
            required = max(required, 1)
            self._state = WarningState.ACTIVE
            self._started_at = now
            self._required = required
            self._remaining = required
            self._escalations = 0
        logger.info("Reflection session started for %ds", required)
        return True

    def on_decision(self, action: ContentAction, now: Optional[datetime] = None) -> bool:
        if action not in SESSION_ACTIONS:
            return False
        return self.start_session(now=now)

    def tick(self) -> WarningState:
        with self._lock:
            if self._state is WarningState.ACTIVE:
                self._remaining = max(0, self._remaining - 1)
                if self._remaining == 0:
                    self._state = WarningState.DISMISSIBLE
                    logger.info("Reflection period complete; session is dismissible")
            return self._state

    def try_continue(self, now: Optional[datetime] = None) -> bool:
        with self._lock:
            if self._state is not WarningState.DISMISSIBLE:
                return False
            self._close_locked(now or _utcnow())
        return True

    def close(self, now: Optional[datetime] = None) -> None:
        with self._lock:
            if self._state in (WarningState.ACTIVE, WarningState.DISMISSIBLE):
                self._close_locked(now or _utcnow())
            else:
                # Nothing to discard; no repeat penalty either.
                self._state = WarningState.CLOSED

    def escalate(self, extra_seconds: Optional[int] = None) -> bool:
        extra = self.escalation_seconds if extra_seconds is None else max(int(extra_seconds), 0)
        with self._lock:
            if self._state is not WarningState.ACTIVE or extra == 0:
                return False
            self._remaining += extra
            self._required += extra
            self._escalations += 1
            remaining = self._remaining
        logger.info("Reflection session escalated by %ds (%ds remaining)", extra, remaining)
        return True

    def reset(self) -> None:
        with self._lock:
            self._state = WarningState.IDLE
            self._started_at = None
            self._required = 0
            self._remaining = 0
            self._escalations = 0
            self._last_closed_at = None

    def snapshot(self) -> WarningSessionSnapshot:
        with self._lock:
            progress = 0.0
            if self._required > 0:
                progress = (self._required - self._remaining) / self._required
            return WarningSessionSnapshot(
                state=self._state,
                started_at=self._started_at,
                required_seconds=self._required,
                remaining_seconds=self._remaining,
                progress=max(0.0, min(1.0, progress)),
                dismissible=self._state is WarningState.DISMISSIBLE,
                escalations=self._escalations,
                last_closed_at=self._last_closed_at,
            )

    def _close_locked(self, now: datetime) -> None:
        self._state = WarningState.CLOSED
        self._last_closed_at = now
        self._started_at = None
        self._required = 0
        self._remaining = 0
        logger.info("Reflection session closed")


class SessionTicker:
    """Background thread ticking a session machine once per interval."""

    def __init__(self, machine: WarningSessionMachine, interval_seconds: float = 1.0) -> None:
        self.machine = machine
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="reflection-ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout if timeout is not None else self.interval_seconds * 2)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.machine.tick()
            except Exception:  # pragma: no cover - keep ticking on unexpected errors
                logger.exception("Reflection ticker failed")
