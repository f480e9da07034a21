import time
from datetime import datetime, timedelta, timezone

from module_2_blur_decision.core.models import ContentAction, WarningState
from module_2_blur_decision.core.warning_session import SessionTicker, WarningSessionMachine


def test_session_dismissible_after_exactly_required_ticks() -> None:
    machine = WarningSessionMachine(default_seconds=15)
    assert machine.start_session()

    for _ in range(14):
        machine.tick()
        assert not machine.try_continue()
    assert machine.snapshot().remaining_seconds == 1

    assert machine.tick() is WarningState.DISMISSIBLE
    snapshot = machine.snapshot()
    assert snapshot.dismissible
    assert snapshot.progress == 1.0

    assert machine.try_continue()
    assert machine.state is WarningState.CLOSED
    assert not machine.try_continue()


def test_only_severe_actions_start_sessions() -> None:
    machine = WarningSessionMachine()

    assert not machine.on_decision(ContentAction.NO_ACTION)
    assert not machine.on_decision(ContentAction.SELECTIVE_BLUR)
    assert machine.state is WarningState.IDLE

    assert machine.on_decision(ContentAction.BLOCK_AND_WARN)
    assert not machine.on_decision(ContentAction.FULL_SCREEN_BLUR)
    assert machine.snapshot().required_seconds == 15


def test_repeat_offence_adds_penalty_inside_window() -> None:
    machine = WarningSessionMachine(default_seconds=15, repeat_penalty_seconds=10, repeat_window_seconds=60)
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)

    machine.start_session(now=start)
    machine.close(now=start + timedelta(seconds=5))
    machine.start_session(now=start + timedelta(seconds=35))
    assert machine.snapshot().required_seconds == 25

    machine.close(now=start + timedelta(seconds=40))
    machine.start_session(now=start + timedelta(seconds=200))
    assert machine.snapshot().required_seconds == 15


def test_escalate_only_while_active() -> None:
    machine = WarningSessionMachine(default_seconds=2, escalation_seconds=10)
    assert not machine.escalate()

    machine.start_session()
    assert machine.escalate()
    snapshot = machine.snapshot()
    assert snapshot.remaining_seconds == 12
    assert snapshot.required_seconds == 12
    assert snapshot.escalations == 1

    for _ in range(12):
        machine.tick()
    assert machine.state is WarningState.DISMISSIBLE
    assert not machine.escalate()
    assert machine.state is WarningState.DISMISSIBLE


def test_close_from_active_discards_session() -> None:
    machine = WarningSessionMachine(default_seconds=5)
    machine.start_session()
    machine.tick()
    assert machine.snapshot().progress == 0.2

    machine.close()

    snapshot = machine.snapshot()
    assert snapshot.state is WarningState.CLOSED
    assert snapshot.remaining_seconds == 0
    assert snapshot.last_closed_at is not None
    assert machine.start_session()


def test_ticker_drives_session_to_dismissible() -> None:
    machine = WarningSessionMachine(default_seconds=3)
    machine.start_session()
    ticker = SessionTicker(machine, interval_seconds=0.01)
    ticker.start()
    try:
        deadline = time.monotonic() + 2.0
        while machine.state is not WarningState.DISMISSIBLE and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        ticker.stop()

    assert machine.state is WarningState.DISMISSIBLE
    assert not ticker.running
