import json
import logging
import os
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Optional

from module_2_blur_decision.core.models import FrameDecisionRecord

logger = logging.getLogger(__name__)


def to_jsonable(payload: Any) -> Any:
    """Convert snapshots holding datetimes and enums into plain JSON values."""
    if isinstance(payload, dict):
        return {str(key): to_jsonable(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [to_jsonable(item) for item in payload]
    if isinstance(payload, datetime):
        return payload.isoformat()
    if isinstance(payload, Enum):
        # Integer enums serialize by name.
        return payload.name if isinstance(payload.value, int) else payload.value
    return payload


def _write_json(path: Path, payload: Any) -> None:
    scratch = path.with_name(path.name + ".tmp")
    scratch.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    os.replace(scratch, path)


def _read_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return None


class JsonPersistence:
    """Decision history and the latest warning-state snapshot, stored as JSON files."""

    def __init__(self, history_path: Path, state_snapshot_path: Path, history_limit: Optional[int] = None) -> None:
        self.history_path = Path(history_path)
        self.state_snapshot_path = Path(state_snapshot_path)
        self.history_limit = history_limit
        for path in (self.history_path, self.state_snapshot_path):
            path.parent.mkdir(parents=True, exist_ok=True)

    def append_history(self, records: Iterable[FrameDecisionRecord]) -> None:
        fresh = [record.model_dump(mode="json") for record in records]
        if not fresh:
            return
        combined = self.load_history() + fresh
        if self.history_limit is not None:
            combined = combined[-self.history_limit:]
        _write_json(self.history_path, combined)

    def load_history(self) -> List[dict]:
        payload = _read_json(self.history_path)
        return payload if isinstance(payload, list) else []

    def save_state(self, state: dict) -> None:
        _write_json(self.state_snapshot_path, to_jsonable(state))

    def load_state(self) -> dict:
        payload = _read_json(self.state_snapshot_path)
        return payload if isinstance(payload, dict) else {}

    def clear_history(self) -> None:
        _write_json(self.history_path, [])
