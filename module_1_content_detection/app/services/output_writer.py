"""Detection record log and blurred preview frames on disk."""
from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

from ..config.settings import DetectionSettings
from ..models import DetectionResult

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass
class DetectionRecord:
    frame_id: int
    timestamp: str
    source_id: str
    tier: str
    result: DetectionResult
    frame_size: Optional[List[int]] = None
    preview_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        header: Dict[str, Any] = dict(
            frame_id=self.frame_id,
            timestamp=self.timestamp,
            source_id=self.source_id,
            tier=self.tier,
            frame_size=self.frame_size,
            preview_path=self.preview_path,
        )
        return {**header, **self.result.to_dict()}


def _purge(path: Path) -> None:
    try:
        if path.is_dir():
            shutil.rmtree(path, ignore_errors=True)
        elif path.exists():
            path.unlink()
    except OSError as exc:
        LOGGER.warning("Could not delete %s: %s", path, exc)


def reset_output_state(settings: DetectionSettings) -> None:
    """Delete the previous run's record log and previews."""

    _purge(settings.data_dir / settings.results_filename)
    if settings.preview_dir.exists():
        for entry in settings.preview_dir.iterdir():
            _purge(entry)
    settings.preview_dir.mkdir(parents=True, exist_ok=True)


class OutputManager:
    """Collects ``DetectionRecord`` entries and rewrites the JSON log every few frames."""

    def __init__(self, settings: DetectionSettings, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.settings = settings
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.records: List[DetectionRecord] = []
        self._pending = 0
        reset_output_state(settings)
        self.results_path = settings.data_dir / settings.results_filename
        self.results_path.parent.mkdir(parents=True, exist_ok=True)

    def append_record(self, record: DetectionRecord) -> None:
        self.records.append(record)
        self._pending += 1
        if self._pending >= self.settings.flush_every_n_frames:
            self.flush()

    def flush(self, force: bool = False) -> None:
        if not (self.records or force):
            return
        document = {
            "schema_version": SCHEMA_VERSION,
            "generated_at": utc_timestamp(),
            "metadata": self.metadata,
            "summary": self.summary(),
            "records": [record.to_dict() for record in self.records],
        }
        self.results_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        self._pending = 0
        LOGGER.info("Wrote %d detection records to %s", len(self.records), self.results_path)

    def summary(self) -> Dict[str, Any]:
        confidences = [record.result.overall_confidence for record in self.records]
        return {
            "frames": len(self.records),
            "flagged_frames": sum(1 for record in self.records if record.result.is_flagged),
            "max_confidence": round(max(confidences, default=0.0), 4),
        }

    def close(self) -> None:
        self.flush(force=True)

    def save_preview(self, image: np.ndarray, frame_id: int) -> Path:
        """Write ``frame_<id>.jpg`` and swap ``latest.jpg`` to the same image."""

        directory = self.settings.preview_dir
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / f"frame_{frame_id:05d}.jpg"
        if not cv2.imwrite(str(target), image):
            LOGGER.warning("OpenCV refused to encode preview %s", target)
            return target
        self._write_latest_snapshot(directory, image)
        return target

    def _write_latest_snapshot(self, directory: Path, image: np.ndarray) -> None:
        staging = directory / "latest.partial.jpg"
        cv2.imwrite(str(staging), image)
        staging.replace(directory / "latest.jpg")


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
