from __future__ import annotations

import json
from pathlib import Path

import cv2
import numpy as np

from module_1_content_detection.app.config.settings import load_settings
from module_1_content_detection.app.detect import build_arg_parser, process_source, resolve_settings, warm_up_detector
from module_1_content_detection.app.models import PerformanceTier
from module_1_content_detection.app.services.detector import ContentDetector
from module_1_content_detection.app.services.output_writer import OutputManager
from module_1_content_detection.app.utils.frames import Frame


def test_cli_flags_override_settings(tmp_path: Path) -> None:
    args = build_arg_parser().parse_args(
        ["--source", str(tmp_path), "--tier", "FAST", "--threshold", "0.45", "--model", str(tmp_path / "m.onnx")]
    )

    settings = resolve_settings(args)

    assert settings.performance_tier is PerformanceTier.FAST
    assert settings.flag_threshold == 0.45
    assert settings.model_path == tmp_path / "m.onnx"
    assert settings.process_every_n_frames == 1


def test_process_source_walks_image_directory(tmp_path: Path) -> None:
    frames_dir = tmp_path / "frames"
    frames_dir.mkdir()
    for name, value in (("a.png", 40), ("b.png", 200)):
        cv2.imwrite(str(frames_dir / name), np.full((64, 96, 3), value, dtype=np.uint8))
    (frames_dir / "notes.txt").write_text("ignored", encoding="utf-8")
    (frames_dir / "broken.png").write_bytes(b"not a png")

    settings = load_settings(data_dir=tmp_path / "data", preview_dir=tmp_path / "previews", max_workers=2)
    detector = ContentDetector(settings)
    manager = OutputManager(settings, metadata={"source": str(frames_dir)})
    try:
        processed = process_source(str(frames_dir), settings, detector, manager)
    finally:
        manager.close()
        detector.close()

    assert processed == 2
    stored = json.loads(manager.results_path.read_text(encoding="utf-8"))
    assert [record["source_id"] for record in stored["records"]] == ["a.png", "b.png"]
    assert stored["records"][0]["frame_size"] == [96, 64]
    assert stored["summary"]["frames"] == 2


def test_warm_up_leaves_cache_empty(tmp_path: Path) -> None:
    settings = load_settings(data_dir=tmp_path / "data", preview_dir=tmp_path / "previews", max_workers=2)
    detector = ContentDetector(settings)
    frames = (Frame.from_array(np.full((64, 64, 3), value, dtype=np.uint8)) for value in (10, 90, 170))
    try:
        warm_up_detector(detector, frames, count=2)
    finally:
        detector.close()

    assert len(detector.context.cache) == 0
    assert len(detector.sink.samples()) == 2
