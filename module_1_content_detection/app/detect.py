"""Entry point for Module 1 screen content detection."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple

from .config.settings import DetectionSettings, load_settings
from .errors import InvalidFrame
from .models import DetectionResult, PerformanceTier
from .services.detector import ContentDetector
from .services.output_writer import DetectionRecord, OutputManager, utc_timestamp
from .services.overlay import PreviewRenderer
from .services.performance_monitor import PerformanceMonitor
from .utils.frames import IMAGE_SUFFIXES, Frame, iter_frames, iter_image_paths, load_image, managed_capture

LOGGER = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Module 1 - Screen Content Detection")
    parser.add_argument("--source", type=str, required=True, help="Image file, image directory, video path or device index")
    parser.add_argument("--model", type=str, default=None, help="Path to ONNX classifier weights")
    parser.add_argument("--tier", choices=[tier.value for tier in PerformanceTier], default=None, help="Performance tier")
    parser.add_argument("--tier-profile", type=str, default=None, help="YAML file overriding tile edges per tier")
    parser.add_argument("--threshold", type=float, default=None, help="Tile flag threshold")
    parser.add_argument("--process-every", type=int, default=None, help="Process only every Nth video frame")
    parser.add_argument("--save-previews", action="store_true", help="Write blurred previews of flagged frames")
    parser.add_argument("--log-format", choices=["text", "json"], default=None, help="Logging format")
    parser.add_argument("--warmup", type=int, default=0, help="Number of warm-up frames")
    return parser


LOG_FORMATS = {
    "text": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    "json": '{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
}

# CLI flag -> (settings field, converter)
CLI_OVERRIDES = {
    "model": ("model_path", Path),
    "tier": ("performance_tier", str),
    "tier_profile": ("tier_profile_path", Path),
    "threshold": ("flag_threshold", float),
    "process_every": ("process_every_n_frames", int),
    "log_format": ("log_format", str),
}


def setup_logging(settings: DetectionSettings) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMATS.get(settings.log_format, LOG_FORMATS["text"])))
    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)


def resolve_settings(args: argparse.Namespace) -> DetectionSettings:
    overrides = {}
    for flag, (field, convert) in CLI_OVERRIDES.items():
        value = getattr(args, flag, None)
        if value is not None:
            overrides[field] = convert(value)
    return load_settings(**overrides)


def iter_source_frames(source: str, settings: DetectionSettings) -> Iterator[Tuple[int, Frame, str]]:
    """Yield ``(frame_id, frame, label)`` from an image, an image directory or a video."""

    path = Path(source)
    if path.is_dir() or path.suffix.lower() in IMAGE_SUFFIXES:
        for index, image_path in enumerate(iter_image_paths(path), start=1):
            try:
                yield index, load_image(image_path), image_path.name
            except InvalidFrame as exc:
                LOGGER.warning("Skipping %s: %s", image_path, exc)
        return

    video_source: str | int
    try:
        video_source = int(source)
    except ValueError:
        video_source = source
    with managed_capture(video_source) as capture:
        for captured in iter_frames(capture, process_every=settings.process_every_n_frames):
            yield captured.index, captured.frame, f"{source}@{captured.timestamp_ms:.0f}ms"


def warm_up_detector(detector: ContentDetector, frames: Iterable[Frame], count: int) -> None:
    if count <= 0:
        return
    LOGGER.info("Warm-up pass over %d frames", count)
    for index, frame in enumerate(frames):
        if index >= count:
            break
        detector.analyze_frame(frame)
    detector.context.cache.clear()


def build_record(frame_id: int, frame: Frame, result: DetectionResult, tier: PerformanceTier, source_id: str) -> DetectionRecord:
    return DetectionRecord(
        frame_id=frame_id,
        timestamp=utc_timestamp(),
        source_id=source_id,
        tier=tier.value,
        result=result,
        frame_size=[frame.width, frame.height],
    )


def process_source(
    source: str,
    settings: DetectionSettings,
    detector: ContentDetector,
    output_manager: OutputManager,
    *,
    renderer: Optional[PreviewRenderer] = None,
) -> int:
    processed = 0
    for frame_id, frame, label in iter_source_frames(source, settings):
        result = detector.analyze_frame(frame)
        record = build_record(frame_id, frame, result, detector.context.tier, label)
        if renderer is not None and result.is_flagged:
            full_screen = not result.regions
            preview = renderer.render(frame, result.region_rects(), full_screen=full_screen)
            record.preview_path = str(output_manager.save_preview(preview, frame_id))
        output_manager.append_record(record)
        processed += 1
        LOGGER.info(
            "Frame %d (%s) | flagged=%s | regions=%d | confidence=%.3f | source=%s | latency_ms=%.2f",
            frame_id,
            label,
            result.is_flagged,
            result.region_count,
            result.overall_confidence,
            result.source.value,
            result.latency_ms,
        )
    return processed


def run_detection(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    setup_logging(settings)

    LOGGER.info("Starting Module 1 content detection (%s tier)", settings.performance_tier.value)

    monitor = PerformanceMonitor(settings.metrics_window, settings.violation_alert_threshold)
    detector = ContentDetector(settings, sink=monitor)
    output_manager = OutputManager(settings, metadata={"source": args.source, "tier": settings.performance_tier.value})
    renderer = PreviewRenderer(settings.preview_blur_kernel) if args.save_previews else None

    try:
        if args.warmup:
            warm_up_detector(detector, (frame for _, frame, _ in iter_source_frames(args.source, settings)), args.warmup)
            monitor.reset()
        processed = process_source(args.source, settings, detector, output_manager, renderer=renderer)
    finally:
        output_manager.metadata["performance"] = monitor.report().to_dict()
        output_manager.close()
        detector.close()

    LOGGER.info("Module 1 detection completed (%d frames)", processed)
    return 0 if processed else 1


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()

    def handle_interrupt(signum: int, frame: Optional[object]) -> None:  # pragma: no cover - signal handling
        LOGGER.warning("Interrupted (signal %d); flushing records and exiting", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_interrupt)
    sys.exit(run_detection(args))


if __name__ == "__main__":  # pragma: no cover
    main()
