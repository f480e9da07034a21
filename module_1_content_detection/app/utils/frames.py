"""Frame abstraction and frame sources for content detection."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Generator, Iterable, Iterator, Optional, Union

import cv2
import numpy as np

from ..errors import InvalidFrame
from .geometry import Rect

LOGGER = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".webp"}


@dataclass(frozen=True)
class Frame:
    """Immutable RGB pixel grid handed to the engine for a single analysis call."""

    data: np.ndarray

    @classmethod
    def from_array(cls, array: Optional[np.ndarray]) -> "Frame":
        """Normalise grayscale, RGB or RGBA arrays into an RGB uint8 frame."""

        if array is None:
            raise InvalidFrame("Frame is missing")
        pixels = np.asarray(array)
        if pixels.ndim == 2:
            pixels = cv2.cvtColor(pixels.astype(np.uint8), cv2.COLOR_GRAY2RGB)
        elif pixels.ndim == 3 and pixels.shape[2] == 4:
            pixels = pixels[:, :, :3]
        elif pixels.ndim != 3 or pixels.shape[2] != 3:
            raise InvalidFrame(f"Unsupported frame shape {pixels.shape}")
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise InvalidFrame(f"Frame has zero area ({pixels.shape[1]}x{pixels.shape[0]})")
        if pixels.dtype != np.uint8:
            pixels = np.clip(pixels, 0, 255).astype(np.uint8)
        view = np.ascontiguousarray(pixels).view()
        view.setflags(write=False)
        return cls(data=view)

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def area(self) -> int:
        return self.width * self.height

    def pixel(self, x: int, y: int) -> int:
        """Return the pixel at (x, y) packed as 0xRRGGBB."""

        red, green, blue = (int(channel) for channel in self.data[y, x])
        return (red << 16) | (green << 8) | blue

    def crop(self, rect: Rect) -> np.ndarray:
        bounded = rect.clamp(self.width, self.height)
        return self.data[bounded.top:bounded.bottom, bounded.left:bounded.right]


def load_image(path: Path) -> Frame:
    """Read an image file from disk as an RGB frame."""

    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise InvalidFrame(f"Unable to read image: {path}")
    return Frame.from_array(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def decode_image(payload: bytes) -> Frame:
    """Decode encoded image bytes (PNG, JPEG, ...) into an RGB frame."""

    buffer = np.frombuffer(payload, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR) if buffer.size else None
    if image is None:
        raise InvalidFrame("Unable to decode image payload")
    return Frame.from_array(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def iter_image_paths(source: Path) -> Iterator[Path]:
    """Yield image files from a file path or directory, sorted by name."""

    if source.is_dir():
        for candidate in sorted(source.iterdir()):
            if candidate.suffix.lower() in IMAGE_SUFFIXES:
                yield candidate
    elif source.suffix.lower() in IMAGE_SUFFIXES:
        yield source


@dataclass
class CapturedFrame:
    index: int
    frame: Frame
    timestamp_ms: float


def open_video_source(source: Union[int, str]) -> cv2.VideoCapture:
    """Open a camera index or a video file; raises ``InvalidFrame`` when OpenCV cannot."""

    capture = cv2.VideoCapture(source)
    if not capture.isOpened():
        capture.release()
        raise InvalidFrame(f"Cannot open video source {source!r}")
    LOGGER.info(
        "Opened %s (%dx%d @ %.1f fps)",
        source,
        int(capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
        int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        capture.get(cv2.CAP_PROP_FPS) or 0.0,
    )
    return capture


@contextmanager
def managed_capture(source: Union[int, str]) -> Generator[cv2.VideoCapture, None, None]:
    capture = open_video_source(source)
    try:
        yield capture
    finally:
        capture.release()
        LOGGER.debug("Released %s", source)


def iter_frames(capture: cv2.VideoCapture, process_every: int = 1) -> Iterable[CapturedFrame]:
    """Yield every ``process_every``-th decoded frame as RGB with its stream position."""

    stride = max(1, process_every)
    fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
    read = 0
    emitted = 0
    ok, image = capture.read()
    while ok:
        read += 1
        if read % stride == 0:
            emitted += 1
            position_ms = read * 1000.0 / fps if fps else 0.0
            yield CapturedFrame(emitted, Frame.from_array(cv2.cvtColor(image, cv2.COLOR_BGR2RGB)), position_ms)
        ok, image = capture.read()
    LOGGER.info("Stream exhausted after %d frames (%d analysed)", read, emitted)
