"""Frame sources: still images, animated GIFs and videos, including URL downloads.

Every source exposes its dimensions and the frame that should be on screen
right now. Animated sources advance by wall-clock time and loop.
"""

from __future__ import annotations

import logging
import tempfile
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Protocol
from urllib.parse import urlparse

import cv2
import numpy as np
from PIL import Image

_LOG = logging.getLogger("dither_maker.core")

VIDEO_EXTENSIONS = (".mp4", ".webm", ".ogg", ".ogv", ".mov", ".m4v", ".avi", ".mkv")
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".bmp", ".webp", ".tif", ".tiff")


@dataclass
class Frame:
    """A single RGBA frame."""

    pixels: np.ndarray  # (height, width, 4) uint8
    duration_ms: int  # Display duration in milliseconds
    index: int

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 2 else 0

    @classmethod
    def from_image(cls, image: Image.Image, duration_ms: int = 0, index: int = 0) -> "Frame":
        return cls(
            pixels=np.array(image.convert("RGBA"), dtype=np.uint8),
            duration_ms=duration_ms,
            index=index,
        )


@dataclass
class MediaInfo:
    """Metadata about the input file."""

    path: Path
    format: str  # "image", "gif" or "video"
    frame_count: int
    fps: float
    width: int
    height: int


class FrameSource(Protocol):
    """Anything that can hand over the current RGBA frame on demand."""

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def current_frame(self) -> Frame | None: ...


def detect_format(path: Path) -> str:
    """Detect media kind from the file extension.

    Unknown extensions are treated as still images, as a browser would try
    to decode them.
    """
    suffix = path.suffix.lower()
    if suffix == ".gif":
        return "gif"
    if suffix in VIDEO_EXTENSIONS:
        return "video"
    return "image"


class StaticImageSource:
    """A single still frame."""

    def __init__(self, image: Image.Image | str | Path) -> None:
        if isinstance(image, (str, Path)):
            self.path: Path | None = Path(image)
            image = Image.open(self.path)
        else:
            self.path = None
        self._frame = Frame.from_image(image)

    @property
    def width(self) -> int:
        return self._frame.width

    @property
    def height(self) -> int:
        return self._frame.height

    @property
    def info(self) -> MediaInfo:
        return MediaInfo(
            path=self.path or Path("<memory>"),
            format="image",
            frame_count=1,
            fps=0.0,
            width=self.width,
            height=self.height,
        )

    def current_frame(self) -> Frame | None:
        return self._frame

    def frames(self) -> Iterator[Frame]:
        yield self._frame

    def close(self) -> None:
        pass


class GifSource:
    """Animated GIF with proper disposal compositing, played back by wall clock."""

    def __init__(self, path: Path, clock: Callable[[], float] = time.monotonic) -> None:
        self.path = path
        self._clock = clock
        self._frames = list(self._composite(path))
        if not self._frames:
            raise ValueError(f"GIF has no frames: {path}")
        self._total_ms = sum(f.duration_ms for f in self._frames)
        self._started: float | None = None

    @staticmethod
    def _composite(path: Path) -> Iterator[Frame]:
        img = Image.open(path)
        frame_count = getattr(img, "n_frames", 1)
        canvas = Image.new("RGBA", img.size, (0, 0, 0, 255))
        for i in range(frame_count):
            img.seek(i)
            duration = img.info.get("duration", 100)
            layer = img.convert("RGBA")
            canvas.paste(layer, (0, 0), layer)
            # Clamp absurdly short durations
            yield Frame.from_image(canvas, duration_ms=max(duration, 10), index=i)

    @property
    def width(self) -> int:
        return self._frames[0].width

    @property
    def height(self) -> int:
        return self._frames[0].height

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def info(self) -> MediaInfo:
        return MediaInfo(
            path=self.path,
            format="gif",
            frame_count=self.frame_count,
            fps=1000.0 * self.frame_count / max(self._total_ms, 1),
            width=self.width,
            height=self.height,
        )

    def frames(self) -> Iterator[Frame]:
        yield from self._frames

    def current_frame(self) -> Frame | None:
        now = self._clock()
        if self._started is None:
            self._started = now
        elapsed_ms = ((now - self._started) * 1000.0) % max(self._total_ms, 1)
        for frame in self._frames:
            if elapsed_ms < frame.duration_ms:
                return frame
            elapsed_ms -= frame.duration_ms
        return self._frames[-1]

    def close(self) -> None:
        pass


class VideoSource:
    """Video decoded lazily with OpenCV, played back by wall clock and looped."""

    def __init__(self, path: Path, clock: Callable[[], float] = time.monotonic) -> None:
        self.path = path
        self._clock = clock
        self._cap = cv2.VideoCapture(str(path))
        if not self._cap.isOpened():
            raise IOError(f"Cannot open video: {path}")
        self._frame_count = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self._fps = self._cap.get(cv2.CAP_PROP_FPS) or 24.0
        self._width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._started: float | None = None
        self._position = -1
        self._current: Frame | None = None

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def info(self) -> MediaInfo:
        return MediaInfo(
            path=self.path,
            format="video",
            frame_count=self._frame_count,
            fps=self._fps,
            width=self._width,
            height=self._height,
        )

    def _to_frame(self, bgr: np.ndarray, index: int) -> Frame:
        rgba = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)
        return Frame(pixels=rgba, duration_ms=int(1000.0 / self._fps), index=index)

    def frames(self) -> Iterator[Frame]:
        """Yield all frames lazily from a separate capture."""
        cap = cv2.VideoCapture(str(self.path))
        idx = 0
        try:
            while True:
                ret, bgr = cap.read()
                if not ret:
                    break
                yield self._to_frame(bgr, idx)
                idx += 1
        finally:
            cap.release()

    def current_frame(self) -> Frame | None:
        """Decode forward to the frame due at the current time.

        Returns the last decoded frame (or None before the first decode
        succeeds) when the decoder has nothing new to give.
        """
        if self._cap is None:
            return self._current
        now = self._clock()
        if self._started is None:
            self._started = now
        target = int((now - self._started) * self._fps)
        if self._frame_count > 0:
            target %= self._frame_count
        if target < self._position:
            self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
            self._position = -1
        while self._position < target:
            ret, bgr = self._cap.read()
            if not ret:
                _LOG.debug("video_decode_stalled path=%s position=%d", self.path, self._position)
                break
            self._position += 1
            if self._position == target:
                self._current = self._to_frame(bgr, self._position)
        return self._current

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


def is_url(path: str) -> bool:
    """Check if the input looks like an HTTP(S) URL."""
    try:
        parsed = urlparse(str(path))
        return parsed.scheme in ("http", "https")
    except ValueError:
        return False


def _guess_extension_from_url(url: str) -> str:
    """Extract file extension from a URL path, ignoring query and fragment."""
    parsed = urlparse(url)
    suffix = Path(parsed.path).suffix.lower()
    if suffix in VIDEO_EXTENSIONS or suffix in IMAGE_EXTENSIONS or suffix == ".gif":
        return suffix
    return ".png"


def download_media(
    url: str,
    on_progress: Callable[[int, int], None] | None = None,
) -> Path:
    """Download a media file from a URL to a temp file.

    Raises:
        ValueError: if the URL is unreachable, returns an error or is empty.
    """
    ext = _guess_extension_from_url(url)
    tmp = tempfile.NamedTemporaryFile(suffix=ext, delete=False)
    tmp_path = Path(tmp.name)

    try:
        req = urllib.request.Request(url, headers={"User-Agent": "dither-maker/0.1"})
        with urllib.request.urlopen(req, timeout=30) as resp:
            total = int(resp.headers.get("Content-Length", 0))
            downloaded = 0
            while True:
                chunk = resp.read(65536)
                if not chunk:
                    break
                tmp.write(chunk)
                downloaded += len(chunk)
                if on_progress:
                    on_progress(downloaded, total)
        tmp.close()
    except urllib.error.URLError as e:
        tmp.close()
        tmp_path.unlink(missing_ok=True)
        raise ValueError(f"Failed to download {url}: {e}") from e
    except Exception:
        tmp.close()
        tmp_path.unlink(missing_ok=True)
        raise

    if tmp_path.stat().st_size == 0:
        tmp_path.unlink(missing_ok=True)
        raise ValueError(f"Downloaded file is empty: {url}")

    return tmp_path


def open_source(
    path: str | Path,
    clock: Callable[[], float] = time.monotonic,
) -> StaticImageSource | GifSource | VideoSource:
    """Open a media file and return the matching frame source.

    Accepts local file paths or HTTP(S) URLs. URLs are downloaded
    to a temporary file first.
    """
    path_str = str(path)
    if is_url(path_str):
        local_path = download_media(path_str)
    else:
        local_path = Path(path_str)
        if not local_path.exists():
            raise FileNotFoundError(f"File not found: {local_path}")

    fmt = detect_format(local_path)
    if fmt == "gif":
        return GifSource(local_path, clock=clock)
    if fmt == "video":
        return VideoSource(local_path, clock=clock)
    return StaticImageSource(local_path)
