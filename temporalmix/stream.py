"""Frame source and sink collaborators.

The graph only needs ``next()`` from a source and ``accept()`` from a sink.
The adapters below cover in-memory streams, bounded hand-off queues and video
files read and written through imageio.
"""
from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from enum import Enum
from typing import Callable, Deque, Iterable, List, Optional, Protocol, Union

import imageio.v2 as imageio
import numpy as np

from .constants import DEFAULT_FPS
from .frame import Frame

logger = logging.getLogger(__name__)


class EndOfStream:
    """Marker returned by a source once it has no more frames."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = EndOfStream()


class SinkStatus(Enum):
    ACK = "ack"
    BACKPRESSURE = "backpressure"


class FrameSource(Protocol):
    def next(self) -> Union[Frame, EndOfStream]:
        ...


class FrameSink(Protocol):
    def accept(self, frame: Frame) -> SinkStatus:
        ...


def _ensure_rgb(frame: np.ndarray) -> np.ndarray:
    arr = np.asarray(frame)
    if arr.ndim == 2:
        # Grayscale -> replicate to RGB
        arr = np.stack([arr, arr, arr], axis=-1)
    if arr.ndim == 3:
        if arr.shape[2] == 4:
            arr = arr[..., :3]
        if arr.shape[2] == 3:
            return arr.astype(np.uint8, copy=False)
    raise ValueError(f"Unsupported frame shape for RGB conversion: {arr.shape}")


def to_frame(item, bit_depth: Optional[int] = None) -> Frame:
    if isinstance(item, Frame):
        return item
    return Frame.from_array(item, bit_depth=bit_depth)


class IterableSource:
    """Source over any iterable of Frames or unsigned arrays."""

    def __init__(self, frames: Iterable, bit_depth: Optional[int] = None):
        self._frames = iter(frames)
        self._bit_depth = bit_depth
        self.frames_read = 0

    def next(self) -> Union[Frame, EndOfStream]:
        try:
            item = next(self._frames)
        except StopIteration:
            return END_OF_STREAM
        self.frames_read += 1
        return to_frame(item, self._bit_depth)


class VideoReaderSource:
    """Reads a video file frame by frame as 8-bit RGB; each frame is read once."""

    def __init__(self, path: str, max_frames: Optional[int] = None):
        self.path = path
        self.max_frames = max_frames
        self._reader = imageio.get_reader(path)
        self._frames = iter(self._reader)
        self.frames_read = 0

    def next(self) -> Union[Frame, EndOfStream]:
        if self._frames is None:
            return END_OF_STREAM
        if self.max_frames is not None and self.frames_read >= self.max_frames:
            return END_OF_STREAM
        try:
            raw = next(self._frames)
        except StopIteration:
            return END_OF_STREAM
        frame = Frame.from_array(_ensure_rgb(raw), bit_depth=8, index=self.frames_read)
        self.frames_read += 1
        return frame

    def close(self) -> None:
        close = getattr(self._reader, "close", None)
        if close is not None:
            close()
        self._frames = None

    def __enter__(self) -> "VideoReaderSource":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class VideoWriterSink:
    """Appends every accepted frame to a video file immediately."""

    def __init__(self, path: str, fps: int = DEFAULT_FPS):
        self.path = path
        self._writer = imageio.get_writer(path, fps=fps)
        self.frames_written = 0
        self.failure: Optional[Exception] = None

    def accept(self, frame: Frame) -> SinkStatus:
        data = frame.as_uint8()
        if frame.channels == 1:
            data = data[:, :, 0]
        self._writer.append_data(data)
        self.frames_written += 1
        return SinkStatus.ACK

    def error(self, exc: Exception) -> None:
        self.failure = exc
        logger.error("Stream into %s failed after %d frame(s): %s", self.path, self.frames_written, exc)

    def close(self) -> None:
        self._writer.close()

    def __enter__(self) -> "VideoWriterSink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class CollectingSink:
    """Keeps every frame in a list. Meant for tests and short clips."""

    def __init__(self):
        self.frames: List[Frame] = []
        self.errors: List[Exception] = []

    def accept(self, frame: Frame) -> SinkStatus:
        self.frames.append(frame)
        return SinkStatus.ACK

    def error(self, exc: Exception) -> None:
        self.errors.append(exc)


class CallbackSink:
    def __init__(self, callback: Callable[[Frame], None]):
        self._callback = callback

    def accept(self, frame: Frame) -> SinkStatus:
        self._callback(frame)
        return SinkStatus.ACK


class BoundedQueueSink:
    """
    Hands frames to a consumer thread through a bounded queue.

    ``accept`` never blocks: a full queue answers BACKPRESSURE and the graph
    waits in :meth:`wait_ready` before offering the same frame again.
    """

    def __init__(self, maxsize: int = 4):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self.maxsize = maxsize
        self._items: Deque[Frame] = deque()
        self._cond = threading.Condition()
        self.rejected = 0
        self.errors: List[Exception] = []

    def accept(self, frame: Frame) -> SinkStatus:
        with self._cond:
            if len(self._items) >= self.maxsize:
                self.rejected += 1
                return SinkStatus.BACKPRESSURE
            self._items.append(frame)
            self._cond.notify_all()
        return SinkStatus.ACK

    def wait_ready(self, timeout: float) -> None:
        with self._cond:
            if len(self._items) >= self.maxsize:
                self._cond.wait(timeout)

    def get(self, timeout: Optional[float] = None) -> Frame:
        """Take the oldest frame; raises queue.Empty after ``timeout`` seconds."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._items, timeout):
                raise queue.Empty
            frame = self._items.popleft()
            self._cond.notify_all()
        return frame

    def qsize(self) -> int:
        with self._cond:
            return len(self._items)

    def error(self, exc: Exception) -> None:
        self.errors.append(exc)
