"""Camera streams, their tracks, and the process-wide stream registry.

A ``MediaStream`` owns one or more ``MediaTrack``s; stopping every track
releases the hardware. ``CameraStream`` backs its single video track with an
OpenCV ``VideoCapture``. Every stream opened through ``open_camera_stream`` is
recorded in a ``StreamRegistry`` so teardown can sweep streams that slipped
out of their owner's hands.
"""

from __future__ import annotations

import asyncio
import itertools
import threading
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional

import cv2
import numpy as np

from orderdesk.core.logging_utils import LoggerLike, ensure_structured_logger

from ..constants import (
    DEFAULT_CAMERA_INDEX,
    DEFAULT_FACING_MODE,
    DEFAULT_FRAME_HEIGHT,
    DEFAULT_FRAME_WIDTH,
)
from ..errors import CameraAccessError


class TrackState(str, Enum):
    LIVE = "live"
    ENDED = "ended"


class MediaTrack:
    """One hardware-backed track. ``stop()`` is idempotent and thread-safe."""

    def __init__(
        self,
        kind: str = "video",
        label: str = "",
        *,
        on_stop: Optional[Callable[[], None]] = None,
        logger: LoggerLike = None,
    ) -> None:
        self.kind = kind
        self.label = label
        self._state = TrackState.LIVE
        self._on_stop = on_stop
        self._lock = threading.Lock()
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)

    @property
    def ready_state(self) -> TrackState:
        return self._state

    @property
    def live(self) -> bool:
        return self._state is TrackState.LIVE

    def stop(self) -> None:
        with self._lock:
            if self._state is TrackState.ENDED:
                return
            self._state = TrackState.ENDED
            release, self._on_stop = self._on_stop, None
        if release is None:
            return
        try:
            release()
        except Exception:
            self._logger.debug("Release hook failed for track %s", self.label, exc_info=True)

    def __repr__(self) -> str:
        return f"MediaTrack(kind={self.kind!r}, label={self.label!r}, state={self._state.value})"


class MediaStream:
    """A group of tracks captured together."""

    _ids = itertools.count(1)

    def __init__(self, tracks: Iterable[MediaTrack] = (), *, label: str = "") -> None:
        self.id = f"stream-{next(self._ids)}"
        self.label = label
        self._tracks: List[MediaTrack] = list(tracks)

    def get_tracks(self) -> List[MediaTrack]:
        return list(self._tracks)

    def add_track(self, track: MediaTrack) -> None:
        self._tracks.append(track)

    @property
    def active(self) -> bool:
        return any(track.live for track in self._tracks)

    def stop(self) -> None:
        for track in self._tracks:
            track.stop()

    async def read_frame(self) -> Optional[np.ndarray]:
        """Return the next frame, or None when the stream has no frame source."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, active={self.active})"


class StreamRegistry:
    """Weak set of every stream opened in this process."""

    def __init__(self) -> None:
        self._streams: "weakref.WeakSet[MediaStream]" = weakref.WeakSet()
        self._lock = threading.Lock()

    def register(self, stream: MediaStream) -> None:
        with self._lock:
            self._streams.add(stream)

    def unregister(self, stream: MediaStream) -> None:
        with self._lock:
            self._streams.discard(stream)

    def live_streams(self) -> List[MediaStream]:
        with self._lock:
            streams = list(self._streams)
        return [stream for stream in streams if stream.active]

    def sweep(self, *, logger: LoggerLike = None) -> int:
        """Stop every live track still registered; return how many were stopped."""
        log = ensure_structured_logger(logger, fallback_name=__name__)
        stopped = 0
        for stream in self.live_streams():
            for track in stream.get_tracks():
                if not track.live:
                    continue
                track.stop()
                stopped += 1
            self.unregister(stream)
        if stopped:
            log.warning("Sweep stopped %d leaked track(s)", stopped)
        return stopped

    def __len__(self) -> int:
        with self._lock:
            return len(self._streams)


DEFAULT_REGISTRY = StreamRegistry()


@dataclass(frozen=True, slots=True)
class CameraConstraints:
    facing_mode: str = DEFAULT_FACING_MODE
    device_index: int = DEFAULT_CAMERA_INDEX
    width: int = DEFAULT_FRAME_WIDTH
    height: int = DEFAULT_FRAME_HEIGHT


class CameraStream(MediaStream):
    """Stream whose single video track is an OpenCV capture device."""

    def __init__(self, capture: Any, constraints: CameraConstraints, *, logger: LoggerLike = None) -> None:
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        label = f"camera:{constraints.device_index} ({constraints.facing_mode})"
        super().__init__(label=label)
        self.constraints = constraints
        self._cap = capture
        self._cap_lock = threading.Lock()
        self.add_track(MediaTrack("video", label, on_stop=self._release, logger=self._logger))

    def _release(self) -> None:
        # Waits for an in-flight read so release never races cap.read()
        with self._cap_lock:
            cap, self._cap = self._cap, None
            if cap is not None:
                cap.release()
        self._logger.debug("Released capture for %s", self.label)

    def _read_sync(self) -> Optional[np.ndarray]:
        with self._cap_lock:
            if self._cap is None:
                return None
            ok, frame = self._cap.read()
        return frame if ok else None

    async def read_frame(self) -> Optional[np.ndarray]:
        if not self.active:
            return None
        return await asyncio.to_thread(self._read_sync)


def _open_capture_sync(
    constraints: CameraConstraints,
    registry: StreamRegistry,
    log,
) -> CameraStream:
    default_backend = getattr(cv2, "CAP_V4L2", None)
    backends = [default_backend, None] if default_backend is not None else [None]

    cap = None
    last_error: Optional[str] = None
    for backend in backends:
        try:
            cap = (
                cv2.VideoCapture(constraints.device_index, backend)
                if backend is not None
                else cv2.VideoCapture(constraints.device_index)
            )
        except Exception as exc:
            last_error = str(exc)
            cap = None
            continue
        if cap is not None and cap.isOpened():
            break
        if cap is not None:
            cap.release()
        cap = None

    if cap is None:
        raise CameraAccessError(
            f"Camera {constraints.device_index} ({constraints.facing_mode}) could not be opened"
            + (f": {last_error}" if last_error else "")
        )

    # Prefer MJPEG; YUYV conversions skew colours on some UVC cameras.
    try:
        cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*"MJPG"))
    except Exception:
        log.debug("MJPEG fourcc not accepted by camera %s", constraints.device_index)
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.width)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.height)

    stream = CameraStream(cap, constraints, logger=log)
    # Registered before returning so a caller cancelled mid-open still gets swept
    registry.register(stream)
    log.info(
        "Camera %s opened | facing=%s requested=%dx%d",
        constraints.device_index,
        constraints.facing_mode,
        constraints.width,
        constraints.height,
    )
    return stream


async def open_camera_stream(
    constraints: CameraConstraints,
    *,
    registry: Optional[StreamRegistry] = None,
    logger: LoggerLike = None,
) -> MediaStream:
    """Open the camera described by ``constraints`` without blocking the loop."""
    log = ensure_structured_logger(logger, fallback_name=__name__)
    target = DEFAULT_REGISTRY if registry is None else registry
    try:
        return await asyncio.to_thread(_open_capture_sync, constraints, target, log)
    except CameraAccessError:
        raise
    except Exception as exc:
        raise CameraAccessError(f"Camera access failed: {exc}") from exc


__all__ = [
    "CameraConstraints",
    "CameraStream",
    "DEFAULT_REGISTRY",
    "MediaStream",
    "MediaTrack",
    "StreamRegistry",
    "TrackState",
    "open_camera_stream",
]
