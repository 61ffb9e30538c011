"""Frame decoding: lazy decoder loading and the polling decode loop."""

from __future__ import annotations

import asyncio
import importlib
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import numpy as np

from orderdesk.core.logging_utils import LoggerLike, ensure_structured_logger

from ..constants import (
    DECODER_MODULE,
    DEFAULT_BOX_HEIGHT,
    DEFAULT_BOX_WIDTH,
    DEFAULT_FPS,
    DEFAULT_MAX_MISSED_FRAMES,
)
from ..errors import DecoderLoadError, ScannerError
from .media import MediaStream

DecodeFn = Callable[[np.ndarray], List[str]]
SuccessCallback = Callable[[str], None]
FailureCallback = Callable[[str], None]


@dataclass(frozen=True, slots=True)
class DecodeSettings:
    fps: int = DEFAULT_FPS
    box_width: int = DEFAULT_BOX_WIDTH
    box_height: int = DEFAULT_BOX_HEIGHT
    max_missed_frames: int = DEFAULT_MAX_MISSED_FRAMES

    @property
    def interval(self) -> float:
        return 1.0 / float(self.fps)


class ZBarBackend:
    """Callable adapter over ``pyzbar.pyzbar.decode`` returning decoded strings."""

    def __init__(self, decode: Callable[..., Any]) -> None:
        self._decode = decode

    def __call__(self, image: np.ndarray) -> List[str]:
        results = self._decode(image)
        texts = []
        for symbol in results or ():
            data = getattr(symbol, "data", b"")
            if isinstance(data, bytes):
                data = data.decode("utf-8", errors="replace")
            if data:
                texts.append(data)
        return texts


async def load_decoder_backend(module_name: str = DECODER_MODULE) -> DecodeFn:
    """Import the decoder library in a worker thread and wrap its ``decode``."""
    try:
        module = await asyncio.to_thread(importlib.import_module, module_name)
    except Exception as exc:
        # pyzbar raises ImportError when the native zbar library is missing
        raise DecoderLoadError(f"Decoder module {module_name!r} failed to load: {exc}") from exc

    decode = getattr(module, "decode", None)
    if not callable(decode):
        raise DecoderLoadError(f"Decoder module {module_name!r} has no decode()")
    return ZBarBackend(decode)


def crop_detection_window(frame: np.ndarray, box_width: int, box_height: int) -> np.ndarray:
    """Return the centred ``box_width`` x ``box_height`` region, clamped to the frame."""
    if frame.ndim < 2:
        return frame
    height, width = frame.shape[:2]
    w = min(box_width, width)
    h = min(box_height, height)
    left = (width - w) // 2
    top = (height - h) // 2
    return frame[top:top + h, left:left + w]


class FrameDecoder:
    """Reads frames from a stream at a fixed rate and reports decoded text.

    ``start()`` begins the loop, ``stop()`` ends it (and raises if it was
    never started), ``clear()`` drops the stream and the last preview frame.

    ``on_failure`` fires at most once, when the loop gives up on its own: the
    stream ended, a read or decode raised, or ``max_missed_frames`` reads in
    a row came back empty. It never fires for a loop ended by ``stop()``.
    """

    def __init__(self, backend: DecodeFn, *, logger: LoggerLike = None) -> None:
        self._backend = backend
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._stream: Optional[MediaStream] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._running = False
        self.last_frame: Optional[np.ndarray] = None
        self.frames_seen = 0

    @property
    def is_scanning(self) -> bool:
        return self._running

    @property
    def stream(self) -> Optional[MediaStream]:
        return self._stream

    async def start(
        self,
        stream: MediaStream,
        settings: DecodeSettings,
        on_success: SuccessCallback,
        on_failure: Optional[FailureCallback] = None,
    ) -> None:
        if self._running:
            raise ScannerError("Decoder is already scanning")
        self._stream = stream
        self._running = True
        self._task = asyncio.create_task(
            self._run(stream, settings, on_success, on_failure),
            name=f"decode-loop:{stream.id}",
        )
        self._task.add_done_callback(self._log_loop_exit)
        self._logger.debug(
            "Decode loop started on %s | fps=%s box=%sx%s",
            stream.id,
            settings.fps,
            settings.box_width,
            settings.box_height,
        )

    async def _run(
        self,
        stream: MediaStream,
        settings: DecodeSettings,
        on_success: SuccessCallback,
        on_failure: Optional[FailureCallback],
    ) -> None:
        try:
            reason = await self._decode_frames(stream, settings, on_success)
        except Exception as exc:
            reason = f"{type(exc).__name__}: {exc}"
        if reason is None or not self._running:
            return
        self._running = False
        self._logger.warning("Decode loop on %s gave up: %s", stream.id, reason)
        if on_failure is not None:
            on_failure(reason)

    async def _decode_frames(
        self,
        stream: MediaStream,
        settings: DecodeSettings,
        on_success: SuccessCallback,
    ) -> Optional[str]:
        """Poll until stopped (returns None) or until the stream fails (returns why)."""
        loop = asyncio.get_running_loop()
        missed = 0
        while self._running:
            tick = loop.time()
            frame = await stream.read_frame()
            if not self._running:
                return None
            if frame is None:
                if not stream.active:
                    return "camera stream ended"
                missed += 1
                if missed >= settings.max_missed_frames:
                    return f"no frame from camera in {missed} reads"
            else:
                missed = 0
                self.last_frame = frame
                self.frames_seen += 1
                region = crop_detection_window(frame, settings.box_width, settings.box_height)
                texts = await asyncio.to_thread(self._backend, region)
                if texts and self._running:
                    on_success(texts[0])
            await asyncio.sleep(max(0.0, settings.interval - (loop.time() - tick)))
        return None

    def _log_loop_exit(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Decode loop %s crashed", task.get_name(), exc_info=exc)

    async def stop(self) -> None:
        if self._task is None:
            raise ScannerError("Cannot stop, decoder is not running")
        self._running = False
        task, self._task = self._task, None
        if task is asyncio.current_task() or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def clear(self) -> None:
        if self._running:
            raise ScannerError("Cannot clear while scanning")
        self._stream = None
        self.last_frame = None


__all__ = [
    "DecodeSettings",
    "FrameDecoder",
    "ZBarBackend",
    "crop_detection_window",
    "load_decoder_backend",
]
