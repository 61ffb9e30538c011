"""Capture controller: owns the camera/decoder lifecycle for one scanner."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from orderdesk.core.logging_utils import LoggerLike, ensure_structured_logger
from orderdesk.core.tasks import TaskManager

from ..config import ScannerConfig
from ..errors import CameraAccessError, ScannerError
from .decoder import DecodeFn, DecodeSettings, FrameDecoder, load_decoder_backend
from .latch import OutcomeLatch
from .media import (
    DEFAULT_REGISTRY,
    CameraConstraints,
    MediaStream,
    StreamRegistry,
    open_camera_stream,
)
from .session import AcquisitionSession

StreamOpener = Callable[..., Awaitable[MediaStream]]
BackendLoader = Callable[[], Awaitable[DecodeFn]]
DecoderFactory = Callable[..., FrameDecoder]


class CaptureState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    LIVE = "live"
    STOPPING = "stopping"


class CaptureController:
    """Starts and stops acquisition sessions; at most one exists at a time.

    Every async step of ``start_acquisition`` is followed by a check that no
    stop, close, unmount or delivery happened meanwhile (tracked with a
    generation counter bumped by each stop). A start that loses that race
    releases whatever it just acquired instead of attaching it.

    ``stop_acquisition`` is idempotent: concurrent callers share one teardown
    and all of them return only once it has finished.
    """

    def __init__(
        self,
        config: ScannerConfig,
        latch: OutcomeLatch,
        *,
        deliver: Callable[[str], None],
        on_failure: Optional[Callable[[str], None]] = None,
        is_active: Callable[[], bool],
        tasks: TaskManager,
        open_stream: StreamOpener = open_camera_stream,
        load_backend: BackendLoader = load_decoder_backend,
        decoder_factory: DecoderFactory = FrameDecoder,
        registry: Optional[StreamRegistry] = None,
        logger: LoggerLike = None,
    ) -> None:
        self._config = config
        self._latch = latch
        self._deliver = deliver
        self._on_failure = on_failure
        self._is_active = is_active
        self._tasks = tasks
        self._open_stream = open_stream
        self._load_backend = load_backend
        self._decoder_factory = decoder_factory
        self._registry = DEFAULT_REGISTRY if registry is None else registry
        self._logger = ensure_structured_logger(logger, component="CaptureController", fallback_name=__name__)

        self._constraints = CameraConstraints(
            facing_mode=config.facing_mode,
            device_index=config.camera_index,
            width=config.frame_width,
            height=config.frame_height,
        )
        self._settings = DecodeSettings(
            fps=config.fps,
            box_width=config.box_width,
            box_height=config.box_height,
            max_missed_frames=config.max_missed_frames,
        )

        self._state = CaptureState.IDLE
        self._session: Optional[AcquisitionSession] = None
        self._generation = 0
        self._start_done: Optional[asyncio.Event] = None
        self._stop_task: Optional[asyncio.Future] = None

    # ------------------------------------------------------------------
    # Introspection

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def session(self) -> Optional[AcquisitionSession]:
        return self._session

    @property
    def is_live(self) -> bool:
        return self._state is CaptureState.LIVE and self._session is not None

    @property
    def is_starting(self) -> bool:
        return self._state is CaptureState.STARTING

    @property
    def decoder(self) -> Optional[FrameDecoder]:
        return self._session.decoder if self._session is not None else None

    @property
    def registry(self) -> StreamRegistry:
        return self._registry

    def _superseded(self, generation: int) -> bool:
        return generation != self._generation or self._latch.claimed or not self._is_active()

    # ------------------------------------------------------------------
    # Start

    async def start_acquisition(self) -> bool:
        """Open the camera and begin decoding. Returns True once live.

        Raises ``ScannerError`` (camera or decoder failure) after making sure
        no partial session remains.
        """
        if self._session is not None or self._state in (CaptureState.STARTING, CaptureState.LIVE):
            self._logger.debug("Start ignored; acquisition already %s", self._state.value)
            return False
        if self._stop_task is not None and not self._stop_task.done():
            self._logger.debug("Start ignored; teardown in progress")
            return False
        if self._latch.claimed or not self._is_active():
            return False

        generation = self._generation
        done = asyncio.Event()
        self._start_done = done
        self._state = CaptureState.STARTING
        self._logger.info("Starting acquisition (generation %d)", generation)

        stream: Optional[MediaStream] = None
        session: Optional[AcquisitionSession] = None
        try:
            backend = await self._load_backend()
            if self._superseded(generation):
                self._logger.debug("Decoder loaded after acquisition was abandoned")
                return False

            stream = await self._open_stream(self._constraints, registry=self._registry, logger=self._logger)
            if self._superseded(generation):
                self._logger.info("Camera opened after acquisition was abandoned; releasing it")
                await self._release_stream(stream)
                return False

            session = AcquisitionSession(
                decoder=self._decoder_factory(backend, logger=self._logger),
                stream=stream,
            )
            self._session = session
            await session.decoder.start(
                stream,
                self._settings,
                self.on_frame_decoded,
                lambda reason: self.on_decoder_failed(reason, generation),
            )

            if self._superseded(generation):
                self._logger.info("Decoder started after acquisition was abandoned; tearing down")
                if self._session is session:
                    self._session = None
                await self._teardown(session)
                return False

            session.active = True
            self._state = CaptureState.LIVE
            self._logger.info(
                "Acquisition live | session=%d stream=%s fps=%d box=%dx%d",
                session.session_id,
                stream.id,
                self._settings.fps,
                self._settings.box_width,
                self._settings.box_height,
            )
            return True
        except BaseException as exc:
            if session is not None:
                if self._session is session:
                    self._session = None
                await self._teardown(session)
            elif stream is not None:
                await self._release_stream(stream)
            if isinstance(exc, Exception) and not isinstance(exc, ScannerError):
                raise CameraAccessError(f"Camera acquisition failed: {exc}") from exc
            raise
        finally:
            if self._state is CaptureState.STARTING:
                self._state = CaptureState.IDLE
            done.set()
            if self._start_done is done:
                self._start_done = None

    # ------------------------------------------------------------------
    # Stop

    async def stop_acquisition(self) -> None:
        """Tear down any session; safe to call repeatedly or concurrently."""
        self._generation += 1
        if self._stop_task is None or self._stop_task.done():
            self._stop_task = asyncio.ensure_future(self._stop_sequence())
        await asyncio.shield(self._stop_task)

    async def _stop_sequence(self) -> None:
        pending = self._start_done
        if self._session is not None or pending is not None:
            self._state = CaptureState.STOPPING

        if pending is not None and not pending.is_set():
            try:
                await asyncio.wait_for(pending.wait(), timeout=self._config.start_timeout_s)
            except asyncio.TimeoutError:
                self._logger.warning(
                    "Pending camera start did not settle within %.1fs; continuing teardown",
                    self._config.start_timeout_s,
                )

        session, self._session = self._session, None
        if session is not None:
            await self._teardown(session)
            self._logger.info("Acquisition session %d stopped", session.session_id)

        await asyncio.to_thread(self._registry.sweep, logger=self._logger)

        if self._state is not CaptureState.STARTING:
            self._state = CaptureState.IDLE

    async def _teardown(self, session: AcquisitionSession) -> None:
        decoder, stream = session.detach()

        if decoder is not None:
            try:
                await asyncio.wait_for(decoder.stop(), timeout=self._config.stop_timeout_s)
            except asyncio.TimeoutError:
                self._logger.warning("Decoder stop timed out after %.1fs", self._config.stop_timeout_s)
            except Exception:
                self._logger.debug("Decoder stop failed", exc_info=True)
            try:
                decoder.clear()
            except Exception:
                self._logger.debug("Decoder clear failed", exc_info=True)

        if stream is not None:
            await self._release_stream(stream)

    async def _release_stream(self, stream: MediaStream) -> None:
        # track.stop() joins an in-flight cv2 read before releasing the device
        timeout = self._config.stop_timeout_s
        for track in stream.get_tracks():
            try:
                await asyncio.wait_for(asyncio.to_thread(track.stop), timeout=timeout)
            except asyncio.TimeoutError:
                self._logger.warning("Track %s did not stop within %.1fs", track, timeout)
            except Exception:
                self._logger.debug("Track stop failed for %s", track, exc_info=True)
        self._registry.unregister(stream)

    # ------------------------------------------------------------------
    # Decode results

    def on_frame_decoded(self, text: str) -> None:
        """Decoder success callback; the first decode wins, the rest are dropped."""
        if self._latch.claimed or not self._is_active():
            return
        if not self._latch.claim(text, source="camera"):
            return
        self._logger.info("Code decoded from camera; releasing camera before delivery")
        self._tasks.create("deliver-decoded", self._deliver_after_teardown(text))

    async def _deliver_after_teardown(self, text: str) -> None:
        await self.stop_acquisition()
        self._deliver(text)

    def on_decoder_failed(self, reason: str, generation: int) -> None:
        """Decoder failure callback: the live camera was lost before any decode."""
        if self._superseded(generation):
            return
        self._logger.warning("Camera lost during acquisition: %s", reason)
        self._tasks.create("capture-failed", self._recover_from_failure(reason, generation))

    async def _recover_from_failure(self, reason: str, generation: int) -> None:
        if self._superseded(generation):
            return
        await self.stop_acquisition()
        if self._latch.claimed or not self._is_active():
            return
        if self._on_failure is not None:
            self._on_failure(reason)


__all__ = ["CaptureController", "CaptureState"]
