"""QR scanner component: one scan, camera or manual, hardware released on every exit."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from orderdesk.core.logging_utils import LoggerLike, ensure_structured_logger
from orderdesk.core.tasks import TaskManager

from . import constants
from .config import ScannerConfig
from .runtime.capture import BackendLoader, CaptureController, CaptureState, DecoderFactory, StreamOpener
from .runtime.decoder import FrameDecoder, load_decoder_backend
from .runtime.latch import OutcomeLatch
from .runtime.media import StreamRegistry, open_camera_stream
from .runtime.mediator import InputMode, InputModeMediator


@dataclass(frozen=True, slots=True)
class ScannerViewState:
    """Everything a view needs to render the scanner at one instant."""

    mode: InputMode
    is_starting: bool
    is_live: bool
    error: Optional[str]
    has_scanned: bool
    is_pending: bool
    manual_code: str
    submit_enabled: bool
    submit_label: str
    show_spinner: bool


class QRScanner:
    """Host-facing scanner component.

    The host supplies ``on_scan(code)`` and ``on_close()``. ``on_scan`` fires
    at most once per scanner and only after the camera is released;
    ``on_close`` fires once per ``close()`` call, also after release.
    Neither fires after ``unmount()``.
    """

    def __init__(
        self,
        on_scan: Callable[[str], None],
        on_close: Callable[[], None],
        *,
        is_pending: bool = False,
        config: Optional[ScannerConfig] = None,
        open_stream: StreamOpener = open_camera_stream,
        load_backend: BackendLoader = load_decoder_backend,
        decoder_factory: DecoderFactory = FrameDecoder,
        registry: Optional[StreamRegistry] = None,
        logger: LoggerLike = None,
    ) -> None:
        self.config = config or ScannerConfig()
        self.is_pending = is_pending
        self.manual_code = ""

        self._on_scan = on_scan
        self._on_close = on_close
        self._logger = ensure_structured_logger(logger, component="QRScanner", fallback_name=__name__)
        self._mounted = False
        self._closing = False
        self._latch = OutcomeLatch()
        self._tasks = TaskManager(logger=self._logger)

        self.controller = CaptureController(
            self.config,
            self._latch,
            deliver=self._deliver,
            on_failure=self._on_capture_failed,
            is_active=self._is_active,
            tasks=self._tasks,
            open_stream=open_stream,
            load_backend=load_backend,
            decoder_factory=decoder_factory,
            registry=registry,
            logger=self._logger,
        )
        self.mediator = InputModeMediator(
            self.controller,
            self._latch,
            config=self.config,
            deliver=self._deliver,
            notify_closed=self._notify_closed,
            is_active=self._is_active,
            tasks=self._tasks,
            logger=self._logger,
        )

    # ------------------------------------------------------------------
    # Lifecycle

    def _is_active(self) -> bool:
        return self._mounted and not self._closing

    async def mount(self) -> None:
        """Attach the scanner; camera mode starts acquiring immediately."""
        if self._mounted:
            return
        self._mounted = True
        self._closing = False
        self._logger.info("Mounted in %s mode", self.mediator.mode.value)
        if self.mediator.mode is InputMode.CAMERA:
            self.mediator.schedule_camera_start(delay=0)

    async def unmount(self) -> None:
        """Detach; pending work is abandoned and the camera is released."""
        was_mounted = self._mounted
        self._mounted = False
        await self.controller.stop_acquisition()
        await self._tasks.cancel_all(reason="unmount")
        if was_mounted:
            self._logger.info("Unmounted")

    async def __aenter__(self) -> "QRScanner":
        await self.mount()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.unmount()

    async def settle(self, timeout: float = 5.0) -> None:
        """Wait for background starts and deliveries to finish."""
        await self._tasks.join(timeout=timeout)

    # ------------------------------------------------------------------
    # Host-facing operations

    async def switch_mode(self, target: InputMode | str) -> bool:
        if not self._mounted:
            return False
        return await self.mediator.switch_mode(target)

    def set_manual_code(self, text: str) -> None:
        self.manual_code = text

    def set_pending(self, pending: bool) -> None:
        self.is_pending = bool(pending)

    async def submit_manual(self, text: Optional[str] = None) -> bool:
        return await self.mediator.submit_manual(self.manual_code if text is None else text)

    async def close(self) -> None:
        """Release the camera, then tell the host. Safe to call repeatedly."""
        self._closing = True
        self._logger.info("Close requested")
        await self.mediator.close()

    def on_frame_decoded(self, text: str) -> None:
        self.controller.on_frame_decoded(text)

    # ------------------------------------------------------------------
    # Callbacks into the host

    def _deliver(self, code: str) -> None:
        if not self._mounted:
            self._logger.debug("Scan result dropped; scanner unmounted")
            return
        self._logger.info("Delivering scan result (%s)", self._latch.source)
        try:
            self._on_scan(code)
        except Exception:
            self._logger.exception("on_scan callback failed")

    def _on_capture_failed(self, reason: str) -> None:
        self.mediator.capture_failed(reason)

    def _notify_closed(self) -> None:
        if not self._mounted:
            return
        try:
            self._on_close()
        except Exception:
            self._logger.exception("on_close callback failed")

    # ------------------------------------------------------------------
    # State

    @property
    def mode(self) -> InputMode:
        return self.mediator.mode

    @property
    def error(self) -> Optional[str]:
        return self.mediator.error

    @property
    def has_scanned(self) -> bool:
        return self._latch.claimed

    @property
    def result(self) -> Optional[str]:
        return self._latch.value

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def capture_state(self) -> CaptureState:
        return self.controller.state

    def latest_frame(self) -> Optional[np.ndarray]:
        decoder = self.controller.decoder
        return decoder.last_frame if decoder is not None else None

    def view_state(self) -> ScannerViewState:
        has_scanned = self._latch.claimed
        busy = self.is_pending or has_scanned
        return ScannerViewState(
            mode=self.mediator.mode,
            is_starting=self.controller.is_starting,
            is_live=self.controller.is_live,
            error=self.mediator.error,
            has_scanned=has_scanned,
            is_pending=self.is_pending,
            manual_code=self.manual_code,
            submit_enabled=bool(self.manual_code.strip()) and not busy,
            submit_label=constants.PROCESSING_LABEL if has_scanned else constants.SUBMIT_LABEL,
            show_spinner=busy,
        )


__all__ = ["QRScanner", "ScannerViewState"]
