"""Input mode mediator: camera vs. manual entry, one active at a time."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Optional

from orderdesk.core.logging_utils import LoggerLike, ensure_structured_logger
from orderdesk.core.tasks import TaskManager

from ..config import ScannerConfig
from ..errors import ScannerError
from .capture import CaptureController
from .latch import OutcomeLatch


class InputMode(str, Enum):
    CAMERA = "camera"
    MANUAL = "manual"


class InputModeMediator:
    """Switches between camera and manual input and routes close requests.

    Leaving camera mode stops acquisition before the mode flips, so manual
    mode is never shown while the camera is still live. Entering camera mode
    schedules the start after a short delay and re-checks state when it wakes.
    """

    def __init__(
        self,
        controller: CaptureController,
        latch: OutcomeLatch,
        *,
        config: ScannerConfig,
        deliver: Callable[[str], None],
        notify_closed: Callable[[], None],
        is_active: Callable[[], bool],
        tasks: TaskManager,
        logger: LoggerLike = None,
    ) -> None:
        self._controller = controller
        self._latch = latch
        self._config = config
        self._deliver = deliver
        self._notify_closed = notify_closed
        self._is_active = is_active
        self._tasks = tasks
        self._logger = ensure_structured_logger(logger, component="InputModeMediator", fallback_name=__name__)

        self.mode = InputMode(config.default_mode)
        self.error: Optional[str] = None

    # ------------------------------------------------------------------
    # Camera activation

    def schedule_camera_start(self, delay: Optional[float] = None) -> None:
        wait = self._config.mode_switch_delay if delay is None else delay
        self._tasks.create("camera-start", self._start_after_delay(wait))

    async def _start_after_delay(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        if self.mode is not InputMode.CAMERA or self._latch.claimed or not self._is_active():
            self._logger.debug("Deferred camera start skipped (mode=%s)", self.mode.value)
            return
        await self.start_camera()

    async def start_camera(self) -> bool:
        """Run acquisition, falling back to manual mode on any scanner error."""
        try:
            return await self._controller.start_acquisition()
        except ScannerError as exc:
            if not self._is_active():
                self._logger.debug("Camera start failed after close: %s", exc)
                return False
            self._logger.warning("Camera unavailable, switching to manual input: %s", exc)
            self.error = self._config.error_message
            self.mode = InputMode.MANUAL
            return False

    def capture_failed(self, reason: str) -> None:
        """The camera was lost after going live; fall back to manual entry."""
        if self.mode is not InputMode.CAMERA or self._latch.claimed:
            return
        self._logger.warning("Camera stopped delivering frames, switching to manual input: %s", reason)
        self.error = self._config.error_message
        self.mode = InputMode.MANUAL

    # ------------------------------------------------------------------
    # Operations

    async def switch_mode(self, target: InputMode | str) -> bool:
        """Switch input mode; returns False when nothing changed."""
        target = InputMode(target)
        if target is self.mode or self._latch.claimed:
            return False

        if self.mode is InputMode.CAMERA:
            await self._controller.stop_acquisition()
            if self._latch.claimed:
                return False
            self.mode = target
            self.error = None
            self._logger.info("Switched to %s input", target.value)
            return True

        self.mode = target
        self.error = None
        self._logger.info("Switched to %s input", target.value)
        self.schedule_camera_start()
        return True

    async def submit_manual(self, text: str) -> bool:
        """Deliver trimmed manual input; returns True if this call won the latch."""
        code = (text or "").strip()
        if not code or not self._is_active():
            return False
        if not self._latch.claim(code, source="manual"):
            self._logger.debug("Manual submit ignored; outcome already delivered")
            return False

        if self._controller.session is not None or self._controller.is_starting:
            await self._controller.stop_acquisition()
        self._logger.info("Manual code submitted")
        self._deliver(code)
        return True

    async def close(self) -> None:
        await self._controller.stop_acquisition()
        self._notify_closed()


__all__ = ["InputMode", "InputModeMediator"]
