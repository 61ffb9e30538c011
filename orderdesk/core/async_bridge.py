import asyncio
import threading
import tkinter as tk
from typing import Optional

from orderdesk.core.logging_utils import get_module_logger

logger = get_module_logger(__name__)


class AsyncBridge:
    """
    Bridge between Tkinter (main thread) and AsyncIO (background thread).

    Tkinter keeps the real mainloop() on the main thread while the scanner's
    coroutines run on a private event loop in a daemon thread. Work crosses
    the boundary with run_coroutine() (GUI -> loop) and call_in_gui()
    (loop -> GUI, via Tk's after()).
    """

    def __init__(self, root: tk.Misc):
        self.root = root
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.thread: Optional[threading.Thread] = None
        self._running = False
        self._ready = threading.Event()

    def start(self) -> None:
        """Start AsyncIO event loop in background thread."""
        logger.info("Starting AsyncIO bridge in background thread")
        self._running = True
        self.thread = threading.Thread(target=self._run_event_loop, name="orderdesk-asyncio", daemon=True)
        self.thread.start()

        if not self._ready.wait(timeout=5.0):
            raise RuntimeError("AsyncIO loop failed to start within 5 seconds")

        logger.debug("AsyncIO event loop running in background (thread %s)", self.thread.ident)

    def _run_event_loop(self) -> None:
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self._ready.set()
        self.loop.run_forever()
        self.loop.close()
        logger.debug("AsyncIO loop stopped")

    def run_coroutine(self, coro):
        """
        Schedule a coroutine on the AsyncIO loop from the Tkinter thread.

        Returns:
            concurrent.futures.Future that can be used to get the result
        """
        if self.loop is None:
            raise RuntimeError("AsyncIO loop not started")
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call_in_gui(self, func, *args, **kwargs) -> None:
        """Schedule ``func`` on the Tkinter thread; safe to call from the loop thread."""

        def wrapper():
            try:
                func(*args, **kwargs)
            except Exception:
                logger.exception("AsyncBridge GUI callback %s failed", getattr(func, "__name__", func))

        self.root.after(0, wrapper)

    def stop(self) -> None:
        """Cancel outstanding tasks and stop the loop."""
        if self.loop and self._running:
            logger.info("Stopping AsyncIO bridge")
            self._running = False
            asyncio.run_coroutine_threadsafe(self._shutdown(), self.loop)

    async def _shutdown(self) -> None:
        tasks = [task for task in asyncio.all_tasks(self.loop) if task is not asyncio.current_task()]
        logger.debug("Cancelling %d pending tasks", len(tasks))
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.loop.stop()
