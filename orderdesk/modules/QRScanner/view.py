"""Tkinter dialog for the QR scanner. Presentation only; lifecycle lives in ``QRScanner``."""

from __future__ import annotations

import tkinter as tk
from tkinter import ttk
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageTk

from orderdesk.core.async_bridge import AsyncBridge
from orderdesk.core.logging_utils import get_module_logger

from . import constants
from .runtime.mediator import InputMode
from .scanner import QRScanner

logger = get_module_logger(__name__)

REFRESH_MS = 100
PREVIEW_SIZE = (360, 360)


class QRScannerDialog:
    """Camera/Manual tabs, live preview, inline error, and a manual entry form."""

    def __init__(self, root: tk.Misc, scanner: QRScanner, bridge: AsyncBridge) -> None:
        self.scanner = scanner
        self.bridge = bridge
        self._photo: Optional[ImageTk.PhotoImage] = None
        self._after_id: Optional[str] = None
        self._shown_mode: Optional[InputMode] = None

        self.window = tk.Toplevel(root)
        self.window.title("Scan QR Code")
        self.window.resizable(False, False)
        self.window.protocol("WM_DELETE_WINDOW", self.request_close)

        header = ttk.Frame(self.window, padding=8)
        header.pack(fill=tk.X)
        ttk.Label(header, text="Scan QR Code", font=("TkDefaultFont", 12, "bold")).pack(side=tk.LEFT)
        ttk.Button(header, text="X", width=3, command=self.request_close).pack(side=tk.RIGHT)

        tabs = ttk.Frame(self.window)
        tabs.pack(fill=tk.X)
        self.camera_tab = ttk.Button(tabs, text="Camera", command=lambda: self._switch(InputMode.CAMERA))
        self.manual_tab = ttk.Button(tabs, text="Manual", command=lambda: self._switch(InputMode.MANUAL))
        self.camera_tab.pack(side=tk.LEFT, expand=True, fill=tk.X)
        self.manual_tab.pack(side=tk.LEFT, expand=True, fill=tk.X)

        self.body = ttk.Frame(self.window, padding=12)
        self.body.pack(fill=tk.BOTH, expand=True)
        # Packed before either input frame so it shows in both modes
        self.error_label = ttk.Label(self.body, foreground="#dc2626", wraplength=340)
        self.error_label.pack(fill=tk.X, pady=(0, 6))

        self.camera_frame = ttk.Frame(self.body)
        self.preview = ttk.Label(self.camera_frame, anchor=tk.CENTER, text=constants.STARTING_LABEL)
        self.preview.pack(fill=tk.BOTH, expand=True)
        ttk.Label(self.camera_frame, text=constants.AIM_HINT, foreground="#6b7280").pack(pady=(6, 0))

        self.manual_frame = ttk.Frame(self.body)
        ttk.Label(self.manual_frame, text=constants.MANUAL_PROMPT).pack(anchor=tk.W, pady=(0, 6))
        self.code_var = tk.StringVar(value=scanner.manual_code)
        self.code_var.trace_add("write", lambda *_: self.scanner.set_manual_code(self.code_var.get()))
        self.entry = ttk.Entry(self.manual_frame, textvariable=self.code_var, width=36)
        self.entry.pack(fill=tk.X, pady=(0, 6))
        self.entry.bind("<Return>", lambda _event: self._submit())
        self.submit_button = ttk.Button(self.manual_frame, text=constants.SUBMIT_LABEL, command=self._submit)
        self.submit_button.pack(fill=tk.X)

        self._refresh()

    # ------------------------------------------------------------------
    # Actions

    def _switch(self, mode: InputMode) -> None:
        self.bridge.run_coroutine(self.scanner.switch_mode(mode))

    def _submit(self) -> None:
        if self.scanner.view_state().submit_enabled:
            self.bridge.run_coroutine(self.scanner.submit_manual(self.code_var.get()))

    def request_close(self) -> None:
        self.bridge.run_coroutine(self.scanner.close())

    def destroy(self) -> None:
        if self._after_id is not None:
            self.window.after_cancel(self._after_id)
            self._after_id = None
        self.window.destroy()

    # ------------------------------------------------------------------
    # Rendering

    def _refresh(self) -> None:
        state = self.scanner.view_state()

        if state.mode is not self._shown_mode:
            self._shown_mode = state.mode
            if state.mode is InputMode.CAMERA:
                self.manual_frame.pack_forget()
                self.camera_frame.pack(fill=tk.BOTH, expand=True)
            else:
                self.camera_frame.pack_forget()
                self.manual_frame.pack(fill=tk.BOTH, expand=True)
                self.entry.focus_set()

        self.error_label.configure(text=state.error or "")
        self.submit_button.configure(
            text=state.submit_label,
            state=tk.NORMAL if state.submit_enabled else tk.DISABLED,
        )

        if state.mode is InputMode.CAMERA:
            frame = self.scanner.latest_frame() if state.is_live else None
            if frame is not None:
                self._render_preview(frame)
            elif state.is_starting:
                self.preview.configure(image="", text=constants.STARTING_LABEL)

        self._after_id = self.window.after(REFRESH_MS, self._refresh)

    def _render_preview(self, frame: np.ndarray) -> None:
        try:
            rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            image = Image.fromarray(rgb)
            image.thumbnail(PREVIEW_SIZE)
            self._photo = ImageTk.PhotoImage(image)
            self.preview.configure(image=self._photo, text="")
        except Exception:
            logger.debug("Preview frame could not be rendered", exc_info=True)


__all__ = ["QRScannerDialog"]
