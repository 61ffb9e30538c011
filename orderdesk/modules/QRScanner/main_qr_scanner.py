"""QR scanner entry point: scan one code and forward it to the queue backend."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional, Sequence

from orderdesk.api.client import OrderDeskAPIError, OrderDeskClient
from orderdesk.cli.common import (
    add_common_cli_arguments,
    install_signal_handlers,
    parse_size,
    positive_int,
)
from orderdesk.core.logging_config import configure_logging
from orderdesk.core.logging_utils import get_module_logger

from .config import DEFAULT_CONFIG_PATH, ScannerConfig
from .constants import DISPLAY_NAME
from .runtime.mediator import InputMode
from .scanner import QRScanner

logger = get_module_logger("MainQRScanner")

MODE_POLL_S = 0.1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=f"{DISPLAY_NAME}: scan one order code")
    # No CLI default for the log level so config.txt can set it
    add_common_cli_arguments(parser, default_log_level=None)

    parser.add_argument("--mode", choices=[m.value for m in InputMode], default=None, help="Initial input mode")
    parser.add_argument("--fps", type=positive_int, default=None, help="Decode attempts per second")
    parser.add_argument("--box", type=parse_size, default=None, help="Detection window, e.g. 250x250")
    parser.add_argument("--camera-index", type=int, default=None, help="OpenCV camera index")
    parser.add_argument("--api-url", default=None, help="Backend base URL; scanned code is posted to /queue/scan")
    parser.add_argument("--token", default=None, help="Bearer token for the backend")
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Write the settings given on this command line back into the config file",
    )

    ui_group = parser.add_mutually_exclusive_group()
    ui_group.add_argument("--gui", dest="gui", action="store_true", default=False, help="Show the Tk dialog")
    ui_group.add_argument("--headless", dest="gui", action="store_false", help="Console only (default)")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> tuple[argparse.Namespace, ScannerConfig]:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    config = ScannerConfig.load(args.config or DEFAULT_CONFIG_PATH, args)
    return args, config


async def forward_code(code: str, config: ScannerConfig, token: Optional[str]) -> int:
    if not config.api_base_url:
        print(code)
        return 0
    async with OrderDeskClient(config.api_base_url, token=token, timeout=config.api_timeout_s) as client:
        try:
            result = await client.scan_barcode(code)
        except OrderDeskAPIError as exc:
            logger.error("Backend rejected scan (status=%s): %s", exc.status, exc)
            return 1
    logger.info("Backend accepted scan: %s", result)
    print(code)
    return 0


async def scan_once(config: ScannerConfig, scanner_kwargs: Optional[dict] = None) -> Optional[str]:
    """Run a headless scan; manual input is read from stdin. Returns None if closed."""
    loop = asyncio.get_running_loop()
    result: asyncio.Future[str] = loop.create_future()
    closed = asyncio.Event()

    def on_scan(code: str) -> None:
        if not result.done():
            result.set_result(code)

    scanner = QRScanner(on_scan, closed.set, config=config, logger=logger, **(scanner_kwargs or {}))
    install_signal_handlers(scanner.close, loop)

    stdin_task: Optional[asyncio.Task] = None
    await scanner.mount()
    try:
        while not result.done() and not closed.is_set():
            if scanner.mode is InputMode.MANUAL and stdin_task is None:
                if scanner.error:
                    print(scanner.error, file=sys.stderr)
                stdin_task = asyncio.create_task(_read_manual_code(scanner))
            await asyncio.wait(
                [t for t in (result, stdin_task) if t is not None],
                timeout=MODE_POLL_S,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if stdin_task is not None and stdin_task.done() and not result.done():
                # EOF or empty line without a winner: treat as close
                await scanner.close()
    finally:
        await scanner.unmount()
        if stdin_task is not None and not stdin_task.done():
            stdin_task.cancel()

    return result.result() if result.done() else None


async def _read_manual_code(scanner: QRScanner) -> bool:
    line = await asyncio.to_thread(sys.stdin.readline)
    return await scanner.submit_manual(line)


def run_gui(config: ScannerConfig, token: Optional[str]) -> int:
    import tkinter as tk

    from orderdesk.core.async_bridge import AsyncBridge
    from .view import QRScannerDialog

    root = tk.Tk()
    root.withdraw()
    bridge = AsyncBridge(root)
    bridge.start()

    outcome: dict[str, int] = {"code": 1}

    async def deliver(code: str) -> None:
        outcome["code"] = await forward_code(code, config, token)
        bridge.call_in_gui(root.quit)

    forwarding: list[asyncio.Task] = []

    def on_scan(code: str) -> None:
        forwarding.append(asyncio.get_running_loop().create_task(deliver(code)))

    scanner = QRScanner(on_scan, lambda: bridge.call_in_gui(root.quit), config=config, logger=logger)
    dialog = QRScannerDialog(root, scanner, bridge)
    bridge.run_coroutine(scanner.mount())
    try:
        root.mainloop()
    finally:
        bridge.run_coroutine(scanner.unmount()).result(timeout=config.start_timeout_s + config.stop_timeout_s)
        dialog.destroy()
        bridge.stop()
        root.destroy()
    return outcome["code"]


async def run_headless(config: ScannerConfig, token: Optional[str]) -> int:
    code = await scan_once(config)
    if code is None:
        logger.info("Scanner closed without a result")
        return 1
    return await forward_code(code, config, token)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args, config = parse_args(argv)
    configure_logging(
        config.log_level,
        console=args.console_output,
        log_file=args.log_file,
        max_bytes=config.log_max_bytes,
        backup_count=config.log_backup_count,
    )
    if args.save_config:
        config_path = args.config or DEFAULT_CONFIG_PATH
        if config.save_overrides(args, config_path):
            logger.info("Saved command-line settings to %s", config_path)
        else:
            logger.warning("No command-line settings saved to %s", config_path)
    logger.info(
        "%s starting | mode=%s fps=%d box=%dx%d camera=%d api=%s",
        DISPLAY_NAME,
        config.default_mode,
        config.fps,
        config.box_width,
        config.box_height,
        config.camera_index,
        config.api_base_url or "-",
    )
    if args.gui:
        return run_gui(config, args.token)
    return asyncio.run(run_headless(config, args.token))


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
