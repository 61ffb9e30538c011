"""Tests for the QR scanner command-line entry point."""

from __future__ import annotations

import asyncio
import io
import sys

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from orderdesk.modules.QRScanner import main_qr_scanner
from orderdesk.modules.QRScanner.config import ScannerConfig
from orderdesk.modules.QRScanner.errors import CameraAccessError
from orderdesk.modules.QRScanner.runtime.media import StreamRegistry
from tests.infrastructure.mocks.camera_mocks import (
    FakeStreamOpener,
    ScriptedDecoderFactory,
    blank_backend_loader,
)


def _fake_hardware(opener: FakeStreamOpener) -> dict:
    return {
        "open_stream": opener,
        "load_backend": blank_backend_loader,
        "decoder_factory": ScriptedDecoderFactory(),
        "registry": StreamRegistry(),
    }


class TestParseArgs:

    def test_defaults_come_from_config_file(self, tmp_path):
        path = tmp_path / "config.txt"
        path.write_text("fps = 7\nlog_level = debug\n")

        args, config = main_qr_scanner.parse_args(["--config", str(path)])

        assert config.fps == 7
        assert config.log_level == "debug"
        assert args.gui is False
        assert args.token is None

    def test_flags_override_config(self, tmp_path):
        path = tmp_path / "config.txt"
        path.write_text("fps = 7\nlog_level = debug\n")

        args, config = main_qr_scanner.parse_args([
            "--config", str(path),
            "--mode", "manual",
            "--fps", "12",
            "--box", "300x200",
            "--camera-index", "2",
            "--api-url", "http://desk/api",
            "--token", "t0k",
            "--log-level", "warning",
            "--gui",
        ])

        assert config.default_mode == "manual"
        assert config.fps == 12
        assert config.box_size == (300, 200)
        assert config.camera_index == 2
        assert config.api_base_url == "http://desk/api"
        assert config.log_level == "warning"
        assert args.token == "t0k"
        assert args.gui is True

    @pytest.mark.parametrize("argv", [["--fps", "0"], ["--box", "wide"], ["--mode", "nfc"]])
    def test_invalid_flags_exit(self, argv):
        with pytest.raises(SystemExit):
            main_qr_scanner.parse_args(argv)


class TestForwardCode:

    @pytest.mark.asyncio
    async def test_prints_code_without_backend(self, capsys):
        assert await main_qr_scanner.forward_code("ORD-1", ScannerConfig(), None) == 0
        assert capsys.readouterr().out.strip().splitlines()[-1] == "ORD-1"

    @pytest.mark.asyncio
    async def test_posts_to_backend(self, capsys):
        received = []

        async def scan(request: web.Request) -> web.Response:
            received.append((request.headers.get("Authorization"), await request.json()))
            return web.json_response({"position": 1})

        app = web.Application()
        app.router.add_post("/queue/scan", scan)
        server = TestServer(app)
        await server.start_server()
        try:
            config = ScannerConfig(api_base_url=str(server.make_url("")))
            assert await main_qr_scanner.forward_code("ORD-2", config, "tok") == 0
        finally:
            await server.close()

        assert received == [("Bearer tok", {"barcode": "ORD-2"})]

    @pytest.mark.asyncio
    async def test_backend_rejection_returns_error_code(self):
        async def scan(request: web.Request) -> web.Response:
            return web.json_response({"message": "Order already queued"}, status=409)

        app = web.Application()
        app.router.add_post("/queue/scan", scan)
        server = TestServer(app)
        await server.start_server()
        try:
            config = ScannerConfig(api_base_url=str(server.make_url("")))
            assert await main_qr_scanner.forward_code("ORD-3", config, None) == 1
        finally:
            await server.close()


class TestScanOnce:

    @pytest.mark.asyncio
    async def test_camera_failure_falls_back_to_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr(sys, "stdin", io.StringIO("  ORD-55  \n"))
        opener = FakeStreamOpener(error=CameraAccessError("permission denied"))

        code = await main_qr_scanner.scan_once(
            ScannerConfig(mode_switch_delay_ms=0), _fake_hardware(opener)
        )

        assert code == "ORD-55"
        assert ScannerConfig().error_message in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_manual_mode_empty_stdin_closes(self, monkeypatch):
        monkeypatch.setattr(sys, "stdin", io.StringIO(""))
        opener = FakeStreamOpener()

        code = await main_qr_scanner.scan_once(
            ScannerConfig(default_mode="manual"), _fake_hardware(opener)
        )

        assert code is None
        assert opener.calls == 0

    @pytest.mark.asyncio
    async def test_camera_scan_returns_decoded_code(self):
        opener = FakeStreamOpener()
        hardware = _fake_hardware(opener)
        decoders = hardware["decoder_factory"]

        async def emit_when_live():
            while not decoders.instances or not decoders.latest.started:
                await asyncio.sleep(0.005)
            decoders.latest.emit("QUEUE-77")

        emitter = asyncio.ensure_future(emit_when_live())
        code = await main_qr_scanner.scan_once(ScannerConfig(mode_switch_delay_ms=0), hardware)
        await emitter

        assert code == "QUEUE-77"
        assert opener.live_track_count() == 0



class TestMain:

    def test_rotation_from_config_and_saved_flags(self, tmp_path, monkeypatch):
        path = tmp_path / "config.txt"
        path.write_text("# desk scanner\nfps = 7\nlog_max_bytes = 2048\nlog_backup_count = 4\n")
        seen = {}

        async def fake_headless(config, token):
            seen["fps"] = config.fps
            return 0

        monkeypatch.setattr(main_qr_scanner, "configure_logging", lambda level, **kwargs: seen.update(kwargs))
        monkeypatch.setattr(main_qr_scanner, "run_headless", fake_headless)

        assert main_qr_scanner.main(["--config", str(path), "--fps", "12", "--save-config"]) == 0

        assert seen["max_bytes"] == 2048
        assert seen["backup_count"] == 4
        assert seen["fps"] == 12
        lines = path.read_text().splitlines()
        assert lines[0] == "# desk scanner"
        assert "fps = 12" in lines
        assert not any(line.startswith("log_level") for line in lines)

    def test_config_untouched_without_save_flag(self, tmp_path, monkeypatch):
        path = tmp_path / "config.txt"
        path.write_text("fps = 7\n")

        async def fake_headless(config, token):
            return 0

        monkeypatch.setattr(main_qr_scanner, "configure_logging", lambda level, **kwargs: None)
        monkeypatch.setattr(main_qr_scanner, "run_headless", fake_headless)

        main_qr_scanner.main(["--config", str(path), "--fps", "12"])

        assert path.read_text() == "fps = 7\n"
