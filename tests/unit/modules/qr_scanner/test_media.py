"""Unit tests for media tracks, the stream registry, and camera opening.

cv2 is replaced with a MagicMock so no camera hardware is touched.
"""

from __future__ import annotations

import gc
import threading
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from orderdesk.modules.QRScanner.errors import CameraAccessError
from orderdesk.modules.QRScanner.runtime import media
from orderdesk.modules.QRScanner.runtime.media import (
    CameraConstraints,
    CameraStream,
    MediaStream,
    MediaTrack,
    StreamRegistry,
    TrackState,
    open_camera_stream,
)


# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture
def mock_cv2():
    """Mock cv2 module with the constants the camera opener touches."""
    mock = MagicMock()
    mock.CAP_PROP_FRAME_WIDTH = 3
    mock.CAP_PROP_FRAME_HEIGHT = 4
    mock.CAP_PROP_FOURCC = 6
    mock.CAP_V4L2 = 200
    mock.VideoWriter_fourcc = lambda *args: sum(ord(c) << (8 * i) for i, c in enumerate(args))
    return mock


@pytest.fixture
def mock_capture(mock_cv2):
    cap = MagicMock()
    cap.isOpened.return_value = True
    cap.read.return_value = (True, np.zeros((720, 1280, 3), dtype=np.uint8))
    mock_cv2.VideoCapture.return_value = cap
    return cap


# =============================================================================
# Tracks and streams
# =============================================================================


class TestMediaTrack:

    def test_stop_is_idempotent_and_runs_hook_once(self):
        hook = MagicMock()
        track = MediaTrack("video", "cam", on_stop=hook)

        track.stop()
        track.stop()

        assert track.ready_state is TrackState.ENDED
        assert not track.live
        hook.assert_called_once_with()

    def test_hook_failure_still_ends_track(self):
        track = MediaTrack("video", "cam", on_stop=MagicMock(side_effect=OSError("already gone")))

        track.stop()

        assert track.ready_state is TrackState.ENDED

    def test_concurrent_stops_release_once(self):
        hook = MagicMock()
        track = MediaTrack("video", "cam", on_stop=hook)
        threads = [threading.Thread(target=track.stop) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        hook.assert_called_once_with()


class TestMediaStream:

    def test_active_until_every_track_ends(self):
        a, b = MediaTrack("video", "a"), MediaTrack("audio", "b")
        stream = MediaStream([a, b])

        a.stop()
        assert stream.active
        b.stop()
        assert not stream.active

    def test_ids_are_unique(self):
        assert MediaStream().id != MediaStream().id

    @pytest.mark.asyncio
    async def test_base_stream_has_no_frames(self):
        assert await MediaStream([MediaTrack()]).read_frame() is None


class TestStreamRegistry:

    def test_sweep_stops_live_tracks_and_unregisters(self):
        registry = StreamRegistry()
        live = MediaStream([MediaTrack("video", "left-open")])
        ended = MediaStream([MediaTrack("video", "closed")])
        ended.stop()
        registry.register(live)
        registry.register(ended)

        assert registry.sweep() == 1
        assert not live.active
        assert registry.live_streams() == []
        assert registry.sweep() == 0

    def test_unregister(self):
        registry = StreamRegistry()
        stream = MediaStream([MediaTrack()])
        registry.register(stream)
        registry.unregister(stream)

        assert len(registry) == 0
        assert registry.sweep() == 0
        assert stream.active

    def test_registry_does_not_keep_streams_alive(self):
        registry = StreamRegistry()
        registry.register(MediaStream([MediaTrack()]))
        gc.collect()

        assert len(registry) == 0


# =============================================================================
# Camera streams
# =============================================================================


class TestCameraStream:

    def test_stopping_track_releases_capture(self, mock_capture):
        stream = CameraStream(mock_capture, CameraConstraints())

        stream.stop()
        stream.stop()

        mock_capture.release.assert_called_once_with()
        assert not stream.active

    @pytest.mark.asyncio
    async def test_read_frame_after_stop_returns_none(self, mock_capture):
        stream = CameraStream(mock_capture, CameraConstraints())
        frame = await stream.read_frame()
        assert frame is not None and frame.shape == (720, 1280, 3)

        stream.stop()

        assert await stream.read_frame() is None

    @pytest.mark.asyncio
    async def test_failed_read_returns_none(self, mock_capture):
        mock_capture.read.return_value = (False, None)
        stream = CameraStream(mock_capture, CameraConstraints())

        assert await stream.read_frame() is None
        assert stream.active


class TestOpenCameraStream:

    @pytest.mark.asyncio
    async def test_open_configures_and_registers(self, mock_cv2, mock_capture):
        registry = StreamRegistry()
        constraints = CameraConstraints(device_index=2, width=640, height=480)

        with patch.object(media, "cv2", mock_cv2):
            stream = await open_camera_stream(constraints, registry=registry)

        mock_cv2.VideoCapture.assert_called_once_with(2, 200)
        mock_capture.set.assert_any_call(mock_cv2.CAP_PROP_FRAME_WIDTH, 640)
        mock_capture.set.assert_any_call(mock_cv2.CAP_PROP_FRAME_HEIGHT, 480)
        assert isinstance(stream, CameraStream)
        assert registry.live_streams() == [stream]
        stream.stop()

    @pytest.mark.asyncio
    async def test_falls_back_to_default_backend(self, mock_cv2):
        v4l2_cap = MagicMock()
        v4l2_cap.isOpened.return_value = False
        default_cap = MagicMock()
        default_cap.isOpened.return_value = True
        mock_cv2.VideoCapture.side_effect = [v4l2_cap, default_cap]

        with patch.object(media, "cv2", mock_cv2):
            stream = await open_camera_stream(CameraConstraints(), registry=StreamRegistry())

        v4l2_cap.release.assert_called_once_with()
        assert mock_cv2.VideoCapture.call_count == 2
        stream.stop()
        default_cap.release.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_no_camera_raises_access_error(self, mock_cv2):
        closed = MagicMock()
        closed.isOpened.return_value = False
        mock_cv2.VideoCapture.return_value = closed
        registry = StreamRegistry()

        with patch.object(media, "cv2", mock_cv2):
            with pytest.raises(CameraAccessError):
                await open_camera_stream(CameraConstraints(), registry=registry)

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_driver_exception_becomes_access_error(self, mock_cv2):
        mock_cv2.VideoCapture.side_effect = RuntimeError("v4l2 ioctl failed")

        with patch.object(media, "cv2", mock_cv2):
            with pytest.raises(CameraAccessError, match="v4l2 ioctl failed"):
                await open_camera_stream(CameraConstraints(), registry=StreamRegistry())
