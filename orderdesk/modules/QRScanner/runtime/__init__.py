"""Scanner runtime: latch, media streams, decoding, capture and mode mediation."""

from .capture import CaptureController, CaptureState
from .decoder import DecodeSettings, FrameDecoder, ZBarBackend, crop_detection_window, load_decoder_backend
from .latch import OutcomeLatch
from .media import (
    DEFAULT_REGISTRY,
    CameraConstraints,
    CameraStream,
    MediaStream,
    MediaTrack,
    StreamRegistry,
    TrackState,
    open_camera_stream,
)
from .mediator import InputMode, InputModeMediator
from .session import AcquisitionSession

__all__ = [
    "AcquisitionSession",
    "CameraConstraints",
    "CameraStream",
    "CaptureController",
    "CaptureState",
    "DEFAULT_REGISTRY",
    "DecodeSettings",
    "FrameDecoder",
    "InputMode",
    "InputModeMediator",
    "MediaStream",
    "MediaTrack",
    "OutcomeLatch",
    "StreamRegistry",
    "TrackState",
    "ZBarBackend",
    "crop_detection_window",
    "load_decoder_backend",
    "open_camera_stream",
]
