"""QR / barcode scan acquisition for the order desk."""

from .config import ScannerConfig
from .errors import CameraAccessError, DecoderLoadError, ScannerError
from .runtime import InputMode
from .scanner import QRScanner, ScannerViewState

__all__ = [
    "CameraAccessError",
    "DecoderLoadError",
    "InputMode",
    "QRScanner",
    "ScannerConfig",
    "ScannerError",
    "ScannerViewState",
]
