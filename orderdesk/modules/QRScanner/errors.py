"""Exceptions raised inside the QR scanner; none of them escape ``QRScanner``."""


class ScannerError(Exception):
    """Base class for recoverable scanner failures."""


class CameraAccessError(ScannerError):
    """Camera permission denied, device missing, or the stream could not be opened."""


class DecoderLoadError(ScannerError):
    """The decoding library could not be imported or initialised."""


__all__ = ["ScannerError", "CameraAccessError", "DecoderLoadError"]
