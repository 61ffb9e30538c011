"""Order desk tooling: QR scan acquisition and the queue API client."""

from __future__ import annotations

from importlib import metadata

try:
    __version__ = metadata.version("orderdesk")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"

__all__ = ["__version__"]
