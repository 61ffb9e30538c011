"""Allow ``python -m orderdesk`` to launch the QR scanner."""

from __future__ import annotations

from orderdesk.modules.QRScanner.main_qr_scanner import run

if __name__ == "__main__":
    run()
