from .main_qr_scanner import run

run()
