"""Defaults for the QR scanner module."""

DISPLAY_NAME = "QR Scanner"
MODULE_ID = "qr_scanner"

# Decode polling and detection window
DEFAULT_FPS = 10
DEFAULT_BOX_WIDTH = 250
DEFAULT_BOX_HEIGHT = 250

# Delay before acquisition after entering camera mode, so the preview surface exists
DEFAULT_MODE_SWITCH_DELAY_MS = 100

DEFAULT_FACING_MODE = "environment"
DEFAULT_CAMERA_INDEX = 0
DEFAULT_FRAME_WIDTH = 1280
DEFAULT_FRAME_HEIGHT = 720

# Upper bounds on waiting for a hung decoder stop or a pending camera open
DEFAULT_STOP_TIMEOUT_S = 2.0
DEFAULT_START_TIMEOUT_S = 10.0

# Consecutive empty reads before a live camera is treated as lost
DEFAULT_MAX_MISSED_FRAMES = 30

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 3

CAMERA_ERROR_MESSAGE = "Unable to access the camera. Use manual input."
STARTING_LABEL = "Starting camera..."
AIM_HINT = "Point the camera at the QR code"
MANUAL_PROMPT = "Enter the code manually:"
MANUAL_PLACEHOLDER = "Enter code..."
SUBMIT_LABEL = "Submit"
PROCESSING_LABEL = "Processing..."

DECODER_MODULE = "pyzbar.pyzbar"
