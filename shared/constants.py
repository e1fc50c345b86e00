"""
Shared constants used across the player.
"""

# Library metadata
LIBRARY_METADATA_FILENAME = "library.json"

# Audio formats
SUPPORTED_AUDIO_FORMATS = [
    ".mp3", ".flac", ".ogg", ".m4a", ".wav",
    ".opus", ".aac", ".wma", ".alac"
]

MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".opus": "audio/ogg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".wav": "audio/wav",
}

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/cloudwave"
DEFAULT_CONFIG_FILENAME = "config.json"
DEFAULT_SPOOL_DIR = "~/.cache/cloudwave/spool"

# Network settings
DEFAULT_NETWORK_TIMEOUT = 30  # seconds
DEFAULT_DOWNLOAD_CHUNK_SIZE = 64 * 1024  # bytes

# Google Drive
DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
DRIVE_TRACK_PROPERTY = "cloudwave_track"

# Decoding
PCM_SAMPLE_RATE = 44100  # Hz, mono float32

# Spectrum analysis (mirrors the Web Audio AnalyserNode defaults)
FFT_SIZE = 256
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0
SMOOTHING_TIME_CONSTANT = 0.8
MAX_BYTE_MAGNITUDE = 255

# Rendering
FRAME_RATE = 60  # display refresh, frames per second
TIME_UPDATE_INTERVAL = 0.25  # seconds between position reports
IDLE_LINE_HEIGHT = 2
IDLE_LINE_ALPHA = 0.2
BAR_BASE_ALPHA = 0.6
BAR_PEAK_ALPHA = 0.4

# UI
DEFAULT_ACCENT_COLOR = "#6366f1"
DEFAULT_CANVAS_WIDTH = 64  # terminal cells
DEFAULT_CANVAS_HEIGHT = 12
