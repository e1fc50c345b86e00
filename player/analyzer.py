"""
Real-time spectrum analyzer.

Taps the live signal of a sink, turns it into a byte-scaled frequency
snapshot and draws a mirrored bar visualization on a Canvas. The analyzer is
a pure observer: it never calls anything on the sink except read_signal().
"""

import logging
import threading
import weakref
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from shared.constants import (
    BAR_BASE_ALPHA,
    BAR_PEAK_ALPHA,
    DEFAULT_ACCENT_COLOR,
    FFT_SIZE,
    FRAME_RATE,
    IDLE_LINE_ALPHA,
    IDLE_LINE_HEIGHT,
    MAX_BYTE_MAGNITUDE,
    MAX_DECIBELS,
    MIN_DECIBELS,
    SMOOTHING_TIME_CONSTANT,
)
from .canvas import Canvas
from .scheduler import FrameLoop
from .sink import MediaSink

logger = logging.getLogger(__name__)


class AnalyzerTap:
    """
    Read-only frequency analysis node bound to one sink.

    Follows the Web Audio AnalyserNode model: Blackman window, magnitude
    normalized by the transform size, exponential smoothing across frames,
    and a linear dB-to-byte mapping over [min_db, max_db].
    """

    def __init__(self, sink: MediaSink, fft_size: int = FFT_SIZE,
                 smoothing: float = SMOOTHING_TIME_CONSTANT,
                 min_db: float = MIN_DECIBELS, max_db: float = MAX_DECIBELS):
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        if not 0.0 <= smoothing <= 1.0:
            raise ValueError("smoothing must be in [0, 1]")
        if max_db <= min_db:
            raise ValueError("max_db must be greater than min_db")

        # The registry is keyed weakly by sink; a strong reference here
        # would keep every sink alive forever.
        self._sink_ref = weakref.ref(sink)
        self.fft_size = fft_size
        self.smoothing = smoothing
        self.min_db = min_db
        self.max_db = max_db
        self._window = np.blackman(fft_size).astype(np.float64)
        self._smoothed = np.zeros(self.bin_count, dtype=np.float64)
        self._lock = threading.Lock()

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def sink(self) -> Optional[MediaSink]:
        return self._sink_ref()

    def byte_frequency_data(self) -> np.ndarray:
        """Current magnitudes as `bin_count` values in 0..255."""
        sink = self._sink_ref()
        if sink is None:
            return np.zeros(self.bin_count, dtype=np.uint8)

        samples = np.asarray(sink.read_signal(self.fft_size), dtype=np.float64)
        spectrum = np.abs(np.fft.rfft(samples * self._window))[:self.bin_count] / self.fft_size

        with self._lock:
            self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * spectrum
            smoothed = self._smoothed.copy()

        with np.errstate(divide='ignore'):
            decibels = 20.0 * np.log10(smoothed)
        scale = MAX_BYTE_MAGNITUDE / (self.max_db - self.min_db)
        scaled = np.floor(scale * (decibels - self.min_db))
        # -inf (pure silence) maps below zero and clips away
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, MAX_BYTE_MAGNITUDE).astype(np.uint8)


@dataclass(frozen=True)
class Bar:
    """One mirrored bar: `half_height` above and below the centre axis."""
    x: float
    width: float
    half_height: float
    alpha: float


def compute_bars(magnitudes: Sequence[int], width: float, height: float) -> List[Bar]:
    """
    Bar geometry for a snapshot.

    Bar width is the drawing width divided by the bin count, the half height
    scales linearly with magnitude up to half the drawing height, and opacity
    rises linearly from BAR_BASE_ALPHA to 1.0 at full magnitude. Silent bins
    produce no bar.
    """
    count = len(magnitudes)
    if count == 0 or width <= 0 or height <= 0:
        return []

    bar_width = width / count
    bars = []
    for i, value in enumerate(magnitudes):
        level = min(max(int(value), 0), MAX_BYTE_MAGNITUDE) / MAX_BYTE_MAGNITUDE
        if level == 0:
            continue
        bars.append(Bar(
            x=i * bar_width,
            width=bar_width,
            half_height=level * height / 2,
            alpha=BAR_BASE_ALPHA + level * BAR_PEAK_ALPHA,
        ))
    return bars


class SpectrumAnalyzer:
    """Draws the live spectrum of the attached sink onto a canvas."""

    def __init__(self, canvas: Canvas, fft_size: int = FFT_SIZE, frame_rate: int = FRAME_RATE,
                 smoothing: float = SMOOTHING_TIME_CONSTANT):
        self.canvas = canvas
        self.fft_size = fft_size
        self.smoothing = smoothing
        self._taps: "weakref.WeakKeyDictionary[MediaSink, AnalyzerTap]" = weakref.WeakKeyDictionary()
        self._active_tap: Optional[AnalyzerTap] = None
        self._accent_color = DEFAULT_ACCENT_COLOR
        self._lock = threading.Lock()
        self._closed = False
        self._loop = FrameLoop(self._draw_frame, 1.0 / frame_rate, name="spectrum-render")

    @property
    def tap_count(self) -> int:
        return len(self._taps)

    @property
    def is_rendering(self) -> bool:
        return self._loop.running

    def attach(self, sink: MediaSink) -> AnalyzerTap:
        """
        Tap a sink's output.

        A sink is tapped at most once; attaching it again only makes its
        existing tap the one the analyzer reads. Taps of other sinks stay
        registered until their sink is garbage collected.
        """
        with self._lock:
            tap = self._taps.get(sink)
            if tap is None:
                tap = AnalyzerTap(sink, fft_size=self.fft_size, smoothing=self.smoothing)
                self._taps[sink] = tap
                logger.debug("Tapped sink %r", sink)
            self._active_tap = tap
            return tap

    def snapshot(self) -> np.ndarray:
        """Current frequency snapshot of the active tap (zeros if none)."""
        tap = self._active_tap
        if tap is None:
            return np.zeros(self.fft_size // 2, dtype=np.uint8)
        return tap.byte_frequency_data()

    def render(self, is_active: bool, accent_color: Optional[str] = None) -> None:
        """
        Start or stop the visualization.

        While active, a frame is drawn on every display refresh. When
        inactive, the pending frame is cancelled before the idle indicator
        is drawn, and no further frames are scheduled.
        """
        if self._closed:
            return
        self._accent_color = accent_color or DEFAULT_ACCENT_COLOR
        if is_active:
            self._loop.start()
        else:
            self._loop.stop()
            self._draw_idle()

    def _draw_frame(self) -> None:
        bars = compute_bars(self.snapshot(), self.canvas.width, self.canvas.height)
        center = self.canvas.height / 2
        color = self._accent_color

        self.canvas.clear()
        for bar in bars:
            self.canvas.fill_rect(bar.x, center - bar.half_height, bar.width, bar.half_height, color, bar.alpha)
            self.canvas.fill_rect(bar.x, center, bar.width, bar.half_height, color, bar.alpha)

    def _draw_idle(self) -> None:
        self.canvas.clear()
        self.canvas.fill_rect(0, self.canvas.height / 2, self.canvas.width, IDLE_LINE_HEIGHT,
                              self._accent_color, IDLE_LINE_ALPHA)

    def close(self) -> None:
        """Cancel rendering; the canvas may be discarded afterwards."""
        self._closed = True
        self._loop.stop()
        self._active_tap = None
