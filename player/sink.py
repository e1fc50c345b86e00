"""
Playable sinks.

A sink holds the bytes of exactly one track at a time and plays them. The
transport controller owns the sink and is the only caller of its mutating
methods; the spectrum analyzer only reads the live signal through
read_signal().
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import numpy as np

from shared.errors import PlaybackError
from .decoder import PcmDecoder
from .media import MediaHandle

logger = logging.getLogger(__name__)


class MediaSink(ABC):
    """Base class for playable sinks."""

    def __init__(self, decoder: Optional[PcmDecoder] = None):
        self.decoder = decoder or PcmDecoder()
        self._handle: Optional[MediaHandle] = None
        self._pcm: Optional[np.ndarray] = None
        self._pcm_error: Optional[PlaybackError] = None
        self._preloaded = None
        self._signal_warned = False
        self._pcm_lock = threading.Lock()
        self._end_callbacks: List[Callable[[], None]] = []

    @property
    def handle(self) -> Optional[MediaHandle]:
        return self._handle

    @property
    def bound_track_id(self) -> Optional[str]:
        """Id of the track whose bytes are currently bound, if any."""
        return self._handle.track_id if self._handle else None

    def preload(self, handle: MediaHandle) -> None:
        """
        Decode the signal of a handle ahead of bind().

        Called from a worker thread so the (slow) decode happens outside the
        controller lock. Decode errors are kept and surface on use.
        """
        pcm, error = None, None
        try:
            pcm = self.decoder.decode(handle.path)
        except PlaybackError as e:
            error = e
        with self._pcm_lock:
            self._preloaded = (handle, pcm, error)

    def bind(self, handle: MediaHandle) -> None:
        """
        Load a track's bytes, paused at position 0.

        Raises:
            PlaybackError: If the sink rejects the media
        """
        with self._pcm_lock:
            preloaded, self._preloaded = self._preloaded, None
            if preloaded is not None and preloaded[0] is handle:
                _, self._pcm, self._pcm_error = preloaded
            else:
                self._pcm, self._pcm_error = None, None
            self._signal_warned = False
        self._handle = handle
        try:
            self._load(handle)
        except PlaybackError:
            self._handle = None
            raise

    def unbind(self) -> None:
        """Stop and forget the bound media. The handle is not released here."""
        self._unload()
        self._handle = None
        with self._pcm_lock:
            self._pcm, self._pcm_error = None, None

    @abstractmethod
    def _load(self, handle: MediaHandle) -> None:
        pass

    @abstractmethod
    def _unload(self) -> None:
        pass

    @abstractmethod
    def play(self) -> None:
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def seek(self, position: float) -> None:
        """Seek to an absolute position in seconds."""
        pass

    @property
    @abstractmethod
    def time_pos(self) -> float:
        pass

    @property
    @abstractmethod
    def duration(self) -> float:
        pass

    def close(self) -> None:
        self.unbind()

    # End-of-media notification
    def add_end_callback(self, callback: Callable[[], None]) -> None:
        """Register a callback for when the bound media ends."""
        if callback not in self._end_callbacks:
            self._end_callbacks.append(callback)

    def remove_end_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._end_callbacks:
            self._end_callbacks.remove(callback)

    def _trigger_end(self) -> None:
        for callback in list(self._end_callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Error in end-of-media callback %r", callback)

    # Live signal
    def signal(self) -> Optional[np.ndarray]:
        """
        Decoded samples of the bound media, decoded on first use.

        Raises:
            PlaybackError: If the bound media cannot be decoded
        """
        handle = self._handle
        if handle is None:
            return None
        with self._pcm_lock:
            if self._pcm is None and self._pcm_error is None:
                try:
                    self._pcm = self.decoder.decode(handle.path)
                except PlaybackError as e:
                    self._pcm_error = e
            if self._pcm_error is not None:
                raise self._pcm_error
            return self._pcm

    def read_signal(self, count: int) -> np.ndarray:
        """
        The newest `count` mono samples before the playhead.

        Zero-padded at the start of a track and all zeros when nothing is
        bound or the signal cannot be decoded.
        """
        window = np.zeros(count, dtype=np.float32)
        try:
            pcm = self.signal()
        except PlaybackError as e:
            # Playback itself may still work; only the tap goes quiet
            if not self._signal_warned:
                logger.warning("Live signal unavailable for %s: %s", self.bound_track_id, e)
                self._signal_warned = True
            return window
        if pcm is None or pcm.size == 0:
            return window

        end = min(int(self.time_pos * self.decoder.sample_rate), pcm.size)
        start = max(0, end - count)
        chunk = pcm[start:end]
        if chunk.size:
            window[count - chunk.size:] = chunk
        return window


class MpvSink(MediaSink):
    """Audio output through libmpv."""

    def __init__(self, decoder: Optional[PcmDecoder] = None, volume: int = 100):
        super().__init__(decoder)
        import mpv

        # vo='null' because we are audio-only; keep_open so eof-reached fires
        self.player = mpv.MPV(vo='null', ytdl=False, keep_open='yes')
        self.player.volume = max(0, min(100, volume))
        self.player.observe_property('eof-reached', self._handle_eof)

    def _handle_eof(self, name, value):
        if value and self._handle is not None:
            logger.debug("mpv eof-reached for %s", self._handle.track_id)
            # Observers run on mpv's event thread, which must not issue commands
            threading.Thread(target=self._trigger_end, name="mpv-eof", daemon=True).start()

    def _load(self, handle: MediaHandle) -> None:
        try:
            self.player.pause = True
            self.player.loadfile(str(handle.path), 'replace')
        except (SystemError, RuntimeError, ValueError, OSError) as e:
            raise PlaybackError(f"mpv rejected {handle.path}: {e}", track_id=handle.track_id) from e

    def _unload(self) -> None:
        try:
            self.player.command('stop')
        except (SystemError, RuntimeError) as e:
            logger.debug("mpv stop failed: %s", e)

    def play(self) -> None:
        if self._handle is None:
            raise PlaybackError("Nothing bound to play")
        try:
            self.player.pause = False
        except (SystemError, RuntimeError) as e:
            raise PlaybackError(f"mpv failed to start playback: {e}",
                                track_id=self.bound_track_id) from e

    def pause(self) -> None:
        self.player.pause = True

    def seek(self, position: float) -> None:
        if self._handle is None:
            return
        try:
            self.player.seek(position, reference='absolute')
        except (SystemError, RuntimeError) as e:
            logger.warning("Error seeking: %s", e)

    @property
    def time_pos(self) -> float:
        return self.player.time_pos or 0.0

    @property
    def duration(self) -> float:
        return self.player.duration or 0.0

    def close(self) -> None:
        super().close()
        self.player.terminate()


class ClockSink(MediaSink):
    """
    Silent sink that plays back against the monotonic clock.

    Used when no audio device or libmpv is available. The duration comes from
    the decoded signal, so the visualizer behaves exactly as with real
    output.
    """

    def __init__(self, decoder: Optional[PcmDecoder] = None, clock: Callable[[], float] = time.monotonic):
        super().__init__(decoder)
        self._clock = clock
        self._lock = threading.RLock()
        self._duration = 0.0
        self._offset = 0.0
        self._started_at: Optional[float] = None
        self._timer: Optional[threading.Timer] = None

    def _load(self, handle: MediaHandle) -> None:
        pcm = self.signal()
        with self._lock:
            self._cancel_timer()
            self._duration = pcm.size / self.decoder.sample_rate
            self._offset = 0.0
            self._started_at = None

    def _unload(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._duration = 0.0
            self._offset = 0.0
            self._started_at = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_end(self) -> None:
        self._cancel_timer()
        remaining = max(0.0, self._duration - self._offset)
        self._timer = threading.Timer(remaining, self._on_end)
        self._timer.daemon = True
        self._timer.start()

    def _on_end(self) -> None:
        with self._lock:
            if self._started_at is None:
                return
            self._offset = self._duration
            self._started_at = None
            self._timer = None
        self._trigger_end()

    @property
    def is_running(self) -> bool:
        return self._started_at is not None

    def play(self) -> None:
        if self._handle is None:
            raise PlaybackError("Nothing bound to play")
        with self._lock:
            if self._started_at is not None:
                return
            self._started_at = self._clock()
            self._schedule_end()

    def pause(self) -> None:
        with self._lock:
            if self._started_at is None:
                return
            self._offset = self.time_pos
            self._started_at = None
            self._cancel_timer()

    def seek(self, position: float) -> None:
        with self._lock:
            if self._handle is None:
                return
            self._offset = max(0.0, min(position, self._duration))
            if self._started_at is not None:
                self._started_at = self._clock()
                self._schedule_end()

    @property
    def time_pos(self) -> float:
        with self._lock:
            if self._started_at is None:
                return self._offset
            return min(self._duration, self._offset + self._clock() - self._started_at)

    @property
    def duration(self) -> float:
        return self._duration
