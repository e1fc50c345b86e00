"""
Transport controller: the single logical playback slot.

Owns the sink, the ordered track list and the play flag. User commands
change state synchronously; only fetching a track's bytes runs on a worker
thread. Every fetch carries a generation number, and its result is bound
only if no other track switch happened in the meantime.
"""

import logging
import threading
from collections import deque
from concurrent.futures import Executor, Future
from typing import Callable, List, Optional, Sequence, Tuple

from shared.constants import DEFAULT_SPOOL_DIR, TIME_UPDATE_INTERVAL
from shared.errors import FetchError, PlaybackError, PlayerError
from shared.models import Track, TransportState, index_of
from storage.track_source import TrackSource
from .media import MediaHandle, spool
from .scheduler import FrameLoop
from .sink import MediaSink

logger = logging.getLogger(__name__)


class TransportController:
    """Play/pause/seek/next/previous over a track list, with auto-advance."""

    def __init__(self, source: TrackSource, sink: MediaSink, tracks: Optional[Sequence[Track]] = None,
                 executor: Optional[Executor] = None, spool_dir: Optional[str] = DEFAULT_SPOOL_DIR,
                 time_interval: float = TIME_UPDATE_INTERVAL):
        self.source = source
        self.sink = sink
        self.spool_dir = spool_dir

        # Session
        self._tracks: List[Track] = list(tracks or [])
        self._index: Optional[int] = None
        self._playing = False
        self._handle: Optional[MediaHandle] = None
        self._loading: Optional[Future] = None
        self._loading_id: Optional[str] = None
        self._generation = 0
        self._closed = False
        self._lock = threading.RLock()

        # None: each fetch runs on its own daemon thread
        self._executor = executor

        # Callbacks
        self._state_listeners: List[Callable[[TransportState], None]] = []
        self._time_listeners: List[Callable[[float, float], None]] = []
        self._track_listeners: List[Callable[[Optional[Track]], None]] = []
        self._error_listeners: List[Callable[[PlayerError], None]] = []
        self._last_state = TransportState.IDLE
        self._last_track_id: Optional[str] = None
        self._pending_errors: deque = deque()
        self._dirty = False
        self._draining = False
        self._notify_lock = threading.Lock()

        self._position_loop = FrameLoop(self._report_position, time_interval, name="position-report")
        self.sink.add_end_callback(self._on_end_of_media)

    # Read-only views
    @property
    def tracks(self) -> List[Track]:
        return list(self._tracks)

    @property
    def current_index(self) -> Optional[int]:
        return self._index

    @property
    def current_track(self) -> Optional[Track]:
        with self._lock:
            if self._index is None:
                return None
            return self._tracks[self._index]

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def state(self) -> TransportState:
        with self._lock:
            if self._index is None:
                return TransportState.IDLE
            if self._loading is not None:
                return TransportState.LOADING
            return TransportState.READY_PLAYING if self._playing else TransportState.READY_PAUSED

    @property
    def bound_handle(self) -> Optional[MediaHandle]:
        return self._handle

    @property
    def duration(self) -> float:
        if self._handle is None:
            return 0.0
        return max(0.0, self.sink.duration)

    @property
    def position(self) -> float:
        """Elapsed time of the bound media, always within [0, duration]."""
        if self._handle is None:
            return 0.0
        return min(max(0.0, self.sink.time_pos), self.duration)

    # Commands
    def play(self, track: Track) -> Optional[Future]:
        """
        Make `track` the active track and start playing it.

        Returns:
            The future of the byte fetch, or None when no fetch was needed
            (bytes already bound, or the track is not in the list)
        """
        errors = []
        with self._lock:
            if self._closed:
                return None
            index = index_of(self._tracks, track.id)
            if index is None:
                logger.debug("play(%s) ignored: not in the current list", track.id)
                return None

            self._index = index
            self._playing = True
            future = None
            if self._handle is not None and self.sink.bound_track_id == track.id:
                self._start_sink(errors)
            elif self._loading is not None and self._loading_id == track.id:
                future = self._loading
            else:
                future = self._switch_to(track)
        self._emit(errors)
        return future

    def pause(self) -> None:
        """Clear the play flag; the active track and its bytes are kept."""
        with self._lock:
            if not self._playing:
                return
            self._playing = False
            if self._handle is not None:
                self.sink.pause()
        self._emit()

    def resume(self) -> Optional[Future]:
        """
        Set the play flag again.

        If the active track has no bytes bound (after a failed fetch or a
        paused skip) they are fetched now.
        """
        errors = []
        future = None
        with self._lock:
            if self._closed or self._index is None or self._playing:
                return None
            self._playing = True
            if self._handle is not None:
                self._start_sink(errors)
            elif self._loading is None:
                future = self._switch_to(self._tracks[self._index])
        self._emit(errors)
        return future

    def toggle(self) -> Optional[Future]:
        if self._playing:
            self.pause()
            return None
        return self.resume()

    def next(self) -> Optional[Future]:
        """Advance with wraparound; no-op on an empty list."""
        return self._step(1)

    def previous(self) -> Optional[Future]:
        """Go back with wraparound; no-op on an empty list."""
        return self._step(-1)

    def seek(self, seconds: float) -> float:
        """
        Jump to an absolute position, clamped to [0, duration].

        Returns:
            The position actually applied (0 when nothing is bound)
        """
        with self._lock:
            if self._handle is None:
                return 0.0
            target = min(max(0.0, float(seconds)), self.duration)
            self.sink.seek(target)
        self._notify(self._time_listeners, self.position, self.duration)
        return target

    def set_tracks(self, tracks: Sequence[Track]) -> None:
        """
        Replace the track list after a catalog refresh.

        The active track is found again by id. If it is gone, the session
        drops to IDLE and its bytes are released.
        """
        with self._lock:
            current = self.current_track
            self._tracks = list(tracks)
            if current is None:
                return

            index = index_of(self._tracks, current.id)
            if index is None:
                logger.info("Active track %s left the catalog; stopping", current.id)
                self._abandon_fetch()
                self._release_binding()
                self._playing = False
                self._index = None
            else:
                self._index = index
        self._emit()

    def close(self) -> None:
        """Stop everything and release the bound media."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._abandon_fetch()
            self._release_binding()
            self._playing = False
        self._position_loop.stop()
        self.sink.remove_end_callback(self._on_end_of_media)

    # Listener registration
    def add_state_listener(self, callback: Callable[[TransportState], None]) -> None:
        self._state_listeners.append(callback)

    def add_time_listener(self, callback: Callable[[float, float], None]) -> None:
        """Called with (position, duration) about four times a second while playing."""
        self._time_listeners.append(callback)

    def add_track_listener(self, callback: Callable[[Optional[Track]], None]) -> None:
        self._track_listeners.append(callback)

    def add_error_listener(self, callback: Callable[[PlayerError], None]) -> None:
        self._error_listeners.append(callback)

    # Internals. Methods marked "lock held" expect the caller to hold self._lock
    def _step(self, delta: int) -> Optional[Future]:
        with self._lock:
            count = len(self._tracks)
            if self._closed or count == 0:
                return None
            if self._index is None:
                index = 0 if delta > 0 else count - 1
            else:
                index = (self._index + delta) % count
            errors = []
            future = self._select(index, errors)
        self._emit(errors)
        return future

    def _select(self, index: int, errors: list) -> Optional[Future]:
        # lock held
        self._index = index
        track = self._tracks[index]

        if self._handle is not None and self.sink.bound_track_id == track.id:
            # Single-track list wrapping onto itself: restart in place
            self.sink.seek(0.0)
            if self._playing:
                self._start_sink(errors)
            return None

        if self._playing:
            return self._switch_to(track)

        # Paused skip: move the index, fetch on resume
        self._abandon_fetch()
        self._release_binding()
        return None

    def _switch_to(self, track: Track) -> Future:
        # lock held
        self._abandon_fetch()
        self._release_binding()
        generation = self._generation
        self._loading_id = track.id
        logger.info("Loading %s - %s", track.artist, track.title)
        future = self._submit(self._load, track, generation)
        # A synchronous executor has already finished the load by now
        if not future.done():
            self._loading = future
        return future

    def _submit(self, fn: Callable, *args) -> Future:
        if self._executor is not None:
            return self._executor.submit(fn, *args)

        future: Future = Future()

        def run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(fn(*args))
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(target=run, name="track-fetch", daemon=True).start()
        return future

    def _abandon_fetch(self) -> None:
        # lock held; an in-flight fetch will find its generation stale and
        # stop at the next chunk, a queued one never starts
        self._generation += 1
        if self._loading is not None and self._loading.cancel():
            logger.debug("Cancelled queued fetch of %s", self._loading_id)
        self._loading = None
        self._loading_id = None

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation

    def _release_binding(self) -> None:
        # lock held
        handle, self._handle = self._handle, None
        if handle is not None:
            self.sink.unbind()
            handle.release()

    def _start_sink(self, errors: list) -> None:
        # lock held
        try:
            self.sink.play()
        except PlaybackError as e:
            logger.warning("Playback failed for %s: %s", self.sink.bound_track_id, e)
            self._playing = False
            self._release_binding()
            errors.append(e)

    def _load(self, track: Track, generation: int) -> bool:
        """Worker: fetch, spool and bind one track. Returns True if bound."""
        if self._is_stale(generation):
            logger.debug("Skipping fetch of %s; superseded before it started", track.id)
            return False
        try:
            stream = self.source.resolve_byte_stream(track.id)
            handle = spool(stream, track, self.spool_dir,
                           is_cancelled=lambda: self._is_stale(generation))
        except FetchError as e:
            self._fail(generation, e)
            return False
        except Exception as e:
            logger.exception("Unexpected error fetching %s", track.id)
            self._fail(generation, FetchError(str(e), track_id=track.id))
            return False

        if not self._is_stale(generation):
            self.sink.preload(handle)

        errors = []
        with self._lock:
            if self._is_stale(generation) or self._loading_id != track.id:
                logger.info("Discarding stale fetch of %s", track.id)
                handle.release()
                return False

            self._loading = None
            self._loading_id = None
            try:
                self.sink.bind(handle)
            except PlaybackError as e:
                logger.warning("Sink rejected %s: %s", track.id, e)
                handle.release()
                self._playing = False
                errors.append(e)
            else:
                self._handle = handle
                if self._playing:
                    self._start_sink(errors)
        self._emit(errors)
        return not errors

    def _fail(self, generation: int, error: FetchError) -> None:
        with self._lock:
            if self._is_stale(generation):
                logger.debug("Ignoring failure of a stale fetch: %s", error)
                return
            logger.warning("Could not load track %s: %s", error.track_id, error)
            self._loading = None
            self._loading_id = None
            self._playing = False
            self._release_binding()
        self._emit([error])

    def _on_end_of_media(self) -> None:
        with self._lock:
            if self._closed or not self._playing or self._index is None:
                return
            logger.info("End of %s; advancing", self.sink.bound_track_id)
        self.next()

    def _report_position(self) -> None:
        self._notify(self._time_listeners, self.position, self.duration)

    def _emit(self, errors: Sequence[PlayerError] = ()) -> None:
        """
        Publish state/track changes and errors. Called without the lock.

        Only one thread publishes at a time. A thread that finds another one
        publishing queues its errors, marks the state dirty and returns; the
        publishing thread then goes round again and reads the live state, so
        listeners always end on the current state and never on a stale one.
        """
        with self._notify_lock:
            self._pending_errors.extend(errors)
            self._dirty = True
            if self._draining:
                return
            self._draining = True

        while True:
            with self._notify_lock:
                if not self._dirty:
                    self._draining = False
                    return
                self._dirty = False
                pending = list(self._pending_errors)
                self._pending_errors.clear()
            try:
                self._publish(pending)
            except BaseException:
                with self._notify_lock:
                    self._draining = False
                raise

    def _publish(self, errors: Sequence[PlayerError]) -> None:
        for error in errors:
            self._notify(self._error_listeners, error)

        track = self.current_track
        track_id = track.id if track else None
        if track_id != self._last_track_id:
            self._last_track_id = track_id
            self._notify(self._track_listeners, track)

        state = self.state
        if state != self._last_state:
            self._last_state = state
            logger.debug("Transport state: %s", state.value)
            self._notify(self._state_listeners, state)

        if self.state == TransportState.READY_PLAYING and not self._closed:
            self._position_loop.start()
        else:
            self._position_loop.stop()

    @staticmethod
    def _notify(listeners: list, *args) -> None:
        for callback in list(listeners):
            try:
                callback(*args)
            except Exception:
                logger.exception("Error in transport listener %r", callback)

    def snapshot(self) -> Tuple[TransportState, Optional[Track], float, float]:
        """(state, track, position, duration) in one call, for UIs."""
        return self.state, self.current_track, self.position, self.duration
