import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor

import numpy as np
import pytest

from player.canvas import Canvas
from player.sink import MediaSink
from player.transport import TransportController
from shared.errors import FetchError, PlaybackError
from shared.models import Track
from storage.track_source import ByteStream, TrackSource

SAMPLE_RATE = 8000


def make_track(n, **extra):
    return Track(id=f"t{n}", title=f"Song {n}", artist=f"Artist {n}", source_ref=f"file-{n}",
                 file_name=f"song{n}.mp3", **extra)


def wait_until(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class ImmediateExecutor(Executor):
    """Runs submitted work inline, so fetches finish before play() returns."""

    def submit(self, fn, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


class FakeSource(TrackSource):
    """In-memory byte source; ids can be gated (blocked) or set to fail."""

    def __init__(self):
        self.calls = []
        self.gates = {}
        self.failures = set()

    def gate(self, track_id):
        self.gates[track_id] = threading.Event()
        return self.gates[track_id]

    def resolve_byte_stream(self, track_id):
        self.calls.append(track_id)
        gate = self.gates.get(track_id)
        if gate is not None:
            gate.wait(5)
        if track_id in self.failures:
            raise FetchError("not found", track_id=track_id, status=404)
        return ByteStream.from_bytes(f"audio-{track_id}".encode(), mime_type="audio/mpeg")


class SineDecoder:
    """Stands in for ffmpeg: every file decodes to a pure tone."""

    def __init__(self, seconds=2.0, frequency=1000.0, amplitude=0.5, sample_rate=SAMPLE_RATE):
        self.seconds = seconds
        self.frequency = frequency
        self.amplitude = amplitude
        self.sample_rate = sample_rate
        self.decoded = []

    def decode(self, path):
        self.decoded.append(path)
        t = np.arange(int(self.seconds * self.sample_rate)) / self.sample_rate
        return (self.amplitude * np.sin(2 * np.pi * self.frequency * t)).astype(np.float32)


class FailingDecoder(SineDecoder):
    def decode(self, path):
        raise PlaybackError(f"unsupported codec: {path}")


class FakeSink(MediaSink):
    """Sink with a manually driven playhead; finish() simulates end-of-media."""

    def __init__(self, decoder=None, track_duration=180.0):
        super().__init__(decoder or SineDecoder())
        self.track_duration = track_duration
        self.position = 0.0
        self.running = False
        self.reject_bind = False
        self.reject_play = False
        self.bind_count = 0

    def _load(self, handle):
        if self.reject_bind:
            raise PlaybackError("corrupt stream", track_id=handle.track_id)
        self.bind_count += 1
        self.position = 0.0
        self.running = False

    def _unload(self):
        self.running = False
        self.position = 0.0

    def play(self):
        if self.reject_play:
            raise PlaybackError("device busy", track_id=self.bound_track_id)
        self.running = True

    def pause(self):
        self.running = False

    def seek(self, position):
        self.position = position

    @property
    def time_pos(self):
        return self.position

    @property
    def duration(self):
        return self.track_duration if self.handle else 0.0

    def finish(self):
        self.position = self.track_duration
        self.running = False
        self._trigger_end()


class RecordingCanvas(Canvas):
    def __init__(self, width=256, height=100):
        self._width = width
        self._height = height
        self.ops = []
        self.clears = 0
        self._lock = threading.Lock()

    @property
    def width(self):
        return self._width

    @property
    def height(self):
        return self._height

    def clear(self):
        with self._lock:
            self.clears += 1
            self.ops = []

    def fill_rect(self, x, y, w, h, color, alpha=1.0):
        with self._lock:
            self.ops.append((x, y, w, h, color, alpha))

    def snapshot_ops(self):
        with self._lock:
            return list(self.ops)


@pytest.fixture
def tracks():
    return [make_track(1), make_track(2), make_track(3)]


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def spool_dir(tmp_path):
    path = tmp_path / "spool"
    path.mkdir()
    return path


@pytest.fixture
def controller(source, sink, tracks, spool_dir):
    ctl = TransportController(source, sink, tracks, executor=ImmediateExecutor(),
                              spool_dir=str(spool_dir), time_interval=0.01)
    yield ctl
    ctl.close()


@pytest.fixture
def pool():
    executor = ThreadPoolExecutor(max_workers=4)
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture
def async_controller(source, sink, tracks, spool_dir, pool):
    ctl = TransportController(source, sink, tracks, executor=pool,
                              spool_dir=str(spool_dir), time_interval=0.01)
    yield ctl
    for gate in source.gates.values():
        gate.set()
    ctl.close()
