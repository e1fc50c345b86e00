import gc
import time

import numpy as np
import pytest

from conftest import SAMPLE_RATE, FakeSink, FailingDecoder, RecordingCanvas, SineDecoder, wait_until
from player.analyzer import AnalyzerTap, SpectrumAnalyzer, compute_bars
from player.media import MediaHandle


@pytest.fixture
def playing_sink(tmp_path):
    path = tmp_path / "tone.mp3"
    path.write_bytes(b"tone")
    sink = FakeSink(decoder=SineDecoder(frequency=1000.0, amplitude=0.05))
    sink.bind(MediaHandle("tone", path, 4))
    sink.position = 1.0
    return sink


@pytest.fixture
def canvas():
    return RecordingCanvas(width=256, height=100)


@pytest.fixture
def analyzer(canvas):
    analyzer = SpectrumAnalyzer(canvas)
    yield analyzer
    analyzer.close()


def test_attach_is_idempotent(analyzer, sink):
    first = analyzer.attach(sink)
    second = analyzer.attach(sink)

    assert first is second
    assert analyzer.tap_count == 1


def test_reattach_switches_active_tap(analyzer, playing_sink):
    quiet = FakeSink()
    analyzer.attach(playing_sink)
    analyzer.attach(quiet)
    assert analyzer.tap_count == 2
    assert not analyzer.snapshot().any()

    analyzer.attach(playing_sink)
    assert analyzer.tap_count == 2
    assert analyzer.snapshot().any()


def test_taps_do_not_keep_sinks_alive(analyzer, sink):
    analyzer.attach(sink)
    other = FakeSink()
    analyzer.attach(other)
    assert analyzer.tap_count == 2

    del other
    gc.collect()

    assert analyzer.tap_count == 1


def test_snapshot_has_128_bins(analyzer, playing_sink):
    analyzer.attach(playing_sink)
    data = analyzer.snapshot()

    assert data.shape == (128,)
    assert data.dtype == np.uint8


def test_snapshot_of_tone_peaks_at_its_bin(analyzer, playing_sink):
    analyzer.attach(playing_sink)
    expected_bin = round(1000.0 / SAMPLE_RATE * 256)

    for _ in range(10):
        data = analyzer.snapshot()

    assert int(np.argmax(data)) == expected_bin
    assert data[expected_bin] > 180
    assert data[expected_bin] > data[expected_bin - 4]


def test_snapshot_is_zero_without_signal(analyzer, sink):
    analyzer.attach(sink)
    assert not analyzer.snapshot().any()
    assert not SpectrumAnalyzer(RecordingCanvas()).snapshot().any()


def test_snapshot_is_zero_at_track_start(analyzer, playing_sink):
    playing_sink.position = 0.0
    analyzer.attach(playing_sink)
    assert not analyzer.snapshot().any()


def test_undecodable_signal_goes_quiet(analyzer, tmp_path):
    path = tmp_path / "broken.mp3"
    path.write_bytes(b"junk")
    sink = FakeSink(decoder=FailingDecoder())
    sink.bind(MediaHandle("broken", path, 4))
    sink.position = 1.0

    analyzer.attach(sink)
    assert not analyzer.snapshot().any()


def test_tap_of_collected_sink_reads_zeros():
    sink = FakeSink()
    tap = AnalyzerTap(sink)
    del sink
    gc.collect()

    assert tap.sink is None
    assert not tap.byte_frequency_data().any()


@pytest.mark.parametrize("kwargs", [{"fft_size": 100}, {"fft_size": 16}, {"smoothing": 1.5},
                                    {"min_db": -30, "max_db": -100}])
def test_tap_rejects_bad_parameters(sink, kwargs):
    with pytest.raises(ValueError):
        AnalyzerTap(sink, **kwargs)


def test_compute_bars_geometry():
    bars = compute_bars([0, 255, 51], width=300, height=100)

    assert len(bars) == 2
    peak, low = bars
    assert peak.x == pytest.approx(100)
    assert peak.width == pytest.approx(100)
    assert peak.half_height == pytest.approx(50)
    assert peak.alpha == pytest.approx(1.0)
    assert low.x == pytest.approx(200)
    assert low.half_height == pytest.approx(10)
    assert low.alpha == pytest.approx(0.68)


def test_compute_bars_handles_empty_input():
    assert compute_bars([], 100, 100) == []
    assert compute_bars([10, 20], 0, 100) == []


def test_inactive_render_draws_idle_line(analyzer, canvas):
    analyzer.render(False, "#ff0000")

    assert not analyzer.is_rendering
    assert canvas.snapshot_ops() == [(0, 50.0, 256, 2, "#ff0000", 0.2)]


def test_active_render_draws_mirrored_bars(analyzer, canvas, playing_sink):
    analyzer.attach(playing_sink)
    analyzer.render(True, "#00ff00")

    assert wait_until(lambda: len(canvas.snapshot_ops()) > 0)
    assert analyzer.is_rendering

    ops = canvas.snapshot_ops()
    # A frame may be mid-draw; only look at complete upper/lower pairs
    ops = ops[:len(ops) // 2 * 2]
    for upper, lower in zip(ops[::2], ops[1::2]):
        x, y, w, h, color, alpha = upper
        assert y + h == pytest.approx(50.0)
        assert lower[:4] == (x, 50.0, w, h)
        assert color == "#00ff00"
        assert 0.6 <= alpha <= 1.0


def test_stopping_render_cancels_frames(analyzer, canvas, playing_sink):
    analyzer.attach(playing_sink)
    analyzer.render(True)
    assert wait_until(lambda: canvas.clears > 0)

    analyzer.render(False)
    clears = canvas.clears
    time.sleep(0.1)

    assert not analyzer.is_rendering
    assert canvas.clears == clears
    assert len(canvas.snapshot_ops()) == 1


def test_render_after_close_is_ignored(analyzer, canvas):
    analyzer.close()
    analyzer.render(True)

    assert not analyzer.is_rendering
    assert canvas.snapshot_ops() == []
