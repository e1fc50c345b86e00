import pytest

from conftest import make_track
from player.media import spool
from shared.errors import FetchError
from shared.models import Track
from storage.track_source import ByteStream


def test_spool_writes_bytes_to_temp_file(spool_dir):
    handle = spool(ByteStream([b"abc", b"", b"def"]), make_track(1), str(spool_dir))

    assert handle.track_id == "t1"
    assert handle.size == 6
    assert handle.path.parent == spool_dir
    assert handle.path.suffix == ".mp3"
    assert handle.path.read_bytes() == b"abcdef"


def test_release_deletes_file_once(spool_dir):
    handle = spool(ByteStream.from_bytes(b"data"), make_track(1), str(spool_dir))

    handle.release()
    handle.release()

    assert handle.released
    assert not handle.path.exists()
    assert "released" in repr(handle)


def test_suffix_falls_back_to_mime_type(spool_dir):
    track = Track(id="x", title="X", artist="Y", source_ref="x")
    handle = spool(ByteStream.from_bytes(b"data", mime_type="audio/flac"), track, str(spool_dir))

    assert handle.path.suffix == ".flac"


def test_interrupted_stream_raises_fetch_error(spool_dir):
    closed = []

    def chunks():
        yield b"partial"
        raise ConnectionError("connection reset")

    with pytest.raises(FetchError) as info:
        spool(ByteStream(chunks(), close=lambda: closed.append(True)), make_track(1), str(spool_dir))

    assert info.value.track_id == "t1"
    assert closed == [True]
    assert list(spool_dir.iterdir()) == []


def test_cancelled_download_stops_and_cleans_up(spool_dir):
    seen = []
    closed = []

    def chunks():
        for i in range(10):
            seen.append(i)
            yield b"x"

    stream = ByteStream(chunks(), close=lambda: closed.append(True))
    with pytest.raises(FetchError) as info:
        spool(stream, make_track(1), str(spool_dir), is_cancelled=lambda: len(seen) >= 3)

    assert "cancelled" in str(info.value)
    assert seen == [0, 1, 2]
    assert closed == [True]
    assert list(spool_dir.iterdir()) == []


def test_empty_stream_is_a_fetch_error(spool_dir):
    with pytest.raises(FetchError):
        spool(ByteStream([]), make_track(1), str(spool_dir))
    assert list(spool_dir.iterdir()) == []


def test_spool_creates_missing_directory(tmp_path):
    target = tmp_path / "nested" / "spool"
    handle = spool(ByteStream.from_bytes(b"data"), make_track(2), str(target))
    assert handle.path.parent == target
