import io

import pytest

from flatstruct.streams import Sink, Stream


def test_stream_bytes():
    stream = Stream(b'\x01\x02\x03')

    assert len(stream) == 3
    assert stream.span.readonly
    assert stream.span[1] == 2


@pytest.mark.parametrize('wrap', [bytearray, lambda _: memoryview(bytearray(_))])
def test_stream_writable_buffers_become_read_only(wrap):
    buffer = wrap(b'\x01\x02\x03')

    stream = Stream(buffer)

    assert stream.span.readonly
    with pytest.raises(TypeError):
        stream.span[0] = 4


@pytest.mark.parametrize('as_path', [str, lambda _: _])
def test_stream_path(tmp_path, as_path):
    path = tmp_path / 'archive.flat'
    path.write_bytes(b'flatstruct')

    with Stream(as_path(path)) as stream:
        assert stream.span.readonly
        assert stream.span.tobytes() == b'flatstruct'


def test_stream_empty_file(tmp_path):
    path = tmp_path / 'empty.flat'
    path.write_bytes(b'')

    with Stream(str(path)) as stream:
        assert len(stream) == 0


def test_stream_file_object(tmp_path):
    path = tmp_path / 'archive.flat'
    path.write_bytes(b'flatstruct')

    with open(path, 'rb') as fp:
        stream = Stream(fp)
        assert stream.span[:4].tobytes() == b'flat'
        stream.close()


def test_stream_in_memory_file():
    stream = Stream(io.BytesIO(b'flatstruct'))

    assert stream.span.tobytes() == b'flatstruct'


def test_stream_unsupported():
    with pytest.raises(ValueError):
        Stream(42)


def test_sink_in_memory():
    sink = Sink()

    assert sink.write(b'flat') == 4
    assert sink.write(b'struct') == 6
    assert sink.tell() == 10
    assert sink.getvalue() == b'flatstruct'


def test_sink_path(tmp_path):
    path = tmp_path / 'archive.flat'

    sink = Sink(path)
    sink.write(b'flatstruct')
    sink.close()

    assert path.read_bytes() == b'flatstruct'


def test_sink_file_object_is_not_closed():
    fp = io.BytesIO()

    sink = Sink(fp)
    sink.write(b'flatstruct')
    sink.close()

    assert not fp.closed
    assert fp.getvalue() == b'flatstruct'


def test_stream_close_with_live_views(tmp_path):
    path = tmp_path / 'archive.flat'
    path.write_bytes(b'flatstruct')

    stream = Stream(str(path))
    fp = stream._file
    view = stream.span[4:]

    stream.close()

    assert fp.closed
    assert view.tobytes() == b'struct'
