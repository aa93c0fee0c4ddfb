import gzip

import pytest

from meshnet.errors import CheckError
from meshnet.streams import (
    BinaryPage,
    FileStream,
    GzFile,
    MemoryBufferStream,
    StdFile,
)


def test_memory_stream_round_trip():
    stream = MemoryBufferStream()
    stream.write(b"hello world")
    stream.seek(0)
    assert stream.read(5) == b"hello"
    assert stream.tell() == 5
    assert stream.read(100) == b" world"
    assert stream.read(4) == b""


def test_memory_stream_overwrite_in_place():
    stream = MemoryBufferStream(bytearray(b"abcdef"))
    stream.seek(2)
    stream.write(b"XY")
    assert stream.getvalue() == b"abXYef"


def test_memory_stream_write_past_end_pads_with_zeros():
    stream = MemoryBufferStream()
    stream.seek(3)
    stream.write(b"z")
    assert stream.getvalue() == b"\x00\x00\x00z"


def test_write_string_wire_format():
    stream = MemoryBufferStream()
    stream.write_string("ab")
    assert stream.getvalue() == b"\x02\x00\x00\x00\x00\x00\x00\x00ab"


def test_string_round_trip_and_empty():
    stream = MemoryBufferStream()
    stream.write_string("")
    stream.write_string(b"\x00\xffbin")
    stream.seek(0)
    assert stream.read_string() == b""
    assert stream.read_string() == b"\x00\xffbin"


def test_read_string_on_empty_stream_raises():
    with pytest.raises(EOFError):
        MemoryBufferStream().read_string()


def test_truncated_string_raises():
    stream = MemoryBufferStream()
    stream.write_string("abcdef")
    data = stream.getvalue()[:-2]
    with pytest.raises(EOFError):
        MemoryBufferStream(data).read_string()


@pytest.mark.parametrize(
    "typecode,values",
    [("i", [1, -2, 300000]), ("f", [0.5, -1.25]), ("I", []), ("d", [3.0])],
)
def test_array_round_trip(typecode, values):
    stream = MemoryBufferStream()
    stream.write_array(values, typecode)
    stream.seek(0)
    assert stream.read_array(typecode) == values


def test_read_struct():
    stream = MemoryBufferStream(b"\x01\x00\x00\x00\x02\x00")
    assert stream.read_struct("<ih") == (1, 2)
    with pytest.raises(EOFError):
        stream.read_struct("<i")


def test_gzfile_round_trip(tmp_path):
    path = str(tmp_path / "model.gz")
    with GzFile(path, "wb") as fo:
        fo.write_string("weights")
        fo.write_array([1.0, 2.0], "f")
    with open(path, "rb") as raw:
        assert raw.read(2) == b"\x1f\x8b"
    with GzFile(path, "r") as fi:
        assert fi.read_string() == b"weights"
        assert fi.read_array("f") == [1.0, 2.0]
    assert gzip.decompress(open(path, "rb").read())[8:15] == b"weights"


def test_gzfile_missing_raises(tmp_path):
    with pytest.raises(CheckError):
        GzFile(str(tmp_path / "nope.gz"), "rb")


def test_stdfile_size_and_read(tmp_path):
    path = tmp_path / "blob.bin"
    path.write_bytes(b"0123456789")
    with StdFile(str(path), "rb") as fi:
        assert fi.size() == 10
        fi.seek(4)
        assert fi.read(3) == b"456"
        assert fi.tell() == 7


def test_stdfile_write_then_read(tmp_path):
    path = str(tmp_path / "out.bin")
    with StdFile(path, "wb") as fo:
        fo.write_string("abc")
    with StdFile(path, "rb") as fi:
        assert fi.read_string() == b"abc"


def test_stdfile_missing_raises(tmp_path):
    with pytest.raises(CheckError):
        StdFile(str(tmp_path / "missing"), "rb")


def test_file_stream_wraps_open_file(tmp_path):
    path = tmp_path / "fs.bin"
    path.write_bytes(b"abcdef")
    stream = FileStream(open(path, "rb"))
    stream.seek(2)
    assert stream.read(2) == b"cd"
    assert stream.tell() == 4
    stream.close()


def test_binary_page_push_and_get():
    page = BinaryPage()
    assert len(page) == 0
    assert page.push(b"abc")
    assert page.push(b"")
    assert page.push(b"hello")
    assert len(page) == 3
    assert [page[i] for i in range(3)] == [b"abc", b"", b"hello"]
    assert page[-1] == b"hello"
    with pytest.raises(IndexError):
        page[3]


def test_binary_page_layout_and_round_trip():
    page = BinaryPage()
    page.push(b"abc")
    stream = MemoryBufferStream()
    page.save(stream)
    raw = stream.getvalue()
    assert len(raw) == BinaryPage.PAGE_BYTES
    assert raw[:12] == b"\x01\x00\x00\x00\x00\x00\x00\x00\x03\x00\x00\x00"
    assert raw[-3:] == b"abc"

    other = BinaryPage()
    stream.seek(0)
    assert other.load(stream)
    assert len(other) == 1
    assert other[0] == b"abc"
    assert not other.load(stream)


def test_binary_page_full_and_clear():
    page = BinaryPage()
    assert not page.push(bytes(BinaryPage.PAGE_BYTES))
    assert page.push(b"x")
    page.clear()
    assert len(page) == 0