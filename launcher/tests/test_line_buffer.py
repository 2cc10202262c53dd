"""
Tests for LineBuffer: lines must not depend on how the stream is chunked.
"""

import pytest

from mc_launcher.line_buffer import LineBuffer


STREAM = "[12:00:00] [Server thread/INFO]: Starting\r\nDone café\nüber\r\ntail".encode("utf-8")


def _collect(chunks):
    buf = LineBuffer()
    lines = []
    for chunk in chunks:
        lines.extend(buf.consume(chunk))
    return lines + buf.flush()


def test_whole_stream():
    assert _collect([STREAM]) == [
        "[12:00:00] [Server thread/INFO]: Starting",
        "Done café",
        "über",
        "tail",
    ]


@pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 64])
def test_rechunking_gives_same_lines(size):
    chunks = [STREAM[i:i + size] for i in range(0, len(STREAM), size)]
    assert _collect(chunks) == _collect([STREAM])


def test_crlf_split_between_chunks():
    buf = LineBuffer()
    assert buf.consume(b"hello\r") == []
    assert buf.consume(b"\nworld\n") == ["hello", "world"]


def test_utf8_sequence_split_between_chunks():
    data = "é".encode("utf-8")
    buf = LineBuffer()
    assert buf.consume(data[:1]) == []
    assert buf.consume(data[1:] + b"\n") == ["é"]


def test_empty_lines_are_kept():
    buf = LineBuffer()
    assert buf.consume(b"a\n\nb\n") == ["a", "", "b"]


def test_pending_and_flush():
    buf = LineBuffer()
    buf.consume(b"partial")
    assert buf.pending == "partial"
    assert buf.flush() == ["partial"]
    assert buf.pending == ""
    assert buf.flush() == []


def test_accepts_text_chunks():
    buf = LineBuffer()
    assert buf.consume("one\ntw") == ["one"]
    assert buf.consume("o\n") == ["two"]
