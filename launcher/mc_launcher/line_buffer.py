from __future__ import annotations
import codecs
from typing import List, Union

class LineBuffer:
    """
    Reassembles logical lines from output chunks with arbitrary boundaries.

    Lines end at "\\n"; a "\\r" right before it is dropped so CRLF output
    yields the same lines as LF output, however the stream is split.
    Bytes are decoded incrementally, so a UTF-8 sequence cut in half by a
    chunk boundary is decoded once the rest arrives.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._tail = ""

    def consume(self, chunk: Union[bytes, str]) -> List[str]:
        if isinstance(chunk, (bytes, bytearray)):
            text = self._decoder.decode(bytes(chunk))
        else:
            text = chunk
        if not text:
            return []

        data = self._tail + text
        parts = data.split("\n")
        # last element is the unterminated tail (empty if chunk ended on "\n")
        self._tail = parts.pop()
        return [_strip_cr(p) for p in parts]

    def flush(self) -> List[str]:
        """Return the remainder as a final line at stream end."""
        rest = self._tail + self._decoder.decode(b"", final=True)
        self._tail = ""
        self._decoder.reset()
        rest = _strip_cr(rest)
        return [rest] if rest else []

    @property
    def pending(self) -> str:
        return self._tail


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line
