"""Line reassembly for streamed command output."""

from __future__ import annotations

import codecs

from sshlink.constants import ENCODING, LINE_SEPARATOR


class LineReassembler:
    """Turn arbitrary byte chunks into complete text lines.

    Holds one pending partial line. Each chunk is appended to it and split
    on the separator; every complete segment is returned and the trailing
    segment is kept for the next chunk. Decoding is incremental, so a
    multi-byte character split across two chunks comes out intact.

    Example:
        >>> r = LineReassembler()
        >>> r.feed(b"hel")
        []
        >>> r.feed(b"lo\\nwor")
        ['hello']
        >>> r.flush()
        'wor'
    """

    __slots__ = ("_decoder", "_pending", "_separator")

    def __init__(self, separator: str = LINE_SEPARATOR, encoding: str = ENCODING) -> None:
        self._separator = separator
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        text = self._pending + self._decoder.decode(chunk)
        *lines, self._pending = text.split(self._separator)
        return lines

    def flush(self) -> str | None:
        """Return the remaining partial line, if any, and reset."""
        rest = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return rest or None
