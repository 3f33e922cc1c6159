"""Demultiplexing of Docker's attached exec stream.

Without a TTY the engine multiplexes stdout and stderr over one connection as
a sequence of frames:

    byte 0      stream type (1 = stdout, 2 = stderr, anything else ignored)
    bytes 1-3   reserved (zero)
    bytes 4-7   payload length, big-endian uint32
    ...         payload
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

HEADER_SIZE = 8
STDIN = 0
STDOUT = 1
STDERR = 2

_HEADER = struct.Struct(">BxxxL")


@dataclass(frozen=True)
class Frame:
    """One frame of the stream. ``stream`` is None for a raw trailing fragment."""

    stream: int | None
    payload: bytes


def iter_frames(raw: bytes) -> Iterator[Frame]:
    """Split a multiplexed byte string into frames, in order.

    A trailing fragment too short to be a header is yielded as a raw frame,
    and so are the bytes of a payload cut short by the end of the stream.
    """
    offset = 0
    total = len(raw)
    while offset < total:
        if offset + HEADER_SIZE > total:
            yield Frame(stream=None, payload=raw[offset:])
            return
        stream, length = _HEADER.unpack_from(raw, offset)
        start = offset + HEADER_SIZE
        end = start + length
        if end > total:
            yield Frame(stream=None, payload=raw[start:])
            return
        yield Frame(stream=stream, payload=raw[start:end])
        offset = end


def demultiplex(raw: bytes, streams: Iterable[int] = (STDOUT,)) -> str:
    """Concatenate the payloads of the selected streams and decode as UTF-8."""
    wanted = set(streams)
    chunks = [
        frame.payload
        for frame in iter_frames(raw)
        if frame.stream is None or frame.stream in wanted
    ]
    return b"".join(chunks).decode("utf-8", errors="replace")
