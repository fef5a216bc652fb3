"""Byte-stream helpers used by the façade and adapters.

Streams are ``AsyncIterator[bytes]``. Nothing here buffers more than the
chunk currently passing through, except ``collect`` which exists for the
``read()`` convenience and is opt-in by the caller.
"""
from __future__ import annotations

import hashlib
from typing import AsyncIterable, AsyncIterator, Union

from flysystem.errors import ChecksumMismatch

CHUNK_SIZE = 64 * 1024
DEFAULT_ALGORITHM = "sha256"

Content = Union[bytes, bytearray, memoryview, str]


def to_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


async def single_chunk(content: Content) -> AsyncIterator[bytes]:
    """Wrap an in-memory value as a one-chunk stream."""
    data = to_bytes(content)
    if data:
        yield data


async def iter_chunks(data: bytes, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield *data* in ``chunk_size`` slices."""
    view = memoryview(data)
    for start in range(0, len(view), chunk_size):
        yield bytes(view[start:start + chunk_size])


async def collect(stream: AsyncIterable[bytes]) -> bytes:
    """Drain *stream* into memory."""
    parts = [chunk async for chunk in stream]
    return b"".join(parts)


def new_hash(algorithm: str = DEFAULT_ALGORITHM):
    try:
        return hashlib.new(algorithm)
    except ValueError:
        raise ValueError(f"Unsupported checksum algorithm: {algorithm}") from None


class HashingStream:
    """Pass-through stream that hashes every chunk it yields.

    With *expected* set, exhausting the stream compares digests and raises
    ``ChecksumMismatch`` from inside the iteration, i.e. before the consumer
    sees end-of-stream. Writers only commit after end-of-stream, so a bad
    payload is aborted rather than stored.

    Args:
        source: Stream being wrapped.
        path: Location string, used in the mismatch message.
        expected: Expected hex digest (case-insensitive), or None.
        algorithm: Any ``hashlib`` algorithm name.
    """

    def __init__(
        self,
        source: AsyncIterable[bytes],
        path: str = "",
        expected: str | None = None,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> None:
        self._source = source
        self._path = path
        self._expected = expected.lower() if expected else None
        self._hash = new_hash(algorithm)
        self.size = 0
        self.finished = False

    @property
    def hexdigest(self) -> str:
        return self._hash.hexdigest()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._run()

    async def _run(self) -> AsyncIterator[bytes]:
        async for chunk in self._source:
            self._hash.update(chunk)
            self.size += len(chunk)
            yield chunk
        self.finished = True
        if self._expected is not None and self.hexdigest != self._expected:
            raise ChecksumMismatch(self._path, self._expected, self.hexdigest)
