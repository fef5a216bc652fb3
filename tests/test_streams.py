"""Tests for flysystem.streams — chunking and streaming hashes."""
from __future__ import annotations

import asyncio
import hashlib

import pytest

from flysystem.errors import ChecksumMismatch
from flysystem.streams import (
    CHUNK_SIZE,
    HashingStream,
    collect,
    iter_chunks,
    new_hash,
    single_chunk,
    to_bytes,
)


async def _list(stream) -> list[bytes]:
    return [chunk async for chunk in stream]


class TestChunking:

    def test_to_bytes(self):
        assert to_bytes("é") == b"\xc3\xa9"
        assert to_bytes(bytearray(b"ab")) == b"ab"
        assert to_bytes(memoryview(b"cd")) == b"cd"

    def test_single_chunk(self):
        assert asyncio.run(_list(single_chunk("abc"))) == [b"abc"]

    def test_single_chunk_empty_yields_nothing(self):
        assert asyncio.run(_list(single_chunk(b""))) == []

    def test_iter_chunks_sizes(self):
        data = b"x" * (CHUNK_SIZE * 2 + 10)
        chunks = asyncio.run(_list(iter_chunks(data)))
        assert [len(c) for c in chunks] == [CHUNK_SIZE, CHUNK_SIZE, 10]
        assert b"".join(chunks) == data

    def test_collect(self):
        assert asyncio.run(collect(iter_chunks(b"abcdef", chunk_size=4))) == b"abcdef"


class TestHashingStream:

    def test_passes_chunks_through_and_hashes(self):
        stream = HashingStream(iter_chunks(b"hello world", chunk_size=3))
        chunks = asyncio.run(_list(stream))
        assert b"".join(chunks) == b"hello world"
        assert stream.hexdigest == hashlib.sha256(b"hello world").hexdigest()
        assert stream.size == 11
        assert stream.finished is True

    def test_expected_digest_matches_case_insensitively(self):
        expected = hashlib.sha256(b"abc").hexdigest().upper()
        stream = HashingStream(single_chunk(b"abc"), "a.txt", expected)
        assert asyncio.run(_list(stream)) == [b"abc"]

    def test_mismatch_raises_at_end_of_stream(self):
        stream = HashingStream(single_chunk(b"abc"), "a.txt", "deadbeef")
        received: list[bytes] = []

        async def run():
            async for chunk in stream:
                received.append(chunk)

        with pytest.raises(ChecksumMismatch) as excinfo:
            asyncio.run(run())
        assert received == [b"abc"]
        assert excinfo.value.path == "a.txt"
        assert excinfo.value.expected == "deadbeef"

    def test_unknown_algorithm(self):
        with pytest.raises(ValueError, match="Unsupported checksum algorithm"):
            new_hash("not-a-hash")
