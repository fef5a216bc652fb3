"""Tests for flysystem.adapters.memory — directories derived from key prefixes."""
from __future__ import annotations

import asyncio

import pytest

from flysystem import ConfigError, Filesystem, UnsupportedOperation, Visibility
from flysystem.adapters import MemoryAdapter, MemoryConfig


@pytest.fixture
def fs() -> Filesystem:
    return Filesystem(MemoryAdapter())


async def _listing(fs: Filesystem, path: str = "", recursive: bool = False):
    return [(str(e.path), e.is_directory) async for e in fs.list_contents(path, recursive)]


class TestDerivedDirectories:
    """A directory exists iff some key sits strictly below it."""

    def test_directory_appears_with_first_file(self, fs: Filesystem):
        async def run():
            before = await fs.directory_exists("photos")
            await fs.write("photos/2024/cat.jpg", b"\xff\xd8")
            return before, await fs.directory_exists("photos"), await fs.directory_exists("photos/2024")

        assert asyncio.run(run()) == (False, True, True)

    def test_directory_disappears_with_last_file(self, fs: Filesystem):
        async def run():
            await fs.write("photos/cat.jpg", b"1")
            await fs.delete("photos/cat.jpg")
            return await fs.directory_exists("photos")

        assert asyncio.run(run()) is False

    def test_key_prefix_is_not_a_directory(self, fs: Filesystem):
        async def run():
            await fs.write("photosynthesis.txt", "x")
            return await fs.directory_exists("photo")

        assert asyncio.run(run()) is False

    def test_marker_keeps_empty_directory(self, fs: Filesystem):
        async def run():
            await fs.create_directory("inbox/new")
            return await _listing(fs, recursive=True)

        assert asyncio.run(run()) == [("inbox", True), ("inbox/new", True)]

    def test_shallow_listing_derives_subdirectories(self, fs: Filesystem):
        async def run():
            await fs.write("a/b/c/d.txt", "d")
            await fs.write("a/e.txt", "e")
            return await _listing(fs, "a")

        assert asyncio.run(run()) == [("a/b", True), ("a/e.txt", False)]

    def test_delete_directory_removes_prefix_only(self, fs: Filesystem):
        async def run():
            await fs.write("a/b/1.txt", "1")
            await fs.create_directory("a/b/empty")
            await fs.write("a/bb.txt", "keep")
            await fs.delete_directory("a/b")
            return await _listing(fs, recursive=True)

        assert asyncio.run(run()) == [("a", True), ("a/bb.txt", False)]


class TestMemorySpecifics:

    def test_directory_visibility_unsupported(self, fs: Filesystem):
        async def run():
            await fs.create_directory("dir")
            await fs.set_visibility("dir", Visibility.PRIVATE)

        with pytest.raises(UnsupportedOperation):
            asyncio.run(run())

    def test_copy_keeps_visibility(self, fs: Filesystem):
        async def run():
            await fs.write("a.txt", "x", visibility=Visibility.PRIVATE)
            await fs.copy("a.txt", "b.txt")
            return await fs.visibility("b.txt")

        assert asyncio.run(run()) is Visibility.PRIVATE

    def test_no_urls(self, fs: Filesystem):
        with pytest.raises(UnsupportedOperation):
            asyncio.run(fs.public_url("a.txt"))

    def test_config_accepts_empty_mapping(self):
        adapter = asyncio.run(MemoryAdapter.create({}))
        assert isinstance(adapter, MemoryAdapter)

    def test_config_rejects_unknown_keys(self):
        with pytest.raises(ConfigError):
            MemoryConfig.from_mapping({"root": "/tmp"})
