"""Filesystem — the single entry point callers use.

Wraps exactly one adapter. Every path is normalized before it reaches the
adapter, every adapter failure comes back as one of the taxonomy errors in
``flysystem.errors``, and MIME types and checksums are filled in where the
backend does not provide them.

Usage::

    from flysystem import Filesystem
    from flysystem.adapters import LocalAdapter, LocalConfig

    async with await Filesystem.new(LocalAdapter, LocalConfig(root="/srv/files")) as fs:
        await fs.write("docs/readme.txt", "hello")
        data = await fs.read("docs/readme.txt")
        async for entry in fs.list_contents("docs", recursive=True):
            print(entry.path, entry.is_directory)

Swapping backends means passing a different adapter class and config; no
caller code changes.

Concurrency:
    No locking happens here. Concurrent calls (even on the same path) race
    at the adapter's own consistency level.
"""
from __future__ import annotations

import logging
import mimetypes
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any, AsyncIterable, AsyncIterator, Iterator

from flysystem.adapters.base import Adapter, PublicUrlGenerator, TemporaryUrlGenerator
from flysystem.errors import (
    AdapterError,
    AlreadyExists,
    BackendFailure,
    Closed,
    ConfigError,
    NotFound,
    PathError,
    UnsupportedOperation,
    classify,
)
from flysystem.location import Location
from flysystem.streams import (
    DEFAULT_ALGORITHM,
    Content,
    HashingStream,
    collect,
    single_chunk,
)
from flysystem.types import DirectoryEntry, Metadata, Visibility

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"

PathLike = str | Location


def guess_mime_type(location: Location) -> str:
    """MIME type from the extension, or the generic binary type."""
    return mimetypes.guess_type(location.name)[0] or DEFAULT_MIME_TYPE


@contextmanager
def _translated(operation: str, location: Location | None = None) -> Iterator[None]:
    """Re-raise AdapterError as its taxonomy kind, chained to the original."""
    try:
        yield
    except AdapterError as e:
        error = classify(e)
        if isinstance(error, BackendFailure):
            logger.warning("Unclassified backend failure in %s(%s): %s", operation, location, e)
        raise error from e


async def _translated_stream(
    stream: AsyncIterator[Any], operation: str, location: Location,
) -> AsyncIterator[Any]:
    with _translated(operation, location):
        async for item in stream:
            yield item


class Filesystem:
    """Storage façade over one adapter.

    Two states: open (accepts every operation) and closed (every operation
    raises ``Closed``). ``close()`` is the only transition.

    Args:
        adapter: An already-constructed adapter. Prefer ``Filesystem.new``,
            which builds and validates the adapter from its config.
    """

    def __init__(self, adapter: Adapter) -> None:
        if not isinstance(adapter, Adapter):
            raise TypeError(f"Expected an Adapter, got {type(adapter).__name__}")
        self._adapter: Adapter | None = adapter

    @classmethod
    async def new(cls, adapter_cls: type, config: Any = None) -> Filesystem:
        """Construct *adapter_cls* from *config* and wrap it.

        Raises:
            ConfigError: the adapter rejected its configuration or could not
                reach its backend.
        """
        try:
            adapter = await adapter_cls.create(config)
        except AdapterError as e:
            raise ConfigError(str(e)) from e
        logger.info("Filesystem opened over %r", adapter)
        return cls(adapter)

    # --- Lifecycle ---

    @property
    def closed(self) -> bool:
        return self._adapter is None

    @property
    def adapter(self) -> Adapter:
        if self._adapter is None:
            raise Closed("Filesystem is closed")
        return self._adapter

    async def close(self) -> None:
        """Release the adapter. Further operations raise ``Closed``."""
        if self._adapter is None:
            return
        adapter, self._adapter = self._adapter, None
        with _translated("close"):
            await adapter.close()
        logger.info("Filesystem closed (%r)", adapter)

    async def __aenter__(self) -> Filesystem:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Existence ---

    async def exists(self, path: PathLike) -> bool:
        """True iff a file or directory is addressable at *path*."""
        location = Location.normalize(path)
        with _translated("exists", location):
            return await self.adapter.exists(location)

    async def file_exists(self, path: PathLike) -> bool:
        location = Location.normalize(path)
        with _translated("file_exists", location):
            return await self.adapter.file_exists(location)

    async def directory_exists(self, path: PathLike) -> bool:
        location = Location.normalize(path)
        with _translated("directory_exists", location):
            return await self.adapter.directory_exists(location)

    # --- Reading ---

    async def read_stream(
        self,
        path: PathLike,
        *,
        checksum: str | None = None,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> AsyncIterator[bytes]:
        """Open *path* and return its content as a lazy chunk iterator.

        With *checksum*, exhausting the iterator raises ``ChecksumMismatch``
        when the streamed bytes hash to something else.
        """
        location = Location.normalize(path)
        logger.debug("read %s", location)
        with _translated("read", location):
            stream = await self.adapter.read(location)
        stream = _translated_stream(stream, "read", location)
        if checksum is not None:
            return aiter(HashingStream(stream, str(location), checksum, algorithm))
        return stream

    async def read(
        self,
        path: PathLike,
        *,
        checksum: str | None = None,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> bytes:
        """Read the whole file into memory."""
        stream = await self.read_stream(path, checksum=checksum, algorithm=algorithm)
        return await collect(stream)

    async def read_text(self, path: PathLike, encoding: str = "utf-8") -> str:
        return (await self.read(path)).decode(encoding)

    # --- Writing ---

    async def write(
        self,
        path: PathLike,
        content: Content,
        visibility: Visibility | str | None = None,
        *,
        overwrite: bool = True,
        checksum: str | None = None,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> None:
        """Write an in-memory value (``str`` is encoded as UTF-8)."""
        await self.write_stream(
            path,
            single_chunk(content),
            visibility,
            overwrite=overwrite,
            checksum=checksum,
            algorithm=algorithm,
        )

    async def write_stream(
        self,
        path: PathLike,
        stream: AsyncIterable[bytes],
        visibility: Visibility | str | None = None,
        *,
        overwrite: bool = True,
        checksum: str | None = None,
        algorithm: str = DEFAULT_ALGORITHM,
    ) -> None:
        """Create or replace *path* with the bytes of *stream*.

        Args:
            visibility: Visibility for the new file; None keeps the backend
                default (or the replaced file's visibility where supported).
            overwrite: When False, fail with ``AlreadyExists`` if a file is
                already present. The check and the write are not atomic.
            checksum: Expected hex digest. A mismatch aborts the write before
                anything is committed and raises ``ChecksumMismatch``.
        """
        location = Location.normalize(path)
        if location.is_root:
            raise PathError("Cannot write to the root directory")
        if visibility is not None:
            visibility = Visibility.parse(visibility)
        if not overwrite and await self.file_exists(location):
            raise AlreadyExists(f"File already exists: '{location}'")

        source: AsyncIterable[bytes] = stream
        if checksum is not None:
            source = HashingStream(stream, str(location), checksum, algorithm)

        logger.debug("write %s (visibility=%s)", location, visibility)
        with _translated("write", location):
            await self.adapter.write(location, source, visibility)

    # --- Deleting ---

    async def delete(self, path: PathLike) -> None:
        """Delete a file. Deleting a missing file succeeds."""
        location = Location.normalize(path)
        if location.is_root:
            raise PathError("The root is a directory; use delete_directory")
        logger.debug("delete %s", location)
        try:
            with _translated("delete", location):
                await self.adapter.delete(location)
        except NotFound:
            pass

    async def create_directory(self, path: PathLike) -> None:
        location = Location.normalize(path)
        if location.is_root:
            return
        logger.debug("create_directory %s", location)
        with _translated("create_directory", location):
            await self.adapter.create_directory(location)

    async def delete_directory(self, path: PathLike) -> None:
        """Delete a directory recursively. A missing directory succeeds."""
        location = Location.normalize(path)
        if location.is_root:
            raise PathError("Refusing to delete the root directory")
        logger.debug("delete_directory %s", location)
        try:
            with _translated("delete_directory", location):
                await self.adapter.delete_directory(location)
        except NotFound:
            pass

    # --- Listing ---

    async def list_contents(
        self, path: PathLike = "", recursive: bool = False,
    ) -> AsyncIterator[DirectoryEntry]:
        """Lazily list entries below *path*; a missing path yields nothing.

        Every yielded path is normalized and lies strictly below *path*.
        """
        location = Location.normalize(path)
        logger.debug("list_contents %s (recursive=%s)", location, recursive)
        listing = _translated_stream(
            self.adapter.list_contents(location, recursive), "list_contents", location,
        )
        async for entry in listing:
            entry_path = Location.normalize(str(entry.path))
            if not location.is_ancestor_of(entry_path):
                logger.warning("Adapter listed %s outside of %s; skipped", entry_path, location)
                continue
            metadata = entry.metadata
            if metadata.path != entry_path:
                metadata = replace(metadata, path=entry_path)
            if not entry.is_directory:
                metadata = metadata.with_defaults(mime_type=guess_mime_type(entry_path))
            yield DirectoryEntry(
                path=entry_path, is_directory=entry.is_directory, metadata=metadata,
            )

    # --- Metadata ---

    async def get_metadata(self, path: PathLike) -> Metadata:
        location = Location.normalize(path)
        with _translated("get_metadata", location):
            metadata = await self.adapter.get_metadata(location)
        if metadata.file_size is not None:
            metadata = metadata.with_defaults(mime_type=guess_mime_type(location))
        return metadata

    async def file_size(self, path: PathLike) -> int:
        metadata = await self.get_metadata(path)
        if metadata.file_size is None:
            raise UnsupportedOperation(f"No size for '{metadata.path}' (is it a directory?)")
        return metadata.file_size

    async def mime_type(self, path: PathLike) -> str:
        metadata = await self.get_metadata(path)
        return metadata.mime_type or DEFAULT_MIME_TYPE

    async def last_modified(self, path: PathLike) -> datetime:
        metadata = await self.get_metadata(path)
        if metadata.last_modified is None:
            raise UnsupportedOperation(
                f"The backend reports no modification time for '{metadata.path}'"
            )
        return metadata.last_modified

    async def checksum(self, path: PathLike, algorithm: str = DEFAULT_ALGORITHM) -> str:
        """Hex digest of the content, hashed while streaming."""
        location = Location.normalize(path)
        hashing = HashingStream(await self.read_stream(location), str(location), algorithm=algorithm)
        async for _ in hashing:
            pass
        return hashing.hexdigest

    # --- Visibility ---

    async def visibility(self, path: PathLike) -> Visibility:
        """Visibility from metadata, else the adapter's native lookup."""
        location = Location.normalize(path)
        with _translated("visibility", location):
            metadata = await self.adapter.get_metadata(location)
            if metadata.visibility is not None:
                return metadata.visibility
            return await self.adapter.visibility(location)

    async def set_visibility(self, path: PathLike, visibility: Visibility | str) -> None:
        location = Location.normalize(path)
        visibility = Visibility.parse(visibility)
        logger.debug("set_visibility %s -> %s", location, visibility.value)
        with _translated("set_visibility", location):
            await self.adapter.set_visibility(location, visibility)

    # --- Copy / move ---

    async def _prepare_transfer(
        self, operation: str, source: PathLike, destination: PathLike, overwrite: bool,
    ) -> tuple[Location, Location]:
        src = Location.normalize(source)
        dst = Location.normalize(destination)
        if src.is_root or dst.is_root:
            raise PathError(f"Cannot {operation} the root directory")
        if not overwrite and src != dst and await self.file_exists(dst):
            raise AlreadyExists(f"File already exists: '{dst}'")
        return src, dst

    async def copy(self, source: PathLike, destination: PathLike, *, overwrite: bool = True) -> None:
        """Copy a file. The copy is independent of the source afterwards."""
        src, dst = await self._prepare_transfer("copy", source, destination, overwrite)
        if src == dst:
            if not await self.file_exists(src):
                raise NotFound(f"No such file: '{src}'")
            return
        logger.debug("copy %s -> %s", src, dst)
        with _translated("copy", src):
            await self.adapter.copy(src, dst)

    async def move(self, source: PathLike, destination: PathLike, *, overwrite: bool = True) -> None:
        """Move a file. Atomic only where the adapter's backend is."""
        src, dst = await self._prepare_transfer("move", source, destination, overwrite)
        if src == dst:
            if not await self.exists(src):
                raise NotFound(f"No such file: '{src}'")
            return
        logger.debug("move %s -> %s", src, dst)
        with _translated("move", src):
            await self.adapter.move(src, dst)

    # --- URLs ---

    async def public_url(self, path: PathLike) -> str:
        location = Location.normalize(path)
        adapter = self.adapter
        if not isinstance(adapter, PublicUrlGenerator):
            raise UnsupportedOperation(f"{type(adapter).__name__} cannot generate public URLs")
        with _translated("public_url", location):
            return await adapter.public_url(location)

    async def temporary_url(self, path: PathLike, expires_in: timedelta | int) -> str:
        """Expiring URL; *expires_in* is a timedelta or a number of seconds."""
        location = Location.normalize(path)
        if not isinstance(expires_in, timedelta):
            expires_in = timedelta(seconds=expires_in)
        if expires_in.total_seconds() <= 0:
            raise UnsupportedOperation(f"expires_in must be positive, got {expires_in}")
        adapter = self.adapter
        if not isinstance(adapter, TemporaryUrlGenerator):
            raise UnsupportedOperation(f"{type(adapter).__name__} cannot generate temporary URLs")
        with _translated("temporary_url", location):
            return await adapter.temporary_url(location, expires_in)

    def __repr__(self) -> str:
        state = "closed" if self._adapter is None else repr(self._adapter)
        return f"Filesystem({state})"
