"""Local disk adapter — maps Locations onto a root directory.

Always available (no extra dependencies). Blocking syscalls run in a thread
pool via asyncio.to_thread() so the event loop never stalls on disk I/O.

Writes land in a hidden temporary sibling and are renamed over the target
only once the whole stream has been consumed, so an interrupted write never
leaves a truncated file behind.
"""
from __future__ import annotations

import asyncio
import errno
import logging
import os
import shutil
import stat
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any, AsyncIterable, AsyncIterator, Mapping
from urllib.parse import quote

from flysystem.adapters.base import config_from_mapping
from flysystem.errors import NOT_FOUND, UNSUPPORTED, AdapterError, ConfigError
from flysystem.location import Location
from flysystem.streams import CHUNK_SIZE
from flysystem.types import DirectoryEntry, Metadata, Visibility

logger = logging.getLogger(__name__)

# In-flight writes; never reported by listings.
_TEMP_PREFIX = ".flysystem-"

_FILE_MODES = {Visibility.PUBLIC: 0o644, Visibility.PRIVATE: 0o600}
_DIR_MODES = {Visibility.PUBLIC: 0o755, Visibility.PRIVATE: 0o700}


def visibility_to_mode(is_directory: bool, visibility: Visibility) -> int:
    return (_DIR_MODES if is_directory else _FILE_MODES)[visibility]


def mode_to_visibility(is_directory: bool, mode: int) -> Visibility:
    """Exactly 0o600 (file) / 0o700 (directory) is private; anything else public."""
    private = visibility_to_mode(is_directory, Visibility.PRIVATE)
    return Visibility.PRIVATE if stat.S_IMODE(mode) == private else Visibility.PUBLIC


@dataclass
class LocalConfig:
    """Configuration for LocalAdapter.

    Required:
        root: Directory all Locations are resolved against.

    Optional:
        lazy_root_creation: Create *root* if missing instead of failing.
        public_url_base: URL prefix the root is served under, enabling
            ``public_url``.
    """

    root: str | Path = ""
    lazy_root_creation: bool = False
    public_url_base: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> LocalConfig:
        return config_from_mapping(cls, data)

    def validate(self) -> None:
        errors: list[str] = []
        if not str(self.root).strip():
            errors.append("root is required (directory to store files under)")
        if self.public_url_base is not None and not self.public_url_base.startswith(
            ("http://", "https://")
        ):
            errors.append("public_url_base must be an http(s) URL")
        if errors:
            raise ConfigError(
                f"LocalConfig validation failed ({len(errors)} error(s)):\n"
                + "\n".join(f"  - {e}" for e in errors)
            )


def _stat_metadata(location: Location, st: os.stat_result) -> Metadata:
    is_dir = stat.S_ISDIR(st.st_mode)
    return Metadata(
        path=location,
        file_size=None if is_dir else st.st_size,
        last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        visibility=mode_to_visibility(is_dir, st.st_mode),
    )


class LocalAdapter:
    """Local filesystem adapter.

    Args:
        config: Validated LocalConfig; use ``LocalAdapter.create`` to build one
            from a raw config with the root checked up front.
    """

    def __init__(self, config: LocalConfig) -> None:
        self.root = Path(config.root).expanduser().resolve()
        self._public_url_base = (
            config.public_url_base.rstrip("/") if config.public_url_base else None
        )

    @classmethod
    async def create(cls, config: LocalConfig | Mapping[str, Any]) -> LocalAdapter:
        if not isinstance(config, LocalConfig):
            config = LocalConfig.from_mapping(config)
        config.validate()

        root = Path(config.root).expanduser()
        if not await asyncio.to_thread(root.exists):
            if not config.lazy_root_creation:
                raise ConfigError(
                    f"The root at {str(root)!r} does not exist. Create it "
                    "manually or enable lazy_root_creation."
                )
            try:
                await asyncio.to_thread(root.mkdir, parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigError(f"Cannot create root {str(root)!r}: {e}") from e
        elif not await asyncio.to_thread(root.is_dir):
            raise ConfigError(f"The root at {str(root)!r} is not a directory.")

        adapter = await asyncio.to_thread(cls, config)
        logger.info("Local adapter ready at %s", adapter.root)
        return adapter

    def _resolve(self, location: Location, operation: str) -> Path:
        """Map a Location onto disk, refusing symlinks that leave the root."""
        path = self.root.joinpath(*location.segments)
        resolved = path.resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise AdapterError(
                operation, location, "Resolved path escapes the root", code="EACCES",
            )
        return path

    # --- Sync implementations (run in thread pool) ---

    @staticmethod
    def _open_read_sync(path: Path) -> IO[bytes]:
        if path.is_dir():
            raise IsADirectoryError(errno.EISDIR, "Is a directory", str(path))
        return path.open("rb")

    @staticmethod
    def _mkdir_sync(path: Path) -> None:
        """mkdir -p; a file in the way is ENOTDIR, not EEXIST."""
        try:
            path.mkdir(parents=True, exist_ok=True)
        except FileExistsError as e:
            raise NotADirectoryError(
                errno.ENOTDIR, "A file is in the way of this directory", str(path),
            ) from e

    @staticmethod
    def _open_temp_sync(path: Path) -> tuple[IO[bytes], Path]:
        LocalAdapter._mkdir_sync(path.parent)
        fd, tmp = tempfile.mkstemp(
            dir=path.parent, prefix=f"{_TEMP_PREFIX}{path.name}.", suffix=".tmp",
        )
        return os.fdopen(fd, "wb"), Path(tmp)

    @staticmethod
    def _commit_sync(
        fh: IO[bytes], tmp: Path, path: Path, visibility: Visibility | None,
    ) -> None:
        fh.flush()
        os.fsync(fh.fileno())
        fh.close()
        if visibility is not None:
            mode = visibility_to_mode(False, visibility)
        else:
            try:
                mode = stat.S_IMODE(path.stat().st_mode)
            except FileNotFoundError:
                mode = visibility_to_mode(False, Visibility.PUBLIC)
        os.chmod(tmp, mode)
        os.replace(tmp, path)

    @staticmethod
    def _discard_sync(fh: IO[bytes], tmp: Path) -> None:
        fh.close()
        tmp.unlink(missing_ok=True)

    @staticmethod
    def _delete_sync(path: Path) -> None:
        # Only files are removed here; anything else already counts as gone.
        if path.is_dir() and not path.is_symlink():
            return
        try:
            path.unlink()
        except (FileNotFoundError, NotADirectoryError):
            pass

    @staticmethod
    def _delete_directory_sync(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)

    @staticmethod
    def _scan_sync(path: Path) -> list[tuple[str, bool, os.stat_result]]:
        """One directory level, sorted by name, without in-flight temporaries."""
        results = []
        with os.scandir(path) as it:
            for entry in it:
                if entry.name.startswith(_TEMP_PREFIX):
                    continue
                try:
                    st = entry.stat(follow_symlinks=False)
                except FileNotFoundError:
                    continue  # removed while scanning
                results.append((entry.name, stat.S_ISDIR(st.st_mode), st))
        results.sort(key=lambda item: item[0])
        return results

    @staticmethod
    def _copy_sync(source: Path, destination: Path) -> None:
        if source.is_dir():
            raise IsADirectoryError(errno.EISDIR, "Is a directory", str(source))
        if not source.exists():
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", str(source))
        LocalAdapter._mkdir_sync(destination.parent)
        fd, tmp = tempfile.mkstemp(
            dir=destination.parent, prefix=f"{_TEMP_PREFIX}{destination.name}.", suffix=".tmp",
        )
        os.close(fd)
        try:
            shutil.copyfile(source, tmp)
            shutil.copymode(source, tmp)
            os.replace(tmp, destination)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    @staticmethod
    def _move_sync(source: Path, destination: Path) -> None:
        if not source.exists():
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", str(source))
        LocalAdapter._mkdir_sync(destination.parent)
        try:
            os.replace(source, destination)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            shutil.move(str(source), str(destination))

    # --- Async API ---

    async def _path(self, location: Location, operation: str) -> Path:
        return await asyncio.to_thread(self._resolve, location, operation)

    async def exists(self, location: Location) -> bool:
        return await asyncio.to_thread(lambda: self._resolve(location, "exists").exists())

    async def file_exists(self, location: Location) -> bool:
        return await asyncio.to_thread(lambda: self._resolve(location, "file_exists").is_file())

    async def directory_exists(self, location: Location) -> bool:
        return await asyncio.to_thread(
            lambda: self._resolve(location, "directory_exists").is_dir()
        )

    async def read(self, location: Location) -> AsyncIterator[bytes]:
        path = await self._path(location, "read")
        try:
            fh = await asyncio.to_thread(self._open_read_sync, path)
        except (IsADirectoryError, NotADirectoryError) as e:
            raise AdapterError("read", location, "Not a file", code=NOT_FOUND) from e
        except OSError as e:
            raise AdapterError.from_os_error("read", location, e) from e
        return self._iter_file(fh, location)

    async def _iter_file(self, fh: IO[bytes], location: Location) -> AsyncIterator[bytes]:
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(fh.read, CHUNK_SIZE)
                except OSError as e:
                    raise AdapterError.from_os_error("read", location, e) from e
                if not chunk:
                    return
                yield chunk
        finally:
            fh.close()

    async def write(
        self,
        location: Location,
        stream: AsyncIterable[bytes],
        visibility: Visibility | None = None,
    ) -> None:
        path = await self._path(location, "write")
        try:
            fh, tmp = await asyncio.to_thread(self._open_temp_sync, path)
        except OSError as e:
            raise AdapterError.from_os_error("write", location, e) from e

        try:
            async for chunk in stream:
                await asyncio.to_thread(fh.write, chunk)
            await asyncio.to_thread(self._commit_sync, fh, tmp, path, visibility)
        except BaseException as e:
            # Cancellation and caller-stream errors included: nothing committed.
            await asyncio.shield(asyncio.to_thread(self._discard_sync, fh, tmp))
            if isinstance(e, OSError):
                raise AdapterError.from_os_error("write", location, e) from e
            raise

    async def delete(self, location: Location) -> None:
        path = await self._path(location, "delete")
        try:
            await asyncio.to_thread(self._delete_sync, path)
        except OSError as e:
            raise AdapterError.from_os_error("delete", location, e) from e

    async def create_directory(self, location: Location) -> None:
        path = await self._path(location, "create_directory")
        try:
            await asyncio.to_thread(self._mkdir_sync, path)
        except OSError as e:
            raise AdapterError.from_os_error("create_directory", location, e) from e

    async def delete_directory(self, location: Location) -> None:
        path = await self._path(location, "delete_directory")
        try:
            await asyncio.to_thread(self._delete_directory_sync, path)
        except OSError as e:
            raise AdapterError.from_os_error("delete_directory", location, e) from e

    async def list_contents(
        self, location: Location, recursive: bool = False,
    ) -> AsyncIterator[DirectoryEntry]:
        base = await self._path(location, "list_contents")
        if not await asyncio.to_thread(base.is_dir):
            return

        pending = [location]
        while pending:
            current = pending.pop()
            try:
                items = await asyncio.to_thread(
                    self._scan_sync, self.root.joinpath(*current.segments),
                )
            except FileNotFoundError:
                continue  # removed while listing
            except OSError as e:
                raise AdapterError.from_os_error("list_contents", current, e) from e

            subdirectories = []
            for name, is_dir, st in items:
                child = current.join(name)
                yield DirectoryEntry(
                    path=child, is_directory=is_dir, metadata=_stat_metadata(child, st),
                )
                if is_dir and recursive:
                    subdirectories.append(child)
            # Subdirectories are visited in name order.
            pending.extend(reversed(subdirectories))

    async def _stat(self, location: Location, operation: str) -> os.stat_result:
        path = await self._path(location, operation)
        try:
            return await asyncio.to_thread(path.stat)
        except NotADirectoryError as e:
            raise AdapterError(
                operation, location, "No such file or directory", code=NOT_FOUND,
            ) from e
        except OSError as e:
            raise AdapterError.from_os_error(operation, location, e) from e

    async def get_metadata(self, location: Location) -> Metadata:
        return _stat_metadata(location, await self._stat(location, "get_metadata"))

    async def visibility(self, location: Location) -> Visibility:
        st = await self._stat(location, "visibility")
        return mode_to_visibility(stat.S_ISDIR(st.st_mode), st.st_mode)

    async def set_visibility(self, location: Location, visibility: Visibility) -> None:
        path = await self._path(location, "set_visibility")
        try:
            is_dir = await asyncio.to_thread(path.is_dir)
            if not is_dir and not await asyncio.to_thread(path.exists):
                raise FileNotFoundError(errno.ENOENT, "No such file or directory", str(path))
            await asyncio.to_thread(os.chmod, path, visibility_to_mode(is_dir, visibility))
        except OSError as e:
            raise AdapterError.from_os_error("set_visibility", location, e) from e

    async def copy(self, source: Location, destination: Location) -> None:
        src = await self._path(source, "copy")
        dst = await self._path(destination, "copy")
        try:
            await asyncio.to_thread(self._copy_sync, src, dst)
        except OSError as e:
            raise AdapterError.from_os_error("copy", source, e) from e

    async def move(self, source: Location, destination: Location) -> None:
        src = await self._path(source, "move")
        dst = await self._path(destination, "move")
        try:
            await asyncio.to_thread(self._move_sync, src, dst)
        except OSError as e:
            raise AdapterError.from_os_error("move", source, e) from e

    async def public_url(self, location: Location) -> str:
        if self._public_url_base is None:
            raise AdapterError(
                "public_url", location, "No public_url_base configured", code=UNSUPPORTED,
            )
        return f"{self._public_url_base}/{quote(location.path)}"

    async def close(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"LocalAdapter(root={self.root!r})"
