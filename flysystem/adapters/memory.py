"""In-memory adapter — a flat key namespace, like an object store.

Directories are not stored: one "exists" when a file key or an explicit
directory marker sits strictly below it. Useful for tests and for embedding
without touching disk.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterable, AsyncIterator, Mapping

from flysystem.adapters.base import config_from_mapping
from flysystem.errors import NOT_FOUND, UNSUPPORTED, AdapterError
from flysystem.location import Location
from flysystem.streams import iter_chunks
from flysystem.types import DirectoryEntry, Metadata, Visibility


@dataclass
class MemoryConfig:
    """MemoryAdapter takes no settings; present for a uniform ``create``."""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MemoryConfig:
        return config_from_mapping(cls, data)

    def validate(self) -> None:
        return None


@dataclass
class _File:
    content: bytes
    visibility: Visibility = Visibility.PUBLIC
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MemoryAdapter:
    """Dictionary-backed storage; contents vanish with the instance."""

    def __init__(self) -> None:
        self._files: dict[str, _File] = {}
        self._directories: set[str] = set()

    @classmethod
    async def create(cls, config: MemoryConfig | Mapping[str, Any] | None = None) -> MemoryAdapter:
        if config is not None and not isinstance(config, MemoryConfig):
            config = MemoryConfig.from_mapping(config)
        return cls()

    def _file(self, location: Location, operation: str) -> _File:
        try:
            return self._files[location.path]
        except KeyError:
            raise AdapterError(operation, location, "No such file", code=NOT_FOUND) from None

    def _has_children(self, location: Location) -> bool:
        prefix = location.as_prefix()
        return any(key.startswith(prefix) for key in self._files) or any(
            d.startswith(prefix) for d in self._directories
        )

    async def exists(self, location: Location) -> bool:
        return await self.file_exists(location) or await self.directory_exists(location)

    async def file_exists(self, location: Location) -> bool:
        return location.path in self._files

    async def directory_exists(self, location: Location) -> bool:
        if location.is_root or location.path in self._directories:
            return True
        return self._has_children(location)

    async def read(self, location: Location) -> AsyncIterator[bytes]:
        return iter_chunks(self._file(location, "read").content)

    async def write(
        self,
        location: Location,
        stream: AsyncIterable[bytes],
        visibility: Visibility | None = None,
    ) -> None:
        chunks = [chunk async for chunk in stream]
        previous = self._files.get(location.path)
        if visibility is None:
            visibility = previous.visibility if previous else Visibility.PUBLIC
        self._files[location.path] = _File(content=b"".join(chunks), visibility=visibility)

    async def delete(self, location: Location) -> None:
        self._files.pop(location.path, None)

    async def create_directory(self, location: Location) -> None:
        if not location.is_root:
            self._directories.add(location.path)

    async def delete_directory(self, location: Location) -> None:
        prefix = location.as_prefix()
        for key in [k for k in self._files if k.startswith(prefix)]:
            del self._files[key]
        self._directories = {
            d for d in self._directories
            if d != location.path and not d.startswith(prefix)
        }

    async def list_contents(
        self, location: Location, recursive: bool = False,
    ) -> AsyncIterator[DirectoryEntry]:
        prefix = location.as_prefix()
        # Snapshot: later writes don't disturb an in-progress listing.
        files = {k: f for k, f in self._files.items() if k.startswith(prefix)}
        markers = [d for d in self._directories if d.startswith(prefix)]

        directories: set[str] = set()
        for key in list(files) + markers:
            rest = key[len(prefix):].split("/")
            # Every intermediate prefix is an implied directory.
            depth = len(rest) if key in markers else len(rest) - 1
            if not recursive:
                depth = min(depth, 1)
            for i in range(1, depth + 1):
                directories.add(prefix + "/".join(rest[:i]))

        entries = [
            DirectoryEntry(path=Location(d), is_directory=True) for d in directories
        ]
        for key, f in files.items():
            if not recursive and "/" in key[len(prefix):]:
                continue
            path = Location(key)
            entries.append(DirectoryEntry(
                path=path,
                is_directory=False,
                metadata=Metadata(
                    path=path,
                    file_size=len(f.content),
                    last_modified=f.last_modified,
                    visibility=f.visibility,
                ),
            ))

        for entry in sorted(entries, key=lambda e: e.path.path):
            yield entry

    async def get_metadata(self, location: Location) -> Metadata:
        f = self._files.get(location.path)
        if f is not None:
            return Metadata(
                path=location,
                file_size=len(f.content),
                last_modified=f.last_modified,
                visibility=f.visibility,
            )
        if await self.directory_exists(location):
            return Metadata(path=location)
        raise AdapterError("get_metadata", location, "No such file or directory", code=NOT_FOUND)

    async def visibility(self, location: Location) -> Visibility:
        if location.path not in self._files and await self.directory_exists(location):
            raise AdapterError(
                "visibility", location, "Directories carry no visibility", code=UNSUPPORTED,
            )
        return self._file(location, "visibility").visibility

    async def set_visibility(self, location: Location, visibility: Visibility) -> None:
        if location.path not in self._files and await self.directory_exists(location):
            raise AdapterError(
                "set_visibility", location, "Directories carry no visibility", code=UNSUPPORTED,
            )
        self._file(location, "set_visibility").visibility = visibility

    async def copy(self, source: Location, destination: Location) -> None:
        src = self._file(source, "copy")
        self._files[destination.path] = _File(content=src.content, visibility=src.visibility)

    async def move(self, source: Location, destination: Location) -> None:
        await self.copy(source, destination)
        if source != destination:
            await self.delete(source)

    async def close(self) -> None:
        self._files.clear()
        self._directories.clear()

    def __repr__(self) -> str:
        return f"MemoryAdapter(files={len(self._files)})"
