"""Adapter protocol — the capability contract every backend implements.

Implementations:
- LocalAdapter (always available)
- MemoryAdapter (always available)
- S3Adapter (requires [s3] extra)

Adapters are siblings: they implement the protocol structurally, there is
no base class to inherit from.
"""
from __future__ import annotations

from dataclasses import fields
from datetime import timedelta
from typing import Any, AsyncIterable, AsyncIterator, Mapping, Protocol, runtime_checkable

from flysystem.errors import ConfigError
from flysystem.location import Location
from flysystem.types import DirectoryEntry, Metadata, Visibility


@runtime_checkable
class Adapter(Protocol):
    """Storage backend addressed by normalized Locations.

    Every Location handed to an adapter has already been normalized by the
    façade. Every failure leaves the adapter as an ``AdapterError``.
    """

    @classmethod
    async def create(cls, config: Any) -> Adapter:
        """Build the adapter from its config, validating it eagerly.

        Raises ConfigError on missing/invalid fields or an unreachable backend.
        """
        ...

    async def exists(self, location: Location) -> bool:
        """True iff a file or a directory is addressable at *location*."""
        ...

    async def file_exists(self, location: Location) -> bool:
        ...

    async def directory_exists(self, location: Location) -> bool:
        ...

    async def read(self, location: Location) -> AsyncIterator[bytes]:
        """Open *location* and return a lazy, single-pass chunk iterator.

        A missing file fails here (on await), not on first iteration.
        """
        ...

    async def write(
        self,
        location: Location,
        stream: AsyncIterable[bytes],
        visibility: Visibility | None = None,
    ) -> None:
        """Create or fully replace the file, creating implied parents.

        Content becomes visible only once *stream* is exhausted; an error or
        cancellation while consuming it leaves no partial file behind.
        """
        ...

    async def delete(self, location: Location) -> None:
        """Delete a file. No error if missing."""
        ...

    async def create_directory(self, location: Location) -> None:
        """Create a directory (and parents). No error if it exists."""
        ...

    async def delete_directory(self, location: Location) -> None:
        """Delete a directory and everything below it. No error if missing."""
        ...

    def list_contents(
        self, location: Location, recursive: bool = False,
    ) -> AsyncIterator[DirectoryEntry]:
        """Lazily enumerate entries below *location*.

        Missing locations yield nothing. Each call re-enumerates.
        """
        ...

    async def get_metadata(self, location: Location) -> Metadata:
        """Best-effort metadata; unknown fields are left as None."""
        ...

    async def visibility(self, location: Location) -> Visibility:
        ...

    async def set_visibility(self, location: Location, visibility: Visibility) -> None:
        """Apply *visibility*, or fail with an ``Unsupported`` code."""
        ...

    async def copy(self, source: Location, destination: Location) -> None:
        """Copy a file; *destination* is independent of *source* afterwards."""
        ...

    async def move(self, source: Location, destination: Location) -> None:
        """Copy then delete, or an atomic rename where the backend has one."""
        ...

    async def close(self) -> None:
        """Release backend clients. Called once by the façade."""
        ...


@runtime_checkable
class PublicUrlGenerator(Protocol):
    """Optional capability: stable public URL of a file."""

    async def public_url(self, location: Location) -> str:
        ...


@runtime_checkable
class TemporaryUrlGenerator(Protocol):
    """Optional capability: expiring (presigned) URL of a file."""

    async def temporary_url(self, location: Location, expires_in: timedelta) -> str:
        ...


def config_from_mapping(config_cls: type, data: Mapping[str, Any]) -> Any:
    """Build a config dataclass from a plain mapping, rejecting unknown keys."""
    known = {f.name for f in fields(config_cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(
            f"{config_cls.__name__} does not recognize: {', '.join(unknown)}. "
            f"Valid: {', '.join(sorted(known))}"
        )
    return config_cls(**dict(data))
