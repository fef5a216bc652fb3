"""Shared vocabulary returned by every adapter."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime

from flysystem.errors import UnsupportedOperation
from flysystem.location import Location


class Visibility(str, enum.Enum):
    """Two-state permission abstraction.

    Adapters map it onto their native primitive (POSIX mode bits, canned
    ACLs); callers never see anything finer.
    """

    PUBLIC = "public"
    PRIVATE = "private"

    @classmethod
    def parse(cls, value: str | Visibility) -> Visibility:
        if isinstance(value, Visibility):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnsupportedOperation(
                f"Unknown visibility '{value}'. Valid: public, private"
            ) from None


@dataclass(frozen=True)
class Metadata:
    """What is known about an entry. Unknown fields stay ``None``.

    Adapters fill in what their backend reports natively; the façade adds
    the MIME type (from the extension) and checksum where it can.
    """

    path: Location
    file_size: int | None = None
    last_modified: datetime | None = None
    mime_type: str | None = None
    visibility: Visibility | None = None
    checksum: str | None = None

    def with_defaults(self, **fields: object) -> Metadata:
        """Copy with *fields* applied only where the current value is None."""
        missing = {k: v for k, v in fields.items() if getattr(self, k) is None}
        return replace(self, **missing) if missing else self


@dataclass(frozen=True)
class DirectoryEntry:
    """One item of a listing."""

    path: Location
    is_directory: bool
    metadata: Metadata = field(default=None)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.metadata is None:
            object.__setattr__(self, "metadata", Metadata(path=self.path))
