"""flysystem — one async API over local disk, memory, and S3 storage.

Public API::

    from flysystem import Filesystem, Location, Visibility
    from flysystem.adapters import LocalAdapter, LocalConfig, MemoryAdapter
    from flysystem.adapters.s3 import S3Adapter, S3Config  # requires [s3] extra

    fs = await Filesystem.new(LocalAdapter, LocalConfig(root="/srv/files"))
    await fs.write("reports/q3.csv", b"...", visibility=Visibility.PRIVATE)
"""
from __future__ import annotations

from flysystem.errors import (
    AlreadyExists,
    BackendFailure,
    ChecksumMismatch,
    Closed,
    ConfigError,
    FilesystemError,
    NotFound,
    PathError,
    PermissionDenied,
    UnsupportedOperation,
)
from flysystem.filesystem import Filesystem
from flysystem.location import Location
from flysystem.types import DirectoryEntry, Metadata, Visibility

__version__ = "0.1.0"

__all__ = [
    "AlreadyExists",
    "BackendFailure",
    "ChecksumMismatch",
    "Closed",
    "ConfigError",
    "DirectoryEntry",
    "Filesystem",
    "FilesystemError",
    "Location",
    "Metadata",
    "NotFound",
    "PathError",
    "PermissionDenied",
    "UnsupportedOperation",
    "Visibility",
]
