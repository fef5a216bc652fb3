"""Storage adapters.

Public API::

    from flysystem.adapters import Adapter, LocalAdapter, MemoryAdapter
    from flysystem.adapters.s3 import S3Adapter  # requires [s3] extra
"""
from __future__ import annotations

from flysystem.adapters.base import Adapter, PublicUrlGenerator, TemporaryUrlGenerator
from flysystem.adapters.local import LocalAdapter, LocalConfig
from flysystem.adapters.memory import MemoryAdapter, MemoryConfig

__all__ = [
    "Adapter",
    "LocalAdapter",
    "LocalConfig",
    "MemoryAdapter",
    "MemoryConfig",
    "PublicUrlGenerator",
    "TemporaryUrlGenerator",
]
