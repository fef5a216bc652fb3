"""Configuration — builds an adapter config from .env and FLYSYSTEM_* variables.

Recognized variables::

    FLYSYSTEM_ADAPTER        local | s3 | memory (default: local)
    FLYSYSTEM_ROOT           local: directory to store files under
    FLYSYSTEM_LAZY_ROOT      local: create the root if missing (true/false)
    FLYSYSTEM_PUBLIC_URL     local: URL prefix the root is served under
    FLYSYSTEM_S3_BUCKET      s3: bucket name
    FLYSYSTEM_S3_REGION      s3: region (default: us-east-1)
    FLYSYSTEM_S3_ENDPOINT    s3: endpoint URL for MinIO etc.
    FLYSYSTEM_S3_ACCESS_KEY  s3: access key id
    FLYSYSTEM_S3_SECRET_KEY  s3: secret access key
    FLYSYSTEM_S3_PREFIX      s3: key prefix everything lives under
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

from dotenv import load_dotenv

from flysystem.adapters.local import LocalAdapter, LocalConfig
from flysystem.adapters.memory import MemoryAdapter, MemoryConfig
from flysystem.errors import ConfigError
from flysystem.filesystem import Filesystem

logger = logging.getLogger(__name__)

ENV_PREFIX = "FLYSYSTEM_"
ADAPTERS = ("local", "s3", "memory")


def _flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _local(env: Mapping[str, str]) -> tuple[type, LocalConfig]:
    config = LocalConfig(
        root=env.get("FLYSYSTEM_ROOT", ""),
        lazy_root_creation=_flag(env.get("FLYSYSTEM_LAZY_ROOT", "false")),
        public_url_base=env.get("FLYSYSTEM_PUBLIC_URL") or None,
    )
    return LocalAdapter, config


def _s3(env: Mapping[str, str]) -> tuple[type, Any]:
    # boto3 is only needed once the adapter is created
    from flysystem.adapters.s3 import S3Adapter, S3Config

    config = S3Config(
        bucket=env.get("FLYSYSTEM_S3_BUCKET", ""),
        access_key=env.get("FLYSYSTEM_S3_ACCESS_KEY", ""),
        secret_key=env.get("FLYSYSTEM_S3_SECRET_KEY", ""),
        region=env.get("FLYSYSTEM_S3_REGION") or "us-east-1",
        endpoint=env.get("FLYSYSTEM_S3_ENDPOINT") or None,
        prefix=env.get("FLYSYSTEM_S3_PREFIX", ""),
    )
    return S3Adapter, config


def _memory(env: Mapping[str, str]) -> tuple[type, MemoryConfig]:
    return MemoryAdapter, MemoryConfig()


_BUILDERS = {"local": _local, "s3": _s3, "memory": _memory}


def load_config(
    env: Mapping[str, str] | None = None,
    dotenv_path: str | Path | None = None,
) -> tuple[type, Any]:
    """Resolve the adapter class and its validated config.

    Args:
        env: Variables to read. None means the process environment, after
            loading ``.env`` (from *dotenv_path* or the working directory).
            Variables already set in the environment win over ``.env``.
        dotenv_path: Explicit ``.env`` file to load.

    Raises:
        ConfigError: unknown adapter name or missing/invalid values.
    """
    if env is None:
        load_dotenv(dotenv_path or Path.cwd() / ".env")
        env = os.environ

    name = (env.get("FLYSYSTEM_ADAPTER") or "local").strip().lower()
    if name not in _BUILDERS:
        raise ConfigError(
            f"Unknown FLYSYSTEM_ADAPTER '{name}'. Valid: {', '.join(ADAPTERS)}"
        )
    adapter_cls, config = _BUILDERS[name](env)
    config.validate()
    logger.debug("Resolved %s adapter from environment", name)
    return adapter_cls, config


async def open_filesystem(
    env: Mapping[str, str] | None = None,
    dotenv_path: str | Path | None = None,
) -> Filesystem:
    """Build a Filesystem from the environment configuration."""
    adapter_cls, config = load_config(env, dotenv_path)
    return await Filesystem.new(adapter_cls, config)
