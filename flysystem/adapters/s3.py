"""S3-compatible object storage adapter.

Requires the [s3] extra: pip install flysystem[s3]

Works with AWS S3, MinIO, and any S3-compatible service.

All boto3 calls are wrapped in asyncio.to_thread() to avoid blocking
the event loop (boto3 is synchronous).

S3 has no directories. A directory "exists" when at least one key has it
as a strict prefix; ``create_directory`` writes an empty ``dir/`` marker
object so that empty directories survive.
"""
from __future__ import annotations

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from typing import Any, AsyncIterable, AsyncIterator, Callable, Mapping
from urllib.parse import quote

from flysystem.adapters.base import config_from_mapping
from flysystem.errors import NOT_FOUND, AdapterError, ConfigError, PathError
from flysystem.location import Location
from flysystem.streams import CHUNK_SIZE
from flysystem.types import DirectoryEntry, Metadata, Visibility

logger = logging.getLogger(__name__)

MIN_PART_SIZE = 5 * 1024 * 1024  # S3 minimum for every part but the last
DEFAULT_PART_SIZE = 8 * 1024 * 1024
_DELETE_BATCH = 1000  # delete_objects limit

_ALL_USERS = "http://acs.amazonaws.com/groups/global/AllUsers"
_CANNED_ACL = {Visibility.PUBLIC: "public-read", Visibility.PRIVATE: "private"}
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _require_boto3() -> Any:
    try:
        import boto3
        return boto3
    except ImportError:
        raise ImportError(
            "S3 adapter requires boto3. Install with: pip install flysystem[s3]"
        )


def _error_code(exc: Exception) -> str:
    response = getattr(exc, "response", None) or {}
    error = response.get("Error") or {}
    return str(error.get("Code") or "")


@dataclass
class S3Config:
    """Configuration for S3Adapter.

    Required:
        bucket: Bucket name.
        access_key / secret_key: Credentials. Never defaulted.

    Optional:
        region: Region name (default: us-east-1).
        endpoint: Endpoint URL for MinIO or other S3-compatible services.
        prefix: Key prefix all Locations live under (e.g. "tenant-a/").
        part_size: Multipart upload part size in bytes (>= 5 MiB).
    """

    bucket: str = ""
    access_key: str = ""
    secret_key: str = ""
    region: str = "us-east-1"
    endpoint: str | None = None
    prefix: str = ""
    part_size: int = DEFAULT_PART_SIZE

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> S3Config:
        return config_from_mapping(cls, data)

    def validate(self) -> None:
        errors: list[str] = []
        if not self.bucket:
            errors.append("bucket is required")
        if not self.access_key:
            errors.append("access_key is required")
        if not self.secret_key:
            errors.append("secret_key is required")
        if not self.region:
            errors.append("region must not be empty")
        if self.endpoint and not self.endpoint.startswith(("http://", "https://")):
            errors.append("endpoint must be an http(s) URL")
        if self.prefix:
            try:
                Location.normalize(self.prefix)
            except PathError as e:
                errors.append(f"prefix is not a valid path: {e}")
        if self.part_size < MIN_PART_SIZE:
            errors.append(f"part_size must be at least {MIN_PART_SIZE} bytes")
        if errors:
            raise ConfigError(
                f"S3Config validation failed ({len(errors)} error(s)):\n"
                + "\n".join(f"  - {e}" for e in errors)
            )


class S3Adapter:
    """S3-compatible object storage adapter.

    All I/O operations run in a thread pool via asyncio.to_thread()
    because boto3 is synchronous. This prevents blocking the event loop.

    Args:
        config: Validated S3Config.
        client: A boto3 S3 client. ``S3Adapter.create`` builds one from the
            config and checks the bucket is reachable.
    """

    def __init__(self, config: S3Config, client: Any) -> None:
        self._client = client
        self._bucket = config.bucket
        self._region = config.region
        self._endpoint = config.endpoint.rstrip("/") if config.endpoint else None
        self._prefix = Location.normalize(config.prefix).as_prefix()
        self._part_size = config.part_size

    @classmethod
    async def create(cls, config: S3Config | Mapping[str, Any]) -> S3Adapter:
        if not isinstance(config, S3Config):
            config = S3Config.from_mapping(config)
        config.validate()

        boto3 = _require_boto3()
        from botocore.config import Config
        from botocore.exceptions import BotoCoreError, ClientError

        kwargs: dict[str, Any] = {
            "region_name": config.region,
            "aws_access_key_id": config.access_key,
            "aws_secret_access_key": config.secret_key,
            "config": Config(s3={"addressing_style": "path"}),
        }
        if config.endpoint:
            kwargs["endpoint_url"] = config.endpoint

        try:
            client = boto3.client("s3", **kwargs)
            await asyncio.to_thread(client.head_bucket, Bucket=config.bucket)
        except ClientError as e:
            raise ConfigError(
                f"Bucket '{config.bucket}' is not accessible "
                f"[{_error_code(e) or 'unknown'}]: {e}"
            ) from e
        except BotoCoreError as e:
            raise ConfigError(f"Cannot reach S3 endpoint: {e}") from e

        logger.info("S3 adapter ready for bucket %s (prefix=%r)", config.bucket, config.prefix)
        return cls(config, client)

    def _key(self, location: Location) -> str:
        """Build full S3 key from a Location."""
        return self._prefix + location.path

    def _dir_key(self, location: Location) -> str:
        """Key prefix of everything below a directory ("" prefix for root)."""
        return self._prefix + location.as_prefix()

    def _location(self, key: str) -> Location | None:
        """Location of a key, or None for keys no Location can address."""
        rel = key[len(self._prefix):].rstrip("/")
        try:
            return Location.normalize(rel)
        except PathError:
            logger.warning("Skipping key that is not a valid path: %r", key)
            return None

    async def _call(
        self, operation: str, location: Location | None, method: Callable[..., Any], **kwargs: Any,
    ) -> Any:
        """Run a boto3 call in the thread pool, wrapping botocore errors."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return await asyncio.to_thread(partial(method, **kwargs))
        except ClientError as e:
            error = e.response.get("Error") or {}
            raise AdapterError(
                operation, location, str(error.get("Message") or e), code=_error_code(e),
            ) from e
        except BotoCoreError as e:
            raise AdapterError(operation, location, str(e)) from e

    async def _pages(
        self, operation: str, location: Location, **kwargs: Any,
    ) -> AsyncIterator[dict]:
        """Yield list_objects_v2 pages one at a time (one request per page)."""
        paginator = self._client.get_paginator("list_objects_v2")
        pages = iter(paginator.paginate(Bucket=self._bucket, **kwargs))
        done = object()
        while True:
            page = await self._call(operation, location, partial(next, pages, done))
            if page is done:
                return
            yield page

    # --- Existence ---

    async def exists(self, location: Location) -> bool:
        return await self.file_exists(location) or await self.directory_exists(location)

    async def file_exists(self, location: Location) -> bool:
        if location.is_root:
            return False
        try:
            await self._call(
                "file_exists", location, self._client.head_object,
                Bucket=self._bucket, Key=self._key(location),
            )
            return True
        except AdapterError as e:
            if e.code in _MISSING_CODES:
                return False
            raise

    async def directory_exists(self, location: Location) -> bool:
        if location.is_root:
            return True
        response = await self._call(
            "directory_exists", location, self._client.list_objects_v2,
            Bucket=self._bucket, Prefix=self._dir_key(location), MaxKeys=1,
        )
        return bool(response.get("KeyCount") or response.get("Contents"))

    # --- Content ---

    async def read(self, location: Location) -> AsyncIterator[bytes]:
        response = await self._call(
            "read", location, self._client.get_object,
            Bucket=self._bucket, Key=self._key(location),
        )
        return self._iter_body(response["Body"], location)

    async def _iter_body(self, body: Any, location: Location) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._call("read", location, body.read, amt=CHUNK_SIZE)
                if not chunk:
                    return
                yield chunk
        finally:
            body.close()

    async def write(
        self,
        location: Location,
        stream: AsyncIterable[bytes],
        visibility: Visibility | None = None,
    ) -> None:
        """Upload *stream*; one put_object when small, multipart otherwise.

        At most one part is held in memory. Any failure or cancellation
        after a multipart upload started aborts it, so nothing is committed.
        """
        key = self._key(location)
        extra: dict[str, Any] = {
            "ContentType": mimetypes.guess_type(location.name)[0] or "application/octet-stream",
        }
        if visibility is not None:
            extra["ACL"] = _CANNED_ACL[visibility]

        buffer = bytearray()
        upload_id: str | None = None
        parts: list[dict[str, Any]] = []

        async def upload_part(data: bytes) -> None:
            number = len(parts) + 1
            response = await self._call(
                "write", location, self._client.upload_part,
                Bucket=self._bucket, Key=key, UploadId=upload_id,
                PartNumber=number, Body=data,
            )
            parts.append({"ETag": response["ETag"], "PartNumber": number})

        try:
            async for chunk in stream:
                buffer += chunk
                while len(buffer) >= self._part_size:
                    if upload_id is None:
                        response = await self._call(
                            "write", location, self._client.create_multipart_upload,
                            Bucket=self._bucket, Key=key, **extra,
                        )
                        upload_id = response["UploadId"]
                    data = bytes(buffer[:self._part_size])
                    del buffer[:self._part_size]
                    await upload_part(data)

            if upload_id is None:
                await self._call(
                    "write", location, self._client.put_object,
                    Bucket=self._bucket, Key=key, Body=bytes(buffer), **extra,
                )
                return

            if buffer:
                await upload_part(bytes(buffer))
            await self._call(
                "write", location, self._client.complete_multipart_upload,
                Bucket=self._bucket, Key=key, UploadId=upload_id,
                MultipartUpload={"Parts": parts},
            )
        except BaseException:
            if upload_id is not None:
                logger.warning("Aborting multipart upload of %s", key)
                await asyncio.shield(self._abort_upload(key, upload_id))
            raise

    async def _abort_upload(self, key: str, upload_id: str) -> None:
        try:
            await self._call(
                "write", None, self._client.abort_multipart_upload,
                Bucket=self._bucket, Key=key, UploadId=upload_id,
            )
        except AdapterError:
            logger.warning("Could not abort multipart upload %s of %s", upload_id, key, exc_info=True)

    async def delete(self, location: Location) -> None:
        await self._call(
            "delete", location, self._client.delete_object,
            Bucket=self._bucket, Key=self._key(location),
        )

    # --- Directories (derived from key prefixes) ---

    async def create_directory(self, location: Location) -> None:
        if location.is_root:
            return
        await self._call(
            "create_directory", location, self._client.put_object,
            Bucket=self._bucket, Key=self._dir_key(location), Body=b"",
        )

    async def delete_directory(self, location: Location) -> None:
        """Delete every key below the directory, page by page."""
        async for page in self._pages(
            "delete_directory", location, Prefix=self._dir_key(location),
        ):
            keys = [obj["Key"] for obj in page.get("Contents", []) or []]
            for i in range(0, len(keys), _DELETE_BATCH):
                chunk = keys[i:i + _DELETE_BATCH]
                response = await self._call(
                    "delete_directory", location, self._client.delete_objects,
                    Bucket=self._bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                )
                errors = response.get("Errors") or []
                if errors:
                    first = errors[0]
                    raise AdapterError(
                        "delete_directory", location,
                        f"{len(errors)} key(s) not deleted, first {first.get('Key')}: "
                        f"{first.get('Message', '')}",
                        code=str(first.get("Code") or ""),
                    )

    async def list_contents(
        self, location: Location, recursive: bool = False,
    ) -> AsyncIterator[DirectoryEntry]:
        prefix = self._dir_key(location)
        kwargs: dict[str, Any] = {"Prefix": prefix}
        if not recursive:
            kwargs["Delimiter"] = "/"

        seen: set[Location] = set()
        async for page in self._pages("list_contents", location, **kwargs):
            for common in page.get("CommonPrefixes", []) or []:
                path = self._location(common["Prefix"])
                if path is not None and path not in seen:
                    seen.add(path)
                    yield DirectoryEntry(path=path, is_directory=True)

            for obj in page.get("Contents", []) or []:
                key = obj["Key"]
                if key == prefix:
                    continue  # marker of the listed directory itself
                path = self._location(key)
                if path is None or path == location:
                    continue

                if recursive:
                    # Intermediate prefixes are implied directories.
                    parent = path if key.endswith("/") else path.parent
                    implied = []
                    while parent != location and location.is_ancestor_of(parent):
                        if parent in seen:
                            break
                        implied.append(parent)
                        parent = parent.parent
                    for directory in reversed(implied):
                        seen.add(directory)
                        yield DirectoryEntry(path=directory, is_directory=True)

                if key.endswith("/"):
                    continue  # directory marker, already reported
                yield DirectoryEntry(
                    path=path,
                    is_directory=False,
                    metadata=Metadata(
                        path=path,
                        file_size=obj.get("Size"),
                        last_modified=obj.get("LastModified"),
                    ),
                )

    # --- Metadata ---

    async def get_metadata(self, location: Location) -> Metadata:
        try:
            response = await self._call(
                "get_metadata", location, self._client.head_object,
                Bucket=self._bucket, Key=self._key(location),
            )
        except AdapterError as e:
            if e.code in _MISSING_CODES and await self.directory_exists(location):
                return Metadata(path=location)
            raise
        return Metadata(
            path=location,
            file_size=response.get("ContentLength"),
            last_modified=response.get("LastModified"),
            mime_type=response.get("ContentType") or None,
        )

    async def visibility(self, location: Location) -> Visibility:
        """Public iff AllUsers is granted READ on the object."""
        response = await self._call(
            "visibility", location, self._client.get_object_acl,
            Bucket=self._bucket, Key=self._key(location),
        )
        for grant in response.get("Grants", []) or []:
            grantee = grant.get("Grantee") or {}
            if grantee.get("URI") == _ALL_USERS and grant.get("Permission") == "READ":
                return Visibility.PUBLIC
        return Visibility.PRIVATE

    async def set_visibility(self, location: Location, visibility: Visibility) -> None:
        """Apply a canned ACL.

        Buckets with ACLs disabled (object ownership enforced) and providers
        without ACL support answer with an error that surfaces as
        UnsupportedOperation; nothing is approximated.
        """
        await self._call(
            "set_visibility", location, self._client.put_object_acl,
            Bucket=self._bucket, Key=self._key(location), ACL=_CANNED_ACL[visibility],
        )

    # --- Copy / move ---

    async def copy(self, source: Location, destination: Location) -> None:
        await self._call(
            "copy", source, self._client.copy_object,
            Bucket=self._bucket,
            Key=self._key(destination),
            CopySource={"Bucket": self._bucket, "Key": self._key(source)},
        )

    async def move(self, source: Location, destination: Location) -> None:
        """Copy then delete. Not atomic: a failure in between leaves both."""
        await self.copy(source, destination)
        if source != destination:
            await self.delete(source)

    # --- URLs ---

    async def public_url(self, location: Location) -> str:
        key = quote(self._key(location))
        if self._endpoint:
            return f"{self._endpoint}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{key}"

    async def temporary_url(self, location: Location, expires_in: timedelta) -> str:
        if not await self.file_exists(location):
            raise AdapterError("temporary_url", location, "No such file", code=NOT_FOUND)
        return await self._call(
            "temporary_url", location, self._client.generate_presigned_url,
            ClientMethod="get_object",
            Params={"Bucket": self._bucket, "Key": self._key(location)},
            ExpiresIn=int(expires_in.total_seconds()),
        )

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await asyncio.to_thread(close)

    def __repr__(self) -> str:
        return (
            f"S3Adapter(bucket={self._bucket!r}, "
            f"prefix={self._prefix!r})"
        )
