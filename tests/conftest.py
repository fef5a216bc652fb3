"""Shared fixtures: filesystems over every adapter and an in-process S3 fake."""
from __future__ import annotations

import hashlib
import io
import itertools
from datetime import datetime, timezone
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

from flysystem import Filesystem
from flysystem.adapters import LocalAdapter, LocalConfig, MemoryAdapter
from flysystem.adapters.s3 import S3Adapter, S3Config

BUCKET = "test-bucket"
_ALL_USERS = "http://acs.amazonaws.com/groups/global/AllUsers"


def client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeBody:
    """Stand-in for botocore's StreamingBody."""

    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)
        self.closed = False

    def read(self, amt: int | None = None) -> bytes:
        return self._buffer.read(amt)

    def close(self) -> None:
        self.closed = True


class FakePaginator:
    def __init__(self, client: FakeS3Client) -> None:
        self._client = client

    def paginate(self, **kwargs):
        token = None
        while True:
            page = self._client.list_objects_v2(
                MaxKeys=self._client.page_size, ContinuationToken=token, **kwargs,
            )
            yield page
            if not page["IsTruncated"]:
                return
            token = page["NextContinuationToken"]


class FakeS3Client:
    """Just enough of the boto3 S3 client API, backed by a dict.

    Args:
        page_size: Keys per list_objects_v2 page, to exercise pagination.
        acl_supported: False mimics a bucket with ACLs disabled.
    """

    def __init__(self, page_size: int = 1000, acl_supported: bool = True) -> None:
        self.objects: dict[str, dict] = {}
        self.uploads: dict[str, dict] = {}
        self.aborted: list[str] = []
        self.calls: list[str] = []
        self.page_size = page_size
        self.acl_supported = acl_supported
        self.fail_delete_keys: set[str] = set()
        self.closed = False
        self._ids = itertools.count(1)

    def _bucket(self, bucket: str, operation: str) -> None:
        self.calls.append(operation)
        if bucket != BUCKET:
            raise client_error("NoSuchBucket", "The specified bucket does not exist", operation)

    def _object(self, key: str, operation: str) -> dict:
        try:
            return self.objects[key]
        except KeyError:
            raise client_error("NoSuchKey", "The specified key does not exist.", operation) from None

    def _store(self, key: str, body: bytes, content_type: str | None, acl: str | None) -> None:
        self.objects[key] = {
            "Body": body,
            "ContentType": content_type or "binary/octet-stream",
            "ACL": acl or "private",
            "LastModified": datetime.now(timezone.utc),
        }

    def _check_acl(self, acl: str | None, operation: str) -> None:
        if acl is not None and not self.acl_supported:
            raise client_error(
                "AccessControlListNotSupported", "The bucket does not allow ACLs", operation,
            )

    # --- Buckets / objects ---

    def head_bucket(self, Bucket):
        self._bucket(Bucket, "HeadBucket")
        return {}

    def head_object(self, Bucket, Key):
        self._bucket(Bucket, "HeadObject")
        obj = self.objects.get(Key)
        if obj is None:
            raise client_error("404", "Not Found", "HeadObject")
        return {
            "ContentLength": len(obj["Body"]),
            "LastModified": obj["LastModified"],
            "ContentType": obj["ContentType"],
        }

    def get_object(self, Bucket, Key):
        self._bucket(Bucket, "GetObject")
        obj = self._object(Key, "GetObject")
        return {"Body": FakeBody(obj["Body"]), "ContentLength": len(obj["Body"])}

    def put_object(self, Bucket, Key, Body=b"", ContentType=None, ACL=None):
        self._bucket(Bucket, "PutObject")
        self._check_acl(ACL, "PutObject")
        self._store(Key, bytes(Body), ContentType, ACL)
        return {"ETag": f'"{hashlib.md5(bytes(Body)).hexdigest()}"'}

    def delete_object(self, Bucket, Key):
        self._bucket(Bucket, "DeleteObject")
        self.objects.pop(Key, None)
        return {}

    def delete_objects(self, Bucket, Delete):
        self._bucket(Bucket, "DeleteObjects")
        deleted, errors = [], []
        for item in Delete["Objects"]:
            key = item["Key"]
            if key in self.fail_delete_keys:
                errors.append({"Key": key, "Code": "AccessDenied", "Message": "Access Denied"})
                continue
            self.objects.pop(key, None)
            deleted.append({"Key": key})
        response = {"Deleted": deleted}
        if errors:
            response["Errors"] = errors
        return response

    def copy_object(self, Bucket, Key, CopySource):
        self._bucket(Bucket, "CopyObject")
        source = self._object(CopySource["Key"], "CopyObject")
        self._store(Key, source["Body"], source["ContentType"], None)
        return {}

    # --- Listing ---

    def list_objects_v2(self, Bucket, Prefix="", Delimiter=None, MaxKeys=1000,
                        ContinuationToken=None):
        self._bucket(Bucket, "ListObjectsV2")
        items: list[tuple[str, bool]] = []
        seen_prefixes: set[str] = set()
        for key in sorted(k for k in self.objects if k.startswith(Prefix)):
            rest = key[len(Prefix):]
            if Delimiter and Delimiter in rest:
                common = Prefix + rest.split(Delimiter, 1)[0] + Delimiter
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    items.append((common, True))
                continue
            items.append((key, False))

        # Continuation tokens are the last key returned, as with S3 StartAfter
        if ContinuationToken:
            items = [item for item in items if item[0] > ContinuationToken]
        window = items[:MaxKeys]
        truncated = len(items) > MaxKeys
        response: dict = {"KeyCount": len(window), "IsTruncated": truncated}
        contents = [
            {
                "Key": key,
                "Size": len(self.objects[key]["Body"]),
                "LastModified": self.objects[key]["LastModified"],
            }
            for key, is_prefix in window if not is_prefix
        ]
        prefixes = [{"Prefix": key} for key, is_prefix in window if is_prefix]
        if contents:
            response["Contents"] = contents
        if prefixes:
            response["CommonPrefixes"] = prefixes
        if truncated:
            response["NextContinuationToken"] = window[-1][0]
        return response

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return FakePaginator(self)

    # --- ACLs ---

    def get_object_acl(self, Bucket, Key):
        self._bucket(Bucket, "GetObjectAcl")
        obj = self._object(Key, "GetObjectAcl")
        grants = [{"Grantee": {"Type": "CanonicalUser", "ID": "owner"}, "Permission": "FULL_CONTROL"}]
        if obj["ACL"] == "public-read":
            grants.append({"Grantee": {"Type": "Group", "URI": _ALL_USERS}, "Permission": "READ"})
        return {"Grants": grants}

    def put_object_acl(self, Bucket, Key, ACL):
        self._bucket(Bucket, "PutObjectAcl")
        self._check_acl(ACL, "PutObjectAcl")
        self._object(Key, "PutObjectAcl")["ACL"] = ACL
        return {}

    # --- Multipart ---

    def create_multipart_upload(self, Bucket, Key, ContentType=None, ACL=None):
        self._bucket(Bucket, "CreateMultipartUpload")
        self._check_acl(ACL, "CreateMultipartUpload")
        upload_id = f"upload-{next(self._ids)}"
        self.uploads[upload_id] = {"Key": Key, "Parts": {}, "ContentType": ContentType, "ACL": ACL}
        return {"UploadId": upload_id}

    def upload_part(self, Bucket, Key, UploadId, PartNumber, Body):
        self._bucket(Bucket, "UploadPart")
        if UploadId not in self.uploads:
            raise client_error("NoSuchUpload", "The specified upload does not exist", "UploadPart")
        self.uploads[UploadId]["Parts"][PartNumber] = bytes(Body)
        return {"ETag": f'"{hashlib.md5(bytes(Body)).hexdigest()}"'}

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        self._bucket(Bucket, "CompleteMultipartUpload")
        upload = self.uploads.pop(UploadId)
        numbers = [part["PartNumber"] for part in MultipartUpload["Parts"]]
        body = b"".join(upload["Parts"][n] for n in numbers)
        self._store(Key, body, upload["ContentType"], upload["ACL"])
        return {}

    def abort_multipart_upload(self, Bucket, Key, UploadId):
        self._bucket(Bucket, "AbortMultipartUpload")
        self.uploads.pop(UploadId, None)
        self.aborted.append(UploadId)
        return {}

    # --- URLs / lifecycle ---

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn):
        return (
            f"https://{Params['Bucket']}.s3.example.com/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=fake"
        )

    def close(self):
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_s3_config(**overrides) -> S3Config:
    fields = {"bucket": BUCKET, "access_key": "AKIATEST", "secret_key": "secret"}
    fields.update(overrides)
    return S3Config(**fields)


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def s3_adapter(s3_client: FakeS3Client) -> S3Adapter:
    return S3Adapter(make_s3_config(), s3_client)


@pytest.fixture
def local_root(tmp_path: Path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def local_adapter(local_root: Path) -> LocalAdapter:
    return LocalAdapter(LocalConfig(root=local_root, public_url_base="https://cdn.example.com/files"))


@pytest.fixture(params=["local", "memory", "s3"])
def fs(request, local_root: Path) -> Filesystem:
    """A Filesystem over each adapter in turn."""
    if request.param == "local":
        adapter = LocalAdapter(LocalConfig(root=local_root))
    elif request.param == "memory":
        adapter = MemoryAdapter()
    else:
        adapter = S3Adapter(make_s3_config(), FakeS3Client(page_size=2))
    return Filesystem(adapter)
