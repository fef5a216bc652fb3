"""Error taxonomy shared by every backend.

Callers catch these kinds, never backend-specific exceptions:

- ``PathError``            malformed or traversal-attempting path
- ``NotFound``             the addressed entry does not exist
- ``AlreadyExists``        non-overwriting operation hit an existing entry
- ``PermissionDenied``     the backend rejected the call on access rights
- ``ChecksumMismatch``     verified read/write produced a different digest
- ``UnsupportedOperation`` the active adapter cannot express the request
- ``ConfigError``          adapter construction failed on its configuration
- ``BackendFailure``       anything else, with the original message kept
- ``Closed``               the filesystem was closed

Adapters raise ``AdapterError`` only; the ``Filesystem`` façade turns it
into one of the kinds above via ``classify``.
"""
from __future__ import annotations

import errno
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flysystem.location import Location


class FilesystemError(Exception):
    """Base class of every error surfaced by the façade."""


class PathError(FilesystemError, ValueError):
    """Raised when a raw path is malformed or tries to escape the root."""


class NotFound(FilesystemError):
    """Raised when an operation requires an entry that does not exist."""


class AlreadyExists(FilesystemError):
    """Raised by non-overwriting operations when the target is present."""


class PermissionDenied(FilesystemError):
    """Raised when the backend refuses access."""


class ChecksumMismatch(FilesystemError):
    """Raised when a computed digest disagrees with the expected one."""

    def __init__(self, path: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Checksum mismatch for '{path}': expected {expected}, got {actual}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class UnsupportedOperation(FilesystemError):
    """Raised when the adapter cannot express the requested semantics."""


class ConfigError(FilesystemError, ValueError):
    """Raised when an adapter cannot be constructed from its config."""


class BackendFailure(FilesystemError):
    """Catch-all for backend failures that match no other kind."""


class Closed(FilesystemError):
    """Raised for any operation on a closed filesystem."""


# ---------------------------------------------------------------------------
# Adapter boundary
# ---------------------------------------------------------------------------

class AdapterError(Exception):
    """Backend-native failure, wrapped at the adapter boundary.

    Args:
        operation: Adapter operation that failed (e.g. "read").
        location: Location being addressed, if any.
        message: Backend diagnostic message.
        code: Backend-native error code: an errno name such as ``ENOENT``
            for disk backends, an S3 error code such as ``NoSuchKey``, or one
            of the generic codes below.
    """

    def __init__(
        self,
        operation: str,
        location: Location | str | None,
        message: str,
        code: str = "",
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.location = str(location) if location is not None else None
        self.message = message
        self.code = code

    @classmethod
    def from_os_error(
        cls, operation: str, location: Location | str | None, exc: OSError,
    ) -> AdapterError:
        """Wrap an ``OSError``, keeping its errno name as the code."""
        code = errno.errorcode.get(exc.errno or 0, "") if exc.errno else ""
        return cls(operation, location, exc.strerror or str(exc), code=code)

    def __str__(self) -> str:
        where = f" '{self.location}'" if self.location else ""
        code = f" [{self.code}]" if self.code else ""
        return f"{self.operation}{where}{code}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"AdapterError(operation={self.operation!r}, "
            f"location={self.location!r}, code={self.code!r})"
        )


# Generic codes adapters may use when no native one applies.
NOT_FOUND = "NotFound"
ALREADY_EXISTS = "AlreadyExists"
UNSUPPORTED = "Unsupported"

_NOT_FOUND_CODES = {
    NOT_FOUND, "ENOENT", "NoSuchKey", "NoSuchUpload", "404",
}
_ALREADY_EXISTS_CODES = {ALREADY_EXISTS, "EEXIST"}
_PERMISSION_CODES = {
    "EACCES", "EPERM", "EROFS", "AccessDenied", "AllAccessDisabled",
    "InvalidAccessKeyId", "SignatureDoesNotMatch", "403",
}
_UNSUPPORTED_CODES = {
    UNSUPPORTED, "AccessControlListNotSupported", "NotImplemented",
    "XNotImplemented", "EOPNOTSUPP", "ENOTSUP",
}


def classify(error: AdapterError) -> FilesystemError:
    """Map an ``AdapterError`` onto the shared taxonomy.

    Unknown codes become ``BackendFailure`` carrying the original message.
    The caller is expected to chain the adapter error as ``__cause__``.
    """
    text = str(error)
    if error.code in _NOT_FOUND_CODES:
        return NotFound(text)
    if error.code in _ALREADY_EXISTS_CODES:
        return AlreadyExists(text)
    if error.code in _PERMISSION_CODES:
        return PermissionDenied(text)
    if error.code in _UNSUPPORTED_CODES:
        return UnsupportedOperation(text)
    return BackendFailure(text)
