"""Location — the normalized path value every operation is addressed with.

A Location is a relative, forward-slash path below the adapter root. The
root itself is the empty Location. Normalization is pure (no I/O):

    >>> str(Location.normalize("\\\\docs//./readme.txt/"))
    'docs/readme.txt'
    >>> Location.normalize("docs/../secret")
    Traceback (most recent call last):
    ...
    flysystem.errors.PathError: Path traversal is not allowed: 'docs/../secret'

``..`` is rejected rather than resolved, so a path can never climb out of
the root no matter what the adapter does with it.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from flysystem.errors import PathError

SEPARATOR = "/"

_SEPARATORS = re.compile(r"[/\\]+")
_DRIVE = re.compile(r"^[A-Za-z]:(?:[/\\]|$)")
_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


def _canonical(raw: str) -> str:
    """Canonical form of *raw*; PathError if it cannot have one."""
    if not isinstance(raw, str):
        raise PathError(f"Path must be a string, got {type(raw).__name__}")
    if "\x00" in raw:
        raise PathError(f"Path contains a NUL byte: {raw!r}")

    stripped = raw.strip()
    if _SCHEME.match(stripped):
        raise PathError(f"URLs are not paths: {raw!r}")
    if _DRIVE.match(stripped):
        raise PathError(f"Drive-qualified paths are not allowed: {raw!r}")
    if stripped == "~" or stripped.startswith(("~/", "~\\")):
        raise PathError(f"Home-relative paths are not allowed: {raw!r}")

    segments: list[str] = []
    for segment in _SEPARATORS.split(raw):
        if segment in ("", "."):
            continue
        if segment == "..":
            raise PathError(f"Path traversal is not allowed: {raw!r}")
        segments.append(segment)
    return SEPARATOR.join(segments)


@dataclass(frozen=True, order=True)
class Location:
    """Immutable, canonical path. Construct with ``Location.normalize``.

    The constructor itself only accepts a path that is already canonical,
    so no Location can carry a traversal or a malformed path.
    """

    path: str = ""

    def __post_init__(self) -> None:
        if _canonical(self.path) != self.path:
            raise PathError(
                f"Not a canonical path: {self.path!r} (use Location.normalize)"
            )

    @classmethod
    def normalize(cls, raw: str | Location) -> Location:
        """Validate *raw* and return its canonical Location.

        Raises:
            PathError: on ``..`` segments, NUL bytes, drive letters,
                URL schemes or home-directory shorthand.
        """
        if isinstance(raw, Location):
            return raw
        return cls(_canonical(raw))

    @classmethod
    def root(cls) -> Location:
        return cls("")

    # --- Derived views ---

    @property
    def is_root(self) -> bool:
        return self.path == ""

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(self.path.split(SEPARATOR)) if self.path else ()

    @property
    def name(self) -> str:
        """Last segment ("" for the root)."""
        return self.path.rsplit(SEPARATOR, 1)[-1]

    @property
    def suffix(self) -> str:
        """Extension of the last segment including the dot, or ""."""
        name = self.name
        dot = name.rfind(".")
        if dot <= 0:
            return ""
        return name[dot:]

    @property
    def parent(self) -> Location:
        """Containing Location. The root is its own parent."""
        if SEPARATOR not in self.path:
            return Location.root()
        return Location(self.path.rsplit(SEPARATOR, 1)[0])

    def join(self, child: str | Location) -> Location:
        """Append *child* below this Location and re-normalize."""
        return join(self, child)

    def is_ancestor_of(self, other: Location) -> bool:
        return is_ancestor(self, other)

    def relative_to(self, ancestor: Location) -> str:
        """Path of this Location below *ancestor* ("" when equal)."""
        if ancestor == self:
            return ""
        if not ancestor.is_ancestor_of(self):
            raise PathError(f"'{self}' is not below '{ancestor}'")
        if ancestor.is_root:
            return self.path
        return self.path[len(ancestor.path) + 1:]

    def as_prefix(self) -> str:
        """Key prefix for flat namespaces: "a/b/" (or "" for the root)."""
        return self.path + SEPARATOR if self.path else ""

    def __str__(self) -> str:
        return self.path

    def __repr__(self) -> str:
        return f"Location({self.path!r})"


def normalize(raw: str | Location) -> Location:
    """Module-level alias of ``Location.normalize``."""
    return Location.normalize(raw)


def join(base: Location, child: str | Location) -> Location:
    """Compose *base* and *child*. ``join(p, "") == p``."""
    child_path = str(child)
    if not child_path:
        return base
    if not base.path:
        return Location.normalize(child_path)
    return Location.normalize(base.path + SEPARATOR + child_path)


def is_ancestor(a: Location, b: Location) -> bool:
    """True iff *a* strictly contains *b* (the root contains everything)."""
    if a == b:
        return False
    if a.is_root:
        return True
    return b.path.startswith(a.path + SEPARATOR)
