"""Resource identity — the URI a timeline is being shown for."""

from __future__ import annotations

import posixpath
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import unquote, urlsplit, urlunsplit


@dataclass(frozen=True)
class Resource:
    """A parsed resource URI.

    Equality uses the normalized form: lower-cased scheme and authority,
    percent-decoded path.  ``fs_path`` is the decoded path alone.
    """

    scheme: str
    authority: str
    path: str
    query: str = ""
    fragment: str = ""

    @classmethod
    def parse(cls, uri: str) -> Resource:
        parts = urlsplit(uri)
        scheme = parts.scheme.lower() or "file"
        return cls(
            scheme=scheme,
            authority=parts.netloc.lower(),
            path=unquote(parts.path),
            query=unquote(parts.query),
            fragment=unquote(parts.fragment),
        )

    @property
    def fs_path(self) -> str:
        return self.path

    @property
    def basename(self) -> str:
        return posixpath.basename(self.path.rstrip("/"))

    def __str__(self) -> str:
        return urlunsplit((self.scheme, self.authority, self.path, self.query, self.fragment))


def same_resource(
    a: Resource | None,
    b: Resource | None,
    path_equivalent_schemes: Iterable[str] = ("file", "git"),
) -> bool:
    """Return True when *a* and *b* denote the same timeline target.

    Two resources match on their normalized string, or on their path when
    both schemes are path-equivalent (e.g. a working-tree file and its
    version-control view).  A missing resource never matches.
    """
    if a is None or b is None:
        return False
    if str(a) == str(b):
        return True
    equivalent = {s.lower() for s in path_equivalent_schemes}
    return a.scheme in equivalent and b.scheme in equivalent and a.fs_path == b.fs_path


def cannot_provide_timeline(resource: Resource, unsupported_schemes: Iterable[str]) -> bool:
    return resource.scheme in {s.lower() for s in unsupported_schemes}
