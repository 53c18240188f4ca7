"""Forwarded-header parsing and normalization."""

from typing import Iterable

MAX_HEADER_COUNT = 10
WILDCARD = "*"

_TOKEN_CHARS = frozenset(
    "!#$%&'*+-.^_`|~0123456789"
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
)


def canonical_header_key(name: str) -> str:
    """Return the canonical MIME form of a header name (``x-forwarded-for`` -> ``X-Forwarded-For``).

    Names containing characters outside the HTTP token set are returned unchanged.
    """
    if not name or any(c not in _TOKEN_CHARS for c in name):
        return name
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.split("-"))


class Headers:
    """Set of header names compared case-insensitively in canonical form."""

    def __init__(self, names: Iterable[str] = ()):
        self._names: dict[str, None] = {}
        for name in names:
            self.add(name)

    def add(self, name: str) -> None:
        self._names[canonical_header_key(name)] = None

    def __contains__(self, name: str) -> bool:
        return canonical_header_key(name) in self._names

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self):
        return iter(self._names)

    def __eq__(self, other) -> bool:
        if isinstance(other, Headers):
            return set(self._names) == set(other._names)
        return NotImplemented

    def __repr__(self) -> str:
        return f"Headers({self.sorted()!r})"

    def sorted(self) -> list[str]:
        return sorted(self._names)

    def to_csv(self) -> str:
        return ",".join(self.sorted())

    @classmethod
    def from_csv(cls, value: str) -> "Headers":
        return cls(h for h in (value or "").split(",") if h)


def parse_headers(header_names: Iterable[str]) -> Headers:
    """Validate requested forwarded headers.

    Duplicates (after canonicalization) and a wildcard combined with named
    headers are rejected. ``Host`` is always forwarded unless the wildcard is
    used, and at most ``MAX_HEADER_COUNT`` headers are allowed.
    """
    headers = Headers()
    for name in header_names:
        if name in headers:
            raise ValueError(f"must not pass duplicated header '{name}'")
        headers.add(name)

    if WILDCARD in headers and len(headers) > 1:
        raise ValueError("must not pass whitelisted headers alongside wildcard")

    if WILDCARD not in headers:
        headers.add("Host")

    if len(headers) > MAX_HEADER_COUNT:
        raise ValueError(
            f"must not set more than {MAX_HEADER_COUNT} headers; got {len(headers)}"
        )

    return headers
