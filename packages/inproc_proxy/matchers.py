"""Host and URI matchers used to decide whether a request is intercepted.

``compile_matcher`` inspects the user-facing ``host=`` / ``uri=`` options
once, at registration time, and returns one of the frozen variants below.
Dispatch then only calls :meth:`matches` on a :class:`RequestTarget`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Literal, Union
from urllib.parse import urlsplit

from .errors import InvalidArgumentError


Target = Literal["host", "uri"]


@dataclass(frozen=True)
class RequestTarget:
    """The two strings a matcher may look at for an outgoing request."""

    uri: str
    host: str

    @classmethod
    def from_url(cls, url: str) -> "RequestTarget":
        return cls(uri=url, host=(urlsplit(url).hostname or "").lower())

    def select(self, target: Target) -> str:
        return self.host if target == "host" else self.uri


@dataclass(frozen=True)
class MatchAll:
    def matches(self, request: RequestTarget) -> bool:
        return True

    def describe(self) -> str:
        return "*"


@dataclass(frozen=True)
class Exact:
    """String equality. Hosts compare case-insensitively."""

    target: Target
    value: str

    def matches(self, request: RequestTarget) -> bool:
        candidate = request.select(self.target)
        if self.target == "host":
            return candidate == self.value.lower()
        return candidate == self.value

    def describe(self) -> str:
        return f"{self.target}={self.value!r}"


@dataclass(frozen=True)
class Pattern:
    """Regular expression, searched anywhere in the host or URI."""

    target: Target
    regex: re.Pattern

    def matches(self, request: RequestTarget) -> bool:
        return self.regex.search(request.select(self.target)) is not None

    def describe(self) -> str:
        return f"{self.target}~/{self.regex.pattern}/"


@dataclass(frozen=True)
class Predicate:
    target: Target
    fn: Callable[[str], Any]

    def matches(self, request: RequestTarget) -> bool:
        return bool(self.fn(request.select(self.target)))

    def describe(self) -> str:
        name = getattr(self.fn, "__qualname__", repr(self.fn))
        return f"{self.target}:{name}()"


Matcher = Union[MatchAll, Exact, Pattern, Predicate]


def compile_matcher(*, host: Any = None, uri: Any = None) -> Matcher:
    if host is not None and uri is not None:
        raise InvalidArgumentError("pass either host or uri, not both")
    if host is not None:
        return _compile("host", host)
    if uri is not None:
        return _compile("uri", uri)
    return MatchAll()


def _compile(target: Target, option: Any) -> Matcher:
    if isinstance(option, str):
        if not option:
            raise InvalidArgumentError(f"{target} must not be empty")
        return Exact(target, option)
    if isinstance(option, re.Pattern):
        return Pattern(target, option)
    if callable(option):
        return Predicate(target, option)
    raise InvalidArgumentError(
        f"{target} must be a str, a compiled re.Pattern or a callable, "
        f"got {type(option).__name__}"
    )
