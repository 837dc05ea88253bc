"""Interceptor registry for inproc_proxy.

A registry owns a list of registrations, each pairing a matcher with a WSGI
application, and the transport patches that route matching requests to
those applications. Patches are installed with the first registration and
restored when the last one goes away.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .config import ProxyConfig
from .emitter import DEFAULT_EMITTER, RequestEmitter, RequestRecord
from .errors import InvalidArgumentError
from .http_proxy import PATCHERS, TransportPatch
from .matchers import Matcher, RequestTarget, compile_matcher
from .wsgi import WSGIApp

logger = logging.getLogger(__name__)

INTERCEPTED_SCHEMES = ("http", "https")


@dataclass(frozen=True, eq=False)
class Registration:
    """A WSGI app and the matcher deciding which requests it receives."""

    app: WSGIApp
    matcher: Matcher

    def matches(self, target: RequestTarget) -> bool:
        return self.matcher.matches(target)


class Interception:
    """Handle returned by :meth:`InterceptorRegistry.register`.

    Use it as a context manager to scope an interception to a block::

        with registry.register(app, host="api.example.com"):
            requests.get("https://api.example.com/users")

    Dropping the handle without calling :meth:`release` keeps the
    interception active until :meth:`InterceptorRegistry.unregister`.
    """

    def __init__(self, registry: InterceptorRegistry, registration: Registration):
        self.registry = registry
        self.registration = registration

    @property
    def active(self) -> bool:
        return self.registry.is_registered(self.registration)

    def release(self) -> None:
        self.registry.release(self.registration)

    def __enter__(self) -> "Interception":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "active" if self.active else "released"
        return f"<Interception {self.registration.matcher.describe()} {state}>"


class InterceptorRegistry:
    """Registry of in-process apps addressable by host or URI."""

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        *,
        emitter: RequestEmitter = DEFAULT_EMITTER,
    ) -> None:
        self.config = config or ProxyConfig()
        self.emitter = emitter
        self._registrations: List[Registration] = []
        self._patches: List[TransportPatch] = []

    @property
    def registrations(self) -> Tuple[Registration, ...]:
        """Active registrations, in the order they are consulted."""

        return tuple(reversed(self._registrations))

    @property
    def installed(self) -> bool:
        return bool(self._patches)

    def is_registered(self, registration: Registration) -> bool:
        return any(r is registration for r in self._registrations)

    # Registration ---------------------------------------------------------

    def register(self, app: WSGIApp, *, host: Any = None, uri: Any = None) -> Interception:
        if not callable(app):
            raise InvalidArgumentError(f"app must be a WSGI callable, got {type(app).__name__}")
        registration = Registration(app=app, matcher=compile_matcher(host=host, uri=uri))
        self._registrations.append(registration)
        logger.debug(f"Registered {registration.matcher.describe()} -> {app!r}")
        if not self._patches:
            self._install()
        return Interception(self, registration)

    def release(self, registration: Registration) -> None:
        remaining = [r for r in self._registrations if r is not registration]
        if len(remaining) == len(self._registrations):
            return
        self._registrations = remaining
        logger.debug(f"Released {registration.matcher.describe()}")
        if not self._registrations:
            self._restore()

    def unregister(self) -> None:
        """Drop every registration and restore the original transports."""

        self._registrations.clear()
        if self._patches:
            self._restore()

    # Dispatch -------------------------------------------------------------

    def resolve(self, url: str, *, client: str = "unknown") -> Optional[Registration]:
        """Return the registration that should handle ``url``, if any.

        Most recently registered apps are consulted first.
        """

        target = RequestTarget.from_url(url)
        scheme = url.partition(":")[0].lower()
        match = None
        if scheme in INTERCEPTED_SCHEMES:
            for registration in reversed(self._registrations):
                if registration.matches(target):
                    match = registration
                    break

        if match is None:
            logger.debug(f"[{client}] passthrough {url}")
        else:
            logger.debug(f"[{client}] intercepting {url} via {match.matcher.describe()}")
        self.emitter.emit(
            RequestRecord(
                client=client,
                url=url,
                host=target.host,
                intercepted=match is not None,
            )
        )
        return match

    # Transport patches ----------------------------------------------------

    def _install(self) -> None:
        patches: List[TransportPatch] = []
        for client in self.config.clients:
            patches.extend(PATCHERS[client](self))
        for patch in patches:
            patch.apply()
            logger.info(f"Installed interceptor on {patch.target}")
        self._patches = patches

    def _restore(self) -> None:
        for patch in reversed(self._patches):
            if patch.restore():
                logger.info(f"Restored {patch.target}")
        self._patches = []
