"""Transport patches for the HTTP clients supported by inproc_proxy.

This module monkey patches the transport-selection step of ``requests``
and ``httpx``. The patches consult an interceptor registry to decide
whether an outgoing request goes to an in-process WSGI app or to the
transport the client would have picked on its own. Everything around that
step (auth, cookies, redirects, hooks) stays with the client library.

Each patched attribute has a single process-wide :class:`TransportChain`.
Registries join and leave the chain in any order; the chain installs one
wrapper when the first registry joins and puts the original attribute back
when the last one leaves.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple

from .wsgi import WSGIApp, WSGIResponse, build_environ, read_body, run_application

if TYPE_CHECKING:
    from .registry import InterceptorRegistry, Registration

try:  # Optional dependency
    import requests
    from requests.adapters import HTTPAdapter
    from urllib3 import HTTPHeaderDict, HTTPResponse
except ImportError:  # pragma: no cover
    requests = None  # type: ignore[assignment]

try:  # Optional dependency
    import anyio.to_thread
    import httpx
except ImportError:  # pragma: no cover
    httpx = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


# A link maps a request URL to a transport, or None to pass the request on.
Link = Callable[[Any], Optional[Any]]


# ---------------------------------------------------------------------------
# Patch bookkeeping
# ---------------------------------------------------------------------------


_MISSING = object()


class TransportChain:
    """Every registry's link on one attribute, behind a single wrapper."""

    def __init__(self, owner: type, attribute: str) -> None:
        self.owner = owner
        self.attribute = attribute
        self.links: List[Link] = []
        self.original: Any = _MISSING
        self.dispatcher: Optional[Callable[..., Any]] = None

    @property
    def target(self) -> str:
        return f"{self.owner.__module__}.{self.owner.__qualname__}.{self.attribute}"

    @property
    def active(self) -> bool:
        return self.dispatcher is not None and (
            self.owner.__dict__.get(self.attribute) is self.dispatcher
        )

    def join(self, link: Link) -> None:
        if self.dispatcher is None:
            self._install()
        self.links.append(link)

    def leave(self, link: Link) -> bool:
        """Remove ``link``; return True once the original attribute is back."""

        self.links = [other for other in self.links if other is not link]
        if self.links or self.dispatcher is None:
            return False
        return self._restore()

    def _install(self) -> None:
        self.original = self.owner.__dict__.get(self.attribute, _MISSING)
        delegate = getattr(self.owner, self.attribute)
        chain = self

        def dispatcher(client, url):
            # Most recently joined registry first.
            for link in reversed(chain.links):
                transport = link(url)
                if transport is not None:
                    return transport
            return delegate(client, url)

        self.dispatcher = dispatcher
        setattr(self.owner, self.attribute, dispatcher)

    def _restore(self) -> bool:
        if not self.active:
            # A foreign patch sits on top; the dispatcher stays reachable
            # through it and passes everything through while empty.
            logger.warning(f"Not restoring {self.target}: another patch is installed on top")
            return False
        if self.original is _MISSING:
            delattr(self.owner, self.attribute)
        else:
            setattr(self.owner, self.attribute, self.original)
        self.dispatcher = None
        self.original = _MISSING
        return True


_CHAINS: Dict[Tuple[type, str], TransportChain] = {}


def chain_for(owner: type, attribute: str) -> TransportChain:
    key = (owner, attribute)
    if key not in _CHAINS:
        _CHAINS[key] = TransportChain(owner, attribute)
    return _CHAINS[key]


@dataclass(eq=False)
class TransportPatch:
    """One registry's link on a chain."""

    chain: TransportChain
    link: Link
    cleanup: Optional[Callable[[], None]] = None

    @property
    def target(self) -> str:
        return self.chain.target

    def apply(self) -> None:
        self.chain.join(self.link)

    def restore(self) -> bool:
        restored = self.chain.leave(self.link)
        if self.cleanup is not None:
            self.cleanup()
        return restored


# ---------------------------------------------------------------------------
# requests patching
# ---------------------------------------------------------------------------


if requests is not None:

    class WSGIAdapter(HTTPAdapter):
        """A requests transport adapter that answers from a WSGI app."""

        def __init__(self, app: WSGIApp, *, script_name: str = "") -> None:
            super().__init__()
            self.app = app
            self.script_name = script_name

        def send(
            self,
            request,
            stream=False,
            timeout=None,
            verify=True,
            cert=None,
            proxies=None,
        ):
            body = read_body(request.body)
            environ = build_environ(
                request.method,
                request.url,
                request.headers,
                body,
                script_name=self.script_name,
            )
            result = run_application(self.app, environ)
            raw = HTTPResponse(
                body=io.BytesIO(result.body),
                headers=HTTPHeaderDict(result.headers),
                status=result.status_code,
                reason=result.reason,
                preload_content=False,
                request_method=request.method,
                request_url=request.url,
            )
            return self.build_response(request, raw)


def patch_requests(registry: InterceptorRegistry) -> List[TransportPatch]:
    if requests is None:  # pragma: no cover - optional dependency
        logger.warning("requests is not installed; skipping requests interception")
        return []

    script_name = registry.config.script_name
    adapters: Dict[Registration, WSGIAdapter] = {}

    def close_adapters(registrations) -> None:
        for registration in list(registrations):
            adapters.pop(registration).close()

    def link(url):
        registration = registry.resolve(url, client="requests")
        if registration is None:
            return None
        adapter = adapters.get(registration)
        if adapter is None:
            close_adapters(r for r in adapters if not registry.is_registered(r))
            adapter = adapters[registration] = WSGIAdapter(
                registration.app, script_name=script_name
            )
        return adapter

    return [
        TransportPatch(
            chain_for(requests.Session, "get_adapter"),
            link,
            cleanup=lambda: close_adapters(adapters),
        )
    ]


# ---------------------------------------------------------------------------
# httpx patching
# ---------------------------------------------------------------------------


def _httpx_response(result: WSGIResponse) -> "httpx.Response":
    return httpx.Response(
        result.status_code,
        headers=result.headers,
        stream=httpx.ByteStream(result.body),
        extensions={"reason_phrase": result.reason.encode("ascii", "replace")},
    )


if httpx is not None:

    class WSGITransport(httpx.BaseTransport):
        """An httpx transport that answers from a WSGI app."""

        def __init__(self, app: WSGIApp, *, script_name: str = "") -> None:
            self.app = app
            self.script_name = script_name

        def handle_request(self, request: httpx.Request) -> httpx.Response:
            environ = build_environ(
                request.method,
                str(request.url),
                request.headers,
                request.read(),
                script_name=self.script_name,
            )
            return _httpx_response(run_application(self.app, environ))

    class AsyncWSGITransport(httpx.AsyncBaseTransport):
        """Async flavour of :class:`WSGITransport`.

        The WSGI app runs in a worker thread so a blocking app does not
        stall the event loop. The calling task still waits for it.
        """

        def __init__(self, app: WSGIApp, *, script_name: str = "") -> None:
            self.app = app
            self.script_name = script_name

        async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
            body = await request.aread()
            environ = build_environ(
                request.method,
                str(request.url),
                request.headers,
                body,
                script_name=self.script_name,
            )
            result = await anyio.to_thread.run_sync(run_application, self.app, environ)
            return _httpx_response(result)


def patch_httpx(registry: InterceptorRegistry) -> List[TransportPatch]:
    if httpx is None:  # pragma: no cover
        logger.warning("httpx is not installed; skipping httpx interception")
        return []

    script_name = registry.config.script_name

    def sync_link(url):
        registration = registry.resolve(str(url), client="httpx")
        if registration is None:
            return None
        return WSGITransport(registration.app, script_name=script_name)

    def async_link(url):
        registration = registry.resolve(str(url), client="httpx")
        if registration is None:
            return None
        return AsyncWSGITransport(registration.app, script_name=script_name)

    return [
        TransportPatch(chain_for(httpx.Client, "_transport_for_url"), sync_link),
        TransportPatch(chain_for(httpx.AsyncClient, "_transport_for_url"), async_link),
    ]


PATCHERS: Dict[str, Callable[["InterceptorRegistry"], List[TransportPatch]]] = {
    "requests": patch_requests,
    "httpx": patch_httpx,
}
