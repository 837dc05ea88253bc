"""Route requests and httpx traffic to in-process WSGI apps.

    import requests
    import inproc_proxy

    with inproc_proxy.register(app, host="api.example.com"):
        requests.get("https://api.example.com/health")  # served by app
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from .config import ProxyConfig
from .emitter import NoopEmitter, RecordingEmitter, RequestEmitter, RequestRecord
from .errors import InvalidArgumentError, ProxyError, WSGIProtocolError
from .registry import Interception, InterceptorRegistry, Registration
from .service_proxy import service_proxy
from .wsgi import WSGIApp

# Global registry instance used by the module-level functions.
GLOBAL_REGISTRY = InterceptorRegistry()

_default_registry = GLOBAL_REGISTRY


def get_registry() -> InterceptorRegistry:
    """Return the registry module-level calls currently act on."""

    return _default_registry


def new_registry(config: Optional[ProxyConfig] = None, **kwargs: Any) -> InterceptorRegistry:
    return InterceptorRegistry(config, **kwargs)


@contextmanager
def with_registry(registry: InterceptorRegistry) -> Iterator[InterceptorRegistry]:
    """Make ``registry`` the default for module-level calls inside the block."""

    global _default_registry
    previous = _default_registry
    _default_registry = registry
    try:
        yield registry
    finally:
        _default_registry = previous


def register(app: WSGIApp, *, host: Any = None, uri: Any = None) -> Interception:
    return _default_registry.register(app, host=host, uri=uri)


def unregister() -> None:
    _default_registry.unregister()


__all__ = [
    "GLOBAL_REGISTRY",
    "Interception",
    "InterceptorRegistry",
    "InvalidArgumentError",
    "NoopEmitter",
    "ProxyConfig",
    "ProxyError",
    "RecordingEmitter",
    "Registration",
    "RequestEmitter",
    "RequestRecord",
    "WSGIProtocolError",
    "get_registry",
    "new_registry",
    "register",
    "service_proxy",
    "unregister",
    "with_registry",
]
