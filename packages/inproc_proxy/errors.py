"""Exceptions raised by inproc_proxy.

Failures raised by an intercepted WSGI application are never wrapped in
these types: they reach the HTTP call site exactly as the app raised them.
"""

from __future__ import annotations


class ProxyError(Exception):
    """Base class for errors raised by inproc_proxy itself."""


class InvalidArgumentError(ProxyError, ValueError):
    """Raised when ``register`` receives malformed or conflicting options."""


class WSGIProtocolError(ProxyError, RuntimeError):
    """Raised when an intercepted application breaks the WSGI contract."""
