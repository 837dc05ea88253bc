"""User-facing context manager mounting several apps at once."""

from __future__ import annotations

from contextlib import ExitStack, contextmanager
from typing import Dict, Iterator, Mapping, Optional

from .registry import Interception, InterceptorRegistry
from .wsgi import WSGIApp


@contextmanager
def service_proxy(
    services: Mapping[str, WSGIApp],
    *,
    registry: Optional[InterceptorRegistry] = None,
) -> Iterator[Dict[str, Interception]]:
    """Serve each ``host -> app`` pair in-process inside the managed block."""

    if registry is None:
        from . import get_registry

        registry = get_registry()

    with ExitStack() as stack:
        interceptions = {
            host: stack.enter_context(registry.register(app, host=host))
            for host, app in services.items()
        }
        yield interceptions
