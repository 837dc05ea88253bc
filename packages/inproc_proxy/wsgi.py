"""Translation between HTTP requests and the WSGI calling convention.

:func:`build_environ` turns the pieces of an outgoing request into a
PEP 3333 environ and :func:`run_application` calls the app and collects
status, headers and body into a :class:`WSGIResponse`.
"""

from __future__ import annotations

import io
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import unquote_to_bytes, urlsplit

from .errors import WSGIProtocolError


WSGIApp = Callable[[dict, Callable[..., Any]], Iterable[bytes]]

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass
class WSGIResponse:
    status_code: int
    reason: str
    headers: List[Tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


def read_body(body: Any) -> bytes:
    """Flatten the request body shapes HTTP clients hand to transports."""

    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    if hasattr(body, "read"):
        data = body.read()
        return data.encode("utf-8") if isinstance(data, str) else data
    return b"".join(
        chunk.encode("utf-8") if isinstance(chunk, str) else chunk for chunk in body
    )


def build_environ(
    method: str,
    url: str,
    headers: Mapping[str, str],
    body: bytes = b"",
    *,
    script_name: str = "",
) -> dict:
    parsed = urlsplit(url)
    scheme = parsed.scheme.lower()
    host = parsed.hostname or ""
    port = parsed.port or DEFAULT_PORTS.get(scheme, 80)

    # PEP 3333: native strings carrying the raw bytes as latin-1.
    path = unquote_to_bytes(parsed.path).decode("latin-1") or "/"
    script_name = script_name.encode("utf-8").decode("latin-1")
    if script_name and (path == script_name or path.startswith(script_name + "/")):
        path = path[len(script_name):]

    environ = {
        "REQUEST_METHOD": method.upper(),
        "SCRIPT_NAME": script_name,
        "PATH_INFO": path,
        "QUERY_STRING": parsed.query,
        "SERVER_NAME": host,
        "SERVER_PORT": str(port),
        "SERVER_PROTOCOL": "HTTP/1.1",
        "REMOTE_ADDR": "127.0.0.1",
        "wsgi.version": (1, 0),
        "wsgi.url_scheme": scheme,
        "wsgi.input": io.BytesIO(body),
        "wsgi.input_terminated": True,
        "wsgi.errors": sys.stderr,
        "wsgi.multithread": False,
        "wsgi.multiprocess": False,
        "wsgi.run_once": False,
    }

    for name, value in headers.items():
        key = name.upper().replace("-", "_")
        if key == "TRANSFER_ENCODING":
            # The body has already been de-chunked into wsgi.input.
            continue
        if key == "CONTENT_TYPE":
            environ["CONTENT_TYPE"] = value
        elif key == "CONTENT_LENGTH":
            environ["CONTENT_LENGTH"] = value
        else:
            key = f"HTTP_{key}"
            if key in environ:
                environ[key] = f"{environ[key]},{value}"
            else:
                environ[key] = value

    environ.setdefault("HTTP_HOST", parsed.netloc.rpartition("@")[2])
    if body:
        environ["CONTENT_LENGTH"] = str(len(body))
    return environ


def run_application(app: WSGIApp, environ: dict) -> WSGIResponse:
    """Call ``app`` and collect its full response.

    Exceptions raised by the app propagate unchanged.
    """

    state: dict = {}
    chunks: List[bytes] = []

    def start_response(
        status: str,
        response_headers: List[Tuple[str, str]],
        exc_info: Optional[tuple] = None,
    ) -> Callable[[bytes], None]:
        if exc_info is not None:
            if chunks:
                raise exc_info[1].with_traceback(exc_info[2])
        elif "status" in state:
            raise WSGIProtocolError("start_response called twice without exc_info")
        state["status"] = status
        state["headers"] = list(response_headers)
        return chunks.append

    result = app(environ, start_response)
    try:
        for chunk in result:
            if chunk:
                chunks.append(chunk)
    finally:
        close = getattr(result, "close", None)
        if close is not None:
            close()

    if "status" not in state:
        raise WSGIProtocolError("application returned without calling start_response")

    code, _, reason = state["status"].partition(" ")
    return WSGIResponse(
        status_code=int(code),
        reason=reason,
        headers=state["headers"],
        body=b"".join(chunks),
    )
