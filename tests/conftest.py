"""
Shared pytest fixtures for all tests.

Provides small WSGI apps, an isolated interceptor registry and a guard that
keeps the process-wide registry clean between tests.
"""

import json

import pytest

import inproc_proxy
from inproc_proxy import InterceptorRegistry, RecordingEmitter


def _text_app(prefix):
    """WSGI app answering ``<prefix><PATH_INFO>`` with status 200."""

    def app(environ, start_response):
        body = f"{prefix}{environ['PATH_INFO']}".encode()
        start_response(
            "200 OK",
            [("Content-Type", "text/plain"), ("Content-Length", str(len(body)))],
        )
        return [body]

    return app


def _echo_app(environ, start_response):
    """WSGI app describing the request it received as JSON."""

    length = int(environ.get("CONTENT_LENGTH") or 0)
    payload = {
        "method": environ["REQUEST_METHOD"],
        "scheme": environ["wsgi.url_scheme"],
        "server_name": environ["SERVER_NAME"],
        "server_port": environ["SERVER_PORT"],
        "script_name": environ["SCRIPT_NAME"],
        "path": environ["PATH_INFO"],
        "query": environ["QUERY_STRING"],
        "content_type": environ.get("CONTENT_TYPE"),
        "host": environ.get("HTTP_HOST"),
        "x_test": environ.get("HTTP_X_TEST"),
        "transfer_encoding": environ.get("HTTP_TRANSFER_ENCODING"),
        "body": environ["wsgi.input"].read(length).decode(),
    }
    body = json.dumps(payload).encode()
    start_response(
        "201 Created",
        [("Content-Type", "application/json"), ("X-Echo", "yes")],
    )
    return [body]


@pytest.fixture
def make_text_app():
    return _text_app


@pytest.fixture
def echo_app():
    return _echo_app


@pytest.fixture
def ok_app():
    return _text_app("ok:")


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def registry(emitter):
    """Isolated registry, always unwound after the test."""
    registry = InterceptorRegistry(emitter=emitter)
    yield registry
    registry.unregister()


@pytest.fixture(autouse=True)
def clean_global_registry():
    yield
    inproc_proxy.GLOBAL_REGISTRY.unregister()
