"""Integration tests routing real requests.Session traffic to WSGI apps."""

import re

import pytest
import requests

from inproc_proxy import InterceptorRegistry, ProxyConfig
from inproc_proxy.http_proxy import WSGIAdapter


@pytest.fixture
def session():
    # No proxies from the environment: passthrough must hit the real adapter.
    with requests.Session() as s:
        s.trust_env = False
        yield s


def test_match_all_routes_any_host(registry, ok_app, session):
    registry.register(ok_app)

    response = session.get("http://anyhost.test/ping")

    assert response.status_code == 200
    assert response.text == "ok:/ping"
    assert response.headers["Content-Type"] == "text/plain"


def test_module_level_requests_api_is_intercepted(registry, ok_app):
    registry.register(ok_app, host="anyhost.test")

    response = requests.get("https://anyhost.test/ping", timeout=5)

    assert response.status_code == 200
    assert response.text == "ok:/ping"
    assert response.url == "https://anyhost.test/ping"


def test_request_translation(registry, echo_app, session):
    registry.register(echo_app)

    response = session.post(
        "https://svc.test:8443/items?limit=2",
        json={"name": "widget"},
        headers={"X-Test": "1"},
    )

    assert response.status_code == 201
    assert response.reason == "Created"
    assert response.headers["X-Echo"] == "yes"
    seen = response.json()
    assert seen["method"] == "POST"
    assert seen["scheme"] == "https"
    assert seen["server_name"] == "svc.test"
    assert seen["server_port"] == "8443"
    assert seen["path"] == "/items"
    assert seen["query"] == "limit=2"
    assert seen["content_type"] == "application/json"
    assert seen["host"] == "svc.test:8443"
    assert seen["x_test"] == "1"
    assert seen["body"] == '{"name": "widget"}'


def test_streamed_response(registry, ok_app, session):
    registry.register(ok_app)

    response = session.get("http://anyhost.test/stream", stream=True)

    assert b"".join(response.iter_content(chunk_size=3)) == b"ok:/stream"


def test_exact_host_routes_only_that_host(registry, ok_app, session, emitter):
    registry.register(ok_app, host="example.com")

    assert session.get("http://example.com/x").text == "ok:/x"
    with pytest.raises(requests.ConnectionError):
        session.get("http://other.invalid/x", timeout=5)

    assert emitter.records[-1].host == "other.invalid"
    assert not emitter.records[-1].intercepted


def test_subdomain_pattern(registry, ok_app, session):
    registry.register(ok_app, host=re.compile(r"\.example\.com$"))

    assert session.get("http://api.example.com/a").text == "ok:/a"
    assert session.get("http://www.example.com/b").text == "ok:/b"
    assert registry.resolve("http://example.com/c") is None


def test_uri_matcher(registry, make_text_app, session):
    registry.register(make_text_app("v2:"), uri=re.compile(r"^https://svc\.test/v2/"))
    registry.register(make_text_app("exact:"), uri="https://svc.test/health")

    assert session.get("https://svc.test/v2/users").text == "v2:/v2/users"
    assert session.get("https://svc.test/health").text == "exact:/health"


def test_nested_hosts_and_passthrough(registry, make_text_app, session):
    with registry.register(make_text_app("A:"), host="a.test"):
        with registry.register(make_text_app("B:"), host="b.test"):
            assert session.get("http://a.test/x").text == "A:/x"
            assert session.get("http://b.test/x").text == "B:/x"
            with pytest.raises(requests.ConnectionError):
                session.get("http://c.test/x", timeout=5)
        assert registry.resolve("http://b.test/x") is None
    assert not registry.installed


def test_app_exception_reaches_call_site(registry, session):
    def broken_app(environ, start_response):
        raise ValueError("kaput")

    registry.register(broken_app)

    with pytest.raises(ValueError, match="kaput"):
        session.get("http://anyhost.test/")


def test_script_name(echo_app, session):
    registry = InterceptorRegistry(ProxyConfig(script_name="/api"))
    try:
        registry.register(echo_app)
        seen = session.get("http://svc.test/api/users").json()
    finally:
        registry.unregister()

    assert seen["script_name"] == "/api"
    assert seen["path"] == "/users"


def test_redirects_are_followed_by_requests(registry, session):
    def redirecting_app(environ, start_response):
        if environ["PATH_INFO"] == "/old":
            start_response("302 Found", [("Location", "http://svc.test/new")])
            return [b""]
        start_response("200 OK", [])
        return [b"landed"]

    registry.register(redirecting_app)

    response = session.get("http://svc.test/old")

    assert response.text == "landed"
    assert [r.status_code for r in response.history] == [302]


def test_generator_body_reaches_app(registry, echo_app, session):
    registry.register(echo_app)

    # requests sends a generator with Transfer-Encoding: chunked.
    response = session.post("http://svc.test/upload", data=(c for c in [b"ab", b"cd"]))

    seen = response.json()
    assert seen["body"] == "abcd"
    assert seen["transfer_encoding"] is None


def test_adapter_is_reused_per_registration(registry, make_text_app, session):
    a = registry.register(make_text_app("A:"), host="a.test")
    registry.register(make_text_app("B:"), host="b.test")

    first = session.get_adapter("http://a.test/one")
    assert session.get_adapter("http://a.test/two") is first
    assert session.get_adapter("http://b.test/") is not first
    assert session.get("http://a.test/x").text == "A:/x"

    a.release()
    assert session.get_adapter("http://a.test/") is not first

    registry.unregister()
    assert not isinstance(session.get_adapter("http://a.test/"), WSGIAdapter)
