"""
Brief: End-to-end tests of the DoH FastAPI app with a fake upstream resolver.

Inputs:
  - None

Outputs:
  - None
"""

from __future__ import annotations

import asyncio
import base64

import pytest
from dnslib import QTYPE
from fastapi.testclient import TestClient

from dohgate.forwarder import QueryForwarder
from dohgate.resolver import ResolverError
from dohgate.servers import doh_api

DNS_CT = "application/dns-message"


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


@pytest.fixture
def answer() -> bytes:
    return b"\x12\x34\x81\x80" + b"\x00" * 8 + b"answer-bytes"


@pytest.fixture
def resolver(fake_resolver, answer):
    return fake_resolver(answer=answer)


@pytest.fixture
def client(resolver) -> TestClient:
    return TestClient(doh_api.create_doh_app(QueryForwarder(resolver)))


def test_get_success_returns_answer_verbatim(client, resolver, answer, make_query) -> None:
    """
    Brief: GET /?dns=... forwards the question and returns the answer bytes.

    Inputs:
      - client: TestClient bound to the app
      - resolver: FakeResolver returning ``answer``

    Outputs:
      - None: Asserts 200, headers and body
    """
    resp = client.get("/", params={"dns": _b64(make_query("example.com", qtype="AAAA"))})
    assert resp.status_code == 200
    assert resp.headers["content-type"] == DNS_CT
    assert resp.headers["content-length"] == str(len(answer))
    assert resp.content == answer
    [question] = resolver.questions
    assert str(question.qname) == "example.com."
    assert question.qtype == QTYPE.AAAA


def test_post_success_returns_answer_verbatim(client, resolver, answer, make_query) -> None:
    resp = client.post(
        "/", content=make_query("example.org"), headers={"Content-Type": DNS_CT}
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"] == DNS_CT
    assert resp.headers["content-length"] == str(len(answer))
    assert resp.content == answer
    assert str(resolver.questions[0].qname) == "example.org."


@pytest.mark.parametrize("url", ["/?dns=", "/", "/?other=1"])
def test_get_missing_dns_parameter(client, url) -> None:
    resp = client.get(url)
    assert resp.status_code == 400
    assert resp.text == "Missing the dns parameter"
    assert resp.headers["content-type"] == "text/plain"


def test_get_undecodable_dns_parameter(client) -> None:
    resp = client.get("/?dns=%%%invalid")
    assert resp.status_code == 400
    assert resp.text == "Could not decode the request"


def test_post_wrong_content_type(client, make_query) -> None:
    resp = client.post(
        "/", content=make_query("example.org"), headers={"Content-Type": "text/plain"}
    )
    assert resp.status_code == 415
    assert resp.text == "Unsupported content type"


def test_post_missing_content_type(client, make_query) -> None:
    resp = client.post("/", content=make_query("example.org"))
    assert resp.status_code == 415


def test_post_two_questions_is_server_error(client, resolver, make_query) -> None:
    """
    Brief: A query with two questions is rejected with 500 before forwarding.

    Inputs:
      - client, resolver, make_query fixtures

    Outputs:
      - None: Asserts 500 and that the resolver was not called
    """
    resp = client.post(
        "/",
        content=make_query("a.example", "b.example"),
        headers={"Content-Type": DNS_CT},
    )
    assert resp.status_code == 500
    assert resp.text == "Internal Server Error"
    assert resolver.questions == []


def test_get_zero_questions_is_server_error(client, make_query) -> None:
    resp = client.get("/", params={"dns": _b64(make_query())})
    assert resp.status_code == 500


def test_malformed_dns_message_is_server_error(client) -> None:
    resp = client.get("/", params={"dns": _b64(b"\x01\x02\x03")})
    assert resp.status_code == 500


def test_resolver_failure_is_server_error(fake_resolver, make_query) -> None:
    resolver = fake_resolver(error=ResolverError("all upstream servers failed"))
    client = TestClient(doh_api.create_doh_app(QueryForwarder(resolver)))
    resp = client.get("/", params={"dns": _b64(make_query("example.com"))})
    assert resp.status_code == 500
    assert resp.text == "Internal Server Error"
    assert resp.headers["content-length"] == str(len("Internal Server Error"))


def test_stalled_post_body_maps_to_408(resolver) -> None:
    """
    Brief: A client that never sends its POST body gets 408 from the app.

    Inputs:
      - resolver: FakeResolver (never reached)

    Outputs:
      - None: Asserts the ASGI response status and body
    """
    app = doh_api.create_doh_app(QueryForwarder(resolver), body_timeout_ms=100)
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": "/",
        "raw_path": b"/",
        "root_path": "",
        "query_string": b"",
        "headers": [(b"content-type", DNS_CT.encode())],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }
    sent = []

    async def receive():
        await asyncio.sleep(5)
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)

    asyncio.run(app(scope, receive, send))
    start = next(m for m in sent if m["type"] == "http.response.start")
    body = b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")
    assert start["status"] == 408
    assert body == b"Request Timeout"
    assert resolver.questions == []


def test_get_dns_parameter_with_trailing_newline_is_rejected(client) -> None:
    resp = client.get("/?dns=AQID%0A")
    assert resp.status_code == 400
    assert resp.text == "Could not decode the request"


def test_body_timeout_is_passed_to_decoder(resolver, monkeypatch, make_query) -> None:
    seen = {}

    async def record(content_type, read_body, *, timeout_ms):
        seen["timeout_ms"] = timeout_ms
        return await read_body()

    monkeypatch.setattr(doh_api, "decode_from_body", record)
    client = TestClient(doh_api.create_doh_app(QueryForwarder(resolver), body_timeout_ms=250))
    resp = client.post("/", content=make_query("example.org"), headers={"Content-Type": DNS_CT})
    assert resp.status_code == 200
    assert seen == {"timeout_ms": 250}


@pytest.mark.parametrize(
    "method,url",
    [
        ("GET", "/foo"),
        ("GET", "/foo?dns=AAAB"),
        ("GET", "/dns-query"),
        ("POST", "/foo"),
        ("PUT", "/"),
        ("DELETE", "/"),
        ("PROPFIND", "/"),
    ],
)
def test_other_routes_are_not_found(client, method, url) -> None:
    resp = client.request(method, url)
    assert resp.status_code == 404
    assert resp.text == "Not Found"
    assert resp.headers["content-type"] == "text/plain"


def test_unexpected_forwarder_error_is_server_error(resolver, monkeypatch, make_query) -> None:
    async def boom(raw):
        raise RuntimeError("boom")

    forwarder = QueryForwarder(resolver)
    monkeypatch.setattr(forwarder, "forward", boom)
    app_client = TestClient(doh_api.create_doh_app(forwarder))
    resp = app_client.get("/", params={"dns": _b64(make_query("example.com"))})
    assert resp.status_code == 500


def test_serve_doh_builds_uvicorn_server(monkeypatch, resolver) -> None:
    """
    Brief: serve_doh configures uvicorn with the listen address and runs it.

    Inputs:
      - monkeypatch: replace uvicorn.Server with a recorder

    Outputs:
      - None: Asserts host/port/log settings
    """
    import uvicorn

    from dohgate.config.config_parser import build_gateway_config

    ran = {}

    class DummyServer:
        def __init__(self, config):
            ran["config"] = config

        def run(self):
            ran["run"] = True

    monkeypatch.setattr(uvicorn, "Server", DummyServer)
    cfg = build_gateway_config("127.0.0.1:18053", [])
    doh_api.serve_doh(cfg, QueryForwarder(resolver), log_level="debug")
    assert ran["run"] is True
    assert ran["config"].host == "127.0.0.1"
    assert ran["config"].port == 18053
    assert ran["config"].log_config is None
