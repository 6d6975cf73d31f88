import asyncio
import logging

import httpx
import pytest

from pos_client import (
    APIClient,
    ClientClosedError,
    InMemoryTokenProvider,
    NetworkFailure,
    SuccessEnvelope,
    resolve_config,
)

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_verbs_build_expected_requests(make_client, backend, make_envelope):
    backend.respond_json(200, make_envelope(data=[{"id": 1}]))
    backend.respond_json(201, make_envelope(data={"id": 2}))
    backend.respond_json(200, make_envelope(data={"id": 2, "name": "Chai"}))
    backend.respond_json(200, make_envelope(data=None, message="Deleted"))

    async with make_client() as client:
        assert await client.get("/products", {"page": 2, "q": None}) == [{"id": 1}]
        assert await client.post("/products", {"name": "Tea"}) == {"id": 2}
        assert await client.put("/products/2", {"name": "Chai"}) == {
            "id": 2,
            "name": "Chai",
        }
        assert await client.delete("/products/2") is None

    methods = [(r.method, str(r.url)) for r in backend.requests]
    assert methods == [
        ("GET", "http://pos.test/api/v1/products?page=2"),
        ("POST", "http://pos.test/api/v1/products"),
        ("PUT", "http://pos.test/api/v1/products/2"),
        ("DELETE", "http://pos.test/api/v1/products/2"),
    ]
    assert backend.json_bodies()[1] == {"name": "Tea"}
    assert all(r.headers["Authorization"] == "Bearer tok-1" for r in backend.requests)
    assert backend.requests[1].headers["Content-Type"] == "application/json"


@pytest.mark.asyncio
async def test_no_authorization_header_without_token(make_client, backend):
    async with make_client(token=None) as client:
        await client.get("/health")
    assert "Authorization" not in backend.requests[0].headers


@pytest.mark.asyncio
async def test_absolute_url_passes_through(make_client, backend):
    async with make_client() as client:
        await client.get("https://cdn.pos.test/catalogue.json")
    assert str(backend.requests[0].url) == "https://cdn.pos.test/catalogue.json"


@pytest.mark.asyncio
async def test_request_returns_full_envelope(make_client, backend, make_envelope):
    backend.respond_json(
        200,
        make_envelope(
            data=[{"id": 1}],
            meta={"pagination": {"page": 1, "pages": 3}, "response_time": 8},
        ),
    )
    async with make_client() as client:
        envelope = await client.request("GET", "/products")

    assert isinstance(envelope, SuccessEnvelope)
    assert envelope.meta.pagination == {"page": 1, "pages": 3}
    assert envelope.meta.response_time_ms == 8.0


@pytest.mark.asyncio
async def test_logging_interceptors_leave_data_unchanged(
    make_client, backend, make_envelope, caplog
):
    backend.respond_json(200, make_envelope(data={"id": 1}, message="OK"))
    logged = []

    def first(raw):
        logged.append(("first", raw["status"]))
        return raw

    async def second(raw):
        logged.append(("second", raw["status"]))
        return raw

    async with make_client() as client:
        client.add_response_interceptor(first)
        client.add_response_interceptor(second)
        with caplog.at_level(logging.INFO, logger="pos_client"):
            assert await client.get("/products/1") == {"id": 1}

    assert logged == [("first", "success"), ("second", "success")]
    assert any("-> GET http://pos.test/api/v1/products/1" in m for m in caplog.messages)


@pytest.mark.asyncio
async def test_request_interceptor_can_add_headers(make_client, backend):
    async with make_client(install_default_interceptors=False) as client:
        remove = client.add_request_interceptor(
            lambda d: d.with_header("X-Store-Id", "7")
        )
        await client.get("/products")
        remove()
        await client.get("/products")

    assert backend.requests[0].headers["X-Store-Id"] == "7"
    assert "X-Store-Id" not in backend.requests[1].headers


@pytest.mark.asyncio
async def test_default_interceptors_can_be_disabled(make_client):
    async with make_client(install_default_interceptors=False) as client:
        assert client.interceptors.request_interceptors == ()
        assert client.interceptors.response_interceptors == ()


@pytest.mark.asyncio
async def test_upload_sends_multipart(make_client, backend, make_envelope):
    backend.respond_json(200, make_envelope(data={"url": "/img/1.png"}))
    async with make_client() as client:
        result = await client.upload(
            "/products/1/image",
            b"\x89PNG-bytes",
            {"alt": "Green tea"},
            filename="tea.png",
            content_type="image/png",
        )

    assert result == {"url": "/img/1.png"}
    request = backend.requests[0]
    assert request.method == "POST"
    assert request.headers["Content-Type"].startswith("multipart/form-data; boundary=")
    assert request.headers["Authorization"] == "Bearer tok-1"
    body = request.content
    assert b'name="alt"' in body
    assert b"Green tea" in body
    assert b'filename="tea.png"' in body
    assert b"\x89PNG-bytes" in body


@pytest.mark.asyncio
async def test_upload_retries_network_failures(make_client, backend, sleeps):
    backend.fail_network(times=1)
    async with make_client() as client:
        await client.upload("/products/1/image", b"data", filename="a.png")
    assert backend.calls == 2
    assert sleeps.delays == [1.0]


@pytest.mark.asyncio
async def test_client_schedules_optimistic_updates(make_client, backend, make_envelope):
    backend.respond_json(200, make_envelope(data={"id": 1, "price": 15}))
    shown = {"price": 10}

    async with make_client(field_debounce_ms=10) as client:
        futures = [
            client.updates.schedule_update(
                "product:1:price",
                {"price": price},
                apply_locally=shown.update,
                commit=lambda payload: client.put("/products/1", payload),
                snapshot=lambda: {"price": shown["price"]},
            )
            for price in (11, 13, 15)
        ]
        assert shown["price"] == 15
        for future in futures:
            assert await future == {"id": 1, "price": 15}

    assert backend.calls == 1
    assert backend.json_bodies() == [{"price": 15}]


@pytest.mark.asyncio
async def test_closed_client_rejects_requests(make_client):
    client = make_client()
    await client.aclose()
    await client.aclose()
    with pytest.raises(ClientClosedError):
        await client.get("/products")
    with pytest.raises(ClientClosedError):
        client.updates.schedule_update(
            "k", 1, apply_locally=print, commit=None, snapshot=lambda: None
        )


@pytest.mark.asyncio
async def test_shared_http_client_is_not_closed(backend):
    http = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    client = APIClient(
        resolve_config(base_url="http://pos.test"),
        tokens=InMemoryTokenProvider("t"),
        http=http,
    )
    await client.aclose()
    assert not http.is_closed
    await http.aclose()


def test_config_resolved_from_environment(monkeypatch):
    monkeypatch.setenv("POS_CLIENT_BASE_URL", "https://shop.example/")
    client = APIClient(http=httpx.AsyncClient())
    assert client.url_for("/sales") == "https://shop.example/api/v1/sales"


@pytest.mark.asyncio
async def test_commit_failing_after_retries_rolls_back(make_client, backend, sleeps):
    backend.fail_network(times=4)
    shown = {"price": 8}

    async with make_client(field_debounce_ms=10) as client:
        futures = [
            client.updates.schedule_update(
                "p1",
                {"price": price},
                apply_locally=shown.update,
                commit=lambda payload: client.put("/products/1", payload),
                snapshot=lambda: {"price": shown["price"]},
            )
            for price in (10, 12, 15)
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)

    assert all(isinstance(r, NetworkFailure) for r in results)
    assert results[0].attempts == 4
    assert sleeps.delays == [1.0, 2.0, 4.0]
    assert shown == {"price": 8}
