from __future__ import annotations

import asyncio
from collections.abc import Callable  # noqa: TC003

import httpx
import pytest

from carechain.adapters.http_resilience import ResilientClient
from carechain.adapters.ipfs import IpfsBlobStore
from carechain.config import IpfsConfig, ResilienceConfig
from carechain.domain.errors import StorageFailure

API_URL = "http://ipfs.test/api/v0"


def _make_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[ResilienceConfig], ResilientClient]:
    async def async_handler(request: httpx.Request) -> httpx.Response:
        return handler(request)

    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(resilience)
        client._client = httpx.AsyncClient(  # noqa: SLF001  # type: ignore[reportPrivateUsage]
            base_url=resilience.base_url or "",
            transport=httpx.MockTransport(async_handler),
        )
        return client

    return factory


def _store(
    handler: Callable[[httpx.Request], httpx.Response], *, pin: bool = True
) -> IpfsBlobStore:
    config = IpfsConfig(
        api_url=API_URL, resilience=ResilienceConfig(name="ipfs", base_url=API_URL), pin=pin
    )
    return IpfsBlobStore(config, client_factory=_make_client_factory(handler))


def _add(store: IpfsBlobStore, data: bytes) -> str:
    async def scenario() -> str:
        async with store:
            return await store.store(data)

    return asyncio.run(scenario())


def test_store_posts_multipart_and_returns_hash() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"Name": "document", "Hash": "QmReport", "Size": "23"})

    cid = _add(_store(handler), b"medical report contents")

    assert cid == "QmReport"
    (request,) = requests
    assert request.method == "POST"
    assert request.url.path == "/api/v0/add"
    assert request.url.params["pin"] == "true"
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b"medical report contents" in request.read()


def test_unpinned_adds_say_so() -> None:
    pins: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        pins.append(request.url.params["pin"])
        return httpx.Response(200, json={"Hash": "QmX"})

    _add(_store(handler, pin=False), b"x")

    assert pins == ["false"]


@pytest.mark.parametrize(
    "respond",
    [
        lambda: httpx.Response(500, text="daemon error"),
        lambda: httpx.Response(200, text="not json"),
        lambda: httpx.Response(200, json={"Name": "document"}),
        lambda: httpx.Response(200, json={"Hash": ""}),
    ],
)
def test_failures_become_storage_failure(respond: Callable[[], httpx.Response]) -> None:
    def handler(_request: httpx.Request) -> httpx.Response:
        return respond()

    with pytest.raises(StorageFailure):
        _add(_store(handler), b"payload")


def test_unreachable_node_is_storage_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(StorageFailure, match="timed out"):
        _add(_store(handler), b"payload")
