"""Shared fixtures: an in-memory transport and a client wired to it."""

import inspect
import json

import pytest

from corelex import ClientConfig, CoreLexClient, Identity
from corelex.transport import HTTPRequest, HTTPResponse, Transport

BASE_URL = "http://api.test"


def json_response(status: int, payload) -> HTTPResponse:
    return HTTPResponse(
        status_code=status,
        body=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )


class FakeTransport(Transport):
    """Records requests and answers them with *handler* (sync or async)."""

    def __init__(self, handler):
        self.handler = handler
        self.requests: list[HTTPRequest] = []
        self.closed = False

    async def send(self, request: HTTPRequest) -> HTTPResponse:
        self.requests.append(request)
        result = self.handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def aclose(self) -> None:
        self.closed = True

    def paths(self) -> list[str]:
        return [r.url[len(BASE_URL):] for r in self.requests]

    def count(self, path: str) -> int:
        return self.paths().count(path)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def request_json(request: HTTPRequest) -> dict:
    return json.loads(request.body) if request.body else {}


@pytest.fixture
def identity():
    return Identity.generate()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_client(identity, clock):
    def _make(handler, **config):
        transport = FakeTransport(handler)
        client = CoreLexClient(
            ClientConfig(base_url=BASE_URL, private_key="unused", **config),
            identity=identity,
            transport=transport,
            clock=clock,
        )
        return client, transport

    return _make
