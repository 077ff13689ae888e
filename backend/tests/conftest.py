from unittest.mock import patch

import httpx
import pytest

from anime_proxy.limiter import SlidingWindowLimiter
from anime_proxy.services.cache import ResponseCache
from anime_proxy.services.upstream import UpstreamClient


class FakeClock:
    """Reloj manual: el tiempo solo avanza cuando el test lo pide."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUpstream:
    """Transporte httpx falso que registra cada peticion recibida."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handler = lambda request: httpx.Response(200, json={"data": []})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def frozen_time():
    """
    Congela time.time (el reloj que usa el almacenamiento de `limits`) y
    devuelve un FakeClock para avanzarlo a mano.
    """
    fake = FakeClock()
    with patch("time.time", fake):
        yield fake


@pytest.fixture
def fake_upstream():
    return FakeUpstream()


@pytest.fixture
def upstream(fake_upstream):
    """
    UpstreamClient con cache y limiter propios y un upstream falso,
    instalado en todas las rutas en lugar del singleton global.
    """
    client = UpstreamClient(
        cache=ResponseCache(),
        rate_limiter=SlidingWindowLimiter(),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake_upstream)),
        api_base="https://api.example.test/api",
        image_base="https://cover.imglib.info",
    )
    with patch("anime_proxy.routes.proxy.upstream_client", client), \
            patch("anime_proxy.routes.catalog.upstream_client", client), \
            patch("anime_proxy.routes.kodik.upstream_client", client):
        yield client
