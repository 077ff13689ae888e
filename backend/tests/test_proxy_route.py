import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from anime_proxy.errors import InvalidPath
from anime_proxy.limiter import SlidingWindowLimiter
from anime_proxy.main import app
from anime_proxy.services.upstream import validate_path

client = TestClient(app)

COVER = "https://cover.imglib.info/uploads/anime/16133/cover/abc.jpg"
IMAGE_PATH = "/api/proxy/uploads/anime/16133/cover/abc.jpg"


def test_api_request_rewrites_images(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(
        200, json={"data": {"id": 16133, "cover": {"default": COVER}}}
    )

    response = client.get("/api/proxy/anime/16133--jujutsu-kaisen?fields=cover")

    assert response.status_code == 200
    assert response.headers["x-cache"] == "MISS"
    assert response.json()["data"]["cover"]["default"] == (
        "http://testserver/api/proxy/uploads/anime/16133/cover/abc.jpg"
    )
    sent = fake_upstream.requests[0]
    assert str(sent.url) == "https://api.example.test/api/anime/16133--jujutsu-kaisen?fields=cover"
    assert sent.headers["user-agent"] == "AnimeSearchProxy/1.0 (Personal Use)"


def test_second_request_is_served_from_cache(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(200, json={"cover": {"default": COVER}})

    client.get("/api/proxy/anime?q=naruto&limit=10")
    response = client.get(
        "/api/proxy/anime?limit=10&q=naruto",
        headers={"X-Forwarded-Proto": "https"},
    )

    assert len(fake_upstream.requests) == 1
    assert response.headers["x-cache"] == "HIT"
    # La reescritura se aplica en cada lectura con la URL base actual
    assert response.json()["cover"]["default"].startswith("https://testserver/api/proxy/")


def test_upstream_client_error_is_relayed(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(422, json={"message": "Invalid filter"})

    response = client.get("/api/proxy/anime?type=abc")
    assert response.status_code == 422
    assert response.json() == {"message": "Invalid filter"}

    # Los errores no se guardan en cache
    client.get("/api/proxy/anime?type=abc")
    assert len(fake_upstream.requests) == 2


def test_upstream_404_html(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(404, text="<h1>Not Found</h1>")

    response = client.get("/api/proxy/anime/unknown")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_upstream_server_error_is_bad_gateway(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(503, text="maintenance")

    response = client.get("/api/proxy/anime")
    assert response.status_code == 502
    assert response.json()["error"] == "bad_gateway"


def test_connection_failure_is_bad_gateway(upstream, fake_upstream):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    fake_upstream.handler = refuse
    response = client.get("/api/proxy/anime")
    assert response.status_code == 502
    assert response.json()["error"] == "bad_gateway"


def test_timeout_returns_408(upstream, fake_upstream):
    def hang(request):
        raise httpx.ReadTimeout("timed out", request=request)

    fake_upstream.handler = hang
    response = client.get("/api/proxy/anime")
    assert response.status_code == 408
    assert response.json()["error"] == "timeout"


def test_invalid_json_is_internal_error(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(200, text="not json")

    response = client.get("/api/proxy/anime")
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "internal_error"
    assert body["details"]


def test_image_is_proxied_and_cached(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(
        200, content=b"\x89PNG fake", headers={"content-type": "image/png"}
    )

    response = client.get("/api/proxy/uploads/anime/1/cover/a.png?width=200")
    assert response.status_code == 200
    assert response.content == b"\x89PNG fake"
    assert response.headers["content-type"] == "image/png"
    assert "max-age" in response.headers["cache-control"]

    sent = fake_upstream.requests[0]
    # Las imagenes van al host de portadas, sin query y con cabeceras de navegador
    assert str(sent.url) == "https://cover.imglib.info/uploads/anime/1/cover/a.png"
    assert sent.headers["user-agent"].startswith("Mozilla/5.0")
    assert sent.headers["sec-fetch-dest"] == "image"

    cached = client.get("/api/proxy/uploads/anime/1/cover/a.png")
    assert cached.headers["x-cache"] == "HIT"
    assert cached.content == b"\x89PNG fake"
    assert len(fake_upstream.requests) == 1


def test_blocked_image_returns_placeholder(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(
        403,
        text="<html><body>403 Forbidden</body></html>",
        headers={"content-type": "text/html; charset=utf-8"},
    )

    response = client.get(IMAGE_PATH)
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/svg+xml"
    assert response.headers["x-placeholder"] == "true"
    assert response.content.startswith(b"<svg")

    # El placeholder no se guarda: se vuelve a intentar la imagen real
    client.get(IMAGE_PATH)
    assert len(fake_upstream.requests) == 2


def test_missing_image_is_not_found(upstream, fake_upstream):
    fake_upstream.handler = lambda request: httpx.Response(
        404, content=b"", headers={"content-type": "image/jpeg"}
    )

    response = client.get(IMAGE_PATH)
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.parametrize("path", ["/api/proxy/anime//evil", "/api/proxy/anime/foo..bar"])
def test_invalid_paths_never_reach_upstream(upstream, fake_upstream, path):
    response = client.get(path)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_path"
    assert fake_upstream.requests == []


def test_parent_segment_rejected_before_fetch(upstream, fake_upstream):
    with pytest.raises(InvalidPath):
        asyncio.run(upstream.proxy("anime/../admin", client_id="c", proxy_base="http://p"))
    assert fake_upstream.requests == []


def test_validate_path():
    assert validate_path("episodes/41924") == "episodes/41924"
    with pytest.raises(InvalidPath):
        validate_path("uploads/../../etc/passwd")


def test_rate_limit(upstream, fake_upstream):
    upstream.rate_limiter = SlidingWindowLimiter(limit=2, window=60)

    assert client.get("/api/proxy/anime").status_code == 200
    assert client.get("/api/proxy/anime").status_code == 200
    response = client.get("/api/proxy/anime")

    assert response.status_code == 429
    assert response.json()["error"] == "rate_limited"
    assert response.headers["retry-after"] == "60"
    # La segunda llamada salio del cache: solo una llego al upstream
    assert len(fake_upstream.requests) == 1


def test_rate_limit_uses_forwarded_for(upstream, fake_upstream):
    upstream.rate_limiter = SlidingWindowLimiter(limit=1, window=60)

    assert client.get("/api/proxy/anime", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 200
    assert client.get("/api/proxy/anime", headers={"X-Forwarded-For": "2.2.2.2"}).status_code == 200
    assert client.get("/api/proxy/anime", headers={"X-Forwarded-For": "1.1.1.1"}).status_code == 429


def test_options_short_circuits(upstream, fake_upstream):
    response = client.options("/api/proxy/anime")
    assert response.status_code == 200
    assert response.content == b""
    assert fake_upstream.requests == []


def test_other_methods_are_rejected(upstream, fake_upstream):
    response = client.post("/api/proxy/anime", json={})
    assert response.status_code == 405
    assert response.json()["error"] == "method_not_allowed"
    assert fake_upstream.requests == []


def test_errors_carry_cors_headers(upstream, fake_upstream):
    response = client.get("/api/proxy/anime//x", headers={"Origin": "https://frontend.example"})
    assert response.status_code == 400
    assert response.headers["access-control-allow-origin"] == "*"


def test_cors_preflight(upstream):
    response = client.options(
        "/api/proxy/anime",
        headers={
            "Origin": "https://frontend.example",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["access-control-max-age"] == "86400"
