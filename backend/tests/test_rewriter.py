import copy

from anime_proxy.services.rewriter import process_api_response, rewrite_image_urls, rewrite_url

BASE = "https://proxy.example"
COVER = "https://cover.imglib.info/uploads/anime/16133/cover/abc.jpg"


def test_rewrite_url_known_host():
    assert rewrite_url(COVER, BASE) == f"{BASE}/api/proxy/uploads/anime/16133/cover/abc.jpg"


def test_rewrite_url_http_and_bare_host():
    assert rewrite_url("http://cover.imglib.info/uploads/a.png", BASE) == f"{BASE}/api/proxy/uploads/a.png"
    assert rewrite_url("cover.imglib.info/uploads/a.png", BASE) == f"{BASE}/api/proxy/uploads/a.png"


def test_rewrite_url_is_idempotent():
    once = rewrite_url(COVER, BASE)
    assert rewrite_url(once, BASE) == once
    assert rewrite_image_urls({"cover": {"default": once}}, BASE) == {"cover": {"default": once}}


def test_rewrite_url_leaves_unknown_hosts_and_placeholders():
    assert rewrite_url("https://cdn.other.net/uploads/a.jpg", BASE) == "https://cdn.other.net/uploads/a.jpg"
    assert rewrite_url("/placeholders/cover.png", BASE) == "/placeholders/cover.png"
    assert rewrite_url("https://cover.imglib.info", BASE) == "https://cover.imglib.info"


def test_rewrite_url_non_string_passthrough():
    assert rewrite_url(None, BASE) is None
    assert rewrite_url(42, BASE) == 42


def test_payload_without_images_is_unchanged():
    payload = {
        "data": [{"id": 1, "name": "Naruto", "rating": {"average": "8.5"}, "tags": ["a", "b"]}],
        "meta": {"page": 1, "has_next_page": True, "extra": None},
    }
    assert rewrite_image_urls(payload, BASE) == payload


def test_cover_members_are_rewritten():
    payload = {"data": [{"id": 1, "cover": {"default": COVER, "thumbnail": COVER, "md5": "abc"}}]}
    result = rewrite_image_urls(payload, BASE)
    cover = result["data"][0]["cover"]
    assert cover["default"].startswith(f"{BASE}/api/proxy/")
    assert cover["thumbnail"].startswith(f"{BASE}/api/proxy/")
    assert cover["md5"] == "abc"


def test_nested_image_strings_outside_cover():
    payload = {"team": {"logo": "https://cover.imglib.info/uploads/team/1.png"}, "list": [COVER, "text"]}
    result = rewrite_image_urls(payload, BASE)
    assert result["team"]["logo"] == f"{BASE}/api/proxy/uploads/team/1.png"
    # Los strings sueltos dentro de listas no son campos: se copian tal cual
    assert result["list"] == [COVER, "text"]


def test_input_is_not_mutated_and_order_is_kept():
    payload = {"z": 1, "cover": {"default": COVER}, "a": [{"cover": {"default": COVER}}]}
    original = copy.deepcopy(payload)
    result = rewrite_image_urls(payload, BASE)
    assert payload == original
    assert list(result) == ["z", "cover", "a"]


def test_scalars_and_empty_values():
    assert rewrite_image_urls("plain", BASE) == "plain"
    assert process_api_response(None, BASE) is None
    assert process_api_response({}, BASE) == {}
