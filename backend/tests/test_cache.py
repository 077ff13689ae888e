from anime_proxy.services.cache import ResponseCache, make_cache_key


def test_get_within_ttl(clock):
    cache = ResponseCache(ttl=300, clock=clock)
    cache.put("k", {"data": [1, 2]})
    clock.advance(299)
    entry = cache.get("k")
    assert entry is not None
    assert entry.data == {"data": [1, 2]}
    assert entry.is_binary is False


def test_get_after_ttl_is_absent(clock):
    cache = ResponseCache(ttl=300, clock=clock)
    cache.put("k", b"\x89PNG", "image/png")
    clock.advance(300)
    assert cache.get("k") is None
    # get no borra: la entrada sigue ocupando espacio hasta el sweep
    assert len(cache) == 1


def test_put_replaces_entry(clock):
    cache = ResponseCache(ttl=300, clock=clock)
    cache.put("k", "old")
    clock.advance(200)
    cache.put("k", "new")
    clock.advance(200)
    assert cache.get("k").data == "new"


def test_sweep_removes_only_expired(clock):
    cache = ResponseCache(ttl=10, clock=clock)
    cache.put("old", 1)
    clock.advance(5)
    cache.put("new", 2)
    clock.advance(6)
    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("new").data == 2


def test_sweep_keeps_overwritten_key(clock):
    cache = ResponseCache(ttl=10, clock=clock)
    cache.put("k", 1)
    clock.advance(8)
    cache.put("k", 2)
    clock.advance(3)
    assert cache.sweep() == 0
    assert cache.get("k").data == 2


def test_sweep_if_needed_respects_threshold(clock):
    cache = ResponseCache(ttl=10, max_entries=3, clock=clock)
    for i in range(3):
        cache.put(f"k{i}", i)
    clock.advance(11)
    assert cache.sweep_if_needed() == 0
    cache.put("k3", 3)
    assert cache.sweep_if_needed() == 3
    assert len(cache) == 1


def test_cache_key_ignores_param_order():
    url = "https://api.example.test/api/anime"
    first = make_cache_key("GET", url, [("q", "naruto"), ("limit", 10)])
    second = make_cache_key("get", url, [("limit", "10"), ("q", "naruto")])
    assert first == second
    assert first != make_cache_key("GET", url, [("q", "bleach"), ("limit", 10)])


def test_refetching_same_key_keeps_expiry_index_bounded(clock):
    cache = ResponseCache(ttl=10, max_entries=1000, clock=clock)
    for i in range(5000):
        cache.put("anime", i)
        clock.advance(11)
        cache.sweep_if_needed()
    assert len(cache) == 1
    assert len(cache._expiry_heap) <= 2
    assert cache.get("anime") is None


def test_sweep_after_compaction_still_removes_expired(clock):
    cache = ResponseCache(ttl=10, clock=clock)
    for _ in range(10):
        cache.put("k", "v")
    cache.put("other", "v")
    clock.advance(11)
    assert cache.sweep() == 2
    assert len(cache) == 0
