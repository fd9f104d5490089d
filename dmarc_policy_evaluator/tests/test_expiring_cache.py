from dmarc_policy_evaluator.expiring_cache import ExpiringCache


def test_entries_expire_after_ttl():
    current_time = 0

    cache = ExpiringCache(1, lambda: current_time)
    assert "a" not in cache
    cache["a"] = ["v=DMARC1; p=none"]
    assert "a" in cache
    assert cache.get("a") == ["v=DMARC1; p=none"]
    current_time += 1
    assert "a" not in cache
    assert cache.get("a") is None
    assert len(cache) == 0


def test_overwriting_an_entry_renews_its_ttl():
    current_time = 0

    cache = ExpiringCache(3, lambda: current_time)
    cache["a"] = 1
    current_time += 2
    cache["a"] = 2
    current_time += 2
    assert cache.get("a") == 2
    current_time += 1
    assert "a" not in cache


def test_get_returns_default_for_missing_entries():
    cache = ExpiringCache(3, lambda: 0)
    cache["present"] = []
    assert cache.get("present", ["default"]) == []
    assert cache.get("missing", ["default"]) == ["default"]
