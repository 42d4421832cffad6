"""Tests for account lookup, permission flags and the TTL cache."""

import json

import pytest

from jarwik.services.cache import TTLCache, make_key
from jarwik.services.permissions import (
    CachedAccountStore,
    JsonAccountStore,
    Permissions,
    normalize_phone,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def accounts_file(tmp_path):
    path = tmp_path / "accounts.json"
    path.write_text(
        json.dumps(
            {
                "accounts": {
                    "user-1": {
                        "phone_numbers": ["+1 (555) 123-4567"],
                        "permissions": {"email": True, "calendar": True},
                    },
                    "user-2": {"phone_numbers": [], "permissions": {}},
                }
            }
        )
    )
    return path


class TestPermissions:
    def test_from_dict_defaults_to_denied(self):
        permissions = Permissions.from_dict({"email": True, "unknown": True})

        assert permissions.email is True
        assert permissions.calendar is False
        assert permissions.any_granted is True

    def test_nothing_granted(self):
        assert Permissions().any_granted is False


def test_normalize_phone():
    assert normalize_phone("+1 (555) 123-4567") == "15551234567"
    assert normalize_phone("n/a") == ""


class TestJsonAccountStore:
    @pytest.mark.asyncio
    async def test_get_permissions(self, accounts_file):
        store = JsonAccountStore(accounts_file)

        permissions = await store.get_permissions("user-1")

        assert permissions == Permissions(email=True, calendar=True)
        assert (await store.get_permissions("user-2")).any_granted is False
        assert await store.get_permissions("nobody") is None

    @pytest.mark.asyncio
    async def test_find_account_by_phone(self, accounts_file):
        store = JsonAccountStore(accounts_file)

        assert await store.find_account_by_phone("+15551234567") == "user-1"
        assert await store.find_account_by_phone("+15550000000") is None
        assert await store.find_account_by_phone("") is None

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        store = JsonAccountStore(tmp_path / "absent.json")

        assert await store.get_permissions("user-1") is None


class CountingStore:
    def __init__(self, permissions: Permissions | None) -> None:
        self.permissions = permissions
        self.lookups = 0

    async def get_permissions(self, account_id: str) -> Permissions | None:
        self.lookups += 1
        return self.permissions

    async def find_account_by_phone(self, phone_number: str) -> str | None:
        return "user-1"


class TestCachedAccountStore:
    def test_keeps_injected_empty_cache(self):
        cache = TTLCache(300, clock=FakeClock())

        store = CachedAccountStore(CountingStore(None), cache)

        assert store.cache is cache

    @pytest.mark.asyncio
    async def test_caches_until_ttl(self):
        clock = FakeClock()
        inner = CountingStore(Permissions(sms=True))
        store = CachedAccountStore(inner, TTLCache(300, clock=clock))

        await store.get_permissions("user-1")
        await store.get_permissions("user-1")
        assert inner.lookups == 1

        clock.now += 301
        await store.get_permissions("user-1")
        assert inner.lookups == 2

    @pytest.mark.asyncio
    async def test_unknown_accounts_are_not_cached(self):
        inner = CountingStore(None)
        store = CachedAccountStore(inner, TTLCache(300))

        await store.get_permissions("nobody")
        await store.get_permissions("nobody")

        assert inner.lookups == 2

    @pytest.mark.asyncio
    async def test_invalidate(self):
        inner = CountingStore(Permissions(email=True))
        store = CachedAccountStore(inner, TTLCache(300))

        await store.get_permissions("user-1")
        store.invalidate("user-1")
        await store.get_permissions("user-1")

        assert inner.lookups == 2

    @pytest.mark.asyncio
    async def test_phone_lookup_passes_through(self):
        store = CachedAccountStore(CountingStore(None), TTLCache(300))

        assert await store.find_account_by_phone("+15551234567") == "user-1"


class TestTTLCache:
    def test_expiry_and_cleanup(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl_seconds=60)

        clock.now += 10

        assert cache.get("a") is None
        assert cache.get("b") == 2
        clock.now += 60
        assert cache.cleanup() == 1
        assert len(cache) == 0

    def test_set_evicts_expired_entries(self):
        clock = FakeClock()
        cache = TTLCache(10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        clock.now += 10
        cache.set("c", 3)

        assert len(cache) == 1
        assert cache.get("c") == 3

    def test_delete_and_clear(self):
        cache = TTLCache()
        cache.set("a", 1)
        cache.set("b", 2)

        cache.delete("a")
        cache.delete("missing")
        assert cache.get("a") is None

        cache.clear()
        assert len(cache) == 0

    def test_make_key(self):
        assert make_key("permissions", "user-1") == "permissions:user-1"
