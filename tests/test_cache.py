import pytest
from datetime import datetime
from typing import List
from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from healthcare_api.core.cache import CacheService, MemoryCacheBackend, RedisCacheBackend
from healthcare_api.core.security import UserRole
from healthcare_api.schemas.user import UserResponse


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def backend(clock):
    return MemoryCacheBackend(max_entries=3, clock=clock)

def make_user(user_id: str = "u1") -> UserResponse:
    now = datetime(2024, 1, 1, 9, 30)
    return UserResponse(
        id=user_id,
        email=f"{user_id}@example.com",
        first_name="Jane",
        last_name="Smith",
        role=UserRole.PATIENT,
        created_at=now,
        updated_at=now,
    )


class TestMemoryCacheBackend:

    def test_entries_expire(self, backend, clock):
        backend.set("key", "value", 60)
        assert backend.get("key") == "value"

        clock.now += 61
        assert backend.get("key") is None
        assert len(backend) == 0

    def test_least_recently_used_entry_is_evicted(self, backend):
        backend.set("a", "1", 60)
        backend.set("b", "2", 60)
        backend.set("c", "3", 60)
        backend.get("a")
        backend.set("d", "4", 60)

        assert len(backend) == 3
        assert backend.get("b") is None
        assert backend.get("a") == "1"

    def test_delete_prefix(self, backend):
        backend.set("appointments:today:2024-01-01", "x", 60)
        backend.set("appointments:all", "y", 60)
        backend.set("users:all", "z", 60)

        assert backend.delete_prefix("appointments:") == 2
        assert backend.get("users:all") == "z"

    def test_incr_keeps_its_window(self, backend, clock):
        assert backend.incr("counter", 60) == 1
        clock.now += 30
        assert backend.incr("counter", 60) == 2
        clock.now += 31
        # The first window has closed
        assert backend.incr("counter", 60) == 1


class TestCacheService:

    def test_typed_round_trip_returns_a_copy(self, backend):
        cache = CacheService(backend)
        user = make_user()
        cache.set("users:id:u1", user, UserResponse, 60)

        cached = cache.get("users:id:u1", UserResponse)
        assert cached == user
        assert cached is not user

    def test_get_or_load_only_loads_on_miss(self, backend):
        cache = CacheService(backend)
        loader = MagicMock(return_value=[make_user("u1"), make_user("u2")])

        first = cache.get_or_load("users:all", List[UserResponse], loader, 60)
        second = cache.get_or_load("users:all", List[UserResponse], loader, 60)

        assert loader.call_count == 1
        assert [u.id for u in second] == [u.id for u in first] == ["u1", "u2"]

    def test_empty_list_is_a_hit(self, backend):
        cache = CacheService(backend)
        loader = MagicMock(return_value=[])

        cache.get_or_load("users:doctors", List[UserResponse], loader, 60)
        cache.get_or_load("users:doctors", List[UserResponse], loader, 60)
        assert loader.call_count == 1

    def test_remove_and_remove_by_prefix(self, backend):
        cache = CacheService(backend)
        cache.set("reminders:id:r1", make_user(), UserResponse, 60)
        cache.set("reminders:user:u1", make_user(), UserResponse, 60)
        cache.set("users:id:u1", make_user(), UserResponse, 60)

        cache.remove("users:id:u1")
        cache.remove_by_prefix("reminders:")

        assert len(backend) == 0


class TestRedisCacheBackend:

    def test_keys_are_namespaced(self):
        client = MagicMock()
        client.get.return_value = "cached"
        backend = RedisCacheBackend(client, namespace="test:")

        backend.set("users:all", "[]", 300)
        assert backend.get("users:all") == "cached"

        client.setex.assert_called_once_with("test:users:all", 300, "[]")
        client.get.assert_called_once_with("test:users:all")

    def test_read_errors_are_misses(self):
        client = MagicMock()
        client.get.side_effect = RedisConnectionError("down")
        client.setex.side_effect = RedisConnectionError("down")
        backend = RedisCacheBackend(client, namespace="test:")

        assert backend.get("users:all") is None
        backend.set("users:all", "[]", 300)

    def test_delete_errors_propagate(self):
        client = MagicMock()
        client.delete.side_effect = RedisConnectionError("down")
        backend = RedisCacheBackend(client, namespace="test:")

        with pytest.raises(RedisConnectionError):
            backend.delete("users:all")

    def test_delete_prefix_scans_namespace(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(["test:messages:user:1", "test:messages:user:2"])
        backend = RedisCacheBackend(client, namespace="test:")

        assert backend.delete_prefix("messages:") == 2
        client.scan_iter.assert_called_once_with(match="test:messages:*")
        client.delete.assert_called_once_with("test:messages:user:1", "test:messages:user:2")

    def test_incr_creates_counter_with_ttl_in_one_transaction(self):
        client = MagicMock()
        pipe = client.pipeline.return_value
        pipe.execute.side_effect = [[True, 1], [None, 2]]
        backend = RedisCacheBackend(client, namespace="test:")

        assert backend.incr("rate_limit:1.2.3.4", 60) == 1
        assert backend.incr("rate_limit:1.2.3.4", 60) == 2

        client.pipeline.assert_called_with(transaction=True)
        pipe.set.assert_called_with("test:rate_limit:1.2.3.4", 0, ex=60, nx=True)
        pipe.incr.assert_called_with("test:rate_limit:1.2.3.4")
        client.expire.assert_not_called()
