"""
Unit Tests for CacheService

Tests string/hash modes, TTL precedence, batches, partial reads,
enumeration, common key operations and geo queries against the
in-memory Redis stub.
"""

from unittest.mock import AsyncMock, patch

import pytest

from entitycache.core.exceptions import (
    CacheBatchError,
    CacheDisposedError,
    CodecError,
    FieldDecodeError,
    MissingArgumentError,
    ValidationError,
)
from entitycache.infrastructure.cache import connection as connection_module
from entitycache.infrastructure.cache.cache_service import (
    CacheService,
    GeoEntry,
    GeoRadiusResult,
    create_cache_service,
)
from entitycache.infrastructure.cache.connection import ConnectionManager
from tests.test_fixtures.entities import Employee, Person

MAHYAR = Person(Id=1, Name="Mahyar", Family="Hoorbakht")


@pytest.mark.unit
class TestStringMode:
    """Test set_string / get_string."""

    @pytest.mark.asyncio
    async def test_round_trip(self, person_cache, in_memory_redis):
        assert await person_cache.set_string("1", MAHYAR) is True

        assert "Person:RedisPerson:1" in in_memory_redis.data
        assert await person_cache.get_string("1") == MAHYAR

    @pytest.mark.asyncio
    async def test_missing_key(self, person_cache):
        assert await person_cache.get_string("404") is None

    @pytest.mark.asyncio
    async def test_hash_key_is_not_a_string(self, person_cache):
        await person_cache.set_hash("1", MAHYAR)
        assert await person_cache.get_string("1") is None

    @pytest.mark.asyncio
    async def test_other_kind_is_a_miss(self, connection, person_cache):
        employees = CacheService(connection, Employee, "RedisPerson")
        await employees.set_string("1", Employee(Id=1))

        assert await person_cache.get_string("1") is None

    @pytest.mark.asyncio
    async def test_none_deletes(self, person_cache):
        await person_cache.set_string("1", MAHYAR)

        assert await person_cache.set_string("1", None) is True
        assert await person_cache.exists("1") is False

    @pytest.mark.asyncio
    async def test_ttl_from_explicit_duration(self, person_cache, in_memory_redis):
        await person_cache.set_string("1", MAHYAR, duration=10)
        assert 599 <= await in_memory_redis.ttl("Person:RedisPerson:1") <= 600

    @pytest.mark.asyncio
    async def test_never_expire_by_default(self, person_cache, in_memory_redis):
        await person_cache.set_string("1", MAHYAR)
        assert await in_memory_redis.ttl("Person:RedisPerson:1") == -1

    @pytest.mark.asyncio
    async def test_set_string_range(self, person_cache):
        await person_cache.set_string_range({"1": MAHYAR, "2": Person(Id=2), "3": None})

        assert await person_cache.get_string("1") == MAHYAR
        assert await person_cache.get_string("2") == Person(Id=2)
        assert await person_cache.exists("3") is False

    @pytest.mark.asyncio
    async def test_non_utf8_value_raises_codec_error(self, person_cache, in_memory_redis):
        await person_cache.set_string("1", MAHYAR)
        undecodable = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        with patch.object(in_memory_redis, "get", AsyncMock(side_effect=undecodable)):
            with pytest.raises(CodecError):
                await person_cache.get_string("1")
            with pytest.raises(CodecError):
                await person_cache.get_all_string()


@pytest.mark.unit
class TestHashMode:
    """Test set_hash / get_hash and TTL precedence."""

    @pytest.mark.asyncio
    async def test_round_trip_then_delete(self, person_cache):
        await person_cache.set_hash("5", MAHYAR)
        assert await person_cache.get_hash("5") == MAHYAR

        assert await person_cache.delete("5") is True
        assert await person_cache.get_hash("5") is None

    @pytest.mark.asyncio
    async def test_stored_fields(self, person_cache, in_memory_redis):
        await person_cache.set_hash("5", Person(Id=5, Name="Sara"))

        assert in_memory_redis.data["Person:RedisPerson:5"] == {
            "Id": "5",
            "Name": "Sara",
            "_Type": "Person",
        }

    @pytest.mark.asyncio
    async def test_string_key_is_not_a_hash(self, person_cache):
        await person_cache.set_string("1", MAHYAR)
        assert await person_cache.get_hash("1") is None

    @pytest.mark.asyncio
    async def test_untagged_hash_is_a_miss(self, person_cache, in_memory_redis):
        in_memory_redis._hset("Person:RedisPerson:7", mapping={"Id": "7"})
        assert await person_cache.get_hash("7") is None

    @pytest.mark.asyncio
    async def test_malformed_field_raises(self, person_cache, in_memory_redis):
        in_memory_redis._hset("Person:RedisPerson:7", mapping={"Id": "seven", "_Type": "Person"})

        with pytest.raises(FieldDecodeError):
            await person_cache.get_hash("7")

    @pytest.mark.asyncio
    async def test_none_value_rejected(self, person_cache):
        with pytest.raises(MissingArgumentError):
            await person_cache.set_hash("1", None)

    @pytest.mark.asyncio
    async def test_configured_never_expire(self, person_cache, in_memory_redis):
        await person_cache.set_hash("1", MAHYAR)
        assert await in_memory_redis.ttl("Person:RedisPerson:1") == -1

    @pytest.mark.asyncio
    async def test_configured_duration(self, connection_factory, in_memory_redis):
        cache = CacheService(connection_factory(CACHE_DURATION_MINUTES=30), Person, "RedisPerson")
        await cache.set_hash("1", MAHYAR)

        assert 1799 <= await in_memory_redis.ttl("Person:RedisPerson:1") <= 1800

    @pytest.mark.asyncio
    async def test_explicit_duration_overrides_configured(self, connection_factory, in_memory_redis):
        cache = CacheService(connection_factory(CACHE_DURATION_MINUTES=30), Person, "RedisPerson")
        await cache.set_hash("1", MAHYAR, duration=2)

        assert 119 <= await in_memory_redis.ttl("Person:RedisPerson:1") <= 120

    @pytest.mark.asyncio
    async def test_invalid_duration_rejected(self, person_cache, in_memory_redis):
        with pytest.raises(ValidationError):
            await person_cache.set_hash("1", MAHYAR, duration=0)

        assert in_memory_redis.data == {}

    @pytest.mark.asyncio
    async def test_rewrite_with_configured_never_expire_clears_ttl(self, person_cache, in_memory_redis):
        await person_cache.set_hash("1", MAHYAR, duration=10)
        assert await in_memory_redis.ttl("Person:RedisPerson:1") > 0

        await person_cache.set_hash("1", MAHYAR)

        assert await in_memory_redis.ttl("Person:RedisPerson:1") == -1

    @pytest.mark.asyncio
    async def test_rewrite_with_explicit_never_expire_clears_ttl(self, connection_factory, in_memory_redis):
        cache = CacheService(connection_factory(CACHE_DURATION_MINUTES=30), Person, "RedisPerson")
        await cache.set_hash("1", MAHYAR, duration=10)

        await cache.set_hash("1", MAHYAR, duration=-1)

        assert await in_memory_redis.ttl("Person:RedisPerson:1") == -1

    @pytest.mark.asyncio
    async def test_rewrite_merges_fields(self, person_cache):
        await person_cache.set_hash("1", Person(Id=1, Name="Old"))
        await person_cache.set_hash("1", Person(Id=1, Name=None, Family="New"))

        assert await person_cache.get_hash("1") == Person(Id=1, Name="Old", Family="New")

    @pytest.mark.asyncio
    async def test_delete_before_rewrite_gives_snapshot(self, person_cache):
        await person_cache.set_hash("1", Person(Id=1, Name="Old"))
        await person_cache.delete("1")
        await person_cache.set_hash("1", Person(Id=1, Family="New"))

        assert await person_cache.get_hash("1") == Person(Id=1, Family="New")


@pytest.mark.unit
class TestHashBatch:
    """Test set_hash_range."""

    @pytest.mark.asyncio
    async def test_mapping_inputs(self, person_cache, in_memory_redis):
        await person_cache.set_hash_range({"1": MAHYAR, "2": Person(Id=2)})

        assert await person_cache.get_hash("1") == MAHYAR
        assert await person_cache.get_hash("2") == Person(Id=2)
        assert in_memory_redis.pipelines_executed == 1
        assert in_memory_redis.last_pipeline.transaction is False

    @pytest.mark.asyncio
    async def test_key_selector(self, person_cache):
        people = [Person(Id=10, Name="A"), Person(Id=11, Name="B")]
        await person_cache.set_hash_range(people, key_selector=lambda p: p.Id)

        assert await person_cache.get_hash("10") == people[0]
        assert await person_cache.get_hash(11) == people[1]

    @pytest.mark.asyncio
    async def test_missing_selector_fails_before_network(self, person_cache, in_memory_redis):
        with pytest.raises(MissingArgumentError) as exc_info:
            await person_cache.set_hash_range([MAHYAR])

        assert exc_info.value.argument == "key_selector"
        assert in_memory_redis.pipelines_executed == 0

    @pytest.mark.asyncio
    async def test_empty_inputs(self, person_cache, in_memory_redis):
        await person_cache.set_hash_range({})
        assert in_memory_redis.pipelines_executed == 0

    @pytest.mark.asyncio
    async def test_expire_queued_for_configured_duration(self, connection_factory, in_memory_redis):
        cache = CacheService(connection_factory(CACHE_DURATION_MINUTES=5), Person, "RedisPerson")
        await cache.set_hash_range({"1": MAHYAR})

        assert 299 <= await in_memory_redis.ttl("Person:RedisPerson:1") <= 300

    @pytest.mark.asyncio
    async def test_never_expire_batch_clears_earlier_ttl(self, person_cache, in_memory_redis):
        await person_cache.set_hash("1", MAHYAR, duration=10)

        await person_cache.set_hash_range({"1": MAHYAR, "2": Person(Id=2)})

        assert await in_memory_redis.ttl("Person:RedisPerson:1") == -1
        assert await in_memory_redis.ttl("Person:RedisPerson:2") == -1

    @pytest.mark.asyncio
    async def test_failures_reported_without_rollback(self, connection_factory, in_memory_redis):
        cache = CacheService(connection_factory(CACHE_DURATION_MINUTES=5), Person, "RedisPerson")
        in_memory_redis.fail_commands.add("expire")

        with pytest.raises(CacheBatchError) as exc_info:
            await cache.set_hash_range({"1": MAHYAR, "2": Person(Id=2)})

        assert exc_info.value.details["failed"] == 2
        assert await cache.get_hash("1") == MAHYAR
        assert await cache.get_hash("2") == Person(Id=2)


@pytest.mark.unit
class TestPartialHash:
    """Test hash_exists / get_partial_hash."""

    @pytest.mark.asyncio
    async def test_hash_exists(self, person_cache):
        await person_cache.set_hash("1", Person(Id=1, Name="Mahyar"))

        assert await person_cache.hash_exists("1", "Name") is True
        assert await person_cache.hash_exists("1", "Family") is False

    @pytest.mark.asyncio
    async def test_missing_fields_skipped_in_order(self, person_cache):
        await person_cache.set_hash("1", Person(Id=1, Family="Hoorbakht"))

        pairs = await person_cache.get_partial_hash("1", ["Family", "Name", "Id"])

        assert pairs == [("Family", "Hoorbakht"), ("Id", "1")]

    @pytest.mark.asyncio
    async def test_missing_key(self, person_cache):
        assert await person_cache.get_partial_hash("404", ["Id"]) == []

    @pytest.mark.asyncio
    async def test_field_removed_between_checks(self, person_cache):
        await person_cache.set_hash("1", MAHYAR)

        with patch.object(person_cache._executor, "hget", return_value=None):
            assert await person_cache.get_partial_hash("1", ["Name"]) == []


@pytest.mark.unit
class TestEnumeration:
    """Test cluster-wide listing, counting and pagination."""

    @pytest.fixture
    async def populated(self, person_cache, connection, in_memory_redis):
        for i in range(5):
            await person_cache.set_hash(str(i), Person(Id=i))
        await person_cache.set_string("s1", Person(Id=100))
        await person_cache.set_string("s2", Person(Id=101))
        await CacheService(connection, Employee, "RedisPerson").set_hash("e1", Employee(Id=9))
        await CacheService(connection, Person, "Archive").set_hash("1", Person(Id=1))
        return person_cache

    @pytest.mark.asyncio
    async def test_counts(self, populated):
        assert await populated.count_all_hash() == 5
        assert await populated.count_all_string() == 2

    @pytest.mark.asyncio
    async def test_pages_are_disjoint_windows(self, populated):
        first = await populated.get_all_hash(page=0, page_size=2)
        second = await populated.get_all_hash(page=1, page_size=2)
        third = await populated.get_all_hash(page=2, page_size=2)
        beyond = await populated.get_all_hash(page=3, page_size=2)

        ids = [p.Id for p in first + second + third]
        assert len(first) == len(second) == 2
        assert len(third) == 1
        assert beyond == []
        assert sorted(ids) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_default_page(self, populated):
        assert len(await populated.get_all_hash()) == 5

    @pytest.mark.asyncio
    async def test_get_all_string(self, populated):
        people = await populated.get_all_string()
        assert sorted(p.Id for p in people) == [100, 101]

    @pytest.mark.asyncio
    async def test_keys(self, populated):
        assert sorted(await populated.get_all_keys_string()) == [
            "Person:RedisPerson:s1",
            "Person:RedisPerson:s2",
        ]
        assert len(await populated.get_all_keys_hash()) == 5
        assert await populated.get_all_keys_hash(prefix="3") == ["Person:RedisPerson:3"]

    @pytest.mark.asyncio
    async def test_glob_characters_in_contract_match_literally(self, connection):
        starred = CacheService(connection, Person, "Red*")
        await starred.set_hash("1", Person(Id=1))
        await CacheService(connection, Person, "RedisPerson").set_hash("2", Person(Id=2))

        assert await starred.get_all_keys_hash() == ["Person:Red*:1"]
        assert await starred.count_all_hash() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("page, page_size", [(-1, 20), (0, 0)])
    async def test_invalid_paging(self, person_cache, page, page_size):
        with pytest.raises(ValidationError):
            await person_cache.get_all_hash(page=page, page_size=page_size)

    @pytest.mark.asyncio
    async def test_near_expire(self, person_cache):
        await person_cache.set_hash("soon", Person(Id=1), duration=60)
        await person_cache.set_hash("later", Person(Id=2), duration=10 * 24 * 60)
        await person_cache.set_hash("never", Person(Id=3))

        assert await person_cache.get_near_expire_hash(days=1) == ["Person:RedisPerson:soon"]

    @pytest.mark.asyncio
    async def test_near_expire_rejects_negative_days(self, person_cache):
        with pytest.raises(ValidationError):
            await person_cache.get_near_expire_hash(days=-1)


@pytest.mark.unit
class TestCommonOperations:
    """Test exists, expiration, deletes and close."""

    @pytest.mark.asyncio
    async def test_exists_is_namespaced(self, person_cache, in_memory_redis):
        in_memory_redis._set("1", "raw")
        assert await person_cache.exists("1") is False

        await person_cache.set_hash("1", MAHYAR)
        assert await person_cache.exists("1") is True

    @pytest.mark.asyncio
    async def test_set_expiration(self, person_cache, in_memory_redis):
        await person_cache.set_hash("1", MAHYAR)

        assert await person_cache.set_expiration("1") is True
        assert 4 <= await in_memory_redis.ttl("Person:RedisPerson:1") <= 5
        assert await person_cache.set_expiration("404") is False

    @pytest.mark.asyncio
    async def test_delete_missing(self, person_cache):
        assert await person_cache.delete("404") is False

    @pytest.mark.asyncio
    async def test_delete_raw(self, person_cache, in_memory_redis):
        in_memory_redis._set("legacy-key", "x")

        assert await person_cache.delete_raw("legacy-key") is True
        assert "legacy-key" not in in_memory_redis.data

    @pytest.mark.asyncio
    async def test_close_disposes_shared_connection(self, connection, person_cache):
        other = CacheService(connection, Employee, "Staff")
        await person_cache.set_hash("1", MAHYAR)

        await person_cache.close()

        with pytest.raises(CacheDisposedError):
            await other.get_hash("1")

    def test_complete_key(self, person_cache):
        assert person_cache.complete_key("5") == "Person:RedisPerson:5"
        assert person_cache.kind == "Person"


@pytest.mark.unit
class TestGeo:
    """Test geo indexing and radius queries."""

    @pytest.fixture
    async def stations(self, person_cache):
        await person_cache.set_geo(
            "stations",
            [
                GeoEntry(longitude=51.3890, latitude=35.6892, member="tehran"),
                GeoEntry(longitude=51.4231, latitude=35.7219, member="tajrish"),
                GeoEntry(longitude=51.6746, latitude=32.6539, member="isfahan"),
            ],
        )
        return person_cache

    @pytest.mark.asyncio
    async def test_set_geo_counts_new_members(self, person_cache):
        entries = [GeoEntry(longitude=13.361389, latitude=38.115556, member="Palermo")]

        assert await person_cache.set_geo("sicily", entries) == 1
        assert await person_cache.set_geo("sicily", entries) == 0

    @pytest.mark.asyncio
    async def test_radius_by_member(self, stations):
        results = await stations.get_radius_by_member("stations", "tehran", radius_km=10)

        assert [r.member for r in results] == ["tehran", "tajrish"]
        assert results[0].distance_km == 0
        assert 4 < results[1].distance_km < 6

    @pytest.mark.asyncio
    async def test_radius_by_coordinate_ascending(self, stations):
        results = await stations.get_radius_by_coordinate(
            "stations", latitude=35.7219, longitude=51.4231, radius_km=500
        )

        assert [r.member for r in results] == ["tajrish", "tehran", "isfahan"]
        distances = [r.distance_km for r in results]
        assert distances == sorted(distances)
        assert all(isinstance(r, GeoRadiusResult) for r in results)

    @pytest.mark.asyncio
    async def test_geo_key_is_namespaced(self, stations, in_memory_redis):
        assert "Person:RedisPerson:stations" in in_memory_redis.data


@pytest.mark.unit
class TestFactory:
    """Test create_cache_service."""

    @pytest.mark.asyncio
    async def test_uses_global_connection(self, in_memory_redis):
        with patch.object(ConnectionManager, "_create_client", return_value=in_memory_redis):
            cache = create_cache_service(Person, "RedisPerson")
            await cache.set_hash("1", MAHYAR)

            assert await cache.get_hash("1") == MAHYAR
            assert cache._connection is connection_module.get_connection_manager()

            await connection_module.close_connection()
