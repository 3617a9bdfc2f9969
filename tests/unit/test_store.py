from __future__ import annotations

from datetime import datetime, timezone

import pytest

from edconnect_records.domain.models import SortDirection
from edconnect_records.errors import DuplicateError, NotFoundError, ValidationError
from edconnect_records.infrastructure.store import InMemoryStore, OrderBy, RecordStore, Where


def test_in_memory_store_satisfies_protocol(store):
    assert isinstance(store, RecordStore)


def test_create_assigns_id_and_timestamp(store, clock):
    store.create_collection("posts")
    record = store.create("posts", {"title": "Supporting EAL learners"})

    assert len(record.id) == 32
    assert record.collection == "posts"
    assert record.created_at == datetime(2024, 9, 1, 8, 0, tzinfo=timezone.utc)
    assert record.data == {"title": "Supporting EAL learners"}
    assert store.find_unique("posts", record.id) == record


def test_caller_supplied_id_is_used(store):
    store.create_collection("posts")
    record = store.create("posts", {"id": "intro", "title": "Hello"})

    assert record.id == "intro"
    assert "id" not in record.data
    with pytest.raises(DuplicateError):
        store.create("posts", {"id": "intro"})


def test_created_at_cannot_be_supplied(store):
    store.create_collection("posts")
    with pytest.raises(ValidationError):
        store.create("posts", {"created_at": "2020-01-01"})


def test_frozen_clock_still_gives_increasing_timestamps():
    fixed = datetime(2025, 1, 1, tzinfo=timezone.utc)
    store = InMemoryStore(clock=lambda: fixed)
    store.create_collection("posts")
    first = store.create("posts", {})
    second = store.create("posts", {})

    assert second.created_at > first.created_at


def test_unique_fields_are_enforced_on_create_and_update(store):
    store.create_collection("categories", unique_fields=("slug",))
    store.create("categories", {"id": "a", "slug": "send"})
    store.create("categories", {"id": "b", "slug": "sen"})
    store.create("categories", {"id": "c", "slug": None})
    store.create("categories", {"id": "d", "slug": None})

    with pytest.raises(DuplicateError):
        store.create("categories", {"slug": "send"})
    with pytest.raises(DuplicateError):
        store.update("categories", "b", {"slug": "send"})
    # Re-saving its own value is not a clash
    store.update("categories", "a", {"slug": "send", "name": "SEND"})


def test_update_merges_shallowly(store):
    store.create_collection("posts")
    store.create("posts", {"id": "p", "title": "Draft", "tags": ["a"], "status": "draft"})

    updated = store.update("posts", "p", {"status": "published", "tags": ["b"]})

    assert updated.data == {"title": "Draft", "tags": ["b"], "status": "published"}
    assert store.find_unique("posts", "p") == updated


@pytest.mark.parametrize("field", ["id", "created_at"])
def test_update_rejects_reserved_fields(store, field):
    store.create_collection("posts")
    store.create("posts", {"id": "p"})

    with pytest.raises(ValidationError):
        store.update("posts", "p", {field: "x"})


def test_update_and_delete_missing_record(store):
    store.create_collection("posts")

    with pytest.raises(NotFoundError):
        store.update("posts", "ghost", {"title": "x"})
    with pytest.raises(NotFoundError):
        store.delete("posts", "ghost")
    assert store.find_unique("posts", "ghost") is None


@pytest.mark.parametrize(
    "call",
    [
        lambda s: s.count("missing"),
        lambda s: s.find_many("missing"),
        lambda s: s.find_unique("missing", "x"),
        lambda s: s.create("missing", {}),
        lambda s: s.update("missing", "x", {}),
        lambda s: s.delete("missing", "x"),
    ],
)
def test_unknown_collection_raises_not_found(store, call):
    assert store.has_collection("missing") is False
    with pytest.raises(NotFoundError):
        call(store)


def test_where_matches_filters_and_search(store):
    store.create_collection("students")
    pupil = store.create("students", {"name": "Amara Okafor", "year": 7, "sen": True})
    other = store.create("students", {"name": "Ben Lewis", "year": 8, "notes": None})

    assert Where().matches(pupil)
    assert Where(equals={"year": 7}).matches(pupil)
    assert not Where(equals={"year": 7, "sen": False}).matches(pupil)
    assert Where(equals={"sen": None}).matches(other)
    assert Where(search="OKAF", search_fields=("notes", "name")).matches(pupil)
    assert not Where(search="none", search_fields=("notes",)).matches(other)
    assert Where(search="lewis").matches(other)
    assert Where(equals={"id": pupil.id}).matches(pupil)


def test_null_values_sort_last_ascending_first_descending(store):
    store.create_collection("students")
    store.create("students", {"id": "s1", "year": 9})
    store.create("students", {"id": "s2"})
    store.create("students", {"id": "s3", "year": 7})

    ascending = store.find_many("students", order_by=OrderBy("year", SortDirection.ASC))
    descending = store.find_many("students", order_by=OrderBy("year", SortDirection.DESC))

    assert [r.id for r in ascending] == ["s3", "s1", "s2"]
    assert [r.id for r in descending] == ["s2", "s1", "s3"]


def test_ties_are_broken_by_id(store):
    store.create_collection("students")
    for record_id in ("c", "a", "b"):
        store.create("students", {"id": record_id, "year": 7})

    ordered = store.find_many("students", order_by=OrderBy("year", SortDirection.ASC))

    assert [r.id for r in ordered] == ["a", "b", "c"]


def test_find_many_skip_and_take(make_records, store):
    make_records("posts", 5)

    page = store.find_many("posts", skip=1, take=2)

    assert [r.id for r in page] == ["r04", "r03"]
    assert store.count("posts") == 5
    assert store.count("posts", Where(equals={"title": "Item 2"})) == 1


def test_sorting_mixed_json_types_ranks_by_type(store):
    store.create_collection("resources")
    for record_id, level in [
        ("n", 3),
        ("s", "KS2"),
        ("b", True),
        ("l", [1, 2]),
        ("o", {"stage": 2}),
        ("f", 1.5),
        ("z", None),
    ]:
        store.create("resources", {"id": record_id, "level": level})

    ascending = store.find_many("resources", order_by=OrderBy("level", SortDirection.ASC))
    descending = store.find_many("resources", order_by=OrderBy("level", SortDirection.DESC))

    assert [r.id for r in ascending] == ["s", "f", "n", "b", "l", "o", "z"]
    assert [r.id for r in descending] == ["z", "o", "l", "b", "n", "f", "s"]


def test_equality_filters_are_type_strict(store):
    store.create_collection("posts")
    store.create("posts", {"id": "a", "published": True})
    store.create("posts", {"id": "b", "published": 1.0})
    store.create("posts", {"id": "c", "published": "1"})
    store.create("posts", {"id": "d", "published": 1})

    def ids(value):
        return sorted(r.id for r in store.find_many("posts", Where(equals={"published": value})))

    assert ids(1) == ["b", "d"]
    assert ids(True) == ["a"]
    assert ids("1") == ["c"]
    assert ids([1]) == []


def test_unique_fields_are_type_strict(store):
    store.create_collection("courses", unique_fields=("code",))
    store.create("courses", {"code": 7})

    store.create("courses", {"code": "7"})
    store.create("courses", {"code": True})
    with pytest.raises(DuplicateError):
        store.create("courses", {"code": 7.0})


def test_search_on_id_and_created_at(store):
    store.create_collection("posts")
    store.create("posts", {"id": "intro-ks1", "title": "Welcome"})
    store.create("posts", {"id": "outro", "title": "Goodbye"})

    by_id = store.find_many("posts", Where(search="KS1", search_fields=("id",)))
    by_time = store.find_many(
        "posts", Where(search="2024-09-01 08:01", search_fields=("created_at",))
    )

    assert [r.id for r in by_id] == ["intro-ks1"]
    assert [r.id for r in by_time] == ["outro"]


def test_search_matches_json_text_of_non_strings(store):
    store.create_collection("posts")
    store.create("posts", {"id": "a", "published": True, "year": 7})
    store.create("posts", {"id": "b", "published": False, "year": 10})

    assert [r.id for r in store.find_many("posts", Where(search="TRUE", search_fields=("published",)))] == ["a"]
    assert [r.id for r in store.find_many("posts", Where(search="10", search_fields=("year",)))] == ["b"]
