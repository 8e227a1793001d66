from datetime import datetime, timezone

import pytest

from speedtype.features.results.repository import BalanceUpdateError, ResultStore
from speedtype.tests.factories import at, create_profile, seed_result


@pytest.fixture
def store():
    return ResultStore()


def test_insert_returns_id_and_utc_timestamp(store):
    saved = store.insert_validated_result(
        "p1", wpm=80, accuracy=97, correct_chars=400, incorrect_chars=12,
        duration=60, theme="monkeytype-inspired", language="en",
    )
    assert len(saved["id"]) == 36
    assert saved["created_at"].tzinfo == timezone.utc

    [entry] = store.top_results(60, 10)
    assert entry.id == saved["id"]
    assert entry.wpm == 80
    assert entry.username == "User p1"


def test_top_results_order_and_ranks(store):
    create_profile("alice", username="alice")
    seed_result("alice", wpm=90, accuracy=95, created_at=at(10))
    seed_result("bob", wpm=90, accuracy=98, created_at=at(20))
    seed_result("carol", wpm=90, accuracy=95, created_at=at(5))
    seed_result("dave", wpm=120, accuracy=80, created_at=at(30))
    seed_result("erin", wpm=150, duration=30)

    entries = store.top_results(60, 10)
    assert [e.user_id for e in entries] == ["dave", "bob", "carol", "alice"]
    assert [e.rank for e in entries] == [1, 2, 3, 4]
    assert entries[3].username == "alice"

    page_two = store.top_results(60, 2, offset=2)
    assert [(e.user_id, e.rank) for e in page_two] == [("carol", 3), ("alice", 4)]
    assert store.count_results(60) == 4
    assert store.count_results(30) == 1


def test_rank_for_player_uses_best_result(store):
    seed_result("p1", wpm=70, created_at=at(1))
    seed_result("p1", wpm=95, created_at=at(2))
    seed_result("p2", wpm=100, created_at=at(3))
    seed_result("p3", wpm=95, created_at=at(1))
    seed_result("p4", wpm=60, created_at=at(4))

    # p2 outright, p3 on the earlier timestamp
    assert store.rank_for_player("p1", 60) == {"rank": 3, "total": 5}
    assert store.rank_for_player("p2", 60) == {"rank": 1, "total": 5}
    assert store.rank_for_player("nobody", 60) is None


def test_add_balance_is_incremental(store):
    create_profile("p1", coins=10)
    assert store.add_balance("p1", 5) == 15
    assert store.add_balance("p1", 0) == 15
    assert store.get_balance("p1") == 15


def test_add_balance_without_profile_raises(store):
    with pytest.raises(BalanceUpdateError):
        store.add_balance("ghost", 5)


def test_compare_and_set_requires_expected_value(store):
    create_profile("p1", coins=10)
    assert store.compare_and_set_balance("p1", 9, 50) is False
    assert store.compare_and_set_balance("p1", 10, 50) is True
    assert store.get_balance("p1") == 50


def test_timestamps_keep_microseconds(store):
    created = datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)
    seed_result("p1", wpm=50, created_at=created)
    [entry] = store.top_results(60, 1)
    assert entry.created_at == created
