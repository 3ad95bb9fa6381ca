from conftest import HOUR_MS, NOW, days_ago
import repo_sync
from models import SyncData
from service_sync import DAY_MS, select_outgoing


def local(**parts):
    return SyncData.model_validate(parts)


class TestSelectOutgoing:

    def test_regular_sync_pushes_changes_after_last_sync(self):
        last = days_ago(2)
        data = local(
            foodEntries=[{"id": "new", "name": "A", "timestamp": days_ago(1)},
                         {"id": "old", "name": "B", "timestamp": days_ago(3)}],
            goals=[{"id": "g-new", "createdAt": days_ago(1)},
                   {"id": "g-old", "createdAt": days_ago(5)}],
            userProfile={"id": "u1", "name": "Sam", "createdAt": days_ago(50), "updatedAt": days_ago(1)},
        )

        out = select_outgoing(data, last, NOW, first_sync=False)

        assert [e.id for e in out.food_entries] == ["new"]
        assert [g.id for g in out.goals] == ["g-new"]
        assert out.user_profile.id == "u1"

    def test_unchanged_profile_is_not_pushed(self):
        data = local(userProfile={"id": "u1", "name": "Sam", "createdAt": days_ago(50)})

        out = select_outgoing(data, days_ago(2), NOW, first_sync=False)

        assert out.user_profile is None

    def test_first_sync_pushes_recent_entries_and_profile(self):
        data = local(
            workoutEntries=[{"id": "today", "name": "Run", "timestamp": NOW - HOUR_MS},
                            {"id": "last-week", "name": "Run", "timestamp": days_ago(7)}],
            goals=[{"id": "g1", "createdAt": days_ago(20)},
                   {"id": "g2", "createdAt": days_ago(40)}],
            userProfile={"id": "u1", "name": "Sam", "createdAt": days_ago(365)},
        )

        out = select_outgoing(data, 0, NOW, first_sync=True)

        assert [e.id for e in out.workout_entries] == ["today"]
        assert [g.id for g in out.goals] == ["g1"]
        assert out.user_profile.id == "u1"

    def test_entries_without_timestamp_are_skipped(self):
        data = local(biomarkerEntries=[{"id": "b1", "type": "hr", "value": 60}])

        assert select_outgoing(data, 0, NOW, first_sync=False).biomarker_entries == []


def test_bidirectional_pushes_then_pulls(service, store, conninfo):
    # Another device already pushed a meal yesterday.
    service.push(conninfo, "postgresql", local(
        foodEntries=[{"id": "remote", "name": "Salad", "calories": 200, "timestamp": days_ago(1)}],
    ))

    synced, pulled_counts, pulled = service.bidirectional_sync(
        conninfo, "postgresql",
        local(foodEntries=[{"id": "mine", "name": "Toast", "timestamp": NOW - HOUR_MS}]),
        days_ago(0.5),
    )

    assert synced.food_entries == 1
    assert pulled_counts.food_entries == 2
    assert [e.id for e in pulled.food_entries] == ["mine", "remote"]


def test_bidirectional_keeps_first_write(service, store, conninfo):
    service.push(conninfo, "postgresql", local(
        foodEntries=[{"id": "f1", "name": "Apple", "calories": 95, "timestamp": NOW - HOUR_MS}],
    ))

    service.bidirectional_sync(
        conninfo, "postgresql",
        local(foodEntries=[{"id": "f1", "name": "Apple", "calories": 999, "timestamp": NOW - HOUR_MS}]),
        days_ago(1),
    )

    assert store.row("food_entries", "f1")["calories"] == 95


def test_first_sync_pulls_a_week(service, store, conninfo):
    service.push(conninfo, "postgresql", local(foodEntries=[
        {"id": "six-days", "name": "A", "timestamp": days_ago(6)},
        {"id": "eight-days", "name": "B", "timestamp": days_ago(8)},
    ]))

    _, counts, pulled = service.bidirectional_sync(conninfo, "postgresql", SyncData(), 0)

    assert [e.id for e in pulled.food_entries] == ["six-days"]
    assert counts.food_entries == 1
    # Horizon passed to the food query.
    food_selects = [p for sql, p in store.executed if sql.startswith("SELECT") and "food_entries" in sql]
    assert food_selects[-1] == (NOW - 7 * DAY_MS,)


def test_bidirectional_survives_goal_failure(service, store, conninfo):
    service.push(conninfo, "postgresql", local(userProfile={"id": "u1", "name": "Sam"}))
    store.fail_sql.add(repo_sync.SELECT_GOALS_SINCE)

    synced, counts, pulled = service.bidirectional_sync(
        conninfo, "postgresql",
        local(biomarkerEntries=[{"id": "b1", "type": "hr", "value": 55, "timestamp": NOW - HOUR_MS}]),
        days_ago(1),
    )

    assert synced.biomarker_entries == 1
    assert counts.goals == 0
    assert pulled.user_profile.id == "u1"
    assert store.row("biomarker_entries", "b1") is not None


def test_large_local_store_pushes_only_changes(service, store, conninfo):
    history = [{"id": f"old{i}", "name": "Snack", "timestamp": days_ago(400)} for i in range(5000)]
    fresh = {"id": "fresh", "name": "Soup", "timestamp": NOW - HOUR_MS}

    synced, _, pulled = service.bidirectional_sync(
        conninfo, "postgresql", local(foodEntries=history + [fresh]), days_ago(1),
    )

    assert synced.food_entries == 1
    assert [e.id for e in pulled.food_entries] == ["fresh"]
    assert store.rows("food_entries") == [store.row("food_entries", "fresh")]
