"""SQLite ストアの CRUD と復習状態の永続化を検証するテスト群。"""

import sqlite3
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from tracker.models.problem import ProblemCreateRequest, ProblemStatus
from tracker.scheduler import ReviewScheduler
from tracker.store.problems import ProblemSQLiteStore, ReviewNotEnrolledError


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock() -> _Clock:
    return _Clock(datetime(2024, 5, 10, 9, 0, tzinfo=UTC))


@pytest.fixture()
def store(tmp_path: Path, clock: _Clock) -> ProblemSQLiteStore:
    scheduler = ReviewScheduler(clock=clock)
    return ProblemSQLiteStore(db_path=str(tmp_path / "tracker.sqlite3"), scheduler=scheduler)


def _payload(slug: str = "two-sum", **overrides) -> ProblemCreateRequest:
    data = {
        "platform": "leetcode",
        "title": slug.replace("-", " ").title(),
        "problem_id": slug,
        "difficulty": "Easy",
        "url": f"https://leetcode.com/problems/{slug}/",
        "date_solved": "2024-05-01T10:00:00Z",
        "topics": ["Array", " Hash Table ", "Array"],
        "companies": ["Google"],
    }
    data.update(overrides)
    return ProblemCreateRequest(**data)


def test_create_problem_starts_unenrolled(store: ProblemSQLiteStore):
    created = store.create_problem(_payload())

    assert created.id.startswith("pb:")
    assert created.status is ProblemStatus.active
    assert created.is_review is False
    assert created.interval == 0
    assert created.next_review_date is None
    assert created.topics == ["Array", "Hash Table"]

    loaded = store.get_problem(created.id)
    assert loaded is not None
    assert loaded.title == "Two Sum"
    assert loaded.companies == ["Google"]
    assert loaded.url == "https://leetcode.com/problems/two-sum/"


def test_duplicate_url_raises_integrity_error(store: ProblemSQLiteStore):
    store.create_problem(_payload())

    with pytest.raises(sqlite3.IntegrityError):
        store.create_problem(_payload())


def test_same_url_allowed_in_potd_list(store: ProblemSQLiteStore):
    store.create_problem(_payload())
    potd = store.create_problem(_payload(is_potd=True))

    assert potd.is_potd is True
    assert store.count_problems() == 2


def test_bulk_create_skips_duplicates(store: ProblemSQLiteStore):
    store.create_problem(_payload("two-sum"))

    created, skipped = store.bulk_create(
        [_payload("two-sum"), _payload("3sum"), _payload("valid-anagram"), _payload("3sum")]
    )

    assert (created, skipped) == (2, 2)
    assert store.count_problems() == 3


def test_list_problems_filters_and_orders_newest_first(store: ProblemSQLiteStore, clock: _Clock):
    first = store.create_problem(_payload("two-sum", topics=["Array"], companies=["Google"]))
    clock.now += timedelta(minutes=1)
    second = store.create_problem(
        _payload("edit-distance", difficulty="Hard", topics=["DP"], companies=["Amazon"])
    )
    clock.now += timedelta(minutes=1)
    third = store.create_problem(
        _payload(
            "1900A",
            platform="codeforces",
            url="https://codeforces.com/problemset/problem/1900/A",
            topics=["Greedy"],
        )
    )

    assert [p.id for p in store.list_problems()] == [third.id, second.id, first.id]
    assert [p.id for p in store.list_problems(platform="codeforces")] == [third.id]
    assert [p.id for p in store.list_problems(company="Amazon")] == [second.id]
    assert [p.id for p in store.list_problems(topic="Array")] == [first.id]
    assert [p.id for p in store.list_problems(limit=1, offset=1)] == [second.id]
    assert store.count_problems(company="Google") == 2


def test_update_problem_merges_plain_fields(store: ProblemSQLiteStore):
    created = store.create_problem(_payload())

    updated = store.update_problem(created.id, {"notes": "use a hash map", "difficulty": "Medium"})

    assert updated is not None
    assert updated.notes == "use a hash map"
    assert updated.difficulty == "Medium"
    assert updated.is_review is False
    assert store.get_problem(created.id).notes == "use a hash map"


def test_update_with_is_review_applies_enrollment_rules(store: ProblemSQLiteStore, clock: _Clock):
    created = store.create_problem(_payload())

    enrolled = store.update_problem(created.id, {"is_review": True})

    assert enrolled.is_review is True
    assert enrolled.repetition == 0
    assert enrolled.interval == 2
    assert enrolled.next_review_date == clock.now + timedelta(days=2)

    cleared = store.update_problem(created.id, {"is_review": False})
    assert cleared.is_review is False
    assert cleared.interval == 0
    assert cleared.next_review_date is None


def test_update_status_learned_takes_problem_out_of_review(store: ProblemSQLiteStore):
    created = store.create_problem(_payload())
    store.set_review(created.id, True)

    learned = store.update_problem(created.id, {"status": ProblemStatus.learned})

    assert learned.status is ProblemStatus.learned
    assert learned.is_review is False
    assert learned.next_review_date is None

    reactivated = store.update_problem(created.id, {"status": ProblemStatus.active})
    assert reactivated.status is ProblemStatus.active
    assert reactivated.is_review is False


def test_update_missing_problem_returns_none(store: ProblemSQLiteStore):
    assert store.update_problem("pb:missing", {"notes": "x"}) is None
    assert store.set_review("pb:missing", True) is None
    assert store.record_review("pb:missing") is None


def test_record_review_persists_full_cycle(store: ProblemSQLiteStore, clock: _Clock):
    created = store.create_problem(_payload())
    store.set_review(created.id, True)

    clock.now += timedelta(days=2)
    outcome = store.record_review(created.id)
    assert outcome is not None
    problem, message = outcome
    assert (problem.repetition, problem.interval) == (1, 4)
    assert problem.next_review_date == clock.now + timedelta(days=4)
    assert message == "Problem rescheduled for review in 4 day(s)."

    persisted = store.get_problem(created.id)
    assert (persisted.repetition, persisted.interval) == (1, 4)
    assert persisted.next_review_date == clock.now + timedelta(days=4)

    clock.now += timedelta(days=4)
    problem, _ = store.record_review(created.id)
    assert (problem.repetition, problem.interval) == (2, 7)

    clock.now += timedelta(days=7)
    problem, message = store.record_review(created.id)
    assert problem.status is ProblemStatus.learned
    assert message == "Problem marked as learned!"
    assert store.get_problem(created.id).status is ProblemStatus.learned


def test_record_review_honours_supplied_interval(store: ProblemSQLiteStore):
    created = store.create_problem(_payload())
    store.set_review(created.id, True)

    problem, _ = store.record_review(created.id, current_interval=999)

    assert problem.interval == 2
    assert problem.repetition == 0


def test_record_review_rejects_unenrolled_problem(store: ProblemSQLiteStore):
    created = store.create_problem(_payload())

    with pytest.raises(ReviewNotEnrolledError):
        store.record_review(created.id)

    assert store.get_problem(created.id).interval == 0


def test_list_due_uses_calendar_days(store: ProblemSQLiteStore, clock: _Clock):
    due_soon = store.create_problem(_payload("two-sum"))
    later = store.create_problem(_payload("3sum"))
    untracked = store.create_problem(_payload("valid-anagram"))
    store.set_review(due_soon.id, True)
    clock.now += timedelta(days=1)
    store.set_review(later.id, True)

    # 2日後の 23:00: due_soon は当日 09:00 が期日（期日到来）、later は翌日が期日
    check_time = datetime(2024, 5, 12, 23, 0, tzinfo=UTC)
    due = store.list_due(check_time)

    assert [p.id for p in due] == [due_soon.id]
    assert untracked.id not in {p.id for p in due}
    assert len(store.list_due(check_time + timedelta(days=1))) == 2


def test_get_stats_counts_by_state(store: ProblemSQLiteStore, clock: _Clock):
    a = store.create_problem(_payload("two-sum"))
    b = store.create_problem(_payload("3sum"))
    store.create_problem(_payload("valid-anagram"))
    store.set_review(a.id, True)
    store.set_review(b.id, True)
    store.update_problem(b.id, {"status": "learned"})

    stats = store.get_stats(clock.now + timedelta(days=2))

    assert stats == {"total": 3, "active": 2, "learned": 1, "in_review": 1, "due_now": 1}


def test_delete_problem(store: ProblemSQLiteStore):
    created = store.create_problem(_payload())

    assert store.delete_problem(created.id) is True
    assert store.delete_problem(created.id) is False
    assert store.get_problem(created.id) is None


def test_concurrent_review_completions_are_serialised(store: ProblemSQLiteStore):
    created = store.create_problem(_payload())
    store.set_review(created.id, True)
    errors: list[Exception] = []
    start = threading.Barrier(2)

    def complete() -> None:
        start.wait()
        try:
            store.record_review(created.id)
        except Exception as exc:  # pragma: no cover - 失敗時のみ
            errors.append(exc)

    workers = [threading.Thread(target=complete) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=30)

    assert errors == []
    persisted = store.get_problem(created.id)
    assert (persisted.repetition, persisted.interval) == (2, 7)
