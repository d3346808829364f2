"""Fixed-interval review scheduler.

復習サイクルの状態遷移を扱う純粋関数群。永続化や通知は呼び出し側
（ストア/ルータ）の責務で、ここでは入力の複製を更新して返すだけにする。

状態は ``未登録 → repetition=0 → … → repetition=N-1 → learned`` の一方向で、
戻るのは明示的な登録解除（未登録へ）と再登録（repetition=0 へ）のみ。
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, timedelta, tzinfo
from typing import NamedTuple, TypeVar

from .models.problem import ProblemStatus, ReviewState


DEFAULT_REVIEW_INTERVALS: tuple[int, ...] = (2, 4, 7)

ItemT = TypeVar("ItemT", bound=ReviewState)


class ReviewOutcome(NamedTuple):
    item: ReviewState
    message: str


def validate_intervals(values: Iterable[int]) -> tuple[int, ...]:
    """Return the interval sequence as a tuple or raise ``ValueError``.

    空・非正・非単調なシーケンスは拒否する。スケジューラの各操作は
    例外を送出しないため、検証は設定読み込み時とコンストラクタで済ませる。
    """

    intervals = tuple(values)
    if not intervals:
        raise ValueError("review intervals must contain at least one value")
    previous = 0
    for value in intervals:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"review interval must be an integer: {value!r}")
        if value <= 0:
            raise ValueError(f"review interval must be positive: {value!r}")
        if value <= previous:
            raise ValueError("review intervals must be strictly increasing")
        previous = value
    return intervals


def local_day(moment: datetime, tz: tzinfo = UTC) -> date:
    """Derive the calendar day of ``moment`` in ``tz``.

    保存値（タイムスタンプ）と比較対象（現在時刻）の双方をこの関数で日付に
    落とすことで、タイムゾーン差による1日ずれを防ぐ。naive な datetime は UTC とみなす。
    """

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz).date()


def review_label(item: ReviewState) -> str:
    return "POTD Problem" if getattr(item, "is_potd", False) else "Problem"


class ReviewScheduler:
    """Advance items through a fixed sequence of review intervals."""

    def __init__(
        self,
        intervals: Iterable[int] = DEFAULT_REVIEW_INTERVALS,
        *,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.intervals = validate_intervals(intervals)
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._clock()

    def enroll_or_unenroll(
        self, item: ItemT, is_review: bool, *, now: datetime | None = None
    ) -> ItemT:
        """Enroll an item into the review cycle or take it out.

        登録は常に最初の間隔からのリセットで、途中のサイクルは引き継がない。
        learned の項目を再登録した場合は active に戻す（learned ⇒ 未登録 を保つ）。
        解除は復習フィールドをすべて初期化するが status には触れない。
        """

        if not is_review:
            return item.model_copy(
                update={
                    "is_review": False,
                    "repetition": 0,
                    "interval": 0,
                    "next_review_date": None,
                }
            )
        moment = now or self.now()
        first = self.intervals[0]
        return item.model_copy(
            update={
                "status": ProblemStatus.active,
                "is_review": True,
                "repetition": 0,
                "interval": first,
                "next_review_date": moment + timedelta(days=first),
            }
        )

    def advance_review(
        self,
        item: ItemT,
        current_interval: int | None = None,
        *,
        now: datetime | None = None,
    ) -> ReviewOutcome:
        """Record a completed review and move to the next interval or graduate.

        current_interval を省略すると item.interval を使う。シーケンスに
        存在しない値はサイクル先頭の手前とみなし、最初の間隔へ進める。
        """

        if current_interval is None:
            current_interval = item.interval
        try:
            position = self.intervals.index(current_interval)
        except ValueError:
            position = -1
        next_index = position + 1
        label = review_label(item)

        if next_index < len(self.intervals):
            next_interval = self.intervals[next_index]
            moment = now or self.now()
            updated = item.model_copy(
                update={
                    "interval": next_interval,
                    "repetition": next_index,
                    "next_review_date": moment + timedelta(days=next_interval),
                }
            )
            return ReviewOutcome(
                updated, f"{label} rescheduled for review in {next_interval} day(s)."
            )

        graduated = item.model_copy(
            update={
                "status": ProblemStatus.learned,
                "is_review": False,
                "next_review_date": None,
                "repetition": 0,
                "interval": 0,
            }
        )
        return ReviewOutcome(graduated, f"{label} marked as learned!")

    def is_due(self, item: ReviewState, now: datetime | None = None) -> bool:
        if not item.is_review or item.next_review_date is None:
            return False
        moment = now or self.now()
        return local_day(item.next_review_date, self.tz) <= local_day(moment, self.tz)
