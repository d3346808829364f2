from __future__ import annotations

from ..config import settings
from ..scheduler import ReviewScheduler
from .problems import ProblemSQLiteStore, ReviewNotEnrolledError


def _create_scheduler() -> ReviewScheduler:
    """設定の復習間隔とタイムゾーンでプロセス共通のスケジューラを構築する。"""

    return ReviewScheduler(settings.review_intervals, tz=settings.review_tzinfo)


def _create_store() -> ProblemSQLiteStore:
    """アプリ全体で共有する SQLite ベースのストアを初期化する。"""

    return ProblemSQLiteStore(db_path=settings.tracker_db_path, scheduler=scheduler)


scheduler = _create_scheduler()
store = _create_store()

__all__ = [
    "ProblemSQLiteStore",
    "ReviewNotEnrolledError",
    "scheduler",
    "store",
]
