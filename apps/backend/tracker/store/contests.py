from __future__ import annotations

import sqlite3
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, ContextManager

from ..id_factory import generate_contest_id
from ..logging import logger
from ..models.contest import Contest, ContestCreateRequest, ContestPlatform, ContestStatus
from .common import normalize_non_negative_int, parse_iso, to_iso_utc


_CONTEST_COLUMNS = (
    "id, name, platform, start_time, duration, url, rank, problems_solved, total_problems, "
    "status, created_at, updated_at"
)

# null を送ると未設定へ戻せる列。その他の列では None は「変更なし」を意味する。
_NULLABLE_FIELDS = ("rank", "total_problems")
_UPDATE_FIELDS = (
    "name",
    "platform",
    "start_time",
    "duration",
    "url",
    "rank",
    "problems_solved",
    "total_problems",
    "status",
)


def ensure_tables(conn: sqlite3.Connection) -> None:
    """コンテストテーブルを初期化する。name と platform の組で一意。"""

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS contests (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            platform TEXT NOT NULL,
            start_time TEXT NOT NULL,
            duration INTEGER NOT NULL,
            url TEXT NOT NULL,
            rank INTEGER,
            problems_solved INTEGER NOT NULL DEFAULT 0,
            total_problems INTEGER,
            status TEXT NOT NULL DEFAULT 'scheduled',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_contests_name_platform ON contests(name, platform);"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_contests_start_time ON contests(start_time);"
    )


def _row_to_contest(row: sqlite3.Row) -> Contest:
    return Contest(
        id=row["id"],
        name=row["name"],
        platform=row["platform"],
        start_time=parse_iso(row["start_time"]),
        duration=max(1, normalize_non_negative_int(row["duration"])),
        url=row["url"],
        rank=row["rank"] if row["rank"] is None else max(1, int(row["rank"])),
        problems_solved=normalize_non_negative_int(row["problems_solved"]),
        total_problems=(
            None if row["total_problems"] is None else normalize_non_negative_int(row["total_problems"])
        ),
        status=row["status"],
        created_at=parse_iso(row["created_at"]),
        updated_at=parse_iso(row["updated_at"]),
    )


class ContestStore:
    """コンテスト記録の永続化を担当する。復習サイクルとは無関係の単純な CRUD。"""

    def __init__(
        self,
        conn_provider: Callable[[], ContextManager[sqlite3.Connection]],
        write_provider: Callable[[], ContextManager[sqlite3.Connection]],
        clock: Callable[[], datetime],
    ) -> None:
        self._conn_provider = conn_provider
        self._write_provider = write_provider
        self._clock = clock

    @staticmethod
    def _build_filter(
        *, platform: str | None = None, status: str | None = None
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if platform:
            clauses.append("platform = ?")
            params.append(platform)
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def create_contest(self, payload: ContestCreateRequest) -> Contest:
        """Insert a contest record.

        同じ name/platform の組が既にあれば sqlite3.IntegrityError をそのまま送出する。
        """

        moment = self._clock()
        contest = Contest(
            id=generate_contest_id(),
            name=payload.name,
            platform=payload.platform,
            start_time=payload.start_time,
            duration=payload.duration,
            url=str(payload.url),
            rank=payload.rank,
            problems_solved=payload.problems_solved,
            total_problems=payload.total_problems,
            status=payload.status,
            created_at=moment,
            updated_at=moment,
        )
        with self._conn_provider() as conn:
            conn.execute(
                f"INSERT INTO contests({_CONTEST_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    contest.id,
                    contest.name,
                    contest.platform.value,
                    to_iso_utc(contest.start_time),
                    contest.duration,
                    contest.url,
                    contest.rank,
                    contest.problems_solved,
                    contest.total_problems,
                    contest.status.value,
                    to_iso_utc(moment),
                    to_iso_utc(moment),
                ),
            )
        logger.info(
            "contest_created",
            contest_id=contest.id,
            platform=contest.platform.value,
            status=contest.status.value,
        )
        return contest

    def get_contest(self, contest_id: str) -> Contest | None:
        with self._conn_provider() as conn:
            cur = conn.execute(
                f"SELECT {_CONTEST_COLUMNS} FROM contests WHERE id = ?;", (contest_id,)
            )
            row = cur.fetchone()
        return _row_to_contest(row) if row is not None else None

    def list_contests(
        self,
        *,
        platform: str | None = None,
        status: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Contest]:
        """条件に合うコンテストを開始時刻の新しい順で返す。"""

        where, params = self._build_filter(platform=platform, status=status)
        with self._conn_provider() as conn:
            cur = conn.execute(
                f"""
                SELECT {_CONTEST_COLUMNS} FROM contests
                {where}
                ORDER BY start_time DESC, id ASC
                LIMIT ? OFFSET ?;
                """,
                (*params, max(0, int(limit)), max(0, int(offset))),
            )
            return [_row_to_contest(row) for row in cur.fetchall()]

    def count_contests(self, *, platform: str | None = None, status: str | None = None) -> int:
        where, params = self._build_filter(platform=platform, status=status)
        with self._conn_provider() as conn:
            cur = conn.execute(f"SELECT COUNT(1) AS c FROM contests {where};", params)
            return int(cur.fetchone()["c"])

    def update_contest(self, contest_id: str, updates: Mapping[str, Any]) -> Contest | None:
        """Merge field updates into a contest. 存在しなければ None。"""

        moment = self._clock()
        with self._write_provider() as conn:
            cur = conn.execute(
                f"SELECT {_CONTEST_COLUMNS} FROM contests WHERE id = ?;", (contest_id,)
            )
            row = cur.fetchone()
            if row is None:
                return None
            merged: dict[str, Any] = {}
            for field in _UPDATE_FIELDS:
                if field not in updates:
                    continue
                value = updates[field]
                if value is None and field not in _NULLABLE_FIELDS:
                    continue
                if field == "url":
                    value = str(value)
                elif field == "platform":
                    value = ContestPlatform(value)
                elif field == "status":
                    value = ContestStatus(value)
                merged[field] = value
            contest = _row_to_contest(row).model_copy(update={**merged, "updated_at": moment})
            conn.execute(
                """
                UPDATE contests
                SET name = ?, platform = ?, start_time = ?, duration = ?, url = ?, rank = ?,
                    problems_solved = ?, total_problems = ?, status = ?, updated_at = ?
                WHERE id = ?;
                """,
                (
                    contest.name,
                    contest.platform.value,
                    to_iso_utc(contest.start_time),
                    contest.duration,
                    contest.url,
                    contest.rank,
                    contest.problems_solved,
                    contest.total_problems,
                    contest.status.value,
                    to_iso_utc(moment),
                    contest_id,
                ),
            )
        logger.info("contest_updated", contest_id=contest_id, fields=sorted(merged))
        return contest

    def delete_contest(self, contest_id: str) -> bool:
        with self._conn_provider() as conn:
            cur = conn.execute("DELETE FROM contests WHERE id = ?;", (contest_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info("contest_deleted", contest_id=contest_id)
        return deleted
