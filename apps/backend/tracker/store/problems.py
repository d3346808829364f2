from __future__ import annotations

import sqlite3
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from ..id_factory import generate_problem_id
from ..logging import logger
from ..models.problem import Platform, Problem, ProblemCreateRequest, ProblemStatus
from ..scheduler import ReviewOutcome, ReviewScheduler
from . import contests as contests_mod
from .common import dump_tags, load_tags, normalize_non_negative_int, parse_iso, to_iso_utc


_PROBLEM_COLUMNS = (
    "id, platform, title, problem_id, difficulty, url, date_solved, notes, topics, companies, "
    "is_potd, status, is_review, repetition, interval_days, next_review_date, created_at, updated_at"
)

# 単純なフィールド更新として扱う列。status/is_review は復習ルール経由で反映する。
_PLAIN_UPDATE_FIELDS = (
    "platform",
    "title",
    "problem_id",
    "difficulty",
    "url",
    "date_solved",
    "notes",
    "topics",
    "companies",
)


class ReviewNotEnrolledError(ValueError):
    """Raised when a review is recorded for a problem outside the review cycle."""


class ProblemSQLiteStore:
    """SQLite-backed persistence layer for tracked problems.

    - 1問題 = 1行。topics/companies は JSON 配列として保存
    - URL は通常リストと POTD リストそれぞれで一意
    - 復習状態の更新は ReviewScheduler に委譲し、結果のみを書き戻す
    - コンテスト記録は同じ DB ファイル上の `contests` (ContestStore) が扱う
    """

    def __init__(self, db_path: str, scheduler: ReviewScheduler) -> None:
        self.db_path = db_path
        self.scheduler = scheduler
        self._ensure_dirs()
        self._init_db()
        self.contests = contests_mod.ContestStore(self._conn, self._immediate, clock=scheduler.now)

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        with conn:  # autocommit on pragma
            conn.execute("pragma journal_mode=WAL;")
            conn.execute("pragma foreign_keys=ON;")
        return conn

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _immediate(self) -> Iterator[sqlite3.Connection]:
        """Run a read-modify-write block under ``BEGIN IMMEDIATE``.

        同一問題への復習完了が並行して届いても、書き込みロックを先に取ることで
        読み取り→遷移→保存が直列化される。
        """

        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK;")
                raise
            else:
                conn.execute("COMMIT;")

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        with self._conn() as conn:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS problems (
                        id TEXT PRIMARY KEY,
                        platform TEXT NOT NULL,
                        title TEXT NOT NULL,
                        problem_id TEXT NOT NULL,
                        difficulty TEXT NOT NULL,
                        url TEXT NOT NULL,
                        date_solved TEXT NOT NULL,
                        notes TEXT NOT NULL DEFAULT '',
                        topics TEXT NOT NULL DEFAULT '[]',
                        companies TEXT NOT NULL DEFAULT '[]',
                        is_potd INTEGER NOT NULL DEFAULT 0,
                        status TEXT NOT NULL DEFAULT 'active',
                        is_review INTEGER NOT NULL DEFAULT 0,
                        repetition INTEGER NOT NULL DEFAULT 0,
                        interval_days INTEGER NOT NULL DEFAULT 0,
                        next_review_date TEXT,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    "CREATE UNIQUE INDEX IF NOT EXISTS idx_problems_list_url ON problems(is_potd, url);"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_problems_review ON problems(is_review, next_review_date);"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_problems_created_at ON problems(created_at);"
                )
                contests_mod.ensure_tables(conn)

    @staticmethod
    def _row_to_problem(row: sqlite3.Row) -> Problem:
        return Problem(
            id=row["id"],
            platform=row["platform"],
            title=row["title"],
            problem_id=row["problem_id"],
            difficulty=row["difficulty"],
            url=row["url"],
            date_solved=row["date_solved"],
            notes=row["notes"] or "",
            topics=load_tags(row["topics"]),
            companies=load_tags(row["companies"]),
            is_potd=bool(row["is_potd"]),
            status=row["status"],
            is_review=bool(row["is_review"]),
            repetition=normalize_non_negative_int(row["repetition"]),
            interval=normalize_non_negative_int(row["interval_days"]),
            next_review_date=parse_iso(row["next_review_date"]),
            created_at=parse_iso(row["created_at"]),
            updated_at=parse_iso(row["updated_at"]),
        )

    def _fetch(self, conn: sqlite3.Connection, problem_id: str) -> Problem | None:
        cur = conn.execute(
            f"SELECT {_PROBLEM_COLUMNS} FROM problems WHERE id = ?;",
            (problem_id,),
        )
        row = cur.fetchone()
        return self._row_to_problem(row) if row is not None else None

    def _write(self, conn: sqlite3.Connection, problem: Problem) -> None:
        conn.execute(
            """
            UPDATE problems
            SET platform = ?, title = ?, problem_id = ?, difficulty = ?, url = ?,
                date_solved = ?, notes = ?, topics = ?, companies = ?, status = ?,
                is_review = ?, repetition = ?, interval_days = ?, next_review_date = ?,
                updated_at = ?
            WHERE id = ?;
            """,
            (
                Platform(problem.platform).value,
                problem.title,
                problem.problem_id,
                problem.difficulty,
                problem.url,
                problem.date_solved,
                problem.notes,
                dump_tags(problem.topics),
                dump_tags(problem.companies),
                ProblemStatus(problem.status).value,
                1 if problem.is_review else 0,
                problem.repetition,
                problem.interval,
                to_iso_utc(problem.next_review_date) if problem.next_review_date else None,
                to_iso_utc(problem.updated_at),
                problem.id,
            ),
        )

    @staticmethod
    def _build_filter(
        *,
        platform: str | None = None,
        status: str | None = None,
        is_review: bool | None = None,
        is_potd: bool | None = None,
        company: str | None = None,
        topic: str | None = None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if platform:
            clauses.append("platform = ?")
            params.append(platform)
        if status:
            clauses.append("status = ?")
            params.append(status)
        if is_review is not None:
            clauses.append("is_review = ?")
            params.append(1 if is_review else 0)
        if is_potd is not None:
            clauses.append("is_potd = ?")
            params.append(1 if is_potd else 0)
        if company:
            clauses.append("EXISTS (SELECT 1 FROM json_each(problems.companies) WHERE value = ?)")
            params.append(company)
        if topic:
            clauses.append("EXISTS (SELECT 1 FROM json_each(problems.topics) WHERE value = ?)")
            params.append(topic)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    # --- public API ---
    def create_problem(
        self, payload: ProblemCreateRequest, *, now: datetime | None = None
    ) -> Problem:
        """Insert a new problem in the initial (active, not under review) state.

        同一リスト内で URL が重複する場合は sqlite3.IntegrityError をそのまま送出する。
        """

        moment = now or self.scheduler.now()
        problem = Problem(
            id=generate_problem_id(),
            platform=payload.platform,
            title=payload.title,
            problem_id=payload.problem_id,
            difficulty=payload.difficulty,
            url=str(payload.url),
            date_solved=to_iso_utc(payload.date_solved),
            notes=payload.notes,
            topics=list(payload.topics),
            companies=list(payload.companies),
            is_potd=payload.is_potd,
            created_at=moment,
            updated_at=moment,
        )
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO problems({_PROBLEM_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 0, 0, NULL, ?, ?);
                """,
                (
                    problem.id,
                    problem.platform.value,
                    problem.title,
                    problem.problem_id,
                    problem.difficulty,
                    problem.url,
                    problem.date_solved,
                    problem.notes,
                    dump_tags(problem.topics),
                    dump_tags(problem.companies),
                    1 if problem.is_potd else 0,
                    ProblemStatus.active.value,
                    to_iso_utc(moment),
                    to_iso_utc(moment),
                ),
            )
        logger.info(
            "problem_created",
            problem_id=problem.id,
            platform=problem.platform.value,
            is_potd=problem.is_potd,
        )
        return problem

    def bulk_create(self, payloads: Iterable[ProblemCreateRequest]) -> tuple[int, int]:
        """Insert many problems, skipping URL duplicates. Returns (created, skipped)."""

        created = 0
        skipped = 0
        for payload in payloads:
            try:
                self.create_problem(payload)
            except sqlite3.IntegrityError:
                skipped += 1
                continue
            created += 1
        logger.info("problems_bulk_created", created=created, skipped=skipped)
        return created, skipped

    def get_problem(self, problem_id: str) -> Problem | None:
        with self._conn() as conn:
            return self._fetch(conn, problem_id)

    def list_problems(
        self,
        *,
        platform: str | None = None,
        status: str | None = None,
        is_review: bool | None = None,
        is_potd: bool | None = None,
        company: str | None = None,
        topic: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Problem]:
        """条件に合う問題を新しい順（created_at 降順）で返す。"""

        where, params = self._build_filter(
            platform=platform,
            status=status,
            is_review=is_review,
            is_potd=is_potd,
            company=company,
            topic=topic,
        )
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                SELECT {_PROBLEM_COLUMNS} FROM problems
                {where}
                ORDER BY created_at DESC, id ASC
                LIMIT ? OFFSET ?;
                """,
                (*params, max(0, int(limit)), max(0, int(offset))),
            )
            return [self._row_to_problem(row) for row in cur.fetchall()]

    def count_problems(
        self,
        *,
        platform: str | None = None,
        status: str | None = None,
        is_review: bool | None = None,
        is_potd: bool | None = None,
        company: str | None = None,
        topic: str | None = None,
    ) -> int:
        where, params = self._build_filter(
            platform=platform,
            status=status,
            is_review=is_review,
            is_potd=is_potd,
            company=company,
            topic=topic,
        )
        with self._conn() as conn:
            cur = conn.execute(f"SELECT COUNT(1) AS c FROM problems {where};", params)
            return int(cur.fetchone()["c"])

    def update_problem(
        self,
        problem_id: str,
        updates: Mapping[str, Any],
        *,
        now: datetime | None = None,
    ) -> Problem | None:
        """Merge field updates into a problem; review fields follow scheduler rules.

        - 通常フィールドはそのまま上書き
        - is_review を含む場合は登録/解除として enroll_or_unenroll を適用
        - status=learned の明示指定は復習サイクルから外す（learned ⇒ 未登録）
        """

        moment = now or self.scheduler.now()
        with self._immediate() as conn:
            problem = self._fetch(conn, problem_id)
            if problem is None:
                return None

            plain: dict[str, Any] = {}
            for field in _PLAIN_UPDATE_FIELDS:
                if field not in updates or updates[field] is None:
                    continue
                value = updates[field]
                if field == "url":
                    value = str(value)
                elif field == "date_solved" and isinstance(value, datetime):
                    value = to_iso_utc(value)
                plain[field] = value
            if plain:
                problem = problem.model_copy(update=plain)

            is_review = updates.get("is_review")
            if is_review is not None:
                problem = self.scheduler.enroll_or_unenroll(problem, bool(is_review), now=moment)

            status = updates.get("status")
            if status is not None:
                problem = problem.model_copy(update={"status": ProblemStatus(status)})
                if problem.status is ProblemStatus.learned:
                    problem = self.scheduler.enroll_or_unenroll(problem, False, now=moment)

            problem = problem.model_copy(update={"updated_at": moment})
            self._write(conn, problem)

        logger.info(
            "problem_updated",
            problem_id=problem_id,
            fields=sorted(k for k, v in updates.items() if v is not None),
        )
        return problem

    def set_review(
        self, problem_id: str, is_review: bool, *, now: datetime | None = None
    ) -> Problem | None:
        """Enroll a problem into the review cycle (or take it out)."""

        moment = now or self.scheduler.now()
        with self._immediate() as conn:
            problem = self._fetch(conn, problem_id)
            if problem is None:
                return None
            problem = self.scheduler.enroll_or_unenroll(problem, is_review, now=moment)
            problem = problem.model_copy(update={"updated_at": moment})
            self._write(conn, problem)

        logger.info(
            "review_enrolled" if is_review else "review_unenrolled",
            problem_id=problem_id,
            interval=problem.interval,
            next_review_date=problem.next_review_date.isoformat() if problem.next_review_date else None,
        )
        return problem

    def record_review(
        self,
        problem_id: str,
        current_interval: int | None = None,
        *,
        now: datetime | None = None,
    ) -> ReviewOutcome | None:
        """Advance a problem to its next review interval, or graduate it.

        存在しない場合は None。復習サイクル外の問題には ReviewNotEnrolledError を送出する。
        current_interval が保存値と異なっても拒否はせず、警告ログを残して指定値で進める。
        """

        moment = now or self.scheduler.now()
        with self._immediate() as conn:
            problem = self._fetch(conn, problem_id)
            if problem is None:
                return None
            if not problem.is_review:
                raise ReviewNotEnrolledError(f"problem {problem_id} is not enrolled for review")
            if current_interval is not None and current_interval != problem.interval:
                logger.warning(
                    "review_interval_mismatch",
                    problem_id=problem_id,
                    stored_interval=problem.interval,
                    supplied_interval=current_interval,
                )
            updated, message = self.scheduler.advance_review(problem, current_interval, now=moment)
            updated = updated.model_copy(update={"updated_at": moment})
            self._write(conn, updated)

        logger.info(
            "review_recorded",
            problem_id=problem_id,
            repetition=updated.repetition,
            interval=updated.interval,
            status=updated.status.value,
            message=message,
        )
        return ReviewOutcome(updated, message)

    def delete_problem(self, problem_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM problems WHERE id = ?;", (problem_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info("problem_deleted", problem_id=problem_id)
        return deleted

    def list_due(self, now: datetime | None = None, limit: int | None = None) -> list[Problem]:
        """Return enrolled problems whose review day is today or earlier.

        期日判定はカレンダー日単位のためタイムスタンプの SQL 比較では決められない。
        候補を next_review_date 順に読み出し、スケジューラの is_due で絞り込む。
        """

        moment = now or self.scheduler.now()
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                SELECT {_PROBLEM_COLUMNS} FROM problems
                WHERE is_review = 1 AND next_review_date IS NOT NULL
                ORDER BY next_review_date ASC, id ASC;
                """
            )
            candidates = [self._row_to_problem(row) for row in cur.fetchall()]
        due = [p for p in candidates if self.scheduler.is_due(p, moment)]
        if limit is not None:
            due = due[: max(0, int(limit))]
        return due

    def get_stats(self, now: datetime | None = None) -> dict[str, int]:
        with self._conn() as conn:
            cur = conn.execute(
                """
                SELECT
                    COUNT(1) AS total,
                    COALESCE(SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END), 0) AS active,
                    COALESCE(SUM(CASE WHEN status = 'learned' THEN 1 ELSE 0 END), 0) AS learned,
                    COALESCE(SUM(CASE WHEN is_review = 1 THEN 1 ELSE 0 END), 0) AS in_review
                FROM problems;
                """
            )
            row = cur.fetchone()
        return {
            "total": int(row["total"]),
            "active": int(row["active"]),
            "learned": int(row["learned"]),
            "in_review": int(row["in_review"]),
            "due_now": len(self.list_due(now)),
        }
