from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator


class Platform(str, Enum):
    leetcode = "leetcode"
    codeforces = "codeforces"
    atcoder = "atcoder"


class ProblemStatus(str, Enum):
    active = "active"
    learned = "learned"


class ReviewState(BaseModel):
    """Review-cycle fields shared by every reviewable record.

    復習スケジューラが読み書きするフィールドのみを持つ基底モデル。
    - is_review が False のとき next_review_date/repetition/interval は未設定値
    - status が learned のとき is_review は False
    """

    status: ProblemStatus = ProblemStatus.active
    is_review: bool = False
    repetition: int = Field(default=0, ge=0)
    interval: int = Field(default=0, ge=0, description="Days until next review / 次回復習までの日数")
    next_review_date: datetime | None = None


class Problem(ReviewState):
    """A solved problem tracked by the user."""

    model_config = ConfigDict(extra="ignore")

    id: str
    platform: Platform
    title: str
    problem_id: str
    difficulty: str
    url: str
    date_solved: str
    created_at: datetime
    updated_at: datetime
    notes: str = ""
    topics: list[str] = Field(default_factory=list)
    companies: list[str] = Field(default_factory=list)
    is_potd: bool = False


def _clean_tags(values: list[str]) -> list[str]:
    """タグ配列の前後空白を除去し、空要素と重複を取り除く。"""

    cleaned: list[str] = []
    seen: set[str] = set()
    for value in values:
        trimmed = value.strip()
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        cleaned.append(trimmed)
    return cleaned


class ProblemCreateRequest(BaseModel):
    """Request model for logging a solved problem.

    復習関連のフィールドは受け付けない。新規登録は常に active/未登録状態から始まる。
    """

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        json_schema_extra={
            "examples": [
                {
                    "platform": "leetcode",
                    "title": "Two Sum",
                    "problem_id": "two-sum",
                    "difficulty": "Easy",
                    "url": "https://leetcode.com/problems/two-sum/",
                    "date_solved": "2024-05-01T10:00:00Z",
                    "topics": ["Array", "Hash Table"],
                    "companies": ["Google"],
                }
            ]
        },
    )

    platform: Platform
    title: str = Field(min_length=1, max_length=200)
    problem_id: str = Field(min_length=1, max_length=100)
    difficulty: str = Field(min_length=1, max_length=50)
    url: HttpUrl
    date_solved: datetime
    notes: str = Field(default="", max_length=10000)
    topics: list[str] = Field(default_factory=list)
    companies: list[str] = Field(default_factory=list)
    is_potd: bool = False

    @field_validator("topics", "companies", mode="after")
    @classmethod
    def _normalise_tags(cls, values: list[str]) -> list[str]:
        return _clean_tags(values)


class ProblemUpdateRequest(BaseModel):
    """Partial update for a problem.

    未指定のフィールドは変更しない。is_review を含む場合は復習サイクルの
    登録/解除ルールに従ってリセットされる。status=active は learned からの
    明示的な戻し操作として扱う。
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    platform: Platform | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    problem_id: str | None = Field(default=None, min_length=1, max_length=100)
    difficulty: str | None = Field(default=None, min_length=1, max_length=50)
    url: HttpUrl | None = None
    date_solved: datetime | None = None
    notes: str | None = Field(default=None, max_length=10000)
    topics: list[str] | None = None
    companies: list[str] | None = None
    status: ProblemStatus | None = None
    is_review: bool | None = None

    @field_validator("topics", "companies", mode="after")
    @classmethod
    def _normalise_tags(cls, values: list[str] | None) -> list[str] | None:
        if values is None:
            return None
        return _clean_tags(values)


class ProblemListResponse(BaseModel):
    items: list[Problem]
    total: int
    limit: int
    offset: int


class BulkCreateRequest(BaseModel):
    """一括登録リクエスト。URL が重複する問題はスキップされる。"""

    problems: list[ProblemCreateRequest]


class BulkCreateResponse(BaseModel):
    created: int
    skipped: int
    message: str


class DeleteResponse(BaseModel):
    ok: bool
    message: str
