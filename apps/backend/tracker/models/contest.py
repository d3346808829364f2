from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class ContestPlatform(str, Enum):
    leetcode = "leetcode"
    codeforces = "codeforces"
    atcoder = "atcoder"
    codechef = "codechef"
    other = "other"


class ContestStatus(str, Enum):
    scheduled = "scheduled"
    live = "live"
    completed = "completed"


class Contest(BaseModel):
    """A contest the user registered for or took part in.

    - duration は分単位
    - rank/total_problems は結果確定前は未設定（None）
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    platform: ContestPlatform
    start_time: datetime
    duration: int = Field(ge=1)
    url: str
    rank: int | None = Field(default=None, ge=1)
    problems_solved: int = Field(default=0, ge=0)
    total_problems: int | None = Field(default=None, ge=0)
    status: ContestStatus = ContestStatus.scheduled
    created_at: datetime
    updated_at: datetime


class ContestCreateRequest(BaseModel):
    """Request model for logging a contest. name と platform の組は一意。"""

    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        json_schema_extra={
            "examples": [
                {
                    "name": "Weekly Contest 400",
                    "platform": "leetcode",
                    "start_time": "2024-06-02T02:30:00Z",
                    "duration": 90,
                    "url": "https://leetcode.com/contest/weekly-contest-400/",
                    "rank": 1520,
                    "problems_solved": 3,
                    "total_problems": 4,
                    "status": "completed",
                }
            ]
        },
    )

    name: str = Field(min_length=1, max_length=200)
    platform: ContestPlatform
    start_time: datetime
    duration: int = Field(ge=1, description="Contest length in minutes / 開催時間（分）")
    url: HttpUrl
    rank: int | None = Field(default=None, ge=1)
    problems_solved: int = Field(default=0, ge=0)
    total_problems: int | None = Field(default=None, ge=0)
    status: ContestStatus = ContestStatus.scheduled


class ContestUpdateRequest(BaseModel):
    """Partial update for a contest.

    未指定のフィールドは変更しない。rank/total_problems は null を送ると未設定に戻る。
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str | None = Field(default=None, min_length=1, max_length=200)
    platform: ContestPlatform | None = None
    start_time: datetime | None = None
    duration: int | None = Field(default=None, ge=1)
    url: HttpUrl | None = None
    rank: int | None = Field(default=None, ge=1)
    problems_solved: int | None = Field(default=None, ge=0)
    total_problems: int | None = Field(default=None, ge=0)
    status: ContestStatus | None = None


class ContestListResponse(BaseModel):
    items: list[Contest]
    total: int
    limit: int
    offset: int
