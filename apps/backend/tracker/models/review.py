from pydantic import BaseModel

from .problem import Problem


class ReviewEnrollRequest(BaseModel):
    """復習サイクルへの登録/解除リクエスト。

    - is_review=True: 最初の間隔から再スタート（途中からの再開ではない）
    - is_review=False: 復習フィールドをすべてリセット
    """

    is_review: bool


class ReviewCompleteRequest(BaseModel):
    """Request model for confirming a review.

    current_interval は旧クライアント互換のための任意項目。未指定なら
    保存済みの interval を使用する。シーケンスにない値（負数を含む）も拒否せず、
    サイクルの先頭として扱う。
    """

    current_interval: int | None = None


class ReviewCompleteResponse(BaseModel):
    problem: Problem
    message: str
    graduated: bool


class ReviewDueResponse(BaseModel):
    """Problems whose scheduled review day is today or earlier."""

    items: list[Problem]
    count: int
    message: str | None = None


class ReviewStatsResponse(BaseModel):
    """進捗統計レスポンス。

    - total: 登録済みの問題数
    - active / learned: ステータス別件数
    - in_review: 復習サイクルに登録中の件数
    - due_now: 本日までに復習期日を迎えた件数
    """

    total: int
    active: int
    learned: int
    in_review: int
    due_now: int
