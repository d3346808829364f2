from fastapi import APIRouter, HTTPException, Query

from ..models.problem import Problem, ProblemStatus
from ..models.review import (
    ReviewCompleteRequest,
    ReviewCompleteResponse,
    ReviewDueResponse,
    ReviewEnrollRequest,
    ReviewStatsResponse,
)
from ..store import ReviewNotEnrolledError, store

router = APIRouter(tags=["review"])


@router.get(
    "/due",
    response_model=ReviewDueResponse,
    summary="本日までに復習期日を迎えた問題を取得",
)
async def review_due(
    limit: int | None = Query(default=None, ge=1, description="取得件数上限"),
) -> ReviewDueResponse:
    """Return problems whose review day is today or earlier (oldest first)."""
    items = store.list_due(limit=limit)
    message = (
        f"You have {len(items)} problems due for review!" if items else None
    )
    return ReviewDueResponse(items=items, count=len(items), message=message)


@router.get(
    "/stats",
    response_model=ReviewStatsResponse,
    summary="進捗統計（総数/ステータス別/復習中/期日到来）",
)
async def review_stats() -> ReviewStatsResponse:
    return ReviewStatsResponse(**store.get_stats())


@router.post(
    "/{problem_id}/enroll",
    response_model=Problem,
    summary="復習サイクルへ登録/解除",
)
async def enroll_problem(problem_id: str, req: ReviewEnrollRequest) -> Problem:
    """Enroll (restarting from the first interval) or unenroll a problem."""
    problem = store.set_review(problem_id, req.is_review)
    if problem is None:
        raise HTTPException(status_code=404, detail="Problem not found")
    return problem


@router.post(
    "/{problem_id}/reviewed",
    response_model=ReviewCompleteResponse,
    summary="復習完了を記録して次回日を更新",
)
async def complete_review(
    problem_id: str, req: ReviewCompleteRequest | None = None
) -> ReviewCompleteResponse:
    """Advance to the next interval, or mark the problem as learned after the last one.

    - current_interval 未指定: 保存済みの interval から進める
    - 最終間隔の後は status=learned となり復習サイクルから外れる
    """
    current_interval = req.current_interval if req is not None else None
    try:
        outcome = store.record_review(problem_id, current_interval)
    except ReviewNotEnrolledError:
        raise HTTPException(status_code=409, detail="Problem is not enrolled for review")
    if outcome is None:
        raise HTTPException(status_code=404, detail="Problem not found")
    problem, message = outcome
    return ReviewCompleteResponse(
        problem=problem,
        message=message,
        graduated=problem.status is ProblemStatus.learned,
    )
