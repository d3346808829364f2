import sqlite3

from fastapi import APIRouter, HTTPException, Query

from ..config import settings
from ..models.problem import (
    BulkCreateRequest,
    BulkCreateResponse,
    DeleteResponse,
    Platform,
    Problem,
    ProblemCreateRequest,
    ProblemListResponse,
    ProblemStatus,
    ProblemUpdateRequest,
)
from ..store import store

router = APIRouter(tags=["problems"])

_DUPLICATE_URL_DETAIL = "Problem with this URL already exists"
_NOT_FOUND_DETAIL = "Problem not found"


@router.get(
    "",
    response_model=ProblemListResponse,
    summary="問題一覧を取得（フィルタ/ページング対応）",
)
async def list_problems(
    platform: Platform | None = Query(default=None, description="leetcode|codeforces|atcoder"),
    status: ProblemStatus | None = Query(default=None, description="active|learned"),
    is_review: bool | None = Query(default=None, description="復習サイクル登録中のみ/除外"),
    is_potd: bool | None = Query(default=None, description="POTD リストのみ/除外"),
    company: str | None = Query(default=None, description="企業タグで絞り込み"),
    topic: str | None = Query(default=None, description="トピックタグで絞り込み"),
    limit: int = Query(default=100, ge=1, description="取得件数上限"),
    offset: int = Query(default=0, ge=0, description="オフセット"),
) -> ProblemListResponse:
    """List tracked problems, newest first."""
    if limit > settings.max_page_size:
        raise HTTPException(
            status_code=422,
            detail=f"limit must be <= {settings.max_page_size}",
        )
    filters = {
        "platform": platform.value if platform else None,
        "status": status.value if status else None,
        "is_review": is_review,
        "is_potd": is_potd,
        "company": company,
        "topic": topic,
    }
    items = store.list_problems(**filters, limit=limit, offset=offset)
    total = store.count_problems(**filters)
    return ProblemListResponse(items=items, total=total, limit=limit, offset=offset)


@router.post(
    "",
    response_model=Problem,
    status_code=201,
    summary="解いた問題を登録",
)
async def create_problem(req: ProblemCreateRequest) -> Problem:
    """Log a solved problem. Review fields always start unenrolled."""
    try:
        return store.create_problem(req)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=400, detail=_DUPLICATE_URL_DETAIL)


@router.post(
    "/bulk",
    response_model=BulkCreateResponse,
    summary="問題を一括登録（URL 重複はスキップ）",
)
async def bulk_create_problems(req: BulkCreateRequest) -> BulkCreateResponse:
    created, skipped = store.bulk_create(req.problems)
    return BulkCreateResponse(
        created=created,
        skipped=skipped,
        message=f"Bulk import completed: {created} created, {skipped} skipped",
    )


@router.get(
    "/{problem_id}",
    response_model=Problem,
    summary="問題を ID で取得",
)
async def get_problem(problem_id: str) -> Problem:
    problem = store.get_problem(problem_id)
    if problem is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND_DETAIL)
    return problem


@router.put(
    "/{problem_id}",
    response_model=Problem,
    summary="問題を部分更新",
)
async def update_problem(problem_id: str, req: ProblemUpdateRequest) -> Problem:
    """Apply a partial update.

    is_review を含む場合は復習サイクルの登録/解除として扱い、間隔と次回日を
    リセットする。status=learned の指定は復習サイクルからの除外も伴う。
    """
    updates = req.model_dump(exclude_unset=True)
    try:
        problem = store.update_problem(problem_id, updates)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=400, detail=_DUPLICATE_URL_DETAIL)
    if problem is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND_DETAIL)
    return problem


@router.delete(
    "/{problem_id}",
    response_model=DeleteResponse,
    summary="問題を削除",
)
async def delete_problem(problem_id: str) -> DeleteResponse:
    if not store.delete_problem(problem_id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND_DETAIL)
    return DeleteResponse(ok=True, message="Problem deleted successfully")
