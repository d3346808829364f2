import sqlite3

from fastapi import APIRouter, HTTPException, Query

from ..config import settings
from ..models.contest import (
    Contest,
    ContestCreateRequest,
    ContestListResponse,
    ContestPlatform,
    ContestStatus,
    ContestUpdateRequest,
)
from ..models.problem import DeleteResponse
from ..store import store

router = APIRouter(tags=["contests"])

_DUPLICATE_DETAIL = "Contest with this name and platform already exists"
_NOT_FOUND_DETAIL = "Contest not found"


@router.get(
    "",
    response_model=ContestListResponse,
    summary="コンテスト一覧を取得（開始時刻の新しい順）",
)
async def list_contests(
    platform: ContestPlatform | None = Query(default=None, description="開催プラットフォーム"),
    status: ContestStatus | None = Query(default=None, description="scheduled|live|completed"),
    limit: int = Query(default=100, ge=1, description="取得件数上限"),
    offset: int = Query(default=0, ge=0, description="オフセット"),
) -> ContestListResponse:
    if limit > settings.max_page_size:
        raise HTTPException(
            status_code=422,
            detail=f"limit must be <= {settings.max_page_size}",
        )
    filters = {
        "platform": platform.value if platform else None,
        "status": status.value if status else None,
    }
    items = store.contests.list_contests(**filters, limit=limit, offset=offset)
    total = store.contests.count_contests(**filters)
    return ContestListResponse(items=items, total=total, limit=limit, offset=offset)


@router.post(
    "",
    response_model=Contest,
    status_code=201,
    summary="コンテストを記録",
)
async def create_contest(req: ContestCreateRequest) -> Contest:
    try:
        return store.contests.create_contest(req)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=400, detail=_DUPLICATE_DETAIL)


@router.get(
    "/{contest_id}",
    response_model=Contest,
    summary="コンテストを ID で取得",
)
async def get_contest(contest_id: str) -> Contest:
    contest = store.contests.get_contest(contest_id)
    if contest is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND_DETAIL)
    return contest


@router.put(
    "/{contest_id}",
    response_model=Contest,
    summary="コンテストを部分更新（順位や解答数の記入など）",
)
async def update_contest(contest_id: str, req: ContestUpdateRequest) -> Contest:
    updates = req.model_dump(exclude_unset=True)
    try:
        contest = store.contests.update_contest(contest_id, updates)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=400, detail=_DUPLICATE_DETAIL)
    if contest is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND_DETAIL)
    return contest


@router.delete(
    "/{contest_id}",
    response_model=DeleteResponse,
    summary="コンテストを削除",
)
async def delete_contest(contest_id: str) -> DeleteResponse:
    if not store.contests.delete_contest(contest_id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND_DETAIL)
    return DeleteResponse(ok=True, message="Contest deleted successfully")
