from fastapi import APIRouter

from ..config import settings


router = APIRouter()


@router.get("/config")
def get_runtime_config() -> dict[str, object]:
    """Expose runtime config needed by the frontend.

    フロントエンドが復習ボタンの表示や一覧のページングを揃えるための
    実行時設定を返す。復習間隔はサーバ側の設定が唯一の正となる。
    """
    return {
        "review_intervals": list(settings.review_intervals),
        "review_timezone": settings.review_timezone,
        "max_page_size": settings.max_page_size,
    }
