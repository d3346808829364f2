from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any


def normalize_non_negative_int(value: Any) -> int:
    """与えられた値を非負整数に正規化する。

    repetition/interval は復習サイクルの添字と日数なので、手作業での DB 編集や
    古いデータで負値・不正値が混ざっても 0 に矯正して状態遷移を破綻させない。"""

    try:
        ivalue = int(value)
    except (TypeError, ValueError):
        return 0
    return ivalue if ivalue >= 0 else 0


def to_iso_utc(moment: datetime) -> str:
    """Serialise a datetime as an ISO-8601 UTC string (naive values are taken as UTC)."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat()


def parse_iso(raw: str | None) -> datetime | None:
    if not raw:
        return None
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def dump_tags(values: list[str]) -> str:
    return json.dumps(list(values), ensure_ascii=False)


def load_tags(raw: str | None) -> list[str]:
    """JSON 配列として保存したタグを読み出す。壊れた値は空配列として扱う。"""

    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [str(item) for item in parsed if isinstance(item, str)]
