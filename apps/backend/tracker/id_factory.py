"""ID 生成ユーティリティ。"""

from __future__ import annotations

import uuid


def generate_problem_id() -> str:
    """問題レコードの新規 ID を生成する。

    プラットフォーム側の問題番号（problem_id）とは独立させ、URL 変更や
    同名問題の登録でも衝突しないよう prefix "pb:" 付きの UUID を採用する。
    """

    return f"pb:{uuid.uuid4().hex}"


def generate_contest_id() -> str:
    """コンテスト記録の新規 ID を生成する（prefix "ct:"）。"""

    return f"ct:{uuid.uuid4().hex}"
