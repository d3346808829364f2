"""Pytest configuration: expose the backend package and isolate storage during tests."""

import os
import sys
import tempfile
from pathlib import Path

_BACKEND_ROOT = Path(__file__).resolve().parents[1] / "apps" / "backend"
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))

# モジュール読み込み時に生成されるストアが開発用 DB を汚さないよう、
# テスト専用の一時ディレクトリを既定の保存先にする。
os.environ.setdefault(
    "TRACKER_DB_PATH",
    str(Path(tempfile.mkdtemp(prefix="tracker-tests-")) / "tracker.sqlite3"),
)
# API テストが連続でリクエストしても 429 にならない程度に緩める。
os.environ.setdefault("RATE_LIMIT_PER_MIN_IP", "10000")
