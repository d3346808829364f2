"""復習間隔・タイムゾーン・CORS 設定の読み込みと検証を確認するテスト群。"""

import pytest
from pydantic import ValidationError

from tracker.config import Settings
from tracker.scheduler import DEFAULT_REVIEW_INTERVALS


@pytest.fixture(autouse=True)
def _clear_review_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("REVIEW_INTERVALS", "INTERVALS", "REVIEW_TIMEZONE", "MAX_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_use_two_four_seven_days():
    config = Settings(_env_file=None)

    assert config.review_intervals == DEFAULT_REVIEW_INTERVALS
    assert config.review_timezone == "UTC"
    assert config.max_page_size == 100


def test_review_intervals_read_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("REVIEW_INTERVALS", " 1, 3 ,10 ")

    config = Settings(_env_file=None)

    assert config.review_intervals == (1, 3, 10)


def test_review_intervals_accept_short_alias(monkeypatch):
    monkeypatch.setenv("INTERVALS", "3,5")

    assert Settings(_env_file=None).review_intervals == (3, 5)


@pytest.mark.parametrize(
    "raw",
    ["", "0,2", "4,2", "2,2", "2,abc", "-1,3"],
    ids=["empty", "zero", "decreasing", "duplicate", "non-int", "negative"],
)
def test_invalid_review_intervals_are_rejected(monkeypatch, raw):
    monkeypatch.setenv("REVIEW_INTERVALS", raw)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_review_timezone_must_be_known(monkeypatch):
    monkeypatch.setenv("REVIEW_TIMEZONE", "Asia/Tokyo")
    config = Settings(_env_file=None)
    assert config.review_timezone == "Asia/Tokyo"
    assert config.review_tzinfo.key == "Asia/Tokyo"

    monkeypatch.setenv("REVIEW_TIMEZONE", "Mars/Olympus_Mons")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_max_page_size_must_be_positive(monkeypatch):
    monkeypatch.setenv("MAX_PAGE_SIZE", "0")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_settings_reads_cors_origins_from_env(monkeypatch):
    """`CORS_ALLOWED_ORIGINS` から値を読み込み、トリムと重複排除を行う。"""

    monkeypatch.setenv(
        "CORS_ALLOWED_ORIGINS",
        " https://app.example.com ,https://admin.example.com,https://app.example.com ",
    )

    config = Settings(_env_file=None)

    assert config.allowed_cors_origins == (
        "https://app.example.com",
        "https://admin.example.com",
    )
