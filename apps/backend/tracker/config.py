from typing import Annotated
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources.types import NoDecode

from .scheduler import DEFAULT_REVIEW_INTERVALS, validate_intervals


DEFAULT_DB_PATH = ".data/tracker.sqlite3"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    環境変数から読み込まれるアプリ設定クラス。
    - environment: 実行環境（development/staging/production など）
    - review_intervals: 復習間隔（日数）の固定シーケンス
    - review_timezone: 期日判定に使うカレンダー日のタイムゾーン
    """

    environment: str = Field(
        default="development",
        description="Runtime environment / 実行環境",
    )

    # --- データ永続化設定 ---
    tracker_db_path: str = Field(
        default=DEFAULT_DB_PATH,
        description="Path to SQLite database for problem persistence / 問題データ用SQLite DBパス",
    )

    # --- 復習スケジューラ ---
    review_intervals: Annotated[tuple[int, ...], NoDecode] = Field(
        default=DEFAULT_REVIEW_INTERVALS,
        description=(
            "Ordered review intervals in days (comma separated, strictly increasing) / "
            "復習間隔（日数, カンマ区切り, 狭義単調増加）"
        ),
        validation_alias=AliasChoices("review_intervals", "intervals"),
    )
    review_timezone: str = Field(
        default="UTC",
        description="IANA timezone used to derive calendar days for due checks / 期日判定のタイムゾーン",
    )
    max_page_size: int = Field(
        default=100,
        description="Upper bound for list endpoints' limit parameter / 一覧取得の最大件数",
    )

    # --- Operations/Observability ---
    rate_limit_per_min_ip: int = Field(
        default=240,
        description="Per-IP API requests per minute / IP単位の毎分上限",
    )
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN (enable if set)"
    )
    allowed_cors_origins: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(),
        description=(
            "Comma separated CORS origins / CORS で許可するオリジンのカンマ区切り一覧"
        ),
        validation_alias=AliasChoices("allowed_cors_origins", "cors_allowed_origins"),
    )

    # Pydantic v2 settings config
    # - env_file: .env を読み込む
    # - extra: .env に存在する未使用キーを無視
    # - case_sensitive: 環境変数キーの大小文字を区別しない
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("review_intervals", mode="before")
    @classmethod
    def _parse_review_intervals(cls, raw_intervals: object) -> tuple[int, ...]:
        """Parse and validate the review interval sequence.

        なぜ: 間隔が空・非正・非単調だとスケジューラの状態遷移が破綻するため、
        起動時に検証して不正な値は即座に拒否する。`2,4,7` のようなカンマ区切り
        文字列とシーケンスの双方を受け付ける。
        """

        if isinstance(raw_intervals, str):
            candidates: list[object] = [
                part.strip() for part in raw_intervals.split(",") if part.strip()
            ]
        else:
            try:
                candidates = list(raw_intervals)  # type: ignore[arg-type]
            except TypeError as exc:
                raise ValueError("REVIEW_INTERVALS must be a sequence of integers") from exc

        parsed: list[int] = []
        for candidate in candidates:
            if isinstance(candidate, bool):
                raise ValueError("REVIEW_INTERVALS must contain integers only")
            try:
                parsed.append(int(candidate))  # type: ignore[arg-type]
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    f"REVIEW_INTERVALS contains a non-integer value: {candidate!r}"
                ) from exc
        return validate_intervals(parsed)

    @field_validator("review_timezone", mode="after")
    @classmethod
    def _validate_review_timezone(cls, value: str) -> str:
        name = (value or "").strip() or "UTC"
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"REVIEW_TIMEZONE is not a known IANA timezone: {name!r}") from exc
        return name

    @field_validator("max_page_size", mode="after")
    @classmethod
    def _validate_max_page_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MAX_PAGE_SIZE must be at least 1")
        return value

    @field_validator("allowed_cors_origins", mode="before")
    @classmethod
    def _normalise_allowed_cors_origins(
        cls, raw_origins: object
    ) -> tuple[str, ...] | object:  # pragma: no cover - pydantic handles typing
        """Convert environment input into a deduplicated tuple of origins.

        なぜ: CORS 設定を `.env` で管理するときに空白や重複が混ざりやすいため、
        FastAPI へ渡す前にトリムと重複排除を行って安全な配列へ正規化する。
        """

        if raw_origins is None:
            candidates: list[str] = []
        elif isinstance(raw_origins, str):
            candidates = raw_origins.split(",")
        else:
            try:
                candidates = list(raw_origins)
            except TypeError:
                return raw_origins

        normalised: list[str] = []
        seen: set[str] = set()
        for candidate in candidates:
            if not isinstance(candidate, str):
                continue
            trimmed = candidate.strip()
            if not trimmed or trimmed in seen:
                continue
            seen.add(trimmed)
            normalised.append(trimmed)

        return tuple(normalised)

    @property
    def review_tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.review_timezone)


settings = Settings()
