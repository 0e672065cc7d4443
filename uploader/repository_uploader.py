"""
uploader/repository_uploader.py — 저장소 레코드 배치 업로드

업로드 흐름:
    RepositoryRecord 목록 (크롤러 결과 또는 CSV 역변환)
        ├─ validate_repository — full_name / name / url 없는 레코드는 failed 로 집계
        ├─ record_to_db_row    — 타임스탬프 문자열 → datetime (파싱 불가 시 None)
        └─ batch_upload        — batch_size 개씩 upsert_repositories
                                 배치 하나가 실패해도 나머지 배치는 계속 진행

사용 예:
    uploader = RepositoryUploader(batch_size=500)
    result   = uploader.upload_repositories(records)
    print(result.to_dict())
    # {"total": 230, "successful": 230, "failed": 0, "errors": []}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import psycopg2
import structlog

from core.config import get_settings
from core.logger import Phase, log_context
from crawler.engine import ErrorType, classify_error
from exporter.csv_exporter import CSVExporter, record_from_csv_row
from processor.models import RepositoryRecord
from processor.validator import validate_repository
from uploader.db import (
    clear_repositories,
    count_repositories,
    ping_db,
    upsert_repositories,
)

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────────────────────
# 결과 컨테이너
# ─────────────────────────────────────────────────────────────

@dataclass
class UploadResult:
    """업로드 결과. errors 항목: {"batch", "error", "error_type", "records"}"""

    total:      int = 0
    successful: int = 0
    failed:     int = 0
    errors:     list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total":      self.total,
            "successful": self.successful,
            "failed":     self.failed,
            "errors":     self.errors,
        }


@dataclass(frozen=True)
class ConnectionStatus:
    ok:           bool
    record_count: Optional[int] = None
    error:        str           = ""


# ─────────────────────────────────────────────────────────────
# 행 변환
# ─────────────────────────────────────────────────────────────

def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 문자열 → datetime. 'Z' 접미사 허용, 파싱 불가 시 None."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def record_to_db_row(record: RepositoryRecord) -> dict[str, Any]:
    """RepositoryRecord → uploader.db.REPOSITORY_COLUMNS 키 딕셔너리."""
    row = record.to_row()
    return {
        "full_name":         row["full_name"],
        "name":              row["name"],
        "description":       row["description"],
        "url":               row["url"],
        "homepage":          row["homepage"],
        "stars":             row["stars"],
        "forks":             row["forks"],
        "watchers":          row["watchers"],
        "open_issues":       row["open_issues"],
        "language":          row["language"],
        "topics":            row["topics"],
        "default_branch":    row["default_branch"],
        "owner_login":       row["owner"],
        "license":           row["license"],
        "github_created_at": parse_timestamp(row["created_at"]),
        "github_updated_at": parse_timestamp(row["updated_at"]),
    }


# ─────────────────────────────────────────────────────────────
# RepositoryUploader
# ─────────────────────────────────────────────────────────────

class RepositoryUploader:
    """repositories 테이블 배치 업로더."""

    def __init__(self, batch_size: Optional[int] = None, table: Optional[str] = None) -> None:
        s = get_settings()
        self.batch_size = batch_size or s.UPLOAD_BATCH_SIZE
        self.table      = table or s.REPOSITORIES_TABLE
        if self.batch_size <= 0:
            raise ValueError(f"batch_size 는 1 이상이어야 합니다: {self.batch_size}")

    def batch_upload(self, rows: list[dict[str, Any]]) -> UploadResult:
        """
        rows 를 batch_size 개씩 업서트합니다.

        DB 오류가 난 배치는 failed / errors 에 기록하고 다음 배치로 넘어갑니다.
        """
        result = UploadResult(total=len(rows))

        for batch_no, start in enumerate(range(0, len(rows), self.batch_size), start=1):
            batch = rows[start:start + self.batch_size]
            with log_context(phase=Phase.UPLOAD, batch=batch_no):
                try:
                    upsert_repositories(batch, table=self.table)
                except psycopg2.Error as exc:
                    result.failed += len(batch)
                    result.errors.append({
                        "batch":      batch_no,
                        "error":      str(exc).strip(),
                        "error_type": ErrorType.DATABASE.value,
                        "records":    len(batch),
                    })
                    logger.error("batch_failed", records=len(batch), error=str(exc).strip())
                    continue

                result.successful += len(batch)
                logger.info("batch_uploaded", records=len(batch))

        return result

    def upload_repositories(self, records: Iterable[RepositoryRecord]) -> UploadResult:
        """레코드를 검증한 뒤 유효한 것만 업로드합니다. 무효 레코드는 failed 로 집계됩니다."""
        rows:    list[dict[str, Any]] = []
        invalid: list[dict[str, Any]] = []

        for record in records:
            problems = validate_repository(record)
            if problems:
                invalid.append({
                    "batch":      None,
                    "error":      "; ".join(problems),
                    "error_type": ErrorType.VALIDATION.value,
                    "records":    1,
                    "full_name":  record.full_name,
                })
                continue
            rows.append(record_to_db_row(record))

        result = self.batch_upload(rows)
        result.total  += len(invalid)
        result.failed += len(invalid)
        result.errors  = invalid + result.errors

        logger.info("upload_done", table=self.table, **{k: v for k, v in result.to_dict().items() if k != "errors"})
        return result

    def upload_from_csv(self, path: Union[str, Path]) -> UploadResult:
        """
        CSVExporter 가 만든 파일을 읽어 업로드합니다.

        Raises:
            FileNotFoundError: 파일 없음
            ValueError:        헤더만 있고 레코드가 없음
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"CSV 파일을 찾을 수 없습니다: {path}")

        rows = CSVExporter(path.parent).read_csv(path)
        if not rows:
            raise ValueError(f"CSV 파일에 레코드가 없습니다: {path}")

        logger.info("csv_loaded", path=str(path), rows=len(rows))
        return self.upload_repositories(record_from_csv_row(row) for row in rows)

    # ─────────────────────────────────────────────────────────
    # 관리
    # ─────────────────────────────────────────────────────────

    def test_connection(self) -> ConnectionStatus:
        """접속 확인 + 현재 레코드 수. DB 오류는 ConnectionStatus(ok=False) 로 반환합니다."""
        try:
            ping_db()
            count = count_repositories(self.table)
        except psycopg2.Error as exc:
            logger.error("db_connection_failed", error=str(exc).strip(), error_type=classify_error(exc).value)
            return ConnectionStatus(ok=False, error=str(exc).strip())
        logger.info("db_connection_ok", table=self.table, records=count)
        return ConnectionStatus(ok=True, record_count=count)

    def get_record_count(self) -> int:
        return count_repositories(self.table)

    def clear_table(self) -> int:
        return clear_repositories(self.table)
