"""
exporter/csv_exporter.py — 저장소 레코드 CSV 내보내기

파일 형식:
    UTF-8, 헤더 1행 + 레코드당 1행
    헤더는 사람이 읽는 제목(Name, Full Name, ...)
    Topics 는 ", " 로 이어 붙이고, license 딕셔너리는 Key / Name / SPDX ID 세 컬럼으로 펼칩니다.
    레코드가 0건이어도 헤더만 있는 파일을 만듭니다.

역방향:
    record_from_csv_row() 가 CSV 행(제목 헤더 또는 표준 키)을 RepositoryRecord 로 되돌립니다.
    uploader.repository_uploader.upload_from_csv 가 사용합니다.

사용법:
    exporter = CSVExporter("exports")
    path = exporter.export_repositories(records)
    rows = exporter.read_csv(path)
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import structlog

from core.config import get_settings
from processor.cleaner import clean_repository_data
from processor.models import RepositoryMetadata, RepositoryRecord

logger = structlog.get_logger(__name__)

# (표준 키, CSV 헤더 제목)
CSV_COLUMNS: tuple[tuple[str, str], ...] = (
    ("name",            "Name"),
    ("full_name",       "Full Name"),
    ("description",     "Description"),
    ("url",             "HTML URL"),
    ("homepage",        "Homepage"),
    ("stars",           "Stars"),
    ("forks",           "Forks"),
    ("watchers",        "Watchers"),
    ("open_issues",     "Open Issues"),
    ("language",        "Language"),
    ("topics",          "Topics"),
    ("default_branch",  "Default Branch"),
    ("created_at",      "Created At"),
    ("updated_at",      "Updated At"),
    ("license_key",     "License Key"),
    ("license_name",    "License Name"),
    ("license_spdx_id", "License SPDX ID"),
    ("owner",           "Owner Login"),
)

CSV_HEADERS: list[str] = [title for _, title in CSV_COLUMNS]

_TITLE_TO_KEY: dict[str, str] = {title: key for key, title in CSV_COLUMNS}

_TOPIC_SEPARATOR = ", "


@dataclass(frozen=True)
class ExportedFile:
    """list_exported_files() 항목."""

    name:        str
    path:        Path
    size:        int
    modified_at: datetime


# ─────────────────────────────────────────────────────────────
# 행 변환
# ─────────────────────────────────────────────────────────────

def _license_field(license_info: dict[str, Any], key: str) -> str:
    value = license_info.get(key)
    return value if isinstance(value, str) else ""


def record_to_csv_row(record: RepositoryRecord) -> dict[str, Any]:
    """RepositoryRecord → 헤더 제목을 키로 하는 CSV 행."""
    row = record.to_row()
    license_info = row.pop("license")
    row["topics"]          = _TOPIC_SEPARATOR.join(row["topics"])
    row["license_key"]     = _license_field(license_info, "key")
    row["license_name"]    = _license_field(license_info, "name")
    row["license_spdx_id"] = _license_field(license_info, "spdx_id")
    return {title: row[key] for key, title in CSV_COLUMNS}


def _to_int(value: Any) -> int:
    try:
        return max(0, int(str(value).strip()))
    except (TypeError, ValueError):
        return 0


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def record_from_csv_row(row: dict[str, Any]) -> RepositoryRecord:
    """
    CSV 행 → RepositoryRecord.

    헤더는 제목("Full Name")과 표준 키("full_name") 둘 다 허용합니다.
    숫자가 아닌 카운트는 0, Topics 는 쉼표로 나눠 공백을 제거합니다.
    """
    data = {_TITLE_TO_KEY.get(k, k): v for k, v in row.items() if isinstance(k, str)}

    topics = [t.strip() for t in _text(data.get("topics")).split(",") if t.strip()]

    license_info = {
        field: _text(data.get(f"license_{field}"))
        for field in ("key", "name", "spdx_id")
        if _text(data.get(f"license_{field}"))
    }

    return RepositoryRecord(
        name        = _text(data.get("name")),
        full_name   = _text(data.get("full_name")),
        description = _text(data.get("description")),
        url         = _text(data.get("url")),
        homepage    = _text(data.get("homepage")),
        stars       = _to_int(data.get("stars")),
        forks       = _to_int(data.get("forks")),
        language    = _text(data.get("language")),
        topics      = topics,
        owner       = _text(data.get("owner")),
        created_at  = _text(data.get("created_at")),
        updated_at  = _text(data.get("updated_at")),
        license     = license_info,
        metadata    = RepositoryMetadata(
            watchers       = _to_int(data.get("watchers")),
            open_issues    = _to_int(data.get("open_issues")),
            default_branch = _text(data.get("default_branch")) or "main",
        ),
    )


# ─────────────────────────────────────────────────────────────
# CSVExporter
# ─────────────────────────────────────────────────────────────

class CSVExporter:
    """CSV 파일 쓰기·읽기·목록 조회."""

    def __init__(self, output_dir: Optional[Union[str, Path]] = None) -> None:
        self.output_dir = Path(output_dir or get_settings().EXPORT_DIR)

    @staticmethod
    def default_filename(now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        return f"github-repositories-{now.strftime('%Y%m%dT%H%M%S')}.csv"

    def export_repositories(
        self,
        records:  Iterable[Union[RepositoryRecord, dict[str, Any]]],
        filename: Optional[str] = None,
    ) -> Path:
        """
        레코드를 CSV 로 기록하고 파일 경로를 반환합니다.

        Args:
            records:  RepositoryRecord 또는 원시 딕셔너리 (원시는 먼저 정규화)
            filename: 파일명 (기본: github-repositories-<UTC 시각>.csv, .csv 자동 부착)
        """
        filename = filename or self.default_filename()
        if not filename.endswith(".csv"):
            filename += ".csv"

        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename

        count = 0
        with path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=CSV_HEADERS)
            writer.writeheader()
            for record in records:
                if not isinstance(record, RepositoryRecord):
                    record = clean_repository_data(record)
                writer.writerow(record_to_csv_row(record))
                count += 1

        logger.info("csv_exported", path=str(path), records=count)
        return path

    def read_csv(self, path: Union[str, Path]) -> list[dict[str, str]]:
        """CSV 를 헤더 기준 딕셔너리 리스트로 읽습니다. 파일이 없으면 FileNotFoundError."""
        path = Path(path)
        with path.open(newline="", encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        logger.debug("csv_read", path=str(path), rows=len(rows))
        return rows

    def list_exported_files(self) -> list[ExportedFile]:
        """output_dir 의 CSV 파일 목록 (최근 수정 순)."""
        if not self.output_dir.is_dir():
            return []
        files = []
        for path in self.output_dir.glob("*.csv"):
            stat = path.stat()
            files.append(ExportedFile(
                name        = path.name,
                path        = path,
                size        = stat.st_size,
                modified_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            ))
        files.sort(key=lambda f: f.modified_at, reverse=True)
        return files
