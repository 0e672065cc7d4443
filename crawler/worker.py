"""
crawler/worker.py — 수집 파이프라인 및 CLI

파이프라인 (run_pipeline):
    GitHubCrawler.crawl()          trending + 토픽별 수집 (정규화·검증 포함)
        └─► dedupe_repositories    full_name 기준 중복 제거 (먼저 나온 레코드 유지)
        └─► CSVExporter            exports/github-repositories-<run_id>.csv
        └─► RepositoryUploader     (선택) Supabase upsert + crawler_logs 기록

실행 모드:
  1. 단일 실행: python -m crawler.worker crawl [--language go] [--since weekly] [--upload]
  2. 주기 실행: python -m crawler.worker schedule [--interval 7200]
     - SIGTERM/SIGINT 수신 시 현재 실행을 마친 뒤 종료

관리 명령:
  upload CSV_PATH   내보낸 CSV 재업로드
  check-db          접속 확인 + 레코드 수
  init-db           alembic upgrade head
  list-exports      내보낸 CSV 목록

종료 코드: 성공 0, 실패 1
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import psycopg2

from core.config import get_settings, validate_settings
from core.logger import Phase, configure_logging, log_context
from crawler.engine import classify_error
from crawler.github import SINCE_CHOICES, GitHubCrawler
from exporter.csv_exporter import CSVExporter
from processor.models import RepositoryRecord
from processor.text_utils import calculate_md5, extract_keywords
from uploader.db import STATUS_FAILED, STATUS_PARTIAL, STATUS_SUCCESS, log_crawler_activity
from uploader.repository_uploader import RepositoryUploader, UploadResult

logger = logging.getLogger(__name__)

CRAWLER_NAME = "github-trending"

_ALEMBIC_INI = Path(__file__).resolve().parents[1] / "alembic.ini"


# ── 결과 컨테이너 ─────────────────────────────────────────────

@dataclass
class PipelineResult:
    """run_pipeline() 반환 타입."""

    run_id:                 str
    crawled:                int                    = 0
    unique:                 int                    = 0
    duplicate_descriptions: int                    = 0
    keywords:               list[str]              = field(default_factory=list)
    csv_path:               Optional[Path]         = None
    upload:                 Optional[UploadResult] = None
    errors:                 list[dict[str, Any]]   = field(default_factory=list)
    fatal_error:            Optional[dict[str, Any]] = None

    @property
    def status(self) -> str:
        if self.fatal_error is not None:
            return STATUS_FAILED
        if self.upload is not None and self.upload.total > 0 and self.upload.successful == 0:
            return STATUS_FAILED
        if self.errors or (self.upload is not None and self.upload.failed):
            return STATUS_PARTIAL
        return STATUS_SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id":                 self.run_id,
            "status":                 self.status,
            "crawled":                self.crawled,
            "unique":                 self.unique,
            "duplicate_descriptions": self.duplicate_descriptions,
            "keywords":               self.keywords,
            "csv_path":               str(self.csv_path) if self.csv_path else None,
            "upload":                 self.upload.to_dict() if self.upload else None,
            "errors":                 self.errors,
            "fatal_error":            self.fatal_error,
        }


# ── 파이프라인 단계 ───────────────────────────────────────────

def dedupe_repositories(records: list[RepositoryRecord]) -> list[RepositoryRecord]:
    """full_name 기준 중복 제거. 순서를 유지하고 먼저 나온 레코드를 남깁니다."""
    seen: set[str] = set()
    unique: list[RepositoryRecord] = []
    for record in records:
        if record.full_name in seen:
            continue
        seen.add(record.full_name)
        unique.append(record)
    return unique


def summarize_descriptions(records: list[RepositoryRecord]) -> tuple[int, list[str]]:
    """
    (설명문이 완전히 같은 추가 레코드 수, 전체 설명문 상위 키워드 10개)

    포크·미러 저장소가 원본 설명을 그대로 쓰는 경우를 집계하는 용도입니다.
    """
    descriptions = [r.description for r in records if r.description]
    fingerprints = Counter(calculate_md5(d) for d in descriptions)
    duplicates   = sum(count - 1 for count in fingerprints.values())
    return duplicates, extract_keywords(" ".join(descriptions), limit=10)


def _record_activity(result: PipelineResult) -> None:
    """crawler_logs 기록. 실패해도 파이프라인 결과에는 영향 없음."""
    message = (
        f"{result.status}: crawled={result.crawled} unique={result.unique}"
        + (f" error={result.fatal_error['error']}" if result.fatal_error else "")
    )
    try:
        log_crawler_activity(CRAWLER_NAME, result.status, message, details=result.to_dict())
    except psycopg2.Error as exc:
        logger.warning("crawler_logs 기록 실패 | %s: %s", type(exc).__name__, exc)


def run_pipeline(
    language:       str  = "",
    since:          str  = "daily",
    limit:          int  = 50,
    include_topics: bool = True,
    export:         bool = True,
    upload:         bool = False,
    crawler:        Optional[GitHubCrawler]      = None,
    exporter:       Optional[CSVExporter]        = None,
    uploader:       Optional[RepositoryUploader] = None,
) -> PipelineResult:
    """
    수집 → 중복 제거 → CSV → (선택) 업로드를 1회 실행합니다.

    어느 단계에서든 예외가 나면 fatal_error 에 기록하고 status="failed" 결과를 반환합니다.
    """
    run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    result = PipelineResult(run_id=run_id)

    with log_context(run_id=run_id):
        logger.info(
            "파이프라인 시작 | language=%s since=%s limit=%d topics=%s export=%s upload=%s",
            language or "*", since, limit, include_topics, export, upload,
        )
        try:
            with log_context(phase=Phase.CRAWLING):
                crawl = (crawler or GitHubCrawler()).crawl(
                    language=language,
                    since=since,
                    limit=limit,
                    include_topics=include_topics,
                )
            result.errors.extend(crawl.errors)
            result.crawled = crawl.total

            records = dedupe_repositories(crawl.all_repositories())
            result.unique = len(records)
            result.duplicate_descriptions, result.keywords = summarize_descriptions(records)

            if export:
                with log_context(phase=Phase.CSV_EXPORT):
                    result.csv_path = (exporter or CSVExporter()).export_repositories(
                        records, filename=f"github-repositories-{run_id}.csv"
                    )

            if upload:
                with log_context(phase=Phase.UPLOAD):
                    result.upload = (uploader or RepositoryUploader()).upload_repositories(records)

        except Exception as exc:
            result.fatal_error = {
                "error_type": classify_error(exc).value,
                "error":      f"{type(exc).__name__}: {exc}",
            }
            logger.exception("파이프라인 실패 | %s", result.fatal_error["error"])

        if upload:
            _record_activity(result)

        logger.info(
            "파이프라인 종료 | status=%s crawled=%d unique=%d csv=%s",
            result.status, result.crawled, result.unique, result.csv_path,
        )
    return result


# ── 실행 모드 ────────────────────────────────────────────────

class _ShutdownFlag:
    """SIGTERM/SIGINT 를 받으면 running 을 False 로 전환합니다."""

    def __init__(self) -> None:
        self.running = True
        signal.signal(signal.SIGTERM, self._handle)
        signal.signal(signal.SIGINT,  self._handle)

    def _handle(self, signum, frame) -> None:  # noqa: ANN001
        logger.info("종료 신호 수신 (%d), 현재 실행 완료 후 종료합니다…", signum)
        self.running = False


def run_schedule(
    interval:  int,
    max_runs:  Optional[int] = None,
    **pipeline_kwargs: Any,
) -> list[PipelineResult]:
    """
    interval 초마다 run_pipeline 을 실행합니다.

    종료 신호를 받거나 max_runs 회를 채우면 멈춥니다. 대기 중에도 1초 단위로 신호를 확인합니다.
    """
    flag    = _ShutdownFlag()
    results: list[PipelineResult] = []

    with log_context(phase=Phase.SCHEDULER):
        logger.info("스케줄러 시작 | interval=%ds max_runs=%s", interval, max_runs)

        while flag.running:
            results.append(run_pipeline(**pipeline_kwargs))
            if max_runs is not None and len(results) >= max_runs:
                break

            deadline = time.monotonic() + interval
            while flag.running:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                time.sleep(min(1.0, remaining))

        logger.info("스케줄러 종료 | runs=%d", len(results))
    return results


def init_db() -> None:
    """alembic upgrade head 를 실행합니다."""
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(_ALEMBIC_INI))
    cfg.attributes["configure_logger"] = False
    cfg.set_main_option("sqlalchemy.url", get_settings().DATABASE_URL.replace("%", "%%"))
    command.upgrade(cfg, "head")
    logger.info("마이그레이션 완료 (head)")


# ── 명령 핸들러 ──────────────────────────────────────────────

def _cmd_crawl(args: argparse.Namespace) -> int:
    result = run_pipeline(
        language       = args.language,
        since          = args.since,
        limit          = args.limit,
        include_topics = not args.no_topics,
        export         = not args.no_export,
        upload         = args.upload,
    )
    return 1 if result.status == STATUS_FAILED else 0


def _cmd_schedule(args: argparse.Namespace) -> int:
    run_schedule(
        interval       = args.interval or get_settings().CRAWL_INTERVAL,
        max_runs       = args.max_runs,
        language       = args.language,
        since          = args.since,
        limit          = args.limit,
        include_topics = not args.no_topics,
        export         = not args.no_export,
        upload         = args.upload,
    )
    return 0


def _cmd_upload(args: argparse.Namespace) -> int:
    try:
        result = RepositoryUploader().upload_from_csv(args.csv_path)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("업로드 불가 | %s", exc)
        return 1
    logger.info(
        "업로드 완료 | total=%d successful=%d failed=%d",
        result.total, result.successful, result.failed,
    )
    return 0 if result.ok else 1


def _cmd_check_db(args: argparse.Namespace) -> int:
    status = RepositoryUploader().test_connection()
    if not status.ok:
        logger.error("DB 접속 실패 | %s", status.error)
        return 1
    print(f"OK: {get_settings().REPOSITORIES_TABLE}: {status.record_count} records")
    return 0


def _cmd_init_db(args: argparse.Namespace) -> int:
    init_db()
    return 0


def _cmd_list_exports(args: argparse.Namespace) -> int:
    files = CSVExporter().list_exported_files()
    if not files:
        print("(no exports)")
    for f in files:
        print(f"{f.modified_at:%Y-%m-%d %H:%M:%S}  {f.size:>10,d}  {f.name}")
    return 0


# 명령 → (핸들러, DATABASE_URL 필수 여부)
_COMMANDS = {
    "crawl":        (_cmd_crawl,        False),
    "schedule":     (_cmd_schedule,     False),
    "upload":       (_cmd_upload,       True),
    "check-db":     (_cmd_check_db,     True),
    "init-db":      (_cmd_init_db,      True),
    "list-exports": (_cmd_list_exports, False),
}


# ── 진입점 ────────────────────────────────────────────────────

def _add_crawl_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--language", default="", help="언어 필터 (예: python). 기본: 전체")
    parser.add_argument("--since", choices=SINCE_CHOICES, default="daily", help="생성 기간 (기본 daily)")
    parser.add_argument("--limit", type=int, default=50, help="trending 최대 건수 (기본 50)")
    parser.add_argument("--no-topics", action="store_true", help="토픽별 수집 생략")
    parser.add_argument("--no-export", action="store_true", help="CSV 내보내기 생략")
    parser.add_argument("--upload", action="store_true", help="Supabase 업로드 수행")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trending-crawler", description="GitHub Trending Crawler")
    sub = parser.add_subparsers(dest="command", required=True)

    _add_crawl_options(sub.add_parser("crawl", help="1회 수집"))

    schedule = sub.add_parser("schedule", help="주기 수집 (SIGTERM 까지)")
    _add_crawl_options(schedule)
    schedule.add_argument("--interval", type=int, default=None, help="실행 간격 초 (기본 CRAWL_INTERVAL)")
    schedule.add_argument("--max-runs", type=int, default=None, help="지정 횟수 실행 후 종료")

    upload = sub.add_parser("upload", help="CSV 파일 업로드")
    upload.add_argument("csv_path", type=Path)

    sub.add_parser("check-db",     help="DB 접속 확인")
    sub.add_parser("init-db",      help="alembic upgrade head")
    sub.add_parser("list-exports", help="내보낸 CSV 목록")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    configure_logging()

    handler, require_database = _COMMANDS[args.command]
    require_database = require_database or bool(getattr(args, "upload", False))
    try:
        validate_settings(require_database=require_database)
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    with log_context(phase=Phase.INIT, command=args.command):
        logger.info("명령 실행 | %s", args.command)
    return handler(args)


if __name__ == "__main__":
    sys.exit(main())
