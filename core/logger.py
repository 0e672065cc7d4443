"""
core/logger.py — GitHub 트렌딩 크롤러 구조화 로깅

아키텍처:
    structlog ──► stdlib.LoggerFactory ──► 두 개의 핸들러
                                           ├── StreamHandler     (콘솔)
                                           │     개발: 컬러 콘솔
                                           │     프로덕션: JSON
                                           └── RotatingFileHandler (파일)
                                                 항상 JSON
                                                 10 MB 초과 시 자동 교체
                                                 백업 최대 5개 유지

    ProcessorFormatter 가 각 핸들러에서 최종 렌더링을 담당합니다.
    stdlib logging 을 쓰는 모듈(core.config, uploader.db, alembic 등)의 로그도
    동일한 파이프라인을 통과합니다.

Context Injection:
    run_id / phase / repository / topic 이 with 블록 안의 모든 로그에 포함됩니다.
    Python contextvars 기반 — 스레드·비동기 양쪽에서 안전합니다.

JSON 출력 예시:
    {
        "@timestamp": "2026-10-17T10:00:00.000000Z",
        "level":      "info",
        "logger":     "crawler.github",
        "message":    "search_ok",
        "service":    "trending-crawler",
        "host":       "crawler-1",
        "run_id":     "20261017T100000",
        "phase":      "Crawling",
        "topic":      "python",
        "count":      20
    }

────────────────────────────────────────────────────────────────
빠른 시작:

    from core.logger import configure_logging, get_logger, log_context, Phase
    configure_logging()
    logger = get_logger(__name__)

    with log_context(run_id=run_id, phase=Phase.CRAWLING, topic="python"):
        logger.info("search_start")
────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import logging
import logging.handlers
import socket
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator, Optional

import structlog
from structlog.stdlib import ProcessorFormatter

# ─────────────────────────────────────────────────────────────
# 처리 단계 상수
# ─────────────────────────────────────────────────────────────

class Phase:
    """
    로그 컨텍스트에 사용하는 처리 단계 식별자.

    Usage:
        with log_context(phase=Phase.CSV_EXPORT):
            logger.info("export_start")
    """
    CRAWLING   = "Crawling"        # GitHub API 수집
    CLEANING   = "Cleaning"        # 레코드 정규화·검증
    CSV_EXPORT = "CSV Export"      # CSV 파일 기록
    UPLOAD     = "Upload"          # DB UPSERT
    SCHEDULER  = "Scheduler"       # 주기 실행 루프
    INIT       = "Initialization"  # 앱 초기화


# ─────────────────────────────────────────────────────────────
# 내부 상수
# ─────────────────────────────────────────────────────────────

_HOSTNAME = socket.gethostname()
_SERVICE  = "trending-crawler"
_LOG_FILE = "crawler.log"


# ─────────────────────────────────────────────────────────────
# 커스텀 structlog 프로세서
# ─────────────────────────────────────────────────────────────

def _add_service_context(
    logger: Any, method: str, event_dict: dict
) -> dict:
    """모든 로그에 서비스·호스트 메타를 삽입합니다."""
    event_dict.setdefault("service", _SERVICE)
    event_dict.setdefault("host",    _HOSTNAME)
    return event_dict


def _rename_event_to_message(
    logger: Any, method: str, event_dict: dict
) -> dict:
    """파일(JSON) 핸들러 전용: 'event' 키를 'message' 로 변경합니다."""
    event_dict["message"] = event_dict.pop("event", "")
    return event_dict


def _build_shared_processors() -> list:
    """structlog 과 stdlib 핸들러(foreign_pre_chain) 양쪽에서 공유하는 프로세서."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="@timestamp"),
        structlog.processors.StackInfoRenderer(),
        _add_service_context,
    ]


# ─────────────────────────────────────────────────────────────
# 로깅 설정
# ─────────────────────────────────────────────────────────────

def configure_logging(
    level:     str | None  = None,
    json_logs: bool | None = None,
    log_file:  bool        = True,
) -> None:
    """
    structlog + stdlib logging 을 통합 설정합니다.

    Args:
        level:     로그 레벨 (기본: LOG_LEVEL 설정 → "INFO")
        json_logs: 콘솔 JSON 강제 여부 (기본: production 이면 True)
        log_file:  파일 로그 활성화 (기본: True, LOG_DIR/crawler.log)
    """
    from core.config import get_settings

    s = get_settings()
    log_level_str = (level or s.LOG_LEVEL).upper()
    log_level     = getattr(logging, log_level_str, logging.INFO)
    use_json      = json_logs if json_logs is not None else s.is_production
    log_dir       = Path(s.LOG_DIR)

    shared = _build_shared_processors()

    # ── ① structlog 설정 (stdlib 브릿지) ─────────────────────
    #  wrap_for_formatter 가 마지막에 위치해야 합니다.
    structlog.configure(
        processors=shared + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )

    # ── ② 콘솔 포매터 ────────────────────────────────────────
    _console_renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty() or sys.stdout.isatty(),
            sort_keys=False,
        )
    )
    console_formatter = ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            structlog.processors.ExceptionRenderer(),
            _console_renderer,
        ],
    )

    # ── ③ 파일 포매터 (항상 JSON) ────────────────────────────
    file_formatter = ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            ProcessorFormatter.remove_processors_meta,
            structlog.processors.ExceptionRenderer(),
            _rename_event_to_message,
            structlog.processors.JSONRenderer(),
        ],
    )

    # ── ④ 핸들러 조립 ────────────────────────────────────────
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(log_level)

    all_handlers: list[logging.Handler] = [console_handler]

    if log_file:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename    = str(log_dir / _LOG_FILE),
            maxBytes    = 10 * 1024 * 1024,  # 10 MB
            backupCount = 5,
            encoding    = "utf-8",
            delay       = True,
        )
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(log_level)
        all_handlers.append(file_handler)

    # ── ⑤ 루트 로거에 핸들러 등록 ───────────────────────────
    root = logging.getLogger()
    root.handlers.clear()
    for h in all_handlers:
        root.addHandler(h)
    root.setLevel(log_level)

    # ── ⑥ 외부 라이브러리 로그 레벨 조정 ────────────────────
    _library_levels: dict[str, str] = {
        "sqlalchemy.engine": "WARNING",
        "sqlalchemy.pool":   "WARNING",
        "alembic":           "INFO",
        "urllib3":           "WARNING",
        "requests":          "WARNING",
    }
    for lib_name, lib_level in _library_levels.items():
        logging.getLogger(lib_name).setLevel(
            getattr(logging, lib_level, logging.WARNING)
        )

    structlog.get_logger(__name__).info(
        "logging_configured",
        level    = log_level_str,
        console  = "json" if use_json else "color",
        file     = str(log_dir / _LOG_FILE) if log_file else "disabled",
        rotation = "10MB × 5 backups" if log_file else "N/A",
    )


# ─────────────────────────────────────────────────────────────
# Context Injection API
# ─────────────────────────────────────────────────────────────

def bind_log_context(
    *,
    run_id:     Optional[str] = None,
    phase:      Optional[str] = None,
    repository: Optional[str] = None,
    topic:      Optional[str] = None,
    **extra: Any,
) -> None:
    """
    현재 스레드/코루틴의 로그 컨텍스트를 설정합니다.

    기존 컨텍스트는 유지되고, 지정한 키만 추가/업데이트됩니다.
    None 값은 무시됩니다.

    Args:
        run_id:     파이프라인 실행 식별자
        phase:      처리 단계 (Phase 상수 사용 권장)
        repository: 처리 중인 저장소 full_name
        topic:      수집 중인 GitHub 토픽
        **extra:    추가 컨텍스트 (language, since, batch 등 자유 키)
    """
    ctx = {k: v for k, v in {
        "run_id":     run_id,
        "phase":      phase,
        "repository": repository,
        "topic":      topic,
        **extra,
    }.items() if v is not None}

    if ctx:
        structlog.contextvars.bind_contextvars(**ctx)


def clear_log_context() -> None:
    """현재 스레드/코루틴의 모든 로그 컨텍스트를 초기화합니다."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(
    *,
    run_id:     Optional[str] = None,
    phase:      Optional[str] = None,
    repository: Optional[str] = None,
    topic:      Optional[str] = None,
    **extra: Any,
) -> Generator[None, None, None]:
    """
    로그 컨텍스트를 설정하고 with 블록 종료 시 이전 상태로 복원합니다.

    중첩 사용 가능 — 내부 블록이 끝나면 외부 블록의 컨텍스트가 그대로 돌아옵니다.

    Usage:
        with log_context(run_id=run_id, phase=Phase.CRAWLING):
            with log_context(topic="rust"):
                logger.info("search_start")   # run_id, phase, topic
            logger.info("crawl_done")          # run_id, phase
    """
    previous = structlog.contextvars.get_contextvars().copy()

    bind_log_context(
        run_id     = run_id,
        phase      = phase,
        repository = repository,
        topic      = topic,
        **extra,
    )
    try:
        yield
    finally:
        structlog.contextvars.clear_contextvars()
        if previous:
            structlog.contextvars.bind_contextvars(**previous)


def get_logger(name: str = __name__) -> Any:
    """모듈별 structlog 로거를 반환합니다."""
    return structlog.get_logger(name)
