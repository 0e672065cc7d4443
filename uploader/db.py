"""
uploader/db.py — repositories / crawler_logs DB 연산

Supabase(PostgreSQL)에 psycopg2 로 직접 접속합니다.
스키마는 Alembic 마이그레이션(database/migrations)이 관리합니다.

repositories 테이블 (업서트 키: full_name):
    id                BIGSERIAL PK
    full_name         TEXT UNIQUE     예: 'octocat/hello-world'
    name / description / url / homepage / language / default_branch / owner_login
    stars / forks / watchers / open_issues   INTEGER >= 0
    topics            TEXT[]
    license           JSONB
    github_created_at TIMESTAMPTZ     GitHub 생성 시각 (파싱 불가 시 NULL)
    github_updated_at TIMESTAMPTZ
    crawled_at        TIMESTAMPTZ     마지막 업서트 시각
    created_at / updated_at

crawler_logs 테이블 (append-only):
    id, crawler_name, status, message, details JSONB, created_at
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Optional

import psycopg2
import psycopg2.extras
from psycopg2 import sql

from core.config import get_settings

logger = logging.getLogger(__name__)

# ── 상태 상수 (crawler_logs.status) ───────────────────────────
STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_FAILED  = "failed"

# 업서트 대상 컬럼 (순서 = VALUES 튜플 순서)
REPOSITORY_COLUMNS: tuple[str, ...] = (
    "full_name",
    "name",
    "description",
    "url",
    "homepage",
    "stars",
    "forks",
    "watchers",
    "open_issues",
    "language",
    "topics",
    "default_branch",
    "owner_login",
    "license",
    "github_created_at",
    "github_updated_at",
)


def _db_url() -> str:
    return get_settings().DATABASE_URL


@contextmanager
def _conn():
    """psycopg2 커넥션 컨텍스트 매니저 — 커밋/롤백 자동 처리"""
    conn = psycopg2.connect(_db_url())
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _table(name: Optional[str] = None) -> sql.Identifier:
    return sql.Identifier(name or get_settings().REPOSITORIES_TABLE)


# ─────────────────────────────────────────────────────────────
# 쓰기
# ─────────────────────────────────────────────────────────────

def upsert_repositories(rows: list[dict[str, Any]], table: Optional[str] = None) -> int:
    """
    저장소 행을 full_name 기준으로 INSERT … ON CONFLICT DO UPDATE 합니다.

    같은 배치 안에 full_name 이 중복되면 마지막 행만 남깁니다
    (PostgreSQL 은 한 문장에서 같은 행을 두 번 갱신할 수 없음).

    Args:
        rows:  REPOSITORY_COLUMNS 키를 가진 딕셔너리 목록
        table: 대상 테이블 (기본: REPOSITORIES_TABLE)

    Returns:
        기록한 행 수
    """
    unique: dict[str, dict[str, Any]] = {}
    for row in rows:
        unique[row["full_name"]] = row
    if not unique:
        return 0

    values = [
        tuple(
            psycopg2.extras.Json(row.get(col) or {}) if col == "license" else row.get(col)
            for col in REPOSITORY_COLUMNS
        )
        for row in unique.values()
    ]

    query = sql.SQL(
        "INSERT INTO {table} ({columns}) VALUES %s "
        "ON CONFLICT (full_name) DO UPDATE SET {updates}, crawled_at = NOW()"
    ).format(
        table   = _table(table),
        columns = sql.SQL(", ").join(sql.Identifier(c) for c in REPOSITORY_COLUMNS),
        updates = sql.SQL(", ").join(
            sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c))
            for c in REPOSITORY_COLUMNS
            if c != "full_name"
        ),
    )

    with _conn() as conn:
        with conn.cursor() as cur:
            psycopg2.extras.execute_values(cur, query, values, page_size=len(values))

    logger.debug("저장소 업서트 | rows=%d", len(values))
    return len(values)


def clear_repositories(table: Optional[str] = None) -> int:
    """테이블의 모든 행을 삭제하고 삭제 건수를 반환합니다."""
    with _conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql.SQL("DELETE FROM {table}").format(table=_table(table)))
            deleted = cur.rowcount
    logger.warning("저장소 테이블 비움 | deleted=%d", deleted)
    return deleted


def log_crawler_activity(
    crawler_name: str,
    status:       str,
    message:      str = "",
    details:      Optional[dict[str, Any]] = None,
) -> None:
    """crawler_logs 에 실행 이력 1건을 추가합니다."""
    with _conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                sql.SQL(
                    "INSERT INTO {table} (crawler_name, status, message, details) "
                    "VALUES (%s, %s, %s, %s)"
                ).format(table=sql.Identifier(get_settings().CRAWLER_LOGS_TABLE)),
                (crawler_name, status, message, json.dumps(details or {}, default=str)),
            )
    logger.debug("크롤러 이력 기록 | crawler=%s status=%s", crawler_name, status)


# ─────────────────────────────────────────────────────────────
# 읽기
# ─────────────────────────────────────────────────────────────

def count_repositories(table: Optional[str] = None) -> int:
    with _conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql.SQL("SELECT COUNT(*) FROM {table}").format(table=_table(table)))
            return int(cur.fetchone()[0])


def ping_db() -> bool:
    """SELECT 1 로 접속을 확인합니다. 실패 시 예외를 그대로 전파합니다."""
    with _conn() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            return cur.fetchone()[0] == 1
