"""
database/migrations/env.py — Alembic 실행 환경 설정

DB URL 로드 순서:
  1. sqlalchemy.url 이 이미 지정된 경우 (crawler.worker init-db 가 주입)
  2. DATABASE_URL / SUPABASE_DB_URL 환경변수 (.env 포함, core.config)

프로젝트 루트는 alembic.ini 의 prepend_sys_path = %(here)s 로 import 경로에 들어갑니다.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from core.config import get_settings

# ─────────────────────────────────────────────────────────────
# Alembic Config 객체
# ─────────────────────────────────────────────────────────────
config = context.config

# init-db 에서 호출되면 core.logger 설정을 그대로 사용
if config.config_file_name is not None and config.attributes.get("configure_logger", True):
    fileConfig(config.config_file_name)


def get_url() -> str:
    url = config.get_main_option("sqlalchemy.url") or get_settings().DATABASE_URL
    if not url:
        raise RuntimeError(
            "DATABASE_URL 환경변수가 설정되지 않았습니다.\n"
            ".env 파일 또는 환경변수를 확인해주세요."
        )
    # SQLAlchemy 2.x: postgres:// → postgresql://
    return url.replace("postgres://", "postgresql://", 1)


# configparser 보간 문자 이스케이프 (URL 인코딩된 비밀번호의 '%')
config.set_main_option("sqlalchemy.url", get_url().replace("%", "%%"))

# ─────────────────────────────────────────────────────────────
# 메타데이터 (autogenerate 용)
# ─────────────────────────────────────────────────────────────

from database.base import Base        # noqa: E402
import database.models                # noqa: E402, F401  ← 모델 등록

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """오프라인 모드: SQL 스크립트만 생성 (실제 DB 연결 없음)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """온라인 모드: 실제 DB에 연결하여 마이그레이션 실행."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
