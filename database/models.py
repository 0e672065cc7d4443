"""
database/models.py — SQLAlchemy ORM 모델

테이블:
    repositories — 수집·정제된 GitHub 저장소 (full_name 업서트 키)
    crawler_logs — 크롤러 실행 이력 (append-only)

설계 원칙:
    - 적재는 uploader/db.py 의 raw SQL(psycopg2 execute_values)로 수행합니다.
      이 모듈은 스키마 정의와 Alembic autogenerate 기준 역할을 합니다.
    - repositories.updated_at 은 PostgreSQL 트리거(trg_set_updated_at)로 자동 갱신
    - GitHub 원본 시각(github_created_at / github_updated_at)과 행 관리 시각
      (created_at / updated_at / crawled_at)을 분리
    - topics 는 TEXT[] + GIN 인덱스 (0001 마이그레이션)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from database.base import Base

# PostgreSQL TIMESTAMP WITH TIME ZONE 편의 별칭
TIMESTAMPTZ = DateTime(timezone=True)


# ═════════════════════════════════════════════════════════════
# Repository
# ═════════════════════════════════════════════════════════════

class Repository(Base):
    """
    GitHub 저장소 1건.

    raw SQL 조작: uploader/db.py (INSERT … ON CONFLICT (full_name) DO UPDATE)
    """
    __tablename__ = "repositories"

    id:             Mapped[int]           = mapped_column(BigInteger, primary_key=True)
    full_name:      Mapped[str]           = mapped_column(Text, nullable=False, unique=True)
    name:           Mapped[str]           = mapped_column(Text, nullable=False)
    description:    Mapped[str]           = mapped_column(Text, nullable=False, server_default="")
    url:            Mapped[str]           = mapped_column(Text, nullable=False)
    homepage:       Mapped[str]           = mapped_column(Text, nullable=False, server_default="")
    language:       Mapped[str]           = mapped_column(String(100), nullable=False, server_default="")
    default_branch: Mapped[str]           = mapped_column(String(255), nullable=False, server_default="main")
    owner_login:    Mapped[str]           = mapped_column(String(255), nullable=False, server_default="")

    # ── 지표 ──────────────────────────────────────────────────
    stars:       Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    forks:       Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    watchers:    Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    open_issues: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    # ── 반구조화 ──────────────────────────────────────────────
    topics:  Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, server_default=text("'{}'::text[]"),
    )
    license: Mapped[dict]      = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb"),
        comment="GitHub license 객체 (key, name, spdx_id, ...)",
    )

    # ── 시간 ──────────────────────────────────────────────────
    github_created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMPTZ)
    github_updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMPTZ)
    crawled_at:        Mapped[datetime]           = mapped_column(TIMESTAMPTZ, nullable=False, server_default=func.now())
    created_at:        Mapped[datetime]           = mapped_column(TIMESTAMPTZ, nullable=False, server_default=func.now())
    updated_at:        Mapped[datetime]           = mapped_column(TIMESTAMPTZ, nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "stars >= 0 AND forks >= 0 AND watchers >= 0 AND open_issues >= 0",
            name="ck_repositories_counts",
        ),
        Index("idx_repositories_stars",    text("stars DESC")),
        Index("idx_repositories_language", "language"),
        Index("idx_repositories_owner",    "owner_login"),
        Index("idx_repositories_topics",   "topics", postgresql_using="gin"),
    )

    def __repr__(self) -> str:
        return f"<Repository {self.full_name!r} stars={self.stars}>"


# ═════════════════════════════════════════════════════════════
# CrawlerLog
# ═════════════════════════════════════════════════════════════

class CrawlerLog(Base):
    """
    크롤러 실행 이력 (append-only).

    status: success / partial / failed
    details (JSONB) 예시:
        {
            "run_id": "20261017T100000",
            "crawled": 230,
            "unique": 211,
            "csv_path": "exports/github-repositories-20261017T100000.csv",
            "upload": {"total": 211, "successful": 211, "failed": 0}
        }
    """
    __tablename__ = "crawler_logs"

    id:           Mapped[int]            = mapped_column(BigInteger, primary_key=True)
    crawler_name: Mapped[str]            = mapped_column(String(100), nullable=False)
    status:       Mapped[str]            = mapped_column(String(20),  nullable=False)
    message:      Mapped[str]            = mapped_column(Text, nullable=False, server_default="")
    details:      Mapped[Optional[dict]] = mapped_column(JSONB)
    created_at:   Mapped[datetime]       = mapped_column(TIMESTAMPTZ, nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('success','partial','failed')",
            name="ck_crawler_logs_status",
        ),
        Index("idx_crawler_logs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<CrawlerLog id={self.id} {self.crawler_name!r} [{self.status}]>"
