"""초기 스키마 — repositories + crawler_logs

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── repositories ──────────────────────────────────────────
    op.create_table(
        "repositories",
        sa.Column("id",             sa.BigInteger(), nullable=False),
        sa.Column("full_name",      sa.Text(),       nullable=False),
        sa.Column("name",           sa.Text(),       nullable=False),
        sa.Column("description",    sa.Text(),       nullable=False, server_default=""),
        sa.Column("url",            sa.Text(),       nullable=False),
        sa.Column("homepage",       sa.Text(),       nullable=False, server_default=""),
        sa.Column("language",       sa.String(100),  nullable=False, server_default=""),
        sa.Column("default_branch", sa.String(255),  nullable=False, server_default="main"),
        sa.Column("owner_login",    sa.String(255),  nullable=False, server_default=""),

        # 지표
        sa.Column("stars",          sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("forks",          sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("watchers",       sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("open_issues",    sa.Integer(), nullable=False, server_default=sa.text("0")),

        # 반구조화
        sa.Column("topics",  postgresql.ARRAY(sa.Text()), nullable=False, server_default=sa.text("'{}'::text[]")),
        sa.Column("license", postgresql.JSONB,           nullable=False, server_default=sa.text("'{}'::jsonb"),
                  comment="GitHub license 객체 (key, name, spdx_id, ...)"),

        # 시간
        sa.Column("github_created_at", sa.TIMESTAMP(timezone=True)),
        sa.Column("github_updated_at", sa.TIMESTAMP(timezone=True)),
        sa.Column("crawled_at",        sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("created_at",        sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at",        sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")),

        sa.PrimaryKeyConstraint("id", name="pk_repositories"),
        sa.UniqueConstraint("full_name", name="uq_repositories_full_name"),
        sa.CheckConstraint(
            "stars >= 0 AND forks >= 0 AND watchers >= 0 AND open_issues >= 0",
            name="ck_repositories_counts",
        ),
    )

    op.create_index("idx_repositories_stars",    "repositories", [sa.text("stars DESC")])
    op.create_index("idx_repositories_language", "repositories", ["language"])
    op.create_index("idx_repositories_owner",    "repositories", ["owner_login"])
    op.create_index("idx_repositories_topics",   "repositories", ["topics"], postgresql_using="gin")

    # updated_at 자동 갱신 트리거
    op.execute("""
        CREATE OR REPLACE FUNCTION trg_set_updated_at()
        RETURNS TRIGGER LANGUAGE plpgsql AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$
    """)
    op.execute("""
        CREATE TRIGGER set_updated_at_repositories
            BEFORE UPDATE ON repositories
            FOR EACH ROW EXECUTE FUNCTION trg_set_updated_at()
    """)

    # ── crawler_logs (append-only) ────────────────────────────
    op.create_table(
        "crawler_logs",
        sa.Column("id",           sa.BigInteger(), nullable=False),
        sa.Column("crawler_name", sa.String(100),  nullable=False),
        sa.Column("status",       sa.String(20),   nullable=False),
        sa.Column("message",      sa.Text(),       nullable=False, server_default=""),
        sa.Column("details",      postgresql.JSONB),
        sa.Column("created_at",   sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.PrimaryKeyConstraint("id", name="pk_crawler_logs"),
        sa.CheckConstraint(
            "status IN ('success','partial','failed')",
            name="ck_crawler_logs_status",
        ),
    )
    op.create_index("idx_crawler_logs_created_at", "crawler_logs", ["created_at"])


def downgrade() -> None:
    # 인덱스는 테이블 DROP 시 자동 삭제
    op.drop_table("crawler_logs")
    op.execute("DROP TRIGGER IF EXISTS set_updated_at_repositories ON repositories")
    op.execute("DROP FUNCTION IF EXISTS trg_set_updated_at")
    op.drop_table("repositories")
