"""database/base.py — SQLAlchemy 선언적 Base (모델·마이그레이션 공용)."""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# 제약조건 이름 규칙 (autogenerate 결과가 0001 마이그레이션의 이름과 일치)
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """repositories / crawler_logs 모델의 공통 Base."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
