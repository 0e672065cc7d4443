"""processor/validator.py — 정규화된 레코드의 적재 가능 여부 검사."""

from __future__ import annotations

from processor.cleaner import is_valid_url
from processor.models import RepositoryRecord


def validate_repository(record: RepositoryRecord) -> list[str]:
    """
    레코드의 문제 목록을 반환합니다. 빈 리스트면 유효합니다.

    규칙:
      - name, full_name 은 비어 있으면 안 됨 (full_name 은 업서트 키)
      - url 은 http/https 절대 URL
    """
    errors: list[str] = []
    if not record.name:
        errors.append("name: 필수 값 누락")
    if not record.full_name:
        errors.append("full_name: 필수 값 누락")
    if not is_valid_url(record.url):
        errors.append(f"url: 유효한 http(s) URL 이 아님 ({record.url!r})")
    return errors


def is_valid_repository(record: RepositoryRecord) -> bool:
    return not validate_repository(record)
