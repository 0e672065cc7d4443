"""
processor/models.py — Pydantic v2 데이터 모델

크롤러 → 정제기 → CSV/DB 전달 구조:

  RawRepository     : GitHub API 가 반환한 원시 저장소 페이로드 (신뢰 불가)
  RepositoryRecord  : 정규화가 끝난 표준 레코드 (불변, 모든 필드 항상 존재)
  RepositoryMetadata: 레코드 내부의 보조 지표 묶음

원시 입력은 어떤 모양이든 허용해야 하므로 RawRepository 는 필드 단위로
관대하게 파싱합니다 — 타입이 맞지 않는 값은 오류 대신 None 으로 떨어집니다.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
)


# ─────────────────────────────────────────────────────────────
# 1. 원시 입력 (GitHub API 페이로드)
# ─────────────────────────────────────────────────────────────

class _LenientModel(BaseModel):
    """필드 검증에 실패한 값을 None 으로 대체하는 Base."""

    model_config = {"extra": "ignore"}

    @field_validator("*", mode="wrap")
    @classmethod
    def _drop_invalid(cls, value: Any, handler: Any) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return None


class RawOwner(_LenientModel):
    """저장소 소유자 (payload["owner"])."""

    login:    Optional[str] = None
    type:     Optional[str] = None
    html_url: Optional[str] = None


class RawRepository(_LenientModel):
    """
    GitHub 저장소 원시 페이로드.

    모든 필드가 Optional 이며, 잘못된 타입의 값은 None 으로 버려집니다.
    정수 필드는 pydantic lax 모드 규칙대로 정수형 문자열("100")과
    소수부가 0 인 float(100.0)을 받아들입니다.
    """

    name:              Optional[str]            = None
    full_name:         Optional[str]            = None
    description:       Optional[str]            = None
    html_url:          Optional[str]            = None
    homepage:          Optional[str]            = None
    language:          Optional[str]            = None
    default_branch:    Optional[str]            = None
    created_at:        Optional[str]            = None
    updated_at:        Optional[str]            = None
    stargazers_count:  Optional[int]            = None
    forks_count:       Optional[int]            = None
    watchers_count:    Optional[int]            = None
    open_issues_count: Optional[int]            = None
    topics:            Optional[list[Any]]      = None
    owner:             Optional[RawOwner]       = None
    license:           Optional[dict[str, Any]] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RawRepository":
        """
        임의의 객체에서 RawRepository 를 만듭니다. 절대 예외를 던지지 않습니다.

        Mapping 이 아니면 (None, 리스트, 문자열 등) 모든 필드가 None 인 인스턴스를 반환합니다.
        """
        if not isinstance(payload, Mapping):
            return cls()
        try:
            return cls.model_validate(dict(payload))
        except ValidationError:
            return cls()


# ─────────────────────────────────────────────────────────────
# 2. HTML 추출 결과 (상세형)
# ─────────────────────────────────────────────────────────────

class ExtractedLink(BaseModel):
    """<a> 태그 하나 — href 와 링크 텍스트."""

    url:  str
    text: str = ""

    model_config = {"frozen": True}


class ExtractedImage(BaseModel):
    """<img> 태그 하나 — src 와 alt 텍스트."""

    url: str
    alt: str = ""

    model_config = {"frozen": True}


# ─────────────────────────────────────────────────────────────
# 3. 표준 레코드
# ─────────────────────────────────────────────────────────────

class RepositoryMetadata(BaseModel):
    """레코드 보조 지표. 각 값은 원본과 무관하게 독립적으로 기본값을 가집니다."""

    watchers:       int = Field(0, ge=0)
    open_issues:    int = Field(0, ge=0)
    default_branch: str = "main"

    model_config = {"frozen": True}


class RepositoryRecord(BaseModel):
    """
    정규화된 저장소 레코드.

    불변 조건:
      - 모든 필드가 항상 존재하며 선언된 타입을 가짐
      - stars / forks / metadata 카운트는 0 이상
      - description 은 HTML 이 제거된 평문
      - homepage 는 빈 문자열이거나 http/https 절대 URL
      - links / images 는 extract_media=True 로 정제했을 때만 채워짐
    """

    name:        str                = ""
    full_name:   str                = ""
    description: str                = ""
    url:         str                = ""
    stars:       int                = Field(0, ge=0)
    forks:       int                = Field(0, ge=0)
    language:    str                = ""
    topics:      list[str]          = Field(default_factory=list)
    owner:       str                = ""
    created_at:  str                = ""
    updated_at:  str                = ""
    license:     dict[str, Any]     = Field(default_factory=dict)
    homepage:    str                = ""
    metadata:    RepositoryMetadata = Field(default_factory=RepositoryMetadata)
    links:       list[str]          = Field(default_factory=list)
    images:      list[str]          = Field(default_factory=list)

    model_config = {"frozen": True}

    def to_row(self) -> dict[str, Any]:
        """CSV / DB 적재용 평탄화 딕셔너리."""
        return {
            "name":           self.name,
            "full_name":      self.full_name,
            "description":    self.description,
            "url":            self.url,
            "homepage":       self.homepage,
            "stars":          self.stars,
            "forks":          self.forks,
            "watchers":       self.metadata.watchers,
            "open_issues":    self.metadata.open_issues,
            "language":       self.language,
            "topics":         list(self.topics),
            "default_branch": self.metadata.default_branch,
            "created_at":     self.created_at,
            "updated_at":     self.updated_at,
            "license":        dict(self.license),
            "owner":          self.owner,
        }
