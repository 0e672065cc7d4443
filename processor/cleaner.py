"""
processor/cleaner.py — 저장소 레코드 정제기

정제 파이프라인:
  1. 원시 페이로드 파싱 : RawRepository.from_payload (타입 불일치 값은 None)
  2. 설명 HTML 제거     : strip_html (script/style/iframe/noscript 본문까지 제거)
  3. URL 검증           : is_valid_url (homepage 는 http/https 절대 URL 만 통과)
  4. 미디어 추출 (선택) : extract_links / extract_images
  5. 표준 레코드 생성   : RepositoryRecord (불변)

공개 함수는 어떤 입력에도 예외를 던지지 않습니다 — 잘못된 값은 기본값으로 대체됩니다.

사용법:
    from processor.cleaner import clean_repository_data

    record = clean_repository_data(payload)
    record.description   # 평문
    record.homepage      # "" 또는 유효한 URL

    record = clean_repository_data(payload, extract_media=True)
    record.links, record.images
"""

from __future__ import annotations

import copy
from typing import Any, Optional

import structlog
from bs4 import BeautifulSoup, ParserRejectedMarkup
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from processor.models import (
    ExtractedImage,
    ExtractedLink,
    RawRepository,
    RepositoryMetadata,
    RepositoryRecord,
)

logger = structlog.get_logger(__name__)

# 본문까지 통째로 제거할 태그
_REMOVE_TAGS = ("script", "style", "iframe", "noscript")

_HTTP_URL: TypeAdapter[AnyHttpUrl] = TypeAdapter(AnyHttpUrl)


# ─────────────────────────────────────────────────────────────
# URL 검증
# ─────────────────────────────────────────────────────────────

def is_valid_url(value: Any) -> bool:
    """
    http/https 스킴과 호스트를 갖춘 절대 URL 이면 True.

    빈 문자열, None, 문자열이 아닌 값, 다른 스킴(ftp 등)은 모두 False.
    """
    if not isinstance(value, str) or not value.strip():
        return False
    try:
        _HTTP_URL.validate_python(value)
    except ValidationError:
        return False
    return True


# ─────────────────────────────────────────────────────────────
# HTML 파싱 / 추출
# ─────────────────────────────────────────────────────────────

def _parse(html: Any) -> Optional[BeautifulSoup]:
    """문자열 HTML 을 html.parser 로 파싱합니다. 파싱 불가 시 None."""
    if not isinstance(html, str) or not html:
        return None
    try:
        return BeautifulSoup(html, "html.parser")
    except ParserRejectedMarkup:
        logger.debug("markup_rejected", length=len(html))
        return None


def _attr(tag: Any, name: str) -> str:
    value = tag.get(name)
    if isinstance(value, str) and value.strip():
        return value
    return ""


def extract_link_details(html: Any) -> list[ExtractedLink]:
    """모든 <a> 의 (href, 텍스트). 문서 순서, 중복 유지, href 가 비어 있으면 건너뜀."""
    soup = _parse(html)
    if soup is None:
        return []
    links = []
    for tag in soup.find_all("a"):
        href = _attr(tag, "href")
        if href:
            links.append(ExtractedLink(url=href, text=normalize_text(tag.get_text())))
    return links


def extract_image_details(html: Any) -> list[ExtractedImage]:
    """모든 <img> 의 (src, alt). 문서 순서, 중복 유지, src 가 비어 있으면 건너뜀."""
    soup = _parse(html)
    if soup is None:
        return []
    images = []
    for tag in soup.find_all("img"):
        src = _attr(tag, "src")
        if src:
            alt = tag.get("alt")
            images.append(ExtractedImage(url=src, alt=alt if isinstance(alt, str) else ""))
    return images


def extract_links(html: Any) -> list[str]:
    """모든 <a> 의 href (검증하지 않음)."""
    return [link.url for link in extract_link_details(html)]


def extract_images(html: Any) -> list[str]:
    """모든 <img> 의 src (검증하지 않음)."""
    return [image.url for image in extract_image_details(html)]


# ─────────────────────────────────────────────────────────────
# HTML → 텍스트
# ─────────────────────────────────────────────────────────────

def normalize_text(text: Any) -> str:
    """연속 공백(개행·탭 포함)을 단일 공백으로 줄이고 앞뒤 공백을 제거합니다."""
    if not isinstance(text, str):
        return ""
    return " ".join(text.split())


def _strip_once(html: str) -> str:
    soup = _parse(html)
    if soup is None:
        return ""
    for tag in soup.find_all(_REMOVE_TAGS):
        tag.decompose()
    return normalize_text(soup.get_text())


def strip_html(html: Any) -> str:
    """
    모든 마크업을 제거한 평문을 반환합니다.

    - script / style / iframe / noscript 는 내용까지 제거
    - 텍스트 노드는 구분자 없이 이어 붙인 뒤 공백 정규화
    - 엔티티 디코딩 후 새로 드러난 마크업(예: "&lt;b&gt;")도 제거될 때까지 반복하므로
      strip_html(strip_html(x)) == strip_html(x)
    """
    if not isinstance(html, str) or not html:
        return ""
    text = _strip_once(html)
    while True:
        again = _strip_once(text)
        # 매 패스는 길이를 줄이거나 그대로 둔다
        if again == text or len(again) >= len(text):
            return text
        text = again


# ─────────────────────────────────────────────────────────────
# 레코드 정규화
# ─────────────────────────────────────────────────────────────

def _count(value: Optional[int]) -> int:
    if isinstance(value, int):
        return max(0, int(value))
    return 0


def _copy_license(value: Optional[dict[str, Any]]) -> dict[str, Any]:
    if not value:
        return {}
    try:
        return copy.deepcopy(value)
    except (TypeError, copy.Error):
        return dict(value)


def clean_repository_data(raw: Any, *, extract_media: bool = False) -> RepositoryRecord:
    """
    원시 저장소 페이로드를 RepositoryRecord 로 정규화합니다.

    어떤 입력(None, 리스트, 타입이 뒤섞인 딕셔너리 등)에도 예외를 던지지 않습니다.

    Args:
        raw:           GitHub API 저장소 딕셔너리 또는 RawRepository
        extract_media: True 면 원본 description HTML 에서 links / images 를 추출

    Returns:
        RepositoryRecord — 누락·잘못된 필드는 기본값
    """
    repo = raw if isinstance(raw, RawRepository) else RawRepository.from_payload(raw)

    owner_login = ""
    if repo.owner is not None and isinstance(repo.owner.login, str):
        owner_login = repo.owner.login

    links:  list[str] = []
    images: list[str] = []
    if extract_media:
        links  = extract_links(repo.description)
        images = extract_images(repo.description)

    try:
        return RepositoryRecord(
            name        = repo.name or "",
            full_name   = repo.full_name or "",
            description = strip_html(repo.description),
            url         = repo.html_url or "",
            stars       = _count(repo.stargazers_count),
            forks       = _count(repo.forks_count),
            language    = repo.language or "",
            topics      = [t for t in (repo.topics or []) if isinstance(t, str)],
            owner       = owner_login,
            created_at  = repo.created_at or "",
            updated_at  = repo.updated_at or "",
            license     = _copy_license(repo.license),
            homepage    = repo.homepage if is_valid_url(repo.homepage) else "",
            metadata    = RepositoryMetadata(
                watchers       = _count(repo.watchers_count),
                open_issues    = _count(repo.open_issues_count),
                default_branch = repo.default_branch or "main",
            ),
            links       = links,
            images      = images,
        )
    except ValidationError as exc:
        logger.warning("record_invalid", full_name=repo.full_name, error=str(exc))
        return RepositoryRecord()
