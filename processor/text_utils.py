"""
processor/text_utils.py — 설명문 텍스트 유틸리티

    calculate_md5       : 내용 지문 (파이프라인의 동일 설명문 집계)
    jaccard_similarity  : 단어 집합 유사도 (0.0 ~ 1.0)
    extract_keywords    : 빈도 기반 키워드 (파이프라인 요약 로그)
"""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from typing import Any

_STOPWORDS: frozenset[str] = frozenset({
    # 영어
    "a", "an", "the", "and", "or", "but", "is", "are", "was", "were",
    "in", "on", "at", "to", "for", "with", "by", "about", "as", "of",
    "that", "this", "these", "those", "it", "its", "from", "be", "have",
    # 중국어
    "的", "了", "和", "是", "在", "我", "有", "你", "他", "她", "們",
    "個", "與", "及", "或", "但", "就", "也", "要", "會", "對",
})

# 단어 문자(유니코드, 숫자, 밑줄)와 공백 외 문자
_PUNCT_RE = re.compile(r"[^\w\s]")


def calculate_md5(text: Any) -> str:
    """UTF-8 MD5 hex digest. 빈 값·문자열이 아닌 값은 ""."""
    if not isinstance(text, str) or not text:
        return ""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def jaccard_similarity(text_a: Any, text_b: Any) -> float:
    """대소문자 무시 단어 집합의 Jaccard 계수. 한쪽이라도 비면 0.0."""
    if not isinstance(text_a, str) or not isinstance(text_b, str):
        return 0.0
    words_a = set(text_a.lower().split())
    words_b = set(text_b.lower().split())
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def extract_keywords(text: Any, limit: int = 10) -> list[str]:
    """
    빈도 순 상위 키워드.

    구두점을 지운 뒤 공백으로 나누고, 한 글자 단어·불용어·숫자만으로 된 단어를 버립니다.
    빈도가 같으면 먼저 나온 단어가 앞에 옵니다.
    """
    if not isinstance(text, str) or not text or limit <= 0:
        return []
    words = [
        word
        for word in _PUNCT_RE.sub("", text.lower()).split()
        if len(word) > 1 and word not in _STOPWORDS and not word.isdigit()
    ]
    return [word for word, _ in Counter(words).most_common(limit)]
