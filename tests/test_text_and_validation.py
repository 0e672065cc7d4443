import pytest

from processor.cleaner import clean_repository_data
from processor.models import RawRepository, RepositoryRecord
from processor.text_utils import calculate_md5, extract_keywords, jaccard_similarity
from processor.validator import is_valid_repository, validate_repository


# ------------------------------
# Raw payload parsing
# ------------------------------
@pytest.mark.cleaner
def test_from_payload_non_mapping_is_empty():
    raw = RawRepository.from_payload(None)
    assert raw.name is None and raw.owner is None and raw.topics is None


@pytest.mark.cleaner
def test_from_payload_ignores_unknown_keys():
    raw = RawRepository.from_payload({"name": "x", "node_id": "abc", "private": False})
    assert raw.name == "x"


@pytest.mark.cleaner
def test_to_row_flattens_metadata():
    record = clean_repository_data({
        "full_name": "o/r", "watchers_count": 9, "open_issues_count": 2, "topics": ["t"],
    })
    row = record.to_row()
    assert row["watchers"] == 9
    assert row["open_issues"] == 2
    assert row["default_branch"] == "main"
    assert row["topics"] == ["t"]


# ------------------------------
# Validation
# ------------------------------
@pytest.mark.cleaner
def test_valid_record_has_no_problems():
    record = RepositoryRecord(name="r", full_name="o/r", url="https://github.com/o/r")
    assert validate_repository(record) == []
    assert is_valid_repository(record)


@pytest.mark.cleaner
def test_problems_name_each_field():
    problems = validate_repository(RepositoryRecord(url="not a url"))
    assert len(problems) == 3
    assert problems[0].startswith("name")
    assert problems[1].startswith("full_name")
    assert problems[2].startswith("url")


# ------------------------------
# Text utilities
# ------------------------------
@pytest.mark.cleaner
def test_md5():
    assert calculate_md5("hello") == "5d41402abc4b2a76b9719d911017c592"
    assert calculate_md5("") == ""
    assert calculate_md5(None) == ""


@pytest.mark.cleaner
def test_jaccard_similarity():
    assert jaccard_similarity("a b c", "A B C") == 1.0
    assert jaccard_similarity("a b", "b c") == pytest.approx(1 / 3)
    assert jaccard_similarity("", "a") == 0.0
    assert jaccard_similarity(None, "a") == 0.0


@pytest.mark.cleaner
def test_extract_keywords_ranks_by_frequency():
    text = "Python web framework. The python framework for web apps, python 2026!"
    assert extract_keywords(text, limit=3) == ["python", "web", "framework"]


@pytest.mark.cleaner
def test_extract_keywords_filters_noise():
    assert extract_keywords("a the 123 x of is an", limit=10) == []
    assert extract_keywords("", limit=5) == []
    assert extract_keywords("tool tool", limit=0) == []
