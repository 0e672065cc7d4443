import pytest
from pydantic import ValidationError

from processor.cleaner import (
    clean_repository_data,
    extract_image_details,
    extract_images,
    extract_link_details,
    extract_links,
    is_valid_url,
    normalize_text,
    strip_html,
)
from processor.models import RawRepository, RepositoryRecord


# ------------------------------
# URL validation
# ------------------------------
@pytest.mark.cleaner
@pytest.mark.parametrize("value", [
    "https://example.com",
    "http://example.com/path?q=1",
    "https://sub.example.org:8443/a/b",
])
def test_valid_urls(value):
    assert is_valid_url(value) is True


@pytest.mark.cleaner
@pytest.mark.parametrize("value", [
    "invalid-url",
    "ftp://example.com",
    "",
    "   ",
    None,
    42,
    "https://",
    "/relative/path",
])
def test_invalid_urls(value):
    assert is_valid_url(value) is False


# ------------------------------
# Link / image extraction
# ------------------------------
@pytest.mark.cleaner
def test_extract_links_in_document_order_with_duplicates():
    html = (
        '<div><a href="https://a.com">A</a><p><a href="/b">B</a></p>'
        '<a>no href</a><a href="">empty</a><a href="https://a.com">again</a></div>'
    )
    assert extract_links(html) == ["https://a.com", "/b", "https://a.com"]


@pytest.mark.cleaner
def test_extract_images_skips_missing_src():
    html = '<img src="https://x.com/1.png" alt="one"><img alt="no src"><img src="2.gif">'
    assert extract_images(html) == ["https://x.com/1.png", "2.gif"]


@pytest.mark.cleaner
def test_detail_variants_carry_text_and_alt():
    links = extract_link_details('<a href="https://a.com">  Docs\n  page </a>')
    images = extract_image_details('<img src="logo.png" alt="Logo"><img src="x.png">')
    assert [(l.url, l.text) for l in links] == [("https://a.com", "Docs page")]
    assert [(i.url, i.alt) for i in images] == [("logo.png", "Logo"), ("x.png", "")]


@pytest.mark.cleaner
@pytest.mark.parametrize("html", [None, "", 123, "plain text, no tags", "<a href='x'"])
def test_extraction_never_raises(html):
    assert isinstance(extract_links(html), list)
    assert isinstance(extract_images(html), list)


@pytest.mark.cleaner
def test_malformed_markup_is_best_effort():
    html = '<div><a href="https://ok.com">ok<p>unclosed <img src="i.png"'
    assert extract_links(html) == ["https://ok.com"]


# ------------------------------
# HTML stripping
# ------------------------------
@pytest.mark.cleaner
def test_strip_html_removes_tags_and_collapses_whitespace():
    assert strip_html("<p>Hello   <b>World</b></p>\n\n<div>  again </div>") == "Hello World again"
    assert strip_html("<p>Hello <b>World</b></p>") == "Hello World"
    assert strip_html("  <span>a\n\tb</span>  ") == "a b"


@pytest.mark.cleaner
def test_strip_html_drops_script_style_iframe_noscript_bodies():
    html = (
        "<div>Visible<script>alert('x')</script><style>.a{color:red}</style>"
        "<iframe>frame text</iframe><noscript>enable js</noscript> text</div>"
    )
    assert strip_html(html) == "Visible text"


@pytest.mark.cleaner
@pytest.mark.parametrize("value", [None, "", 0, ["<p>x</p>"]])
def test_strip_html_empty_inputs(value):
    assert strip_html(value) == ""


@pytest.mark.cleaner
@pytest.mark.parametrize("html", [
    "<p>A test repository with <strong>HTML</strong> content</p>",
    "&lt;b&gt;bold&lt;/b&gt; text",
    "&amp;lt;i&amp;gt;nested&amp;lt;/i&amp;gt;",
    "5 < 6 and 7 > 3",
    "&lt;script&gt;alert(1)&lt;/script&gt; safe",
    "no markup at all",
])
def test_strip_html_is_idempotent(html):
    once = strip_html(html)
    assert strip_html(once) == once


@pytest.mark.cleaner
def test_strip_html_removes_markup_revealed_by_entities():
    assert strip_html("&lt;b&gt;bold&lt;/b&gt; text") == "bold text"


@pytest.mark.cleaner
def test_normalize_text():
    assert normalize_text("  a \n\n b\t c  ") == "a b c"
    assert normalize_text(None) == ""


# ------------------------------
# Record normalization
# ------------------------------
@pytest.mark.cleaner
def test_end_to_end_scenario():
    raw = {
        "name": "test-repo",
        "full_name": "testuser/test-repo",
        "description": "<p>A test repository with <strong>HTML</strong> content</p>",
        "html_url": "https://github.com/testuser/test-repo",
        "stargazers_count": 100,
        "forks_count": 20,
        "language": "JavaScript",
        "topics": ["test", "demo"],
        "owner": {"login": "testuser"},
    }
    record = clean_repository_data(raw)

    assert record.description == "A test repository with HTML content"
    assert record.stars == 100
    assert record.forks == 20
    assert record.owner == "testuser"
    assert record.topics == ["test", "demo"]
    assert record.url == "https://github.com/testuser/test-repo"
    assert record.metadata.watchers == 0
    assert record.metadata.open_issues == 0
    assert record.metadata.default_branch == "main"


@pytest.mark.cleaner
def test_metadata_is_copied_when_present():
    record = clean_repository_data({
        "watchers_count": 50, "open_issues_count": 5, "default_branch": "develop",
    })
    assert record.metadata.watchers == 50
    assert record.metadata.open_issues == 5
    assert record.metadata.default_branch == "develop"


@pytest.mark.cleaner
def test_minimal_record_gets_defaults():
    record = clean_repository_data({"name": "minimal-repo"})
    assert record.name == "minimal-repo"
    assert record.full_name == ""
    assert record.description == ""
    assert record.language == ""
    assert record.topics == []
    assert record.license == {}
    assert record.homepage == ""
    assert record.stars == 0
    assert record.links == [] and record.images == []


@pytest.mark.cleaner
@pytest.mark.parametrize("raw", [None, [], "string", 42, {"owner": "not-a-dict"}, {"topics": "a,b"}])
def test_never_raises_on_garbage(raw):
    record = clean_repository_data(raw)
    assert isinstance(record, RepositoryRecord)
    assert record.topics == []
    assert record.owner == ""


@pytest.mark.cleaner
def test_wrong_types_fall_back_to_defaults():
    record = clean_repository_data({
        "name": 123,
        "full_name": ["x"],
        "html_url": {"href": "https://x"},
        "stargazers_count": "lots",
        "forks_count": None,
        "language": 3.5,
        "topics": ["ok", 1, None, "fine"],
        "license": "MIT",
        "created_at": 20260101,
        "owner": {"login": 7},
    })
    assert record.name == ""
    assert record.full_name == ""
    assert record.url == ""
    assert record.stars == 0
    assert record.forks == 0
    assert record.language == ""
    assert record.topics == ["ok", "fine"]
    assert record.license == {}
    assert record.created_at == ""
    assert record.owner == ""


@pytest.mark.cleaner
def test_counts_are_clamped_and_coerced():
    record = clean_repository_data({"stargazers_count": -5, "forks_count": "12", "watchers_count": 3.0})
    assert record.stars == 0
    assert record.forks == 12
    assert record.metadata.watchers == 3


@pytest.mark.cleaner
def test_invalid_homepage_becomes_empty():
    assert clean_repository_data({"homepage": "invalid-url"}).homepage == ""
    assert clean_repository_data({"homepage": "ftp://example.com"}).homepage == ""
    assert clean_repository_data({"homepage": "https://example.com"}).homepage == "https://example.com"


@pytest.mark.cleaner
def test_timestamps_pass_through_unchanged():
    record = clean_repository_data({"created_at": "2026-01-01T00:00:00Z", "updated_at": "not a date"})
    assert record.created_at == "2026-01-01T00:00:00Z"
    assert record.updated_at == "not a date"


@pytest.mark.cleaner
def test_extract_media_uses_raw_description():
    raw = {"description": '<a href="https://docs.example.com">docs</a> <img src="https://img/x.png">'}
    plain = clean_repository_data(raw)
    media = clean_repository_data(raw, extract_media=True)
    assert plain.links == [] and plain.images == []
    assert media.links == ["https://docs.example.com"]
    assert media.images == ["https://img/x.png"]
    assert media.description == "docs"


@pytest.mark.cleaner
def test_record_does_not_share_containers_with_input():
    topics = ["a"]
    license = {"key": "mit", "extra": {"nested": True}}
    record = clean_repository_data({"topics": topics, "license": license})
    topics.append("b")
    license["extra"]["nested"] = False
    assert record.topics == ["a"]
    assert record.license["extra"]["nested"] is True


@pytest.mark.cleaner
def test_record_is_frozen():
    record = clean_repository_data({"name": "x"})
    with pytest.raises(ValidationError):
        record.name = "y"


@pytest.mark.cleaner
def test_accepts_raw_repository_instance():
    raw = RawRepository.from_payload({"name": "n", "full_name": "o/n"})
    assert clean_repository_data(raw).full_name == "o/n"
