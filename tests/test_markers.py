"""Tests for marker embedding and detection."""

import pytest

from autotranslate.text.markers import (
    embed,
    extract_hash,
    find_markers,
    is_blank_or_numeric,
    is_tagged,
    normalize_whitespace,
    strip_marker,
)

HASH = "AbC123xYz9"


def test_embed_appends_marker():
    """Test the marker is appended after a single space."""
    assert embed("Welcome to the course", HASH) == "Welcome to the course {t:AbC123xYz9}"


@pytest.mark.parametrize("bad_hash", ["short", "AbC123xYz9X", "AbC123xY-9", ""])
def test_embed_rejects_malformed_hash(bad_hash):
    """Test embedding a malformed hash fails."""
    with pytest.raises(ValueError):
        embed("text", bad_hash)


def test_extract_hash_from_embedded_text():
    """Test a hash survives embedding."""
    tagged = embed("<p>Hello <b>world</b></p>", HASH)
    assert is_tagged(tagged)
    assert extract_hash(tagged) == HASH


def test_tail_marker_tolerates_closing_tag_and_whitespace():
    """Test a marker followed by a closing block tag is still the tail marker."""
    assert extract_hash("<p>Hello {t:AbC123xYz9}</p>") == HASH
    assert extract_hash("<div>Hello {t:AbC123xYz9} </div>\n") == HASH
    assert extract_hash("Hello {t:AbC123xYz9}   \n") == HASH


def test_marker_not_at_tail_is_ignored():
    """Test a marker in the middle of text does not count as a tag."""
    text = "Hello {t:AbC123xYz9} and more text"
    assert not is_tagged(text)
    assert extract_hash(text) is None


@pytest.mark.parametrize(
    "text",
    [
        "Hello {t:AbC123}",  # too short
        "Hello {t:AbC123xYz99}",  # too long
        "Hello {t:AbC_23xYz9}",  # bad character
        "Hello {t: AbC123xYz9}",
        "",
        None,
    ],
)
def test_malformed_markers_are_absent(text):
    """Test malformed markers never match."""
    assert not is_tagged(text)
    assert extract_hash(text) is None


def test_strip_marker_keeps_wrapper():
    """Test stripping keeps the closing tag that followed the marker."""
    assert strip_marker("Welcome {t:AbC123xYz9}") == "Welcome"
    assert strip_marker("<p>Welcome {t:AbC123xYz9}</p>") == "<p>Welcome</p>"
    assert strip_marker("  untagged  ") == "untagged"


def test_find_markers_returns_preceding_text():
    """Test scanning returns every marker with the text before it."""
    text = "Hello {t:AbC123xYz9} World {t:ZZZZZZZZZ1}!"
    matches = find_markers(text)

    assert [m.hash for m in matches] == [HASH, "ZZZZZZZZZ1"]
    assert matches[0].preceding_text == "Hello "
    assert matches[1].preceding_text == " World "
    assert text[matches[1].end:] == "!"


def test_find_markers_absorbs_closing_wrapper():
    """Test a closing tag right after a marker belongs to its text."""
    text = "<p>Hello {t:AbC123xYz9}</p>\n<p>World {t:ZZZZZZZZZ1} </P> tail"
    matches = find_markers(text)

    assert matches[0].wrapper == "</p>"
    assert matches[0].source_text == "<p>Hello</p>"
    assert matches[0].source_text == strip_marker("<p>Hello {t:AbC123xYz9}</p>")
    assert matches[1].preceding_text == "\n<p>World "
    assert matches[1].source_text == "<p>World</P>"
    assert text[matches[1].end:] == " tail"


def test_find_markers_without_markers():
    """Test untagged text has no markers."""
    assert find_markers("No markers here {t:short}") == []


@pytest.mark.parametrize("text", ["", "   ", "42", "3.14", "-7", "1e5", None])
def test_blank_or_numeric(text):
    """Test empty and numeric content is never tagged."""
    assert is_blank_or_numeric(text)


@pytest.mark.parametrize("text", ["Hello", "42 apples", "v1.2.3"])
def test_not_blank_or_numeric(text):
    """Test ordinary text is taggable."""
    assert not is_blank_or_numeric(text)


def test_normalize_whitespace():
    """Test whitespace differences are ignored."""
    assert normalize_whitespace("  Hello \n\t world ") == "Hello world"
