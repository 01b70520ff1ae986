"""Embedding, detection and extraction of ``{t:<hash>}`` content markers."""

import re
from dataclasses import dataclass
from typing import Optional

HASH_RE = re.compile(r"^[A-Za-z0-9]{10}$")

_BLOCK_CLOSE = r"</(?:p|div|li|td|span|blockquote|h[1-6])\s*>"

# A marker at the very end of the text, optionally followed by one closing tag
_TAIL_RE = re.compile(
    r"\{t:([A-Za-z0-9]{10})\}\s*(" + _BLOCK_CLOSE + r")?\s*$",
    re.IGNORECASE,
)

# Every marker occurrence with the closing tag that may follow it
_MARKER_RE = re.compile(
    r"\{t:([A-Za-z0-9]{10})\}(?:\s*(" + _BLOCK_CLOSE + r"))?",
    re.IGNORECASE,
)

_NUMERIC_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


@dataclass(frozen=True)
class MarkerMatch:
    """A marker found in a text blob and the text that precedes it."""

    preceding_text: str
    hash: str
    start: int  # offset of the preceding text
    end: int  # offset just past the marker and its wrapper
    wrapper: str = ""  # closing tag right after the marker

    @property
    def source_text(self) -> str:
        return marker_body(self.preceding_text, self.wrapper)


def marker_body(preceding: str, wrapper: str = "") -> str:
    """Text a marker stands for: what precedes it plus any closing tag after it."""
    return (preceding.rstrip() + wrapper).strip()


def is_valid_hash(value: str) -> bool:
    return bool(value) and HASH_RE.fullmatch(value) is not None


def embed(text: str, hash: str) -> str:
    """Append a marker for ``hash`` to ``text``."""
    if not is_valid_hash(hash):
        raise ValueError(f"Malformed hash: {hash!r}")
    return f"{text} {{t:{hash}}}"


def is_tagged(text: Optional[str]) -> bool:
    """Return True when the text ends with a well-formed marker."""
    if not text:
        return False
    return _TAIL_RE.search(text) is not None


def extract_hash(text: Optional[str]) -> Optional[str]:
    """Return the hash of the tail marker, or None."""
    if not text:
        return None
    match = _TAIL_RE.search(text)
    return match.group(1) if match else None


def strip_marker(text: str) -> str:
    """
    Remove the tail marker from ``text``.

    A closing tag that followed the marker is kept so the markup stays
    balanced.
    """
    match = _TAIL_RE.search(text)
    if not match:
        return text.strip()
    return marker_body(text[: match.start()], match.group(2) or "")


def find_markers(text: str) -> list[MarkerMatch]:
    """Scan ``text`` for every marker, left to right."""
    matches = []
    position = 0
    for match in _MARKER_RE.finditer(text):
        matches.append(
            MarkerMatch(
                preceding_text=text[position : match.start()],
                hash=match.group(1),
                start=position,
                end=match.end(),
                wrapper=match.group(2) or "",
            )
        )
        position = match.end()
    return matches


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace so texts can be compared loosely."""
    return " ".join(text.split())


def is_numeric(text: str) -> bool:
    """Return True for strings that only hold a number."""
    return _NUMERIC_RE.match(text) is not None


def is_blank_or_numeric(text: Optional[str]) -> bool:
    """Content that is never tagged."""
    if text is None or not text.strip():
        return True
    return is_numeric(text)
