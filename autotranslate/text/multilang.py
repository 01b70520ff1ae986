"""Parser for inline multilingual markup.

Two syntaxes are recognised:

* span tags: ``<span lang="es" class="multilang">Hola</span>``
* block tags: ``{mlang es}Hola{mlang}`` (also the shorter ``{lang es}Hola{lang}``)

Content tagged with the site language or ``other`` becomes the source text.
Everything else valid ends up in ``translations`` keyed by language.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from autotranslate.db.models import SOURCE_LANG

_SPAN_RE = re.compile(
    r"<(span|lang)\s+lang=[\"']([a-zA-Z_-]+)[\"']\s+"
    r"class=[\"'](?:multilang|multilingual)[\"']\s*>(.*?)</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)

_BLOCK_RE = re.compile(
    r"\{(m?lang)\s+([\w-]+)\s*\}(.+?)\{\1\}",
    re.IGNORECASE | re.DOTALL,
)


@dataclass
class MultilangResult:
    """Outcome of parsing one piece of content."""

    source_text: str
    display_text: str
    translations: dict[str, str] = field(default_factory=dict)


class _Accumulator:
    def __init__(self, site_language: str, valid_languages: set[str]):
        self.canonical = {SOURCE_LANG, site_language.lower()}
        self.valid = valid_languages
        self.source_parts: list[str] = []
        self.translations: dict[str, str] = {}
        self.first_content: Optional[str] = None

    def add(self, lang: str, content: str) -> bool:
        """Record one tagged chunk. Returns True when it belongs to the source."""
        lang = lang.strip().lower()
        content = content.strip()
        if lang not in self.valid:
            return False
        if self.first_content is None:
            self.first_content = content
        if lang in self.canonical:
            self.source_parts.append(content)
            return True
        if lang in self.translations:
            self.translations[lang] = f"{self.translations[lang]} {content}"
        else:
            self.translations[lang] = content
        return False


def parse_multilang(
    text: str,
    site_language: str,
    installed_languages: Iterable[str],
) -> MultilangResult:
    """
    Split ``text`` into source text, display text and inline translations.

    Args:
        text: Raw field content
        site_language: Language whose tagged content counts as source
        installed_languages: Languages accepted in tags (``other`` is always valid)

    Returns:
        MultilangResult; without any tags the text is returned verbatim as
        both source and display text.
    """
    valid = {lang.lower() for lang in installed_languages} | {SOURCE_LANG}
    acc = _Accumulator(site_language, valid)

    def replace_span(match: re.Match) -> str:
        content = match.group(3)
        return content.strip() if acc.add(match.group(2), content) else ""

    rewritten = _SPAN_RE.sub(replace_span, text)

    blocks = list(_BLOCK_RE.finditer(rewritten))
    if blocks:
        # Block source parts follow the ones collected from spans
        for match in blocks:
            acc.add(match.group(2), match.group(3))
        source = " ".join(acc.source_parts).strip()
        display = source
    else:
        source = rewritten.strip()
        display = rewritten

    if not source and acc.first_content is not None:
        source = acc.first_content
        display = acc.first_content

    return MultilangResult(
        source_text=source,
        display_text=display,
        translations=acc.translations,
    )
