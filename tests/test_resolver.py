"""Tests for render-time resolution."""

import pytest

from autotranslate.db.models import ScopeLevel
from autotranslate.services.resolver import RenderRequest
from autotranslate.text.markers import extract_hash

HASH = "AbC123xYz9"


async def seed(store, db, source="Hello", **translations):
    await store.upsert_source(db, HASH, source, ScopeLevel.COURSE)
    for lang, (text, human) in translations.items():
        await store.upsert_translation(db, HASH, lang, text, is_human=human)
    await store.commit(db)


@pytest.mark.asyncio
async def test_render_translation(db_session, store, resolver):
    """Test a marker resolves to the requested language."""
    await seed(store, db_session, es=("Hola", True))

    output = await resolver.render(db_session, f"Hello {{t:{HASH}}}", RenderRequest(language="es"))

    assert output == "Hola"


@pytest.mark.asyncio
async def test_render_falls_back_to_source(db_session, store, resolver):
    """Test a missing translation shows the source text."""
    await seed(store, db_session, es=("Hola", True))

    output = await resolver.render(db_session, f"Hello {{t:{HASH}}}", RenderRequest(language="fr"))

    assert output == "Hello"


@pytest.mark.asyncio
async def test_render_site_language_uses_source(db_session, store, resolver):
    """Test the site language is served from the source record."""
    await seed(store, db_session, en=("Hi there", True))

    output = await resolver.render(db_session, f"Hello {{t:{HASH}}}", RenderRequest(language="EN"))

    assert output == "Hello"


@pytest.mark.asyncio
async def test_render_machine_translation_indicator(db_session, store, resolver):
    """Test machine translations carry the indicator only when HTML is allowed."""
    await seed(store, db_session, es=("Hola", False))
    text = f"Hello {{t:{HASH}}}"

    with_html = await resolver.render(db_session, text, RenderRequest(language="es"))
    plain = await resolver.render(db_session, text, RenderRequest(language="es", allow_html=False))

    assert with_html == f"Hola{resolver.indicator}"
    assert "autotranslate-indicator" in with_html
    assert plain == "Hola"


@pytest.mark.asyncio
async def test_render_multiple_markers_keeps_surrounding_text(db_session, store, resolver):
    """Test every marker in a blob is replaced and text after the last one is kept."""
    await seed(store, db_session, es=("Hola", True))
    await store.upsert_source(db_session, "ZyX987cBa1", "World", ScopeLevel.COURSE)
    await store.upsert_translation(db_session, "ZyX987cBa1", "es", "Mundo", is_human=True)
    await store.commit(db_session)

    text = f"Hello {{t:{HASH}}}\n  World {{t:ZyX987cBa1}}!"
    output = await resolver.render(db_session, text, RenderRequest(language="es"))

    assert output == "Hola\n  Mundo!"


@pytest.mark.asyncio
async def test_render_lazily_tags_untagged_text(db_session, store, cache, resolver):
    """Test untagged content is tagged once and then served from cache."""
    request = RenderRequest(language="es", scope_id=12)

    output = await resolver.render(db_session, "Brand new text", request)
    source = await store.find_source_by_text(db_session, "Brand new text")

    assert output == "Brand new text"
    assert source is not None
    assert await store.hashes_for_scope(db_session, 12) == [source.hash]

    again = await resolver.render(db_session, "Brand new text", RenderRequest(language="es", scope_id=12))
    assert again == "Brand new text"
    assert await store.find_source_by_text(db_session, "Brand new text") is not None


@pytest.mark.asyncio
async def test_render_lazy_tag_reuses_existing_hash(db_session, store, resolver):
    """Test lazily tagged text with a known source resolves to its translation."""
    await seed(store, db_session, es=("Hola", True))

    output = await resolver.render(db_session, "Hello", RenderRequest(language="es"))

    assert output == "Hola"


@pytest.mark.asyncio
async def test_render_self_heals_edited_source(db_session, store, resolver):
    """Test editing the text before a marker updates the source record."""
    await seed(store, db_session, es=("Hola", True))

    output = await resolver.render(
        db_session, f"Hello everyone {{t:{HASH}}}", RenderRequest(language="fr")
    )
    source = await store.get_source(db_session, HASH)

    assert output == "Hello everyone"
    assert source.translated_text == "Hello everyone"
    assert await store.is_stale(db_session, HASH, "es") is True


@pytest.mark.asyncio
async def test_render_creates_missing_source(db_session, store, resolver):
    """Test a marker without records gets a source from the preceding text."""
    output = await resolver.render(
        db_session, f"Imported text {{t:{HASH}}}", RenderRequest(language="es", scope_id=3)
    )

    assert output == "Imported text"
    assert (await store.get_source(db_session, HASH)).translated_text == "Imported text"
    assert await store.hashes_for_scope(db_session, 3) == [HASH]


@pytest.mark.asyncio
async def test_render_disabled_scope_level_is_untouched(db_session, store, resolver):
    """Test content at a level that is not enabled is returned as is."""
    await seed(store, db_session, es=("Hola", True))
    text = f"Hello {{t:{HASH}}}"

    output = await resolver.render(
        db_session, text, RenderRequest(language="es", scope_level=ScopeLevel.USER)
    )

    assert output == text


@pytest.mark.asyncio
async def test_render_blank_and_numeric(db_session, resolver):
    """Test empty and numeric content is never tagged."""
    assert await resolver.render(db_session, "", RenderRequest(language="es")) == ""
    assert await resolver.render(db_session, " 42 ", RenderRequest(language="es")) == " 42 "


@pytest.mark.asyncio
async def test_render_uses_request_memo(db_session, store, resolver):
    """Test a hash is resolved once per request."""
    await seed(store, db_session, es=("Hola", True))
    request = RenderRequest(language="es")

    await resolver.render(db_session, f"Hello {{t:{HASH}}}", request)
    await store.upsert_translation(db_session, HASH, "es", "Buenas", is_human=True)
    await store.commit(db_session)
    output = await resolver.render(db_session, f"Hello {{t:{HASH}}}", request)

    assert HASH in request.memo
    assert output == "Hola"


@pytest.mark.asyncio
async def test_render_sees_edits_after_cache_invalidation(db_session, store, resolver):
    """Test a committed edit is visible to the next request."""
    await seed(store, db_session, es=("Hola", True))
    text = f"Hello {{t:{HASH}}}"

    assert await resolver.render(db_session, text, RenderRequest(language="es")) == "Hola"
    await store.upsert_translation(db_session, HASH, "es", "Buenas", is_human=True)
    await store.commit(db_session)

    assert await resolver.render(db_session, text, RenderRequest(language="es")) == "Buenas"


@pytest.mark.asyncio
async def test_render_never_raises(db_session, store, resolver, monkeypatch):
    """Test a failing lookup returns the original text."""
    text = f"Hello {{t:{HASH}}}"

    async def broken(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(store, "get_source", broken)

    assert await resolver.render(db_session, text, RenderRequest(language="es")) == text
    assert extract_hash(text) == HASH


@pytest.mark.asyncio
async def test_render_marker_inside_wrapper(db_session, store, resolver):
    """Test a marker before a closing tag renders without doubling the tag."""
    await seed(store, db_session, source="<p>Hello</p>", es=("<p>Hola</p>", True))
    text = f"<p>Hello {{t:{HASH}}}</p>"

    site = await resolver.render(db_session, text, RenderRequest(language="en"))
    spanish = await resolver.render(db_session, text, RenderRequest(language="es"))

    assert site == "<p>Hello</p>"
    assert spanish == "<p>Hola</p>"
    assert (await store.get_source(db_session, HASH)).translated_text == "<p>Hello</p>"
    assert await store.is_stale(db_session, HASH, "es") is False


@pytest.mark.asyncio
async def test_batch_and_render_agree_on_wrapped_source(
    db_session, store, add_host_rows, orchestrator, resolver
):
    """Test alternating batch runs and renders leave a wrapped source alone."""
    text = f"<p>Hello {{t:{HASH}}}</p>"
    await add_host_rows("book", [{"id": 1, "course": 2, "name": text, "intro": None}])

    await orchestrator.run(db_session, "book")
    await store.upsert_translation(db_session, HASH, "es", "<p>Hola</p>", is_human=True)
    await store.commit(db_session)
    modified = (await store.get_source(db_session, HASH)).modified_at

    assert await resolver.render(db_session, text, RenderRequest(language="en")) == "<p>Hello</p>"
    await orchestrator.run(db_session, "book")
    assert await resolver.render(db_session, text, RenderRequest(language="es")) == "<p>Hola</p>"

    source = await store.get_source(db_session, HASH)
    assert source.translated_text == "<p>Hello</p>"
    assert source.modified_at == modified
    assert await store.is_stale(db_session, HASH, "es") is False
