"""Script to tag every record of one or more content types without Celery."""

import argparse
import asyncio
import sys

sys.path.insert(0, ".")

from autotranslate.config import get_settings
from autotranslate.db.session import async_session_maker, init_db
from autotranslate.dependencies import (
    build_orchestrator,
    get_content_cache,
    get_host_store,
    get_schema_discovery,
    get_tagging_policy,
)
from autotranslate.exceptions import UnknownContentTypeError
from autotranslate.services.translation_store import TranslationStore


async def main(content_types: list[str], batch_size: int):
    """Run tagging batches until each content type is exhausted."""
    settings = get_settings()

    print("Initializing database...")
    await init_db()

    if not content_types:
        content_types = get_tagging_policy().for_levels(settings.enabled_scope_levels)

    orchestrator = build_orchestrator(
        settings,
        TranslationStore(get_content_cache()),
        get_host_store(),
        get_schema_discovery(),
    )

    async with async_session_maker() as db:
        for content_type in content_types:
            print(f"\nTagging {content_type}...")
            total_records = total_tagged = total_errors = 0
            while True:
                try:
                    result = await orchestrator.run(db, content_type, batch_size)
                except UnknownContentTypeError as e:
                    print(f"  skipped: {e}")
                    break
                total_records += result.records_processed
                total_tagged += result.fields_tagged
                total_errors += result.errors
                print(f"  up to id {result.last_id}: {result.fields_tagged} fields tagged")
                if not result.has_more:
                    break
            print(f"Done: {total_records} records, {total_tagged} fields tagged, {total_errors} errors")

    await get_content_cache().close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("content_types", nargs="*", help="Content types (default: all enabled)")
    parser.add_argument("--batch-size", type=int, default=get_settings().tagging_batch_size)
    args = parser.parse_args()
    asyncio.run(main(args.content_types, args.batch_size))
