"""
Dev bootstrap script — seed documents and issue an API key for local development.

Usage:
    python -m scripts.bootstrap_dev [USER_ID]

This will:
  1. Insert a few sample documents (skipped if they already exist),
     queueing a content.created webhook event for each new one
  2. Issue an API key for USER_ID (a fresh UUID when omitted),
     revoking any key that user already holds
  3. Print the raw key ONCE (it is never stored)

The raw key is shown exactly once — copy it immediately.
"""

import asyncio
import sys
import uuid

# Ensure the project root is on the path
sys.path.insert(0, ".")

from technodog_api.core.database import async_session_factory, engine
from technodog_api.models.document import Document
from technodog_api.schemas.api_keys import APIKeyCreate
from technodog_api.services.api_keys import issue_api_key
from technodog_api.services.webhook_dispatcher import enqueue_webhook_event

SAMPLE_DOCUMENTS = [
    {
        "id": "berghain-history",
        "title": "Berghain: A History",
        "content": (
            "Berghain opened in 2004 in a former power plant in Friedrichshain. "
            "Its roots go back to Ostgut, a club that ran from 1998 to 2003. "
            "The main floor is known for a Funktion-One sound system. "
            "Panorama Bar sits upstairs and leans towards house music."
        ),
        "metadata": {"type": "venue", "tags": ["berlin", "club", "history"]},
    },
    {
        "id": "roland-tr-909",
        "title": "Roland TR-909",
        "content": (
            "The TR-909 is a drum machine released by Roland in 1983. "
            "It combines analog synthesis with sampled cymbals and hi-hats. "
            "Its kick and open hat define the sound of Detroit and Chicago dance music."
        ),
        "metadata": {"type": "gear", "tags": ["drum-machine", "roland"]},
    },
    {
        "id": "underground-resistance",
        "title": "Underground Resistance",
        "content": (
            "Underground Resistance is a Detroit collective founded by Mad Mike Banks "
            "and Jeff Mills. The label pairs militant politics with raw techno. "
            "Its releases rarely show the faces of the artists."
        ),
        "metadata": {"type": "artist", "tags": ["detroit", "label", "collective"]},
    },
]


async def seed_documents(session) -> int:  # type: ignore[no-untyped-def]
    created = 0
    for sample in SAMPLE_DOCUMENTS:
        if await session.get(Document, sample["id"]) is not None:
            continue
        session.add(
            Document(
                id=sample["id"],
                title=sample["title"],
                content=sample["content"],
                metadata_=sample["metadata"],
            )
        )
        await enqueue_webhook_event(
            session,
            "content.created",
            entity_type="document",
            entity_id=sample["id"],
            payload={"title": sample["title"]},
        )
        created += 1
    await session.commit()
    return created


async def main() -> None:
    user_id = uuid.UUID(sys.argv[1]) if len(sys.argv) > 1 else uuid.uuid4()

    async with async_session_factory() as session:
        # ── Seed documents ──────────────────────────────────
        seeded = await seed_documents(session)

        # ── Issue API key ───────────────────────────────────
        api_key, raw_key = await issue_api_key(
            session, user_id, APIKeyCreate(name="Dev Key"),
        )

    # ── Print results ───────────────────────────────────────
    print()
    print("=" * 60)
    print("  Dev Bootstrap Complete")
    print("=" * 60)
    print()
    print(f"  Documents seeded: {seeded}")
    print(f"  User ID:          {user_id}")
    print(f"  Key prefix:       {api_key.prefix}")
    print()
    print(f"  API Key:    {raw_key}")
    print()
    print("  ⚠  Copy this key now — it will NEVER be shown again.")
    print("=" * 60)
    print()

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
