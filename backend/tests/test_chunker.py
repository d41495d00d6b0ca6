"""Sentence chunking, overlap, stable ids, precomputed rows, chunk endpoint."""

import base64

import pytest

from conftest import add_document, bearer

from technodog_api.services.chunker import chunk_id, chunk_text, split_sentences

SENTENCES = [
    f"Sentence number {i} talks about the warehouse rave scene in some detail."
    for i in range(30)
]
LONG_TEXT = " ".join(SENTENCES)


def test_split_sentences_keeps_punctuation():
    assert split_sentences("One. Two!  Three? Four") == ["One.", "Two!", "Three?", "Four"]


def test_chunk_id_format():
    assert chunk_id("berghain-history", 0) == "berghain-history_000"
    assert chunk_id("berghain-history", 12) == "berghain-history_012"


def test_short_text_is_one_chunk():
    assert chunk_text("Just one sentence.", chunk_size=500) == ["Just one sentence."]


def test_chunks_respect_size_except_for_overlap_seed():
    chunks = chunk_text(LONG_TEXT, chunk_size=300)
    assert len(chunks) > 1
    # Every closed chunk fitted before the sentence that overflowed it.
    for chunk in chunks[:-1]:
        assert len(chunk) <= 300 + len(max(SENTENCES, key=len))


def test_adjacent_chunks_share_overlap_words():
    chunks = chunk_text(LONG_TEXT, chunk_size=300, overlap=50)
    for current, following in zip(chunks, chunks[1:]):
        tail = " ".join(current.split(" ")[-10:])
        assert following.startswith(tail)


def test_oversized_sentence_is_not_cut():
    sentence = "x" * 80 + "."
    assert chunk_text(sentence, chunk_size=10) == [sentence]


def test_rechunking_is_deterministic():
    assert chunk_text(LONG_TEXT, 250) == chunk_text(LONG_TEXT, 250)


# ── Endpoint ────────────────────────────────────────────────
async def test_dynamic_chunks_are_stable(client, api_key, session):
    _, raw = api_key
    await add_document(session, "rave-history", LONG_TEXT)
    params = {"docId": "rave-history", "chunkSize": 300}

    first = (await client.get("/api/v1/docs/chunks", params=params, headers=bearer(raw))).json()
    second = (await client.get("/api/v1/docs/chunks", params=params, headers=bearer(raw))).json()

    ids = [c["chunkId"] for c in first["chunks"]]
    assert ids == [c["chunkId"] for c in second["chunks"]]
    assert ids[0] == "rave-history_000"
    assert [c["index"] for c in first["chunks"]] == list(range(len(ids)))
    assert first["docId"] == "rave-history"


async def test_chunk_pages_of_twenty(client, api_key, session):
    _, raw = api_key
    await add_document(session, "rave-history", LONG_TEXT)
    params = {"docId": "rave-history", "chunkSize": 80}

    first = (await client.get("/api/v1/docs/chunks", params=params, headers=bearer(raw))).json()
    assert len(first["chunks"]) == 20
    assert base64.b64decode(first["nextCursor"]) == b"20"

    second = (await client.get(
        "/api/v1/docs/chunks", params={**params, "cursor": first["nextCursor"]}, headers=bearer(raw),
    )).json()
    assert second["chunks"][0]["index"] == 20
    assert second["nextCursor"] is None


async def test_precomputed_rows_are_served_in_order(client, api_key, session):
    _, raw = api_key
    await add_document(session, "909-part-2", "Second part.", title="Roland TR-909", chunk_index=1)
    await add_document(session, "909-part-1", "First part.", title="Roland TR-909", chunk_index=0)

    response = await client.get("/api/v1/docs/chunks", params={"docId": "Roland TR-909"}, headers=bearer(raw))
    body = response.json()
    assert [c["text"] for c in body["chunks"]] == ["First part.", "Second part."]
    assert [c["chunkId"] for c in body["chunks"]] == ["Roland TR-909_000", "Roland TR-909_001"]
    assert body["nextCursor"] is None


@pytest.mark.parametrize(
    ("params", "status", "code"),
    [
        ({}, 400, "bad_request"),
        ({"docId": "missing"}, 404, "not_found"),
        ({"docId": "rave-history", "cursor": base64.b64encode(b"abc").decode()}, 400, "bad_request"),
    ],
)
async def test_chunk_errors(client, api_key, session, params, status, code):
    _, raw = api_key
    await add_document(session, "rave-history", LONG_TEXT)
    response = await client.get("/api/v1/docs/chunks", params=params, headers=bearer(raw))
    assert response.status_code == status
    assert response.json()["error"]["code"] == code


async def test_non_numeric_chunk_size_is_bad_request_with_rate_limit_headers(client, api_key):
    _, raw = api_key
    response = await client.get(
        "/api/v1/docs/chunks", params={"docId": "x", "chunkSize": "x"}, headers=bearer(raw),
    )
    assert response.status_code == 400
    assert "X-RateLimit-Remaining" in response.headers


# ── Single document ─────────────────────────────────────────
async def test_get_document(client, api_key, session):
    _, raw = api_key
    await add_document(session, "ostgut", "Ostgut ran until 2003.", metadata_={"tags": ["berlin"], "era": "90s"})

    response = await client.get("/api/v1/docs", params={"docId": "ostgut"}, headers=bearer(raw))
    assert response.status_code == 200
    doc = response.json()["doc"]
    assert doc["docId"] == "ostgut"
    assert doc["type"] == "article"
    assert doc["tags"] == ["berlin"]
    assert doc["content"] == {"text": "Ostgut ran until 2003."}
    assert doc["metadata"]["source_url"] == "https://techno.dog/docs/ostgut"
    assert doc["metadata"]["license"] == "TECHNO.DOG Knowledge License"
    assert doc["metadata"]["era"] == "90s"

    missing = await client.get("/api/v1/docs", params={"docId": "nope"}, headers=bearer(raw))
    assert missing.status_code == 404
