"""Search: snippet/score rules, time cursor pagination, filters and errors."""

import base64

import pytest

from conftest import add_document, bearer

from technodog_api.services.pagination import (
    InvalidCursor,
    TimeCursor,
    decode_offset_cursor,
    decode_time_cursor,
    encode_time_cursor,
)
from technodog_api.services.search import make_snippet, relevance_score


# ── Pure helpers ────────────────────────────────────────────
def test_snippet_centres_on_first_match():
    content = "a" * 80 + "TR-909" + "b" * 200
    snippet = make_snippet(content, "tr-909")
    assert snippet.startswith("...")
    assert snippet.endswith("...")
    assert snippet[3:-3] == "a" * 50 + "TR-909" + "b" * 100


def test_snippet_without_ellipsis_at_boundaries():
    assert make_snippet("Acid house from Chicago.", "acid") == "Acid house from Chicago."


def test_snippet_falls_back_to_head_when_no_match():
    assert make_snippet("short text", "zzz") == "short text"
    assert make_snippet("x" * 200, "zzz") == "x" * 150 + "..."


@pytest.mark.parametrize(
    ("title", "content", "expected"),
    [
        ("Detroit", "Detroit techno", 0.99),
        ("Berlin", "Detroit techno", 0.7),
        ("Detroit", "Berlin", 0.5),
        ("Berlin", "Berlin", 0.2),
    ],
)
def test_relevance_score(title, content, expected):
    assert relevance_score(title, content, "detroit") == expected


def test_time_cursor_accepts_standard_and_url_safe_alphabets():
    bare = decode_time_cursor(base64.b64encode(b"2026-01-15T12:00:00+00:00").decode())
    assert bare.updated_at.isoformat() == "2026-01-15T12:00:00+00:00"
    assert bare.doc_id is None

    cursor = encode_time_cursor(bare.updated_at, "roland-tr-909")
    decoded = decode_time_cursor(cursor)
    assert decoded == TimeCursor(bare.updated_at, "roland-tr-909")
    assert decode_time_cursor(cursor.replace("+", "-").replace("/", "_")) == decoded


@pytest.mark.parametrize("bad", ["!!!", base64.b64encode(b"not a date").decode(), base64.b64encode(b"-4").decode()])
def test_invalid_cursors_raise(bad):
    with pytest.raises(InvalidCursor):
        decode_time_cursor(bad)
    with pytest.raises(InvalidCursor):
        decode_offset_cursor(bad)


# ── Endpoint ────────────────────────────────────────────────
@pytest.fixture
async def three_releases(session):
    await add_document(session, "release-a", "Catalogue number 101, first pressing.", minutes_ago=1,
                       metadata_={"type": "release", "tags": ["vinyl"]})
    await add_document(session, "release-b", "Reissue of 101 with new artwork.", minutes_ago=2,
                       metadata_={"type": "release", "tags": ["vinyl", "reissue"]})
    await add_document(session, "release-c", "The 101 test pressing.", minutes_ago=3,
                       source="https://example.org/release-c")
    await add_document(session, "unrelated", "Nothing to see here.", minutes_ago=0)


async def test_search_paginates_with_cursor(client, api_key, three_releases):
    _, raw = api_key

    first = await client.get("/api/v1/search", params={"q": "101", "limit": 2}, headers=bearer(raw))
    assert first.status_code == 200
    page1 = first.json()
    assert [r["docId"] for r in page1["results"]] == ["release-a", "release-b"]
    assert page1["nextCursor"] is not None
    assert page1["query"] == "101"
    assert page1["requestId"] == first.headers["X-Request-Id"]

    second = await client.get(
        "/api/v1/search",
        params={"q": "101", "limit": 2, "cursor": page1["nextCursor"]},
        headers=bearer(raw),
    )
    page2 = second.json()
    assert [r["docId"] for r in page2["results"]] == ["release-c"]
    assert page2["nextCursor"] is None


async def test_concatenated_pages_equal_single_fetch(client, api_key, session):
    _, raw = api_key
    for i in range(7):
        await add_document(session, f"doc-{i}", f"Acid line number {i}.", minutes_ago=i)

    whole = await client.get("/api/v1/search", params={"q": "acid", "limit": 50}, headers=bearer(raw))
    expected = [r["docId"] for r in whole.json()["results"]]

    collected, cursor = [], None
    while True:
        params = {"q": "acid", "limit": 3}
        if cursor:
            params["cursor"] = cursor
        page = (await client.get("/api/v1/search", params=params, headers=bearer(raw))).json()
        collected.extend(r["docId"] for r in page["results"])
        cursor = page["nextCursor"]
        if cursor is None:
            break

    assert collected == expected
    assert len(collected) == 7


async def test_result_fields(client, api_key, three_releases):
    _, raw = api_key
    response = await client.get("/api/v1/search", params={"q": "101", "limit": 10}, headers=bearer(raw))
    results = {r["docId"]: r for r in response.json()["results"]}

    a = results["release-a"]
    assert a["type"] == "release"
    assert a["tags"] == ["vinyl"]
    assert a["score"] == 0.7
    assert a["url"] == "https://techno.dog/docs/release-a"
    assert a["updatedAt"].startswith("2026-01-15T11:59:00")

    c = results["release-c"]
    assert c["type"] == "article"
    assert c["url"] == "https://example.org/release-c"


async def test_tag_and_type_filters(client, api_key, three_releases):
    _, raw = api_key
    by_tag = await client.get("/api/v1/search", params={"q": "101", "tags": "reissue"}, headers=bearer(raw))
    assert [r["docId"] for r in by_tag.json()["results"]] == ["release-b"]

    by_type = await client.get("/api/v1/search", params={"q": "101", "types": "article,gear"}, headers=bearer(raw))
    assert [r["docId"] for r in by_type.json()["results"]] == ["release-c"]


async def test_updated_after_filter(client, api_key, three_releases):
    _, raw = api_key
    response = await client.get(
        "/api/v1/search",
        params={"q": "101", "updated_after": "2026-01-15T11:58:00Z"},
        headers=bearer(raw),
    )
    assert [r["docId"] for r in response.json()["results"]] == ["release-a", "release-b"]


async def test_like_wildcards_are_literal(client, api_key, session):
    _, raw = api_key
    await add_document(session, "percent", "Pitch up 8% on the decks.")
    await add_document(session, "plain", "Pitch up eight on the decks.")
    response = await client.get("/api/v1/search", params={"q": "8%"}, headers=bearer(raw))
    assert [r["docId"] for r in response.json()["results"]] == ["percent"]


async def test_limit_is_clamped(client, api_key, session):
    _, raw = api_key
    for i in range(3):
        await add_document(session, f"doc-{i}", "Minimal techno.", minutes_ago=i)
    response = await client.get("/api/v1/search", params={"q": "minimal", "limit": 0}, headers=bearer(raw))
    assert len(response.json()["results"]) == 1


@pytest.mark.parametrize(
    ("params", "message"),
    [
        ({}, "Missing required query parameter: q"),
        ({"q": "101", "cursor": "%%%"}, "Invalid cursor format"),
        ({"q": "101", "updated_after": "yesterday"}, "Invalid updated_after: expected an ISO-8601 timestamp"),
    ],
)
async def test_bad_requests(client, api_key, params, message):
    _, raw = api_key
    response = await client.get("/api/v1/search", params=params, headers=bearer(raw))
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "bad_request"
    assert response.json()["error"]["message"] == message
    assert "X-RateLimit-Limit" in response.headers


async def test_malformed_query_parameter_keeps_rate_limit_headers(client, api_key):
    _, raw = api_key
    response = await client.get("/api/v1/search", params={"q": "x", "limit": "abc"}, headers=bearer(raw))

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "bad_request"
    assert response.json()["error"]["message"].startswith("Invalid parameter 'limit'")
    assert response.headers["X-RateLimit-Limit"] == "60"
    assert response.headers["X-RateLimit-Remaining"] == "59"
    assert response.headers["X-Request-Id"] == response.json()["error"]["requestId"]


async def test_pages_do_not_skip_documents_sharing_a_timestamp(client, api_key, session):
    _, raw = api_key
    for doc_id in ("tie-a", "tie-b", "tie-c", "tie-d"):
        await add_document(session, doc_id, "Same second, same acid line.")

    collected, cursor = [], None
    while True:
        params = {"q": "acid", "limit": 2}
        if cursor:
            params["cursor"] = cursor
        page = (await client.get("/api/v1/search", params=params, headers=bearer(raw))).json()
        collected.extend(r["docId"] for r in page["results"])
        cursor = page["nextCursor"]
        if cursor is None:
            break

    assert collected == ["tie-d", "tie-c", "tie-b", "tie-a"]
