import json
from typing import Any, Dict, List, Optional, Union

import httpx
import pytest
from fastmcp import Client, FastMCP
from fastmcp.exceptions import ToolError

from solrkit.config import Settings
from solrkit.connectors import BaseConnector, JSONConnector
from solrkit.mcp.tools.solr import register_solr_tools


class DummyState:
    def __init__(self, solr: Optional[BaseConnector] = None) -> None:
        self.settings = Settings()
        self.settings.solr.server = None
        self.solr = solr


def _extract_json_payload(result: Any) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
    if isinstance(result, (dict, list)):
        return result
    # FastMCP Client returns CallToolResult with content list of TextContent
    content = getattr(result, "content", None)
    if isinstance(content, list) and content:
        for item in content:
            text = getattr(item, "text", None)
            if isinstance(text, str):
                try:
                    return json.loads(text)
                except json.JSONDecodeError:
                    continue
    raise AssertionError("Unable to extract JSON payload from tool result")


def make_solr(responder: Any) -> JSONConnector:
    conn = JSONConnector(server="http://solr.test/solr", core="books")

    def _client() -> httpx.Client:  # type: ignore[override]
        return httpx.Client(transport=httpx.MockTransport(responder))

    setattr(conn, "_client", _client)
    return conn


def corpus_responder(n: int, seen: List[httpx.Request], **extra: Any) -> Any:
    docs = [{"id": f"D{i}", "title": f"Title {i}"} for i in range(n)]

    def responder(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        start = int(request.url.params.get("start", 0))
        rows = int(request.url.params.get("rows", 10))
        return httpx.Response(
            200,
            json={
                "responseHeader": {"status": 0, "QTime": 1},
                "response": {"numFound": n, "start": start, "docs": docs[start : start + rows]},
                **extra,
            },
        )

    return responder


def make_mcp(state: DummyState) -> FastMCP:
    mcp = FastMCP("test")
    register_solr_tools(mcp, get_state=lambda: state)
    return mcp


@pytest.mark.asyncio
async def test_solr_select_pages_until_max_docs() -> None:
    seen: List[httpx.Request] = []
    mcp = make_mcp(DummyState(make_solr(corpus_responder(5, seen))))

    client = Client(mcp)
    async with client:
        res = await client.call_tool("solr_select", {"query": "*:*", "rows": 2, "max_docs": 3})

    payload = _extract_json_payload(res)
    assert payload["ok"] is True
    assert payload["numFound"] == 5
    assert [d["id"] for d in payload["docs"]] == ["D0", "D1", "D2"]
    assert len(seen) == 2
    assert seen[1].url.params["start"] == "2"


@pytest.mark.asyncio
async def test_solr_select_with_highlighting() -> None:
    seen: List[httpx.Request] = []
    highlighting = {"D0": {"title": ["<em>Title</em> 0"]}}
    mcp = make_mcp(DummyState(make_solr(corpus_responder(1, seen, highlighting=highlighting))))

    client = Client(mcp)
    async with client:
        res = await client.call_tool(
            "solr_select", {"query": "title:Title", "highlight_field": "title", "fields": "id,title"}
        )

    payload = _extract_json_payload(res)
    assert payload["highlights"] == [{"title": "<em>Title</em> 0"}]
    params = dict(seen[0].url.params.multi_items())
    assert params["hl"] == "true"
    assert params["hl.fl"] == "title"
    assert params["fl"] == "id,title"


@pytest.mark.asyncio
async def test_solr_select_reports_server_errors() -> None:
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400, json={"responseHeader": {"status": 400}, "error": {"msg": "undefined field nope"}}
        )

    mcp = make_mcp(DummyState(make_solr(responder)))

    client = Client(mcp)
    async with client:
        res = await client.call_tool("solr_select", {"query": "nope:1"})

    payload = _extract_json_payload(res)
    assert payload["ok"] is False
    assert payload["status"] == 400
    assert "undefined field nope" in payload["errors"]


@pytest.mark.asyncio
async def test_solr_terms_lists_counts() -> None:
    def responder(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"responseHeader": {"status": 0}, "terms": {"subject": {"solr": 5, "lucene": 3}}}
        )

    mcp = make_mcp(DummyState(make_solr(responder)))

    client = Client(mcp)
    async with client:
        res = await client.call_tool("solr_terms", {"field": "subject", "limit": 2})

    payload = _extract_json_payload(res)
    assert payload == {"ok": True, "terms": [{"term": "solr", "count": 5}, {"term": "lucene", "count": 3}]}


@pytest.mark.asyncio
async def test_solr_delete_and_commit() -> None:
    seen: List[httpx.Request] = []
    mcp = make_mcp(DummyState(make_solr(corpus_responder(0, seen))))

    client = Client(mcp)
    async with client:
        res_none = await client.call_tool("solr_delete", {})
        res_delete = await client.call_tool("solr_delete", {"ids": ["D1"]})
        res_commit = await client.call_tool("solr_commit", {})

    assert _extract_json_payload(res_none) == {"ok": False, "errors": "nothing to delete"}
    assert _extract_json_payload(res_delete) == {"ok": True}
    assert _extract_json_payload(res_commit) == {"ok": True}
    assert [json.loads(req.content) for req in seen] == [{"delete": {"id": "D1"}}, {"commit": {}}]
    assert seen[0].url.params["commit"] == "true"


@pytest.mark.asyncio
async def test_solr_core_status() -> None:
    def responder(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/solr/admin/cores"
        return httpx.Response(
            200, json={"responseHeader": {"status": 0}, "status": {"books": {"name": "books", "numDocs": 3}}}
        )

    mcp = make_mcp(DummyState(make_solr(responder)))

    client = Client(mcp)
    async with client:
        res = await client.call_tool("solr_core_status", {})

    payload = _extract_json_payload(res)
    assert payload["status"]["books"]["numDocs"] == 3


@pytest.mark.asyncio
async def test_tools_fail_without_solr_configuration() -> None:
    mcp = make_mcp(DummyState())

    client = Client(mcp)
    async with client:
        with pytest.raises(ToolError, match="Solr is not configured"):
            await client.call_tool("solr_commit", {})


@pytest.mark.asyncio
async def test_solr_select_reports_failed_follow_up_page() -> None:
    seen: List[httpx.Request] = []
    healthy = corpus_responder(5, seen)

    def responder(request: httpx.Request) -> httpx.Response:
        if int(request.url.params.get("start", 0)) >= 2:
            seen.append(request)
            return httpx.Response(500, json={"responseHeader": {"status": 500}, "error": {"msg": "shard down"}})
        return healthy(request)

    mcp = make_mcp(DummyState(make_solr(responder)))

    client = Client(mcp)
    async with client:
        res = await client.call_tool("solr_select", {"query": "*:*", "rows": 2, "max_docs": 5})

    payload = _extract_json_payload(res)
    assert payload["ok"] is False
    assert payload["status"] == 500
    assert "shard down" in payload["errors"]
    assert payload["numFound"] == 5
    assert [d["id"] for d in payload["docs"]] == ["D0", "D1"]
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_solr_select_short_result_is_not_a_failure() -> None:
    seen: List[httpx.Request] = []
    mcp = make_mcp(DummyState(make_solr(corpus_responder(3, seen))))

    client = Client(mcp)
    async with client:
        res = await client.call_tool("solr_select", {"query": "*:*", "rows": 2, "max_docs": 10})

    payload = _extract_json_payload(res)
    assert payload["ok"] is True
    assert [d["id"] for d in payload["docs"]] == ["D0", "D1", "D2"]


@pytest.mark.asyncio
async def test_solr_select_with_zero_max_docs_returns_no_documents() -> None:
    seen: List[httpx.Request] = []
    mcp = make_mcp(DummyState(make_solr(corpus_responder(3, seen))))

    client = Client(mcp)
    async with client:
        res = await client.call_tool("solr_select", {"query": "*:*", "max_docs": 0})

    payload = _extract_json_payload(res)
    assert payload == {"ok": True, "numFound": 3, "docs": []}
    assert len(seen) == 1
