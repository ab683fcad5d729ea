"""Solr tools for FastMCP.

Search with transparent paging, term statistics and a few maintenance calls.
"""

from __future__ import annotations

from itertools import islice
from typing import Any, Callable, Dict, List, Optional

from fastmcp import FastMCP

from solrkit.connectors import BaseConnector, connector_from_config
from solrkit.exceptions import SolrResultError
from solrkit.result import Result


def _failure(result: Result) -> Dict[str, Any]:
    return {"ok": False, "status": result.solr_status, "errors": result.errors().strip()}


def register_solr_tools(mcp: FastMCP, get_state: Callable[[], Any]) -> None:
    """Register Solr tools on the given FastMCP instance.

    Uses state.solr when set, else builds a connector from state.settings.solr.
    """

    def _make_connector(state_obj: Any) -> BaseConnector:
        conn = getattr(state_obj, "solr", None)
        if conn is not None:
            return conn
        settings = getattr(state_obj, "settings", None)
        scfg = getattr(settings, "solr", None)
        if scfg is None or not getattr(scfg, "server", None):
            raise RuntimeError("Solr is not configured. Set SOLRKIT_SOLR__SERVER (and SOLRKIT_SOLR__CORE).")
        return connector_from_config(scfg)

    @mcp.tool
    def solr_select(
        query: str,
        rows: int = 10,
        max_docs: int = 10,
        fields: Optional[str] = None,
        filter_query: Optional[str] = None,
        highlight_field: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Search the Solr core.

        Parameters
        ----------
        query: str
            Solr query, e.g. "title:solr AND inStock:true".
        rows: int
            Documents per server round trip (default 10).
        max_docs: int
            Documents to return; more pages are requested as needed (default 10).
        fields: str | None
            Comma-separated field list (the `fl` parameter).
        filter_query: str | None
            Optional filter query (the `fq` parameter).
        highlight_field: str | None
            Field to highlight; adds a "highlights" list to the output.
        """
        conn = _make_connector(get_state())
        params: Dict[str, Any] = {"q": query, "rows": max(1, int(rows))}
        if fields:
            params["fl"] = fields
        if filter_query:
            params["fq"] = filter_query
        if highlight_field:
            params["hl"] = {"fl": highlight_field}

        result = conn.select(sequential=True, **params)
        if not result:
            return _failure(result)

        limit = max(0, int(max_docs))
        docs: List[Dict[str, Any]] = []
        highlights: List[Dict[str, Any]] = []
        for doc in islice(result.documents(), limit):
            docs.append(doc.to_dict())
            if highlight_field:
                try:
                    highlights.append(result.highlighted(doc).to_dict())
                except SolrResultError:
                    highlights.append({})

        found = result.nr_selected()
        out: Dict[str, Any] = {"ok": True, "numFound": found, "docs": docs}
        if highlight_field:
            out["highlights"] = highlights

        # a failed follow-up page also ends documents(); tell it from the end of results
        if len(docs) < min(limit, found):
            pageset = result.pageset
            page = pageset.page_at(pageset.page_index_for(pageset.cursor))
            if page is not None and not page.success:
                out.update(_failure(page))
        return out

    @mcp.tool
    def solr_terms(field: str, limit: int = 10, prefix: Optional[str] = None) -> Dict[str, Any]:
        """List the most frequent indexed terms of a field."""
        conn = _make_connector(get_state())
        result = conn.query_terms(fl=field, limit=int(limit), prefix=prefix)
        if not result:
            return _failure(result)
        try:
            table = result.terms(field)
        except SolrResultError:
            table = []
        return {"ok": True, "terms": [{"term": t, "count": c} for t, c in table]}

    @mcp.tool
    def solr_commit() -> Dict[str, Any]:
        """Commit pending changes on the core."""
        conn = _make_connector(get_state())
        result = conn.commit()
        return {"ok": True} if result else _failure(result)

    @mcp.tool
    def solr_delete(ids: Optional[List[str]] = None, query: Optional[str] = None) -> Dict[str, Any]:
        """Delete documents by unique id and/or query.

        Note: pass `null` for the unused argument when your client requires
        every parameter.
        """
        conn = _make_connector(get_state())
        result = conn.delete(id=ids or None, query=query or None)
        if result is None:
            return {"ok": False, "errors": "nothing to delete"}
        return {"ok": True} if result else _failure(result)

    @mcp.tool
    def solr_core_status() -> Dict[str, Any]:
        """Status information about the configured core."""
        conn = _make_connector(get_state())
        result = conn.core_status()
        if not result:
            return _failure(result)
        return {"ok": True, "status": (result.decoded or {}).get("status", {})}
