"""Result container and the shared page table behind transparent paging.

Every call to the Solr server returns a `Result`. A search result only holds
the "rows" the server returned, but `Result.selected()` addresses any rank in
the whole result set: the result's `PageSet` computes which page covers the
rank, requests it with the original parameters (only `start` and `rows`
replaced) and caches it for later lookups.

In sequential mode, loading a page evicts all lower pages, so long scans keep
a bounded number of pages in memory. Seeking backwards then costs a new round
trip.
"""

from __future__ import annotations

import enum
import logging
import sys
import time
import weakref
from datetime import datetime
from typing import IO, Any, Dict, Iterator, List, Mapping, Optional, Protocol, Sequence, Tuple

import httpx
from bs4 import BeautifulSoup  # type: ignore[import-untyped]

from solrkit.document import DEFAULT_UNIQUE_KEY, Document
from solrkit.exceptions import ContractViolation, SolrResultError

logger = logging.getLogger(__name__)

Param = Tuple[str, Any]
TermsTable = List[Tuple[str, int]]

# Page size assumed when the first answer carries no document list at all
DEFAULT_PAGE_SIZE = 50


class SearchClient(Protocol):
    """Anything able to run a search with already expanded parameters."""

    def search(self, params: Sequence[Param], *, sequential: bool = False) -> "Result":
        ...


def replace_params(params: Sequence[Param], new: Mapping[str, Any]) -> List[Param]:
    """Copy `params` with the values of the keys in `new` replaced in place.

    Keys from `new` which do not occur in `params` are appended, in order.
    """
    out: List[Param] = []
    seen = set()
    for key, value in params:
        if key in new:
            value = new[key]
            seen.add(key)
        out.append((key, value))
    out.extend((key, value) for key, value in new.items() if key not in seen)
    return out


class PageSetState(enum.Enum):
    SINGLE_PAGE = "single_page"
    MULTI_PAGE = "multi_page"
    MULTI_PAGE_TRIMMED = "multi_page_trimmed"


class PageSet:
    """Rank-indexed table of the result pages of one search.

    The first page is only weakly referenced: it is the object handed to the
    caller, and it references this table itself. Pages loaded afterwards are
    owned by the table until evicted.

    Parameters
    ----------
    first: Result
        The result of the initial search. Its document count fixes the page
        size used for all follow-up requests.
    sequential: bool
        Retention policy. When set, loading page k evicts all pages below k.
    """

    def __init__(self, first: "Result", *, sequential: bool = False) -> None:
        self.sequential = sequential
        self.cursor = 0
        self.params: Tuple[Param, ...] = tuple(first.params)
        self._first = weakref.ref(first)
        self._pages: Dict[int, Optional[Result]] = {}
        self._page_size: Optional[int] = None
        self._total: Optional[int] = None
        self._loads = 0

    @property
    def first(self) -> "Result":
        page = self._first()
        if page is None:
            raise ContractViolation("the first page of this result set is gone")
        return page

    @property
    def state(self) -> PageSetState:
        if not self._loads:
            return PageSetState.SINGLE_PAGE
        if self.sequential:
            return PageSetState.MULTI_PAGE_TRIMMED
        return PageSetState.MULTI_PAGE

    def pages(self) -> List[Optional["Result"]]:
        """All slots up to the highest known index; absent slots are None."""
        top = max([0, *self._pages])
        return [self.page_at(index) for index in range(top + 1)]

    def page_at(self, index: int) -> Optional["Result"]:
        """Return the cached page at `index`, never fetching it."""
        if index in self._pages:
            return self._pages[index]
        if index == 0:
            return self._first()
        return None

    def full_page_size(self) -> int:
        """Number of documents in the first page, computed once."""
        if self._page_size is None:
            first = self.first
            if first.decoded is None:
                raise ContractViolation("page size requested before the first answer was decoded")
            # an error answer carries no results section at all
            results = first.results_section()
            docs = None if results is None else _docs_in(results)
            self._page_size = DEFAULT_PAGE_SIZE if docs is None else len(docs)
        return self._page_size

    def total(self) -> int:
        """Number of matches reported with the first page, computed once.

        A first page which failed reports no matches.
        """
        if self._total is None:
            first = self.first
            if first.decoded is None and first.response is None:
                raise ContractViolation("there are no results (yet)")
            self._total = first.nr_selected() if first.success else 0
        return self._total

    def page_index_for(self, rank: int) -> int:
        size = self.full_page_size()
        if size == 0:
            return 0
        return rank // size

    def load_page(self, index: int, client: Optional[SearchClient]) -> "Result":
        """Request page `index` and store it in the table."""
        if client is None:
            raise ContractViolation(f"cannot autoload page {index}, no client provided")
        size = self.full_page_size()
        params = replace_params(self.params, {"start": index * size, "rows": size})
        logger.debug("Loading page %d (start=%d, rows=%d)", index, index * size, size)

        page = client.search(params, sequential=self.sequential)
        page.pageset = self
        self._pages[index] = page
        self._loads += 1
        if self.sequential and index > 0:
            for lower in [i for i in self._pages if i < index]:
                self._pages[lower] = None
            self._pages[0] = None

        if not page.success:
            logger.warning("Page %d from %s failed: %s", index, page.endpoint, page.errors().strip())
        return page

    def page_covering(self, rank: int, client: Optional[SearchClient]) -> "Result":
        """Return the page holding `rank`, loading it when not cached."""
        index = self.page_index_for(rank)
        page = self.page_at(index)
        if page is None or (index not in self._pages and self._misaligned(page, index)):
            page = self.load_page(index, client)
        return page

    def page_holding(self, rank: int, client: Optional[SearchClient]) -> "Result":
        """Return a cached page holding `rank`; load one only when none does."""
        for page in [self.page_at(0), *self._pages.values()]:
            if page is not None and page.success and page.covers(rank):
                return page
        return self.page_covering(rank, client)

    def _misaligned(self, page: "Result", index: int) -> bool:
        # the first page may start at an offset which is not a page boundary
        return page.success and page.span()[0] != index * self.full_page_size()

    def resolve_rank(self, rank: int, client: Optional[SearchClient]) -> Optional[Document]:
        """Return the document at `rank`, or None past the end of the results."""
        if rank < 0:
            return None
        first = self.page_at(0)
        if first is not None:
            doc = first.document_at(rank)
            if doc is not None:
                self.advance_cursor(rank)
                return doc

        if rank >= self.total():
            return None

        doc = self.page_covering(rank, client).document_at(rank)
        if doc is not None:
            self.advance_cursor(rank)
        return doc

    def advance_cursor(self, rank: int) -> None:
        self.cursor = rank + 1

    def next(self, client: Optional[SearchClient]) -> Optional[Document]:
        """Return the document after the last one resolved, or None at the end."""
        return self.resolve_rank(self.cursor, client)


def _docs_in(results: Mapping[str, Any]) -> Optional[List[Any]]:
    docs = results.get("docs", results.get("doc"))
    if docs is None:
        return None
    if isinstance(docs, Mapping):
        # a single hit may be decoded as a mapping instead of a list
        return [docs]
    return list(docs)


def _to_msec(seconds: float) -> str:
    return f"{seconds * 1000:.1f}"


class Result:
    """Container for one request/response exchange with the Solr server.

    The request, the response and the decoded answer are attached once each,
    in that order, while the call is executed by a connector.

    Parameters
    ----------
    params:
        Ordered (expanded) parameters used for the call.
    endpoint:
        The URL the request is sent to.
    core:
        The connector which created this result; used to autoload pages.
    sequential:
        Retention policy for the pages of a search, see `PageSet`.
    """

    def __init__(
        self,
        *,
        params: Optional[Sequence[Param]],
        endpoint: Any,
        core: Optional[SearchClient] = None,
        request: Optional[httpx.Request] = None,
        response: Optional[httpx.Response] = None,
        sequential: bool = False,
        unique_key: Optional[str] = None,
    ) -> None:
        if params is None:
            raise ContractViolation("a result requires the parameters of its request")
        if not endpoint:
            raise ContractViolation("a result requires an endpoint")
        self._params: Tuple[Param, ...] = tuple(params)
        self._endpoint = endpoint
        self._core = core
        self.unique_key = unique_key or getattr(core, "unique_key", None) or DEFAULT_UNIQUE_KEY

        self.started_at = datetime.now()
        self._t_start = time.monotonic()
        self._t_request: Optional[float] = None
        self._t_response: Optional[float] = None
        self._t_decoded: Optional[float] = None

        self._request: Optional[httpx.Request] = None
        self._response: Optional[httpx.Response] = None
        self._decoded: Optional[Dict[str, Any]] = None
        self._terms: Dict[str, TermsTable] = {}

        if request is not None:
            self.attach_request(request)
        if response is not None:
            self.attach_response(response)
        self.pageset = PageSet(self, sequential=sequential)

    # ----- call state -----

    @property
    def params(self) -> List[Param]:
        return list(self._params)

    @property
    def endpoint(self) -> Any:
        return self._endpoint

    @property
    def core(self) -> Optional[SearchClient]:
        return self._core

    @property
    def request(self) -> httpx.Request:
        if self._request is None:
            raise ContractViolation("the request has not been constructed yet")
        return self._request

    @property
    def response(self) -> Optional[httpx.Response]:
        return self._response

    @property
    def decoded(self) -> Optional[Dict[str, Any]]:
        return self._decoded

    def attach_request(self, request: httpx.Request) -> None:
        if self._request is not None:
            raise ContractViolation("request already attached to this result")
        self._t_request = time.monotonic()
        self._request = request

    def attach_response(self, response: httpx.Response) -> None:
        if self._response is not None:
            raise ContractViolation("response already attached to this result")
        self._t_response = time.monotonic()
        self._response = response

    def attach_decoded(self, decoded: Dict[str, Any]) -> None:
        if self._decoded is not None:
            raise ContractViolation("decoded answer already attached to this result")
        self._t_decoded = time.monotonic()
        self._decoded = decoded

    def elapse(self) -> Optional[float]:
        """Seconds between creation and decoding, None when not decoded."""
        if self._t_decoded is None:
            return None
        return self._t_decoded - self._t_start

    # ----- status -----

    @property
    def solr_status(self) -> Optional[int]:
        """Status reported by the server; 500 when nothing was decoded."""
        if self._decoded is None:
            return 500
        header = self._decoded.get("responseHeader")
        if not isinstance(header, Mapping):
            return None
        return header.get("status")

    @property
    def success(self) -> bool:
        return self.solr_status == 0

    def __bool__(self) -> bool:
        return self.success

    def solr_qtime(self) -> Optional[float]:
        """Server processing time in seconds."""
        if self._decoded is None:
            return None
        header = self._decoded.get("responseHeader") or {}
        qtime = header.get("QTime")
        return None if qtime is None else qtime / 1000

    def solr_error(self) -> Optional[str]:
        if self._decoded is None:
            return None
        err = self._decoded.get("error") or {}
        msg = str(err.get("msg") or "").rstrip()
        return msg or None

    def http_error(self) -> Optional[str]:
        resp = self._response
        if resp is None or not resp.is_error:
            return None
        return f"{resp.status_code} {resp.reason_phrase}"

    def server_error(self) -> Optional[str]:
        """Text of the HTML error page a servlet container may return."""
        resp = self._response
        if resp is None or resp.status_code == 200:
            return None
        ctype = resp.headers.get("content-type", "")
        if not ctype.lower().startswith("text/html"):
            return None
        soup = BeautifulSoup(resp.text, "html.parser")
        text = (soup.body or soup).get_text("\n", strip=True)
        return text or None

    def errors(self) -> str:
        """All errors collected by this result, as one text block."""
        lines: List[str] = []
        http = self.http_error()
        if http:
            lines += ["HTTP error:", f"   {http}"]
        server = self.server_error()
        if server:
            lines += ["Server error:", *(f"   {line}" for line in server.splitlines())]
        solr = self.solr_error()
        if solr:
            lines += ["Solr error:", f"   {solr}"]
        return "\n".join([*lines, ""])

    # ----- selected documents -----

    def results_section(self) -> Optional[Dict[str, Any]]:
        if self._decoded is None:
            return None
        results = self._decoded.get("result", self._decoded.get("response"))
        return results if isinstance(results, dict) else None

    def nr_selected(self) -> int:
        """Total number of matches; most of them are probably not loaded."""
        results = self.results_section()
        if results is None:
            raise ContractViolation("there are no results (yet)")
        found = results.get("numFound")
        if found is None:
            raise SolrResultError("the answer does not report the number of matches")
        return int(found)

    def span(self) -> Tuple[int, int]:
        """Ranks covered by this page, as a half-open range."""
        results = self.results_section()
        if results is None:
            raise ContractViolation("there are no results in the answer")
        start = results.get("start")
        if start is None:
            raise SolrResultError("the answer does not report its start offset")
        docs = _docs_in(results) or []
        return int(start), int(start) + len(docs)

    def covers(self, rank: int) -> bool:
        start, end = self.span()
        return start <= rank < end

    def document_at(self, rank: int) -> Optional[Document]:
        """Return the document at `rank` when this page holds it."""
        if self._decoded is None and self._response is None:
            raise ContractViolation("there are no results (yet)")
        if not self.success:
            return None
        start, end = self.span()
        if not start <= rank < end:
            return None
        docs = _docs_in(self.results_section() or {}) or []
        return Document.from_result(docs[rank - start], rank, unique_key=self.unique_key)

    def selected(self, rank: int, client: Optional[SearchClient] = None) -> Optional[Document]:
        """Return the document at `rank` in the whole result set.

        Pages outside the loaded ones are requested from the server with
        `client` (default: the connector which produced this result).
        Returns None for ranks beyond the number of matches.

        ```
        r = solr.select(q="author:mark", rows=10)
        last = r.selected(9)
        eleventh = r.selected(10)   # requests the second page
        ```
        """
        return self.pageset.resolve_rank(rank, client or self._core)

    def next_selected(self, client: Optional[SearchClient] = None) -> Optional[Document]:
        """Return the document after the last one selected, None at the end."""
        return self.pageset.next(client or self._core)

    def documents(self, client: Optional[SearchClient] = None) -> Iterator[Document]:
        """Iterate the remaining documents, loading pages as needed."""
        while (doc := self.next_selected(client)) is not None:
            yield doc

    def highlighted(self, document: Document) -> Document:
        """Return the highlighting information for a selected document."""
        rank = document.rank
        if rank is None:
            raise SolrResultError("the document is not part of a search result")
        page = self.pageset.page_holding(rank, self._core)
        table = (page.decoded or {}).get("highlighting")
        if not table:
            raise SolrResultError("there is no highlighting information in the result")
        uid = document.unique_id
        entry = table.get(uid, table.get(str(uid)))
        return Document.from_result(entry or {}, rank, unique_key=self.unique_key)

    # ----- terms -----

    def terms(self, field: str) -> TermsTable:
        """Return the (term, count) pairs of a `query_terms()` call."""
        if field not in self._terms:
            raise SolrResultError(f"no search for terms on field {field} requested")
        return self._terms[field]

    def set_terms(self, field: str, table: TermsTable) -> TermsTable:
        self._terms[field] = list(table)
        return self._terms[field]

    # ----- reporting -----

    def show_timings(self, file: Optional[IO[str]] = None) -> None:
        """Print timing information, by default to stdout."""
        out = file or sys.stdout
        req = self._request
        out.write(f"endpoint: {req.url if req is not None else '(not set yet)'}\n")
        out.write(f"start:    {self.started_at:%c}\n")

        if req is not None and self._t_request is not None:
            size = len(str(req.url)) + len(req.content)
            out.write(
                f"request:  constructed {size} bytes in {_to_msec(self._t_request - self._t_start)} ms\n"
            )

        resp = self._response
        if resp is not None and self._t_response is not None and self._t_request is not None:
            took = _to_msec(self._t_response - self._t_request)
            out.write(f"response: received {len(resp.content)} bytes after {took} ms\n")
            ctype = resp.headers.get("content-type", "")
            out.write(f"          {ctype}, {resp.status_code} {resp.reason_phrase}\n")

        if self._decoded is not None and self._t_decoded is not None:
            if self._t_response is not None:
                out.write(f"decoding: completed in {_to_msec(self._t_decoded - self._t_response)} ms\n")
            qtime = self.solr_qtime()
            if qtime is not None:
                out.write(f"          solr processing took {_to_msec(qtime)} ms\n")
            error = self.solr_error()
            if error:
                out.write(f"          solr reported error: '{error}'\n")
            out.write(f"elapse:   {_to_msec(self._t_decoded - self._t_start)} ms total\n")

    def __str__(self) -> str:
        return str(self._endpoint)

    def __repr__(self) -> str:
        return f"Result(endpoint={str(self._endpoint)!r}, status={self.solr_status!r})"
