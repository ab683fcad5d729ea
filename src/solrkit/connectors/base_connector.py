"""Base connector for one core (collection) of a Solr server.

The connector turns high-level calls (select, add_document, commit, ...) into
HTTP requests via httpx. Subclasses implement one wire encoding: they build
request bodies and decode response bodies into plain dicts and lists, which
the `Result` objects consume without knowing the encoding.

Connectors do not perform network calls until methods are invoked.
"""

from __future__ import annotations

import logging
import mimetypes
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import IO, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import httpx

from solrkit.document import DEFAULT_UNIQUE_KEY, Document
from solrkit.exceptions import ParameterError, UnsupportedFeatureError
from solrkit.result import Param, Result, TermsTable
from solrkit.tables import BOOL_PARAMS, DEPRECATED, INTRODUCED, SELECT_SETS

logger = logging.getLogger(__name__)

LATEST_SOLR_VERSION = "4.0"

ParamSource = Union[Mapping[str, Any], Sequence[Param], Param]
Body = Tuple[bytes, str]


def to_bool(value: Any) -> str:
    """Solr spelling of a boolean parameter."""
    if value and value not in ("false", "off", "0"):
        return "true"
    return "false"


def version_tuple(version: str) -> Tuple[int, ...]:
    parts = []
    for piece in str(version).split("."):
        m = re.match(r"\d+", piece)
        parts.append(int(m.group()) if m else 0)
    return tuple(parts)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def collect_params(pairs: Iterable[ParamSource], params: Mapping[str, Any]) -> List[Param]:
    """Flatten positional pair sources and keyword parameters, keeping order."""
    out: List[Param] = []
    for item in pairs:
        if isinstance(item, Mapping):
            out.extend(item.items())
        elif isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], str):
            out.append(item)
        else:
            out.extend(item)  # type: ignore[arg-type]
    out.extend(params.items())
    return out


class BaseConnector(ABC):
    """Abstract Solr connector.

    Parameters
    ----------
    server:
        Base URL of the Solr application, e.g. http://localhost:8983/solr
    core:
        Core (collection) addressed by default. When None, the server picks
        its default core or the core is already part of `server`.
    autocommit:
        Commit changes immediately unless specified differently per call.
    server_version:
        Version of the Solr server software. Parameters unknown to that
        version are dropped with a warning.
    username, token:
        Credentials for HTTP basic authentication.
    unique_key:
        Name of the schema's unique key field, used to match highlighting.
    """

    #: value of the `wt` parameter
    format: str = ""
    #: whether one delete request may carry several ids/queries
    batch_delete: bool = True

    def __init__(
        self,
        *,
        server: str,
        core: Optional[str] = None,
        autocommit: bool = True,
        server_version: str = LATEST_SOLR_VERSION,
        username: Optional[str] = None,
        token: Optional[str] = None,
        verify_ssl: bool = True,
        timeout: float = 30.0,
        unique_key: str = DEFAULT_UNIQUE_KEY,
    ) -> None:
        self.server = httpx.URL(server.rstrip("/"))
        self.core = core
        self.autocommit = autocommit
        self.server_version = server_version or LATEST_SOLR_VERSION
        self.username = username
        self.token = token
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.unique_key = unique_key
        self._reported: Set[str] = set()

    def _client(self) -> httpx.Client:
        auth = (self.username, self.token) if self.username and self.token else None
        return httpx.Client(auth=auth, timeout=self.timeout, verify=self.verify_ssl)

    def supports(self, version: str) -> bool:
        """True when the configured server is at least `version`."""
        return version_tuple(self.server_version) >= version_tuple(version)

    # ----- wire encoding -----

    @abstractmethod
    def update_action(self) -> str:
        """Name of the update handler for this encoding."""

    @abstractmethod
    def encode_add(self, docs: List[Document], attrs: Dict[str, Any], params: Dict[str, Any]) -> Body:
        """Build the body of an add request; may move `attrs` into `params`."""

    @abstractmethod
    def encode_command(
        self, command: str, attrs: Mapping[str, Any], content: Optional[Sequence[Param]] = None
    ) -> Body:
        """Build the body of a simple update command (commit, delete, ...)."""

    @abstractmethod
    def decode_response(self, response: httpx.Response) -> Optional[Dict[str, Any]]:
        """Decode the response body, or None when it is not in this encoding."""

    @abstractmethod
    def decode_terms(self, decoded: Mapping[str, Any]) -> Dict[str, TermsTable]:
        """Extract the per-field (term, count) tables of a terms answer."""

    # ----- searching -----

    def select(self, *pairs: ParamSource, sequential: bool = False, **params: Any) -> Result:
        """Find documents; parameters are expanded with `expand_select()`.

        ```
        r = solr.select(q="inStock:true", rows=10, hl={"fl": "content"})
        if r:
            doc = r.selected(0)
        ```
        """
        return self.search(self.expand_select(*pairs, **params), sequential=sequential)

    def search(self, params: Sequence[Param], *, sequential: bool = False) -> Result:
        """Run one select request with already expanded parameters."""
        params = list(params)
        # follow-up pages pass the parameters of the first request
        if not any(key == "wt" for key, _ in params):
            params.insert(0, ("wt", self.format))
        endpoint = self.endpoint("select", params=params)
        result = self._new_result(params, endpoint, sequential=sequential)
        self.request(endpoint, result)
        return result

    def query_terms(self, *pairs: ParamSource, **params: Any) -> Result:
        """Search for often used terms (the TermsComponent).

        ```
        r = solr.query_terms(fl="subject", limit=100)
        for term, count in r.terms("subject"):
            ...
        ```
        """
        query = [("wt", self.format), *self.expand_terms(*pairs, **params)]
        endpoint = self.endpoint("terms", params=query)
        result = self._new_result(query, endpoint)
        self.request(endpoint, result)
        if result.decoded is not None:
            for field, table in self.decode_terms(result.decoded).items():
                result.set_terms(field, table)
        return result

    # ----- updating -----

    def add_document(
        self,
        docs: Union[Document, Sequence[Document]],
        *,
        commit: Optional[bool] = None,
        commit_within: Optional[float] = None,
        overwrite: Optional[bool] = None,
        **deprecated: Any,
    ) -> Result:
        """Add one or more documents.

        `commit_within` is in seconds; servers before 3.4 commit immediately.
        """
        doc_list = [docs] if isinstance(docs, Document) else list(docs)
        attrs: Dict[str, Any] = {}
        params: Dict[str, Any] = {"commit": to_bool(self.autocommit if commit is None else commit)}

        if commit_within:
            if self.supports("3.4"):
                attrs["commitWithin"] = int(commit_within * 1000)
            else:
                attrs["commit"] = "true"
        if overwrite is not None:
            attrs["overwrite"] = to_bool(overwrite)

        for option, attr in (
            ("allow_dups", "allowDups"),
            ("overwrite_pending", "overwritePending"),
            ("overwrite_committed", "overwriteCommitted"),
        ):
            if option not in deprecated:
                continue
            value = deprecated.pop(option)
            if self.supports("1.0"):
                self.deprecated(f"add({attr})")
            else:
                attrs[attr] = to_bool(value)
        if deprecated:
            raise TypeError(f"unexpected add_document() options: {', '.join(sorted(deprecated))}")

        body, ctype = self.encode_add(doc_list, attrs, params)
        query = [("wt", self.format), *params.items()]
        endpoint = self.endpoint(self.update_action(), params=query)
        result = self._new_result(query, endpoint)
        self.request(endpoint, result, body, ctype)
        return result

    def commit(
        self,
        *,
        wait_flush: Optional[bool] = None,
        wait_searcher: Optional[bool] = None,
        soft_commit: Optional[bool] = None,
        expunge_deletes: Optional[bool] = None,
    ) -> Result:
        attrs: Dict[str, Any] = {}
        if wait_flush is not None:
            if self.supports("1.4"):
                self.deprecated("commit(waitFlush)")
            else:
                attrs["waitFlush"] = to_bool(wait_flush)
        if wait_searcher is not None:
            attrs["waitSearcher"] = to_bool(wait_searcher)
        if soft_commit is not None:
            if self.supports("4.0"):
                attrs["softCommit"] = to_bool(soft_commit)
            else:
                self.ignored("commit(softCommit)")
        if expunge_deletes is not None:
            if self.supports("1.4"):
                attrs["expungeDeletes"] = to_bool(expunge_deletes)
            else:
                self.ignored("commit(expungeDeletes)")
        return self.simple_update("commit", attrs)

    def optimize(
        self,
        *,
        wait_flush: Optional[bool] = None,
        wait_searcher: Optional[bool] = None,
        soft_commit: Optional[bool] = None,
        max_segments: Optional[int] = None,
    ) -> Result:
        attrs: Dict[str, Any] = {}
        if wait_flush is not None:
            if self.supports("1.4"):
                self.deprecated("optimize(waitFlush)")
            else:
                attrs["waitFlush"] = to_bool(wait_flush)
        if wait_searcher is not None:
            attrs["waitSearcher"] = to_bool(wait_searcher)
        if soft_commit is not None:
            if self.supports("4.0"):
                attrs["softCommit"] = to_bool(soft_commit)
            else:
                self.ignored("optimize(softCommit)")
        if max_segments is not None:
            if self.supports("1.3"):
                attrs["maxSegments"] = int(max_segments)
            else:
                self.ignored("optimize(maxSegments)")
        return self.simple_update("optimize", attrs)

    def delete(
        self,
        *,
        id: Any = None,
        query: Any = None,
        commit: Optional[bool] = None,
        from_pending: Optional[bool] = None,
        from_committed: Optional[bool] = None,
    ) -> Optional[Result]:
        """Remove documents by unique id and/or query.

        Returns None when there is nothing to delete. When the server needs
        one request per id or query, the last result is returned.
        """
        attrs: Dict[str, Any] = {"commit": to_bool(self.autocommit if commit is None else commit)}
        if from_pending is not None:
            self.deprecated("delete(fromPending)")
            attrs["fromPending"] = to_bool(from_pending)
        if from_committed is not None:
            self.deprecated("delete(fromCommitted)")
            attrs["fromCommitted"] = to_bool(from_committed)

        which: List[Param] = [("id", v) for v in _as_list(id)]
        which += [("query", q) for q in _as_list(query)]
        if not which:
            return None

        if self.batch_delete and self.supports("1.4"):
            return self.simple_update("delete", attrs, which)
        result: Optional[Result] = None
        for item in which:
            result = self.simple_update("delete", dict(attrs), [item])
        return result

    def rollback(self) -> Result:
        if not self.supports("1.4"):
            raise UnsupportedFeatureError("rollback not supported by solr server")
        return self.simple_update("rollback")

    def extract_document(
        self,
        *pairs: ParamSource,
        file: Union[str, Path, IO[Any], None] = None,
        string: Union[str, bytes, None] = None,
        content_type: Optional[str] = None,
        **params: Any,
    ) -> Result:
        """Let the server translate a structured document (Solr Cell / Tika).

        ```
        r = solr.extract_document(file="design.pdf", literal_id="host")
        ```
        """
        if not self.supports("1.4"):
            raise UnsupportedFeatureError("extract_document() requires Solr v1.4 or higher")

        expanded = self.expand_extract(*pairs, **params)
        keys = {key for key, _ in expanded}
        if isinstance(file, (str, Path)) and "resource.name" not in keys:
            expanded.append(("resource.name", str(file)))
        if "commit" not in keys:
            expanded.append(("commit", to_bool(self.autocommit)))

        if string is not None:
            data = string.encode("utf-8") if isinstance(string, str) else string
        elif isinstance(file, (str, Path)):
            data = Path(file).read_bytes()
            content_type = content_type or mimetypes.guess_type(str(file))[0]
        elif file is not None:
            raw = file.read()
            data = raw.encode("utf-8") if isinstance(raw, str) else raw
        else:
            raise ParameterError("extract requires document as file or string")

        query = [("wt", self.format), *expanded]
        endpoint = self.endpoint("update/extract", params=query)
        result = self._new_result(query, endpoint)
        self.request(endpoint, result, data, content_type or "application/octet-stream")
        return result

    def simple_update(
        self,
        command: str,
        attrs: Optional[Mapping[str, Any]] = None,
        content: Optional[Sequence[Param]] = None,
    ) -> Result:
        """Send a small update command; `attrs["commit"]` goes in the URL."""
        attrs = dict(attrs or {})
        query = [("wt", self.format), ("commit", attrs.pop("commit", None))]
        endpoint = self.endpoint(self.update_action(), params=query)
        result = self._new_result(query, endpoint)
        body, ctype = self.encode_command(command, attrs, content)
        self.request(endpoint, result, body, ctype)
        return result

    # ----- core administration -----

    def _core_admin(self, action: str, params: Mapping[str, Any]) -> Result:
        params = dict(params)
        if params.get("core") is None:
            params["core"] = self.core
        query = [("wt", self.format), ("action", action), *params.items()]
        endpoint = self.endpoint("cores", core="admin", params=query)
        result = self._new_result(query, endpoint)
        self.request(endpoint, result)
        return result

    def core_status(self, **params: Any) -> Result:
        """Status of this core; see `result.decoded["status"]`."""
        return self._core_admin("STATUS", params)

    def core_reload(self, **params: Any) -> Result:
        """Load a new core from the configuration of this one, then swap."""
        return self._core_admin("RELOAD", params)

    def core_unload(self, **params: Any) -> Result:
        """Remove the core from the server; active requests still complete."""
        return self._core_admin("UNLOAD", params)

    # ----- parameter expansion -----

    def expand_select(self, *pairs: ParamSource, **params: Any) -> List[Param]:
        """Expand select() parameters into the flat Solr form.

        Underscores become dots. The sets facet, hl, mlt, stats and group
        take a mapping of sub-parameters and imply `<set>=true`:

        ```
        expand_select(q="inStock:true", rows=10,
                      facet={"limit": -1, "field": ["cat", "inStock"]},
                      f_cat_facet={"missing": 1}, hl={})
        ```
        """
        flat: List[Param] = []
        expanded: List[Param] = []
        seen: Dict[str, None] = {}

        for key, value in collect_params(pairs, params):
            key = key.replace("_", ".")
            parts = key.split(".")
            # fields are <set>.<more> or f.<field>.<set>.<more>
            per_field = parts[0] == "f" and len(parts) > 2
            rest = parts[2:] if per_field else parts
            set_name = rest[0]
            more = rest[1] if len(rest) > 1 else None

            if set_name in SELECT_SETS:
                if per_field and not SELECT_SETS[set_name]:
                    raise ParameterError(f"set {set_name} cannot be used per field, in {key}")
                if isinstance(value, Mapping):
                    if more:
                        raise ParameterError(f"field {key} is not simple for a set")
                    seen[set_name] = None
                    expanded.extend(self._simple_expand(value.items(), prefix=f"{key}.", command="select"))
                elif more:
                    seen[set_name] = None
                    flat.append((key, value))
                elif to_bool(value) == "true":
                    seen[set_name] = None
            elif isinstance(value, Mapping):
                raise ParameterError(f"unknown set {set_name}")
            else:
                flat.append((key, value))

        flat.extend((name, True) for name in seen)
        return self._simple_expand(flat, command="select") + expanded

    def expand_terms(self, *pairs: ParamSource, **params: Any) -> List[Param]:
        """Expand query_terms() parameters; keys get the `terms.` prefix."""
        return self._simple_expand(collect_params(pairs, params), prefix="terms.", command="query_terms")

    def expand_extract(self, *pairs: ParamSource, **params: Any) -> List[Param]:
        """Expand extract_document() parameters.

        `literal`/`literals` mappings get their keys prefixed with `literal.`,
        `fmap`, `boost` and `resource` mappings with `<key>.`.
        """
        flat: List[Param] = []
        for key, value in collect_params(pairs, params):
            if not isinstance(value, (Mapping, list, tuple)):
                flat.append((key, value))
            elif key in ("literal", "literals"):
                flat.extend(self._flatten(value, "literal."))
            elif key in ("fmap", "boost", "resource"):
                flat.extend(self._flatten(value, f"{key}."))
            else:
                raise ParameterError(f"unknown set '{key}'")
        return self._simple_expand(flat, command="extract_document") if flat else []

    @staticmethod
    def _flatten(value: Union[Mapping[str, Any], Sequence[Param]], prefix: str) -> List[Param]:
        items = value.items() if isinstance(value, Mapping) else value
        return [(prefix + name, v) for name, v in items]

    def _simple_expand(
        self, params: Iterable[Param], *, prefix: Optional[str] = None, command: str
    ) -> List[Param]:
        out: List[Param] = []
        for key, value in params:
            key = key.replace("_", ".")
            if prefix and not key.startswith(prefix):
                key = prefix + key
            m = re.match(r"f\.[^.]+\.(.*)", key)
            param = m.group(1) if m else key

            deprecated_in = DEPRECATED.get(param)
            introduced_in = INTRODUCED.get(param)
            if deprecated_in and self.supports(deprecated_in):
                self.deprecated(f"{command}({param}) since {deprecated_in}")
            elif introduced_in and not self.supports(introduced_in):
                self.ignored(f"{command}({param}) introduced in {introduced_in}")
                continue

            for item in _as_list(value):
                out.append((key, to_bool(item) if param in BOOL_PARAMS else item))
        return out

    def deprecated(self, message: str) -> None:
        """Warn once about a parameter deprecated by the server version."""
        if message not in self._reported:
            self._reported.add(message)
            logger.warning("deprecated solr %s", message)

    def ignored(self, message: str) -> None:
        """Warn once about a parameter the server version does not know yet."""
        if message not in self._reported:
            self._reported.add(message)
            logger.warning("ignored solr %s", message)

    # ----- HTTP -----

    def endpoint(
        self,
        action: str,
        *,
        core: Optional[str] = None,
        params: Union[Mapping[str, Any], Sequence[Param], None] = None,
    ) -> httpx.URL:
        """URL for `action` on the core; parameters with value None are dropped.

        The order of parameters given as a sequence is preserved.
        """
        core = core or self.core
        path = self.server.path.rstrip("/") + (f"/{core}" if core else "") + f"/{action}"
        items = params.items() if isinstance(params, Mapping) else (params or [])
        query = [(key, to_bool(v) if isinstance(v, bool) else v) for key, v in items if v is not None]
        return self.server.copy_with(path=path, params=query)

    def _new_result(self, params: Sequence[Param], endpoint: httpx.URL, *, sequential: bool = False) -> Result:
        return Result(
            params=params,
            endpoint=endpoint,
            core=self,
            sequential=sequential,
            unique_key=self.unique_key,
        )

    def request(
        self,
        url: httpx.URL,
        result: Result,
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> httpx.Response:
        """Execute one round trip, attaching request, response and decoded answer.

        Transport failures (`httpx.TransportError`) propagate to the caller.
        """
        with self._client() as client:
            if body is None:
                req = client.build_request("GET", url)
            else:
                req = client.build_request(
                    "POST",
                    url,
                    content=body,
                    headers={
                        "Content-Type": content_type or "application/octet-stream",
                        "Content-Disposition": 'form-data; name="content"',
                    },
                )
            result.attach_request(req)
            logger.debug("%s %s", req.method, req.url)
            resp = client.send(req)
        result.attach_response(resp)

        decoded = self.decode_response(resp)
        if decoded is not None:
            result.attach_decoded(decoded)
        if not result.success:
            logger.debug("Solr call %s failed with status %s", url, result.solr_status)
        return resp
