"""Solr connector speaking JSON.

Both requests and responses use JSON. Solr repeats keys in some update
messages, which a JSON object cannot express: adding several documents
with attributes and deleting several ids at once are therefore avoided.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from solrkit.connectors.base_connector import BaseConnector, Body
from solrkit.document import Document
from solrkit.exceptions import ParameterError, UnsupportedFeatureError
from solrkit.result import Param, TermsTable

CONTENT_TYPE = "application/json; charset=utf-8"


class JSONConnector(BaseConnector):
    format = "json"
    batch_delete = False

    def update_action(self) -> str:
        if not self.supports("3.1"):
            raise UnsupportedFeatureError("solr version too old for updates in JSON syntax")
        return "update" if self.supports("4.0") else "update/json"

    def encode_add(self, docs: List[Document], attrs: Dict[str, Any], params: Dict[str, Any]) -> Body:
        if attrs.get("boost") == 1.0:
            del attrs["boost"]
        for key in ("commit", "commitWithin", "overwrite", "boost"):
            if key in attrs:
                params[key] = attrs.pop(key)

        payload: Any
        if len(docs) == 1:
            payload = {"add": {**attrs, "doc": self._doc2json(docs[0])}}
        elif attrs:
            raise ParameterError("unable to add more than one doc with JSON interface")
        else:
            payload = [self._doc2json(doc) for doc in docs]
        return self._encode(payload)

    @staticmethod
    def _doc2json(doc: Document) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name in doc.field_names():
            values = [
                {"boost": f.boost, "value": f.content} if f.boost and f.boost != 1.0 else f.content
                for f in doc.fields(name)
            ]
            # multi-valued fields become arrays
            out[name] = values if len(values) > 1 else values[0]
        return out

    def encode_command(
        self, command: str, attrs: Mapping[str, Any], content: Optional[Sequence[Param]] = None
    ) -> Body:
        body = {key: value for key, value in attrs.items() if value is not None}
        body.update(content or [])
        return self._encode({command: body})

    @staticmethod
    def _encode(payload: Any) -> Body:
        return json.dumps(payload).encode("utf-8"), CONTENT_TYPE

    def decode_response(self, response: httpx.Response) -> Optional[Dict[str, Any]]:
        # Solr 4.0 answers JSON with content-type text/plain, so do not check it
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def decode_terms(self, decoded: Mapping[str, Any]) -> Dict[str, TermsTable]:
        table = decoded.get("terms") or {}
        if isinstance(table, list):
            # Solr 1.4 returns the fields as a flat list of pairs
            table = dict(zip(table[0::2], table[1::2]))
        out: Dict[str, TermsTable] = {}
        for field, terms in table.items():
            if isinstance(terms, Mapping):
                pairs = list(terms.items())
            else:
                pairs = list(zip(terms[0::2], terms[1::2]))
            out[field] = [(str(term), int(count)) for term, count in pairs]
        return out
