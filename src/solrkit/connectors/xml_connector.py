"""Solr connector speaking XML.

Update messages are built and answers are parsed with lxml. Answers are
converted into the same dict/list shape the JSON connector produces:

- `<lst name="x">` becomes a dict (document order kept)
- `<arr name="x">` becomes a list
- `<result numFound=".." start="..">` becomes {numFound, start, docs}
- typed scalars (`<int>`, `<bool>`, `<str>`, ...) become Python scalars
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import httpx
from lxml import etree  # type: ignore[import-untyped]

from solrkit.connectors.base_connector import BaseConnector, Body
from solrkit.document import Document
from solrkit.result import Param, TermsTable

logger = logging.getLogger(__name__)

CONTENT_TYPE = "text/xml; charset=utf-8"


def _xml_bool(text: str) -> bool:
    return text.strip() in ("true", "1")


_SCALARS: Dict[str, Callable[[str], Any]] = {
    "int": int,
    "long": int,
    "short": int,
    "float": float,
    "double": float,
    "bool": _xml_bool,
    "str": str,
    "text": str,
    "date": str,
}


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def decode_node(node: Any) -> Any:
    """Convert one element of a Solr XML answer."""
    tag = node.tag
    if tag in ("lst", "doc", "response"):
        return decode_named(node)
    if tag == "arr":
        return [decode_node(child) for child in node if isinstance(child.tag, str)]
    if tag == "result":
        out: Dict[str, Any] = {}
        for attr in ("numFound", "start"):
            if node.get(attr) is not None:
                out[attr] = int(node.get(attr))
        if node.get("maxScore") is not None:
            out["maxScore"] = float(node.get("maxScore"))
        out["docs"] = [decode_named(child) for child in node if child.tag == "doc"]
        return out
    if tag == "null":
        return None

    text = node.text or ""
    convert = _SCALARS.get(tag)
    if convert is None:
        return text
    try:
        return convert(text)
    except ValueError:
        return text


def decode_named(node: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for child in node:
        if not isinstance(child.tag, str):
            continue  # comments, processing instructions
        out[child.get("name", "")] = decode_node(child)
    return out


class XMLConnector(BaseConnector):
    format = "xml"
    batch_delete = True

    def update_action(self) -> str:
        return "update"

    def encode_add(self, docs: List[Document], attrs: Dict[str, Any], params: Dict[str, Any]) -> Body:
        add = etree.Element("add")
        for key in sorted(attrs):
            add.set(key, _text(attrs[key]))
        for doc in docs:
            add.append(self._doc2xml(doc))
        return self._serialize(add)

    @staticmethod
    def _doc2xml(doc: Document) -> Any:
        node = etree.Element("doc")
        if doc.boost and doc.boost != 1.0:
            node.set("boost", _text(doc.boost))
        for f in doc.fields():
            fnode = etree.SubElement(node, "field", name=f.name)
            if f.boost < 0.9999 or f.boost > 1.0001:
                fnode.set("boost", _text(f.boost))
            if f.update is not None:
                fnode.set("update", f.update)
            fnode.text = _text(f.content)
        return node

    def encode_command(
        self, command: str, attrs: Mapping[str, Any], content: Optional[Sequence[Param]] = None
    ) -> Body:
        top = etree.Element(command)
        for key in sorted(attrs):
            if attrs[key] is not None:
                top.set(key, _text(attrs[key]))
        for name, values in content or []:
            for value in values if isinstance(values, list) else [values]:
                etree.SubElement(top, name).text = _text(value)
        return self._serialize(top)

    @staticmethod
    def _serialize(root: Any) -> Body:
        return etree.tostring(root, xml_declaration=True, encoding="UTF-8"), CONTENT_TYPE

    def decode_response(self, response: httpx.Response) -> Optional[Dict[str, Any]]:
        if "xml" not in response.headers.get("content-type", "").lower():
            return None
        parser = etree.XMLParser(huge_tree=True, resolve_entities=False)
        try:
            root = etree.fromstring(response.content, parser=parser)
        except etree.XMLSyntaxError as e:
            logger.warning("Unparsable XML answer from %s: %s", response.url, e)
            return None
        return decode_named(root)

    def decode_terms(self, decoded: Mapping[str, Any]) -> Dict[str, TermsTable]:
        table = decoded.get("terms") or {}
        return {
            field: [(str(term), int(count)) for term, count in (terms or {}).items()]
            for field, terms in table.items()
        }
