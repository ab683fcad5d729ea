"""Document container used both for uploads and for search results.

A `Document` is an ordered list of `Field` objects. Multi-valued fields are
represented by repeating a field name. Documents produced by a search also
carry their `rank` (0 is the best hit).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

DEFAULT_UNIQUE_KEY = "id"


@dataclass(slots=True)
class Field:
    """A single (name, content) pair of a document.

    Attributes
    ----------
    name: str
        Field name as known by the Solr schema.
    content: Any
        The field value.
    boost: float
        Index-time boost; 1.0 means no boost.
    update: str | None
        Atomic update mode ("set", "add", "inc") for Solr 4.0+.
    """

    name: str
    content: Any
    boost: float = 1.0
    update: Optional[str] = None


FieldSource = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


class Document:
    """A set of fields, either to be added to Solr or returned by a search."""

    def __init__(
        self,
        fields: Optional[FieldSource] = None,
        *,
        boost: float = 1.0,
        unique_key: str = DEFAULT_UNIQUE_KEY,
    ) -> None:
        self.boost = boost or 1.0
        self.unique_key = unique_key
        self._rank: Optional[int] = None
        self._fields: List[Field] = []
        self._by_name: Dict[str, List[Field]] = {}
        if fields is not None:
            self.add_fields(fields)

    @classmethod
    def from_result(
        cls, data: Mapping[str, Any], rank: int, *, unique_key: str = DEFAULT_UNIQUE_KEY
    ) -> "Document":
        """Create a document from one decoded search hit."""
        doc = cls(unique_key=unique_key)
        doc._rank = rank
        for name, value in (data or {}).items():
            values = value if isinstance(value, list) else [value]
            for v in values:
                doc._append(Field(name=name, content=v))
        return doc

    @property
    def rank(self) -> Optional[int]:
        """Position in the result set; None for documents not from a search."""
        return self._rank

    @property
    def unique_id(self) -> Any:
        return self.content(self.unique_key)

    def field_boost(self, name: str, boost: Optional[float] = None) -> Optional[float]:
        """Return (or set) the boost of the first field called `name`."""
        f = self.field(name)
        if f is None:
            return None
        if boost is not None:
            f.boost = boost
        return f.boost

    def fields(self, name: Optional[str] = None) -> List[Field]:
        if name is None:
            return list(self._fields)
        return list(self._by_name.get(name, []))

    def field(self, name: str) -> Optional[Field]:
        found = self._by_name.get(name)
        return found[0] if found else None

    def content(self, name: str) -> Any:
        f = self.field(name)
        return f.content if f is not None else None

    def field_names(self) -> List[str]:
        return sorted(self._by_name)

    def add_field(
        self,
        name: str,
        content: Any,
        *,
        boost: float = 1.0,
        update: Optional[str] = None,
    ) -> Optional[Field]:
        """Append a field. A `None` content is ignored."""
        if content is None:
            return None
        f = Field(name=name, content=content, boost=boost or 1.0, update=update)
        self._append(f)
        return f

    def add_fields(self, fields: FieldSource, **options: Any) -> "Document":
        """Add many fields; mappings are added in sorted key order."""
        if isinstance(fields, Mapping):
            pairs: Iterable[Tuple[str, Any]] = sorted(fields.items())
        else:
            pairs = fields
        for name, content in pairs:
            self.add_field(name, content, **options)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Plain mapping: single values as scalars, repeated fields as lists."""
        out: Dict[str, Any] = {}
        for name, group in self._by_name.items():
            values = [f.content for f in group]
            out[name] = values[0] if len(values) == 1 else values
        return out

    def _append(self, f: Field) -> None:
        self._fields.append(f)
        self._by_name.setdefault(f.name, []).append(f)

    def __getitem__(self, name: str) -> Any:
        if name not in self._by_name:
            raise KeyError(name)
        return self.content(name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __repr__(self) -> str:
        return f"Document(rank={self._rank!r}, fields={self.field_names()!r})"
