import logging

import pytest

from solrkit.config import SolrConfig
from solrkit.connectors import JSONConnector, XMLConnector, connector_from_config, make_connector
from solrkit.connectors.base_connector import collect_params, to_bool, version_tuple
from solrkit.document import Document
from solrkit.exceptions import ConfigError, ParameterError

# ---------- Helpers ----------


def make_conn(version: str = "4.0", **kwargs) -> XMLConnector:
    return XMLConnector(server="http://solr.test/solr", server_version=version, **kwargs)


def warnings_of(caplog: pytest.LogCaptureFixture) -> list:
    return [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]


# ---------- select ----------


def test_expand_select_flattens_sets_and_enables_them() -> None:
    conn = make_conn()

    params = conn.expand_select(
        q="inStock:true",
        rows=10,
        facet={"limit": -1, "field": ["cat", "inStock"]},
        f_cat_facet={"missing": 1},
        hl={},
    )

    assert params == [
        ("q", "inStock:true"),
        ("rows", 10),
        ("facet", "true"),
        ("hl", "true"),
        ("facet.limit", -1),
        ("facet.field", "cat"),
        ("facet.field", "inStock"),
        ("f.cat.facet.missing", "true"),
    ]


def test_expand_select_keeps_positional_pairs_in_order() -> None:
    conn = make_conn()
    params = conn.expand_select([("fq", "a"), ("q", "x")], ("fq", "b"), rows=3)
    assert params == [("fq", "a"), ("q", "x"), ("fq", "b"), ("rows", 3)]


def test_expand_select_set_parameter_implies_set() -> None:
    conn = make_conn()
    assert conn.expand_select(hl_fl="title") == [("hl.fl", "title"), ("hl", "true")]


def test_expand_select_false_set_is_not_enabled() -> None:
    conn = make_conn()
    assert conn.expand_select(q="x", hl=False) == [("q", "x")]


def test_expand_select_rejects_per_field_mlt() -> None:
    conn = make_conn()
    with pytest.raises(ParameterError, match="cannot be used per field"):
        conn.expand_select(f_title_mlt={"mintf": 1})


def test_expand_select_rejects_unknown_set() -> None:
    conn = make_conn()
    with pytest.raises(ParameterError, match="unknown set foo"):
        conn.expand_select(foo={"a": 1})


def test_expand_select_rejects_mapping_for_set_parameter() -> None:
    conn = make_conn()
    with pytest.raises(ParameterError, match="not simple"):
        conn.expand_select(facet_field={"a": 1})


def test_parameter_too_new_for_server_is_dropped_with_one_warning(caplog: pytest.LogCaptureFixture) -> None:
    conn = make_conn("1.4")

    with caplog.at_level(logging.WARNING):
        first = conn.expand_select(q="x", facet={"pivot": "cat,inStock"})
        second = conn.expand_select(q="y", facet={"pivot": "cat,inStock"})

    assert first == [("q", "x"), ("facet", "true")]
    assert second == [("q", "y"), ("facet", "true")]
    assert warnings_of(caplog) == ["ignored solr select(facet.pivot) introduced in 4.0"]


def test_deprecated_parameter_is_kept_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    conn = make_conn("4.0")

    with caplog.at_level(logging.WARNING):
        params = conn.expand_select(q="x", facet={"zeros": True})

    assert ("facet.zeros", "true") in params
    assert warnings_of(caplog) == ["deprecated solr select(facet.zeros) since 1.2"]


# ---------- terms / extract ----------


def test_expand_terms_prefixes_keys() -> None:
    conn = make_conn()
    params = conn.expand_terms(fl="subject", lower_incl=False, terms_limit=5)
    assert params == [("terms.fl", "subject"), ("terms.lower.incl", "false"), ("terms.limit", 5)]


def test_expand_terms_drops_regex_on_old_server() -> None:
    conn = make_conn("3.1")
    assert conn.expand_terms(fl="subject", regex="so.*") == [("terms.fl", "subject")]


def test_expand_extract_flattens_literal_and_fmap() -> None:
    conn = make_conn()
    params = conn.expand_extract(literal={"id": "1"}, fmap={"content": "text"}, extractOnly=True)
    assert params == [("literal.id", "1"), ("fmap.content", "text"), ("extractOnly", "true")]


def test_expand_extract_rejects_unknown_set() -> None:
    conn = make_conn()
    with pytest.raises(ParameterError, match="unknown set 'foo'"):
        conn.expand_extract(foo={"a": 1})


# ---------- helpers and URLs ----------


def test_to_bool_spelling() -> None:
    assert to_bool(True) == "true"
    assert to_bool(1) == "true"
    assert to_bool("yes") == "true"
    for value in (False, 0, None, "", "false", "off", "0"):
        assert to_bool(value) == "false"


def test_version_comparison_is_numeric() -> None:
    assert version_tuple("3.10") > version_tuple("3.9")
    assert version_tuple("4.0.0-beta") == (4, 0, 0)
    assert make_conn("3.6").supports("3.4")
    assert not make_conn("3.6").supports("4.0")


def test_collect_params_accepts_mappings_and_pairs() -> None:
    out = collect_params([{"a": 1}, ("b", 2), [("c", 3)]], {"d": 4})
    assert out == [("a", 1), ("b", 2), ("c", 3), ("d", 4)]


def test_endpoint_drops_none_and_spells_booleans() -> None:
    conn = XMLConnector(server="http://solr.test/solr/", core="books")
    url = conn.endpoint("select", params=[("q", "x"), ("fl", None), ("debug", True)])
    assert str(url) == "http://solr.test/solr/books/select?q=x&debug=true"


def test_endpoint_for_admin_core() -> None:
    conn = XMLConnector(server="http://solr.test/solr", core="books")
    url = conn.endpoint("cores", core="admin", params={"action": "STATUS"})
    assert str(url) == "http://solr.test/solr/admin/cores?action=STATUS"


def test_unknown_add_option_is_type_error() -> None:
    conn = make_conn()
    with pytest.raises(TypeError, match="allow_everything"):
        conn.add_document(Document({"id": "1"}), allow_everything=True)


# ---------- factory ----------


def test_make_connector_by_format() -> None:
    assert isinstance(make_connector("json", server="http://solr.test/solr"), JSONConnector)
    assert isinstance(make_connector("XML", server="http://solr.test/solr"), XMLConnector)
    with pytest.raises(ConfigError):
        make_connector("YAML", server="http://solr.test/solr")


def test_connector_from_config() -> None:
    cfg = SolrConfig(server="http://solr.test/solr", core="books", format="JSON", unique_key="isbn")
    conn = connector_from_config(cfg)
    assert isinstance(conn, JSONConnector)
    assert conn.core == "books"
    assert conn.unique_key == "isbn"

    with pytest.raises(ConfigError):
        connector_from_config(SolrConfig())
