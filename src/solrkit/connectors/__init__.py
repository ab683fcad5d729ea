"""Connectors to a Solr server, one per wire encoding."""

from __future__ import annotations

from typing import Any

from solrkit.config import SolrConfig
from solrkit.exceptions import ConfigError

from .base_connector import BaseConnector
from .json_connector import JSONConnector
from .xml_connector import XMLConnector

__all__ = [
    "BaseConnector",
    "JSONConnector",
    "XMLConnector",
    "make_connector",
    "connector_from_config",
]


def make_connector(format: str = "XML", **kwargs: Any) -> BaseConnector:
    """Create a connector for the given communication format ("XML" or "JSON")."""
    fmt = (format or "XML").upper()
    if fmt == "XML":
        return XMLConnector(**kwargs)
    if fmt == "JSON":
        return JSONConnector(**kwargs)
    raise ConfigError(f"unknown communication format '{format}' for solr")


def connector_from_config(cfg: SolrConfig) -> BaseConnector:
    if not cfg.server:
        raise ConfigError("Solr is not configured. Set SOLRKIT_SOLR__SERVER.")
    return make_connector(
        cfg.format,
        server=cfg.server,
        core=cfg.core,
        autocommit=cfg.autocommit,
        server_version=cfg.server_version,
        username=cfg.username,
        token=cfg.token,
        verify_ssl=cfg.verify_ssl,
        timeout=cfg.timeout,
        unique_key=cfg.unique_key,
    )
