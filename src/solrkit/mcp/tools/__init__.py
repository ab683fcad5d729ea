"""Tool registration modules for the SolrKit MCP server."""

from .solr import register_solr_tools

__all__ = [
    "register_solr_tools",
]
