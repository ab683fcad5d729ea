"""SolrKit MCP server entrypoint using FastMCP.

Exposes tools built atop the Solr connectors.
Run with:
  - solrkit-mcp
  - or: python -m solrkit.mcp.server (ensure PYTHONPATH includes ./src)
"""
from __future__ import annotations

import logging
from typing import Optional

from fastmcp import FastMCP

from solrkit.config import Settings, load_settings
from solrkit.connectors import BaseConnector, connector_from_config
from solrkit.logs import configure_logging
from solrkit.mcp.tools import register_solr_tools

logger = logging.getLogger(__name__)


class AppState:
    """Application state shared by MCP tools."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.solr: Optional[BaseConnector] = None

    def init_connectors(self) -> None:
        """Initialize connectors from configuration."""
        cfg = self.settings.solr
        if cfg.server:
            self.solr = connector_from_config(cfg)
            logger.info("Solr connector for %s (core=%s, format=%s)", cfg.server, cfg.core, cfg.format)
        else:
            self.solr = None
            logger.warning("No Solr server configured; Solr tools will fail until SOLRKIT_SOLR__SERVER is set")


# Global state and server instance
_state: Optional[AppState] = None
mcp = FastMCP("SolrKit MCP Server")


# ----- Tools -----

@mcp.tool
def health() -> str:
    """Simple health check tool."""
    return "ok"


# ----- Entrypoint -----

def main() -> None:
    """Initialize state and run the MCP server."""
    global _state
    settings = load_settings()
    configure_logging(settings.app.log_level)
    _state = AppState(settings)
    _state.init_connectors()
    register_solr_tools(mcp, get_state=lambda: _state)
    # Choose transport based on configuration: stdio (default), http, or sse
    transport = settings.app.transport
    if transport in ("http", "sse"):
        mcp.run(transport=transport, host=settings.app.host, port=settings.app.port)
    else:
        mcp.run()


if __name__ == "__main__":  # pragma: no cover
    main()
