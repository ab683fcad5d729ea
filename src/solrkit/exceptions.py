"""Custom exception hierarchy for SolrKit.

These exceptions allow callers to discriminate error categories
and handle them appropriately while preserving the original context.

Failures reported by the Solr server itself are not raised: they stay on the
`Result` object (see `Result.success` and `Result.errors()`).
"""

from __future__ import annotations


class SolrKitError(Exception):
    """Base class for all SolrKit exceptions."""


class ConfigError(SolrKitError):
    """Raised when configuration loading or validation fails."""


class ParameterError(SolrKitError, ValueError):
    """Raised when request parameters cannot be expanded."""


class UnsupportedFeatureError(SolrKitError):
    """Raised when the configured server version lacks a feature."""


class SolrResultError(SolrKitError):
    """Raised when a result does not contain the requested section."""


class ContractViolation(SolrKitError, RuntimeError):
    """Raised when the API is used out of order (a programming error).

    For example: reading the document count of a result before its response
    was decoded, or autoloading a page without a client.
    """
