"""Indexer-specific Authorization header formatting."""

from __future__ import annotations

from fescue.indexer_definitions import resolve_indexer_definition


def build_indexer_auth_header(definition_key: str, api_key: str) -> str:
    """
    Return the Authorization header value for a header-authenticated indexer.

    Keep rules explicit per definition to avoid assuming all Gazelle variants
    share identical auth behavior.
    """
    key = (api_key or "").strip()
    definition = resolve_indexer_definition(definition_key)
    if definition.token_auth:
        return key if key.lower().startswith("token ") else f"token {key}"
    return key
