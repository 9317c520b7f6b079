from __future__ import annotations

import pytest

from fescue.indexer_definitions import resolve_indexer_definition
from fescue.search.capabilities import SearchParam


def test_resolve_indexer_definition_exposes_request_limits_and_token_auth() -> None:
    assert resolve_indexer_definition("ops").request_limit == 5
    assert resolve_indexer_definition("red").request_limit == 10
    assert resolve_indexer_definition("ops").token_auth is True
    assert resolve_indexer_definition("red").token_auth is False


def test_gazelle_definitions_have_no_movie_or_tv_search() -> None:
    caps = resolve_indexer_definition("red").capabilities

    assert caps is not None
    assert caps.movie_search_params == ()
    assert caps.tv_search_params == ()
    assert SearchParam.ARTIST in caps.music_search_params


def test_gazelle_category_table_maps_descriptions_and_default() -> None:
    caps = resolve_indexer_definition("red").capabilities

    assert [c.id for c in caps.categories.resolve("Applications")] == [4000]
    assert [c.id for c in caps.categories.resolve("Select Category")] == [3000]
    assert [c.id for c in caps.categories.resolve(None)] == [3000]


def test_generic_definitions_discover_capabilities() -> None:
    assert resolve_indexer_definition("torznab").capabilities is None
    assert resolve_indexer_definition("newznab").protocol == "usenet"
    assert resolve_indexer_definition("red").capabilities is not None


def test_resolve_indexer_definition_normalizes_key() -> None:
    assert resolve_indexer_definition("  OPS  ") == resolve_indexer_definition("ops")


@pytest.mark.parametrize("key", ["other", None])
def test_resolve_indexer_definition_rejects_unknown_key(key) -> None:
    with pytest.raises(ValueError, match="Unsupported indexer definition"):
        resolve_indexer_definition(key)
