import pytest

from fescue.indexer_auth import build_indexer_auth_header


def test_indexer_auth_header_red_uses_raw_key() -> None:
    assert build_indexer_auth_header("red", "red-key") == "red-key"


def test_indexer_auth_header_ops_uses_token_prefix() -> None:
    assert build_indexer_auth_header("ops", "ops-key") == "token ops-key"


def test_indexer_auth_header_ops_preserves_existing_prefix() -> None:
    assert build_indexer_auth_header("ops", "token ops-key") == "token ops-key"


def test_indexer_auth_header_ops_preserves_uppercase_token_prefix() -> None:
    assert build_indexer_auth_header("ops", "TOKEN ops-key") == "TOKEN ops-key"


def test_indexer_auth_header_normalizes_definition_and_key_whitespace() -> None:
    assert build_indexer_auth_header(" OPS ", "  ops-key  ") == "token ops-key"


def test_indexer_auth_header_unknown_definition_raises() -> None:
    with pytest.raises(ValueError, match="Unsupported indexer definition"):
        build_indexer_auth_header("other", "abc123")
