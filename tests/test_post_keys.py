from __future__ import annotations

import pytest

from core.post_keys import (
    build_natural_key,
    build_permalink,
    looks_like_natural_key,
    split_natural_key,
)


def test_build_and_split_natural_key_roundtrip() -> None:
    key = build_natural_key("-123", "456")
    assert key == "-123_456"
    assert split_natural_key(key) == ("-123", "456")


def test_permalink_is_derived_from_key() -> None:
    assert build_permalink("-123_456") == "https://vk.com/wall-123_456"


def test_split_rejects_keys_without_separator() -> None:
    with pytest.raises(ValueError):
        split_natural_key("123456")
    with pytest.raises(ValueError):
        split_natural_key("_456")


def test_looks_like_natural_key() -> None:
    assert looks_like_natural_key("-123_456")
    assert looks_like_natural_key(" 77_1 ")
    assert not looks_like_natural_key("abc_1")
    assert not looks_like_natural_key("-123_")
    assert not looks_like_natural_key("")
