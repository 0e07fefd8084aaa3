"""Helpers for working with post natural keys."""

from __future__ import annotations

from typing import Tuple

KEY_SEPARATOR = "_"
PERMALINK_PREFIX = "https://vk.com/wall"


def build_natural_key(owner_key: str, item_key: str) -> str:
    """Return the deduplication key for one feed item."""

    return f"{owner_key}{KEY_SEPARATOR}{item_key}"


def split_natural_key(natural_key: str) -> Tuple[str, str]:
    """Split a natural key into (owner_key, item_key).

    Owner keys may contain a leading minus (communities), never an
    underscore, so the split happens on the last separator.
    """

    owner_key, sep, item_key = natural_key.rpartition(KEY_SEPARATOR)
    if not sep or not owner_key or not item_key:
        raise ValueError(f"Not a natural key: {natural_key!r}")
    return owner_key, item_key


def build_permalink(natural_key: str) -> str:
    """Return the public URL of the original post."""

    return f"{PERMALINK_PREFIX}{natural_key}"


def looks_like_natural_key(value: str) -> bool:
    """Cheap syntactic check used before hitting storage with user input."""

    try:
        owner_key, item_key = split_natural_key(value.strip())
    except ValueError:
        return False
    return owner_key.lstrip("-").isdigit() and item_key.isdigit()
