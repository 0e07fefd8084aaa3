"""Configuration loading for vkrelay.

Secrets and identities come from the environment (optionally a .env file);
tuning lives in an optional config.json so it can be edited without touching
Python. Everything is returned as one frozen Settings value that callers pass
into constructors.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from dotenv import load_dotenv

from adapters.bot_commands import parse_admin_ids
from adapters.message_formatting import normalize_tag
from core.config import DeliveryConfig, FetchConfig, ListingConfig, StorageConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Default tuning file; absent means built-in defaults.
CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

DEFAULT_DB_PATH = "vkrelay.db"
DEFAULT_SESSION_NAME = "vkrelay"


@dataclass(frozen=True)
class Settings:
    """Everything the app layer needs to build the core and adapters."""

    vk_token: str
    vk_owner_id: str
    db_path: str
    session_name: str
    api_id: Optional[int]
    api_hash: str
    bot_token: str
    admin_ids: frozenset[int]
    target_chat: Optional[Union[int, str]]
    sync_max_items: int
    page_size: int
    page_delay: float
    busy_timeout: float
    archive_tag: str
    max_batch: int
    listing_page_size: int
    logging: dict = field(default_factory=dict)
    extra_secrets: tuple[str, ...] = ()

    def secret_values(self) -> list[str]:
        """Values to mask in log output, longest first."""

        values = {self.vk_token, self.bot_token, self.api_hash, *self.extra_secrets}
        values.discard("")
        return sorted(values, key=len, reverse=True)

    def require_vk(self) -> None:
        if not self.vk_token or not self.vk_owner_id:
            raise RuntimeError("VK_TOKEN and VK_OWNER_ID are required")

    def fetch_config(self) -> FetchConfig:
        self.require_vk()
        return FetchConfig(
            owner_key=self.vk_owner_id,
            page_size=self.page_size,
            page_delay=self.page_delay,
        )

    def storage_config(self) -> StorageConfig:
        return StorageConfig(db_path=self.db_path, busy_timeout=self.busy_timeout)

    def delivery_config(self) -> DeliveryConfig:
        return DeliveryConfig(archive_tag=self.archive_tag, max_batch=self.max_batch)

    def listing_config(self) -> ListingConfig:
        return ListingConfig(page_size=self.listing_page_size)


def _load_json_config(path: str) -> dict:
    """Load the tuning file if it exists."""

    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise RuntimeError(f"Config file must hold a JSON object: {path}")
    return data


def _env(env: Mapping[str, str], name: str, default: str = "") -> str:
    return (env.get(name) or "").strip() or default


def _parse_chat(raw: str) -> Optional[Union[int, str]]:
    """Chat ids are ints; @usernames and t.me links stay strings."""

    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return raw


def _parse_api_id(raw: str) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"API_ID must be an integer, got {raw!r}") from exc


def _redact_values(logging_config: dict, env: Mapping[str, str]) -> tuple[str, ...]:
    """Resolve logging.redact.patterns (env var names) to their values."""

    redact = logging_config.get("redact", {})
    names = redact.get("patterns", []) if isinstance(redact, dict) else []
    return tuple(value for value in (_env(env, name) for name in names) if value)


def _section(config: dict, name: str) -> dict[str, Any]:
    value = config.get(name, {})
    return value if isinstance(value, dict) else {}


def load_settings(
    config_path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build Settings from the environment and the optional config file."""

    if env is None:
        load_dotenv()
        env = os.environ

    config = _load_json_config(config_path or CONFIG_PATH)
    sync = _section(config, "sync")
    delivery = _section(config, "delivery")
    listing = _section(config, "listing")
    storage = _section(config, "storage")

    return Settings(
        vk_token=_env(env, "VK_TOKEN"),
        vk_owner_id=_env(env, "VK_OWNER_ID"),
        db_path=_env(env, "DB_PATH", DEFAULT_DB_PATH),
        session_name=_env(env, "SESSION_NAME", DEFAULT_SESSION_NAME),
        api_id=_parse_api_id(_env(env, "API_ID")),
        api_hash=_env(env, "API_HASH"),
        bot_token=_env(env, "BOT_API"),
        admin_ids=frozenset(parse_admin_ids(_env(env, "TG_ADMIN_IDS"))),
        target_chat=_parse_chat(_env(env, "TARGET_CHAT")),
        sync_max_items=int(sync.get("max_items", 200)),
        page_size=int(sync.get("page_size", 100)),
        page_delay=int(sync.get("page_delay_ms", 350)) / 1000.0,
        busy_timeout=float(storage.get("busy_timeout", 30)),
        archive_tag=normalize_tag(_env(env, "ARCHIVE_TAG") or str(delivery.get("archive_tag", ""))),
        max_batch=int(delivery.get("max_batch", 10)),
        listing_page_size=int(listing.get("page_size", 10)),
        logging=_section(config, "logging"),
        extra_secrets=_redact_values(_section(config, "logging"), env),
    )
