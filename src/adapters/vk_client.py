"""VK wall.get page source.

Implements the core PageSourcePort over the public VK API.
"""

from __future__ import annotations

import json
import logging
import socket
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from core.config import MAX_PAGE_SIZE
from core.errors import ProtocolError, TransportError
from core.models import FeedPage

LOGGER = logging.getLogger(__name__)

API_URL = "https://api.vk.com/method/wall.get"
API_VERSION = "5.131"


class VKWallClient:
    """Reads one owner's wall through the VK API."""

    def __init__(self, token: str, owner_id: str, timeout: float = 20.0, api_version: str = API_VERSION) -> None:
        self._token = token
        self._owner_id = owner_id
        self._timeout = timeout
        self._api_version = api_version

    @property
    def owner_id(self) -> str:
        return self._owner_id

    def _build_url(self, count: int, offset: int) -> str:
        query = urllib.parse.urlencode(
            {
                "owner_id": self._owner_id,
                "count": count,
                "offset": offset,
                "filter": "owner",
                "access_token": self._token,
                "v": self._api_version,
            }
        )
        return f"{API_URL}?{query}"

    def fetch_page(self, count: int, offset: int) -> FeedPage:
        """Fetch up to ``count`` (max 100) wall entries starting at ``offset``."""

        count = max(1, min(count, MAX_PAGE_SIZE))
        offset = max(0, offset)

        # The URL carries the access token, so it never goes into errors or logs.
        request = urllib.request.Request(self._build_url(count, offset), method="GET")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                body = response.read()
        except urllib.error.HTTPError as e:
            raise TransportError(f"VK API HTTP error {e.code}") from e
        except urllib.error.URLError as e:
            raise TransportError(f"VK API unreachable: {e.reason}") from e
        except (socket.timeout, TimeoutError) as e:
            raise TransportError("VK API request timed out") from e
        except OSError as e:
            raise TransportError(f"VK API connection failed: {e}") from e

        LOGGER.debug("wall.get owner=%s count=%s offset=%s", self._owner_id, count, offset)
        return parse_wall_response(body)


def parse_wall_response(body: Any) -> FeedPage:
    """Decode a wall.get response body into a FeedPage."""

    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise ProtocolError("VK API returned invalid JSON") from e
    if not isinstance(data, dict):
        raise ProtocolError("VK API returned an unexpected payload")

    error = data.get("error")
    if error:
        code = error.get("error_code") if isinstance(error, dict) else None
        message = error.get("error_msg") if isinstance(error, dict) else str(error)
        raise ProtocolError(f"VK error {code}: {message}", code=code)

    response = data.get("response")
    if not isinstance(response, dict):
        raise ProtocolError("VK API response has no 'response' object")

    items = response.get("items")
    total = response.get("count")
    if not isinstance(items, list) or not isinstance(total, int):
        raise ProtocolError("VK API response is missing 'items' or 'count'")
    if not all(isinstance(item, dict) for item in items):
        raise ProtocolError("VK API response contains non-object items")

    return FeedPage(entries=items, total=total)
