"""Read-only client for the Discord REST API."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

logger = logging.getLogger(__name__)

DISCORD_EPOCH_MS = 1420070400000
UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
GUILD_TEXT_CHANNEL = 0
# Discord JSON error code for "Missing Access"
MISSING_ACCESS_CODE = 50001
# Connections kept per host: one per channel fetch that can run at once (3 guilds x 5 channels)
DEFAULT_POOL_SIZE = 15


class FetchStatus(Enum):
    """Outcome of a single Discord API call."""

    OK = "ok"
    FORBIDDEN = "forbidden"
    ERROR = "error"


@dataclass
class FetchResult:
    """Tagged result of a Discord API call.

    ``data`` holds the decoded JSON body when ``status`` is OK, ``error``
    holds a short description otherwise.
    """

    status: FetchStatus
    data: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK

    @property
    def forbidden(self) -> bool:
        return self.status is FetchStatus.FORBIDDEN


def snowflake_to_datetime(snowflake) -> datetime:
    """Decode the creation time embedded in a Discord snowflake id."""
    millis = (int(snowflake) >> 22) + DISCORD_EPOCH_MS
    return UNIX_EPOCH + timedelta(milliseconds=millis)


def emoji_key(emoji: dict) -> str:
    """Identifier used by the reactions endpoint: ``name`` or ``name:id``."""
    name = emoji.get("name") or ""
    if emoji.get("id"):
        return f"{name}:{emoji['id']}"
    return name


def message_url(guild_id, channel_id, message_id) -> str:
    return f"https://discord.com/channels/{guild_id}/{channel_id}/{message_id}"


class DiscordClient:
    """Thin wrapper over the Discord REST endpoints the notifier reads."""

    def __init__(self, token, api_base="https://discord.com/api/v10", timeout=30, session=None,
                 pool_size=DEFAULT_POOL_SIZE):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session
        self.session.headers.update({
            "Authorization": f"Bot {token}",
            "Content-Type": "application/json",
        })

    def _get(self, path, params=None) -> FetchResult:
        url = f"{self.api_base}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug("Discord request to %s failed: %s", path, e)
            return FetchResult(FetchStatus.ERROR, error=f"Request failed: {e}")

        if 200 <= response.status_code < 300:
            try:
                return FetchResult(FetchStatus.OK, data=response.json())
            except ValueError:
                return FetchResult(FetchStatus.OK, data=response.text)

        detail = f"Discord API Error: {response.status_code} - {response.text}"
        if response.status_code == 403 or self._is_missing_access(response):
            return FetchResult(FetchStatus.FORBIDDEN, error=detail)
        return FetchResult(FetchStatus.ERROR, error=detail)

    @staticmethod
    def _is_missing_access(response) -> bool:
        try:
            body = response.json()
        except ValueError:
            return False
        return isinstance(body, dict) and body.get("code") == MISSING_ACCESS_CODE

    def get_guild(self, guild_id) -> FetchResult:
        return self._get(f"/guilds/{guild_id}")

    def get_guild_channels(self, guild_id) -> FetchResult:
        return self._get(f"/guilds/{guild_id}/channels")

    def get_text_channels(self, guild_id) -> FetchResult:
        """Channel list of a guild restricted to plain text channels."""
        result = self.get_guild_channels(guild_id)
        if not result.ok:
            return result
        if not isinstance(result.data, list):
            return FetchResult(FetchStatus.ERROR, error=f"Unexpected channel list: {result.data!r:.100}")
        channels = [
            ch for ch in result.data
            if isinstance(ch, dict) and ch.get("type") == GUILD_TEXT_CHANNEL and ch.get("id")
        ]
        return FetchResult(FetchStatus.OK, data=channels)

    def get_channel_messages(self, channel_id, limit=100) -> FetchResult:
        """Most recent page of messages in a channel, newest first."""
        return self._get(f"/channels/{channel_id}/messages", params={"limit": limit})

    def get_message(self, channel_id, message_id) -> FetchResult:
        return self._get(f"/channels/{channel_id}/messages/{message_id}")

    def get_reaction_users(self, channel_id, message_id, key, limit=100) -> FetchResult:
        """Users who applied the reaction identified by ``key``."""
        encoded = quote(key, safe="")
        return self._get(
            f"/channels/{channel_id}/messages/{message_id}/reactions/{encoded}",
            params={"limit": limit})
