"""
Pytest fixtures shared by the test suite.

- settings: a config namespace with test defaults (no real credentials)
- FakeDiscord: in-memory stand-in for DiscordClient
- make_snowflake: build Discord ids for a given send time
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from discord_notifier.discord_client import (
    DISCORD_EPOCH_MS,
    UNIX_EPOCH,
    FetchResult,
    FetchStatus,
)
from discord_notifier.notifier import RelayResult


def make_snowflake(moment, sequence=0):
    """Discord id whose embedded timestamp is ``moment``."""
    millis = (moment - UNIX_EPOCH) // timedelta(milliseconds=1) - DISCORD_EPOCH_MS
    return str((millis << 22) + sequence)


def ok(data):
    return FetchResult(FetchStatus.OK, data=data)


def forbidden():
    return FetchResult(FetchStatus.FORBIDDEN, error="Discord API Error: 403 - Missing Access")


def failed(detail="Discord API Error: 500 - boom"):
    return FetchResult(FetchStatus.ERROR, error=detail)


class FakeDiscord:
    """Serves guilds, channels, messages and reactions from dictionaries.

    Any value may be a FetchResult instead of data to simulate failures.
    """

    def __init__(self):
        self.guilds = {}
        self.channels = {}
        self.messages = {}
        self.message_details = {}
        self.reaction_users = {}
        self.calls = []

    @staticmethod
    def _wrap(value):
        if isinstance(value, FetchResult):
            return value
        return ok(value)

    def get_guild(self, guild_id):
        self.calls.append(("get_guild", guild_id))
        if guild_id not in self.guilds:
            return failed("Discord API Error: 404 - Unknown Guild")
        return self._wrap(self.guilds[guild_id])

    def get_text_channels(self, guild_id):
        self.calls.append(("get_text_channels", guild_id))
        return self._wrap(self.channels.get(guild_id, []))

    def get_channel_messages(self, channel_id, limit=100):
        self.calls.append(("get_channel_messages", channel_id))
        return self._wrap(self.messages.get(channel_id, []))

    def get_message(self, channel_id, message_id):
        self.calls.append(("get_message", message_id))
        return self._wrap(self.message_details.get(message_id, {"id": message_id}))

    def get_reaction_users(self, channel_id, message_id, key, limit=100):
        self.calls.append(("get_reaction_users", message_id, key))
        return self._wrap(self.reaction_users.get((message_id, key), []))


@pytest.fixture
def settings(tmp_path):
    """Config namespace mirroring discord_notifier.config with test values."""
    return SimpleNamespace(
        DISCORD_BOT_TOKEN="test-token",
        DISCORD_API_BASE="https://discord.test/api/v10",
        DISCORD_REQUEST_TIMEOUT=5,
        SLACK_WEBHOOK_URL="https://hooks.slack.test/services/T/B/X",
        SLACK_BOT_TOKEN=None,
        SLACK_CHANNEL_ID=None,
        SLACK_TIMEOUT=5,
        GUILD_IDS=["guild-1"],
        KEYWORDS=["payment"],
        EXCLUDE_KEYWORDS=[],
        EXCLUDE_USER_IDS=[],
        EXCLUDE_USERNAMES=[],
        CHECK_INTERVAL_HOURS=3,
        LEDGER_PATH=str(tmp_path / "tracked-messages.json"),
        RETENTION_HOURS=72,
        GUILD_BATCH_SIZE=3,
        CHANNEL_BATCH_SIZE=5,
        MESSAGE_PAGE_SIZE=100,
        CHANNEL_BATCH_DELAY=0,
        WATCH_DELAY=0,
        DISPLAY_TIMEZONE="UTC",
    )


@pytest.fixture
def discord():
    return FakeDiscord()


@pytest.fixture
def slack():
    """Slack notifier double that accepts every post and hands out thread ids."""
    notifier = MagicMock()
    notifier.send_notification.side_effect = (
        RelayResult(ok=True, thread_ts=f"1700000000.{i:06d}") for i in range(1, 1000))
    notifier.send_thread_reply.return_value = RelayResult(ok=True)
    return notifier


@pytest.fixture
def now():
    return datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
