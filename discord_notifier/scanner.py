"""Scan configured Discord guilds for recent keyword matches."""
import logging
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from . import keyword_filter
from .discord_client import message_url, snowflake_to_datetime

logger = logging.getLogger(__name__)

CHANNEL_OK = "ok"
CHANNEL_SKIPPED = "skipped"
CHANNEL_ERROR = "error"


@dataclass
class MatchCandidate:
    """A keyword match found during a scan; relayed, then seeds a WatchEntry."""

    message_id: str
    channel_id: str
    guild_id: str
    guild_name: str
    channel_name: str
    author: str
    author_id: str
    content: str
    message_url: str
    sent_at: datetime


@dataclass
class ChannelResult:
    channel_id: str
    channel_name: str
    status: str = CHANNEL_OK
    message_count: int = 0
    matches: List[MatchCandidate] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class GuildResult:
    guild_id: str
    guild_name: Optional[str] = None
    channel_count: int = 0
    channels: List[ChannelResult] = field(default_factory=list)
    error: Optional[str] = None
    elapsed: float = 0.0


@dataclass
class ScanReport:
    """Flat aggregation of every guild result of one scan."""

    guilds: List[GuildResult] = field(default_factory=list)
    channel_count: int = 0
    skipped_channels: int = 0
    message_count: int = 0
    matches: List[MatchCandidate] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_guilds(cls, guilds):
        report = cls(guilds=list(guilds))
        for guild in report.guilds:
            if guild.error:
                report.errors.append(f"Guild {guild.guild_id}: {guild.error}")
                continue
            report.channel_count += guild.channel_count
            for channel in guild.channels:
                report.message_count += channel.message_count
                if channel.status == CHANNEL_SKIPPED:
                    report.skipped_channels += 1
                    continue
                if channel.status == CHANNEL_ERROR:
                    report.errors.append(f"Channel #{channel.channel_name}: {channel.error}")
                report.matches.extend(channel.matches)
        return report


def _batches(items, size):
    for start in range(0, len(items), size):
        yield items[start:start + size]


class GuildScanner:
    """Walks guilds -> text channels -> recent messages with bounded fan-out."""

    def __init__(self, client, config, sleep=time.sleep):
        self.client = client
        self.config = config
        self.sleep = sleep

    def scan(self, cutoff: datetime) -> ScanReport:
        """Scan every configured guild for matches sent at or after ``cutoff``."""
        guild_ids = list(self.config.GUILD_IDS)
        results = []
        for batch in _batches(guild_ids, self.config.GUILD_BATCH_SIZE):
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                results.extend(executor.map(lambda g: self._scan_guild_contained(g, cutoff), batch))
        return ScanReport.from_guilds(results)

    def _scan_guild_contained(self, guild_id, cutoff):
        """scan_guild, with unexpected payload shapes reported as a guild error."""
        try:
            return self.scan_guild(guild_id, cutoff)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Malformed data while scanning guild %s: %s", guild_id, e)
            logger.debug(traceback.format_exc())
            return GuildResult(guild_id=guild_id, error=f"Malformed data: {e}")

    def scan_guild(self, guild_id, cutoff) -> GuildResult:
        """Scan one guild. Metadata or channel-list failures abort only this guild."""
        started = time.monotonic()
        result = GuildResult(guild_id=guild_id)

        guild = self.client.get_guild(guild_id)
        if not guild.ok:
            logger.error("Could not fetch guild %s: %s", guild_id, guild.error)
            result.error = guild.error
            return result
        if not isinstance(guild.data, dict):
            logger.error("Unexpected metadata for guild %s: %.100r", guild_id, guild.data)
            result.error = f"Unexpected guild metadata: {guild.data!r:.100}"
            return result
        result.guild_name = guild.data.get("name")
        logger.info("Scanning guild %s (%s)", guild_id, result.guild_name)

        channels = self.client.get_text_channels(guild_id)
        if not channels.ok:
            logger.error("Could not list channels of guild %s: %s", guild_id, channels.error)
            result.error = channels.error
            return result

        if not isinstance(channels.data, list):
            logger.error("Unexpected channel list for guild %s: %.100r", guild_id, channels.data)
            result.error = f"Unexpected channel list: {channels.data!r:.100}"
            return result
        text_channels = [ch for ch in channels.data if isinstance(ch, dict)]
        result.channel_count = len(text_channels)
        logger.info("Guild %s has %d text channels", result.guild_name, len(text_channels))

        processed = 0
        for batch in _batches(text_channels, self.config.CHANNEL_BATCH_SIZE):
            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                result.channels.extend(executor.map(
                    lambda ch: self.scan_channel(ch, guild_id, result.guild_name, cutoff), batch))
            processed += len(batch)
            logger.debug("Processed %d/%d channels of %s",
                         processed, len(text_channels), result.guild_name)
            self.sleep(self.config.CHANNEL_BATCH_DELAY)

        result.elapsed = time.monotonic() - started
        logger.info("Finished guild %s in %.2fs", result.guild_name, result.elapsed)
        return result

    def scan_channel(self, channel, guild_id, guild_name, cutoff) -> ChannelResult:
        """Match one page of recent channel messages against the keywords."""
        result = ChannelResult(channel_id=channel.get("id", ""), channel_name=channel.get("name", ""))
        if not result.channel_id:
            result.status = CHANNEL_ERROR
            result.error = "Channel without an id"
            return result

        page = self.client.get_channel_messages(result.channel_id, limit=self.config.MESSAGE_PAGE_SIZE)
        if page.forbidden:
            logger.debug("No access to channel #%s, skipping", result.channel_name)
            result.status = CHANNEL_SKIPPED
            return result
        if not page.ok:
            logger.warning("Error reading channel #%s: %s", result.channel_name, page.error)
            result.status = CHANNEL_ERROR
            result.error = page.error
            return result

        messages = page.data or []
        if not isinstance(messages, list):
            logger.warning("Unexpected message page in channel #%s", result.channel_name)
            result.status = CHANNEL_ERROR
            result.error = f"Unexpected message page: {messages!r:.100}"
            return result
        result.message_count = len(messages)
        try:
            for message in messages:
                candidate = self._match_message(message, channel, guild_id, guild_name, cutoff)
                if candidate:
                    result.matches.append(candidate)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed message data in channel #%s: %s", result.channel_name, e)
            result.status = CHANNEL_ERROR
            result.error = f"Malformed message data: {e}"
        return result

    def _match_message(self, message, channel, guild_id, guild_name, cutoff):
        sent_at = snowflake_to_datetime(message["id"])
        if sent_at < cutoff:
            return None

        content = message.get("content") or ""
        if not keyword_filter.matches(content, self.config.KEYWORDS):
            return None

        author = message.get("author") or {}
        if message.get("webhook_id"):
            logger.debug("Webhook message from %r (id %s)", author.get("username"), author.get("id"))

        reason = keyword_filter.exclusion_reason(
            message,
            self.config.EXCLUDE_USER_IDS,
            self.config.EXCLUDE_USERNAMES,
            self.config.EXCLUDE_KEYWORDS,
        )
        if reason:
            logger.debug("Excluded message %s by %s", message["id"], reason)
            return None

        return MatchCandidate(
            message_id=message["id"],
            channel_id=channel["id"],
            guild_id=guild_id,
            guild_name=guild_name or "",
            channel_name=channel.get("name", ""),
            author=author.get("username", ""),
            author_id=author.get("id", ""),
            content=content,
            message_url=message_url(guild_id, channel["id"], message["id"]),
            sent_at=sent_at,
        )
