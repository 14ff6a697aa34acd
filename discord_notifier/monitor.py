"""Run orchestration: scan, relay, watch, persist, summarize."""
import logging
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from .config import ConfigurationError
from .discord_client import DiscordClient
from .ledger import WatchEntry, WatchLedger, utcnow
from .notifier import SlackNotifier
from .payloads import build_match_payload, build_summary_payload
from .scanner import GuildScanner
from .watcher import IncrementalWatcher

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    execution_time: float = 0.0
    guild_count: int = 0
    channel_count: int = 0
    skipped_channels: int = 0
    message_count: int = 0
    match_count: int = 0
    relayed_matches: int = 0
    pruned_entries: int = 0
    watched_count: int = 0
    reactions_relayed: int = 0
    replies_relayed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def accessible_channels(self):
        return self.channel_count - self.skipped_channels


class DiscordMonitor:
    """One scheduled run of the Discord keyword monitor."""

    def __init__(self, config, client=None, notifier=None, ledger=None, sleep=time.sleep):
        """Initialize the monitor with configuration."""
        self.config = config
        self.sleep = sleep

        # Validate before any client is built
        self._validate_config()

        self.client = client or DiscordClient(
            config.DISCORD_BOT_TOKEN,
            api_base=config.DISCORD_API_BASE,
            timeout=config.DISCORD_REQUEST_TIMEOUT,
            pool_size=config.GUILD_BATCH_SIZE * config.CHANNEL_BATCH_SIZE,
        )
        self.notifier = notifier or SlackNotifier.from_config(config)
        self.ledger = ledger or WatchLedger(config.LEDGER_PATH)
        self.scanner = GuildScanner(self.client, config, sleep=sleep)
        self.watcher = IncrementalWatcher(
            self.client, self.notifier, sleep=sleep,
            delay=config.WATCH_DELAY, page_size=config.MESSAGE_PAGE_SIZE)

    def _validate_config(self):
        """Validate that all required configuration is present."""
        missing_vars = []

        if not self.config.DISCORD_BOT_TOKEN:
            missing_vars.append("DISCORD_BOT_TOKEN")
        if not self.config.SLACK_WEBHOOK_URL and not (
                self.config.SLACK_BOT_TOKEN and self.config.SLACK_CHANNEL_ID):
            missing_vars.append("SLACK_WEBHOOK_URL")
        if not self.config.GUILD_IDS:
            missing_vars.append("DISCORD_GUILD_IDS")

        if not self.config.KEYWORDS:
            logger.warning("No keywords configured - no new messages will match")

        if missing_vars:
            error_msg = f"Missing required configuration variables: {', '.join(missing_vars)}"
            logger.error(error_msg)
            raise ConfigurationError(error_msg)

    def run(self) -> RunSummary:
        """Execute one full run and return its summary."""
        started = time.monotonic()
        now = utcnow()
        cutoff = now - timedelta(hours=self.config.CHECK_INTERVAL_HOURS)

        logger.info(
            "Starting run: %d guilds, %d keywords, %d exclude keywords, "
            "%d excluded users, %d excluded usernames, lookback %sh",
            len(self.config.GUILD_IDS), len(self.config.KEYWORDS),
            len(self.config.EXCLUDE_KEYWORDS), len(self.config.EXCLUDE_USER_IDS),
            len(self.config.EXCLUDE_USERNAMES), self.config.CHECK_INTERVAL_HOURS)
        logger.info("Scanning messages sent since %s", cutoff.isoformat())

        report = self.scanner.scan(cutoff)
        summary = RunSummary(
            guild_count=len(self.config.GUILD_IDS),
            channel_count=report.channel_count,
            skipped_channels=report.skipped_channels,
            message_count=report.message_count,
            match_count=len(report.matches),
            errors=list(report.errors),
        )

        self.ledger.load()
        summary.pruned_entries = self.ledger.prune(
            now, max_age=timedelta(hours=self.config.RETENTION_HOURS))

        for candidate in report.matches:
            if self.relay_match(candidate):
                summary.relayed_matches += 1

        watch = self.watcher.check_all(self.ledger)
        summary.reactions_relayed = watch.reactions_relayed
        summary.replies_relayed = watch.replies_relayed
        summary.errors.extend(watch.errors)
        summary.watched_count = len(self.ledger)

        self.ledger.save()

        summary.execution_time = time.monotonic() - started
        self.log_summary(summary)
        if summary.message_count > 0:
            result = self.notifier.send_notification(build_summary_payload(summary))
            if not result.ok:
                logger.error("Could not relay run summary: %s", result.error)
        else:
            logger.info("No messages checked, skipping the Slack summary")
        return summary

    def relay_match(self, candidate) -> bool:
        """Relay one match and start watching it once Slack accepted it."""
        logger.info("Keyword match in %s #%s from %s: %.50s",
                    candidate.guild_name, candidate.channel_name,
                    candidate.author, candidate.content)

        result = self.notifier.send_notification(
            build_match_payload(candidate, self.config.DISPLAY_TIMEZONE))
        if not result.ok:
            logger.error("Slack notification failed for message %s: %s",
                         candidate.message_id, result.error)
            return False

        detected_at = utcnow()
        self.ledger.upsert(WatchEntry(
            message_id=candidate.message_id,
            channel_id=candidate.channel_id,
            guild_id=candidate.guild_id,
            slack_thread_ts=result.thread_ts,
            detected_at=detected_at,
            last_checked_at=detected_at,
        ))
        if not result.thread_ts:
            logger.warning("Slack returned no thread handle for message %s; "
                           "follow-ups will not be relayed", candidate.message_id)
        return True

    def log_summary(self, summary):
        logger.info("=" * 60)
        logger.info("Run summary")
        logger.info("Execution time: %.2fs", summary.execution_time)
        logger.info("Guilds: %d", summary.guild_count)
        logger.info("Channels: %d (accessible %d, skipped %d)",
                    summary.channel_count, summary.accessible_channels, summary.skipped_channels)
        logger.info("Messages checked: %d", summary.message_count)
        logger.info("Keyword matches: %d (relayed %d)", summary.match_count, summary.relayed_matches)
        logger.info("Watched messages: %d (pruned %d)", summary.watched_count, summary.pruned_entries)
        logger.info("New reactions relayed: %d, new replies relayed: %d",
                    summary.reactions_relayed, summary.replies_relayed)
        logger.info("Errors: %d", len(summary.errors))
        for index, error in enumerate(summary.errors, start=1):
            logger.warning("  %d. %s", index, error)
