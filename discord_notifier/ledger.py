"""Watch ledger: the persisted list of relayed messages still under observation."""
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=72)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: str) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"Expected an ISO-8601 timestamp, got {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class WatchEntry:
    """One relayed Discord message being watched for reactions and replies."""

    message_id: str
    channel_id: str
    guild_id: str
    slack_thread_ts: Optional[str]
    detected_at: datetime
    last_checked_at: datetime
    notified_reactions: Set[Tuple[str, str]] = field(default_factory=set)
    notified_replies: Set[str] = field(default_factory=set)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.message_id, self.channel_id)

    def to_dict(self) -> Dict:
        return {
            "message_id": self.message_id,
            "channel_id": self.channel_id,
            "guild_id": self.guild_id,
            "slack_thread_ts": self.slack_thread_ts,
            "detected_at": self.detected_at.isoformat(),
            "last_checked_at": self.last_checked_at.isoformat(),
            "notified_reactions": [list(pair) for pair in sorted(self.notified_reactions)],
            "notified_replies": sorted(self.notified_replies),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "WatchEntry":
        if "discordMessageId" in data:
            return cls._from_legacy(data)
        detected_at = _parse_time(data["detected_at"])
        last_checked = data.get("last_checked_at")
        return cls(
            message_id=str(data["message_id"]),
            channel_id=str(data["channel_id"]),
            guild_id=str(data.get("guild_id", "")),
            slack_thread_ts=data.get("slack_thread_ts"),
            detected_at=detected_at,
            last_checked_at=_parse_time(last_checked) if last_checked else detected_at,
            notified_reactions={
                (str(user_id), str(emoji)) for user_id, emoji in data.get("notified_reactions", [])
            },
            notified_replies={str(r) for r in data.get("notified_replies", [])},
        )

    @classmethod
    def _from_legacy(cls, data: Dict) -> "WatchEntry":
        """Read an entry written by the earlier Node.js job (camelCase keys,
        reactions stored as ``"<userId>-<emoji>"`` strings)."""
        detected_at = _parse_time(data["detectedAt"])
        last_checked = data.get("lastCheckedAt")
        reactions = set()
        for key in data.get("notifiedReactions", []):
            user_id, _, emoji = str(key).partition("-")
            if emoji:
                reactions.add((user_id, emoji))
        return cls(
            message_id=str(data["discordMessageId"]),
            channel_id=str(data["discordChannelId"]),
            guild_id=str(data.get("discordGuildId", "")),
            slack_thread_ts=data.get("slackThreadTs"),
            detected_at=detected_at,
            last_checked_at=_parse_time(last_checked) if last_checked else detected_at,
            notified_reactions=reactions,
            notified_replies={str(r) for r in data.get("notifiedReplies", [])},
        )


class WatchLedger:
    """JSON-file backed collection of WatchEntry records.

    The file is read once with load() and rewritten wholesale with save();
    everything in between happens in memory on the caller's thread.
    """

    def __init__(self, path):
        self.path = path
        self.entries: List[WatchEntry] = []

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def get(self, message_id, channel_id) -> Optional[WatchEntry]:
        for entry in self.entries:
            if entry.key == (message_id, channel_id):
                return entry
        return None

    def load(self) -> "WatchLedger":
        """Read the ledger file, starting empty if it is missing or corrupt."""
        self.entries = []
        if not os.path.exists(self.path):
            logger.info("No ledger file at %s, starting with an empty ledger", self.path)
            return self

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error reading ledger file %s, starting empty: %s", self.path, e)
            return self

        if not isinstance(data, dict) or not isinstance(data.get("messages"), list):
            logger.error("Ledger file %s has an unexpected layout, starting empty", self.path)
            return self

        for raw in data["messages"]:
            try:
                self.upsert(WatchEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning("Skipping malformed ledger entry %r: %s", raw, e)

        logger.info("Loaded %d watched messages from %s", len(self.entries), self.path)
        return self

    def prune(self, now=None, max_age=DEFAULT_RETENTION) -> int:
        """Drop entries detected at least ``max_age`` ago. Returns the count removed."""
        now = now or utcnow()
        before = len(self.entries)
        self.entries = [e for e in self.entries if now - e.detected_at < max_age]
        removed = before - len(self.entries)
        if removed:
            logger.info("Pruned %d watched messages older than %s", removed, max_age)
        return removed

    def upsert(self, entry: WatchEntry) -> bool:
        """Append a new entry. An entry whose key is already present is ignored."""
        if self.get(*entry.key) is not None:
            logger.warning("Message %s in channel %s is already watched",
                           entry.message_id, entry.channel_id)
            return False
        self.entries.append(entry)
        return True

    def save(self) -> bool:
        """Rewrite the ledger file. Failures are logged, never raised."""
        payload = {"messages": [entry.to_dict() for entry in self.entries]}
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".ledger-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            logger.error("Error saving ledger file %s: %s", self.path, e)
            return False

        logger.info("Saved %d watched messages to %s", len(self.entries), self.path)
        return True
