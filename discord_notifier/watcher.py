"""Incremental reaction/reply checks for watched messages.

Each pass compares the live reactions and replies of a watched message with
what was already relayed and posts only the difference as Slack thread
replies. A delta is recorded as notified only after Slack accepted it, so a
failed post is retried on the next run.
"""
import logging
import time
import traceback
from dataclasses import dataclass, field
from typing import List

from .discord_client import emoji_key
from .ledger import utcnow
from .payloads import build_reaction_payload, build_reply_payload

logger = logging.getLogger(__name__)


@dataclass
class EntryCheck:
    """Outcome of checking one watched message."""

    message_id: str
    reactions_relayed: int = 0
    replies_relayed: int = 0
    relay_failures: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class WatchReport:
    entries_checked: int = 0
    reactions_relayed: int = 0
    replies_relayed: int = 0
    relay_failures: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, check: EntryCheck):
        self.entries_checked += 1
        self.reactions_relayed += check.reactions_relayed
        self.replies_relayed += check.replies_relayed
        self.relay_failures += check.relay_failures
        self.errors.extend(check.errors)


class IncrementalWatcher:
    """Relays new reactions and replies on watched messages to their Slack thread."""

    def __init__(self, client, notifier, sleep=time.sleep, delay=0.5, page_size=100):
        self.client = client
        self.notifier = notifier
        self.sleep = sleep
        self.delay = delay
        self.page_size = page_size

    def check_all(self, ledger) -> WatchReport:
        """Check every ledger entry in order, pausing after each one."""
        report = WatchReport()
        logger.info("Checking %d watched messages for reactions and replies", len(ledger))
        for entry in ledger:
            report.add(self.check_entry(entry))
            self.sleep(self.delay)
        return report

    def check_entry(self, entry) -> EntryCheck:
        check = EntryCheck(message_id=entry.message_id)
        try:
            self._check_reactions(entry, check)
            self._check_replies(entry, check)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error("Error checking watched message %s: %s", entry.message_id, e)
            logger.debug(traceback.format_exc())
            check.errors.append(f"Message {entry.message_id}: {e}")
        finally:
            entry.last_checked_at = utcnow()
        return check

    def _relay(self, entry, payload, check):
        """Post a follow-up; True means the delta may be recorded as notified."""
        if not entry.slack_thread_ts:
            # No thread to post into; record it so it is not retried forever.
            return True
        result = self.notifier.send_thread_reply(entry.slack_thread_ts, payload)
        if not result.ok:
            check.relay_failures += 1
            logger.error("Could not relay follow-up for message %s: %s",
                         entry.message_id, result.error)
        return result.ok

    def _check_reactions(self, entry, check):
        message = self.client.get_message(entry.channel_id, entry.message_id)
        if not message.ok:
            check.errors.append(f"Reactions of message {entry.message_id}: {message.error}")
            return

        for reaction in (message.data or {}).get("reactions") or []:
            emoji = reaction.get("emoji") or {}
            key = emoji_key(emoji)
            users = self.client.get_reaction_users(entry.channel_id, entry.message_id, key)
            if not users.ok:
                check.errors.append(
                    f"Reaction {key} on message {entry.message_id}: {users.error}")
                continue

            for user in users.data or []:
                pair = (str(user["id"]), key)
                if pair in entry.notified_reactions:
                    continue
                username = user.get("username", user["id"])
                logger.info("New reaction on %s: %s reacted with %s",
                            entry.message_id, username, emoji.get("name") or key)
                payload = build_reaction_payload(username, emoji.get("name") or key)
                if self._relay(entry, payload, check):
                    entry.notified_reactions.add(pair)
                    if entry.slack_thread_ts:
                        check.reactions_relayed += 1

    def _check_replies(self, entry, check):
        page = self.client.get_channel_messages(entry.channel_id, limit=self.page_size)
        if not page.ok:
            check.errors.append(f"Replies to message {entry.message_id}: {page.error}")
            return

        replies = [
            msg for msg in page.data or []
            if (msg.get("message_reference") or {}).get("message_id") == entry.message_id
        ]
        # Oldest first so the Slack thread reads in order
        for reply in reversed(replies):
            reply_id = str(reply["id"])
            if reply_id in entry.notified_replies:
                continue
            author = (reply.get("author") or {}).get("username", "unknown")
            content = reply.get("content") or ""
            logger.info("New reply to %s from %s: %.50s", entry.message_id, author, content)
            if self._relay(entry, build_reply_payload(author, content), check):
                entry.notified_replies.add(reply_id)
                if entry.slack_thread_ts:
                    check.replies_relayed += 1
