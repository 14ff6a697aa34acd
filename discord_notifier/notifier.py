"""Notification service for relaying matches and follow-ups to Slack."""
import logging
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


@dataclass
class RelayResult:
    """Outcome of one Slack post. ``thread_ts`` is the handle for follow-ups."""

    ok: bool
    thread_ts: Optional[str] = None
    error: Optional[str] = None


class SlackNotifier:
    """Posts Slack messages through an incoming webhook or the Web API.

    When a bot token and channel are configured, chat.postMessage is used,
    which always returns the message ``ts`` needed for threading. Otherwise
    the incoming webhook is used and the ``ts`` is taken from its response
    body when present.
    """

    def __init__(self, webhook_url=None, bot_token=None, channel_id=None, timeout=10, session=None):
        """Initialize the notification service with the Slack endpoint."""
        self.webhook_url = webhook_url
        self.bot_token = bot_token
        self.channel_id = channel_id
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config):
        return cls(
            webhook_url=config.SLACK_WEBHOOK_URL,
            bot_token=config.SLACK_BOT_TOKEN,
            channel_id=config.SLACK_CHANNEL_ID,
            timeout=config.SLACK_TIMEOUT,
        )

    @property
    def uses_web_api(self):
        return bool(self.bot_token and self.channel_id)

    def send_notification(self, payload) -> RelayResult:
        """Post a new top-level notification."""
        return self._post(dict(payload))

    def send_thread_reply(self, thread_ts, payload) -> RelayResult:
        """Post a follow-up under an earlier notification."""
        message = dict(payload)
        message["thread_ts"] = thread_ts
        return self._post(message)

    def _post(self, message) -> RelayResult:
        if self.uses_web_api:
            return self._post_web_api(message)
        return self._post_webhook(message)

    def _post_webhook(self, message) -> RelayResult:
        try:
            response = self.session.post(self.webhook_url, json=message, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Error sending Slack notification: %s", e)
            return RelayResult(ok=False, error=str(e))

        if response.status_code != 200:
            error = f"Slack API Error: {response.status_code} - {response.text}"
            logger.error("Failed to send Slack notification. %s", error)
            return RelayResult(ok=False, error=error)

        thread_ts = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            thread_ts = body.get("ts")
        logger.debug("Sent Slack webhook notification (ts=%s)", thread_ts)
        return RelayResult(ok=True, thread_ts=thread_ts)

    def _post_web_api(self, message) -> RelayResult:
        message.setdefault("channel", self.channel_id)
        headers = {"Authorization": f"Bearer {self.bot_token}"}
        try:
            response = self.session.post(
                SLACK_POST_MESSAGE_URL, json=message, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Error sending Slack notification: %s", e)
            return RelayResult(ok=False, error=str(e))

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}
        if response.status_code != 200 or not body.get("ok"):
            error = f"Slack API Error: {response.status_code} - {body.get('error') or response.text}"
            logger.error("Failed to send Slack notification. %s", error)
            return RelayResult(ok=False, error=error)

        logger.debug("Sent Slack notification to %s (ts=%s)", self.channel_id, body.get("ts"))
        return RelayResult(ok=True, thread_ts=body.get("ts"))
