"""
A scheduled job that scans Discord channels for keyword matches, relays
them to Slack and follows up on new reactions and replies.
"""

from . import config
from .monitor import DiscordMonitor
from .notifier import SlackNotifier
from .ledger import WatchLedger
