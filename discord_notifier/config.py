"""Configuration settings module."""
import json
import os
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


class ConfigurationError(ValueError):
    """Raised when required configuration is missing or unreadable."""


def _split_ids(raw):
    return [part.strip() for part in raw.split(",") if part.strip()]


def _load_file_config(path):
    """Read the keyword/guild settings file; a missing file means no overrides."""
    if not path or not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Could not read config file {path}: {e}") from e


# Discord API
DISCORD_BOT_TOKEN = os.environ.get("DISCORD_BOT_TOKEN")
DISCORD_API_BASE = os.environ.get("DISCORD_API_BASE", "https://discord.com/api/v10")
DISCORD_REQUEST_TIMEOUT = float(os.environ.get("DISCORD_REQUEST_TIMEOUT", "30"))

# Slack: either an incoming webhook or a bot token + channel (chat.postMessage)
SLACK_WEBHOOK_URL = os.environ.get("SLACK_WEBHOOK_URL")
SLACK_BOT_TOKEN = os.environ.get("SLACK_BOT_TOKEN")
SLACK_CHANNEL_ID = os.environ.get("SLACK_CHANNEL_ID")
SLACK_TIMEOUT = float(os.environ.get("SLACK_TIMEOUT", "10"))

# Keyword / guild settings file
CONFIG_PATH = os.environ.get("CONFIG_PATH", "config.json")
_file_config = _load_file_config(CONFIG_PATH)

# Guild ids from the environment win over the file
GUILD_IDS = _split_ids(os.environ.get("DISCORD_GUILD_IDS", ""))
if not GUILD_IDS:
    GUILD_IDS = [str(g) for g in _file_config.get("guildIds", [])]

KEYWORDS = _file_config.get("keywords", [])
EXCLUDE_KEYWORDS = _file_config.get("excludeKeywords", [])
EXCLUDE_USER_IDS = [str(u) for u in _file_config.get("excludeUserIds", [])]
EXCLUDE_USERNAMES = _file_config.get("excludeUsernames", [])

# Lookback window for new matches, in hours
CHECK_INTERVAL_HOURS = float(
    os.environ.get("CHECK_INTERVAL_HOURS") or _file_config.get("checkIntervalHours") or 3)

# Watch ledger
LEDGER_PATH = os.environ.get("LEDGER_PATH", "tracked-messages.json")
RETENTION_HOURS = float(os.environ.get("RETENTION_HOURS", "72"))

# Request pacing against the Discord rate limiter
GUILD_BATCH_SIZE = 3
CHANNEL_BATCH_SIZE = 5
MESSAGE_PAGE_SIZE = 100
CHANNEL_BATCH_DELAY = float(os.environ.get("CHANNEL_BATCH_DELAY", "0.2"))
WATCH_DELAY = float(os.environ.get("WATCH_DELAY", "0.5"))

# Human-readable times in notifications
DISPLAY_TIMEZONE = os.environ.get("DISPLAY_TIMEZONE", "Asia/Tokyo")

# Logging
LOG_DIR = os.environ.get("LOG_DIR", "")

# Debugging
DEBUG = os.environ.get("DEBUG", "false").lower() == "true"
