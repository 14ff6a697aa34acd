"""Slack message payloads (plain text fallback plus Block Kit layout)."""
from zoneinfo import ZoneInfo

MAX_SUMMARY_ERRORS = 10


def _mrkdwn(text):
    return {"type": "mrkdwn", "text": text}


def _section(text):
    return {"type": "section", "text": _mrkdwn(text)}


def format_time(moment, tz_name="Asia/Tokyo"):
    return moment.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d %H:%M:%S %Z")


def build_match_payload(candidate, tz_name="Asia/Tokyo"):
    """Top-level alert for a newly matched message."""
    return {
        "text": f"<!channel> :moneybag: Keyword match in #{candidate.channel_name}",
        "blocks": [
            _section("<!channel> :moneybag: *Keyword match detected*"),
            {"type": "divider"},
            {
                "type": "section",
                "fields": [
                    _mrkdwn(f"*Server:*\n{candidate.guild_name}"),
                    _mrkdwn(f"*Channel:*\n#{candidate.channel_name}"),
                    _mrkdwn(f"*Author:*\n{candidate.author}"),
                    _mrkdwn(f"*Sent at:*\n{format_time(candidate.sent_at, tz_name)}"),
                ],
            },
            _section(f"*Message:*\n{candidate.content}"),
            _section(f"<{candidate.message_url}|:link: Open message>"),
            {"type": "divider"},
        ],
    }


def build_reaction_payload(username, emoji):
    return {"text": f":+1: {username} reacted with {emoji}"}


def build_reply_payload(username, content):
    return {"text": f":speech_balloon: Reply from {username}\n> {content}"}


def build_summary_payload(summary):
    """End-of-run summary with counts and the first few errors."""
    fields = [
        _mrkdwn(f"*Execution time:*\n{summary.execution_time:.2f}s"),
        _mrkdwn(f"*Servers:*\n{summary.guild_count}"),
        _mrkdwn(f"*Channels:*\n{summary.channel_count}"),
        _mrkdwn(f"*Accessible:*\n{summary.accessible_channels}"),
        _mrkdwn(f"*Messages checked:*\n{summary.message_count}"),
        _mrkdwn(f"*Keyword matches:*\n{summary.match_count}"),
        _mrkdwn(f"*Errors:*\n{len(summary.errors)}"),
        _mrkdwn(f"*Skipped:*\n{summary.skipped_channels} (no access)"),
        _mrkdwn(f"*Watched messages:*\n{summary.watched_count}"),
        _mrkdwn(f"*New reactions / replies:*\n{summary.reactions_relayed} / {summary.replies_relayed}"),
    ]
    blocks = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": ":bar_chart: Discord monitor run complete", "emoji": True},
        },
        {"type": "section", "fields": fields},
    ]

    if summary.errors:
        error_list = "\n".join(
            f"{i}. {error}" for i, error in enumerate(summary.errors[:MAX_SUMMARY_ERRORS], start=1))
        blocks.append({"type": "divider"})
        blocks.append(_section(":warning: *Errors:*"))
        blocks.append(_section(f"```{error_list}```"))
        if len(summary.errors) > MAX_SUMMARY_ERRORS:
            remaining = len(summary.errors) - MAX_SUMMARY_ERRORS
            blocks.append({
                "type": "context",
                "elements": [_mrkdwn(f"_{remaining} more errors, see the job logs for details._")],
            })

    return {"text": ":bar_chart: Discord monitor run complete", "blocks": blocks}
