"""Tests for Slack payload builders."""

from datetime import datetime, timezone

from discord_notifier.monitor import RunSummary
from discord_notifier.payloads import (
    build_match_payload,
    build_reaction_payload,
    build_reply_payload,
    build_summary_payload,
)
from discord_notifier.scanner import MatchCandidate


def _candidate():
    return MatchCandidate(
        message_id="m1",
        channel_id="c1",
        guild_id="g1",
        guild_name="Acme",
        channel_name="billing",
        author="alice",
        author_id="u1",
        content="please send payment by Friday",
        message_url="https://discord.com/channels/g1/c1/m1",
        sent_at=datetime(2025, 3, 1, 3, 0, tzinfo=timezone.utc),
    )


def test_match_payload_mentions_channel_and_links_message():
    payload = build_match_payload(_candidate())
    assert payload["text"].startswith("<!channel>")
    rendered = str(payload["blocks"])
    assert "please send payment by Friday" in rendered
    assert "<https://discord.com/channels/g1/c1/m1|" in rendered
    assert "#billing" in rendered


def test_match_payload_time_in_display_timezone():
    payload = build_match_payload(_candidate(), tz_name="Asia/Tokyo")
    assert "2025-03-01 12:00:00 JST" in str(payload["blocks"])


def test_follow_up_payloads_are_plain_text():
    assert build_reaction_payload("bob", "👍") == {"text": ":+1: bob reacted with 👍"}
    assert build_reply_payload("bob", "done") == {"text": ":speech_balloon: Reply from bob\n> done"}


def test_summary_without_errors():
    payload = build_summary_payload(RunSummary(message_count=5, match_count=1))
    assert [b["type"] for b in payload["blocks"]] == ["header", "section"]


def test_summary_lists_first_ten_errors():
    summary = RunSummary(errors=[f"Channel #c{i}: boom" for i in range(13)])
    blocks = build_summary_payload(summary)["blocks"]
    code = blocks[4]["text"]["text"]
    assert "10. Channel #c9: boom" in code
    assert "Channel #c10" not in code
    assert blocks[-1]["type"] == "context"
    assert "3 more errors" in blocks[-1]["elements"][0]["text"]
