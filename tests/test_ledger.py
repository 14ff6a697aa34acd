"""Tests for the JSON watch ledger."""

import json
from datetime import datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from discord_notifier.ledger import WatchEntry, WatchLedger

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _entry(message_id="m1", channel_id="c1", detected_at=NOW, thread_ts="1700000000.000100"):
    return WatchEntry(
        message_id=message_id,
        channel_id=channel_id,
        guild_id="g1",
        slack_thread_ts=thread_ts,
        detected_at=detected_at,
        last_checked_at=detected_at,
    )


class TestLoad:

    def test_missing_file_gives_empty_ledger(self, tmp_path):
        ledger = WatchLedger(str(tmp_path / "absent.json")).load()
        assert len(ledger) == 0

    def test_corrupt_file_gives_empty_ledger(self, tmp_path, caplog):
        path = tmp_path / "ledger.json"
        path.write_text("{not json", encoding="utf-8")
        ledger = WatchLedger(str(path)).load()
        assert len(ledger) == 0
        assert "Error reading ledger file" in caplog.text

    def test_unexpected_layout_gives_empty_ledger(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text(json.dumps([1, 2, 3]), encoding="utf-8")
        assert len(WatchLedger(str(path)).load()) == 0

    def test_malformed_entry_skipped(self, tmp_path):
        path = tmp_path / "ledger.json"
        good = _entry().to_dict()
        path.write_text(json.dumps({"messages": [{"message_id": "x"}, good]}), encoding="utf-8")
        ledger = WatchLedger(str(path)).load()
        assert [e.message_id for e in ledger] == ["m1"]

    @pytest.mark.parametrize("bad_time", [None, 5, ["2025-03-01"]])
    def test_entry_with_non_string_timestamp_skipped(self, tmp_path, bad_time):
        path = tmp_path / "ledger.json"
        bad = {"message_id": "1", "channel_id": "2", "detected_at": bad_time}
        path.write_text(json.dumps({"messages": [bad, _entry().to_dict()]}), encoding="utf-8")

        ledger = WatchLedger(str(path)).load()

        assert [e.message_id for e in ledger] == ["m1"]

    def test_bad_last_checked_skips_entry(self, tmp_path):
        path = tmp_path / "ledger.json"
        bad = _entry("m2").to_dict()
        bad["last_checked_at"] = 12
        path.write_text(json.dumps({"messages": [bad]}), encoding="utf-8")
        assert len(WatchLedger(str(path)).load()) == 0

    def test_reads_entries_written_by_previous_job(self, tmp_path):
        path = tmp_path / "tracked-messages.json"
        path.write_text(json.dumps({"messages": [{
            "discordMessageId": "111",
            "discordChannelId": "222",
            "discordGuildId": "333",
            "slackThreadTs": "1700000000.000100",
            "detectedAt": "2025-03-01T12:00:00.000Z",
            "lastCheckedAt": "2025-03-01T13:00:00.000Z",
            "notifiedReactions": ["444-👍", "555-✅"],
            "notifiedReplies": ["666"],
        }]}), encoding="utf-8")

        entry = WatchLedger(str(path)).load().get("111", "222")

        assert entry.guild_id == "333"
        assert entry.slack_thread_ts == "1700000000.000100"
        assert entry.detected_at == NOW
        assert entry.last_checked_at == NOW + timedelta(hours=1)
        assert entry.notified_reactions == {("444", "👍"), ("555", "✅")}
        assert entry.notified_replies == {"666"}

    def test_previous_job_entries_saved_in_current_layout(self, tmp_path):
        path = tmp_path / "tracked-messages.json"
        path.write_text(json.dumps({"messages": [{
            "discordMessageId": "111", "discordChannelId": "222",
            "detectedAt": "2025-03-01T12:00:00.000Z", "slackThreadTs": None,
            "notifiedReactions": [], "notifiedReplies": [],
        }]}), encoding="utf-8")

        WatchLedger(str(path)).load().save()

        [saved] = json.loads(path.read_text(encoding="utf-8"))["messages"]
        assert saved["message_id"] == "111"
        assert "discordMessageId" not in saved


class TestSaveAndReload:

    def test_entries_survive_save(self, tmp_path):
        path = tmp_path / "nested" / "ledger.json"
        ledger = WatchLedger(str(path))
        entry = _entry()
        entry.notified_reactions.add(("u1", "👍"))
        entry.notified_replies.add("r1")
        ledger.upsert(entry)
        assert ledger.save()

        reloaded = WatchLedger(str(path)).load()
        restored = reloaded.get("m1", "c1")
        assert restored.notified_reactions == {("u1", "👍")}
        assert restored.notified_replies == {"r1"}
        assert restored.detected_at == NOW
        assert restored.slack_thread_ts == "1700000000.000100"

    def test_save_overwrites_whole_file(self, tmp_path):
        path = tmp_path / "ledger.json"
        first = WatchLedger(str(path))
        first.upsert(_entry("m1"))
        first.upsert(_entry("m2"))
        first.save()

        second = WatchLedger(str(path))
        second.upsert(_entry("m3"))
        second.save()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert [m["message_id"] for m in data["messages"]] == ["m3"]

    def test_null_thread_handle_round_trips(self, tmp_path):
        path = tmp_path / "ledger.json"
        ledger = WatchLedger(str(path))
        ledger.upsert(_entry(thread_ts=None))
        ledger.save()
        assert WatchLedger(str(path)).load().get("m1", "c1").slack_thread_ts is None

    def test_save_failure_is_reported_not_raised(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        ledger = WatchLedger(str(blocker / "ledger.json"))
        ledger.upsert(_entry())
        assert ledger.save() is False


class TestUpsert:

    def test_appends_in_order(self, tmp_path):
        ledger = WatchLedger(str(tmp_path / "l.json"))
        ledger.upsert(_entry("m1"))
        ledger.upsert(_entry("m2"))
        assert [e.message_id for e in ledger] == ["m1", "m2"]

    def test_key_stays_unique(self, tmp_path):
        ledger = WatchLedger(str(tmp_path / "l.json"))
        assert ledger.upsert(_entry("m1"))
        assert not ledger.upsert(_entry("m1"))
        assert len(ledger) == 1

    def test_same_message_id_in_other_channel_allowed(self, tmp_path):
        ledger = WatchLedger(str(tmp_path / "l.json"))
        ledger.upsert(_entry("m1", "c1"))
        assert ledger.upsert(_entry("m1", "c2"))


class TestPrune:

    def test_boundary_at_retention_edge(self, tmp_path):
        ledger = WatchLedger(str(tmp_path / "l.json"))
        retention = timedelta(hours=72)
        ledger.upsert(_entry("old", detected_at=NOW - retention - timedelta(seconds=1)))
        ledger.upsert(_entry("young", detected_at=NOW - retention + timedelta(seconds=1)))

        removed = ledger.prune(NOW, max_age=retention)

        assert removed == 1
        assert [e.message_id for e in ledger] == ["young"]

    def test_nothing_to_prune(self, tmp_path):
        ledger = WatchLedger(str(tmp_path / "l.json"))
        ledger.upsert(_entry())
        assert ledger.prune(NOW) == 0

    @freeze_time("2025-03-04 12:00:01")
    def test_defaults_to_current_time(self, tmp_path):
        ledger = WatchLedger(str(tmp_path / "l.json"))
        ledger.upsert(_entry("m1", detected_at=NOW))
        assert ledger.prune() == 1
