"""Tests for rule-folder evaluation."""

from datetime import datetime, timedelta, timezone

from vjournal.models import CONVERSATIONAL, DateRange, Entry, FolderRules
from vjournal.query.rules import filter_by_rules, matches_rules

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _make_entry(**kwargs) -> Entry:
    defaults = dict(id=1, transcript="Long day at work", created_at=NOW - timedelta(days=1))
    defaults.update(kwargs)
    return Entry(**defaults)


def test_empty_rules_match_everything():
    assert matches_rules(_make_entry(), FolderRules(), now=NOW)


def test_last_n_days():
    rules = FolderRules(date_range=DateRange(type="last_n_days", value=7))
    assert matches_rules(_make_entry(created_at=NOW - timedelta(days=6)), rules, now=NOW)
    assert not matches_rules(_make_entry(created_at=NOW - timedelta(days=8)), rules, now=NOW)


def test_explicit_range():
    rules = FolderRules(date_range=DateRange(type="range", start=NOW - timedelta(days=3), end=NOW))
    assert matches_rules(_make_entry(created_at=NOW - timedelta(days=2)), rules, now=NOW)
    assert not matches_rules(_make_entry(created_at=NOW - timedelta(days=4)), rules, now=NOW)
    assert not matches_rules(_make_entry(created_at=NOW + timedelta(hours=1)), rules, now=NOW)


def test_mode():
    rules = FolderRules(mode=CONVERSATIONAL)
    assert not matches_rules(_make_entry(), rules, now=NOW)
    assert matches_rules(_make_entry(mode=CONVERSATIONAL), rules, now=NOW)


def test_text_contains_checks_transcript_and_summary():
    rules = FolderRules(text_contains="WORK")
    assert matches_rules(_make_entry(), rules, now=NOW)
    assert matches_rules(_make_entry(transcript=None, summary="work notes"), rules, now=NOW)
    assert not matches_rules(_make_entry(transcript="beach", name="work"), rules, now=NOW)


def test_topics_contain_any():
    rules = FolderRules(topics_contain=["health", "travel"])
    assert matches_rules(_make_entry(topics=["mental health"]), rules, now=NOW)
    assert not matches_rules(_make_entry(topics=["work"]), rules, now=NOW)
    assert not matches_rules(_make_entry(topics=None), rules, now=NOW)


def test_criteria_are_combined():
    rules = FolderRules(mode="solo", text_contains="work", topics_contain=["career"])
    assert matches_rules(_make_entry(topics=["career"]), rules, now=NOW)
    assert not matches_rules(_make_entry(topics=["family"]), rules, now=NOW)


def test_filter_by_rules():
    entries = [_make_entry(id=1), _make_entry(id=2, transcript="beach")]
    assert [e.id for e in filter_by_rules(entries, FolderRules(text_contains="work"), now=NOW)] == [1]


def test_rules_dict_round_trip():
    rules = FolderRules(date_range=DateRange(type="last_n_days", value=30), topics_contain=["a"])
    assert FolderRules.from_dict(rules.to_dict()) == rules
