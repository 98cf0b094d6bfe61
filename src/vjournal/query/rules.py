"""Rule-folder evaluation.

Rule folders are never materialized; membership is computed against the
current entries every time it is asked for.
"""

from datetime import datetime, timedelta

from ..models import Entry, FolderRules, utcnow


def _contains(haystack: str | None, needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


def matches_rules(entry: Entry, rules: FolderRules, now: datetime | None = None) -> bool:
    """True when the entry satisfies every criterion present in rules."""
    if rules.date_range is not None:
        dr = rules.date_range
        if dr.type == "last_n_days":
            cutoff = (now or utcnow()) - timedelta(days=dr.value or 0)
            if entry.created_at < cutoff:
                return False
        elif dr.type == "range":
            if dr.start and entry.created_at < dr.start:
                return False
            if dr.end and entry.created_at > dr.end:
                return False
        else:
            raise ValueError(f"Unknown date range type: {dr.type}")

    if rules.mode and entry.mode != rules.mode:
        return False

    if rules.text_contains:
        if not (_contains(entry.transcript, rules.text_contains)
                or _contains(entry.summary, rules.text_contains)):
            return False

    if rules.topics_contain:
        topics = entry.topics or []
        # Any listed topic may match
        if not any(_contains(t, wanted) for wanted in rules.topics_contain for t in topics):
            return False

    return True


def filter_by_rules(entries: list[Entry], rules: FolderRules, now: datetime | None = None) -> list[Entry]:
    now = now or utcnow()
    return [e for e in entries if matches_rules(e, rules, now)]
