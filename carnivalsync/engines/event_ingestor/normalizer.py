"""RawEvent -> CandidateEvent.

Pure: the only input besides the record is the calendar date used for the
plausibility window.
"""

from __future__ import annotations

import hashlib
import json
import re
from datetime import date

from carnivalsync.engines.event_ingestor.errors import NormalizeRejected
from carnivalsync.engines.event_ingestor.models import CandidateEvent, RawEvent
from carnivalsync.models.carnival import AUSTRALIAN_STATE_NAMES, AUSTRALIAN_STATES

WINDOW_YEARS = 10
DERIVED_PREFIX = "derived:"

_MONTHS = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}  # fmt: skip

_STATE_BY_NAME = {name.lower(): code for code, name in AUSTRALIAN_STATE_NAMES.items()}

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_NUMERIC_RE = re.compile(r"^(\d{1,2})[\s/\-](\d{1,2})[\s/\-](\d{4})$")
_DAY_MONTH_RE = re.compile(r"^(\d{1,2})(?:st|nd|rd|th)?\s+([a-z]{3,})\.?,?\s+(\d{4})$", re.I)
_MONTH_DAY_RE = re.compile(r"^([a-z]{3,})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})$", re.I)

_DATE_BODY = (
    r"(?:\d{1,2}[\s/\-]\d{1,2}[\s/\-]\d{4})"
    r"|(?:\d{1,2}(?:st|nd|rd|th)?\s+[a-zA-Z]{3,}\s+\d{4})"
    r"|(?:[a-zA-Z]{3,}\s+\d{1,2},?\s+\d{4})"
)
# tried in order: "(19/07/2025)", "- 21/06/2025" / "| 20th Sep 2024", trailing "Carnival 5 Feb 2026"
_TITLE_DATE_PATTERNS = (
    re.compile(rf"\s*\(({_DATE_BODY})\)\s*", re.I),
    re.compile(rf"\s*[\-|]\s*({_DATE_BODY})\s*", re.I),
    re.compile(rf"\s+({_DATE_BODY})\s*$", re.I),
)
_EDGE_SEPARATORS_RE = re.compile(r"^\s*[\-|]\s*|\s*[\-|]\s*$")
_WS_RE = re.compile(r"\s+")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _collapse(value: str) -> str:
    return _WS_RE.sub(" ", value).strip()


def parse_date(value: str | None) -> date | None:
    """Parse the date spellings used by the sources; None when unrecognised."""
    if not value:
        return None
    text = _collapse(value)
    try:
        if m := _ISO_RE.match(text):
            return date(int(m[1]), int(m[2]), int(m[3]))
        if m := _NUMERIC_RE.match(text):
            return date(int(m[3]), int(m[2]), int(m[1]))
        if m := _DAY_MONTH_RE.match(text):
            month = _MONTHS.get(m[2].lower())
            return date(int(m[3]), month, int(m[1])) if month else None
        if m := _MONTH_DAY_RE.match(text):
            month = _MONTHS.get(m[1].lower())
            return date(int(m[3]), month, int(m[2])) if month else None
    except ValueError:
        return None
    return None


def extract_date_from_title(title: str) -> tuple[str, date | None]:
    """Split a date embedded in *title* from the rest of the name.

    Returns ``(clean_title, date)``; the title comes back unchanged when no
    parseable date is found.
    """
    clean = title.strip()
    for pattern in _TITLE_DATE_PATTERNS:
        match = pattern.search(clean)
        if match is None:
            continue
        found = parse_date(match.group(1))
        if found is None:
            continue
        stripped = _collapse(pattern.sub(" ", clean))
        stripped = _collapse(_EDGE_SEPARATORS_RE.sub("", stripped))
        return (stripped or title.strip()), found
    return clean, None


def parse_state(value: str | None) -> str | None:
    if not value:
        return None
    text = _collapse(value)
    if text.upper() in AUSTRALIAN_STATES:
        return text.upper()
    return _STATE_BY_NAME.get(text.lower())


def _shift_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:  # 29 Feb -> 28 Feb
        return day.replace(year=day.year + years, day=28)


def derive_key(title: str, when: date, state: str, location_address: str) -> str:
    """Stable key for records the source gives no identity for."""
    parts = [_collapse(title).lower(), when.isoformat(), state.lower(), _collapse(location_address).lower()]
    digest = hashlib.sha256("|".join(parts).encode()).hexdigest()[:32]
    return f"{DERIVED_PREFIX}{digest}"


def content_hash(fields: dict) -> str:
    """Digest of the canonical content fields, order-independent."""
    canonical = {
        key: (val.isoformat() if isinstance(val, date) else val) for key, val in fields.items()
    }
    blob = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(blob.encode()).hexdigest()


def normalize(raw: RawEvent, *, today: date) -> CandidateEvent:
    """Turn *raw* into a :class:`CandidateEvent` or raise :class:`NormalizeRejected`."""
    title = _clean(raw.title)
    if raw.parse_error:
        raise NormalizeRejected(f"parse_error: {raw.parse_error}", title)
    if not title:
        raise NormalizeRejected("missing title")

    raw_date = _clean(raw.date)
    if raw_date is None:
        title, start = extract_date_from_title(title)
        if start is None:
            raise NormalizeRejected("missing date", title)
    else:
        start = parse_date(raw_date)
        if start is None:
            raise NormalizeRejected(f"unparseable date: {raw_date!r}", title)

    if not _clean(raw.state):
        raise NormalizeRejected("missing state", title)
    state = parse_state(raw.state)
    if state is None:
        raise NormalizeRejected(f"unknown state: {raw.state!r}", title)

    earliest = _shift_years(today, -WINDOW_YEARS)
    latest = _shift_years(today, WINDOW_YEARS)
    if not earliest <= start <= latest:
        raise NormalizeRejected(f"date out of range: {start.isoformat()}", title)

    end = None
    raw_end = _clean(raw.end_date)
    if raw_end is not None:
        end = parse_date(raw_end)
        if end is None:
            raise NormalizeRejected(f"unparseable end date: {raw_end!r}", title)
        if end < start:
            raise NormalizeRejected("end date before start date", title)

    fields = {
        "title": title,
        "date": start,
        "end_date": end,
        "state": state,
        "location_address": _clean(raw.location_address) or "",
        "contact_name": _clean(raw.contact_name),
        "contact_email": _clean(raw.contact_email),
        "contact_phone": _clean(raw.contact_phone),
        "schedule_details": _clean(raw.schedule_details),
        "registration_link": _clean(raw.registration_link),
        "fees_description": _clean(raw.fees_description),
    }
    external_key = _clean(raw.external_id) or derive_key(
        title, start, state, fields["location_address"]
    )
    return CandidateEvent(
        source=raw.source,
        external_key=external_key,
        content_hash=content_hash(fields),
        **fields,
    )
