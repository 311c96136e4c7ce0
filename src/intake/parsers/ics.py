"""Calendar interchange (.ics) parser.

A ``VEVENT`` block that lacks a title or a parseable start is dropped
without raising, and the rest of the file still parses.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime, timedelta

from boardintake.intake.models import CalendarEvent

logger = logging.getLogger(__name__)

_DATETIME_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})?)?(Z)?$")
_ESCAPES = {",": ",", ";": ";", "n": "\n", "N": "\n", "\\": "\\"}
_ESCAPE_RE = re.compile(r"\\([,;nN\\])")


def unfold_lines(content: str) -> list[str]:
    """Split *content* into logical lines, joining folded continuations."""
    lines: list[str] = []
    for line in re.split(r"\r?\n", content):
        if line[:1] in (" ", "\t") and lines:
            lines[-1] += line[1:]
        else:
            lines.append(line)
    return lines


def unescape_text(value: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group(1)], value)


def parse_ics_datetime(value: str, *, date_only: bool = False) -> tuple[datetime, bool] | None:
    """Parse a ``DTSTART``/``DTEND`` value.

    Returns ``(instant, is_all_day)`` or ``None`` when the value is not a
    recognizable date. All returned datetimes are timezone-aware in the
    local zone: ``Z`` values are converted from UTC, date-only values
    land on local midnight, anything else is read as local wall time.
    """
    match = _DATETIME_RE.match(value.strip())
    if match is None:
        return None
    year, month, day, hour, minute, second, utc = match.groups()
    all_day = date_only or hour is None

    try:
        if all_day:
            return datetime(int(year), int(month), int(day)).astimezone(), True
        naive = datetime(int(year), int(month), int(day), int(hour), int(minute), int(second or 0))
    except ValueError:
        return None

    if utc:
        return naive.replace(tzinfo=UTC).astimezone(), False
    return naive.astimezone(), False


def parse_ics(content: str, source_file: str | None = None) -> list[CalendarEvent]:
    """Parse every ``VEVENT`` in *content* into a :class:`CalendarEvent`.

    Args:
        content: Raw calendar text.
        source_file: Name recorded on each event for provenance.

    Returns:
        Events in file order. A missing ``DTEND`` ends an all-day event
        one day after it starts and a timed event at its start.
    """
    events: list[CalendarEvent] = []
    current: dict | None = None
    nested = 0
    skipped = 0

    for line in unfold_lines(content):
        if line.startswith("BEGIN:VEVENT"):
            current = {"is_all_day": False}
            nested = 0
            continue

        # Sub-components such as VALARM carry their own SUMMARY/DESCRIPTION.
        if current is not None and line.startswith("BEGIN:"):
            nested += 1
            continue
        if nested:
            if line.startswith("END:"):
                nested -= 1
            continue

        if line.startswith("END:VEVENT"):
            if current is not None:
                event = _build_event(current, source_file)
                if event is None:
                    skipped += 1
                else:
                    events.append(event)
            current = None
            continue

        if current is None:
            continue

        head, sep, value = line.partition(":")
        if not sep or not head:
            continue
        key, *params = head.split(";")
        key = key.upper()
        date_only = any(p.upper() == "VALUE=DATE" for p in params)

        if key == "SUMMARY":
            current["title"] = unescape_text(value)
        elif key == "DESCRIPTION":
            current["description"] = unescape_text(value)
        elif key == "LOCATION":
            current["location"] = unescape_text(value)
        elif key == "DTSTART":
            parsed = parse_ics_datetime(value, date_only=date_only)
            if parsed is not None:
                current["start"], current["is_all_day"] = parsed
        elif key == "DTEND":
            parsed = parse_ics_datetime(value, date_only=date_only)
            if parsed is not None:
                current["end"] = parsed[0]

    if skipped:
        logger.debug("Skipped %d calendar blocks without a title or start", skipped)
    logger.info("Parsed %d calendar events from %s", len(events), source_file or "<text>")
    return events


def _build_event(fields: dict, source_file: str | None) -> CalendarEvent | None:
    title = fields.get("title")
    start = fields.get("start")
    if not title or start is None:
        return None

    end = fields.get("end")
    if end is None:
        end = start + timedelta(days=1) if fields["is_all_day"] else start

    return CalendarEvent(
        title=title,
        description=fields.get("description") or None,
        location=fields.get("location") or None,
        start=start,
        end=end,
        is_all_day=fields["is_all_day"],
        source_file=source_file,
    )
