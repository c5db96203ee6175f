"""Conversions between the storage timezone and user timezones.

Every comparison in the scheduler happens on UTC instants produced by
:func:`to_instant`. Strings without offset information are read in an explicit
zone (the storage zone unless told otherwise); strings carrying ``Z`` or a UTC
offset are taken as absolute.

Wall-clock times that fall into a DST gap or overlap resolve with
``zoneinfo``'s ``fold=0`` rule, i.e. the offset in force before the transition.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from lessonsched.config import get_settings
from lessonsched.domain.errors import ParseError
from lessonsched.domain.models import WallClockTime

STORAGE_FORMAT = "%Y-%m-%d %H:%M:%S"
TIME_FORMAT = "%H:%M:%S"

# Two unrelated defaults: a value that parses to different dates under them
# never named a full date.
_DISTINCT_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def resolve_zone(name: str | None = None) -> ZoneInfo:
    """Return the ``ZoneInfo`` for *name*, or for the storage zone if omitted."""
    zone_name = name or get_settings().storage_timezone
    try:
        return ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ParseError(f"Unknown timezone: {zone_name!r}") from exc


def _parse_with_date(text: str) -> datetime:
    try:
        first, second = (date_parser.parse(text, default=d) for d in _DISTINCT_DEFAULTS)
    except (ValueError, OverflowError) as exc:
        raise ParseError(f"Unparseable date/time: {text!r}") from exc
    if first.date() != second.date():
        raise ParseError(f"Date/time has no full date: {text!r}")
    return first


def to_instant(raw: str | datetime, assumed_zone: str | None = None) -> datetime:
    """Resolve *raw* to a UTC instant.

    Raises ``ParseError`` if *raw* is empty or cannot be parsed. Strings
    must name a full date; a bare time of day is rejected rather than placed
    on today.
    """
    if isinstance(raw, datetime):
        parsed = raw
    else:
        text = str(raw).strip() if raw is not None else ""
        if not text:
            raise ParseError("Empty date/time value")
        try:
            parsed = date_parser.isoparse(text)
        except ValueError:
            parsed = _parse_with_date(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=resolve_zone(assumed_zone))
    return parsed.astimezone(timezone.utc)


def instant_to_zoned(instant: datetime, zone: str) -> WallClockTime:
    """Render *instant* as wall-clock time in *zone*."""
    tz = resolve_zone(zone)
    local = instant.astimezone(tz)
    return WallClockTime(
        local_date=local.date(),
        local_time=local.time().replace(tzinfo=None),
        zone=tz.key,
        fold=local.fold,
    )


def format_local(instant: datetime, zone: str | None = None, fmt: str = "%H:%M") -> str:
    return instant.astimezone(resolve_zone(zone)).strftime(fmt)


def to_storage_string(instant: datetime, storage_zone: str | None = None) -> str:
    """Render *instant* the way storage keeps offset-less timestamps."""
    return format_local(instant, storage_zone, STORAGE_FORMAT)


def _anchor(time_str: str, zone: str, reference_date: date) -> datetime:
    try:
        parsed = time.fromisoformat(time_str.strip())
    except (AttributeError, ValueError) as exc:
        raise ParseError(f"Unparseable time of day: {time_str!r}") from exc
    return datetime.combine(reference_date, parsed.replace(tzinfo=None), tzinfo=resolve_zone(zone))


def convert_wall_time(
    time_str: str, from_zone: str, to_zone: str, reference_date: date
) -> str:
    """Re-express a bare ``HH:MM[:SS]`` time from one zone in another.

    The offsets in force on *reference_date* are used. Callers that store the
    date separately must shift it by :func:`day_shift`.
    """
    source = _anchor(time_str, from_zone, reference_date)
    return source.astimezone(resolve_zone(to_zone)).strftime(TIME_FORMAT)


def day_shift(time_str: str, from_zone: str, to_zone: str, reference_date: date) -> int:
    """Return how many calendar days the date moves when converting *time_str*."""
    source = _anchor(time_str, from_zone, reference_date)
    target = source.astimezone(resolve_zone(to_zone))
    return (target.date() - source.date()).days
