"""Parse per-route timetable CSVs ("timecodes") into per-stop departure lists.

The CSVs are hand-maintained spreadsheets exported as-is:

    Weekdays,,,
    Round trip,1. Nuuk Center,2. Qernertunnguit,3. Tuujuk
    1,06:30,06.34,06:38
    2,07:00,07.04,*
    Weekends,,,
    Round trip,1. Nuuk Center,...

A line starting with a service-day keyword opens a section, a "Round trip"
line is the header (one stop label per column from column 2 on), and a line
whose first column is a plain integer is one trip. Cells that are not times
(footnote markers, blanks, cross-route notes) are ignored.
"""

import csv
import datetime
import enum
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from busmap.core.name_resolver import NameResolver
from busmap.core.names import compact_key, strip_ordinal_prefix

logger = logging.getLogger(__name__)

WEEKDAY_MARKER = "weekday"
WEEKEND_MARKER = "weekend"
HEADER_MARKER = "round trip"
_TRIP_INDEX = re.compile(r"^\d+$")

DEFAULT_UPCOMING_LIMIT = 6


class ServiceDay(str, enum.Enum):
    WEEKDAY = "weekday"
    WEEKEND = "weekend"


@dataclass(frozen=True)
class ScheduleTime:
    label: str  # "HH:MM", zero padded
    seconds: int  # since midnight
    raw: str  # normalized token, used for de-duplication


@dataclass(frozen=True)
class Departure:
    label: str
    seconds: int
    raw: str
    is_next: bool = False


@dataclass
class UpcomingDepartures:
    service_day: ServiceDay
    departures: list[Departure] = field(default_factory=list)

    @property
    def service_ended(self) -> bool:
        return not self.departures


@dataclass
class RouteSchedule:
    weekday: dict[int, list[ScheduleTime]] = field(default_factory=dict)
    weekend: dict[int, list[ScheduleTime]] = field(default_factory=dict)
    stop_order: dict[ServiceDay, list[int]] = field(
        default_factory=lambda: {ServiceDay.WEEKDAY: [], ServiceDay.WEEKEND: []}
    )

    def times_for(self, service_day: ServiceDay) -> dict[int, list[ScheduleTime]]:
        return self.weekday if service_day == ServiceDay.WEEKDAY else self.weekend


TimeParser = Callable[[str], ScheduleTime | None]


def parse_time_value(value: str) -> ScheduleTime | None:
    """Parse 'HH:MM', 'HH.MM' or 'HH:MM:SS'. Returns None for anything else."""
    trimmed = (value or "").strip()
    if not trimmed:
        return None
    normalized = trimmed.replace(".", ":", 1)
    parts = normalized.split(":")
    if len(parts) not in (2, 3):
        return None
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        return None
    if any(n < 0 for n in numbers):
        return None

    hours, minutes = numbers[0], numbers[1]
    seconds = numbers[2] if len(numbers) == 3 else 0
    return ScheduleTime(
        label=f"{hours:02d}:{minutes:02d}",
        seconds=hours * 3600 + minutes * 60 + seconds,
        raw=normalized,
    )


def parse_annotated_time_value(value: str) -> ScheduleTime | None:
    """Like parse_time_value, but skips cross-route notes such as '→ Rute 3'."""
    if "→" in value or "rute" in value.lower():
        return None
    return parse_time_value(value)


def apply_alias(label: str, aliases: Mapping[str, str] | None) -> str:
    if not aliases:
        return label
    return aliases.get(compact_key(label), label)


def _resolve_header(
    header: list[str],
    resolver: NameResolver,
    aliases: Mapping[str, str] | None,
) -> list[int | None]:
    """Stop id per header column (index 0 is the trip-index column)."""
    column_ids: list[int | None] = [None]
    for label in header[1:]:
        stop_name = strip_ordinal_prefix(label)
        if not stop_name:
            column_ids.append(None)
            continue
        stop_id = resolver.resolve(apply_alias(stop_name, aliases))
        if stop_id is None:
            logger.debug("Schedule column %r did not resolve to a stop", label)
        column_ids.append(stop_id)
    return column_ids


def _stop_order(column_ids: list[int | None]) -> list[int]:
    return list(dict.fromkeys(sid for sid in column_ids if sid is not None))


def parse_schedule_csv(
    csv_text: str,
    resolver: NameResolver,
    *,
    aliases: Mapping[str, str] | None = None,
    time_parser: TimeParser = parse_time_value,
) -> RouteSchedule:
    """Parse one route's timecodes CSV. Never raises on malformed content."""
    schedule = RouteSchedule()
    aliases = {compact_key(k): v for k, v in (aliases or {}).items()}

    service: ServiceDay | None = None
    column_ids: list[int | None] = []
    trips = 0

    for columns in csv.reader(csv_text.splitlines()):
        columns = [c.strip() for c in columns]
        if not any(columns):
            continue
        first = columns[0].lower()

        if first.startswith(WEEKDAY_MARKER):
            service, column_ids = ServiceDay.WEEKDAY, []
            continue
        if first.startswith(WEEKEND_MARKER):
            service, column_ids = ServiceDay.WEEKEND, []
            continue
        if first.startswith(HEADER_MARKER):
            column_ids = _resolve_header(columns, resolver, aliases)
            if service is not None:
                schedule.stop_order[service] = _stop_order(column_ids)
            continue
        if service is None or not column_ids or not _TRIP_INDEX.match(columns[0]):
            continue

        trips += 1
        buckets = schedule.times_for(service)
        for index in range(1, min(len(columns), len(column_ids))):
            stop_id = column_ids[index]
            if stop_id is None:
                continue
            parsed = time_parser(columns[index])
            if parsed is None:
                continue
            buckets.setdefault(stop_id, []).append(parsed)

    for buckets in (schedule.weekday, schedule.weekend):
        for stop_id, times in buckets.items():
            unique = {t.raw: t for t in times}
            buckets[stop_id] = sorted(unique.values(), key=lambda t: t.seconds)

    # No weekend section: the route runs the weekday timetable every day
    if not schedule.stop_order[ServiceDay.WEEKEND] and schedule.stop_order[ServiceDay.WEEKDAY]:
        schedule.stop_order[ServiceDay.WEEKEND] = list(schedule.stop_order[ServiceDay.WEEKDAY])
        for stop_id, times in schedule.weekday.items():
            schedule.weekend.setdefault(stop_id, list(times))

    logger.debug(
        "Parsed schedule: %d trips, %d weekday stops, %d weekend stops",
        trips, len(schedule.weekday), len(schedule.weekend),
    )
    return schedule


def service_day_for(when: datetime.date) -> ServiceDay:
    return ServiceDay.WEEKEND if when.weekday() >= 5 else ServiceDay.WEEKDAY


def seconds_since_midnight(when: datetime.datetime) -> int:
    return when.hour * 3600 + when.minute * 60 + when.second


def stop_order_for_date(schedule: RouteSchedule | None, when: datetime.date) -> list[int]:
    if schedule is None:
        return []
    return list(schedule.stop_order.get(service_day_for(when), []))


def get_upcoming_departures(
    schedule: RouteSchedule | None,
    stop_id: int,
    now: datetime.datetime,
    limit: int = DEFAULT_UPCOMING_LIMIT,
) -> UpcomingDepartures | None:
    """Departures at or after `now` for today's service day.

    Returns None without a schedule. An empty result means service has ended
    for today; it never wraps to tomorrow's first departures.
    """
    if schedule is None:
        return None
    service = service_day_for(now)
    now_seconds = seconds_since_midnight(now)
    remaining = [t for t in schedule.times_for(service).get(stop_id, []) if t.seconds >= now_seconds]
    return UpcomingDepartures(
        service_day=service,
        departures=[
            Departure(label=t.label, seconds=t.seconds, raw=t.raw, is_next=(i == 0))
            for i, t in enumerate(remaining[:max(limit, 0)])
        ],
    )
