"""Tests for the timecodes CSV parser and the upcoming-departures query."""

import datetime

from busmap.core.name_resolver import PairwiseNameResolver
from busmap.core.schedule_parser import (
    ServiceDay,
    get_upcoming_departures,
    parse_annotated_time_value,
    parse_schedule_csv,
    parse_time_value,
    service_day_for,
    stop_order_for_date,
)
from busmap.core.stop_registry import MatchQuality, Stop, StopRegistry

MONDAY = datetime.date(2026, 3, 2)
SATURDAY = datetime.date(2026, 3, 7)

CSV = """Weekdays,,,,
Round trip,1. Nuuk Center,2. Qernertunnguit,3. Tuujuk,4. Unknown Place
1,06:30,06.34,06:38,06:40
2,07:00,07.04,*,07:10
3,06:30,06:50,06:55,
Weekends,,,,
Round trip,1. Tuujuk,2. Nuuk Center
1,10:00,10:15
2,11:00,11:15
"""


def make_resolver(threshold: float = 0.74) -> PairwiseNameResolver:
    stops = [
        Stop(id=1, name="Nuuk Center", coordinates=(64.176, -51.737), match_quality=MatchQuality.EXACT),
        Stop(id=2, name="Qernertunnguit", coordinates=(64.179, -51.725), match_quality=MatchQuality.EXACT),
        Stop(id=3, name="Tuujuk", coordinates=(64.172, -51.735), match_quality=MatchQuality.EXACT),
        Stop(id=4, name="Qatserisut", coordinates=(64.181, -51.716), match_quality=MatchQuality.EXACT),
    ]
    return PairwiseNameResolver(StopRegistry(stops), threshold=threshold)


def at(day: datetime.date, hour: int, minute: int, second: int = 0) -> datetime.datetime:
    return datetime.datetime.combine(day, datetime.time(hour, minute, second))


def test_parse_time_value():
    assert parse_time_value("06:30").seconds == 6 * 3600 + 30 * 60
    assert parse_time_value("06.30").label == "06:30"
    assert parse_time_value("6:5").label == "06:05"
    assert parse_time_value("06:30:15").seconds == 6 * 3600 + 30 * 60 + 15
    assert parse_time_value(" 24:10 ").label == "24:10"


def test_parse_time_value_rejects_non_times():
    for raw in ["", "*", "abc", "06", "1:2:3:4", "-1:00", "6:xx"]:
        assert parse_time_value(raw) is None, raw


def test_annotated_time_value_skips_route_notes():
    assert parse_annotated_time_value("→ Rute 3") is None
    assert parse_annotated_time_value("Rute 3") is None
    assert parse_annotated_time_value("07:15").label == "07:15"


def test_stop_order_per_service_day():
    schedule = parse_schedule_csv(CSV, make_resolver())
    assert schedule.stop_order[ServiceDay.WEEKDAY] == [1, 2, 3]
    assert schedule.stop_order[ServiceDay.WEEKEND] == [3, 1]


def test_times_are_sorted_and_deduplicated():
    schedule = parse_schedule_csv(CSV, make_resolver())
    assert [t.label for t in schedule.weekday[1]] == ["06:30", "07:00"]
    assert [t.label for t in schedule.weekday[2]] == ["06:34", "06:50", "07:04"]
    # "*" is not a time
    assert [t.label for t in schedule.weekday[3]] == ["06:38", "06:55"]
    for times in schedule.weekday.values():
        seconds = [t.seconds for t in times]
        assert seconds == sorted(seconds)
        assert len({t.raw for t in times}) == len(times)


def test_unresolved_columns_are_dropped():
    schedule = parse_schedule_csv(CSV, make_resolver())
    assert set(schedule.weekday) == {1, 2, 3}


def test_duplicate_header_columns_appear_once_in_order():
    text = "Weekdays\nRound trip,1. Nuuk Center,2. Tuujuk,3. Nuuk Center\n1,06:00,06:10,06:20\n"
    schedule = parse_schedule_csv(text, make_resolver())
    assert schedule.stop_order[ServiceDay.WEEKDAY] == [1, 3]
    assert [t.label for t in schedule.weekday[1]] == ["06:00", "06:20"]


def test_weekend_falls_back_to_weekday():
    text = "Weekdays\nRound trip,1. Nuuk Center,2. Tuujuk\n1,06:00,06:10\n"
    schedule = parse_schedule_csv(text, make_resolver())
    assert schedule.stop_order[ServiceDay.WEEKEND] == [1, 3]
    assert [t.label for t in schedule.weekend[3]] == ["06:10"]


def test_alias_applied_before_resolution():
    text = "Weekdays\nRound trip,1. Qatseritsut\n1,08:00\n"
    strict = make_resolver(threshold=0.99)
    assert parse_schedule_csv(text, strict).stop_order[ServiceDay.WEEKDAY] == []

    schedule = parse_schedule_csv(text, strict, aliases={"qatseritsut": "qatserisut"})
    assert schedule.stop_order[ServiceDay.WEEKDAY] == [4]


def test_custom_time_parser():
    text = "Weekdays\nRound trip,1. Nuuk Center,2. Tuujuk\n1,06:00,→ Rute 3\n2,07:00,07:20\n"
    schedule = parse_schedule_csv(text, make_resolver(), time_parser=parse_annotated_time_value)
    assert [t.label for t in schedule.weekday[3]] == ["07:20"]


def test_malformed_content_never_raises():
    text = '1,06:00\nnonsense,,\n\n,,,\nRound trip,Nuuk Center\nWeekdays\n1,05:00\n'
    schedule = parse_schedule_csv(text, make_resolver())
    # Trip rows before a section or header are ignored
    assert schedule.weekday == {}


def test_service_day_for():
    assert service_day_for(MONDAY) == ServiceDay.WEEKDAY
    assert service_day_for(SATURDAY) == ServiceDay.WEEKEND


def test_stop_order_for_date():
    schedule = parse_schedule_csv(CSV, make_resolver())
    assert stop_order_for_date(schedule, MONDAY) == [1, 2, 3]
    assert stop_order_for_date(schedule, SATURDAY) == [3, 1]
    assert stop_order_for_date(None, MONDAY) == []


def test_upcoming_departures():
    schedule = parse_schedule_csv(CSV, make_resolver())
    upcoming = get_upcoming_departures(schedule, 2, at(MONDAY, 6, 40))
    assert upcoming.service_day == ServiceDay.WEEKDAY
    assert [d.label for d in upcoming.departures] == ["06:50", "07:04"]
    assert [d.is_next for d in upcoming.departures] == [True, False]
    assert not upcoming.service_ended


def test_upcoming_departures_includes_current_minute():
    schedule = parse_schedule_csv(CSV, make_resolver())
    upcoming = get_upcoming_departures(schedule, 2, at(MONDAY, 6, 50))
    assert upcoming.departures[0].label == "06:50"


def test_upcoming_departures_limit():
    schedule = parse_schedule_csv(CSV, make_resolver())
    upcoming = get_upcoming_departures(schedule, 2, at(MONDAY, 6, 0), limit=2)
    assert [d.label for d in upcoming.departures] == ["06:34", "06:50"]


def test_upcoming_departures_after_last_trip():
    schedule = parse_schedule_csv(CSV, make_resolver())
    upcoming = get_upcoming_departures(schedule, 2, at(MONDAY, 23, 0))
    assert upcoming.departures == []
    assert upcoming.service_ended


def test_upcoming_departures_uses_weekend_table():
    schedule = parse_schedule_csv(CSV, make_resolver())
    upcoming = get_upcoming_departures(schedule, 3, at(SATURDAY, 9, 0))
    assert upcoming.service_day == ServiceDay.WEEKEND
    assert [d.label for d in upcoming.departures] == ["10:00", "11:00"]


def test_upcoming_departures_without_schedule():
    assert get_upcoming_departures(None, 1, at(MONDAY, 6, 0)) is None


def make_ab_resolver() -> PairwiseNameResolver:
    stops = [
        Stop(id=10, name="A", coordinates=(64.17, -51.74), match_quality=MatchQuality.EXACT),
        Stop(id=20, name="B", coordinates=(64.18, -51.73), match_quality=MatchQuality.EXACT),
    ]
    return PairwiseNameResolver(StopRegistry(stops))


def test_single_trip_round_trip():
    csv_text = 'Weekdays\n"Round trip","1. A","2. B"\n"1","08:00","08.15"\n'
    schedule = parse_schedule_csv(csv_text, make_ab_resolver())
    assert [(t.label, t.seconds) for t in schedule.weekday[10]] == [("08:00", 28800)]
    assert [(t.label, t.seconds) for t in schedule.weekday[20]] == [("08:15", 29700)]
    assert schedule.stop_order[ServiceDay.WEEKDAY] == [10, 20]


def test_last_departure_boundary():
    csv_text = "Weekdays\nRound trip,1. A\n1,08:00\n2,08:15\n"
    schedule = parse_schedule_csv(csv_text, make_ab_resolver())
    assert [t.seconds for t in schedule.weekday[10]] == [28800, 29700]

    at_last = get_upcoming_departures(schedule, 10, at(MONDAY, 8, 15, 0))
    assert [(d.seconds, d.is_next) for d in at_last.departures] == [(29700, True)]
    assert not at_last.service_ended

    after_last = get_upcoming_departures(schedule, 10, at(MONDAY, 8, 15, 1))
    assert after_last.departures == []
    assert after_last.service_ended
