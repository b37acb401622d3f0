import itertools
from datetime import date, datetime

import pytest

from src.api.timeline import day_bounds, format_duration, reconstruct_timeline

_ids = itertools.count(1)


def log(ts, task_id=1, action="Updated Status", new_value=None):
    return {
        "id": next(_ids),
        "task_id": task_id,
        "action": action,
        "field_changed": "status" if action == "Updated Status" else None,
        "old_value": None,
        "new_value": new_value,
        "performed_by": "Nemo",
        "performed_by_id": 1,
        "timestamp": ts,
    }


def at(hour, minute=0, second=0):
    return datetime(2025, 3, 10, hour, minute, second)


TITLES = {1: "Fix login", 2: "Write report"}


class TestFormatDuration:
    @pytest.mark.parametrize(
        "minutes,expected",
        [
            (0, "less than a minute"),
            (1, "1m"),
            (45, "45m"),
            (59, "59m"),
            (60, "1h"),
            (61, "1h 1m"),
            (135, "2h 15m"),
            (180, "3h"),
        ],
    )
    def test_format(self, minutes, expected):
        assert format_duration(minutes) == expected


class TestSessions:
    def test_start_then_finish_reports_duration(self):
        timeline = reconstruct_timeline(
            [log(at(9), new_value="Working on it"), log(at(9, 45), new_value="Finished")],
            TITLES,
        )
        assert [(e.time, e.label, e.kind) for e in timeline] == [
            ("9:00 AM", 'Started working on "Fix login"', "start"),
            ("9:45 AM", 'Finished "Fix login" (Duration: 45m)', "finish"),
        ]

    def test_finish_without_start_has_no_duration(self):
        timeline = reconstruct_timeline([log(at(14), new_value="Finished")], TITLES)
        assert timeline[0].label == 'Finished "Fix login"'
        assert timeline[0].time == "2:00 PM"

    def test_pause_and_review_report_active_time(self):
        timeline = reconstruct_timeline(
            [
                log(at(9), new_value="Working on it"),
                log(at(10, 30), new_value="Pause for something else"),
                log(at(11), new_value="Working on it"),
                log(at(11, 20), new_value="Waiting for review"),
            ],
            TITLES,
        )
        assert [e.label for e in timeline] == [
            'Started working on "Fix login"',
            'Paused "Fix login" (Active: 1h 30m)',
            'Started working on "Fix login"',
            'Sent "Fix login" for review (Active: 20m)',
        ]
        assert [e.kind for e in timeline] == ["start", "pause", "start", "review"]

    def test_closed_session_does_not_carry_over(self):
        timeline = reconstruct_timeline(
            [
                log(at(9), new_value="Working on it"),
                log(at(9, 10), new_value="Pause for something else"),
                log(at(12), new_value="Finished"),
            ],
            TITLES,
        )
        assert timeline[2].label == 'Finished "Fix login"'

    def test_restart_overwrites_open_session(self):
        timeline = reconstruct_timeline(
            [
                log(at(9), new_value="Working on it"),
                log(at(10), new_value="Working on it"),
                log(at(10, 5), new_value="Finished"),
            ],
            TITLES,
        )
        assert timeline[2].label == 'Finished "Fix login" (Duration: 5m)'

    def test_sessions_are_tracked_per_task(self):
        timeline = reconstruct_timeline(
            [
                log(at(9), task_id=1, new_value="Working on it"),
                log(at(9, 30), task_id=2, new_value="Working on it"),
                log(at(10), task_id=1, new_value="Finished"),
                log(at(10, 0, 30), task_id=2, new_value="Finished"),
            ],
            TITLES,
        )
        assert timeline[2].label == 'Finished "Fix login" (Duration: 1h)'
        assert timeline[3].label == 'Finished "Write report" (Duration: 30m)'

    def test_short_session_floors_to_less_than_a_minute(self):
        timeline = reconstruct_timeline(
            [log(at(9), new_value="Working on it"), log(at(9, 0, 59), new_value="Finished")],
            TITLES,
        )
        assert timeline[1].label == 'Finished "Fix login" (Duration: less than a minute)'

    def test_each_call_starts_with_no_open_sessions(self):
        reconstruct_timeline([log(at(9), new_value="Working on it")], TITLES)
        timeline = reconstruct_timeline([log(at(9, 30), new_value="Finished")], TITLES)
        assert timeline[0].label == 'Finished "Fix login"'


class TestOtherEntries:
    def test_other_status_is_generic_and_keeps_session(self):
        timeline = reconstruct_timeline(
            [
                log(at(9), new_value="Working on it"),
                log(at(9, 15), new_value="Cancelled"),
                log(at(9, 30), new_value="Finished"),
            ],
            TITLES,
        )
        assert timeline[1].label == 'Changed "Fix login" status to "Cancelled"'
        assert timeline[1].kind == "status"
        assert timeline[2].label == 'Finished "Fix login" (Duration: 30m)'

    def test_non_status_actions(self):
        timeline = reconstruct_timeline(
            [
                log(at(8), action="Created", new_value="Fix login"),
                log(at(8, 5), task_id=42, action="Added Comment", new_value="hi"),
            ],
            TITLES,
        )
        assert [e.label for e in timeline] == [
            'Created: "Fix login"',
            'Added Comment: "Unknown Task"',
        ]
        assert all(e.kind == "other" and e.status is None for e in timeline)

    def test_afternoon_and_midnight_clock_format(self):
        timeline = reconstruct_timeline(
            [log(at(0, 5), action="Created"), log(at(12, 7), action="Trashed"), log(at(23, 59), action="Restored")],
            TITLES,
        )
        assert [e.time for e in timeline] == ["12:05 AM", "12:07 PM", "11:59 PM"]


def test_day_bounds_are_half_open():
    start, end = day_bounds(date(2025, 3, 10))
    assert start == datetime(2025, 3, 10, 0, 0, 0)
    assert end == datetime(2025, 3, 11, 0, 0, 0)
    assert start <= datetime(2025, 3, 10, 23, 59, 59, 999999) < end
