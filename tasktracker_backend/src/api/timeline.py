"""
Daily activity timeline built by replaying one user's audit entries.

A work session opens when a task's status becomes 'Working on it' and
closes at the next 'Finished', 'Pause for something else' or 'Waiting for
review' entry for that task. Only entries from the requested day are
replayed, so a session opened on an earlier day never yields a duration.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from .models import AuditLogEntity

STATUS_ACTION = "Updated Status"
WORKING = "Working on it"
UNKNOWN_TASK = "Unknown Task"


class _Closing(NamedTuple):
    template: str
    duration_label: str
    kind: str


# Statuses that end an open session, with how their line reads.
_CLOSING_STATUSES: Dict[str, _Closing] = {
    "Finished": _Closing('Finished "{title}"', "Duration", "finish"),
    "Pause for something else": _Closing('Paused "{title}"', "Active", "pause"),
    "Waiting for review": _Closing('Sent "{title}" for review', "Active", "review"),
}


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class TimelineEntry:
    time: str
    label: str
    kind: str
    status: Optional[str]
    task_id: int
    timestamp: datetime


# PUBLIC_INTERFACE
def format_duration(minutes: int) -> str:
    """
    Render whole minutes: 'less than a minute', '45m', '2h' or '2h 5m'.
    """
    if minutes < 1:
        return "less than a minute"
    if minutes < 60:
        return f"{minutes}m"
    hours, remaining = divmod(minutes, 60)
    return f"{hours}h {remaining}m" if remaining else f"{hours}h"


# PUBLIC_INTERFACE
def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """
    Local bounds of a calendar day as a half-open range: midnight, and the
    following midnight which is not part of the day.
    """
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _clock_time(ts: datetime) -> str:
    hour = ts.hour % 12 or 12
    return f"{hour}:{ts.minute:02d} {'AM' if ts.hour < 12 else 'PM'}"


def _elapsed_minutes(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


# PUBLIC_INTERFACE
def reconstruct_timeline(
    entries: Iterable[AuditLogEntity],
    task_titles: Mapping[int, str],
) -> List[TimelineEntry]:
    """
    Replay audit entries (oldest first) into timeline lines.

    Args:
        entries: One user's entries for one day, ascending by timestamp.
        task_titles: Current titles by task id; missing ids read 'Unknown Task'.

    Returns:
        One TimelineEntry per audit entry, in the same order.
    """
    sessions: Dict[int, datetime] = {}
    timeline: List[TimelineEntry] = []

    for entry in entries:
        task_id = entry["task_id"]
        title = task_titles.get(task_id) or UNKNOWN_TASK
        ts = entry["timestamp"]
        status = entry["new_value"] if entry["action"] == STATUS_ACTION else None

        if not status:
            label, kind = f'{entry["action"]}: "{title}"', "other"
        elif status == WORKING:
            sessions[task_id] = ts
            label, kind = f'Started working on "{title}"', "start"
        elif status in _CLOSING_STATUSES:
            closing = _CLOSING_STATUSES[status]
            label, kind = closing.template.format(title=title), closing.kind
            started = sessions.pop(task_id, None)
            if started is not None:
                duration = format_duration(_elapsed_minutes(started, ts))
                label = f"{label} ({closing.duration_label}: {duration})"
        else:
            label, kind = f'Changed "{title}" status to "{status}"', "status"

        timeline.append(
            TimelineEntry(
                time=_clock_time(ts),
                label=label,
                kind=kind,
                status=status or None,
                task_id=task_id,
                timestamp=ts,
            )
        )

    return timeline
