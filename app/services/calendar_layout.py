"""
Month grid and event-bar layout.

A month is shown as Sunday-first weeks. Within a week every event is drawn
as a bar spanning the days it covers; bars are stacked into rows so that two
events sharing a day of the week never share a row.
"""

from collections.abc import Iterable
from datetime import date, timedelta
from typing import Any

from app.core.reminders import as_date

EVENT_COLORS = (
    "#3b82f6",
    "#ef4444",
    "#10b981",
    "#f59e0b",
    "#8b5cf6",
    "#ec4899",
    "#14b8a6",
    "#f97316",
)

MAX_VISIBLE_PER_DAY = 3


def event_color(event_id: Any, palette: tuple[str, ...] = EVENT_COLORS) -> str:
    """Deterministic palette color: sum of character codes of the id."""
    return palette[sum(ord(c) for c in str(event_id)) % len(palette)]


def month_grid(year: int, month: int) -> list[list[date]]:
    """
    Sunday-first weeks covering a month.

    Args:
        year: Calendar year
        month: Month number, 1-12

    Returns:
        Weeks of seven dates, from the Sunday on or before the 1st to the
        Saturday on or after the last day of the month
    """
    first = date(year, month, 1)
    next_month = date(year + month // 12, month % 12 + 1, 1)
    last = next_month - timedelta(days=1)

    # weekday(): Monday=0 ... Sunday=6
    start = first - timedelta(days=(first.weekday() + 1) % 7)
    end = last + timedelta(days=(5 - last.weekday()) % 7)

    weeks = []
    day = start
    while day <= end:
        weeks.append([day + timedelta(days=i) for i in range(7)])
        day += timedelta(days=7)
    return weeks


def _span(event: dict[str, Any]) -> tuple[date, date]:
    start = as_date(event["start_date"])
    end = as_date(event.get("end_date") or event["start_date"])
    return start, max(start, end)


def layout_week(events: Iterable[dict[str, Any]], week_days: list[date]) -> list[dict[str, Any]]:
    """
    Place the events intersecting a week into non-overlapping rows.

    Events are taken in start-date order (longer events first on ties),
    clipped to the week and put in the first row whose placements do not
    cover any of the same days.

    Args:
        events: Event rows with ``id``, ``title``, ``start_date``, ``end_date``
        week_days: The seven days of the week

    Returns:
        Placements with ``row``, ``start_index`` and ``end_index`` (0-6)
    """
    week_start, week_end = week_days[0], week_days[-1]

    visible = []
    for event in events:
        start, end = _span(event)
        if start <= week_end and end >= week_start:
            visible.append((start, end, event))
    visible.sort(key=lambda item: (item[0], -(item[1] - item[0]).days, str(item[2].get("id"))))

    rows: list[list[tuple[int, int]]] = []
    placements = []

    for start, end, event in visible:
        start_index = max((start - week_start).days, 0)
        end_index = min((end - week_start).days, 6)

        row = 0
        while row < len(rows) and any(
            start_index <= taken_end and end_index >= taken_start
            for taken_start, taken_end in rows[row]
        ):
            row += 1
        if row == len(rows):
            rows.append([])
        rows[row].append((start_index, end_index))

        placements.append(
            {
                "event_id": event["id"],
                "title": event["title"],
                "color": event.get("color") or event_color(event["id"]),
                "row": row,
                "start_index": start_index,
                "end_index": end_index,
                "continues_before": start < week_start,
                "continues_after": end > week_end,
            }
        )

    return placements


def events_on_day(
    events: Iterable[dict[str, Any]],
    day: date,
    max_visible: int = MAX_VISIBLE_PER_DAY,
) -> tuple[list[dict[str, Any]], int]:
    """
    Events covering a day, capped for display.

    Returns:
        Visible events and the number hidden behind a "+N more" marker
    """
    covering = [e for e in events if _span(e)[0] <= day <= _span(e)[1]]
    covering.sort(key=lambda e: (as_date(e["start_date"]), str(e.get("time") or "")))
    return covering[:max_visible], max(len(covering) - max_visible, 0)


def build_month(year: int, month: int, events: list[dict[str, Any]]) -> dict[str, Any]:
    """Month grid with per-week placements, shaped for ``CalendarMonthResponse``."""
    weeks = []
    for week_days in month_grid(year, month):
        placements = layout_week(events, week_days)
        weeks.append(
            {
                "days": week_days,
                "placements": placements,
                "row_count": max((p["row"] for p in placements), default=-1) + 1,
            }
        )
    return {"year": year, "month": month, "weeks": weeks}
