"""
Tool: Holiday Calendar
Purpose: Workday checks for slot search

Weekends are never workdays. Public holidays come from configuration; the
built-in list covers Japanese public holidays for 2025 and 2026 and is
replaced wholesale when the user configures `holidays`.
"""

from collections.abc import Iterable
from datetime import date


DEFAULT_HOLIDAYS: tuple[date, ...] = tuple(
    date.fromisoformat(d)
    for d in [
        # 2025
        "2025-01-01",
        "2025-01-13",
        "2025-02-11",
        "2025-02-23",
        "2025-02-24",
        "2025-03-20",
        "2025-04-29",
        "2025-05-03",
        "2025-05-04",
        "2025-05-05",
        "2025-05-06",
        "2025-07-21",
        "2025-08-11",
        "2025-09-15",
        "2025-09-23",
        "2025-10-13",
        "2025-11-03",
        "2025-11-23",
        "2025-11-24",
        # 2026
        "2026-01-01",
        "2026-01-12",
        "2026-02-11",
        "2026-02-23",
        "2026-03-20",
        "2026-04-29",
        "2026-05-03",
        "2026-05-04",
        "2026-05-05",
        "2026-05-06",
        "2026-07-20",
        "2026-08-11",
        "2026-09-21",
        "2026-09-22",
        "2026-09-23",
        "2026-10-12",
        "2026-11-03",
        "2026-11-23",
    ]
)


def is_holiday(day: date, holidays: Iterable[date] = DEFAULT_HOLIDAYS) -> bool:
    return day in set(holidays)


def is_workday(day: date, holidays: Iterable[date] = DEFAULT_HOLIDAYS) -> bool:
    """True for Monday-Friday dates that are not configured holidays."""
    if day.weekday() >= 5:
        return False
    return not is_holiday(day, holidays)
