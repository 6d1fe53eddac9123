"""
Shared test helpers.
"""

from datetime import date, datetime, time

from backend.app.core.timeutils import local_instant

# Fixed operational day used by time-sensitive tests (Lima is UTC-5, no DST)
TEST_TZ = "America/Lima"
WORKDAY = date(2025, 3, 10)


def lima(hour: int, minute: int = 0, day: date = WORKDAY) -> datetime:
    """UTC instant of a Lima wall-clock time on the test workday."""
    return local_instant(day, time(hour, minute), TEST_TZ)
