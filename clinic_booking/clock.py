"""Clock sources for clinic-local "now"."""
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo


class SystemClock:
    """
    Wall clock in the clinic's timezone.

    Returns naive datetimes expressed in clinic-local time, so they compare
    directly with appointment dates and times.
    """

    def __init__(self, timezone: str = "Africa/Cairo"):
        self.timezone = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.timezone).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock frozen at a given instant. Can be moved forward manually."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by timedelta(**kwargs)."""
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current
