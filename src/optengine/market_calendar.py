"""
NYSE Market Calendar

Trading days, regular session hours, minutes-to-close and days-to-expiration
at market-close granularity.

All times are naive exchange-local (ET) datetimes, matching the rest of the
engine which uses datetime.now() for timestamps.

Usage:
    from optengine.market_calendar import MarketCalendar

    cal = MarketCalendar()

    if cal.is_market_open():
        print(f"{cal.minutes_to_close():.0f} minutes to the bell")

    dte = cal.days_to_expiration(date(2026, 11, 20))
"""

import math
from datetime import date, datetime, time, timedelta
from typing import Optional

from optengine.models.contracts import parse_date


class MarketCalendar:
    """
    NYSE trading calendar with holidays and regular session hours.

    **Trading Hours:**
    - Regular Session: 9:30 AM - 4:00 PM ET

    **DTE convention:**
    Both the reference instant and the expiration are pinned to the 4:00 PM
    close before differencing, so partial days never round a contract into
    an extra (or missing) day. Result is floored at zero.
    """

    MARKET_OPEN = time(9, 30)    # 9:30 AM ET
    MARKET_CLOSE = time(16, 0)   # 4:00 PM ET

    HOLIDAYS = frozenset([
        # 2026
        date(2026, 1, 1),    # New Year's Day
        date(2026, 1, 19),   # MLK Day
        date(2026, 2, 16),   # Washington's Birthday
        date(2026, 4, 3),    # Good Friday
        date(2026, 5, 25),   # Memorial Day
        date(2026, 6, 19),   # Juneteenth
        date(2026, 7, 3),    # Independence Day (observed)
        date(2026, 9, 7),    # Labor Day
        date(2026, 11, 26),  # Thanksgiving
        date(2026, 12, 25),  # Christmas
        # 2027
        date(2027, 1, 1),    # New Year's Day
        date(2027, 1, 18),   # MLK Day
        date(2027, 2, 15),   # Washington's Birthday
        date(2027, 3, 26),   # Good Friday
        date(2027, 5, 31),   # Memorial Day
        date(2027, 6, 18),   # Juneteenth (observed)
        date(2027, 7, 5),    # Independence Day (observed)
        date(2027, 9, 6),    # Labor Day
        date(2027, 11, 25),  # Thanksgiving
        date(2027, 12, 24),  # Christmas (observed)
    ])

    def __init__(self, market_open: time = MARKET_OPEN, market_close: time = MARKET_CLOSE):
        """
        Initialize calendar.

        Args:
            market_open: Regular session open (default 9:30)
            market_close: Regular session close (default 16:00)
        """
        self.market_open = market_open
        self.market_close = market_close

    def is_trading_day(self, check_date: Optional[date] = None) -> bool:
        """
        Check if a date is a trading day (weekday and not a holiday).

        Args:
            check_date: Date to check (default: today)
        """
        if check_date is None:
            check_date = date.today()

        if check_date.weekday() >= 5:
            return False

        return check_date not in self.HOLIDAYS

    def is_market_open(self, check_time: Optional[datetime] = None) -> bool:
        """
        Check if the regular session is open.

        Args:
            check_time: Time to check (default: now)
        """
        if check_time is None:
            check_time = datetime.now()

        if not self.is_trading_day(check_time.date()):
            return False

        return self.market_open <= check_time.time() < self.market_close

    def close_time(self, on: date) -> datetime:
        """Return the session close instant for a date."""
        return datetime.combine(on, self.market_close)

    def minutes_to_close(self, check_time: Optional[datetime] = None) -> float:
        """
        Minutes until today's close (negative after the bell).

        Args:
            check_time: Time to check (default: now)
        """
        if check_time is None:
            check_time = datetime.now()

        delta = self.close_time(check_time.date()) - check_time
        return delta.total_seconds() / 60

    def days_to_expiration(self, expiration, now: Optional[datetime] = None) -> int:
        """
        Calendar days to expiration, both ends pinned to market close.

        Args:
            expiration: Expiration as date, datetime or ISO string
            now: Reference instant (default: now)

        Returns:
            Non-negative whole days
        """
        if now is None:
            now = datetime.now()

        expiry_close = self.close_time(parse_date(expiration))
        reference_close = self.close_time(now.date())

        days = math.ceil((expiry_close - reference_close) / timedelta(days=1))
        return max(0, days)
