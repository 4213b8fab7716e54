"""
Sleep until the daily booking window opens.

The cron trigger starts the bot a little before the window, so a single
sleep for the remaining time is enough.
"""

import asyncio
from datetime import datetime

import pytz


def seconds_until_open(now: datetime, open_hour: int, open_minute: int, tz=None) -> float:
    """
    Seconds from now until open_hour:open_minute today

    Returns 0.0 when that time has already passed, the window is open then.
    With a pytz tz the opening time gets that zone's UTC offset for its own
    wall-clock time, which differs from now's offset across a DST switch.
    """
    if tz is None:
        target = now.replace(hour=open_hour, minute=open_minute, second=0, microsecond=0)
    else:
        now = now.astimezone(tz) if now.tzinfo else tz.localize(now)
        target = tz.localize(now.replace(tzinfo=None, hour=open_hour, minute=open_minute,
                                         second=0, microsecond=0))
    if now >= target:
        return 0.0
    return (target - now).total_seconds()


class WindowScheduler:
    def __init__(self, timezone: str, clock=None, sleep=asyncio.sleep):
        self.tz = pytz.timezone(timezone)
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.sleep = sleep

    async def wait_until_open(self, open_hour: int, open_minute: int) -> float:
        """
        Suspend until the booking window opens

        Args:
            open_hour: Hour the window opens (booking timezone)
            open_minute: Minute the window opens

        Returns:
            Number of seconds slept
        """
        now = self.clock()
        delay = seconds_until_open(now, open_hour, open_minute, tz=self.tz)
        if delay <= 0:
            print(f"🔓 Booking window {open_hour:02d}:{open_minute:02d} already open at {now.strftime('%H:%M:%S')}")
            return 0.0

        print(f"⏳ [{now.strftime('%H:%M:%S.%f')[:-3]}] Waiting {delay:.1f}s for booking window "
              f"{open_hour:02d}:{open_minute:02d} {self.tz.zone}")
        await self.sleep(delay)
        print(f"🔓 [{self.clock().strftime('%H:%M:%S.%f')[:-3]}] Booking window open")
        return delay
