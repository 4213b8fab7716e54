"""
Configuration for the sports booking bot

Settings come from environment variables (optionally loaded from a .env file)
and are frozen into a BookingConfig that is handed to the bot at construction.
Reservations are read from a CSV file or, for a single booking, from the
CATEGORY / TIMESLOT / DAY_OF_WEEK variables.
"""

import csv
import os
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DAY_NAMES = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']

DEFAULT_PORTAL_URL = 'https://tilburguniversity.sports.delcom.nl/pages/login'


def parse_time(value: str) -> tuple[int, int]:
    """
    Parse an 'HH:MM' string into an (hour, minute) tuple

    Raises:
        ValueError: if the string is not a valid 24-hour time
    """
    parts = (value or '').strip().split(':')
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise ValueError(f"Invalid time '{value}' (must be HH:MM)")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time '{value}' (must be HH:MM)")
    return hour, minute


def parse_day(value: Optional[str]) -> Optional[int]:
    """Map a day name ('monday'..'sunday') to 0-6, or None when blank"""
    if value is None or not value.strip():
        return None
    day = value.strip().lower()
    if day not in DAY_NAMES:
        raise ValueError(f"Invalid day '{value}'. Expected one of {', '.join(DAY_NAMES)}.")
    return DAY_NAMES.index(day)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    return raw.strip().lower() == 'true'


@dataclass(frozen=True)
class ReservationRequest:
    """A single slot to book: category label, start time and target day"""
    category: str
    timeslot: str
    day_of_week: Optional[int] = None
    days_ahead: Optional[int] = None

    def describe(self) -> str:
        if self.day_of_week is not None:
            day = DAY_NAMES[self.day_of_week].title()
        elif self.days_ahead is not None:
            day = f"+{self.days_ahead} days"
        else:
            day = "lead day"
        return f"{self.category} at {self.timeslot} ({day})"


def reservation_date(request: ReservationRequest, today: date, lead_days: int) -> str:
    """
    Work out the calendar date to book for a request

    Args:
        request: Reservation being booked
        today: Current calendar day in the booking timezone
        lead_days: Default number of days ahead when the request names no day

    Returns:
        Date formatted as YYYY-MM-DD
    """
    if request.day_of_week is not None:
        # Next occurrence strictly after today; same weekday means one week ahead
        offset = (request.day_of_week - today.weekday()) % 7 or 7
    elif request.days_ahead is not None:
        offset = request.days_ahead
    else:
        offset = lead_days
    return (today + timedelta(days=offset)).strftime('%Y-%m-%d')


@dataclass(frozen=True)
class BookingConfig:
    portal_url: str = DEFAULT_PORTAL_URL
    identity_provider: str = 'Tilburg University'
    identity_provider_host: str = 'login.microsoftonline.com'
    timezone: str = 'Europe/Amsterdam'
    open_hour: int = 8
    open_minute: int = 0
    lead_days: int = 7
    headless: bool = True
    dev_mode: bool = False
    skip_wait: bool = False
    selector_timeout_ms: int = 30000
    slot_timeout_ms: int = 10000
    confirm_timeout_ms: int = 5000
    network_idle_timeout_ms: int = 15000
    consent_timeout_ms: int = 5000
    filter_settle_ms: int = 5000
    date_settle_ms: int = 2000
    screenshots_dir: Path = Path('screenshots')
    artifact_bucket: Optional[str] = None
    artifact_prefix: str = 'failures/'
    secret_source: str = 'env'

    @classmethod
    def from_env(cls, **overrides) -> 'BookingConfig':
        """
        Build the configuration from environment variables

        Args:
            **overrides: Field values that take precedence over the environment
                (used by the command line flags)

        Returns:
            A frozen BookingConfig
        """
        open_hour, open_minute = parse_time(os.getenv('BOOKING_OPEN_TIME', '08:00'))
        secret_source = os.getenv('SECRET_SOURCE', 'env').strip().lower()
        if secret_source not in ('env', 'aws'):
            raise ValueError(f"SECRET_SOURCE must be 'env' or 'aws', got '{secret_source}'")

        values = dict(
            portal_url=os.getenv('PORTAL_URL') or DEFAULT_PORTAL_URL,
            identity_provider=os.getenv('IDENTITY_PROVIDER') or 'Tilburg University',
            identity_provider_host=os.getenv('IDENTITY_PROVIDER_HOST') or 'login.microsoftonline.com',
            timezone=os.getenv('BOOKING_TIMEZONE') or 'Europe/Amsterdam',
            open_hour=open_hour,
            open_minute=open_minute,
            lead_days=_env_int('BOOKING_LEAD_DAYS', 7),
            headless=_env_bool('HEADLESS', True),
            dev_mode=_env_bool('DEV_MODE', False),
            skip_wait=_env_bool('SKIP_WINDOW_WAIT', False),
            selector_timeout_ms=_env_int('SELECTOR_TIMEOUT_MS', 30000),
            slot_timeout_ms=_env_int('SLOT_TIMEOUT_MS', 10000),
            confirm_timeout_ms=_env_int('CONFIRM_TIMEOUT_MS', 5000),
            network_idle_timeout_ms=_env_int('NETWORK_IDLE_TIMEOUT_MS', 15000),
            consent_timeout_ms=_env_int('CONSENT_TIMEOUT_MS', 5000),
            filter_settle_ms=_env_int('FILTER_SETTLE_MS', 5000),
            date_settle_ms=_env_int('DATE_SETTLE_MS', 2000),
            screenshots_dir=Path(os.getenv('SCREENSHOTS_DIR') or 'screenshots'),
            artifact_bucket=os.getenv('ARTIFACT_S3_BUCKET') or None,
            artifact_prefix=os.getenv('ARTIFACT_S3_PREFIX', 'failures/'),
            secret_source=secret_source,
        )
        values.update(overrides)
        return cls(**values)


def parse_reservations(content: str) -> list[ReservationRequest]:
    """
    Parse reservations from CSV text

    Expected header: category,timeslot,day_of_week (day_of_week may be blank).
    Comment lines starting with '#' and blank lines are ignored; invalid rows
    are skipped with a warning.

    Args:
        content: CSV content as string

    Returns:
        Reservations in file order
    """
    lines = []
    for line in content.split('\n'):
        line = line.strip()
        if line and not line.startswith('#'):
            lines.append(line)

    if not lines:
        print("Reservation file is empty or contains only comments")
        return []

    reservations = []
    for row_num, row in enumerate(csv.DictReader(lines), start=2):  # Start at 2 because of header
        category = (row.get('category') or '').strip()
        timeslot = (row.get('timeslot') or '').strip()

        if not category or not timeslot:
            print(f"Skipping incomplete row {row_num}: {row}")
            continue

        try:
            parse_time(timeslot)
            day_of_week = parse_day(row.get('day_of_week'))
        except ValueError as e:
            print(f"Skipping row {row_num}: {e}")
            continue

        reservations.append(ReservationRequest(category=category, timeslot=timeslot,
                                               day_of_week=day_of_week))

    print(f"Loaded {len(reservations)} valid reservations")
    return reservations


def load_reservations() -> list[ReservationRequest]:
    """
    Load the ordered reservation list for this run

    Reads RESERVATIONS_FILE when set, otherwise builds a single reservation
    from CATEGORY, TIMESLOT and DAY_OF_WEEK.
    """
    reservations_file = os.getenv('RESERVATIONS_FILE')
    if reservations_file:
        print(f"Loading reservations from {reservations_file}")
        return parse_reservations(Path(reservations_file).read_text(encoding='utf-8'))

    category = os.getenv('CATEGORY', 'Fitness')
    timeslot = os.getenv('TIMESLOT', '10:00')
    parse_time(timeslot)
    day_of_week = parse_day(os.getenv('DAY_OF_WEEK', 'monday'))
    return [ReservationRequest(category=category, timeslot=timeslot, day_of_week=day_of_week)]
