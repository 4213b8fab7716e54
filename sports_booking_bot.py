"""
Sports Slot Booking Automation Bot using Playwright

Logs into the sports portal through single sign-on, waits for the daily
booking window to open and books each configured slot in turn on the same
browser page. The first error ends the run: a screenshot is captured and
uploaded, the error is logged and the browser is closed.

No state is kept between runs; the cron trigger guarantees only one run
is live at a time.
"""

import os
import platform
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

from playwright.async_api import async_playwright

from artifact_sink import sink_from_config
from booking_config import BookingConfig, ReservationRequest, reservation_date
from booking_errors import SecretUnavailableError
from failure_reporter import EmailNotifier, FailureReporter
from portal_login import PortalAuthenticator
from secret_provider import load_credentials, provider_from_config
from slot_booker import BookingOutcome, SlotBooker
from window_scheduler import WindowScheduler

USER_AGENT = ('Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
              '(KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36')

LOCAL_CHROMIUM_PATHS = [
    '/Applications/Google Chrome.app/Contents/MacOS/Google Chrome',
    '/usr/local/bin/chromium',
    '/opt/homebrew/bin/chromium',
    '/Applications/Chromium.app/Contents/MacOS/Chromium',
]


def detect_local_browser() -> Optional[str]:
    """Return a local Chrome/Chromium path on macOS, None to use Playwright's bundled Chromium"""
    explicit = os.getenv('CHROMIUM_PATH')
    if explicit:
        return explicit

    if platform.system() != 'Darwin':
        return None

    print("🏠 Running locally - looking for a local Chromium installation")
    for path in LOCAL_CHROMIUM_PATHS:
        if os.path.exists(path):
            print(f"✅ Found browser at: {path}")
            return path

    print("⚠️  No local browser found, trying default Playwright installation")
    return None


@asynccontextmanager
async def browser_session(config: BookingConfig):
    """
    Open the single browser page used for the whole run

    The browser is closed when the block exits, whatever the outcome.
    """
    args = ['--no-sandbox']
    if config.dev_mode:
        args.append('--auto-open-devtools-for-tabs')

    launch_options = dict(headless=config.headless and not config.dev_mode, args=args)
    browser_path = detect_local_browser()
    if browser_path:
        launch_options['executable_path'] = browser_path

    async with async_playwright() as p:
        browser = await p.chromium.launch(**launch_options)
        try:
            context = await browser.new_context(user_agent=USER_AGENT)
            yield await context.new_page()
        finally:
            await browser.close()
            print("🧹 Browser closed")


@dataclass
class RunResult:
    outcomes: list = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None


class SportsBookingBot:
    def __init__(self, config: BookingConfig, reservations: list[ReservationRequest],
                 provider=None, sink=None, notifier=None, session_factory=None,
                 authenticator=None, scheduler=None, booker=None, reporter=None):
        self.config = config
        self.reservations = list(reservations)
        self.provider = provider or provider_from_config(config)
        self.session_factory = session_factory or browser_session
        self.authenticator = authenticator or PortalAuthenticator(config)
        self.scheduler = scheduler or WindowScheduler(config.timezone)
        self.booker = booker or SlotBooker(config)
        self.reporter = reporter or FailureReporter(
            config.screenshots_dir,
            sink or sink_from_config(config),
            notifier if notifier is not None else EmailNotifier.from_env(),
        )

    async def run(self) -> RunResult:
        """
        Log in, wait for the booking window and book every reservation

        Errors are reported and returned in the RunResult, never raised.
        """
        print(f"🔍 Starting booking run for {len(self.reservations)} reservation(s)")
        result = RunResult()

        try:
            credentials = load_credentials(self.provider)
        except SecretUnavailableError as e:
            result.error = e
            await self.reporter.report(None, e)
            return result
        except Exception as e:
            error = SecretUnavailableError(f"Could not load credentials: {e}", step="secrets")
            error.__cause__ = e
            result.error = error
            await self.reporter.report(None, error)
            return result

        try:
            async with self.session_factory(self.config) as page:
                await self._book_all(page, credentials, result)
        except Exception as e:
            if result.error is None:
                # Browser could not be started
                result.error = e
                await self.reporter.report(None, e)
            else:
                print(f"⚠️  Error while closing browser: {e}")

        if result.success:
            print(f"✅ Booking run complete. Bookings made: {len(result.outcomes)}")
        else:
            booked = sum(1 for outcome in result.outcomes if outcome.success)
            print(f"❌ Booking run stopped after {booked} booking(s): {result.error}")
        return result

    async def _book_all(self, page, credentials, result: RunResult):
        current = None
        try:
            await self.authenticator.authenticate(page, credentials)

            if self.config.skip_wait:
                print("⏭️  Skipping booking window wait")
            else:
                await self.scheduler.wait_until_open(self.config.open_hour, self.config.open_minute)

            for request in self.reservations:
                current = request
                outcome = await self.booker.book(page, request)
                result.outcomes.append(outcome)
                print(f"🏃 Booking successful: {request.describe()} on {outcome.date}")
            current = None

        except Exception as e:
            result.error = e
            if current is not None:
                failed_date = reservation_date(current, self.booker.clock().date(), self.config.lead_days)
                result.outcomes.append(BookingOutcome(success=False, request=current,
                                                      date=failed_date, error=e))
            await self.reporter.report(page, e, request=current)
