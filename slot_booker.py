"""
Book a time slot on the portal's calendar page

The calendar is rendered client-side: the category filter and the date input
only take effect after their DOM events fire, and the slot list re-renders
asynchronously with no completion signal. Before each of those actions the
booker marks the elements already on the page as stale. It then waits until
only unmarked elements remain and their count holds steady (bounded by a fixed
upper limit), and it only ever clicks unmarked slots.
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

import pytz
from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeoutError

from booking_config import ReservationRequest, reservation_date
from booking_errors import BookingError, SlotNotFoundError

CATEGORY_FILTER_INPUT = '#tag-filterinput'
CATEGORY_LABEL = 'label'
DATE_INPUT = 'input[type="date"]'
STALE_ATTRIBUTE = 'data-booking-stale'
SLOT_ITEM = 'div[data-test-id="bookable-slot-list-item"]'
FRESH_SLOT_ITEM = f'{SLOT_ITEM}:not([{STALE_ATTRIBUTE}])'
SLOT_START_TIME = f'{FRESH_SLOT_ITEM} p[data-test-id="bookable-slot-start-time"]'
SLOT_START_TIME_TEXT = 'p[data-test-id="bookable-slot-start-time"] strong'
BOOK_BUTTON = 'button[data-test-id="details-book-button"]'

POLL_INTERVAL_MS = 250

CLICK_CATEGORY_LABEL_JS = """(category) => {
    const label = Array.from(document.querySelectorAll('label'))
        .find(el => el.textContent.trim() === category);
    if (!label) {
        return false;
    }
    label.click();
    return true;
}"""

MARK_STALE_JS = """(selector) => {
    const elements = document.querySelectorAll(selector);
    elements.forEach(el => el.setAttribute('__STALE__', ''));
    return elements.length;
}""".replace('__STALE__', STALE_ATTRIBUTE)

SETTLE_COUNT_JS = """(selector) => {
    const elements = Array.from(document.querySelectorAll(selector));
    return [elements.length, elements.filter(el => !el.hasAttribute('__STALE__')).length];
}""".replace('__STALE__', STALE_ATTRIBUTE)

# The date widget only refreshes on dispatched events, not on a raw value change.
# Returns null without an input, otherwise whether the date changed. Slots from
# the previous date are marked stale only when it did, since an unchanged date
# does not re-render the list.
SET_DATE_JS = """(dateStr) => {
    const input = document.querySelector('input[type="date"]');
    if (!input) {
        return null;
    }
    const changed = input.value !== dateStr;
    if (changed) {
        document.querySelectorAll('__SLOT_ITEM__').forEach(el => el.setAttribute('__STALE__', ''));
    }
    input.value = dateStr;
    ['input', 'change'].forEach(name => {
        input.dispatchEvent(new Event(name, {bubbles: true}));
    });
    return changed;
}""".replace('__SLOT_ITEM__', SLOT_ITEM).replace('__STALE__', STALE_ATTRIBUTE)


@dataclass
class BookingOutcome:
    success: bool
    request: ReservationRequest
    date: str
    error: Optional[Exception] = None
    slot_index: Optional[int] = None


async def mark_stale(page: Page, selector: str) -> int:
    """Tag the elements currently matching selector so a re-render can be told apart"""
    return await page.evaluate(MARK_STALE_JS, selector)


async def wait_for_settle(page: Page, selector: str, upper_bound_ms: int,
                          interval_ms: int = POLL_INTERVAL_MS, stable_polls: int = 3) -> int:
    """
    Wait until the elements matching selector have been re-rendered and stop changing

    Returns early once no stale element is left, at least one fresh element is
    present and the count is identical for stable_polls consecutive polls. A
    list that is never replaced keeps the wait going for the full upper_bound_ms.

    Returns:
        Milliseconds waited
    """
    waited = 0
    last_count = None
    stable = 0
    while waited < upper_bound_ms:
        step = min(interval_ms, upper_bound_ms - waited)
        await page.wait_for_timeout(step)
        waited += step

        total, fresh = await page.evaluate(SETTLE_COUNT_JS, selector)
        if fresh and fresh == total:
            stable = stable + 1 if total == last_count else 1
        else:
            stable = 0
        last_count = total

        if stable >= stable_polls:
            break
    return waited


class SlotBooker:
    def __init__(self, config, clock=None):
        self.config = config
        self.tz = pytz.timezone(config.timezone)
        self.clock = clock or (lambda: datetime.now(self.tz))

    @asynccontextmanager
    async def _booking_step(self, step: str, started: float):
        try:
            yield
        except PlaywrightError as e:
            raise BookingError(f"Booking step '{step}' failed: {e}", step=step,
                               elapsed=time.monotonic() - started) from e

    async def book(self, page: Page, request: ReservationRequest, today: Optional[date] = None) -> BookingOutcome:
        """
        Select and confirm the slot for a reservation

        Args:
            page: Authenticated Playwright page
            request: Category, start time and target day to book
            today: Calendar day to count from (defaults to today in the booking timezone)

        Returns:
            A successful BookingOutcome

        Raises:
            SlotNotFoundError: if the start time is not among the rendered slots in time
            BookingError: if any other step times out
        """
        started = time.monotonic()
        today = today or self.clock().date()
        date_str = reservation_date(request, today, self.config.lead_days)

        print(f"🎯 [{self.clock().strftime('%H:%M:%S.%f')[:-3]}] Booking {request.describe()} on {date_str}...")

        await self._apply_filters(page, request, date_str, started)
        slot_index = await self._select_slot(page, request, date_str, started)

        async with self._booking_step('slot-details', started):
            await page.wait_for_load_state('networkidle', timeout=self.config.network_idle_timeout_ms)

        async with self._booking_step('confirm', started):
            await page.wait_for_selector(BOOK_BUTTON, state='visible', timeout=self.config.confirm_timeout_ms)
            await page.click(BOOK_BUTTON, timeout=self.config.confirm_timeout_ms)

        async with self._booking_step('submit', started):
            await page.wait_for_load_state('networkidle', timeout=self.config.network_idle_timeout_ms)

        print(f"✅ [{self.clock().strftime('%H:%M:%S.%f')[:-3]}] Booked {request.category} at "
              f"{request.timeslot} on {date_str} ({time.monotonic() - started:.1f}s)")
        return BookingOutcome(success=True, request=request, date=date_str, slot_index=slot_index)

    async def _apply_filters(self, page: Page, request: ReservationRequest, date_str: str, started: float):
        async with self._booking_step('category-filter', started):
            await page.wait_for_selector(CATEGORY_FILTER_INPUT, state='visible',
                                         timeout=self.config.selector_timeout_ms)
            await mark_stale(page, CATEGORY_LABEL)
            await page.fill(CATEGORY_FILTER_INPUT, '')
            await page.fill(CATEGORY_FILTER_INPUT, request.category)
            await wait_for_settle(page, CATEGORY_LABEL, self.config.filter_settle_ms)

            if await page.evaluate(CLICK_CATEGORY_LABEL_JS, request.category):
                print(f"Category '{request.category}' selected")
            else:
                print(f"⚠️  No label matching category '{request.category}'")

        async with self._booking_step('date', started):
            changed = await page.evaluate(SET_DATE_JS, date_str)
            if changed is None:
                raise BookingError("Date input not found", step='date',
                                   elapsed=time.monotonic() - started)
            print(f"Date set to: {date_str}" + ("" if changed else " (unchanged)"))
            await wait_for_settle(page, SLOT_ITEM, self.config.date_settle_ms)

    async def _select_slot(self, page: Page, request: ReservationRequest, date_str: str, started: float) -> int:
        """Click the first rendered slot whose start time equals request.timeslot"""
        wait_started = time.monotonic()
        not_found = f"No {request.timeslot} slot for {request.category} on {date_str}"

        async with self._booking_step('select-slot', started):
            try:
                await page.wait_for_selector(SLOT_START_TIME, timeout=self.config.slot_timeout_ms)
            except PlaywrightTimeoutError as e:
                raise SlotNotFoundError(f"{not_found}: no slots rendered", step='select-slot',
                                        elapsed=time.monotonic() - started) from e

            # Slots can keep rendering after the first one appears, rescan within the same bound
            remaining_ms = self.config.slot_timeout_ms - int((time.monotonic() - wait_started) * 1000)
            attempts = max(1, remaining_ms // POLL_INTERVAL_MS)
            for attempt in range(attempts):
                index = await self._click_first_match(page, request.timeslot)
                if index is not None:
                    print(f"✅ Selected {request.timeslot} slot (#{index + 1})")
                    return index
                if attempt < attempts - 1:
                    await page.wait_for_timeout(POLL_INTERVAL_MS)

        raise SlotNotFoundError(not_found, step='select-slot', elapsed=time.monotonic() - started)

    async def _click_first_match(self, page: Page, timeslot: str) -> Optional[int]:
        slots = await page.query_selector_all(FRESH_SLOT_ITEM)
        for index, slot in enumerate(slots):
            label = await slot.query_selector(SLOT_START_TIME_TEXT)
            if label is None:
                continue
            text = (await label.text_content() or '').strip()
            if text == timeslot:
                await label.click()
                return index
        return None
