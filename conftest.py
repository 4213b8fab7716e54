from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from booking_config import BookingConfig
from booking_errors import SecretUnavailableError
from slot_booker import (CLICK_CATEGORY_LABEL_JS, FRESH_SLOT_ITEM, MARK_STALE_JS, SET_DATE_JS, SETTLE_COUNT_JS,
                         SLOT_ITEM, SLOT_START_TIME, SLOT_START_TIME_TEXT)


class FakeElement:
    def __init__(self, page, text='', name='element', children=None):
        self.page = page
        self.text = text
        self.name = name
        self.children = children or {}
        self.stale = False
        self.click_count = 0

    async def query_selector(self, selector):
        return self.children.get(selector)

    async def text_content(self):
        return self.text

    async def click(self):
        self.click_count += 1
        self.page.actions.append(('click', self.name))


class FakeNavigation:
    def __init__(self, page, fail):
        self.page = page
        self.fail = fail

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            if self.fail:
                raise PlaywrightTimeoutError("Timeout exceeded while waiting for navigation")
            self.page.actions.append(('navigation',))
        return False


class FakePage:
    """
    Records what the bot does to the page

    Selectors in `missing` time out and selectors in `errors` raise the mapped
    exception. Setting a new date re-renders the slot list right away unless
    `on_date_change` is replaced.
    """

    def __init__(self, missing=(), url='https://portal.example/pages/login'):
        self.url = url
        self.missing = set(missing)
        self.errors = {}
        self.actions = []
        self.handlers = {}
        self.slots = []
        self.labels = []
        self.label_found = True
        self.has_date_input = True
        self.date_value = ''
        self.on_date_change = self.rerender_slots
        self.fail_navigation = False
        self.fail_load_state = False
        self.waited_ms = 0
        self.scheduled = []
        self.screenshots = []

    def add_slot(self, time_text):
        index = len(self.slots)
        label = FakeElement(self, text=time_text, name=f'slot-{index}')
        self.slots.append(FakeElement(self, name=f'slot-item-{index}',
                                      children={SLOT_START_TIME_TEXT: label}))

    def set_slots(self, *times):
        self.slots = []
        for time_text in times:
            self.add_slot(time_text)

    def rerender_slots(self):
        self.set_slots(*[slot.children[SLOT_START_TIME_TEXT].text for slot in self.slots])

    def schedule(self, after_ms, action):
        """Run action once the page has waited after_ms more milliseconds"""
        self.scheduled.append((self.waited_ms + after_ms, action))

    def clicked(self):
        return [action[1] for action in self.actions if action[0] == 'click']

    def _elements(self, selector):
        if selector == SLOT_ITEM:
            return self.slots
        if selector == 'label':
            return self.labels
        return []

    def _check(self, selector, timeout=None):
        if selector in self.errors:
            raise self.errors[selector]
        if selector in self.missing:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    async def goto(self, url, wait_until=None, timeout=None):
        self.actions.append(('goto', url))
        self.url = url

    def expect_navigation(self, wait_until=None, timeout=None):
        return FakeNavigation(self, self.fail_navigation)

    async def click(self, selector, timeout=None):
        self._check(selector, timeout)
        self.actions.append(('click', selector))

    async def fill(self, selector, value, timeout=None):
        self._check(selector, timeout)
        self.actions.append(('fill', selector, value))

    async def wait_for_selector(self, selector, state='visible', timeout=None):
        self._check(selector, timeout)
        if selector == SLOT_START_TIME and not [slot for slot in self.slots if not slot.stale]:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")
        self.actions.append(('wait', selector))
        return FakeElement(self, name=selector)

    async def wait_for_load_state(self, state='load', timeout=None):
        if self.fail_load_state:
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {state}")
        self.actions.append(('load_state', state))

    async def wait_for_timeout(self, timeout):
        self.waited_ms += timeout
        due = [entry for entry in self.scheduled if entry[0] <= self.waited_ms]
        self.scheduled = [entry for entry in self.scheduled if entry[0] > self.waited_ms]
        for _, action in due:
            action()

    async def query_selector_all(self, selector):
        if selector == FRESH_SLOT_ITEM:
            return [slot for slot in self.slots if not slot.stale]
        return list(self._elements(selector))

    async def evaluate(self, script, arg=None):
        if script == MARK_STALE_JS:
            for element in self._elements(arg):
                element.stale = True
            return len(self._elements(arg))
        if script == SETTLE_COUNT_JS:
            elements = self._elements(arg)
            return [len(elements), len([element for element in elements if not element.stale])]

        self.actions.append(('evaluate', arg))
        if script == CLICK_CATEGORY_LABEL_JS:
            return self.label_found
        if script == SET_DATE_JS:
            if not self.has_date_input:
                return None
            changed = arg != self.date_value
            self.date_value = arg
            if changed:
                for slot in self.slots:
                    slot.stale = True
                self.on_date_change()
            return changed
        return None

    async def screenshot(self, path=None, full_page=False):
        Path(path).write_bytes(b'\x89PNG fake')
        self.screenshots.append((path, full_page))


class FakeSink:
    def __init__(self):
        self.uploads = []

    def upload(self, local_path, destination_name, mime_type):
        self.uploads.append((str(local_path), destination_name, mime_type))
        return f"memory://{destination_name}"


class FakeProvider:
    def __init__(self, secrets=None):
        self.secrets = secrets if secrets is not None else {
            'GYM_USERNAME': 'student@example.edu',
            'GYM_PASSWORD': 'hunter2',
            'TOTP_SECRET': 'JBSWY3DPEHPK3PXP',
        }
        self.requested = []

    def get_secret(self, name):
        self.requested.append(name)
        if name not in self.secrets:
            raise SecretUnavailableError(f"Please set {name}", step='secrets')
        return self.secrets[name]


@pytest.fixture()
def config(tmp_path):
    return BookingConfig(
        portal_url='https://portal.example/pages/login',
        screenshots_dir=tmp_path / 'screenshots',
        filter_settle_ms=1000,
        date_settle_ms=1000,
        slot_timeout_ms=1000,
    )


@pytest.fixture()
def page():
    return FakePage()


@pytest.fixture()
def sink():
    return FakeSink()


@pytest.fixture()
def session_factory():
    """Hands out FakePages and records how many were opened and closed"""
    state = {'opened': [], 'closed': 0}

    @asynccontextmanager
    async def factory(config):
        page = state['pages'].pop(0) if state.get('pages') else FakePage()
        state['opened'].append(page)
        try:
            yield page
        finally:
            state['closed'] += 1

    factory.state = state
    return factory
