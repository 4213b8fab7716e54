"""
Single sign-on login for the sports portal

Drives the federated login: portal login page -> identity provider tile ->
username -> password -> one-time passcode -> optional consent screen.
Each step waits for its element or navigation with a bounded timeout, and
any timeout ends the login with an AuthError carrying the current URL.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlparse

import pyotp
from playwright.async_api import Error as PlaywrightError, Page

from booking_errors import AuthError

LOGIN_BUTTON = '[data-test-id="oidc-login-button"]'
USERNAME_INPUT = 'input[name="loginfmt"]'
PASSWORD_INPUT = 'input[name="password"]'
OTP_INPUT = 'input[name="otc"]'
SUBMIT_INPUT = 'input[type="submit"]'
CONSENT_BUTTON = 'button[type="submit"]'


def identity_provider_tile(name: str) -> str:
    return f'[data-title="{name}"]'


def generate_otp(secret: str, at: Optional[datetime] = None) -> str:
    """Time-based 6 digit passcode for the given shared secret"""
    totp = pyotp.TOTP(secret)
    if at is None:
        return totp.now()
    return totp.at(at)


class ConsentStep(Enum):
    PRESENT = 'present'
    ABSENT = 'absent'


def classify_response(url: str, status: int, idp_host: str) -> Optional[str]:
    """
    Put an HTTP response into a diagnostic bucket

    Returns:
        'redirect', 'auth-anomaly', 'http-error' or None for ordinary responses
    """
    if 300 <= status < 400:
        return 'redirect'
    if urlparse(url).hostname == idp_host and status != 200:
        return 'auth-anomaly'
    if status >= 400:
        return 'http-error'
    return None


class ResponseObserver:
    """Prints redirects and failed responses seen during the run"""

    def __init__(self, idp_host: str):
        self.idp_host = idp_host
        self.counts = {'redirect': 0, 'auth-anomaly': 0, 'http-error': 0}

    def __call__(self, response) -> None:
        try:
            kind = classify_response(response.url, response.status, self.idp_host)
        except Exception as e:
            print(f"⚠️  Could not inspect response: {e}")
            return
        if kind is None:
            return
        self.counts[kind] += 1
        if kind == 'redirect':
            print(f"↪️  {response.status} redirect: {response.url}")
        elif kind == 'auth-anomaly':
            print(f"⚠️  Identity provider returned {response.status}: {response.url}")
        else:
            print(f"⚠️  HTTP {response.status}: {response.url}")


class PortalAuthenticator:
    def __init__(self, config, otp_generator: Callable[[str], str] = generate_otp):
        self.config = config
        self.otp_generator = otp_generator
        self.observer = None

    @asynccontextmanager
    async def _login_step(self, page: Page, step: str):
        try:
            yield
        except PlaywrightError as e:
            raise AuthError(f"Login step '{step}' failed: {e}", step=step, url=page.url) from e

    async def authenticate(self, page: Page, credentials) -> ConsentStep:
        """
        Log into the portal through the identity provider

        Args:
            page: Playwright page object, reused for the booking afterwards
            credentials: Username, password and OTP secret

        Returns:
            Whether a consent screen was shown

        Raises:
            AuthError: if any step does not complete within its timeout
        """
        timeout = self.config.selector_timeout_ms
        # Counts belong to this login only
        self.observer = ResponseObserver(self.config.identity_provider_host)
        page.on('response', self.observer)

        print(f"🌐 Navigating to {self.config.portal_url}...")
        async with self._login_step(page, 'portal'):
            await page.goto(self.config.portal_url, wait_until='networkidle', timeout=timeout)

        async with self._login_step(page, 'federated-login'):
            async with page.expect_navigation(wait_until='networkidle', timeout=timeout):
                await page.click(LOGIN_BUTTON, timeout=timeout)

        print(f"Selecting identity provider '{self.config.identity_provider}'...")
        async with self._login_step(page, 'identity-provider'):
            async with page.expect_navigation(wait_until='networkidle', timeout=timeout):
                await page.click(identity_provider_tile(self.config.identity_provider), timeout=timeout)

        print("Entering login credentials...")
        async with self._login_step(page, 'username'):
            await page.fill(USERNAME_INPUT, credentials.username, timeout=timeout)
            await page.click(SUBMIT_INPUT, timeout=timeout)

        async with self._login_step(page, 'password'):
            await page.wait_for_selector(PASSWORD_INPUT, state='visible', timeout=timeout)
            await page.fill(PASSWORD_INPUT, credentials.password, timeout=timeout)
            await page.click(SUBMIT_INPUT, timeout=timeout)

        async with self._login_step(page, 'otp'):
            await page.wait_for_selector(OTP_INPUT, state='visible', timeout=timeout)
            # Codes are only valid for their time window, generate right before typing
            code = self.otp_generator(credentials.otp_secret)
            await page.fill(OTP_INPUT, code, timeout=timeout)
            async with page.expect_navigation(wait_until='networkidle', timeout=timeout):
                await page.click(SUBMIT_INPUT, timeout=timeout)

        consent = await self._handle_consent(page)
        print(f"✅ Login successful for {credentials.username}")
        return consent

    async def _handle_consent(self, page: Page) -> ConsentStep:
        """Click through the 'stay signed in' screen when the provider shows one"""
        try:
            await page.wait_for_selector(CONSENT_BUTTON, state='visible',
                                         timeout=self.config.consent_timeout_ms)
        except PlaywrightError as e:
            # A timeout, or the page navigating away while waiting
            print(f"No consent step ({type(e).__name__})")
            return ConsentStep.ABSENT

        async with self._login_step(page, 'consent'):
            async with page.expect_navigation(wait_until='networkidle',
                                              timeout=self.config.selector_timeout_ms):
                await page.click(CONSENT_BUTTON, timeout=self.config.selector_timeout_ms)
        return ConsentStep.PRESENT
