"""
Failure handling for a booking run

When a run stops on an error the reporter captures a full-page screenshot,
hands it to the artifact sink, prints the error and, if SMTP is configured,
sends a failure e-mail. Nothing in here raises: a broken screenshot or mail
server must not hide the original error.
"""

import os
import smtplib
import traceback
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional


class EmailNotifier:
    def __init__(self, smtp_server: str, smtp_port: int, sender: Optional[str],
                 password: Optional[str], recipient: Optional[str]):
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.sender = sender
        self.password = password
        self.recipient = recipient

    @classmethod
    def from_env(cls) -> 'EmailNotifier':
        return cls(
            smtp_server=os.getenv('SMTP_SERVER', 'smtp.gmail.com'),
            smtp_port=int(os.getenv('SMTP_PORT', '587')),
            sender=os.getenv('SENDER_EMAIL'),
            password=os.getenv('SENDER_PASSWORD'),
            recipient=os.getenv('RECIPIENT_EMAIL'),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.sender and self.password and self.recipient)

    def send_failure(self, error: BaseException, request=None, screenshot: Optional[str] = None):
        """Send email notification when a booking run fails"""
        if not self.enabled:
            print("⚠️  Email notification skipped - SMTP credentials not configured")
            print(f"   SENDER_EMAIL: {'✓' if self.sender else '✗'}")
            print(f"   SENDER_PASSWORD: {'✓' if self.password else '✗'}")
            print(f"   RECIPIENT_EMAIL: {'✓' if self.recipient else '✗'}")
            return

        try:
            reservation = request.describe() if request is not None else 'Unknown'
            step = getattr(error, 'step', '') or 'Unknown'

            msg = MIMEMultipart()
            msg['From'] = self.sender
            msg['To'] = self.recipient
            msg['Subject'] = f"🚨 Sports Booking Failed - {reservation}"

            body = f"""
Sports Booking Failure Alert

❌ BOOKING FAILED ❌

Reservation: {reservation}
Failed Step: {step}
Error Type: {type(error).__name__}

Failure Reason: {error}

{f'Screenshot: {screenshot}' if screenshot else ''}

This booking was scheduled to occur automatically but failed to complete.
You may need to book manually or check the system configuration.

Generated at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}
            """.strip()

            msg.attach(MIMEText(body, 'plain'))

            server = smtplib.SMTP(self.smtp_server, self.smtp_port)
            try:
                server.starttls()
                server.login(self.sender, self.password)
                server.sendmail(self.sender, self.recipient, msg.as_string())
            finally:
                server.quit()

            print(f"📧 Failure notification email sent to {self.recipient}")

        except Exception as e:
            print(f"⚠️  Failed to send email notification: {e}")


class FailureReporter:
    def __init__(self, screenshots_dir, sink, notifier: Optional[EmailNotifier] = None, clock=datetime.now):
        self.screenshots_dir = Path(screenshots_dir)
        self.sink = sink
        self.notifier = notifier
        self.clock = clock

    async def report(self, page, error: BaseException, request=None) -> Optional[str]:
        """
        Record a run failure

        Args:
            page: Playwright page at the moment of failure, or None when no
                browser session was opened
            error: The error that ended the run
            request: Reservation being booked when the run failed, if any

        Returns:
            Location of the uploaded screenshot, or None if none was taken
        """
        timestamp = self.clock().strftime('%Y%m%d_%H%M%S')
        print(f"❌ [{timestamp}] {type(error).__name__}: {error}")
        print(''.join(traceback.format_exception(type(error), error, error.__traceback__)).rstrip())

        location = None
        if page is not None:
            location = await self._capture(page, timestamp)

        if self.notifier is not None:
            self.notifier.send_failure(error, request=request, screenshot=location)
        return location

    async def _capture(self, page, timestamp: str) -> Optional[str]:
        filename = f"failure_{timestamp}.png"
        filepath = self.screenshots_dir / filename
        try:
            self.screenshots_dir.mkdir(parents=True, exist_ok=True)
            await page.screenshot(path=str(filepath), full_page=True)
        except Exception as e:
            print(f"⚠️  Could not capture failure screenshot: {e}")
            return None

        try:
            return self.sink.upload(filepath, filename, 'image/png')
        except Exception as e:
            print(f"⚠️  Could not upload failure screenshot {filepath}: {e}")
            return None
