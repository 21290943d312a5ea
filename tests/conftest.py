import pytest

from app import create_app
from config import TestingConfig
from services.otp_store import MemoryOtpStore
from utils.mail import MailError


class FakeMailer:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self.fail_all = False

    def send(self, *, to, subject, html="", text="", to_name=None, from_name=None, inline_images=None):
        if self.fail_all or to in self.fail_for:
            raise MailError(f"refused {to}")
        self.sent.append({
            "to": to, "subject": subject, "html": html, "text": text,
            "to_name": to_name, "from_name": from_name, "inline_images": inline_images or {},
        })
        return f"<msg-{len(self.sent)}@kimun.test>"


class Clock:
    def __init__(self, start_ms=1_700_000_000_000):
        self.now = start_ms

    def __call__(self):
        return self.now

    def advance(self, *, minutes=0, seconds=0, ms=0):
        self.now += minutes * 60_000 + seconds * 1000 + ms


@pytest.fixture
def store():
    return MemoryOtpStore()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def app(store, mailer, clock):
    app = create_app(TestingConfig, store=store, mailer=mailer, otp_clock=clock)
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def otp_service(app):
    return app.extensions["otp_service"]


@pytest.fixture
def last_code(mailer):
    """Pull the 6-digit code out of the most recent OTP email."""
    def _read():
        text = mailer.sent[-1]["text"]
        return text.split("code is: ", 1)[1][:6]
    return _read
