# services/otp.py
"""
Email one-time-passcode login for the delegate portal.

Public API:
  - OtpService.issue(email)         -> None   (emails a fresh code)
  - OtpService.verify(email, code)  -> None   (raises on any failure)

The service owns no state; everything lives in the injected store under
otps/<key>. Failures are raised as OtpError subclasses carrying the HTTP
status and public message the routes return.
"""
from __future__ import annotations

import re
import time
import secrets
from typing import Callable, Optional

from flask import current_app

from models.otp_record import OtpRecord, otp_key
from services.otp_store import StoreError
from utils.mail import MailError, mask_email

# local@domain.tld, minus characters Realtime Database keys reject ($ # [ ] / and controls)
_ADDR_CHARS = r"[^\s@$#\[\]/\x00-\x1f\x7f]+"
EMAIL_RE = re.compile(rf"{_ADDR_CHARS}@{_ADDR_CHARS}\.{_ADDR_CHARS}")
OTP_LENGTH = 6


# ---------- errors ----------

class OtpError(Exception):
    status = 500
    message = "OTP request failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class InvalidInput(OtpError):
    status = 400
    message = "Invalid input"

class NotFound(OtpError):
    status = 404
    message = "OTP not found or expired. Please request a new one."

class TooManyAttempts(OtpError):
    status = 429
    message = "Too many attempts. Please request a new OTP."

class Expired(OtpError):
    status = 410
    message = "OTP expired. Please request a new one."

class Mismatch(OtpError):
    status = 401
    message = "Invalid OTP"

class StoreUnavailable(OtpError):
    status = 500
    message = "OTP store unavailable"

class NotificationFailed(OtpError):
    status = 500
    message = "Could not deliver OTP email"


# ---------- small utils ----------

def _now_ms() -> int:
    return int(time.time() * 1000)


def is_valid_email(email) -> bool:
    return isinstance(email, str) and bool(EMAIL_RE.fullmatch(email))


def generate_code() -> str:
    """Uniform over 100000..999999, so always 6 digits."""
    return str(100000 + secrets.randbelow(900000))


def _otp_email(code: str, ttl_minutes: int) -> tuple[str, str]:
    html = f"""
      <div style="font-family:Arial,sans-serif;max-width:600px;margin:0 auto;padding:20px;border:1px solid #e0e0e0;border-radius:8px">
        <h2 style="color:#D97706;text-align:center">KIMUN 2025 Delegate Portal</h2>
        <p>Hello,</p>
        <p>Your verification code for KIMUN delegate login is:</p>
        <div style="text-align:center;margin:30px 0">
          <span style="font-size:32px;font-weight:bold;color:#D97706;letter-spacing:5px">{code}</span>
        </div>
        <p>This code will expire in {ttl_minutes} minutes.</p>
        <p>If you didn't request this code, please ignore this email.</p>
        <hr style="border:none;border-top:1px solid #e0e0e0;margin:30px 0">
        <p style="font-size:12px;color:#666">KIMUN Secretariat Team</p>
      </div>
    """
    text = f"Your KIMUN verification code is: {code}. This code will expire in {ttl_minutes} minutes."
    return html, text


# ---------- service ----------

class OtpService:
    def __init__(self, store, mailer, *, ttl_minutes: int = 15, max_attempts: int = 3,
                 rollback_on_send_failure: bool = False,
                 clock: Callable[[], int] = _now_ms,
                 code_factory: Callable[[], str] = generate_code):
        self.store = store
        self.mailer = mailer
        self.ttl_minutes = ttl_minutes
        self.max_attempts = max_attempts
        self.rollback_on_send_failure = rollback_on_send_failure
        self.clock = clock
        self.code_factory = code_factory

    @classmethod
    def from_config(cls, cfg, store, mailer, **kwargs) -> "OtpService":
        return cls(
            store, mailer,
            ttl_minutes=cfg.get("OTP_TTL_MINUTES", 15),
            max_attempts=cfg.get("OTP_MAX_ATTEMPTS", 3),
            rollback_on_send_failure=cfg.get("OTP_ROLLBACK_ON_SEND_FAILURE", False),
            **kwargs,
        )

    def issue(self, email) -> None:
        """Create (or overwrite) the record for ``email`` and mail the code."""
        if not is_valid_email(email):
            raise InvalidInput("Invalid email format")

        key = otp_key(email)
        code = self.code_factory()
        record = OtpRecord(
            key=key,
            otp=code,
            expires_at=self.clock() + self.ttl_minutes * 60 * 1000,
            attempts=0,
        )
        try:
            self.store.put(record)
        except StoreError as e:
            current_app.logger.exception("[otp] store write failed for %s", mask_email(email))
            raise StoreUnavailable() from e

        html, text = _otp_email(code, self.ttl_minutes)
        try:
            self.mailer.send(to=email, subject="Your KIMUN Login OTP", html=html, text=text)
        except MailError as e:
            current_app.logger.exception("[otp] email send failed for %s", mask_email(email))
            if self.rollback_on_send_failure:
                try:
                    self.store.delete(key)
                except StoreError:
                    current_app.logger.exception("[otp] rollback failed for %s", mask_email(email))
            raise NotificationFailed() from e

        current_app.logger.info("[otp] issued for %s (ttl=%dm)", mask_email(email), self.ttl_minutes)

    def verify(self, email, code) -> None:
        """
        Check ``code`` against the stored record. Order matters:
        attempt ceiling, then expiry, then equality.
        """
        if not is_valid_email(email) or not isinstance(code, str) or len(code) != OTP_LENGTH:
            raise InvalidInput("Invalid email or OTP format")

        key = otp_key(email)
        try:
            self._verify(key, code)
        except StoreError as e:
            current_app.logger.exception("[otp] store failure verifying %s", mask_email(email))
            raise StoreUnavailable() from e
        except OtpError as e:
            current_app.logger.info("[otp] verify %s -> %s", mask_email(email), type(e).__name__)
            raise

        current_app.logger.info("[otp] verified %s", mask_email(email))

    def _verify(self, key: str, code: str) -> None:
        record = self.store.get(key)
        if record is None:
            raise NotFound()

        if record.attempts >= self.max_attempts:
            self.store.delete(key)
            raise TooManyAttempts()

        if self.clock() > record.expires_at:
            self.store.delete(key)
            raise Expired()

        if not secrets.compare_digest(code.encode("utf-8"), record.otp.encode("utf-8")):
            bumped = self.store.increment_attempts(key)
            if bumped is None:
                raise NotFound()
            if bumped.attempts >= self.max_attempts:
                self.store.delete(key)
                raise TooManyAttempts()
            raise Mismatch()

        self.store.delete(key)
