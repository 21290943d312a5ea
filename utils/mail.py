# utils/mail.py
from __future__ import annotations

import smtplib
import ssl
import logging
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional, Mapping, Any

__all__ = ["SmtpMailer", "MailError", "mask_email"]

log = logging.getLogger(__name__)


class MailError(RuntimeError):
    """The SMTP server refused or never received the message."""


def mask_email(addr: Optional[str]) -> str:
    if not addr:
        return ""
    try:
        local, domain = addr.split("@", 1)
    except ValueError:
        return addr
    local_mask = local[0] + "***" if len(local) > 1 else "*"
    # keep domain TLD visible
    dot = domain.rfind(".")
    if dot > 0:
        dom_mask = domain[0] + "***" + domain[dot:]
    else:
        dom_mask = (domain[:1] or "") + "***"
    return f"{local_mask}@{dom_mask}"


class SmtpMailer:
    """
    Sends mail through one SMTP endpoint (Titan / Gmail / Brevo all work).
      security='ssl'       implicit TLS, usually port 465
      security='starttls'  plain connect + STARTTLS, usually 587
    A single connection attempt per message; no port fallback.
    """

    def __init__(self, *, host: str, port: int, user: Optional[str], password: Optional[str],
                 security: str = "ssl", timeout: int = 20, from_name: str = "KIMUN Secretariat"):
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.security = (security or "ssl").lower()
        self.timeout = timeout
        self.from_name = from_name

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "SmtpMailer":
        return cls(
            host=cfg["SMTP_HOST"],
            port=cfg["SMTP_PORT"],
            user=cfg.get("SMTP_USER"),
            password=cfg.get("SMTP_PASS"),
            security=cfg.get("SMTP_SECURITY", "ssl"),
            timeout=cfg.get("SMTP_TIMEOUT", 20),
            from_name=cfg.get("MAIL_FROM_NAME", "KIMUN Secretariat"),
        )

    def build_message(self, *, to: str, subject: str, html: str = "", text: str = "",
                      to_name: Optional[str] = None, from_name: Optional[str] = None,
                      inline_images: Optional[Mapping[str, bytes]] = None) -> EmailMessage:
        """
        ``inline_images`` maps a content-id to PNG bytes; reference it from the
        HTML as ``src="cid:<content-id>"``.
        """
        msg = EmailMessage()
        msg["From"] = formataddr((from_name or self.from_name, self.user or "no-reply@kimun.in.net"))
        msg["To"] = formataddr((to_name, to)) if to_name else to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=(self.user or "kimun.in.net").split("@")[-1])
        msg.set_content(text or "")
        if html:
            msg.add_alternative(html, subtype="html")
            if inline_images:
                html_part = msg.get_body(("html",))
                for cid, png in inline_images.items():
                    html_part.add_related(png, maintype="image", subtype="png", cid=f"<{cid}>")
        return msg

    def send(self, *, to: str, subject: str, html: str = "", text: str = "",
             to_name: Optional[str] = None, from_name: Optional[str] = None,
             inline_images: Optional[Mapping[str, bytes]] = None) -> str:
        """Send one message and return its Message-ID."""
        if not self.user or not self.password:
            raise MailError("SMTP_USER / SMTP_PASS are not set.")

        msg = self.build_message(to=to, subject=subject, html=html, text=text,
                                 to_name=to_name, from_name=from_name,
                                 inline_images=inline_images)
        ctx = ssl.create_default_context()
        try:
            if self.security == "ssl":
                with smtplib.SMTP_SSL(self.host, self.port, context=ctx, timeout=self.timeout) as s:
                    s.login(self.user, self.password)
                    s.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as s:
                    s.ehlo()
                    s.starttls(context=ctx)
                    s.ehlo()
                    s.login(self.user, self.password)
                    s.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            log.warning("[mail] %s %s:%s failed to=%s: %r",
                        self.security, self.host, self.port, mask_email(to), e)
            raise MailError(f"SMTP send failed: {e!r}") from e

        log.info("[mail] sent via %s:%s as %s to %s",
                 self.host, self.port, mask_email(self.user), mask_email(to))
        return msg["Message-ID"]
