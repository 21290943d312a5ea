# services/notify.py
from __future__ import annotations

import time
from io import BytesIO
from typing import Iterable, List, Dict, Optional

import qrcode
from flask import current_app
from markupsafe import escape

from utils.mail import MailError, mask_email

FEEDBACK_FORM_URL = (
    "https://docs.google.com/forms/d/e/1FAIpQLSeuxMRLhICbYL4XkXZHVI8GqcxJAPdlLwFAbU2U7PUt6iOd3Q/viewform"
)


def _checkin_html(to_name: str, committee_name: Optional[str]) -> str:
    committee = (
        f'<p style="color:#4b5563">You are registered for the <strong>{escape(committee_name)}</strong> committee.</p>'
        if committee_name else ""
    )
    return f"""
      <div style="max-width:600px;margin:0 auto;font-family:Arial,sans-serif">
        <div style="background-color:#111827;padding:20px;border-radius:8px 8px 0 0;text-align:center">
          <h1 style="color:#f59e0b;margin:0">Welcome to KIMUN 2025</h1>
          <p style="color:white;margin:5px 0 0">Delegate Check-in Confirmation</p>
        </div>
        <div style="background-color:white;padding:20px;border-radius:0 0 8px 8px;border:1px solid #e5e7eb">
          <p style="color:#4b5563">Dear {escape(to_name)},</p>
          <p style="color:#4b5563">Welcome to KIMUN 2025! We're thrilled to have you with us.</p>
          {committee}
          <div style="margin-top:24px;padding:16px;background-color:#ecfdf5;border-radius:6px;border:1px solid #a7f3d0">
            <h3 style="color:#065f46;margin-top:0">Rate Your Check-in Experience</h3>
            <p style="text-align:center;margin:16px 0">
              <a href="{FEEDBACK_FORM_URL}"
                 style="display:inline-block;background-color:#059669;color:white;padding:10px 20px;border-radius:6px;text-decoration:none;font-weight:600">
                Rate Now (1-5 Stars)
              </a>
            </p>
          </div>
          <p style="color:#4b5563;margin-top:24px"><strong>Need help?</strong>
            <a href="mailto:delegateaffairs@kimun.in.net">delegateaffairs@kimun.in.net</a></p>
          <p style="color:#4b5563;margin:0">Best regards,<br/>The KIMUN Secretariat</p>
        </div>
        <div style="margin-top:16px;text-align:center;font-size:0.75rem;color:#6b7280">
          <p>Kalinga International Model United Nations 2025</p>
        </div>
      </div>
    """


def send_checkin(mailer, *, to_email: str, to_name: str, committee_name: Optional[str] = None) -> str:
    """Welcome mail after desk check-in. Returns the Message-ID."""
    message_id = mailer.send(
        to=to_email,
        to_name=to_name,
        subject="Welcome to KIMUN 2025 - Rate Your Check-in Experience",
        html=_checkin_html(to_name, committee_name),
    )
    current_app.logger.info("[notify] check-in mail sent to %s", mask_email(to_email))
    return message_id


def send_pto_request(mailer, *, admin_email: str, delegate: str, email: str, request_text: str) -> str:
    """Forward a delegate's PTO request to the secretariat inbox."""
    html = f"""
      <h3>New PTO Request</h3>
      <p><strong>Delegate:</strong> {escape(delegate)}</p>
      <p><strong>Email:</strong> {escape(email)}</p>
      <p><strong>Request:</strong></p>
      <p>{escape(request_text)}</p>
    """
    message_id = mailer.send(
        to=admin_email,
        subject=f"PTO Request from {delegate}",
        html=html,
        from_name="KIMUN Delegate",
    )
    current_app.logger.info("[notify] PTO request from %s forwarded", mask_email(email))
    return message_id


# ---------- marksheets ----------

AWARDS = ("Best Delegate", "High Commendation", "Special Mention", "Verbal Mention")
MARKSHEET_SKIP_KEYS = {"total", "portfolioId", "email", "country", "alt", "id"}
MARKSHEET_TOTAL_MAX = 50


def _as_float(v) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return 0.0


def award_for(delegate: dict, all_marks) -> str:
    """Rank by total across the committee; the top four places get an award."""
    if not isinstance(all_marks, list) or delegate.get("id") is None:
        return ""
    ranked = sorted((m for m in all_marks if isinstance(m, dict)),
                    key=lambda m: _as_float(m.get("total")), reverse=True)
    for place, row in enumerate(ranked[:len(AWARDS)]):
        if row.get("id") == delegate.get("id"):
            return AWARDS[place]
    return ""


def _marksheet_html(committee_name: str, delegate: dict, award: str) -> str:
    rows = "".join(
        f"""
          <tr>
            <td style="padding:12px;border:1px solid #e5e7eb">{escape(str(category).upper())}</td>
            <td style="padding:12px;border:1px solid #e5e7eb">{escape(score)}</td>
            <td style="padding:12px;border:1px solid #e5e7eb">{10 if category == "gsl" else 5}</td>
          </tr>"""
        for category, score in delegate.items()
        if category not in MARKSHEET_SKIP_KEYS
    )
    award_block = (
        f'<div style="margin-top:16px;padding:12px;background-color:#f0fdf4;border-radius:6px;border:1px solid #bbf7d0">'
        f'<p style="color:#166534;font-weight:600;margin:0">Award: {award}</p></div>'
        if award else ""
    )
    return f"""
      <div style="max-width:600px;margin:0 auto;font-family:Arial,sans-serif">
        <div style="background-color:#111827;padding:20px;border-radius:8px 8px 0 0;text-align:center">
          <h1 style="color:#f59e0b;margin:0">KIMUN {escape(committee_name)}</h1>
          <p style="color:white;margin:5px 0 0">Delegate Performance Marksheet</p>
        </div>
        <div style="background-color:white;padding:20px;border-radius:0 0 8px 8px;border:1px solid #e5e7eb">
          <p style="color:#4b5563">Dear Delegate of {escape(delegate.get("country") or "")},</p>
          <p style="color:#4b5563">Here are your performance marks from {escape(committee_name)}:</p>
          <table style="width:100%;border-collapse:collapse;margin:20px 0">
            <thead>
              <tr style="background-color:#f59e0b;color:white;font-weight:600">
                <th style="padding:12px;text-align:left">Category</th>
                <th style="padding:12px;text-align:left">Score</th>
                <th style="padding:12px;text-align:left">Max</th>
              </tr>
            </thead>
            <tbody>{rows}
              <tr style="font-weight:600;background-color:#f3f4f6">
                <td style="padding:12px;border:1px solid #e5e7eb">TOTAL</td>
                <td style="padding:12px;border:1px solid #e5e7eb">{_as_float(delegate.get("total")):.2f}</td>
                <td style="padding:12px;border:1px solid #e5e7eb">{MARKSHEET_TOTAL_MAX}</td>
              </tr>
            </tbody>
          </table>
          {award_block}
          <p style="color:#4b5563;margin-top:24px">Questions about your marks?
            <a href="mailto:delegateaffairs@kimun.in.net">delegateaffairs@kimun.in.net</a></p>
          <p style="color:#4b5563">Best regards,<br/>KIMUN Secretariat</p>
        </div>
      </div>
    """


def send_marksheet(mailer, *, to_email: str, to_name: str, committee_name: str,
                   marks: dict, all_marks: list) -> str:
    """Committee marksheet with the delegate's award, if any. Returns the Message-ID."""
    award = award_for(marks, all_marks)
    message_id = mailer.send(
        to=to_email,
        to_name=to_name,
        subject=f"Your KIMUN {committee_name} Marksheet",
        html=_marksheet_html(committee_name, marks, award),
    )
    current_app.logger.info("[notify] marksheet sent to %s (award=%s)", mask_email(to_email), award or "-")
    return message_id


# ---------- registration confirmation ----------

REGISTRATION_VENUE = "BMPS Takshila School Patia"
REGISTRATION_VALIDITY = "Feb 16 to June 16, 2025"
DELEGATE_QR_CID = "delegate-id-qr"


def delegate_qr_png(registration_id: str) -> bytes:
    """PNG QR code of the delegate ID, scanned at the registration desk."""
    qr = qrcode.QRCode(box_size=6, border=2)
    qr.add_data(registration_id.upper())
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    bio = BytesIO()
    img.save(bio, format="PNG")
    return bio.getvalue()


def send_registration_confirmation(mailer, *, to_email: str, name: str, registration_id: str,
                                   committee: str, portfolio: str, zone: str) -> str:
    html = f"""
      <h2>Hello {escape(name)},</h2>
      <p>Thank you for registering for Kalinga International Model United Nations 2025!</p>
      <h3>Delegate Info:</h3>
      <ul>
        <li><strong>Delegate ID:</strong> {escape(registration_id.upper())}</li>
        <li><strong>Committee:</strong> {escape(committee)}</li>
        <li><strong>Portfolio:</strong> {escape(portfolio)}</li>
        <li><strong>Venue:</strong> {REGISTRATION_VENUE}</li>
        <li><strong>Gate:</strong> 1 : Zone {escape(zone)}</li>
        <li><strong>Valid From/To:</strong> {REGISTRATION_VALIDITY}</li>
      </ul>
      <h3>General Policies</h3>
      <ul>
        <li>All participants must comply with local laws and KIMUN regulations.</li>
        <li>Formal dress code is mandatory during committee sessions.</li>
        <li>Delegates must pay their registration fee before participation.</li>
        <li>No refunds for withdrawals.</li>
      </ul>
      <h2>Please bring this email and your code to the event for verification.</h2>
      <img src="cid:{DELEGATE_QR_CID}" alt="Delegate ID" />
      <h4>Best Regards,<br/>MUN Team</h4>
    """
    message_id = mailer.send(
        to=to_email,
        subject="KIMUN 2025 Registration Confirmation",
        html=html,
        from_name="KIMUN Registration",
        inline_images={DELEGATE_QR_CID: delegate_qr_png(registration_id)},
    )
    current_app.logger.info("[notify] registration confirmation sent to %s", mask_email(to_email))
    return message_id


def _batches(items: List[str], size: int) -> Iterable[List[str]]:
    size = max(1, int(size))
    for i in range(0, len(items), size):
        yield items[i:i + size]


def send_bulk(mailer, *, emails: List[str], subject: str, content: str,
              batch_size: int = 10, batch_delay: float = 1.0, sleep=time.sleep) -> Dict:
    """
    Send the same announcement to every address, ``batch_size`` at a time
    with ``batch_delay`` seconds between batches (provider rate limits).
    Individual failures are collected; the loop keeps going.
    """
    sent = 0
    failed: List[str] = []
    batches = list(_batches(emails, batch_size))
    for n, batch in enumerate(batches):
        for addr in batch:
            try:
                mailer.send(to=addr, subject=subject, html=content, from_name="KIMUN Organizers")
                sent += 1
            except MailError:
                current_app.logger.exception("[notify] bulk send failed for %s", mask_email(addr))
                failed.append(addr)
        if batch_delay and n < len(batches) - 1:
            sleep(batch_delay)

    current_app.logger.info("[notify] bulk: sent=%d failed=%d batches=%d", sent, len(failed), len(batches))
    return {"sent": sent, "failed": failed}
