# routes/notify.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app

from services.notify import (
    send_checkin, send_pto_request, send_bulk, send_marksheet, send_registration_confirmation,
)
from services.otp import is_valid_email
from utils.mail import MailError

__all__ = ["notify_bp"]
notify_bp = Blueprint("notify", __name__, url_prefix="/api")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _mailer():
    return current_app.extensions["mailer"]


def _text(data: dict, key: str) -> str:
    return str(data.get(key) or "").strip()


@notify_bp.route("/send-checkin", methods=["POST"])
def checkin():
    data = _body()
    to_email = _text(data, "toEmail")
    to_name = _text(data, "toName")
    committee = _text(data, "committeeName") or None

    if not to_email or not to_name:
        return jsonify(success=False, error="Missing required fields"), 400

    try:
        message_id = send_checkin(_mailer(), to_email=to_email, to_name=to_name, committee_name=committee)
    except MailError:
        current_app.logger.exception("[notify] check-in mail failed")
        return jsonify(success=False, error="Failed to send check-in email"), 500

    return jsonify(success=True, messageId=message_id), 200


@notify_bp.route("/send-pto", methods=["POST"])
def pto():
    data = _body()
    delegate = _text(data, "delegate")
    email = _text(data, "email")
    request_text = _text(data, "request")

    if not delegate or not email or not request_text:
        return jsonify(success=False, error="Missing required fields"), 400

    admin_email = current_app.config.get("ADMIN_EMAIL")
    if not admin_email:
        current_app.logger.error("[notify] ADMIN_EMAIL not configured; PTO request dropped")
        return jsonify(success=False, error="Failed to send PTO request"), 500

    try:
        send_pto_request(_mailer(), admin_email=admin_email, delegate=delegate,
                         email=email, request_text=request_text)
    except MailError:
        current_app.logger.exception("[notify] PTO mail failed")
        return jsonify(success=False, error="Failed to send PTO request"), 500

    return jsonify(success=True), 200


@notify_bp.route("/send-marksheet", methods=["POST"])
def marksheet():
    """Body: { toEmail, toName, committeeName, marks: {...}, allMarks: [{...}] }"""
    data = _body()
    to_email = _text(data, "toEmail")
    to_name = _text(data, "toName")
    committee = _text(data, "committeeName")
    marks = data.get("marks")
    all_marks = data.get("allMarks")

    if (not to_email or not to_name or not committee
            or not isinstance(marks, dict) or not marks
            or not isinstance(all_marks, list) or not all_marks):
        return jsonify(success=False, error="Missing required fields"), 400

    try:
        message_id = send_marksheet(_mailer(), to_email=to_email, to_name=to_name,
                                    committee_name=committee, marks=marks, all_marks=all_marks)
    except MailError:
        current_app.logger.exception("[notify] marksheet mail failed")
        return jsonify(success=False, error="Failed to send marksheet"), 500

    return jsonify(success=True, messageId=message_id), 200


@notify_bp.route("/send-email", methods=["POST"])
def registration_confirmation():
    """Body: { email, name, registrationId, committee, portfolio, zone }"""
    data = _body()
    fields = {k: _text(data, k) for k in ("email", "name", "registrationId", "committee", "portfolio", "zone")}
    if not all(fields.values()):
        return jsonify(success=False, error="Missing required fields"), 400

    try:
        send_registration_confirmation(
            _mailer(),
            to_email=fields["email"],
            name=fields["name"],
            registration_id=fields["registrationId"],
            committee=fields["committee"],
            portfolio=fields["portfolio"],
            zone=fields["zone"],
        )
    except MailError:
        current_app.logger.exception("[notify] registration confirmation failed")
        return jsonify(success=False, error="Failed to send confirmation email"), 500

    return jsonify(success=True), 200


@notify_bp.route("/send-bulk-email", methods=["POST"])
def bulk_email():
    """Body: { emails: [..], subject, content (html) }"""
    data = _body()
    emails = data.get("emails")
    subject = _text(data, "subject")
    content = data.get("content") or ""

    if not isinstance(emails, list) or not emails or not subject or not content:
        return jsonify(success=False, error="emails, subject and content are required"), 400

    emails = [str(e).strip() for e in emails]
    bad = [e for e in emails if not is_valid_email(e)]
    if bad:
        return jsonify(success=False, error="Invalid email address", invalid=bad), 400

    cfg = current_app.config
    result = send_bulk(
        _mailer(),
        emails=emails,
        subject=subject,
        content=str(content),
        batch_size=cfg.get("BULK_EMAIL_BATCH_SIZE", 10),
        batch_delay=cfg.get("BULK_EMAIL_BATCH_DELAY_SEC", 1.0),
    )
    status = 200 if result["sent"] else 500
    return jsonify(
        success=not result["failed"],
        sent=result["sent"],
        failed=result["failed"],
        message=f"Emails sent to {result['sent']} of {len(emails)} recipients",
    ), status
