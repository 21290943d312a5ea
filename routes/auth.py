# routes/auth.py
from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app

from services.otp import OtpService, OtpError, StoreUnavailable, NotificationFailed

__all__ = ["auth_bp"]
auth_bp = Blueprint("auth", __name__, url_prefix="/api")

SEND_FAILED = "Failed to send OTP. Please try again later."
VERIFY_FAILED = "Failed to verify OTP. Please try again later."


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _otp_service() -> OtpService:
    return current_app.extensions["otp_service"]


# -------------------------------------------------------------------
# Middleware
# -------------------------------------------------------------------
@auth_bp.after_request
def add_no_store(resp):
    resp.headers["Cache-Control"] = "no-store"
    return resp


# -------------------------------------------------------------------
# OTP login
# -------------------------------------------------------------------
@auth_bp.route("/send-otp", methods=["POST"])
def send_otp():
    """Body: { email }. Emails a 6-digit code valid for OTP_TTL_MINUTES."""
    data = _body()
    try:
        _otp_service().issue(data.get("email"))
    except (StoreUnavailable, NotificationFailed):
        return jsonify(error=SEND_FAILED), 500
    except OtpError as e:
        return jsonify(error=e.message), e.status

    return jsonify(success=True), 200


@auth_bp.route("/verify-otp", methods=["POST"])
def verify_otp():
    """Body: { email, otp }. Consumes the code on success."""
    data = _body()
    try:
        _otp_service().verify(data.get("email"), data.get("otp"))
    except StoreUnavailable:
        return jsonify(error=VERIFY_FAILED), 500
    except OtpError as e:
        return jsonify(error=e.message), e.status

    return jsonify(success=True), 200
