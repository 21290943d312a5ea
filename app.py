# backend/app.py
from __future__ import annotations

import os
import logging

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_cors import CORS

from config import CONFIGS
from services.otp import OtpService
from services.otp_store import build_store
from utils.mail import SmtpMailer

# Blueprints
from routes.auth import auth_bp
from routes.notify import notify_bp


def create_app(config_object=None, *, store=None, mailer=None, otp_clock=None) -> Flask:
    """
    App factory. The OTP store and mailer are built here from config unless
    passed in, and shared through ``app.extensions``.
    """
    app = Flask(__name__)

    # Respect reverse proxy headers (scheme / host) for correct URL generation
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[arg-type]

    if config_object is None:
        config_object = CONFIGS[os.environ.get("APP_CONFIG", "default")]
    app.config.from_object(config_object)

    if not app.debug and not app.testing:
        app.logger.setLevel(logging.INFO)

    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}})

    # Collaborators: one store + one mailer per process
    if store is None:
        store = build_store(app.config)
    if mailer is None:
        mailer = SmtpMailer.from_config(app.config)
    extra = {"clock": otp_clock} if otp_clock else {}
    app.extensions["otp_store"] = store
    app.extensions["mailer"] = mailer
    app.extensions["otp_service"] = OtpService.from_config(app.config, store, mailer, **extra)
    app.logger.info("[app] otp store=%s mailer=%s", type(store).__name__, type(mailer).__name__)

    # Health check
    @app.route("/")
    def health_check():
        return jsonify(status="ok"), 200

    @app.errorhandler(404)
    def handle_404(e):
        return jsonify(error="Not Found", path=request.path), 404

    # Global error handler
    @app.errorhandler(Exception)
    def handle_any_error(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify(error=e.description), e.code
        app.logger.exception("[app] unhandled error on %s %s", request.method, request.path)
        return jsonify(error="Internal Server Error"), 500

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(notify_bp)

    return app


# Optional local entrypoint (useful for quick dev runs)
if __name__ == "__main__":
    app = create_app()
    app.run(
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        debug=bool(os.environ.get("FLASK_DEBUG", "")),
    )
