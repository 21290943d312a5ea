# firebase_init.py
from __future__ import annotations

import os
import logging
from pathlib import Path
from typing import Mapping, Any

import firebase_admin
from firebase_admin import credentials

log = logging.getLogger(__name__)


def _credential(cfg: Mapping[str, Any]) -> credentials.Certificate:
    # 1) Prefer an explicit service-account file
    sa_path = cfg.get("FIREBASE_SA_PATH")
    if sa_path:
        p = Path(sa_path)
        if not p.is_file():
            log.warning(
                "[firebase] FIREBASE_SA_PATH points to a missing file (wanted: %s; cwd=%s)",
                sa_path, os.getcwd()
            )
            raise FileNotFoundError(f"Firebase service account JSON not found: {sa_path}")
        return credentials.Certificate(str(p))

    # 2) Fallback: individual env vars (private key stored with escaped newlines)
    project_id = cfg.get("FIREBASE_PROJECT_ID")
    client_email = cfg.get("FIREBASE_CLIENT_EMAIL")
    private_key = cfg.get("FIREBASE_PRIVATE_KEY")
    if not (project_id and client_email and private_key):
        raise RuntimeError(
            "Firebase credentials missing: set FIREBASE_SA_PATH or "
            "FIREBASE_PROJECT_ID / FIREBASE_CLIENT_EMAIL / FIREBASE_PRIVATE_KEY"
        )
    return credentials.Certificate({
        "type": "service_account",
        "project_id": project_id,
        "client_email": client_email,
        "private_key": private_key.replace("\\n", "\n"),
        "token_uri": "https://oauth2.googleapis.com/token",
    })


def init_firebase(cfg: Mapping[str, Any]) -> firebase_admin.App:
    """Return the default Firebase app, initializing it once from ``cfg``."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    db_url = cfg.get("FIREBASE_DATABASE_URL")
    if not db_url:
        raise RuntimeError("FIREBASE_DATABASE_URL is not set")

    app = firebase_admin.initialize_app(_credential(cfg), {"databaseURL": db_url})
    log.info("[firebase] initialized project=%s db=%s", app.project_id, db_url)
    return app
