# backend/config.py
import os

# Load .env in local/dev; harmless in deployments that set real env vars
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass


def _to_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}

def _to_int(val: str | None, default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default

def _to_float(val: str | None, default: float) -> float:
    try:
        return float(val) if val is not None else default
    except ValueError:
        return default


class Config:
    # ── Core ─────────────────────────────────────────────────────────────────
    DEBUG = _to_bool(os.environ.get("DEBUG") or os.environ.get("FLASK_DEBUG"), False)
    TESTING = False
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret")  # ← override in prod!
    PREFERRED_URL_SCHEME = os.environ.get("PREFERRED_URL_SCHEME", "https")
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # ── OTP login ───────────────────────────────────────────────────────────
    OTP_TTL_MINUTES = _to_int(os.environ.get("OTP_TTL_MINUTES"), 15)
    OTP_MAX_ATTEMPTS = _to_int(os.environ.get("OTP_MAX_ATTEMPTS"), 3)
    OTP_ROLLBACK_ON_SEND_FAILURE = _to_bool(os.environ.get("OTP_ROLLBACK_ON_SEND_FAILURE"), False)
    OTP_STORE = os.environ.get("OTP_STORE", "firebase")   # 'firebase' | 'memory'

    # ── Firebase (Realtime Database) ────────────────────────────────────────
    FIREBASE_SA_PATH      = os.environ.get("FIREBASE_SA_PATH")
    FIREBASE_PROJECT_ID   = os.environ.get("FIREBASE_PROJECT_ID")
    FIREBASE_CLIENT_EMAIL = os.environ.get("FIREBASE_CLIENT_EMAIL")
    FIREBASE_PRIVATE_KEY  = os.environ.get("FIREBASE_PRIVATE_KEY")   # "\n" escaped, as Vercel/Cloud Run store it
    FIREBASE_DATABASE_URL = os.environ.get("FIREBASE_DATABASE_URL")  # https://<project>.firebaseio.com

    # ── SMTP ────────────────────────────────────────────────────────────────
    SMTP_HOST     = os.environ.get("SMTP_HOST", "smtp.titan.email")
    SMTP_PORT     = _to_int(os.environ.get("SMTP_PORT"), 465)
    SMTP_USER     = os.environ.get("SMTP_USER")
    SMTP_PASS     = os.environ.get("SMTP_PASS")
    SMTP_SECURITY = os.environ.get("SMTP_SECURITY", "ssl")          # 'ssl' | 'starttls'
    SMTP_TIMEOUT  = _to_int(os.environ.get("SMTP_TIMEOUT"), 20)
    MAIL_FROM_NAME = os.environ.get("MAIL_FROM_NAME", "KIMUN Secretariat")
    ADMIN_EMAIL   = os.environ.get("ADMIN_EMAIL")

    # ── Bulk announcements ──────────────────────────────────────────────────
    BULK_EMAIL_BATCH_SIZE = _to_int(os.environ.get("BULK_EMAIL_BATCH_SIZE"), 10)
    BULK_EMAIL_BATCH_DELAY_SEC = _to_float(os.environ.get("BULK_EMAIL_BATCH_DELAY_SEC"), 1.0)


class ProductionConfig(Config):
    DEBUG = False
    SECRET_KEY = os.environ.get("SECRET_KEY")


class DevelopmentConfig(Config):
    DEBUG = True
    OTP_STORE = os.environ.get("OTP_STORE", "memory")


class TestingConfig(Config):
    DEBUG = True
    TESTING = True
    OTP_STORE = "memory"
    OTP_TTL_MINUTES = 15
    OTP_MAX_ATTEMPTS = 3
    OTP_ROLLBACK_ON_SEND_FAILURE = False
    SMTP_USER = "secretariat@kimun.test"
    ADMIN_EMAIL = "admin@kimun.test"
    BULK_EMAIL_BATCH_SIZE = 2
    BULK_EMAIL_BATCH_DELAY_SEC = 0.0


CONFIGS = {
    "production": ProductionConfig,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "default": Config,
}
