# services/otp_store.py
"""
Persistence for login OTPs.

Records live at ``otps/<email-with-commas-for-dots>``. Two backends share one
interface:

  - FirebaseOtpStore  Realtime Database via firebase_admin.db (production)
  - MemoryOtpStore    process-local dict (development, tests); its
                      __contains__ / __len__ exist for tests and dev shells

Every backend failure is raised as StoreError so callers never see
SDK-specific exceptions.
"""
from __future__ import annotations

import threading
from typing import Optional, Dict, Mapping, Any

import firebase_admin
from firebase_admin import db as rtdb
from firebase_admin.exceptions import FirebaseError

from models.otp_record import OtpRecord

OTP_ROOT = "otps"


class StoreError(RuntimeError):
    """The key-value store could not complete a read or write."""


class _RecordVanished(Exception):
    """Aborts a transaction whose node was deleted under it."""


class FirebaseOtpStore:
    def __init__(self, app: firebase_admin.App, root: str = OTP_ROOT):
        self._app = app
        self._root = root

    def _ref(self, key: str) -> rtdb.Reference:
        return rtdb.reference(f"{self._root}/{key}", app=self._app)

    def get(self, key: str) -> Optional[OtpRecord]:
        try:
            value = self._ref(key).get()
        except (FirebaseError, ValueError, OSError) as e:
            raise StoreError(f"read otps/{key} failed: {e!r}") from e
        if not value:
            return None
        return OtpRecord.from_value(key, value)

    def put(self, record: OtpRecord) -> None:
        try:
            self._ref(record.key).set(record.to_value())
        except (FirebaseError, ValueError, OSError) as e:
            raise StoreError(f"write otps/{record.key} failed: {e!r}") from e

    def delete(self, key: str) -> None:
        try:
            self._ref(key).delete()
        except (FirebaseError, ValueError, OSError) as e:
            raise StoreError(f"delete otps/{key} failed: {e!r}") from e

    def increment_attempts(self, key: str) -> Optional[OtpRecord]:
        """
        Atomically bump ``attempts`` using a Realtime Database transaction
        (optimistic, retried by the SDK on concurrent writes). Returns the
        updated record, or None if it vanished in the meantime.
        """
        def _bump(current):
            # returning None would make the SDK write null, which it rejects
            if not current:
                raise _RecordVanished()
            updated = dict(current)
            updated["attempts"] = int(updated.get("attempts") or 0) + 1
            return updated

        try:
            value = self._ref(key).transaction(_bump)
        except _RecordVanished:
            return None
        except (FirebaseError, ValueError, OSError) as e:
            raise StoreError(f"increment otps/{key} failed: {e!r}") from e
        return OtpRecord.from_value(key, value)


class MemoryOtpStore:
    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[OtpRecord]:
        with self._lock:
            value = self._data.get(key)
            return OtpRecord.from_value(key, value) if value else None

    def put(self, record: OtpRecord) -> None:
        with self._lock:
            self._data[record.key] = record.to_value()

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def increment_attempts(self, key: str) -> Optional[OtpRecord]:
        with self._lock:
            value = self._data.get(key)
            if not value:
                return None
            value["attempts"] = int(value.get("attempts") or 0) + 1
            return OtpRecord.from_value(key, value)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def build_store(cfg: Mapping[str, Any]):
    """Pick the backend named by OTP_STORE."""
    kind = (cfg.get("OTP_STORE") or "firebase").strip().lower()
    if kind == "memory":
        return MemoryOtpStore()
    if kind == "firebase":
        from firebase_init import init_firebase
        return FirebaseOtpStore(init_firebase(cfg))
    raise ValueError(f"Unknown OTP_STORE: {kind!r}")
