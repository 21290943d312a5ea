# models/otp_record.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


def otp_key(email: str) -> str:
    """Realtime Database keys may not contain '.', so dots become commas."""
    return email.replace(".", ",")


@dataclass
class OtpRecord:
    key: str             # sanitized email, see otp_key()
    otp: str             # 6-digit code
    expires_at: int      # epoch millis
    attempts: int = 0

    def to_value(self) -> dict:
        """Shape written under otps/<key> (camelCase, the key is the path)."""
        return {"otp": self.otp, "expiresAt": self.expires_at, "attempts": self.attempts}

    @classmethod
    def from_value(cls, key: str, value: Mapping[str, Any]) -> "OtpRecord":
        return cls(
            key=key,
            otp=str(value.get("otp") or ""),
            expires_at=int(value.get("expiresAt") or 0),
            attempts=int(value.get("attempts") or 0),
        )
