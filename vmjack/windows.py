"""
Windows password reset over instance metadata.

The guest agent watches the ``windows-keys`` metadata entry.  For each new
key it creates or resets the named account and writes a JSON line to
serial port 4 carrying the password, encrypted with the public key
(RSA-OAEP, SHA-1).
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

WINDOWS_KEYS = "windows-keys"
PASSWORD_PORT = 4
KEY_TTL = timedelta(minutes=5)


def _b64_int(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.b64encode(raw).decode("ascii")


class WindowsKey:
    """One-shot RSA key used to receive a reset password."""

    def __init__(self, key_size: int = 2048) -> None:
        self._private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        numbers = self._private_key.public_key().public_numbers()
        self.modulus = _b64_int(numbers.n)
        self.exponent = _b64_int(numbers.e)

    def metadata_value(
        self, username: str, email: str | None = None, now: datetime | None = None
    ) -> str:
        expire_on = (now or datetime.now(timezone.utc)) + KEY_TTL
        return json.dumps(
            {
                "userName": username,
                "modulus": self.modulus,
                "exponent": self.exponent,
                "email": email or "",
                "expireOn": expire_on.strftime("%Y-%m-%dT%H:%M:%SZ"),
            }
        )

    def find_response(self, serial_output: str) -> str | None:
        """Return the encrypted password answering this key, if present."""
        for line in reversed(serial_output.splitlines()):
            try:
                entry = json.loads(line)
            except ValueError:
                continue
            if isinstance(entry, dict) and entry.get("modulus") == self.modulus:
                if entry.get("errorMessage"):
                    raise ValueError(entry["errorMessage"])
                return entry.get("encryptedPassword")
        return None

    def decrypt(self, encrypted_password: str) -> str:
        plain = self._private_key.decrypt(
            base64.b64decode(encrypted_password),
            padding.OAEP(
                mgf=padding.MGF1(algorithm=hashes.SHA1()),
                algorithm=hashes.SHA1(),
                label=None,
            ),
        )
        return plain.decode("utf-8")
