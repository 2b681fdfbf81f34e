"""SSH key helpers for the ``ssh-keys`` metadata entry.

The entry holds one ``user:key`` pair per line.
"""

from __future__ import annotations

import os
from pathlib import Path

from vmjack.base.exceptions import ConfigurationError

SSH_KEYS = "ssh-keys"
# Legacy entry name, read but never written.
LEGACY_SSH_KEYS = "sshKeys"

DEFAULT_PUBLIC_KEY_PATH = "~/.ssh/id_rsa.pub"


def ensure_key_comment(key: str, default_comment: str = "vmjack-user") -> str:
    """Return *key* with a trailing comment, adding *default_comment* if missing."""
    parts = key.strip().split()
    if len(parts) < 3:
        parts.append(default_comment)
    return " ".join(parts)


def parse_ssh_keys(value: str | None) -> list[tuple[str, str]]:
    """Split an ``ssh-keys`` value into ``(user, key)`` pairs, in order."""
    pairs = []
    for line in (value or "").splitlines():
        user, sep, key = line.strip().partition(":")
        if sep and user:
            pairs.append((user, key))
    return pairs


def append_ssh_key(existing: str | None, username: str, key: str) -> str:
    """Append a ``user:key`` line; duplicates are kept."""
    line = f"{username}:{ensure_key_comment(key, username)}"
    return f"{existing}\n{line}" if existing else line


def read_public_key(path: str | os.PathLike[str] | None = None) -> str:
    """Read a public key file.

    Raises:
        ConfigurationError: If the file does not exist or is empty.
    """
    key_path = Path(path or DEFAULT_PUBLIC_KEY_PATH).expanduser()
    if not key_path.is_file():
        raise ConfigurationError(f"Cannot bootstrap server without a public key: {key_path}")
    key = key_path.read_text().strip()
    if not key:
        raise ConfigurationError(f"Public key file is empty: {key_path}")
    return key
