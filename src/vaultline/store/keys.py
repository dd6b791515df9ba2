# keys.py
# Vaultline – Store subsystem: short-lived secret kept outside the store

import json
import os
import time
from pathlib import Path
from typing import Optional, Union

from vaultline.codec import b64dec, b64enc

SECRET_SIZE = 32
DEFAULT_MAX_AGE = 24 * 60 * 60  # 24 hours


class KeyJar:
    """
    Holds the vault secret in a 0600 JSON file with an expiry time.

    Once the secret expires (or is dropped) the store can no longer be
    decrypted, and the next expiry check wipes it.
    """

    def __init__(self, path: Union[str, Path], max_age: float = DEFAULT_MAX_AGE):
        self.path = Path(path)
        self.max_age = max_age

    def get(self) -> Optional[bytes]:
        """The current secret, or None when absent or expired."""
        try:
            record = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            print(f"Warning: Unreadable key file {self.path}: {e}")
            return None

        if record.get("expires", 0) <= time.time():
            self.clear()
            return None
        return b64dec(record["key"])

    def get_or_generate(self) -> bytes:
        secret = self.get()
        if secret is None:
            secret = os.urandom(SECRET_SIZE)
            self._write(secret)
        return secret

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def _write(self, secret: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        record = {"key": b64enc(secret), "expires": time.time() + self.max_age}
        tmp = self.path.with_name(self.path.name + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(record, f)
        os.replace(tmp, self.path)
