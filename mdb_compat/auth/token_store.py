"""
Client-local token storage.

Tokens are held under the fixed keys ``auth_access_token`` and
``auth_refresh_token``. MemoryTokenStore keeps them for the life of the
process; FileTokenStore persists them to a JSON file so a restarted client
can resume its session.
"""

import json
import logging
import os
from pathlib import Path

from ..constants import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY

logger = logging.getLogger(__name__)


class TokenStore:
    """Key/value storage for the token pair."""

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def store_tokens(self, access_token: str, refresh_token: str) -> None:
        self.set(ACCESS_TOKEN_KEY, access_token)
        self.set(REFRESH_TOKEN_KEY, refresh_token)

    def clear_tokens(self) -> None:
        self.remove(ACCESS_TOKEN_KEY)
        self.remove(REFRESH_TOKEN_KEY)

    @property
    def access_token(self) -> str | None:
        return self.get(ACCESS_TOKEN_KEY)

    @property
    def refresh_token(self) -> str | None:
        return self.get(REFRESH_TOKEN_KEY)


class MemoryTokenStore(TokenStore):
    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)


class FileTokenStore(TokenStore):
    """
    JSON file backed token storage.

    The file is rewritten atomically on every change and created with
    owner-only permissions.
    """

    def __init__(self, path: str | os.PathLike[str]):
        self._path = Path(path)
        self._values = self._load()

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            values = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable token store {self._path}: {e}")
            return {}
        if not isinstance(values, dict):
            return {}
        return {k: v for k, v in values.items() if isinstance(v, str)}

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(self._values, fh)
        os.replace(tmp_path, self._path)

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._save()

    def remove(self, key: str) -> None:
        if key in self._values:
            del self._values[key]
            self._save()
