"""
Token persistence — a single OAuth2 token record in ``tokens.json``.

The file holds exactly the record fields, as plain JSON, and is readable
by the owning user only.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger("exactpilot.auth.token_store")

TOKENS_FILENAME = "tokens.json"


@dataclass
class TokenRecord:
    """Persisted access/refresh token pair with its refresh deadline."""

    access_token: str
    refresh_token: str
    refresh_at: int
    current_division: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "refresh_at": self.refresh_at,
            "current_division": self.current_division,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenRecord:
        """Build a record from its stored form.

        Raises:
            KeyError: If a required field is missing.
            TypeError: If a field has the wrong type.
            ValueError: If a token is empty.
        """
        if not isinstance(data, dict):
            raise TypeError(f"expected an object, got {type(data).__name__}")
        for key in ("access_token", "refresh_token"):
            if not isinstance(data[key], str):
                raise TypeError(f"{key} must be a string")
            if not data[key]:
                raise ValueError(f"{key} is empty")
        division = data.get("current_division")
        if not _is_int(data["refresh_at"]):
            raise TypeError("refresh_at must be an integer")
        if division is not None and not _is_int(division):
            raise TypeError("current_division must be an integer or null")
        return cls(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            refresh_at=data["refresh_at"],
            current_division=division,
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class TokenStore:
    """Reads and writes the token record in a per-user directory."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir

    @property
    def path(self) -> Path:
        return self.data_dir / TOKENS_FILENAME

    def load(self) -> TokenRecord | None:
        """Load the stored record.

        A missing or unparsable file means "not authenticated" and yields None.
        """
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
            record = TokenRecord.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.path, e)
            return None
        logger.debug("Loaded tokens from %s", self.path)
        return record

    def save(self, record: TokenRecord) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(record.to_dict(), indent=2))
        # Restrict file permissions to owner only
        self.path.chmod(0o600)
        logger.debug("Saved tokens to %s", self.path)

    def delete(self) -> bool:
        """Delete the stored record.

        Returns:
            True if a file was deleted, False if none existed.
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted token file %s", self.path)
        return True
