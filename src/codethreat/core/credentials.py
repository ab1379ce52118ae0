"""
Credential Store - Saved API key and server URL for the current user.

The record lives at ``~/.codethreat/.credentials`` and is only readable by
its owner.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import structlog


CREDENTIALS_FILE = ".credentials"


class CredentialStore:
    """Opaque key/value record holding the API key and server URL"""

    def __init__(self, path: Optional[Path] = None, home: Optional[Path] = None):
        home = Path(home) if home else Path.home()
        self.path = Path(path) if path else home / ".codethreat" / CREDENTIALS_FILE
        self.logger = structlog.get_logger(__name__)

    def load(self) -> Dict[str, str]:
        """
        Read the saved credentials.

        Returns:
            Dict with ``api_key`` and/or ``server_url``; empty if the record
            is missing or unreadable.
        """
        if not self.path.exists():
            return {}

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            self.logger.warning("credentials_unreadable", path=str(self.path), error=str(e))
            return {}

        if not isinstance(data, dict):
            self.logger.warning("credentials_unreadable", path=str(self.path), error="not an object")
            return {}

        credentials = {}
        if data.get("apiKey"):
            credentials["api_key"] = data["apiKey"]
        if data.get("serverUrl"):
            credentials["server_url"] = data["serverUrl"]
        return credentials

    def save(self, api_key: str, server_url: str) -> Path:
        """Write the record with owner-only permissions"""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        record = {
            "apiKey": api_key,
            "serverUrl": server_url,
            "savedAt": datetime.now(timezone.utc).isoformat(),
        }

        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2)
        os.chmod(self.path, 0o600)

        self.logger.info("credentials_saved", path=str(self.path))
        return self.path

    def clear(self) -> bool:
        """Remove the record. Returns True if a record was removed."""
        if not self.path.exists():
            return False
        self.path.unlink()
        self.logger.info("credentials_cleared", path=str(self.path))
        return True
