"""File-backed credential store.

Each session owns one directory, ``<root>/<owner_id>/<session_id>/``,
holding ``creds.json`` with whatever material the network needs to
resume without pairing again. A directory exists for exactly as long as
its session does.
"""
import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from chatgate.sessions.models import SessionKey

logger = logging.getLogger(__name__)

CREDENTIALS_FILE = "creds.json"


class CredentialStoreError(Exception):
    """Credential material could not be read or written."""


@dataclass
class CredentialBundle:
    """Credentials loaded for one session plus the hook that persists changes."""

    key: SessionKey
    credentials: dict[str, Any]
    _persist: Callable[[SessionKey, dict[str, Any]], None] = field(repr=False)

    def save(self, update: Optional[dict[str, Any]] = None) -> None:
        """Merge ``update`` into the held credentials and write them out."""
        if update:
            self.credentials.update(update)
        self._persist(self.key, self.credentials)


class FileCredentialStore:
    """Stores per-session credentials as JSON files under a root directory."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: SessionKey) -> Path:
        return self._root / key.owner_id / key.session_id

    def exists(self, key: SessionKey) -> bool:
        return self.path_for(key).is_dir()

    def provision(self, key: SessionKey) -> Path:
        """Create the credential directory for a session if missing."""
        path = self.path_for(key)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def load(self, key: SessionKey) -> CredentialBundle:
        """Load a session's credentials.

        A missing file yields empty credentials (a fresh pairing). A
        corrupt file is discarded and treated the same way.
        """
        creds_file = self.path_for(key) / CREDENTIALS_FILE
        credentials: dict[str, Any] = {}
        if creds_file.exists():
            try:
                data = json.loads(creds_file.read_text())
                if not isinstance(data, dict):
                    raise ValueError("credentials must be a JSON object")
                credentials = data
            except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
                logger.warning("Discarding corrupt credentials for %s: %s", key.session_id, exc)
                creds_file.unlink(missing_ok=True)
        return CredentialBundle(key=key, credentials=credentials, _persist=self.save)

    def save(self, key: SessionKey, credentials: dict[str, Any]) -> None:
        """Atomically replace a session's stored credentials.

        Raises:
            CredentialStoreError: If the session directory is gone or the
                write fails.
        """
        path = self.path_for(key)
        if not path.is_dir():
            raise CredentialStoreError(f"Credential directory missing for session {key.session_id}")
        target = path / CREDENTIALS_FILE
        tmp = path / f".{CREDENTIALS_FILE}.tmp"
        try:
            tmp.write_text(json.dumps(credentials, indent=2, sort_keys=True))
            os.replace(tmp, target)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            raise CredentialStoreError(f"Failed to write credentials: {exc}") from exc

    def delete(self, key: SessionKey) -> bool:
        """Remove a session's directory. Returns False if it did not exist."""
        path = self.path_for(key)
        if not path.exists():
            return False
        shutil.rmtree(path)
        owner_dir = path.parent
        try:
            owner_dir.rmdir()
        except OSError:
            pass  # other sessions remain
        return True

    def enumerate(self) -> list[SessionKey]:
        """List every session directory present on disk."""
        if not self._root.is_dir():
            return []
        keys = []
        for owner_dir in sorted(self._root.iterdir()):
            if not owner_dir.is_dir():
                continue
            for session_dir in sorted(owner_dir.iterdir()):
                if not session_dir.is_dir():
                    continue
                try:
                    keys.append(SessionKey(owner_dir.name, session_dir.name))
                except ValueError:
                    logger.warning("Skipping unexpected credential path %s", session_dir)
        return keys

    def has_valid_credentials(self, key: SessionKey) -> bool:
        """True when the directory holds credentials of an authenticated device.

        Authenticated credentials carry the device's own identity under
        ``me``; anything without it would only ever produce a new QR.
        """
        creds_file = self.path_for(key) / CREDENTIALS_FILE
        if not creds_file.is_file():
            return False
        try:
            data = json.loads(creds_file.read_text())
        except (json.JSONDecodeError, UnicodeDecodeError, OSError):
            return False
        if not isinstance(data, dict):
            return False
        me = data.get("me")
        return isinstance(me, dict) and bool(me.get("id"))
