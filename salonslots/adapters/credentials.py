"""
Storage for the REST store API key in the OS keyring, with a file fallback.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)


KEYRING_SERVICE_NAME = "salonslots"


class CredentialStore:
    """
    Keeps the API key for one backend URL.

    The keyring is preferred. When no usable keyring backend exists the key
    is written to a plaintext file readable only by the current user, and
    ``insecure_storage_warning`` explains why.
    """

    def __init__(self, base_url: str, cache_file: Path | None = None):
        self.base_url = base_url
        self.cache_file = cache_file or Path.home() / ".salonslots_api_key"
        self._keyring_supported = True
        self._insecure_storage_warning: Optional[str] = None

    @property
    def backend(self) -> str:
        """Return the active backend (keyring or file)."""
        return "keyring" if self._keyring_supported else "file"

    @property
    def insecure_storage_warning(self) -> Optional[str]:
        return self._insecure_storage_warning

    def get_api_key(self) -> Optional[str]:
        """Load the key from keyring or disk. Returns None if none is stored."""
        if self._keyring_supported:
            try:
                value = keyring.get_password(KEYRING_SERVICE_NAME, self.base_url)
            except KeyringError as exc:  # pragma: no cover - environment dependent
                self._handle_keyring_failure(f"reading credentials failed: {exc}")
            else:
                if value:
                    return value

        return self._load_from_file()

    def set_api_key(self, api_key: str) -> None:
        if self._keyring_supported:
            try:
                keyring.set_password(KEYRING_SERVICE_NAME, self.base_url, api_key)
                return
            except KeyringError as exc:  # pragma: no cover - environment dependent
                self._handle_keyring_failure(f"writing credentials failed: {exc}")

        self._save_to_file(api_key)

    def clear(self) -> None:
        """Remove the key from every backend."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, self.base_url)
        except PasswordDeleteError:
            pass  # nothing stored
        except KeyringError as exc:  # pragma: no cover - environment dependent
            logger.warning("Could not remove credentials from keyring: %s", exc)

    def _load_from_file(self) -> Optional[str]:
        if not self.cache_file.exists():
            return None
        try:
            with open(self.cache_file, "r", encoding="utf-8") as file_handle:
                return file_handle.read().strip() or None
        except OSError as exc:
            logger.warning("Could not load API key file %s: %s", self.cache_file, exc)
            return None

    def _save_to_file(self, api_key: str) -> None:
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as file_handle:
                file_handle.write(api_key)
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save API key to %s: %s", self.cache_file, exc)

    def _handle_keyring_failure(self, reason: str) -> None:
        if self._keyring_supported:
            logger.warning(
                "Secure credential storage unavailable (%s). Falling back to plaintext file.",
                reason,
            )
        self._keyring_supported = False
        if not self._insecure_storage_warning:
            self._insecure_storage_warning = (
                f"Secure credential storage unavailable ({reason}). "
                f"Falling back to plaintext file at {self.cache_file}."
            )
