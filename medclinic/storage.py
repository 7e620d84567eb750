"""
Durable Key/Value Storage.

The session's three durable keys (``token``, ``userRole``, ``userId``)
live in a small string-to-string store that survives restarts and is
shared by every client instance running under the same OS account.

Two implementations share the ``KeyValueStorage`` protocol:

- ``MemoryStorage``: process-local, for tests and throwaway sessions.
- ``FileStorage``: a JSON object persisted atomically to disk and, by
  default, sealed with AES-256-GCM.

Security model (``FileStorage`` with ``encrypted=True``)
--------------------------------------------------------
- The key is derived at runtime from machine identity (hostname + OS
  username) via PBKDF2-HMAC-SHA256 with a per-machine random salt.  The
  key is **never** persisted, so a copied storage file is useless on a
  different machine or account.
- Every write uses a fresh GCM nonce; the file layout is
  ``nonce (16) || tag (16) || ciphertext``.
- A file that fails authentication is treated as empty, which the
  session manager reads as "logged out".
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import socket
import stat
import threading
from pathlib import Path
from typing import Iterable, Mapping, Optional, Protocol, runtime_checkable

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from medclinic.logger import StructuredLogger
from medclinic.models.service_models import StorageEvent

_NONCE_LEN: int = 16
_TAG_LEN: int = 16


@runtime_checkable
class KeyValueStorage(Protocol):
    """String key/value store used for the durable session keys."""

    def get_item(self, key: str) -> Optional[str]: ...  # noqa: E704

    def set_item(self, key: str, value: str) -> None: ...  # noqa: E704

    def remove_item(self, key: str) -> None: ...  # noqa: E704

    def set_items(self, items: Mapping[str, str]) -> None: ...  # noqa: E704

    def remove_items(self, keys: Iterable[str]) -> None: ...  # noqa: E704

    def keys(self) -> list[str]: ...  # noqa: E704

    def reload(self) -> list[StorageEvent]: ...  # noqa: E704


def diff_snapshots(
    before: dict[str, str],
    after: dict[str, str],
) -> list[StorageEvent]:
    """Return one ``StorageEvent`` per key whose value differs."""
    events: list[StorageEvent] = []
    for key in sorted(before.keys() | after.keys()):
        old_value = before.get(key)
        new_value = after.get(key)
        if old_value != new_value:
            events.append(StorageEvent(key=key, old_value=old_value, new_value=new_value))
    return events


class MemoryStorage:
    """In-process storage.  ``reload()`` never reports changes."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def set_items(self, items: Mapping[str, str]) -> None:
        self._data.update({key: str(value) for key, value in items.items()})

    def remove_items(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)

    def reload(self) -> list[StorageEvent]:
        return []


class FileStorage:
    """Disk-backed storage shared between client instances.

    Reads are served from an in-memory view.  A write updates the view,
    then lays the changed keys over a fresh read of the file and rewrites
    it atomically, once per call.  ``reload()`` re-reads the file and
    reports keys that another process changed.

    Parameters
    ----------
    path:
        Location of the storage file.  Parent directories are created.
    logger:
        Structured logger.  Values are never logged.
    encrypted:
        Seal the file with AES-256-GCM.  Instances sharing a file must
        agree on this flag.
    salt_path:
        Location of the per-machine salt.  Defaults to
        ``~/.medclinic_storage_salt``.
    kdf_iterations:
        PBKDF2 iteration count used to derive the file key.
    """

    _KDF_ITERATIONS: int = 600_000
    _KEY_LENGTH: int = 32  # 256 bits

    def __init__(
        self,
        path: Path,
        logger: StructuredLogger,
        encrypted: bool = True,
        salt_path: Optional[Path] = None,
        kdf_iterations: Optional[int] = None,
    ) -> None:
        self._path: Path = Path(path)
        self._logger: StructuredLogger = logger
        self._encrypted: bool = encrypted
        self._salt_path: Path = salt_path or (Path.home() / ".medclinic_storage_salt")
        self._kdf_iterations: int = kdf_iterations or self._KDF_ITERATIONS
        self._key: Optional[bytes] = None
        self._lock: threading.RLock = threading.RLock()
        self._data: dict[str, str] = self._read_file()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._apply({key: str(value)})

    def remove_item(self, key: str) -> None:
        self._apply({key: None})

    def set_items(self, items: Mapping[str, str]) -> None:
        """Store every entry of *items* with a single file rewrite."""
        self._apply({key: str(value) for key, value in items.items()})

    def remove_items(self, keys: Iterable[str]) -> None:
        """Remove *keys* with a single file rewrite."""
        self._apply(dict.fromkeys(keys))

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)

    def reload(self) -> list[StorageEvent]:
        """Re-read the file and return the keys changed by someone else.

        Our own writes already updated the in-memory view, so they do
        not show up here.
        """
        with self._lock:
            fresh = self._read_file()
            events = diff_snapshots(self._data, fresh)
            self._data = fresh
        if events:
            self._logger.debug(
                "Storage reload picked up %d external change(s): %s",
                len(events),
                ", ".join(event.key for event in events),
            )
        return events

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _apply(self, changes: Mapping[str, Optional[str]]) -> None:
        """Apply *changes* (``None`` removes a key) to the view and the file.

        The file is re-read first and only *changes* are laid over it, so
        keys another instance wrote since our last ``reload()`` survive.
        Those keys are not copied into the in-memory view: the next
        ``reload()`` still reports them.  Nothing is written when the file
        already holds the requested values.
        """
        with self._lock:
            for key, value in changes.items():
                if value is None:
                    self._data.pop(key, None)
                else:
                    self._data[key] = value

            on_disk = self._read_file()
            updated = dict(on_disk)
            for key, value in changes.items():
                if value is None:
                    updated.pop(key, None)
                else:
                    updated[key] = value
            if updated != on_disk:
                self._write_file(updated)

    def _read_file(self) -> dict[str, str]:
        try:
            raw: bytes = self._path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as exc:
            self._logger.warning("Could not read storage file '%s': %s", self._path, exc)
            return {}

        if not raw:
            return {}

        try:
            plaintext = self._open(raw) if self._encrypted else raw
            data = json.loads(plaintext.decode("utf-8"))
        except (ValueError, KeyError) as exc:
            # GCM authentication failures raise ValueError as well.
            self._logger.warning(
                "Storage file '%s' is corrupted or was sealed by another "
                "identity; treating it as empty: %s",
                self._path,
                exc,
            )
            return {}

        if not isinstance(data, dict):
            self._logger.warning("Storage file '%s' is not a JSON object.", self._path)
            return {}
        return {str(key): str(value) for key, value in data.items() if value is not None}

    def _write_file(self, data: dict[str, str]) -> None:
        plaintext: bytes = json.dumps(data, ensure_ascii=False, sort_keys=True).encode("utf-8")
        blob: bytes = self._seal(plaintext) if self._encrypted else plaintext

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(f"{self._path.name}.{os.getpid()}.tmp")
        tmp_path.write_bytes(blob)
        if platform.system() != "Windows":
            tmp_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600
        os.replace(tmp_path, self._path)

    # ------------------------------------------------------------------
    # Encryption helpers
    # ------------------------------------------------------------------

    def _seal(self, plaintext: bytes) -> bytes:
        cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=os.urandom(_NONCE_LEN))
        ciphertext, tag = cipher.encrypt_and_digest(plaintext)
        return cipher.nonce + tag + ciphertext

    def _open(self, blob: bytes) -> bytes:
        if len(blob) < _NONCE_LEN + _TAG_LEN:
            raise ValueError("storage blob too short")
        nonce = blob[:_NONCE_LEN]
        tag = blob[_NONCE_LEN:_NONCE_LEN + _TAG_LEN]
        ciphertext = blob[_NONCE_LEN + _TAG_LEN:]
        cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=nonce)
        return cipher.decrypt_and_verify(ciphertext, tag)

    def _derive_key(self) -> bytes:
        """Derive (once per instance) the 256-bit AES key.

        Deterministic for a given (hostname, OS username, salt) triple so
        that every instance on the machine can read the file.

        Raises
        ------
        OSError
            If the salt file cannot be created or read.
        """
        if self._key is None:
            password: str = f"{socket.gethostname()}:{getpass.getuser()}"
            self._key = PBKDF2(
                password=password,
                salt=self._get_or_create_salt(),
                dkLen=self._KEY_LENGTH,
                count=self._kdf_iterations,
                hmac_hash_module=SHA256,
            )
        return self._key

    def _get_or_create_salt(self) -> bytes:
        if self._salt_path.exists():
            data: bytes = self._salt_path.read_bytes()
            if len(data) == 32:
                return data
            self._logger.warning(
                "Salt file has unexpected length (%d); regenerating.",
                len(data),
            )
        salt: bytes = os.urandom(32)
        self._salt_path.parent.mkdir(parents=True, exist_ok=True)
        self._salt_path.write_bytes(salt)
        if platform.system() != "Windows":
            self._salt_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600
        self._logger.info("Per-machine storage salt created at %s.", self._salt_path)
        return salt
