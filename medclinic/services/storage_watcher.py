"""
Storage Watcher Service.

Cross-instance session sync.  Watches the durable storage file with the
``watchdog`` library; when another client instance rewrites it, the
file is reloaded and one ``StorageEvent`` per changed key is emitted to
the registered callback (typically ``SessionManager.handle_storage_event``).

The observer runs on a daemon thread.  When an asyncio event loop is
supplied, callbacks are marshalled onto it with
``loop.call_soon_threadsafe`` so session state is only mutated from the
loop thread.
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from medclinic.logger import StructuredLogger
from medclinic.models.service_models import StorageEvent
from medclinic.services.base_service import BaseService
from medclinic.storage import KeyValueStorage


class _StorageFileHandler(FileSystemEventHandler):
    """Watchdog handler that reacts only to the storage file.

    Atomic rewrites show up as a move of a temp file onto the target, so
    ``on_moved`` is checked against the destination path.
    """

    def __init__(self, target: Path, on_change: Callable[[], None]) -> None:
        super().__init__()
        self._target = target
        self._on_change = on_change

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event.src_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle(event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle(event.dest_path, event.is_directory)

    def _handle(self, raw_path: object, is_directory: bool) -> None:
        if is_directory or not raw_path:
            return
        if Path(str(raw_path)).resolve() != self._target:
            return
        self._on_change()


class StorageWatcherService(BaseService):
    """Observe the storage file and re-emit external key changes.

    Parameters
    ----------
    storage:
        The storage whose file is watched; its ``reload()`` computes
        which keys changed.
    path:
        The storage file path.
    logger:
        Structured logger instance.
    loop:
        Event loop to marshal callbacks onto.  ``None`` dispatches on
        the observer thread.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        path: Path,
        logger: StructuredLogger,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        super().__init__(logger)
        self._storage = storage
        self._path = Path(path).expanduser().resolve()
        self._loop = loop

        self._observer: Optional[Observer] = None
        self._callback: Optional[Callable[[StorageEvent], None]] = None
        self._callback_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the watchdog observer on a daemon thread.

        Safe to call multiple times; duplicate calls are no-ops.
        """
        if self._observer is not None and self._observer.is_alive():
            self._logger.debug("Storage watcher already running.")
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        handler = _StorageFileHandler(self._path, self._on_file_changed)

        self._observer = Observer()
        self._observer.daemon = True
        self._observer.schedule(handler, str(self._path.parent), recursive=False)
        self._observer.start()
        self._logger.info("Storage watcher started on: %s", self._path)

    def stop(self) -> None:
        """Stop the observer and wait for its thread to finish.

        Safe to call when the observer is not running.
        """
        if self._observer is None:
            return

        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None
        self._logger.info("Storage watcher stopped.")

    @property
    def is_running(self) -> bool:
        """``True`` if the observer thread is alive."""
        return self._observer is not None and self._observer.is_alive()

    def set_callback(self, callback: Optional[Callable[[StorageEvent], None]]) -> None:
        """Register (or clear, with ``None``) the storage-event callback."""
        with self._callback_lock:
            self._callback = callback

    def poll(self) -> list[StorageEvent]:
        """Reload the storage now and dispatch any changes.

        Used by the observer thread; also handy where file-system
        notifications are unavailable (network drives).
        """
        events = self._storage.reload()
        for event in events:
            self._dispatch_event(event)
        return events

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _on_file_changed(self) -> None:
        try:
            self.poll()
        except OSError as exc:
            self._logger.warning("Storage reload failed: %s", exc)

    def _dispatch_event(self, event: StorageEvent) -> None:
        with self._callback_lock:
            cb = self._callback

        if cb is None:
            return

        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(cb, event)
        else:
            cb(event)
