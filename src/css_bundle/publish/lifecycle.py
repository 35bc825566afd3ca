"""Held buffer handles and their guaranteed release."""

from __future__ import annotations

import atexit
import logging
import signal
import threading
from pathlib import Path
from types import FrameType
from typing import IO, Callable, Iterable

LOGGER = logging.getLogger(__name__)

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGQUIT") if hasattr(signal, name)
)


class BufferHandles:
    """Keeps one append-mode handle open per buffer file between refreshes.

    Writes never go through these handles; they only claim the files for
    the lifetime of the owning bundler. ``acquire`` and ``release`` are both
    idempotent.
    """

    def __init__(self, paths: Iterable[Path], logger: logging.Logger | None = None) -> None:
        self.paths: tuple[Path, ...] = tuple(paths)
        self.logger = logger or LOGGER
        self._handles: dict[Path, IO[str]] = {}
        self._lock = threading.RLock()

    @property
    def is_open(self) -> bool:
        return bool(self._handles)

    def handles(self) -> tuple[IO[str], ...]:
        """Snapshot of the currently held handles."""

        with self._lock:
            return tuple(self._handles.values())

    def acquire(self) -> None:
        """Open any handle not already held; undo partial opens on failure."""

        with self._lock:
            opened: list[Path] = []
            try:
                for path in self.paths:
                    if path in self._handles:
                        continue
                    path.parent.mkdir(parents=True, exist_ok=True)
                    self._handles[path] = path.open("a+", encoding="utf-8")
                    opened.append(path)
            except OSError:
                for path in opened:
                    self._handles.pop(path).close()
                raise
            if opened:
                self.logger.debug("lifecycle.acquired paths=%s", [str(path) for path in opened])

    def release(self) -> None:
        """Close every held handle; safe to call repeatedly."""

        with self._lock:
            held = list(self._handles.items())
            self._handles.clear()
        for path, handle in held:
            try:
                handle.close()
            except OSError as exc:
                self.logger.error("lifecycle.close_failed path=%s error=%s", path, exc)
        if held:
            self.logger.debug("lifecycle.released count=%s", len(held))

    def __enter__(self) -> "BufferHandles":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def install_exit_hooks(
    release: Callable[[], None],
    signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
    logger: logging.Logger | None = None,
) -> Callable[[], None]:
    """Run ``release`` at interpreter exit and on termination signals.

    Signal handlers release and then exit the process. They can only be
    installed from the main thread; elsewhere only the atexit hook is
    registered. Returns a callable that removes every hook it installed.
    """

    effective_logger = logger or LOGGER
    atexit.register(release)
    previous_handlers: dict[signal.Signals, object] = {}

    def _on_signal(signum: int, frame: FrameType | None) -> None:
        effective_logger.info("lifecycle.signal signal=%s", signal.Signals(signum).name)
        release()
        raise SystemExit(0)

    if threading.current_thread() is threading.main_thread():
        for sig in signals:
            previous_handlers[sig] = signal.signal(sig, _on_signal)
    else:
        effective_logger.warning("lifecycle.signals_skipped reason=not_main_thread")

    def uninstall() -> None:
        atexit.unregister(release)
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)

    return uninstall
