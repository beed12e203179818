"""Re-run a build command whenever files under a directory change.

The watchdog observer thread is the only producer: it translates filesystem
notifications into :class:`ChangeEvent` objects and puts them on a queue. The
calling thread is the only consumer. It runs the command once up front, then
blocks on the queue, sleeps for the debounce delay after every qualifying
event and runs the command again, one run at a time.

A failing run is not swallowed: the error propagates out of
:meth:`ChangeWatcher.watch` and ends the session (fail-fast).
"""
from __future__ import annotations

import logging
import os
import queue
import time
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from types import TracebackType
from typing import Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from .providers.runner import CommandRunner

LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.1

# A rename is a modification of the name; access notifications never qualify.
QUALIFYING_KINDS = frozenset({"created", "modified", "deleted", "moved"})


class WatchError(RuntimeError):
    """Raised when the notification channel fails; fatal to the session."""


class WatchState(str, Enum):
    """Lifecycle of a watch session."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    RUNNING = "running"
    TERMINATED = "terminated"


@dataclass(slots=True, frozen=True)
class ChangeEvent:
    """A single filesystem notification."""

    kind: str
    path: str
    is_directory: bool = False

    @property
    def qualifies(self) -> bool:
        """Return ``True`` for create, modify, move and remove notifications."""
        return self.kind in QUALIFYING_KINDS


class EventSource(Protocol):
    """Blocking supplier of change events."""

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """Return the next event, or ``None`` once *timeout* expires.

        Raises :class:`WatchError` when the channel has failed.
        """


class _QueueingHandler(FileSystemEventHandler):
    """Forward watchdog events onto a queue, dropping ignored directories.

    Each ignore entry is a path prefix relative to *root*: ``target`` drops
    ``<root>/target/**`` but not ``<root>/src/target/**``.
    """

    def __init__(
        self,
        events: queue.Queue[ChangeEvent],
        root: Path,
        ignore_dirs: Collection[str],
    ) -> None:
        super().__init__()
        self._events = events
        self._root = root
        self._ignore_prefixes = tuple(
            parts for parts in (PurePosixPath(entry).parts for entry in ignore_dirs) if parts
        )

    def on_any_event(self, event: FileSystemEvent) -> None:
        paths = [os.fsdecode(event.src_path)]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(os.fsdecode(dest))
        if all(self._is_ignored(path) for path in paths):
            return
        self._events.put(
            ChangeEvent(kind=event.event_type, path=paths[-1], is_directory=event.is_directory)
        )

    def _is_ignored(self, path: str) -> bool:
        if not self._ignore_prefixes:
            return False
        try:
            relative = Path(path).relative_to(self._root)
        except ValueError:
            return False
        parts = relative.parts
        return any(parts[: len(prefix)] == prefix for prefix in self._ignore_prefixes)


class WatchSubscription:
    """Recursive watchdog subscription over *root*, used as a context manager."""

    def __init__(
        self,
        root: Path,
        *,
        ignore_dirs: Collection[str] = (),
        observer_factory: Callable[[], BaseObserver] = Observer,
        poll_interval: float = 0.5,
    ) -> None:
        """Configure the subscription; nothing is watched until entered."""
        self.root = Path(root).resolve()
        self.ignore_dirs = tuple(ignore_dirs)
        self.poll_interval = poll_interval
        self._observer_factory = observer_factory
        self._observer: BaseObserver | None = None
        self._events: queue.Queue[ChangeEvent] = queue.Queue()

    def __enter__(self) -> WatchSubscription:
        observer = self._observer_factory()
        handler = _QueueingHandler(self._events, self.root, self.ignore_dirs)
        try:
            observer.schedule(handler, str(self.root), recursive=True)
            observer.start()
        except OSError as exc:
            raise WatchError(f"failed to watch {self.root}: {exc}") from exc
        self._observer = observer
        LOGGER.debug("Watching %s (ignoring %s)", self.root, ", ".join(self.ignore_dirs))
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Stop the observer thread and wait for it to finish."""
        observer = self._observer
        self._observer = None
        if observer is None:
            return
        observer.stop()
        if observer.is_alive():
            observer.join()

    def get(self, timeout: float | None = None) -> ChangeEvent | None:
        """Block for the next event, checking the observer stays healthy."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = self.poll_interval
            if deadline is not None:
                wait = max(0.0, min(wait, deadline - time.monotonic()))
            try:
                return self._events.get(timeout=wait)
            except queue.Empty:
                pass
            self._check_alive()
            if deadline is not None and time.monotonic() >= deadline:
                return None

    def _check_alive(self) -> None:
        observer = self._observer
        if observer is None:
            raise WatchError("watch subscription is closed")
        if not observer.is_alive():
            raise WatchError("file watcher stopped unexpectedly")
        for emitter in observer.emitters:
            if not emitter.is_alive():
                raise WatchError(f"file watcher for {emitter.watch.path} stopped unexpectedly")


class ChangeWatcher:
    """Debounced re-run loop for a single command."""

    def __init__(
        self,
        runner: CommandRunner,
        command: str,
        args: Sequence[str] = (),
        *,
        debounce: float = DEFAULT_DEBOUNCE_SECONDS,
        coalesce: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        on_trigger: Callable[[ChangeEvent | None], None] | None = None,
    ) -> None:
        """Bind the command to run; *on_trigger* is told about every run."""
        if debounce < 0:
            raise ValueError("debounce must be non-negative")
        self.command = command
        self.args = tuple(args)
        self.debounce = debounce
        self.coalesce = coalesce
        self.runs = 0
        self._runner = runner
        self._sleep = sleep
        self._on_trigger = on_trigger
        self._state = WatchState.IDLE

    @property
    def state(self) -> WatchState:
        """Return the current lifecycle state."""
        return self._state

    def watch(self, source: EventSource) -> None:
        """Run once, then re-run after each qualifying event until failure."""
        try:
            self._run(None)
            while True:
                event = source.get()
                if event is None:
                    continue
                if not event.qualifies:
                    LOGGER.debug("Ignoring %s event for %s", event.kind, event.path)
                    continue
                self._debounce(source, event)
                self._run(event)
        finally:
            self._transition(WatchState.TERMINATED)

    def _debounce(self, source: EventSource, event: ChangeEvent) -> None:
        self._transition(WatchState.DEBOUNCING)
        LOGGER.debug("%s event for %s", event.kind, event.path)
        if not self.coalesce:
            self._sleep(self.debounce)
            return
        burst = 1
        while True:
            extra = source.get(timeout=self.debounce)
            if extra is None:
                break
            if extra.qualifies:
                burst += 1
        LOGGER.debug("Coalesced %d events into one run", burst)

    def _run(self, event: ChangeEvent | None) -> None:
        if self._on_trigger is not None:
            self._on_trigger(event)
        self._transition(WatchState.RUNNING)
        self._runner.run(self.command, self.args)
        self.runs += 1
        self._transition(WatchState.IDLE)

    def _transition(self, state: WatchState) -> None:
        if state is not self._state:
            LOGGER.debug("watch state %s -> %s", self._state.value, state.value)
        self._state = state


def watch_directory(
    runner: CommandRunner,
    command: str,
    args: Sequence[str] = (),
    *,
    root: Path | None = None,
    debounce: float = DEFAULT_DEBOUNCE_SECONDS,
    coalesce: bool = False,
    ignore_dirs: Collection[str] = (),
    on_trigger: Callable[[ChangeEvent | None], None] | None = None,
    observer_factory: Callable[[], BaseObserver] = Observer,
) -> None:
    """Subscribe to *root* (default: cwd) and drive a :class:`ChangeWatcher`."""
    watcher = ChangeWatcher(
        runner,
        command,
        args,
        debounce=debounce,
        coalesce=coalesce,
        on_trigger=on_trigger,
    )
    subscription = WatchSubscription(
        root or Path.cwd(),
        ignore_dirs=ignore_dirs,
        observer_factory=observer_factory,
    )
    with subscription:
        watcher.watch(subscription)


__all__ = [
    "ChangeEvent",
    "ChangeWatcher",
    "EventSource",
    "QUALIFYING_KINDS",
    "WatchError",
    "WatchState",
    "WatchSubscription",
    "watch_directory",
]
