"""Config store: loads the config file and keeps it in sync with disk.

The store owns a single immutable ``Config`` snapshot. Readers take
``store.current`` once per request; a reload builds a brand new snapshot
and publishes it with one reference assignment, so no request ever sees a
half-applied config.

Change handling is a small timer-driven state machine::

    IDLE --(file changed)--> PENDING_RELOAD --(debounce timer fires)--> IDLE + reload
                 PENDING_RELOAD --(file changed again)--> re-arm timer

Editors and ``cp``/``mv`` based deployments produce several filesystem
events per save; the debounce window collapses them into one reload.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import tomllib
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from tada.logging import get_logger
from tada.schema import Config

log = get_logger("tada.store")

DEFAULT_POLL_INTERVAL = 0.05
DEFAULT_DEBOUNCE_SECONDS = 0.1

OnChange = Callable[[Config], Awaitable[None]]


class ConfigError(Exception):
    """The config file could not be read, parsed, or validated."""


class WatchState(Enum):
    """State of the reload debouncer."""

    IDLE = "idle"
    PENDING_RELOAD = "pending_reload"


def load_config(path: str | Path) -> Config:
    """Read and validate a config file.

    ``.json`` files are parsed as JSON, everything else as TOML.

    Raises:
        ConfigError: the file is unreadable, malformed, or does not match
            the config schema.
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(raw)
        else:
            data = tomllib.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Cannot parse config file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a table/object at the top level")

    try:
        return Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc


class ConfigStore:
    """Holds the current config snapshot and hot-reloads it from disk."""

    def __init__(
        self,
        path: str | Path,
        on_change: OnChange | None = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._path = Path(path)
        self._on_change = on_change
        self._poll_interval = poll_interval
        self._debounce_seconds = debounce_seconds
        self._config: Config | None = None
        self._state = WatchState.IDLE
        self._timer: asyncio.TimerHandle | None = None
        self._poller: asyncio.Task[None] | None = None
        self._reload_tasks: set[asyncio.Task[bool]] = set()
        self._signature: tuple[int, int, int] | None = None
        self._generation = 0

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def generation(self) -> int:
        """Number of snapshots published so far (1 after a successful start)."""
        return self._generation

    @property
    def current(self) -> Config:
        if self._config is None:
            raise RuntimeError("Config store has not been started")
        return self._config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> Config:
        """Load the file, publish it, and begin watching for changes.

        Raises:
            ConfigError: the initial load failed. There is no previous
                snapshot to fall back on, so this is fatal for the caller.
        """
        self._signature = self._stat_signature()
        config = load_config(self._path)
        await self._publish(config)
        log.info("config_loaded", path=str(self._path), actions=len(config.actions))

        self._poller = asyncio.create_task(self._poll(), name="tada-config-poller")
        log.info("config_watching", path=str(self._path))
        return config

    async def stop(self) -> None:
        """Stop watching. The last published snapshot stays readable."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._state = WatchState.IDLE

        for task in (self._poller, *self._reload_tasks):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._poller = None
        self._reload_tasks.clear()

    # ------------------------------------------------------------------
    # Debounce state machine
    # ------------------------------------------------------------------

    def notify_change(self) -> None:
        """Record a change event and (re)arm the debounce timer."""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_seconds, self._on_timer)
        self._state = WatchState.PENDING_RELOAD

    def _on_timer(self) -> None:
        self._timer = None
        self._state = WatchState.IDLE
        task = asyncio.get_running_loop().create_task(self.reload())
        # An earlier reload may still be waiting on on_change
        self._reload_tasks.add(task)
        task.add_done_callback(self._reload_tasks.discard)

    async def reload(self) -> bool:
        """Reload from disk, keeping the previous snapshot on failure."""
        log.info("config_reloading", path=str(self._path))
        try:
            config = load_config(self._path)
        except ConfigError as exc:
            log.error("config_reload_failed", path=str(self._path), error=str(exc))
            return False

        await self._publish(config)
        log.info("config_reloaded", path=str(self._path), generation=self._generation)
        return True

    async def _publish(self, config: Config) -> None:
        self._config = config
        self._generation += 1
        if self._on_change is None:
            return
        try:
            await self._on_change(config)
        except Exception:
            log.exception("config_on_change_failed", path=str(self._path))

    # ------------------------------------------------------------------
    # File polling
    # ------------------------------------------------------------------

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            signature = self._stat_signature()
            # A missing file is usually an mv-based deploy in progress
            if signature is None or signature == self._signature:
                continue
            self._signature = signature
            log.debug("config_change_detected", path=str(self._path))
            self.notify_change()

    def _stat_signature(self) -> tuple[int, int, int] | None:
        try:
            st = self._path.stat()
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size, st.st_ino)
