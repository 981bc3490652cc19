"""Configuration and file-source layer for the shiny hunt tracker."""

from __future__ import annotations

import json
import logging
import math
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union

from pydantic import ValidationError

from schemas import Sections, TrackerConfig
from shinytracker.errors import (
    ConfigLoadError,
    SectionDisabledError,
    SourceInvalidError,
    SourceNotConfiguredError,
    SourceNotFoundError,
)

logger = logging.getLogger(__name__)

_NON_NEGATIVE_INT = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class JsonFileStorage:
    """Simple JSON file storage abstraction.

    Reads a JSON object from a given path. The tracker never writes its
    configuration back.
    """

    path: Path

    def read(self) -> Dict[str, Any]:
        if not self.path.exists():
            raise FileNotFoundError(f"Config file does not exist: {self.path}")
        raw_text = self.path.read_text(encoding="utf-8")
        payload = json.loads(raw_text)
        if not isinstance(payload, dict):
            raise ValueError("Config file must contain a JSON object")
        return payload


class ConfigStore:
    """Hot-reloadable holder of the current :class:`TrackerConfig`.

    Public API:

    * :meth:`load`     – (re)read the file and swap the configuration.
    * :attr:`current`  – the configuration snapshot, ``None`` before a load.
    * :meth:`sections` – effective feature toggles.
    """

    def __init__(self, path: Path) -> None:
        self._storage = JsonFileStorage(path=path)
        self._lock = threading.Lock()
        self._config: Optional[TrackerConfig] = None

    @property
    def path(self) -> Path:
        return self._storage.path

    @property
    def current(self) -> Optional[TrackerConfig]:
        return self._config

    def load(self) -> TrackerConfig:
        """Read the config file and replace the held configuration.

        On failure the previous configuration stays in place and
        :class:`ConfigLoadError` is raised.
        """
        try:
            raw = self._storage.read()
            loaded = TrackerConfig.model_validate(raw)
        except (OSError, UnicodeDecodeError, ValueError, ValidationError) as exc:
            raise ConfigLoadError(f"Error loading {self.path.name}: {exc}") from exc

        with self._lock:
            self._config = loaded

        sections = Sections.overlay(loaded.sections)
        logger.info(
            "Config loaded from %s; sections: %s",
            self.path,
            ", ".join(f"{k}={v}" for k, v in sections.model_dump().items()),
        )
        return loaded

    def snapshot(self) -> TrackerConfig:
        """Return the current configuration, failing if none was loaded."""
        with self._lock:
            loaded = self._config
        if loaded is None:
            raise ConfigLoadError("Configuration has not been loaded")
        return loaded

    def sections(self) -> Sections:
        config = self._config
        return Sections.overlay(config.sections if config is not None else None)


class ConfigWatcher:
    """Polls a file for changes and fires a debounced callback.

    Every detected change restarts the debounce timer, so a burst of writes
    (editors often save in several steps) results in a single callback.
    """

    def __init__(
        self,
        path: Path,
        on_change: Callable[[], Any],
        debounce: float = 0.1,
        poll_interval: float = 0.25,
    ) -> None:
        self.path = path
        self._on_change = on_change
        self._debounce = debounce
        self._poll_interval = poll_interval
        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._signature: Optional[Tuple[int, int]] = None
        self._missing_warned = False

    def _stat(self) -> Optional[Tuple[int, int]]:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            if not self._missing_warned:
                logger.warning("Config file not found: %s", self.path)
                self._missing_warned = True
            return None
        self._missing_warned = False
        return (st.st_mtime_ns, st.st_size)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._signature = self._stat()
        self._thread = threading.Thread(
            target=self._run, name="config-watcher", daemon=True
        )
        self._thread.start()
        logger.info("Watching %s for changes", self.path)

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._poll_interval * 4)
            self._thread = None
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _run(self) -> None:
        while not self._stop.wait(self._poll_interval):
            try:
                signature = self._stat()
            except OSError:
                logger.exception("Failed to stat config file: %s", self.path)
                continue
            if signature is None or signature == self._signature:
                continue
            self._signature = signature
            self.notify()

    def notify(self) -> None:
        """Register a change; cancels any pending callback and re-arms it."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._debounce, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._timer_lock:
            self._timer = None
        self._on_change()


def reload_config(store: ConfigStore) -> bool:
    """Reload after a file change, keeping the old config on failure."""
    try:
        store.load()
    except ConfigLoadError as exc:
        logger.warning("%s; keeping previous configuration", exc)
        return False
    return True


class TrackerFiles:
    """Reads the files referenced by the configuration.

    Every call goes to disk; nothing is cached.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def resolve(self, configured: str) -> Path:
        path = Path(configured)
        if path.is_absolute():
            return path
        return self.base_dir / path

    def public_path(self, path: Path) -> str:
        """Path relative to the base directory with ``/`` separators."""
        try:
            relative = os.path.relpath(path, self.base_dir)
        except ValueError:
            # No relative form exists (e.g. another Windows drive).
            relative = str(path)
        return relative.replace("\\", "/")

    def _configured_path(self, configured: Any, label: str) -> Path:
        if configured is None or configured == "":
            raise SourceNotConfiguredError(f"{label} path not configured")
        if not isinstance(configured, str):
            raise SourceInvalidError(f"{label} path must be a string")
        return self.resolve(configured)

    def _existing(self, configured: Any, label: str) -> Path:
        path = self._configured_path(configured, label)
        if not path.exists():
            raise SourceNotFoundError(f"{label} not found")
        return path

    def _read_text(self, path: Path, label: str) -> str:
        try:
            return path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Error reading %s %s: %s", label.lower(), path, exc)
            raise SourceInvalidError(f"Failed to read {label.lower()}") from exc

    def read_count(self, configured: Any, label: str) -> str:
        path = self._existing(configured, label)
        return self._read_text(path, label)

    def image_path(self, configured: Any, label: str) -> str:
        path = self._existing(configured, label)
        return self.public_path(path)

    def living_dex(
        self, config: TrackerConfig, sections: Sections
    ) -> Tuple[int, Union[int, float]]:
        if not sections.livingDex:
            raise SectionDisabledError("Living dex is disabled")
        path = self._configured_path(config.livingDexCount, "Living dex count")

        total = config.livingDexTotal
        if isinstance(total, bool) or not isinstance(total, (int, float)):
            raise SourceInvalidError("Living dex total must be a non-negative number")
        try:
            finite = math.isfinite(total)
        except OverflowError as exc:
            raise SourceInvalidError("Living dex total is too large") from exc
        if not finite or total < 0:
            raise SourceInvalidError("Living dex total must be a non-negative number")

        if not path.exists():
            raise SourceNotFoundError("Living dex count file not found")
        text = self._read_text(path, "Living dex count file")
        if not _NON_NEGATIVE_INT.fullmatch(text):
            raise SourceInvalidError("Living dex count must be a non-negative integer")
        try:
            count = int(text)
        except ValueError as exc:
            raise SourceInvalidError("Living dex count is too large") from exc
        return count, total
