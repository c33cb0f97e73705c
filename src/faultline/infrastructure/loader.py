"""
Lazy loading of optional helper code.

A helper location is ``"package.module:attribute"`` (or ``"package.module"``
for the module itself). Loading imports the module on a worker thread, never
on the caller's, and signals once it is ready; repeat requests never import
twice. Waiters run on the event loop when one was running, otherwise on the
worker thread that finished the import.
"""

import asyncio
import concurrent.futures
import importlib
import sys
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from faultline.infrastructure.background import get_executor
from faultline.infrastructure.providers import ScreenshotProvider, StackTraceProvider
from faultline.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

HelperLocation = Union[str, StackTraceProvider, ScreenshotProvider]


class LoadState(Enum):
    """Helper load states."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


def parse_location(location: str) -> Tuple[str, Optional[str]]:
    """
    Split a helper location into module path and attribute name.

    Examples:
        >>> parse_location("faultline.infrastructure.providers:format_call_stack")
        ('faultline.infrastructure.providers', 'format_call_stack')
        >>> parse_location("shots")
        ('shots', None)
    """
    module_path, _, attribute = location.partition(":")
    if not module_path:
        raise ValueError(f"Invalid helper location: {location!r}")
    return module_path, attribute or None


class HelperLoader:
    """
    Fetch helpers asynchronously and signal once ready.

    - Only one load per location is ever in flight; callers arriving while it
      is loading are queued and signalled when it settles.
    - Once loaded (or failed), further ``load`` calls do not import again and
      signal immediately.
    - A module already imported by the process counts as loaded.
    - Callable locations are helpers already; they are loaded from the start.
    """

    def __init__(self) -> None:
        self._states: Dict[str, LoadState] = {}
        self._helpers: Dict[str, Any] = {}
        self._waiters: Dict[str, List[Callable[[], None]]] = {}
        self._lock = threading.RLock()

    def state(self, location: Optional[HelperLocation]) -> LoadState:
        if location is None:
            return LoadState.UNLOADED
        if callable(location):
            return LoadState.LOADED
        with self._lock:
            state = self._states.get(location, LoadState.UNLOADED)
            if state is LoadState.UNLOADED and self._resolve_if_imported(location):
                return LoadState.LOADED
            return state

    def is_loaded(self, location: Optional[HelperLocation]) -> bool:
        return self.state(location) is LoadState.LOADED

    def get(self, location: HelperLocation) -> Any:
        """Return a loaded helper."""
        if callable(location):
            return location
        if not self.is_loaded(location):
            raise LookupError(f"Helper not loaded: {location}")
        return self._helpers[location]

    def load(self, location: HelperLocation, on_ready: Optional[Callable[[], None]] = None) -> None:
        """
        Start loading ``location`` and call ``on_ready`` once it settles.

        ``on_ready`` runs whether the load succeeded or failed; check
        :meth:`state` inside it. Never raises.
        """
        key = location  # callables are always LOADED, so key is a str past the first check
        with self._lock:
            state = self.state(location)
            if state not in (LoadState.LOADED, LoadState.FAILED):
                if on_ready is not None:
                    self._waiters.setdefault(key, []).append(on_ready)
                if state is LoadState.LOADING:
                    return
                self._states[key] = LoadState.LOADING

        if state in (LoadState.LOADED, LoadState.FAILED):
            if on_ready is not None:
                self._signal(location, on_ready)
            return

        logger.debug("helper_load_started", location=key)
        try:
            module_path, _ = parse_location(key)
        except ValueError as e:
            self._settle(key, error=e)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop: waiters are signalled from the worker thread.
            future = get_executor().submit(importlib.import_module, module_path)
            future.add_done_callback(lambda f: self._on_import_done(key, f))
            return

        pending = loop.run_in_executor(get_executor(), importlib.import_module, module_path)
        pending.add_done_callback(lambda f: self._on_import_done(key, f))

    def _on_import_done(
        self,
        location: str,
        future: Union["asyncio.Future[Any]", "concurrent.futures.Future[Any]"],
    ) -> None:
        if future.cancelled():
            self._settle(location, error=asyncio.CancelledError())
            return
        error = future.exception()
        if error is not None:
            self._settle(location, error=error)
        else:
            self._settle(location, module=future.result())

    def _settle(self, location: str, module: Any = None, error: Optional[BaseException] = None) -> None:
        if error is None:
            try:
                helper = self._extract(location, module)
            except AttributeError as e:
                error = e
        with self._lock:
            if error is None:
                self._helpers[location] = helper
                self._states[location] = LoadState.LOADED
            else:
                self._states[location] = LoadState.FAILED
            waiters = self._waiters.pop(location, [])

        if error is None:
            logger.info("helper_loaded", location=location)
        else:
            logger.warning(
                "helper_load_failed",
                location=location,
                error=str(error),
                error_type=type(error).__name__,
            )

        for waiter in waiters:
            self._signal(location, waiter)

    def _resolve_if_imported(self, location: str) -> bool:
        try:
            module_path, _ = parse_location(location)
        except ValueError:
            return False
        module = sys.modules.get(module_path)
        if module is None:
            return False
        try:
            self._helpers[location] = self._extract(location, module)
        except AttributeError:
            return False
        self._states[location] = LoadState.LOADED
        return True

    @staticmethod
    def _extract(location: str, module: Any) -> Any:
        _, attribute = parse_location(location)
        if attribute is None:
            return module
        return getattr(module, attribute)

    @staticmethod
    def _signal(location: HelperLocation, waiter: Callable[[], None]) -> None:
        try:
            waiter()
        except Exception as e:
            logger.error(
                "helper_waiter_failed",
                location=location if isinstance(location, str) else repr(location),
                error=str(e),
                error_type=type(e).__name__,
            )
