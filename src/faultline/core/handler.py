"""
Handler: process-wide coordinator.

Holds global configuration (helper locations, delivery destinations, report
callback), the active Guard, the ledger of reported exceptions, and routes
uncaught errors into managed exceptions according to the configured scope.

Usage:
    handler = Handler.initialize(FaultlineSettings.from_yaml("faultline.yaml"))
    handler.install()
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, Union

from faultline.core.exceptions import ManagedException
from faultline.core.guard import Guard
from faultline.core.registry import ErrorKind, VariantRegistry, classify_error, variant_registry
from faultline.infrastructure import hooks
from faultline.infrastructure.environment import RuntimeEnvironment
from faultline.infrastructure.loader import HelperLoader, HelperLocation
from faultline.infrastructure.transport import ReportTransport
from faultline.shared.infrastructure.config import FaultlineSettings
from faultline.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Module-level threading lock for safe singleton initialization.
_init_lock = threading.Lock()

ReportCallback = Callable[[ManagedException], Any]

UNKNOWN_ERROR_KEY = "unknown_error"

_UNSET: Any = object()


class ScopeOption(IntEnum):
    """Which uncaught errors the handler turns into managed exceptions."""

    NONE = 0  # nothing
    EXCEPTIONS = 1  # only values that already are managed exceptions
    ALL = 2  # everything

    @classmethod
    def parse(cls, value: Union["ScopeOption", int, str]) -> "ScopeOption":
        """
        Examples:
            >>> ScopeOption.parse("exceptions")
            <ScopeOption.EXCEPTIONS: 1>
            >>> ScopeOption.parse(2)
            <ScopeOption.ALL: 2>
        """
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown scope {value!r}; expected none, exceptions or all") from None
        return cls(value)


@dataclass(frozen=True)
class ReportRecord:
    """Ledger entry."""

    exception: ManagedException
    timestamp: float


class Handler:
    """
    Global error-capture configuration and routing.

    One instance normally lives for the whole process (see
    :meth:`get_instance`), but every managed exception accepts an explicit
    ``handler`` so independent instances can coexist.

    Args:
        settings: Initial configuration
        loader: Helper loader
        transport: Report delivery
        environment: Runtime environment checks
        registry: Variant registry used for classification
        clock: Returns the current time in seconds
    """

    _instance: Optional["Handler"] = None

    def __init__(
        self,
        settings: Optional[FaultlineSettings] = None,
        *,
        loader: Optional[HelperLoader] = None,
        transport: Optional[ReportTransport] = None,
        environment: Optional[RuntimeEnvironment] = None,
        registry: Optional[VariantRegistry] = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = settings or FaultlineSettings()
        self.settings = settings
        self.loader = loader or HelperLoader()
        self.transport = transport or ReportTransport(timeout=settings.transport_timeout)
        self.environment = environment or RuntimeEnvironment(location=settings.location)
        self.registry = registry or variant_registry
        self._clock = clock

        self._stacktrace_helper: Optional[HelperLocation] = settings.stacktrace_helper
        self._screenshot_helper: Optional[HelperLocation] = settings.screenshot_helper
        self._report_post_url: Optional[str] = settings.report_post_url
        self._report_post_headers: Dict[str, str] = dict(settings.report_post_headers)
        self._client_id: Optional[str] = settings.client_id
        self._to: Optional[str] = settings.to
        self.platform_url: str = settings.platform_url
        self._report_callback: Optional[ReportCallback] = None
        self._before_report: Optional[ReportCallback] = None
        self._scope = ScopeOption.parse(settings.scope)
        self._guard = self._default_guard(settings)

        self._reported: List[ReportRecord] = []
        self._attempted_to_load_stacktrace_helper = False
        self._attempted_to_load_screenshot_helper = False
        self._warned_unconfigured: set[str] = set()
        self._installed = False

        self._warn_unconfigured()

    # -- singleton ------------------------------------------------------------

    @classmethod
    def get_instance(cls) -> "Handler":
        """Get or create the process-wide handler (thread-safe)."""
        if cls._instance is not None:
            return cls._instance
        with _init_lock:
            if cls._instance is None:
                cls._instance = cls()
        return cls._instance

    @classmethod
    def initialize(cls, settings: Optional[FaultlineSettings] = None, **kwargs: Any) -> "Handler":
        """Create the process-wide handler at startup, replacing any existing one."""
        with _init_lock:
            cls._instance = cls(settings, **kwargs)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing purposes)."""
        with _init_lock:
            cls._instance = None

    # -- configuration --------------------------------------------------------

    def configure(
        self,
        *,
        stacktrace_helper: Optional[HelperLocation] = _UNSET,
        screenshot_helper: Optional[HelperLocation] = _UNSET,
        report_post_url: Optional[str] = _UNSET,
        report_post_headers: Optional[Mapping[str, str]] = _UNSET,
        client_id: Optional[str] = _UNSET,
        to: Optional[str] = _UNSET,
        report_callback: Optional[ReportCallback] = _UNSET,
        before_report: Optional[ReportCallback] = _UNSET,
        guard: Guard = _UNSET,
        scope: Union[ScopeOption, int, str] = _UNSET,
    ) -> "Handler":
        """
        Apply configuration additively: only the arguments passed change.

        Returns:
            The handler, for chaining
        """
        if stacktrace_helper is not _UNSET:
            self._stacktrace_helper = stacktrace_helper
        if screenshot_helper is not _UNSET:
            self._screenshot_helper = screenshot_helper
        if report_post_url is not _UNSET:
            self._report_post_url = report_post_url
        if report_post_headers is not _UNSET:
            self._report_post_headers = dict(report_post_headers or {})
        if client_id is not _UNSET:
            self._client_id = client_id
        if to is not _UNSET:
            self._to = to
        if report_callback is not _UNSET:
            self._report_callback = report_callback
        if before_report is not _UNSET:
            self._before_report = before_report
        if guard is not _UNSET:
            self.guard = guard
        if scope is not _UNSET:
            self.scope = scope

        self._warn_unconfigured()
        return self

    @property
    def scope(self) -> ScopeOption:
        return self._scope

    @scope.setter
    def scope(self, value: Union[ScopeOption, int, str]) -> None:
        self._scope = ScopeOption.parse(value)

    @property
    def guard(self) -> Guard:
        return self._guard

    @guard.setter
    def guard(self, value: Guard) -> None:
        if not isinstance(value, Guard):
            raise TypeError(f"Expected a Guard, got {type(value).__name__}")
        self._guard = value

    @property
    def stacktrace_helper(self) -> Optional[HelperLocation]:
        return self._stacktrace_helper

    @property
    def screenshot_helper(self) -> Optional[HelperLocation]:
        return self._screenshot_helper

    @property
    def report_post_url(self) -> Optional[str]:
        return self._report_post_url

    @property
    def report_post_headers(self) -> Dict[str, str]:
        return dict(self._report_post_headers)

    @property
    def client_id(self) -> Optional[str]:
        return self._client_id

    @property
    def to(self) -> Optional[str]:
        return self._to

    @property
    def report_callback(self) -> Optional[ReportCallback]:
        return self._report_callback

    @property
    def before_report(self) -> Optional[ReportCallback]:
        return self._before_report

    @staticmethod
    def _default_guard(settings: FaultlineSettings) -> Guard:
        return (
            Guard()
            .protect_against_burst(settings.burst_count, settings.burst_seconds)
            .protect_against_burst(settings.lifetime_count)
        )

    def _warn_unconfigured(self) -> None:
        resources = {
            "stacktrace_helper": self._stacktrace_helper,
            "screenshot_helper": self._screenshot_helper,
            "report_post_url": self._report_post_url,
            "client_id": self._client_id,
        }
        for resource, value in resources.items():
            if not value and resource not in self._warned_unconfigured:
                self._warned_unconfigured.add(resource)
                logger.warning(
                    "resource_unconfigured",
                    resource=resource,
                    message=f"{resource} is not configured; the dependent capability is disabled",
                )

    # -- helpers --------------------------------------------------------------

    @property
    def attempted_to_load_stacktrace_helper(self) -> bool:
        return self._attempted_to_load_stacktrace_helper

    @property
    def attempted_to_load_screenshot_helper(self) -> bool:
        return self._attempted_to_load_screenshot_helper

    def load_stacktrace_helper(self, on_ready: Optional[Callable[[], None]] = None) -> None:
        """Load the stack-trace helper in the background."""
        if not self._stacktrace_helper:
            return
        self._attempted_to_load_stacktrace_helper = True
        self.loader.load(self._stacktrace_helper, on_ready)

    def load_screenshot_helper(self, on_ready: Optional[Callable[[], None]] = None) -> None:
        """Load the screenshot helper and call ``on_ready`` once it settles."""
        if not self._screenshot_helper:
            return
        self._attempted_to_load_screenshot_helper = True
        self.loader.load(self._screenshot_helper, on_ready)

    # -- ledger ---------------------------------------------------------------

    @property
    def reported_exceptions(self) -> Tuple[ReportRecord, ...]:
        return tuple(self._reported)

    def retrieve_reported_exceptions_count(self, seconds: Optional[float] = None) -> int:
        """
        Count reported exceptions.

        Args:
            seconds: Only count reports newer than ``now - seconds``; all-time if omitted

        Returns:
            Number of ledger entries in the window
        """
        if seconds is None:
            return len(self._reported)

        threshold = self._clock() - seconds
        count = 0
        for record in reversed(self._reported):
            if record.timestamp <= threshold:
                break
            count += 1
        return count

    def _push_reported_exception(self, exception: ManagedException) -> None:
        self._reported.append(ReportRecord(exception=exception, timestamp=self._clock()))

    # -- uncaught errors ------------------------------------------------------

    def classify(self, value: object) -> Type[ManagedException]:
        """Variant that should wrap ``value``; the base exception when nothing more specific fits."""
        if isinstance(value, ManagedException):
            return type(value)
        spec = self.registry.for_kind(classify_error(value))
        if spec is None:
            spec = self.registry.for_kind(ErrorKind.GENERIC)
        return spec.variant if spec is not None else ManagedException

    def handle(
        self,
        error: object = None,
        *,
        message: Optional[str] = None,
        url: Optional[str] = None,
        line_number: Optional[int] = None,
        column_number: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> Optional[ManagedException]:
        """
        Turn an uncaught value into a managed exception and report it.

        Args:
            error: The uncaught value (error, managed exception, string, or anything else)
            message: Message to use when ``error`` carries none
            url: Source location of the error
            line_number: Line of the error
            column_number: Column of the error
            data: Extra data for the new exception

        Returns:
            The reported exception, or None when the scope filters it out
        """
        try:
            scope = self._scope
            if scope is ScopeOption.NONE:
                return None
            if scope is ScopeOption.EXCEPTIONS and not isinstance(error, ManagedException):
                return None

            exception = self._build(error, message, dict(data or {}))
            site = {"url": url, "line_number": line_number, "column_number": column_number}
            for key, value in site.items():
                if value is not None:
                    exception.data.setdefault(key, value)
            exception.report()
            return exception
        except Exception as e:
            logger.error("uncaught_error_handling_failed", error=str(e), error_type=type(e).__name__)
            return None

    def _build(self, error: object, message: Optional[str], data: Dict[str, Any]) -> ManagedException:
        if isinstance(error, ManagedException):
            return error

        variant = self.classify(error)
        has_native_stack = isinstance(error, BaseException) and error.__traceback__ is not None
        options = variant.default_options().stacktrace(has_native_stack)

        if isinstance(error, BaseException):
            return variant(error, options=options, data=data, handler=self)
        if error is None:
            return variant(message, options=options, data=data, handler=self)
        if isinstance(error, str):
            return variant(message or error, options=options, data=data, handler=self)

        data[UNKNOWN_ERROR_KEY] = error
        return variant(message or str(error), options=options, data=data, handler=self)

    def install(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> "Handler":
        """
        Route uncaught errors to :meth:`handle`.

        Chains ``sys.excepthook`` and ``threading.excepthook`` once per
        handler; also chains ``loop``'s exception handler when given.
        """
        if not self._installed:
            hooks.install_excepthook(self)
            hooks.install_threading_excepthook(self)
            self._installed = True
            logger.info("uncaught_error_hooks_installed", scope=self._scope.name.lower())
        if loop is not None:
            hooks.install_loop_exception_handler(self, loop)
        return self

    async def flush(self) -> None:
        """Wait for in-flight report deliveries."""
        await self.transport.drain()

    def wait_for_deliveries(self, timeout: Optional[float] = None) -> bool:
        """Block until deliveries started outside an event loop settle; False on timeout."""
        return self.transport.wait(timeout)
