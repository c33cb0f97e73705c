"""
Managed exceptions.

A ManagedException wraps a Python error, captures diagnostics for it
(stack trace, screenshot, structural snapshot, environment data) as far as
the active Guard allows, and reports it to the configured sinks exactly once.

Variants (ArgumentException, TypeException, ...) share all of this and differ
only in their tag name, default Options and the Python error they wrap when
built from a plain message. Variants form a single inheritance chain rooted
at ManagedException.
"""

import asyncio
import json
import traceback
import types
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Optional, Type, Union

from faultline.core.lifecycle import CaptureLifecycle, CaptureState
from faultline.core.options import Options
from faultline.core.registry import ErrorKind, VariantSpec, variant_registry
from faultline.infrastructure.loader import LoadState
from faultline.infrastructure.providers import ScreenshotProvider, StackTraceProvider, encode_image
from faultline.shared.domain.exceptions import CaptureFailure, ConstructionFailure, TransportFailure
from faultline.shared.infrastructure.error_handler import error_boundary
from faultline.shared.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from faultline.core.handler import Handler

logger = get_logger(__name__)

CONDITION_MESSAGE = "Condition evaluated to truthy"
STACKTRACE_UNAVAILABLE = "Unable to retrieve stacktrace"


def _process_handler() -> "Handler":
    from faultline.core.handler import Handler

    return Handler.get_instance()


def _describe_error(error: Optional[BaseException]) -> Optional[Dict[str, Any]]:
    if error is None:
        return None
    error_type = type(error)
    return {
        "type": error_type.__qualname__,
        "module": error_type.__module__,
        "args": list(error.args),
    }


class ManagedException(Exception):
    """
    Base managed exception, tag name ``"Exception"``.

    Args:
        message: Error message, or an existing error to wrap
        name: Name to report under; defaults to the wrapped error's own
            (non-builtin) class name, else the variant's tag
        inner_exception: Exception this one wraps. Chains must be acyclic.
        data: Arbitrary extra information; default fields are merged in
            without overwriting keys already present
        options: Requested options; defaults to a clone of the variant's default
        handler: Handler to use; defaults to the process-wide one

    Construction never raises. A failure while building the instance is
    logged and leaves a partially populated exception that can still be
    reported.
    """

    tag: ClassVar[str] = "Exception"
    native: ClassVar[Type[BaseException]] = Exception
    _default_options: ClassVar[Options] = Options()

    def __init_subclass__(
        cls,
        tag: Optional[str] = None,
        native: Optional[Type[BaseException]] = None,
        default_options: Optional[Options] = None,
        kind: Optional[ErrorKind] = None,
        **kwargs: Any,
    ):
        super().__init_subclass__(**kwargs)
        managed_bases = [base for base in cls.__bases__ if issubclass(base, ManagedException)]
        if len(managed_bases) != 1:
            raise TypeError(
                f"{cls.__name__} must derive from exactly one managed exception, "
                f"got {[base.__name__ for base in managed_bases]}"
            )
        base = managed_bases[0]

        cls.tag = tag or cls.__dict__.get("tag") or cls.__name__
        if native is not None:
            cls.native = native
        # Seeded once; later changes to the base's default are not inherited.
        cls._default_options = default_options.clone() if default_options is not None else base.default_options()
        variant_registry.register(VariantSpec(cls.tag, cls, cls.native, kind))

    def __init__(
        self,
        message: Union[str, BaseException, None] = None,
        *,
        name: Optional[str] = None,
        inner_exception: Optional[BaseException] = None,
        data: Optional[Dict[str, Any]] = None,
        options: Optional[Options] = None,
        handler: Optional["Handler"] = None,
    ):
        super().__init__(message)
        self._handler = handler
        self._error: BaseException = message if isinstance(message, BaseException) else Exception()
        self._name = name or self.tag
        self._inner_exception = inner_exception
        self._data: Dict[str, Any] = data if data is not None else {}
        self._stacktrace: Optional[str] = None
        self._options = options.clone() if options is not None else Options().toggle_all(False)
        self._guarded_options = Options().toggle_all(False)
        self._lifecycle = CaptureLifecycle()
        self._report_requested = False
        self._finalized = False

        try:
            if self._handler is None:
                self._handler = _process_handler()
            self._error = self._wrap(message)
            self._name = name or self._resolve_name()
            if options is None:
                self._options = type(self).default_options()
            self._guarded_options = self._handler.guard.restrict(self._options, self)
            self._populate_default_data()

            if self._guarded_options.stacktrace():
                self._stacktrace = self._retrieve_stacktrace()
            if self._guarded_options.screenshot():
                self._take_screenshot()
            else:
                self._lifecycle.mark_complete()
            if self._guarded_options.dom_dump():
                self._capture_structure()
        except Exception as e:
            self._lifecycle.mark_complete()
            failure = ConstructionFailure(str(e))
            logger.error(
                "exception_construction_failed",
                exception_name=self._name,
                error=str(failure),
                error_type=type(failure).__name__,
                original_type=type(e).__name__,
            )

    # -- static helpers -------------------------------------------------------

    @classmethod
    def throw_if(cls, condition: Any, message: Optional[str] = None, **config: Any) -> None:
        """Raise this variant when ``condition`` is truthy."""
        if condition:
            raise cls(message or CONDITION_MESSAGE, **config)

    @classmethod
    def report_if(cls, condition: Any, message: Optional[str] = None, **config: Any) -> Optional["ManagedException"]:
        """Construct and report this variant when ``condition`` is truthy."""
        if not condition:
            return None
        exception = cls(message or CONDITION_MESSAGE, **config)
        exception.report()
        return exception

    @classmethod
    def default_options(cls, options: Optional[Options] = None):
        """
        Get or set the default options of this variant.

        Returns a clone of the default when called without ``options``; stores
        a clone of ``options`` and returns the variant otherwise.
        """
        if options is not None:
            cls._default_options = options.clone()
            return cls
        return cls._default_options.clone()

    # -- accessors ------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def message(self) -> str:
        return str(self._error)

    @property
    def error(self) -> BaseException:
        return self._error

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    @property
    def stacktrace(self) -> Optional[str]:
        return self._stacktrace

    @property
    def inner_exception(self) -> Optional[BaseException]:
        return self._inner_exception

    @property
    def options(self) -> Options:
        """The requested options (a copy)."""
        return self._options.clone()

    @property
    def guarded_options(self) -> Options:
        """The options the guard allowed (a copy)."""
        return self._guarded_options.clone()

    @property
    def handler(self) -> "Handler":
        return self._handler

    @property
    def capture_state(self) -> CaptureState:
        return self._lifecycle.state

    @property
    def capture_complete(self) -> bool:
        return self._lifecycle.complete

    @property
    def reported(self) -> bool:
        return self._finalized

    async def wait_captured(self) -> None:
        """Suspend until asynchronous capture has finished."""
        await self._lifecycle.wait()

    # -- reporting ------------------------------------------------------------

    def report(self) -> None:
        """
        Report the exception without raising it.

        Runs the finalize routine now, or once asynchronous capture completes.
        Repeated calls never report twice.
        """
        try:
            if self._report_requested:
                logger.debug("exception_report_already_requested", exception_name=self._name)
                return
            self._report_requested = True
            self._lifecycle.when_complete(self._finalize)
        except Exception as e:
            logger.error("exception_report_failed", exception_name=self._name, error=str(e), error_type=type(e).__name__)

    def _finalize(self) -> None:
        if self._finalized:
            return
        self._finalized = True

        self._before_report()
        if self._guarded_options.report_post():
            self._report_post()
        if self._guarded_options.platform_report():
            self._report_to_platform()
        if self._guarded_options.report_callback():
            self._report_callback()

        self._handler._push_reported_exception(self)
        logger.info("exception_reported", exception=str(self), report=self.to_serializable_object())

    @error_boundary(event="before_report_failed")
    def _before_report(self) -> None:
        before_report = self._handler.before_report
        if before_report is not None:
            before_report(self)

    @error_boundary(event="report_post_failed", error_map={Exception: TransportFailure})
    def _report_post(self) -> None:
        handler = self._handler
        handler.transport.post(
            handler.report_post_url,
            {"exception": self.to_json_string()},
            headers=handler.report_post_headers,
        )

    @error_boundary(event="platform_report_failed", error_map={Exception: TransportFailure})
    def _report_to_platform(self) -> None:
        handler = self._handler
        handler.transport.post(
            handler.platform_url,
            {
                "exception": self.to_json_string(),
                "clientId": handler.client_id,
                "to": handler.to or "",
            },
        )

    @error_boundary(event="report_callback_failed")
    def _report_callback(self) -> None:
        self._handler.report_callback(self)

    # -- serialization --------------------------------------------------------

    def to_serializable_object(self) -> Dict[str, Any]:
        """
        Plain-data form of the exception.

        Returns:
            ``{name, message, stacktrace, data, innerException, error}``;
            ``innerException`` recurses through the chain
        """
        inner = self._inner_exception
        if isinstance(inner, ManagedException):
            inner_object = inner.to_serializable_object()
        else:
            inner_object = _describe_error(inner)
        return {
            "name": self.name,
            "message": self.message,
            "stacktrace": self._stacktrace,
            "data": self._data,
            "innerException": inner_object,
            "error": _describe_error(self._error),
        }

    def to_json_string(self) -> str:
        return json.dumps(self.to_serializable_object(), default=str)

    def __str__(self) -> str:
        message = self.message
        if message:
            return f"{self.name} - {message}"
        return self.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, message={self.message!r})"

    # -- construction steps ---------------------------------------------------

    def _wrap(self, message: Union[str, BaseException, None]) -> BaseException:
        if isinstance(message, BaseException):
            return message
        native = type(self).native
        if message is None:
            return native()
        return native(str(message))

    def _resolve_name(self) -> str:
        error_type = type(self._error)
        if error_type is not type(self).native and error_type.__module__ != "builtins":
            return error_type.__qualname__
        return self.tag

    def _populate_default_data(self) -> None:
        environment = self._handler.environment
        self._merge_error_into_data()
        self._data.setdefault("runtime", environment.descriptor())
        self._data.setdefault("location", environment.current_location())
        self._data.setdefault("date", datetime.now(timezone.utc).isoformat())

    def _merge_error_into_data(self) -> None:
        # message and stack are first-class fields, never copied into data
        error = self._error
        fields: Dict[str, Any] = {}

        if error.__traceback__ is not None:
            frame = traceback.extract_tb(error.__traceback__)[-1]
            fields.update(
                file_name=frame.filename,
                line_number=frame.lineno,
                column_number=getattr(frame, "colno", None),
            )
        if isinstance(error, SyntaxError):
            fields.update(file_name=error.filename, line_number=error.lineno, column_number=error.offset)
        if isinstance(error, OSError):
            fields.update(errno=error.errno, strerror=error.strerror)
        notes = getattr(error, "__notes__", None)
        if notes:
            fields["notes"] = list(notes)

        for key, value in fields.items():
            if value is not None:
                self._data.setdefault(key, value)

    @error_boundary(event="stacktrace_capture_failed", error_map={Exception: CaptureFailure})
    def _retrieve_stacktrace(self) -> str:
        error = self._error
        if error.__traceback__ is not None:
            return "".join(traceback.format_exception(type(error), error, error.__traceback__))

        handler = self._handler
        location = handler.stacktrace_helper
        if handler.loader.is_loaded(location):
            provider: StackTraceProvider = handler.loader.get(location)
            return "\n".join(provider())
        if not handler.attempted_to_load_stacktrace_helper:
            # this instance keeps the placeholder even if the load succeeds later
            handler.load_stacktrace_helper()
        return STACKTRACE_UNAVAILABLE

    def _take_screenshot(self) -> None:
        handler = self._handler
        try:
            state = handler.loader.state(handler.screenshot_helper)
            if state is LoadState.LOADED:
                self._render(handler.loader.get(handler.screenshot_helper))
            elif state is LoadState.FAILED:
                self._lifecycle.mark_complete()
            else:
                handler.load_screenshot_helper(self._take_screenshot)
        except Exception as e:
            self._capture_failed("screenshot", e)
            self._lifecycle.mark_complete()

    def _render(self, render: ScreenshotProvider) -> None:
        loop = asyncio.get_running_loop()

        def on_rendered(image: Any) -> None:
            try:
                loop.call_soon_threadsafe(self._finish_screenshot, image)
            except RuntimeError:
                # loop already closed
                self._finish_screenshot(image)

        render(self._handler.environment.surface, on_rendered)

    def _finish_screenshot(self, image: Any) -> None:
        if self._lifecycle.complete:
            return
        try:
            self._data["screenshot"] = encode_image(image)
        except Exception as e:
            self._capture_failed("screenshot", e)
        finally:
            self._lifecycle.mark_complete()

    @error_boundary(event="structure_capture_failed", error_map={Exception: CaptureFailure})
    def _capture_structure(self) -> None:
        self._data["dom_dump"] = self._handler.environment.dump_structure()

    def _capture_failed(self, capture: str, error: Exception) -> None:
        failure = CaptureFailure(str(error))
        logger.error(
            f"{capture}_capture_failed",
            exception_name=self._name,
            error=str(failure),
            error_type=type(failure).__name__,
            original_type=type(error).__name__,
        )


variant_registry.register(VariantSpec(ManagedException.tag, ManagedException, Exception, ErrorKind.GENERIC))


class ArgumentException(ManagedException):
    """Invalid arguments."""


class InvalidOperationException(ManagedException):
    """An operation is invalid for the current state."""


class NotImplementedException(ManagedException, native=NotImplementedError):
    """Code that is not implemented was executed."""


class EvalException(ManagedException, native=ArithmeticError, kind=ErrorKind.EVAL):
    """Evaluating an arithmetic expression failed."""


class RangeException(ManagedException, native=ValueError, kind=ErrorKind.RANGE):
    """A value is outside its allowed range."""


class ReferenceException(ManagedException, native=NameError, kind=ErrorKind.REFERENCE):
    """Reference to a name, key or index that does not exist."""


class SyntaxException(ManagedException, native=SyntaxError, kind=ErrorKind.SYNTAX):
    pass


class TypeException(ManagedException, native=TypeError, kind=ErrorKind.TYPE):
    pass


class URIException(ManagedException, native=UnicodeError, kind=ErrorKind.URI):
    """Malformed text encoding."""


def create_custom_exception(
    name: str,
    base: Type[ManagedException] = ManagedException,
    default_options: Optional[Options] = None,
    native: Optional[Type[BaseException]] = None,
    kind: Optional[ErrorKind] = None,
    doc: Optional[str] = None,
) -> Type[ManagedException]:
    """
    Create a variant at runtime.

    Equivalent to declaring ``class <name>(base, native=..., default_options=...)``.

    Args:
        name: Class and tag name; must be a valid identifier
        base: Variant to derive from
        default_options: Default options; cloned from ``base`` when omitted
        native: Python error wrapped when built from a message; inherited when omitted
        kind: Error kind this variant should handle during classification
        doc: Docstring for the new class

    Returns:
        The new variant class
    """
    ArgumentException.throw_if(
        not name or not name.isidentifier(),
        "Your exception must have a name that is a valid identifier.",
    )
    ArgumentException.throw_if(
        not (isinstance(base, type) and issubclass(base, ManagedException)),
        "The base exception must be a managed exception.",
    )

    def populate(namespace: Dict[str, Any]) -> None:
        namespace["__doc__"] = doc
        namespace["__module__"] = base.__module__

    return types.new_class(
        name,
        (base,),
        {"default_options": default_options, "native": native, "kind": kind},
        populate,
    )
