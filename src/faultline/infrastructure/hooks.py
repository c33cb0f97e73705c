"""
Uncaught-error interception.

Each hook is installed as the terminal link of the existing chain: the
previous hook runs first, then the error is routed to ``Handler.handle``.
"""

import asyncio
import sys
import threading
import traceback
from types import TracebackType
from typing import TYPE_CHECKING, Any, Dict, Optional, Type

from faultline.shared.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from faultline.core.handler import Handler

logger = get_logger(__name__)

# System exits and interrupts are not application errors.
_PASS_THROUGH = (KeyboardInterrupt, SystemExit, GeneratorExit)


def error_site(error: BaseException) -> Dict[str, Any]:
    """Location of the innermost frame of ``error``'s traceback, as handle() keyword arguments."""
    tb = error.__traceback__
    if tb is None:
        return {}
    frame = traceback.extract_tb(tb)[-1]
    return {
        "url": frame.filename,
        "line_number": frame.lineno,
        "column_number": getattr(frame, "colno", None),
    }


def _route(handler: "Handler", error: Optional[BaseException]) -> None:
    if error is None or isinstance(error, _PASS_THROUGH):
        return
    try:
        handler.handle(error, **error_site(error))
    except Exception as e:
        logger.error("uncaught_error_routing_failed", error=str(e), error_type=type(e).__name__)


def install_excepthook(handler: "Handler") -> None:
    """Chain ``sys.excepthook``."""
    previous = sys.excepthook

    def faultline_excepthook(
        exc_type: Type[BaseException],
        exc_value: BaseException,
        exc_tb: Optional[TracebackType],
    ) -> None:
        if previous is not None:
            previous(exc_type, exc_value, exc_tb)
        _route(handler, exc_value)

    sys.excepthook = faultline_excepthook


def install_threading_excepthook(handler: "Handler") -> None:
    """Chain ``threading.excepthook``."""
    previous = threading.excepthook

    def faultline_threading_excepthook(args: "threading.ExceptHookArgs") -> None:
        if previous is not None:
            previous(args)
        _route(handler, args.exc_value)

    threading.excepthook = faultline_threading_excepthook


def install_loop_exception_handler(handler: "Handler", loop: asyncio.AbstractEventLoop) -> None:
    """Chain the exception handler of ``loop`` (errors escaping tasks and callbacks)."""
    previous = loop.get_exception_handler()

    def faultline_loop_handler(event_loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        if previous is not None:
            previous(event_loop, context)
        else:
            event_loop.default_exception_handler(context)
        error = context.get("exception")
        if error is None:
            try:
                handler.handle(None, message=context.get("message"))
            except Exception as e:
                logger.error("uncaught_error_routing_failed", error=str(e), error_type=type(e).__name__)
            return
        _route(handler, error)

    loop.set_exception_handler(faultline_loop_handler)
