"""
Guard: adaptive downgrade of requested capabilities.

Collecting diagnostics can be expensive. During an error storm the guard
turns capabilities off so the host application does not pay for hundreds of
screenshots and POSTs. A guard is an ordered chain of restriction rules
followed by a fixed availability rule.
"""

from typing import TYPE_CHECKING, Callable, List, Optional

from faultline.core.options import FLAGS, Options
from faultline.shared.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from faultline.core.exceptions import ManagedException

logger = get_logger(__name__)

Restriction = Callable[[Options, "ManagedException"], Optional[Options]]
Effect = Callable[[Options], Optional[Options]]


def _disable_all(options: Options) -> Options:
    return options.toggle_all(False)


class Guard:
    """
    Ordered restriction rules plus the availability rule.

    Rules receive the options being restricted and the exception under
    construction, and return the options (returning None keeps the instance
    they were given, which they may have mutated in place).
    """

    def __init__(self) -> None:
        self._restrictions: List[Restriction] = []

    @property
    def restrictions(self) -> List[Restriction]:
        return list(self._restrictions)

    def protect_against_burst(
        self,
        count: int,
        seconds: Optional[float] = None,
        effect: Optional[Effect] = None,
    ) -> "Guard":
        """
        Restrict options once more than ``count`` exceptions were reported.

        Args:
            count: Threshold that must not be exceeded
            seconds: Only count reports from the last ``seconds``; all-time if omitted
            effect: Applied to the options when the threshold is exceeded.
                Defaults to disabling all six flags.

        Returns:
            The guard, for chaining

        Raises:
            ArgumentException: If count is negative
        """
        from faultline.core.exceptions import ArgumentException

        ArgumentException.throw_if(
            count is None or count < 0,
            "You must specify a count of zero or more.",
        )
        apply_effect = effect or _disable_all

        def burst_restriction(options: Options, exception: "ManagedException") -> Options:
            reported = exception.handler.retrieve_reported_exceptions_count(seconds)
            if reported > count:
                logger.debug(
                    "burst_protection_triggered",
                    reported=reported,
                    count=count,
                    seconds=seconds,
                )
                restricted = apply_effect(options)
                return options if restricted is None else restricted
            return options

        self._restrictions.append(burst_restriction)
        return self

    def protect_against(self, restriction: Restriction) -> "Guard":
        """Register an arbitrary restriction rule."""
        self._restrictions.append(restriction)
        return self

    def restrict(self, options: Options, exception: "ManagedException") -> Options:
        """
        Compute the effective options for ``exception``.

        Rules run in registration order on a copy of ``options``; the result
        is then clamped to what was requested and passed through the
        availability rule. The requested options are never mutated.
        """
        guarded = options.clone()
        for restriction in self._restrictions:
            result = restriction(guarded, exception)
            if result is not None:
                guarded = result

        for flag in FLAGS:
            if not options.get(flag):
                guarded.set(flag, False)

        return self._protect_against_unavailable_options(guarded, exception)

    @staticmethod
    def _protect_against_unavailable_options(options: Options, exception: "ManagedException") -> Options:
        # Disable-only: nothing here may turn a flag back on.
        handler = exception.handler
        if exception.error.__traceback__ is None and not handler.stacktrace_helper:
            options.stacktrace(False)
        if not handler.screenshot_helper or not handler.environment.supports_screenshot():
            options.screenshot(False)
        if not handler.report_post_url:
            options.report_post(False)
        if handler.report_callback is None:
            options.report_callback(False)
        if not handler.client_id:
            options.platform_report(False)
        return options
