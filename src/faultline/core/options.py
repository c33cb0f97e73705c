"""
Capability flags for a managed exception.

Options decide which diagnostics are collected and which report sinks fire:

- stacktrace: resolve a stack trace
- screenshot: capture a visual snapshot asynchronously
- report_post: POST the serialized exception to the configured destination
- report_callback: invoke the custom report callback
- platform_report: POST to the reporting platform with client id/recipient
- dom_dump: capture a structural snapshot of the host
"""

from typing import Any, Dict, Mapping, Optional, Union

FLAGS = (
    "stacktrace",
    "screenshot",
    "report_post",
    "report_callback",
    "platform_report",
    "dom_dump",
)


class Options:
    """
    Mutable bundle of six independent capability flags.

    Every accessor returns the current value when called without an argument
    and sets the flag and returns the Options when called with one, so
    setters chain::

        Options().toggle_all(False).stacktrace(True).report_callback(True)
    """

    def __init__(
        self,
        stacktrace: bool = True,
        screenshot: bool = True,
        report_post: bool = True,
        report_callback: bool = True,
        platform_report: bool = True,
        dom_dump: bool = True,
    ):
        self._flags: Dict[str, bool] = {
            "stacktrace": bool(stacktrace),
            "screenshot": bool(screenshot),
            "report_post": bool(report_post),
            "report_callback": bool(report_callback),
            "platform_report": bool(platform_report),
            "dom_dump": bool(dom_dump),
        }

    @classmethod
    def from_mapping(cls, flags: Mapping[str, Any]) -> "Options":
        """Build Options from a mapping; missing flags default to enabled."""
        unknown = set(flags) - set(FLAGS)
        if unknown:
            raise ValueError(f"Unknown option flags: {', '.join(sorted(unknown))}")
        return cls(**{name: bool(value) for name, value in flags.items()})

    def _access(self, flag: str, enable: Optional[bool]) -> Union[bool, "Options"]:
        if enable is None:
            return self._flags[flag]
        self._flags[flag] = bool(enable)
        return self

    def stacktrace(self, enable: Optional[bool] = None) -> Union[bool, "Options"]:
        """Get or set the stack trace option."""
        return self._access("stacktrace", enable)

    def screenshot(self, enable: Optional[bool] = None) -> Union[bool, "Options"]:
        """Get or set the screenshot option."""
        return self._access("screenshot", enable)

    def report_post(self, enable: Optional[bool] = None) -> Union[bool, "Options"]:
        """Get or set the report POST option."""
        return self._access("report_post", enable)

    def report_callback(self, enable: Optional[bool] = None) -> Union[bool, "Options"]:
        """Get or set the report callback option."""
        return self._access("report_callback", enable)

    def platform_report(self, enable: Optional[bool] = None) -> Union[bool, "Options"]:
        """Get or set the platform report option."""
        return self._access("platform_report", enable)

    def dom_dump(self, enable: Optional[bool] = None) -> Union[bool, "Options"]:
        """Get or set the structural snapshot option."""
        return self._access("dom_dump", enable)

    def get(self, flag: str) -> bool:
        """Read a flag by name."""
        return self._flags[flag]

    def set(self, flag: str, enable: bool) -> "Options":
        """Set a flag by name."""
        if flag not in self._flags:
            raise KeyError(flag)
        self._flags[flag] = bool(enable)
        return self

    def toggle_all(self, enable: bool) -> "Options":
        """Set all six flags to ``enable``."""
        for flag in FLAGS:
            self._flags[flag] = bool(enable)
        return self

    def clone(self) -> "Options":
        return Options(**self._flags)

    def to_dict(self) -> Dict[str, bool]:
        return dict(self._flags)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Options):
            return NotImplemented
        return self._flags == other._flags

    def __repr__(self) -> str:
        enabled = ", ".join(f"{k}={v}" for k, v in self._flags.items())
        return f"Options({enabled})"
