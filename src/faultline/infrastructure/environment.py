"""Runtime environment checks used to enrich exceptions."""

import asyncio
import platform
import sys
import threading
import traceback
from pathlib import Path
from typing import Any, Callable, Optional


def _thread_dump() -> str:
    """Formatted stack of every live thread."""
    names = {thread.ident: thread.name for thread in threading.enumerate()}
    sections = []
    for ident, frame in sys._current_frames().items():
        header = f"Thread {names.get(ident, 'unknown')} ({ident})"
        sections.append(header + "\n" + "".join(traceback.format_stack(frame)))
    return "\n".join(sections)


class RuntimeEnvironment:
    """
    Describes the host the exception happened in.

    Args:
        location: Application location; defaults to the URI of the running script
        surface: Target surface handed to the screenshot provider
        structure_dumper: Produces the structural snapshot; defaults to a
            dump of all thread stacks
    """

    def __init__(
        self,
        location: Optional[str] = None,
        surface: Any = None,
        structure_dumper: Optional[Callable[[], str]] = None,
    ):
        self._location = location
        self.surface = surface
        self._structure_dumper = structure_dumper or _thread_dump

    def descriptor(self) -> str:
        """e.g. ``CPython 3.12.1 (Linux 6.1.0)``"""
        return (
            f"{platform.python_implementation()} {platform.python_version()} "
            f"({platform.system()} {platform.release()})"
        )

    def current_location(self) -> str:
        if self._location:
            return self._location
        script = sys.argv[0] if sys.argv else ""
        if script and script != "-c":
            try:
                return Path(script).resolve().as_uri()
            except ValueError:
                return script
        return "python://interactive"

    def supports_screenshot(self) -> bool:
        """Screenshots resume on the event loop, so one must be running."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    def dump_structure(self) -> str:
        return self._structure_dumper()
