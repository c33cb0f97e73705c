"""
Collaborator contracts and the bundled stack-trace provider.

- Stack-trace provider: ``() -> list[str]``, ordered frame strings.
- Screenshot provider: ``render(surface, on_rendered)``; calls
  ``on_rendered(image)`` when done, where ``image`` is PNG ``bytes`` or an
  object exposing ``to_data_url()``.
"""

import base64
import os
import traceback
from typing import Any, Callable, List, Protocol

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__))) + os.sep


class StackTraceProvider(Protocol):
    def __call__(self) -> List[str]: ...


class ScreenshotProvider(Protocol):
    def __call__(self, surface: Any, on_rendered: Callable[[Any], None]) -> None: ...


def format_call_stack() -> List[str]:
    """Frames of the current call stack, outermost first, without Faultline's own frames."""
    frames = traceback.extract_stack()
    return [
        line.rstrip("\n")
        for frame in frames
        if not os.path.abspath(frame.filename).startswith(_PACKAGE_DIR)
        for line in traceback.format_list([frame])
    ]


def encode_image(image: Any) -> str:
    """
    Encode a rendered image as a data URL.

    Raises:
        TypeError: If the image is neither bytes nor exposes ``to_data_url()``
    """
    to_data_url = getattr(image, "to_data_url", None)
    if callable(to_data_url):
        return to_data_url()
    if isinstance(image, (bytes, bytearray, memoryview)):
        return "data:image/png;base64," + base64.b64encode(bytes(image)).decode("ascii")
    raise TypeError(f"Cannot encode screenshot of type {type(image).__name__}")
