"""
Report delivery over HTTP.

Wire format: ``POST`` with a form-encoded body (``exception=<json>`` plus any
extra fields) and ``Content-Type: application/x-www-form-urlencoded;
charset=UTF-8``. Delivery is best effort: failures are logged, never retried
and never raised.
"""

import asyncio
import concurrent.futures
import threading
from typing import Mapping, Optional, Set, Union
from urllib.parse import quote

import httpx

from faultline.infrastructure.background import get_executor
from faultline.shared.domain.exceptions import TransportFailure
from faultline.shared.infrastructure.error_handler import error_boundary
from faultline.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=UTF-8"

# Characters encodeURIComponent leaves alone besides alphanumerics and "-_."
_URI_COMPONENT_SAFE = "!~*'()"


def encode_form(fields: Mapping[str, str]) -> str:
    """
    Encode fields as ``k=v&k=v`` with each part percent-encoded.

    Examples:
        >>> encode_form({"exception": '{"name": "TypeException"}'})
        'exception=%7B%22name%22%3A%20%22TypeException%22%7D'
    """
    return "&".join(
        f"{quote(str(key), safe=_URI_COMPONENT_SAFE)}={quote(str(value), safe=_URI_COMPONENT_SAFE)}"
        for key, value in fields.items()
    )


class ReportTransport:
    """
    Fire-and-forget POST delivery.

    With a running event loop the request is sent by ``httpx.AsyncClient`` in
    a tracked task; without one it is handed to the shared worker pool and sent
    by ``httpx.Client``. Either way ``post`` returns before the request is made.

    Args:
        timeout: Request timeout in seconds
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
    """

    def __init__(
        self,
        timeout: float = 5.0,
        transport: Optional[Union[httpx.BaseTransport, httpx.AsyncBaseTransport]] = None,
    ):
        self.timeout = timeout
        self._transport = transport
        self._pending: Set["asyncio.Task[None]"] = set()
        self._threaded: Set["concurrent.futures.Future[None]"] = set()
        self._threaded_lock = threading.Lock()

    @property
    def pending(self) -> int:
        with self._threaded_lock:
            return len(self._pending) + len(self._threaded)

    def post(self, url: str, fields: Mapping[str, str], headers: Optional[Mapping[str, str]] = None) -> None:
        """Deliver ``fields`` to ``url`` without waiting for the response."""
        body = encode_form(fields)
        request_headers = {**(headers or {}), "Content-Type": FORM_CONTENT_TYPE}

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            future = get_executor().submit(self._send, url=url, body=body, headers=request_headers)
            with self._threaded_lock:
                self._threaded.add(future)
            future.add_done_callback(self._discard_threaded)
            return

        task = loop.create_task(self._send_async(url=url, body=body, headers=request_headers))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _discard_threaded(self, future: "concurrent.futures.Future[None]") -> None:
        with self._threaded_lock:
            self._threaded.discard(future)

    def _threaded_snapshot(self) -> Set["concurrent.futures.Future[None]"]:
        with self._threaded_lock:
            return set(self._threaded)

    async def drain(self) -> None:
        """Wait for every in-flight delivery to settle, worker-pool ones included."""
        while self._pending or self._threaded_snapshot():
            waiting = [*self._pending, *(asyncio.wrap_future(f) for f in self._threaded_snapshot())]
            await asyncio.gather(*waiting, return_exceptions=True)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until worker-pool deliveries settle.

        For synchronous callers (scripts, CLIs) that want reports out before
        exiting. Tasks on an event loop are not waited for; use ``drain``.

        Returns:
            True if nothing is still in flight when the call returns
        """
        futures = self._threaded_snapshot()
        if not futures:
            return True
        _, not_done = concurrent.futures.wait(futures, timeout=timeout)
        return not not_done

    @error_boundary(
        event="report_delivery_failed",
        log_level="warning",
        error_map={httpx.HTTPError: TransportFailure},
        context_keys=["url"],
    )
    def _send(self, *, url: str, body: str, headers: Mapping[str, str]) -> None:
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            response = client.post(url, content=body.encode("utf-8"), headers=headers)
            response.raise_for_status()
        logger.debug("report_delivered", url=url, status_code=response.status_code)

    @error_boundary(
        event="report_delivery_failed",
        log_level="warning",
        error_map={httpx.HTTPError: TransportFailure},
        context_keys=["url"],
    )
    async def _send_async(self, *, url: str, body: str, headers: Mapping[str, str]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(url, content=body.encode("utf-8"), headers=headers)
            response.raise_for_status()
        logger.debug("report_delivered", url=url, status_code=response.status_code)
