"""
Worker threads for slow work started outside an event loop.

Deliveries and helper imports requested by synchronous code run here so the
caller's thread returns at once. Workers are joined at interpreter exit, so
queued deliveries still finish (each bounded by the transport timeout).
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from faultline.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MAX_WORKERS = 4

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    """Shared thread pool, created on first use."""
    global _executor
    if _executor is not None:
        return _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="faultline")
            logger.debug("background_executor_initialized", workers=MAX_WORKERS)
    return _executor
