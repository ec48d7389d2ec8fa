"""Correlation ids for HTTP requests against the scheduler.

Each request gets an id (the caller's ``X-Request-ID`` or a fresh
``REQ-`` id) held in a ContextVar for the duration of the request. Log
lines written while it is handled, from the resolver, the hold manager,
or the stores, carry it as ``%(request_id)s``; lines written outside a
request show ``NO_REQUEST_ID``.

``load_config`` installs the filter on the root handlers, so the id is
on every formatted line. ``get_request_logger`` also attaches it to a
single logger, which keeps ``record.request_id`` set for handlers that
were added later (test capture handlers, for one).
"""

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterable, Iterator, Optional

NO_REQUEST_ID = "NO_REQUEST_ID"

LOG_FORMAT = "%(asctime)s [%(name)s] [%(request_id)s] %(levelname)s: %(message)s"

_request_id: ContextVar[str] = ContextVar("request_id", default=NO_REQUEST_ID)


def new_request_id() -> str:
    return f"REQ-{uuid.uuid4().hex[:12]}"


def get_request_id() -> str:
    return _request_id.get()


@contextmanager
def request_scope(request_id: Optional[str] = None) -> Iterator[str]:
    """Bind ``request_id`` (or a new one) until the block exits."""
    token = _request_id.set(request_id or new_request_id())
    try:
        yield _request_id.get()
    finally:
        _request_id.reset(token)


class RequestIdFilter(logging.Filter):
    """Stamps the current request id on each record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def _has_filter(filterer: logging.Filterer) -> bool:
    return any(isinstance(f, RequestIdFilter) for f in filterer.filters)


def install_request_id_filter(handlers: Optional[Iterable[logging.Handler]] = None) -> int:
    """Attach RequestIdFilter to ``handlers`` (default: the root logger's).

    Returns how many handlers gained the filter.
    """
    if handlers is None:
        handlers = logging.getLogger().handlers
    added = 0
    for handler in handlers:
        if not _has_filter(handler):
            handler.addFilter(RequestIdFilter())
            added += 1
    return added


def get_request_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not _has_filter(logger):
        logger.addFilter(RequestIdFilter())
    return logger
