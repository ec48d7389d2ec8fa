"""Tests for request-id correlation in log lines."""

import io
import logging

from advisory_scheduler.logging_context import (
    LOG_FORMAT,
    NO_REQUEST_ID,
    RequestIdFilter,
    get_request_id,
    get_request_logger,
    install_request_id_filter,
    request_scope,
)


class TestRequestScope:
    def test_binds_and_resets(self):
        assert get_request_id() == NO_REQUEST_ID
        with request_scope("REQ-abc") as request_id:
            assert request_id == "REQ-abc"
            assert get_request_id() == "REQ-abc"
        assert get_request_id() == NO_REQUEST_ID

    def test_generates_id_when_missing(self):
        with request_scope() as request_id:
            assert request_id.startswith("REQ-")
            assert len(request_id) == 16


class TestFormattedLines:
    def test_handler_lines_carry_request_id(self):
        stream = io.StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        assert install_request_id_filter([handler]) == 1
        assert install_request_id_filter([handler]) == 0

        plain = logging.getLogger("tests.logging_context.plain")
        plain.setLevel(logging.INFO)
        plain.addHandler(handler)
        try:
            with request_scope("REQ-line"):
                plain.info("inside")
            plain.info("outside")
        finally:
            plain.removeHandler(handler)

        inside, outside = stream.getvalue().splitlines()
        assert "[tests.logging_context.plain] [REQ-line] INFO: inside" in inside
        assert f"[{NO_REQUEST_ID}] INFO: outside" in outside

    def test_request_logger_filter_attached_once(self):
        logger = get_request_logger("tests.logging_context.request")
        get_request_logger("tests.logging_context.request")
        assert sum(isinstance(f, RequestIdFilter) for f in logger.filters) == 1
