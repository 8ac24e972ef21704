"""Tests for dcc_check/dccifd.py against a fake dccifd on a unix socket."""

from __future__ import annotations

import os
import time

import pytest

from dcc_check import dccifd
from dcc_check.deadline import CancelScope
from dcc_check.errors import NoHeaderError, TransportError
from dcc_check.models import CheckRequest

MESSAGE = b"Subject: hello\r\n\r\nbody text\r\n"


def _wait_for_request(server, timeout: float = 2.0) -> bytes:
    deadline = time.monotonic() + timeout
    while not server.received and time.monotonic() < deadline:
        time.sleep(0.01)
    return server.received[0]


class TestRequestFraming:
    def test_defaults_and_unknown_recipient(self, dccifd_server) -> None:
        server = dccifd_server()
        dccifd.query(CheckRequest(MESSAGE), server.path)
        assert _wait_for_request(server) == (
            b"header\n0.0.0.0\n\n\nunknown\r\n\n" + MESSAGE
        )

    def test_envelope_values_and_recipients(self, dccifd_server) -> None:
        server = dccifd_server()
        request = CheckRequest(
            MESSAGE,
            client_ip="192.0.2.7",
            helo="mx.example.org",
            sender="a@example.org",
            recipients=("b@example.net", "c@example.net"),
        )
        dccifd.query(request, server.path)
        assert _wait_for_request(server) == (
            b"header\n192.0.2.7\nmx.example.org\na@example.org\n"
            b"b@example.net\r\nc@example.net\r\n\n" + MESSAGE
        )


class TestResponse:
    def test_preamble_lines_are_dropped(self, dccifd_server) -> None:
        server = dccifd_server(b"A\nA\nX-DCC-home-Metrics: Body=1\n Fuz1=2\n")
        lines = dccifd.query(CheckRequest(MESSAGE), server.path)
        assert lines == ["X-DCC-home-Metrics: Body=1\n", " Fuz1=2\n"]

    def test_no_header_after_preamble(self, dccifd_server) -> None:
        server = dccifd_server(b"A\nA\n")
        with pytest.raises(NoHeaderError):
            dccifd.query(CheckRequest(MESSAGE), server.path)

    def test_response_read_is_bounded(self, dccifd_server) -> None:
        flood = b"".join(b" Fuz1=%d\n" % i for i in range(5000))
        server = dccifd_server(b"A\nA\nX-DCC-home-Metrics: Body=1\n" + flood)
        lines = dccifd.query(CheckRequest(MESSAGE), server.path)
        assert len(lines) == dccifd.MAX_RESPONSE_LINES
        assert lines[0] == "X-DCC-home-Metrics: Body=1\n"

    @pytest.mark.parametrize("response", [b"", b"A\n"])
    def test_missing_status_lines(self, dccifd_server, response) -> None:
        server = dccifd_server(response)
        with pytest.raises(TransportError):
            dccifd.query(CheckRequest(MESSAGE), server.path)


class TestFailures:
    def test_connect_failure(self, short_tmp) -> None:
        with pytest.raises(TransportError, match="failed to open socket"):
            dccifd.query(CheckRequest(MESSAGE), os.path.join(short_tmp, "missing"))

    def test_abort_registered_and_closes_socket(self, dccifd_server) -> None:
        server = dccifd_server()
        scope = CancelScope()
        with dccifd.DccifdSession(server.path, scope) as session:
            scope.cancel()
            assert session.sock.fileno() == -1
        with pytest.raises(TransportError):
            session.send_request(CheckRequest(MESSAGE))
