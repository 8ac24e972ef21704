"""Tests for dcc_check/message.py: upstream marker detection and request building."""

from __future__ import annotations

from dcc_check.message import build_request, find_upstream_marker
from dcc_check.models import CheckRequest


class TestFindUpstreamMarker:
    def test_bulk_marker_found(self) -> None:
        raw = b"X-DCC-EATSERVER-Metrics: mx 1201; bulk Body=many\nSubject: x\n\nbody\n"
        assert find_upstream_marker(raw) == "X-DCC-EATSERVER-Metrics: mx 1201; bulk Body=many"

    def test_marker_without_label(self) -> None:
        raw = b"X-DCC-Metrics: mx 1201; bulk\n\nbody\n"
        assert find_upstream_marker(raw) == "X-DCC-Metrics: mx 1201; bulk"

    def test_folded_marker_is_unfolded(self) -> None:
        raw = b"X-DCC-home-Metrics: mx 1201;\r\n\tbulk Body=many\r\n\r\nbody\r\n"
        assert find_upstream_marker(raw) == "X-DCC-home-Metrics: mx 1201; bulk Body=many"

    def test_non_bulk_marker_ignored(self) -> None:
        raw = b"X-DCC-home-Metrics: mx 1201; Body=1 Fuz1=2\nSubject: bulk\n\nbulk bulk\n"
        assert find_upstream_marker(raw) is None

    def test_bulk_in_body_ignored(self) -> None:
        raw = b"Subject: hi\n\nX-DCC-home-Metrics: mx; bulk\n"
        assert find_upstream_marker(raw) is None


class TestBuildRequest:
    def test_defaults(self) -> None:
        assert build_request(b"msg") == CheckRequest(b"msg", "0.0.0.0", "", "", ())

    def test_blank_values_normalised(self) -> None:
        request = build_request(b"msg", client_ip="", helo=None, recipients=["a@x", "", "b@x"])
        assert request.client_ip == "0.0.0.0"
        assert request.helo == ""
        assert request.recipients == ("a@x", "b@x")
