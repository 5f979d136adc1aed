# tests/test_security.py
"""Tests for imgproxy/transport/security.py - security utilities."""
from __future__ import annotations

from unittest.mock import MagicMock

from starlette.responses import Response

from imgproxy.transport.security import (
    SecurityHeaders,
    get_client_ip,
    is_internal_ip,
    parse_networks,
    sanitize_error_message,
)


def _request(host="10.0.0.1", headers=None):
    request = MagicMock()
    request.client.host = host
    request.headers = headers or {}
    return request


class TestClientIP:
    def test_direct_ip(self):
        assert get_client_ip(_request()) == "10.0.0.1"

    def test_proxy_headers_ignored_by_default(self):
        request = _request(headers={"X-Forwarded-For": "1.2.3.4"})
        assert get_client_ip(request) == "10.0.0.1"

    def test_forwarded_for_first_hop(self):
        request = _request(headers={"X-Forwarded-For": "1.2.3.4, 10.0.0.2"})
        assert get_client_ip(request, trust_proxy_headers=True) == "1.2.3.4"

    def test_real_ip(self):
        request = _request(headers={"X-Real-IP": " 5.6.7.8 "})
        assert get_client_ip(request, trust_proxy_headers=True) == "5.6.7.8"

    def test_no_client(self):
        request = _request()
        request.client = None
        assert get_client_ip(request) == "unknown"


class TestSecurityHeaders:
    def test_headers_added(self):
        response = SecurityHeaders.add_security_headers(Response())
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["Cache-Control"] == "no-store, no-cache, must-revalidate"
        assert "Strict-Transport-Security" not in response.headers

    def test_image_cache_control_preserved(self):
        response = Response(headers={"Cache-Control": "public, max-age=60"})
        SecurityHeaders.add_security_headers(response, hsts=True)
        assert response.headers["Cache-Control"] == "public, max-age=60"
        assert "Strict-Transport-Security" in response.headers


class TestSanitizeErrorMessage:
    def test_dev_shows_details(self):
        assert sanitize_error_message(ValueError("bad width"), is_production=False) == "bad width"

    def test_prod_generic(self):
        assert sanitize_error_message(ValueError("bad width"), is_production=True) == "Invalid input"
        assert sanitize_error_message(RuntimeError("x"), is_production=True) == "An error occurred"


class TestInternalNetworks:
    def test_parse_skips_invalid(self):
        networks = parse_networks("10.0.0.0/8, bogus ,::1/128,")
        assert [str(n) for n in networks] == ["10.0.0.0/8", "::1/128"]

    def test_membership(self):
        networks = parse_networks("10.0.0.0/8,127.0.0.0/8")
        assert is_internal_ip("10.1.2.3", networks)
        assert not is_internal_ip("8.8.8.8", networks)
        assert not is_internal_ip("testclient", networks)
