"""Tests for server address parsing."""
from datetime import datetime

import pytest

from libsync.exceptions import ConfigurationError
from libsync.utils.endpoints import ServerEndpoint, is_valid_hostname, is_valid_ipv4, parse_address


class TestParseAddress:
    def test_bare_ipv4_gets_http_and_default_port(self) -> None:
        endpoint = parse_address("192.168.1.100", 5000)
        assert endpoint.base_url == "http://192.168.1.100:5000"

    def test_localhost_is_treated_like_an_ip(self) -> None:
        assert parse_address("localhost", 5000).base_url == "http://localhost:5000"

    def test_hostname_gets_https_without_port(self) -> None:
        endpoint = parse_address("libsync-o0s8.onrender.com", 5000)
        assert endpoint.scheme == "https"
        assert endpoint.port is None
        assert endpoint.base_url == "https://libsync-o0s8.onrender.com"

    def test_explicit_port_is_kept(self) -> None:
        assert parse_address("10.0.2.2:8080", 5000).base_url == "http://10.0.2.2:8080"
        assert parse_address("api.campus.edu:8443", 5000).base_url == "https://api.campus.edu:8443"

    def test_full_url_is_kept_as_given(self) -> None:
        endpoint = parse_address("http://library.campus.edu:3000/ignored/path", 5000)
        assert endpoint.base_url == "http://library.campus.edu:3000"

    def test_surrounding_whitespace_is_ignored(self) -> None:
        assert parse_address("  127.0.0.1 ", 5000).base_url == "http://127.0.0.1:5000"

    @pytest.mark.parametrize(
        "address",
        ["", "   ", "999.1.1.1", "1.2.3", "-bad.example.com", "host name", "10.0.0.1:99999", "10.0.0.1:abc"],
    )
    def test_malformed_addresses_are_rejected(self, address: str) -> None:
        with pytest.raises(ConfigurationError):
            parse_address(address, 5000)


class TestValidators:
    def test_ipv4(self) -> None:
        assert is_valid_ipv4("10.0.2.2")
        assert not is_valid_ipv4("256.0.0.1")
        assert not is_valid_ipv4("1.2.3.4.5")

    def test_hostname(self) -> None:
        assert is_valid_hostname("prod.example.com")
        assert is_valid_hostname("server")
        assert not is_valid_hostname("1.2.3.4")
        assert not is_valid_hostname("bad_host.com")


class TestServerEndpoint:
    def test_api_url_adds_prefix_once(self) -> None:
        endpoint = ServerEndpoint(host="127.0.0.1", port=5000)
        assert endpoint.api_url("/api", "/health") == "http://127.0.0.1:5000/api/health"
        assert endpoint.api_url("/api", "/api/health") == "http://127.0.0.1:5000/api/health"
        assert endpoint.api_url("/api", "books") == "http://127.0.0.1:5000/api/books"

    def test_same_address_ignores_verification_time(self) -> None:
        endpoint = ServerEndpoint(host="127.0.0.1", port=5000)
        assert endpoint.same_address(endpoint.verified(datetime(2024, 1, 1)))
        assert not endpoint.same_address(ServerEndpoint(host="127.0.0.1", port=5001))
        assert not endpoint.same_address(None)
