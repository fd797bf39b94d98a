"""
Unit tests for HTTP request parsing.
"""

import pytest

from helloserver.http.request import (
    RequestContext,
    RequestParser,
    HTTPParseError,
    normalize_path,
    parse_request,
)


SAMPLE_GET = (
    b"GET /hello?lang=en HTTP/1.1\r\n"
    b"Host: localhost:3000\r\n"
    b"User-Agent: pytest\r\n"
    b"Accept: text/plain\r\n"
    b"Connection: keep-alive\r\n"
    b"\r\n"
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(SAMPLE_GET, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.target == "/hello?lang=en"
        assert request.path == "/hello"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self):
        """Test that headers are parsed correctly."""
        request = parse_request(SAMPLE_GET)

        assert request.host == "localhost:3000"
        assert request.user_agent == "pytest"
        assert request.headers["accept"] == "text/plain"
        assert request.is_keep_alive is True

    def test_header_names_are_case_insensitive(self):
        raw = b"GET / HTTP/1.1\r\nX-CUSTOM-Header: Value\r\n\r\n"
        request = parse_request(raw)

        assert request.headers["x-custom-header"] == "Value"
        assert request.get_header("X-Custom-Header") == "Value"

    def test_repeated_headers_are_joined(self):
        raw = b"GET / HTTP/1.1\r\nAccept: text/plain\r\nAccept: text/html\r\n\r\n"
        assert parse_request(raw).headers["accept"] == "text/plain, text/html"

    def test_unknown_method_is_parsed(self):
        """Method validity is the router's concern, not the parser's."""
        request = parse_request(b"PATCH /hello HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request.method == "PATCH"

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET\r\nHost: test\r\n\r\n")

        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("line", [
        b"GET /hello HTTP/2.0",
        b"GET /hello HTTP/0.9",
        b"GET  /hello HTTP/1.1",
        b"GET hello HTTP/1.1",
        b"G(T /hello HTTP/1.1",
        b"\x16\x03\x01\x02\x00",
    ])
    def test_rejected_request_lines(self, line: bytes):
        with pytest.raises(HTTPParseError):
            RequestParser().parse_request_line(line)

    def test_absolute_form_target(self):
        method, target, version = RequestParser().parse_request_line(
            b"GET http://localhost:3000/hello HTTP/1.1\r\n"
        )
        assert target == "http://localhost:3000/hello"
        assert normalize_path(target) == "/hello"

    def test_missing_header_terminator(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET /hello HTTP/1.1\r\nHost: test\r\n")

    def test_malformed_header_line(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nNo colon here\r\n\r\n")

    def test_obsolete_line_folding_rejected(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"GET / HTTP/1.1\r\nX-A: one\r\n two\r\n\r\n")

    def test_too_many_headers(self):
        parser = RequestParser(max_headers=2)
        lines = [b"A: 1\r\n", b"B: 2\r\n", b"C: 3\r\n"]

        with pytest.raises(HTTPParseError, match="Too many headers"):
            parser.parse_headers(lines)


class TestBodyLength:
    """Tests for Content-Length handling."""

    def test_no_content_length(self):
        assert RequestParser().body_length({}) == 0

    def test_valid_content_length(self):
        assert RequestParser().body_length({"content-length": "12"}) == 12

    # superscript digits pass str.isdigit() but not int()
    @pytest.mark.parametrize("value", ["-1", "abc", "5, 5", "1.5", "", "\u00b2", "1\u00b3"])
    def test_invalid_content_length(self, value: str):
        with pytest.raises(HTTPParseError):
            RequestParser().body_length({"content-length": value})

    def test_body_too_large(self):
        parser = RequestParser(max_body_bytes=10)
        with pytest.raises(HTTPParseError, match="too large"):
            parser.body_length({"content-length": "11"})


class TestNormalizePath:
    """Tests for path normalization used by routing."""

    @pytest.mark.parametrize("target, expected", [
        ("/hello", "/hello"),
        ("/hello/", "/hello"),
        ("/hello?x=1", "/hello"),
        ("/hello/?x=1", "/hello"),
        ("/hello#top", "/hello"),
        ("/", "/"),
        ("", "/"),
        ("/hel%6Co", "/hel%6Co"),
        ("http://example.com/hello/", "/hello"),
        ("http://example.com", "/"),
    ])
    def test_normalize(self, target: str, expected: str):
        assert normalize_path(target) == expected

    def test_only_one_trailing_slash_removed(self):
        assert normalize_path("/hello//") == "/hello/"


class TestRequestContext:
    """Tests for the RequestContext model."""

    def test_is_frozen(self):
        request = RequestContext("GET", "/hello")
        with pytest.raises(AttributeError):
            request.method = "POST"

    def test_headers_are_read_only(self):
        request = RequestContext("GET", "/hello", {"Host": "x"})
        with pytest.raises(TypeError):
            request.headers["host"] = "y"

    def test_headers_lowercased(self):
        request = RequestContext("GET", "/hello", {"User-Agent": "curl/8"})
        assert request.user_agent == "curl/8"
        assert "User-Agent" not in request.headers

    @pytest.mark.parametrize("version, connection, expected", [
        ("HTTP/1.1", "", True),
        ("HTTP/1.1", "close", False),
        ("HTTP/1.1", "Keep-Alive, Upgrade", True),
        ("HTTP/1.0", "", False),
        ("HTTP/1.0", "keep-alive", True),
    ])
    def test_keep_alive(self, version: str, connection: str, expected: bool):
        headers = {"connection": connection} if connection else {}
        request = RequestContext("GET", "/", headers, version=version)
        assert request.is_keep_alive is expected
