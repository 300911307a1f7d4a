"""Unit tests for header utilities."""

from request_retry.utils.headers import (
    VOLATILE_HEADERS,
    build_replay_headers,
    get_header,
    has_header,
    normalize_headers,
)


class TestNormalizeHeaders:
    """Test normalize_headers."""

    def test_raw_asgi_pairs(self):
        raw = [(b"Accept", b"text/html"), (b"accept", b"*/*"), (b"X-Token", b"abc")]
        assert normalize_headers(raw) == {"accept": ["text/html", "*/*"], "x-token": ["abc"]}

    def test_mapping_with_single_and_list_values(self):
        headers = {"Content-Type": "application/json", "X-Tag": ["a", "b"]}
        assert normalize_headers(headers) == {
            "content-type": ["application/json"],
            "x-tag": ["a", "b"],
        }

    def test_latin1_bytes_decoded(self):
        assert normalize_headers([(b"x-name", "café".encode("latin-1"))]) == {"x-name": ["café"]}

    def test_empty(self):
        assert normalize_headers({}) == {}


class TestLookups:
    """Test get_header and has_header."""

    def test_get_header_case_insensitive(self):
        headers = {"x-retry-attempt": ["7"]}
        assert get_header(headers, "X-Retry-Attempt") == "7"

    def test_get_header_first_value(self):
        assert get_header({"accept": ["text/html", "*/*"]}, "accept") == "text/html"

    def test_get_header_missing(self):
        assert get_header({"accept": ["*/*"]}, "x-retry-attempt") is None

    def test_get_header_empty_list(self):
        assert get_header({"accept": []}, "accept") is None

    def test_has_header(self):
        assert has_header({"Accept": ["*/*"]}, "accept")
        assert not has_header({"Accept": ["*/*"]}, "x-other")


class TestBuildReplayHeaders:
    """Test build_replay_headers."""

    def test_volatile_headers_removed(self):
        headers = {name: ["v"] for name in VOLATILE_HEADERS}
        headers["authorization"] = ["Bearer t"]
        assert build_replay_headers(headers) == [("authorization", "Bearer t")]

    def test_every_value_kept_in_order(self):
        headers = {"accept": ["text/html", "*/*"], "cookie": ["a=1", "b=2"]}
        assert build_replay_headers(headers) == [
            ("accept", "text/html"),
            ("accept", "*/*"),
            ("cookie", "a=1"),
            ("cookie", "b=2"),
        ]

    def test_content_type_kept_by_default(self):
        headers = {"content-type": ["application/json"]}
        assert build_replay_headers(headers) == [("content-type", "application/json")]

    def test_content_type_dropped_on_request(self):
        headers = {"content-type": ["multipart/form-data; boundary=x"], "accept": ["*/*"]}
        assert build_replay_headers(headers, drop_content_type=True) == [("accept", "*/*")]

    def test_additional_volatile(self):
        headers = {"x-request-id": ["1"], "accept": ["*/*"]}
        assert build_replay_headers(headers, additional_volatile=["X-Request-Id"]) == [("accept", "*/*")]

    def test_empty_values_skipped(self):
        assert build_replay_headers({"accept": []}) == []
