"""Tests for oasgraph/helpers/http.py."""

from oasgraph.helpers.http import extract_path, get_header, join_url


class TestGetHeader:
    def test_found(self) -> None:
        assert get_header({"Content-Type": "application/json"}, "Content-Type") == "application/json"

    def test_not_found(self) -> None:
        assert get_header({"Content-Type": "application/json"}, "Authorization") is None

    def test_case_insensitive(self) -> None:
        assert get_header({"content-type": "text/html"}, "Content-Type") == "text/html"


class TestExtractPath:
    def test_dot_path(self) -> None:
        assert extract_path({"user": {"token": "abc"}}, "user.token") == "abc"

    def test_dollar_prefix(self) -> None:
        assert extract_path({"user": {"token": "abc"}}, "$.user.token") == "abc"

    def test_missing(self) -> None:
        assert extract_path({"user": {}}, "user.token") is None
        assert extract_path({"user": "flat"}, "user.token") is None
        assert extract_path({"a": 1}, "") is None


class TestJoinUrl:
    def test_single_slash(self) -> None:
        assert join_url("http://api.test/v1/", "/users") == "http://api.test/v1/users"
        assert join_url("http://api.test", "users") == "http://api.test/users"
