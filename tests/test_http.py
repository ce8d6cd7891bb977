"""Tests for compact_mirror.http — classification, retry, default fetcher.

All tests mock httpx and time.sleep to avoid real HTTP and delays.
"""

from unittest.mock import MagicMock, patch

import httpx as httpx_mod
import pytest

from compact_mirror.http import HttpFetcher, ResponseKind, classify, get_with_retry


class TestClassify:
    @pytest.mark.parametrize(
        "status, kind",
        [
            (200, ResponseKind.FULL),
            (203, ResponseKind.FULL),
            (206, ResponseKind.PARTIAL_CONTENT),
            (304, ResponseKind.NOT_MODIFIED),
            (404, ResponseKind.FULL),
        ],
    )
    def test_status_to_kind(self, status, kind):
        assert classify(httpx_mod.Response(status)) is kind


class TestGetWithRetry:
    @patch("compact_mirror.http.time.sleep")
    @patch("compact_mirror.http.httpx.get")
    def test_success_no_retry(self, mock_get, mock_sleep):
        resp = MagicMock()
        resp.status_code = 200
        mock_get.return_value = resp

        result = get_with_retry("https://example.com/versions")
        assert result.status_code == 200
        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    @patch("compact_mirror.http.time.sleep")
    @patch("compact_mirror.http.httpx.get")
    def test_429_retries_then_succeeds(self, mock_get, mock_sleep):
        fail_resp = MagicMock()
        fail_resp.status_code = 429
        fail_resp.headers = {}

        ok_resp = MagicMock()
        ok_resp.status_code = 200

        mock_get.side_effect = [fail_resp, fail_resp, ok_resp]

        result = get_with_retry("https://example.com/versions")
        assert result.status_code == 200
        assert mock_get.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("compact_mirror.http.time.sleep")
    @patch("compact_mirror.http.httpx.get")
    def test_exhausted_retries_returns_last(self, mock_get, mock_sleep):
        fail_resp = MagicMock()
        fail_resp.status_code = 503
        fail_resp.headers = {}
        mock_get.return_value = fail_resp

        result = get_with_retry("https://example.com/versions", max_retries=2)
        assert result.status_code == 503
        assert mock_get.call_count == 3  # 1 initial + 2 retries

    @patch("compact_mirror.http.time.sleep")
    @patch("compact_mirror.http.httpx.get")
    def test_exponential_backoff(self, mock_get, mock_sleep):
        fail_resp = MagicMock()
        fail_resp.status_code = 503
        fail_resp.headers = {}
        mock_get.return_value = fail_resp

        get_with_retry("https://example.com/versions", max_retries=3, backoff_base=1.0)

        sleep_calls = [c.args[0] for c in mock_sleep.call_args_list]
        assert sleep_calls == [1.0, 2.0, 4.0]

    @patch("compact_mirror.http.time.sleep")
    @patch("compact_mirror.http.httpx.get")
    def test_retry_after_header_respected(self, mock_get, mock_sleep):
        fail_resp = MagicMock()
        fail_resp.status_code = 429
        fail_resp.headers = {"retry-after": "10"}

        ok_resp = MagicMock()
        ok_resp.status_code = 200

        mock_get.side_effect = [fail_resp, ok_resp]

        get_with_retry("https://example.com/versions", backoff_base=1.0)
        mock_sleep.assert_called_once_with(10.0)

    @patch("compact_mirror.http.time.sleep")
    @patch("compact_mirror.http.httpx.get")
    def test_partial_and_not_modified_not_retried(self, mock_get, mock_sleep):
        for status in (206, 304, 404):
            mock_get.reset_mock()
            resp = MagicMock()
            resp.status_code = status
            mock_get.return_value = resp
            assert get_with_retry("https://example.com/versions").status_code == status
            assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    @patch("compact_mirror.http.time.sleep")
    @patch("compact_mirror.http.httpx.get")
    def test_zero_retries(self, mock_get, mock_sleep):
        mock_get.side_effect = httpx_mod.ConnectError("")

        with pytest.raises(httpx_mod.ConnectError):
            get_with_retry("https://example.com/versions", max_retries=0)
        assert mock_get.call_count == 1
        mock_sleep.assert_not_called()

    @patch("compact_mirror.http.time.sleep")
    @patch("compact_mirror.http.httpx.get")
    def test_timeout_retries_then_raises(self, mock_get, mock_sleep):
        mock_get.side_effect = httpx_mod.TimeoutException("")

        with pytest.raises(httpx_mod.TimeoutException):
            get_with_retry("https://example.com/versions", max_retries=2)
        assert mock_get.call_count == 3

    @patch("compact_mirror.http.time.sleep")
    def test_uses_given_client(self, mock_sleep):
        client = MagicMock()
        resp = MagicMock()
        resp.status_code = 200
        client.get.return_value = resp

        assert get_with_retry("https://example.com/names", client=client) is resp
        client.get.assert_called_once_with("https://example.com/names")


class TestHttpFetcher:
    def test_url_for(self):
        fetcher = HttpFetcher("https://rubygems.org")
        assert fetcher.url_for("versions") == "https://rubygems.org/versions"
        assert fetcher.url_for("/info/rack") == "https://rubygems.org/info/rack"

    def test_passes_headers_through_transport(self):
        seen = {}

        def handler(request: httpx_mod.Request) -> httpx_mod.Response:
            seen["url"] = str(request.url)
            seen["range"] = request.headers.get("Range")
            seen["inm"] = request.headers.get("If-None-Match")
            return httpx_mod.Response(206, content=b"c123", headers={"ETag": "e1"})

        client = httpx_mod.Client(transport=httpx_mod.MockTransport(handler))
        fetcher = HttpFetcher("https://index.example/", client=client, max_retries=0)

        resp = fetcher("versions", {"Range": "bytes=2-", "If-None-Match": "e0"})

        assert resp.status_code == 206
        assert resp.content == b"c123"
        assert seen == {
            "url": "https://index.example/versions",
            "range": "bytes=2-",
            "inm": "e0",
        }
