"""Tests for chatwire.errors."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from chatwire.errors import (
    TIP_CREDENTIALS,
    TIP_ENDPOINT,
    TIP_GENERIC,
    TIP_MODEL_NOT_LOADED,
    TIP_NOT_RUNNING,
    TIP_RATE_LIMIT,
    TIP_SERVER,
    TIP_TIMEOUT,
    CancellationError,
    ConfigurationError,
    HttpStatusError,
    MalformedResponseError,
    ProviderError,
    TransportError,
    classify_tip,
    error_from_response,
    error_from_transport,
    raise_if_cancelled,
)

URL = "http://test.local/v1/chat/completions"


class TestClassifyTip:
    @pytest.mark.parametrize(
        "status, message, expected",
        [
            (401, "Unauthorized", TIP_CREDENTIALS),
            (403, "Forbidden", TIP_CREDENTIALS),
            (404, "Not Found", TIP_ENDPOINT),
            (429, "Too Many Requests", TIP_RATE_LIMIT),
            (500, "Internal Server Error", TIP_SERVER),
            (503, "Service Unavailable", TIP_SERVER),
            (599, "whatever", TIP_SERVER),
            (None, "Model is not loaded", TIP_MODEL_NOT_LOADED),
            (None, "Connection refused", TIP_NOT_RUNNING),
            (None, "connect ECONNREFUSED 127.0.0.1:1234", TIP_NOT_RUNNING),
            (None, "Request timed out", TIP_TIMEOUT),
            (None, "read timeout", TIP_TIMEOUT),
            (None, "something odd", TIP_GENERIC),
            (400, "Bad Request", TIP_GENERIC),
        ],
    )
    def test_tip_table(self, status, message, expected):
        assert classify_tip(message, status) == expected

    def test_status_wins_over_message(self):
        # A 401 that mentions a model still points at credentials.
        assert classify_tip("model not found", 401) == TIP_CREDENTIALS

    def test_model_check_precedes_connection_check(self):
        assert classify_tip("connection: model not available") == TIP_MODEL_NOT_LOADED

    def test_never_empty(self):
        assert classify_tip("") == TIP_GENERIC


class TestProviderError:
    def test_detailed_message_full(self):
        err = ProviderError("Boom", 500, URL, "Try again")
        assert err.detailed_message() == (
            f"Boom\nStatus: 500\nEndpoint: {URL}\nTip: Try again"
        )

    def test_detailed_message_omits_missing_fields(self):
        assert ProviderError("Boom").detailed_message() == "Boom"

    def test_create_with_tip_uses_classifier(self):
        err = HttpStatusError.create_with_tip("HTTP 429: slow down", 429, URL)
        assert isinstance(err, HttpStatusError)
        assert err.tip == TIP_RATE_LIMIT
        assert err.status == 429
        assert err.endpoint == URL

    def test_subclasses(self):
        for cls in (
            TransportError,
            HttpStatusError,
            MalformedResponseError,
            CancellationError,
            ConfigurationError,
        ):
            assert issubclass(cls, ProviderError)

    def test_cancellation_defaults(self):
        err = CancellationError(endpoint=URL)
        assert err.message == "Request cancelled"
        assert err.status is None
        assert err.endpoint == URL


class TestErrorFromResponse:
    def test_prefers_vendor_error_message(self):
        resp = httpx.Response(
            401, json={"error": {"message": "Invalid API key", "type": "auth"}}
        )
        err = error_from_response(resp, URL)
        assert isinstance(err, HttpStatusError)
        assert err.message == "HTTP 401: Invalid API key"
        assert err.status == 401
        assert err.tip == TIP_CREDENTIALS

    def test_string_error_body(self):
        resp = httpx.Response(500, json={"error": "model crashed"})
        assert error_from_response(resp, URL).message == "HTTP 500: model crashed"

    def test_falls_back_to_reason_phrase(self):
        resp = httpx.Response(404, text="<html>nope</html>")
        err = error_from_response(resp, URL)
        assert err.message == "HTTP 404: Not Found"
        assert err.tip == TIP_ENDPOINT


class TestErrorFromTransport:
    def test_connect_error(self):
        err = error_from_transport(httpx.ConnectError("All connection attempts failed"), URL)
        assert isinstance(err, TransportError)
        assert err.message.startswith("Connection failed:")
        assert err.tip == TIP_NOT_RUNNING
        assert err.endpoint == URL

    def test_timeout(self):
        err = error_from_transport(httpx.ReadTimeout("read"), URL)
        assert err.message.startswith("Request timed out:")
        assert err.tip == TIP_TIMEOUT


class TestRaiseIfCancelled:
    def test_none_is_noop(self):
        raise_if_cancelled(None)

    def test_unset_is_noop(self):
        raise_if_cancelled(asyncio.Event())

    def test_set_raises(self):
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(CancellationError):
            raise_if_cancelled(cancel, URL)
