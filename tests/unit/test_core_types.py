import dataclasses

import pytest

from pos_client.core.types import (
    EnvelopeMeta,
    PayloadClass,
    RequestDescriptor,
    RetryState,
)

pytestmark = pytest.mark.unit


class TestRetryState:
    def test_default_delays_double_then_cap(self):
        delays = []
        state = RetryState(max_attempts=6)
        while state.can_retry:
            delays.append(state.delay_ms)
            state = state.next()
        assert delays == [1000, 2000, 4000, 8000, 10000, 10000]

    def test_budget_counts_retries_not_attempts(self):
        state = RetryState(max_attempts=3)
        issued = 1
        while state.can_retry:
            state = state.next()
            issued += 1
        assert issued == 4
        assert state.number == 4

    def test_zero_retries_means_single_attempt(self):
        assert RetryState(max_attempts=0).can_retry is False

    def test_next_returns_new_state(self):
        first = RetryState()
        second = first.next()
        assert first.attempt == 0
        assert second.attempt == 1
        assert second.max_attempts == first.max_attempts

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"attempt": -1},
            {"max_attempts": -1},
            {"base_delay_ms": -5},
            {"base_delay_ms": 500, "cap_delay_ms": 100},
        ],
    )
    def test_rejects_invalid_bounds(self, kwargs):
        with pytest.raises(ValueError):
            RetryState(**kwargs)


class TestRequestDescriptor:
    def test_method_is_normalized(self):
        d = RequestDescriptor(method="get", url="http://x/api/v1/a")
        assert d.method == "GET"

    def test_rejects_unknown_method(self):
        with pytest.raises(ValueError, match="method"):
            RequestDescriptor(method="BREW", url="http://x")

    def test_rejects_empty_url(self):
        with pytest.raises(ValueError, match="url"):
            RequestDescriptor(method="GET", url="")

    def test_is_immutable(self):
        d = RequestDescriptor(method="GET", url="http://x", headers={"A": "1"})
        with pytest.raises(dataclasses.FrozenInstanceError):
            d.url = "http://y"  # type: ignore[misc]
        with pytest.raises(TypeError):
            d.headers["A"] = "2"  # type: ignore[index]

    def test_source_mapping_changes_do_not_leak_in(self):
        headers = {"X-Trace": "1"}
        d = RequestDescriptor(method="GET", url="http://x", headers=headers)
        headers["X-Trace"] = "2"
        assert d.headers["X-Trace"] == "1"

    def test_bearer_token_lookup_is_case_insensitive(self):
        d = RequestDescriptor(
            method="GET", url="http://x", headers={"authorization": "Bearer abc"}
        )
        assert d.bearer_token == "abc"
        assert RequestDescriptor(method="GET", url="http://x").bearer_token is None

    def test_with_header_replaces_case_insensitively(self):
        d = RequestDescriptor(
            method="GET", url="http://x", headers={"x-tenant": "a", "Accept": "*/*"}
        )
        updated = d.with_header("X-Tenant", "b")
        assert dict(updated.headers) == {"Accept": "*/*", "X-Tenant": "b"}
        assert d.headers["x-tenant"] == "a"

    def test_multipart_flag(self):
        assert not RequestDescriptor(method="POST", url="http://x").is_multipart
        upload = RequestDescriptor(
            method="POST", url="http://x", files={"file": ("a.png", b"data")}
        )
        assert upload.is_multipart


def test_payload_class_default_windows():
    assert PayloadClass.FIELD.default_debounce_ms == 300
    assert PayloadClass.QUANTITY.default_debounce_ms == 200
    assert PayloadClass.BINARY.default_debounce_ms == 500


def test_envelope_meta_extra_is_read_only():
    meta = EnvelopeMeta(extra={"request_id": "r1"})
    with pytest.raises(TypeError):
        meta.extra["request_id"] = "r2"  # type: ignore[index]
