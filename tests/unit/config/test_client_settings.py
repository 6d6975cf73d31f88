import dataclasses

import pytest

from pos_client.config import ClientSettings, FrozenConfig, resolve_config
from pos_client.core.exceptions import ConfigurationError
from pos_client.core.types import PayloadClass, RetryState

pytestmark = pytest.mark.unit


def test_defaults():
    config = resolve_config()
    assert config == FrozenConfig()
    assert config.api_url == "http://localhost:5000/api/v1"
    assert config.retry_state() == RetryState()


def test_environment_overrides_defaults(monkeypatch):
    monkeypatch.setenv("POS_CLIENT_BASE_URL", "https://shop.example/")
    monkeypatch.setenv("POS_CLIENT_MAX_RETRIES", "5")
    monkeypatch.setenv("POS_CLIENT_FIELD_DEBOUNCE_MS", "150")

    config = resolve_config()

    assert config.base_url == "https://shop.example"
    assert config.max_retries == 5
    assert config.debounce_for(PayloadClass.FIELD) == 150


def test_explicit_overrides_win_and_none_is_ignored(monkeypatch):
    monkeypatch.setenv("POS_CLIENT_MAX_RETRIES", "5")

    config = resolve_config(max_retries=1, timeout_seconds=None)

    assert config.max_retries == 1
    assert config.timeout_seconds == 30.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"base_url": "ftp://shop.example"},
        {"timeout_seconds": 0},
        {"max_retries": -1},
        {"retry_jitter": 1.5},
        {"base_delay_ms": 2000, "cap_delay_ms": 1000},
    ],
)
def test_invalid_values_raise_configuration_error(overrides):
    with pytest.raises(ConfigurationError):
        resolve_config(**overrides)


def test_frozen_config_is_immutable():
    config = resolve_config()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.max_retries = 9  # type: ignore[misc]


def test_retry_state_reflects_config():
    config = resolve_config(max_retries=2, base_delay_ms=100, cap_delay_ms=250)
    state = config.retry_state()
    assert (state.max_attempts, state.base_delay_ms, state.cap_delay_ms) == (
        2,
        100,
        250,
    )


def test_debounce_windows_per_class():
    config = resolve_config()
    assert [config.debounce_for(c) for c in PayloadClass] == [300, 200, 500]


def test_settings_to_dict_matches_frozen_fields():
    fields = {f.name for f in dataclasses.fields(FrozenConfig)}
    assert set(ClientSettings().to_dict()) == fields
