from __future__ import annotations

import pytest

from finledger.config import SyncSettings


def test_backoff_doubles_from_the_base_delay():
    settings = SyncSettings(backoff_base_sec=0.5)
    assert [settings.backoff_delay(n) for n in (1, 2, 3)] == [0.5, 1.0, 2.0]


def test_defaults_from_env(monkeypatch):
    monkeypatch.delenv("FINLEDGER_SYNC_MAX_ATTEMPTS", raising=False)
    monkeypatch.delenv("FINLEDGER_SYNC_BACKOFF_BASE_SEC", raising=False)
    assert SyncSettings.from_env() == SyncSettings(max_attempts=3, backoff_base_sec=1.0)


def test_env_overrides_and_malformed_values(monkeypatch):
    monkeypatch.setenv("FINLEDGER_SYNC_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("FINLEDGER_SYNC_BACKOFF_BASE_SEC", "fast")
    assert SyncSettings.from_env() == SyncSettings(max_attempts=5, backoff_base_sec=1.0)

    monkeypatch.setenv("FINLEDGER_SYNC_MAX_ATTEMPTS", "0")
    assert SyncSettings.from_env().max_attempts == 1


@pytest.mark.parametrize(
    "kwargs", [{"max_attempts": 0}, {"max_attempts": True}, {"backoff_base_sec": -1.0}]
)
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(ValueError):
        SyncSettings(**kwargs)
