from __future__ import annotations

from award_explorer import config


def test_env_int_falls_back_on_bad_values(monkeypatch, caplog):
    monkeypatch.setenv("AWARD_EXPLORER_TEST_INT", "ten")
    assert config._env_int("AWARD_EXPLORER_TEST_INT", 10) == 10
    assert "not an integer" in caplog.text

    monkeypatch.setenv("AWARD_EXPLORER_TEST_INT", " 3 ")
    assert config._env_int("AWARD_EXPLORER_TEST_INT", 10) == 3

    monkeypatch.delenv("AWARD_EXPLORER_TEST_INT")
    assert config._env_int("AWARD_EXPLORER_TEST_INT", 10) == 10


def test_env_float(monkeypatch):
    monkeypatch.setenv("AWARD_EXPLORER_TEST_FLOAT", "2.5")
    assert config._env_float("AWARD_EXPLORER_TEST_FLOAT", 1.0) == 2.5
    monkeypatch.setenv("AWARD_EXPLORER_TEST_FLOAT", "soon")
    assert config._env_float("AWARD_EXPLORER_TEST_FLOAT", 1.0) == 1.0


def test_explorer_defaults():
    assert config.DEBOUNCE_SECONDS == 1.0
    assert config.TABLE_PAGE_SIZE == 10
    assert config.CONTRACTS_PAGE_SIZE == 20
    assert config.RELATED_LIMIT == 10
    assert config.FETCH_RETRIES >= 0


def test_configure_logging_applies_once(monkeypatch):
    monkeypatch.setattr(config, "_LOGGING_CONFIGURED", False)
    config.configure_logging("debug")
    assert config._LOGGING_CONFIGURED
    # A second call is a no-op
    config.configure_logging("error")
    assert config._LOGGING_CONFIGURED
