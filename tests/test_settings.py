import pytest


@pytest.fixture
def load_settings(monkeypatch):
    for key in ("EVS_AUTH_TOKEN", "EVS_LOGIN_ID", "EVS_PASSWORD", "EVS_POLL_INTERVAL_S"):
        monkeypatch.delenv(key, raising=False)
    # the module builds its singleton at import time
    monkeypatch.setenv("EVS_AUTH_TOKEN", "bootstrap")
    from config.settings import load_settings
    monkeypatch.delenv("EVS_AUTH_TOKEN")
    return load_settings


def test_token_only(load_settings, monkeypatch):
    monkeypatch.setenv("EVS_AUTH_TOKEN", "abc")
    settings = load_settings()
    assert settings.auth_token == "abc"
    assert settings.login_id == ""
    assert settings.reconnect_max_s == 30.0
    assert settings.failures_before_polling == 5


def test_credentials_required_without_token(load_settings):
    with pytest.raises(EnvironmentError):
        load_settings()


def test_credentials_and_overrides(load_settings, monkeypatch):
    monkeypatch.setenv("EVS_LOGIN_ID", "sup")
    monkeypatch.setenv("EVS_PASSWORD", "secret")
    monkeypatch.setenv("EVS_POLL_INTERVAL_S", "5")
    settings = load_settings()
    assert settings.login_id == "sup"
    assert settings.poll_interval_s == 5.0
