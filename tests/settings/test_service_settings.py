import pytest

from config import runtime
from config.runtime import ServiceSettings
from modules.bootstrap import RuntimeConfiguration


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("STARTUP_TRIES", "3")
    monkeypatch.setenv("STARTUP_RETRY_DELAY_SEC", "0.25")
    monkeypatch.setenv("STARTUP_BIND_TIMEOUT_SEC", "4")
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "8081")

    settings = ServiceSettings.from_env()

    assert settings == ServiceSettings(
        tries=3, retry_delay=0.25, bind_timeout=4.0, host="127.0.0.1", port=8081
    )


def test_env_fallbacks(monkeypatch):
    monkeypatch.setenv("STARTUP_TRIES", "zero")
    monkeypatch.setenv("PORT", "not-a-port")
    monkeypatch.delenv("STARTUP_BIND_TIMEOUT_SEC", raising=False)
    monkeypatch.delenv("HOST", raising=False)

    assert runtime.get_startup_tries() == 5
    assert runtime.get_port() == 10000
    assert runtime.get_bind_timeout_sec() is None
    assert runtime.get_host() == "0.0.0.0"

    monkeypatch.setenv("STARTUP_TRIES", "-4")
    assert runtime.get_startup_tries() == 1


def test_from_mapping_defaults_and_validation():
    assert ServiceSettings.from_mapping({}).tries == 5
    assert ServiceSettings.from_mapping({"tries": 2}).tries == 2
    base = ServiceSettings(tries=7, port=9000)
    merged = ServiceSettings.from_mapping({"tries": 3}, base=base)
    assert (merged.tries, merged.port) == (3, 9000)

    for bad in ({"tries": 0}, {"tries": "3"}, {"tries": True}, {"retry_delay": -1}):
        with pytest.raises(ValueError):
            ServiceSettings.from_mapping(bad)


def test_runtime_configuration_refresh(monkeypatch):
    monkeypatch.setenv("SERVICE_KEY", "alpha")
    monkeypatch.setenv("STARTUP_TRIES", "2")
    config = RuntimeConfiguration({"extra": "yes"})

    settings = config.refresh()

    assert settings.tries == 2
    assert config.get("SERVICE_KEY") == "alpha"
    assert config.get("extra") == "yes"
    assert config.refresh_count == 1

    monkeypatch.setenv("STARTUP_TRIES", "4")
    config.refresh()
    assert config.settings.tries == 4
    assert config.refresh_count == 2
