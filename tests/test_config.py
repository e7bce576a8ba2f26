import pytest

from chat_lifecycle import config
from chat_lifecycle.config import LifecycleSettings, get_secret

ENV_VARS = [
    "CHAT_COMPLETION_BASE_URL",
    "CHAT_COMPLETION_TIMEOUT_S",
    "CHAT_SEND_MAX_RETRIES",
    "CHAT_RETRY_DELAY_S",
    "CHAT_RETRY_EXPONENTIAL",
    "CHAT_TYPING_TICK_S",
    "CHAT_TYPING_CHUNK_SIZE",
    "CHAT_DEFAULT_MODEL",
    "CHAT_LOG_LEVEL",
    "CHAT_STORE_URL",
    "CHAT_STORE_API_KEY",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "SECRETS_DIR", tmp_path)


def test_defaults():
    settings = LifecycleSettings.from_env()

    assert settings.send_max_retries == 3
    assert settings.retry_delay_s == 1.0
    assert settings.retry_exponential is True
    assert settings.completion_timeout_s == 30.0
    assert settings.typing_tick_s == 0.015
    assert settings.typing_chunk_size == 3
    assert settings.default_model == "gpt-4o-mini"
    assert settings.store_url is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CHAT_COMPLETION_BASE_URL", "https://example.test/functions/v1")
    monkeypatch.setenv("CHAT_SEND_MAX_RETRIES", "5")
    monkeypatch.setenv("CHAT_RETRY_EXPONENTIAL", "false")
    monkeypatch.setenv("CHAT_TYPING_TICK_S", "0")
    monkeypatch.setenv("CHAT_STORE_URL", "https://example.test/rest/v1")

    settings = LifecycleSettings.from_env()

    assert settings.completion_base_url == "https://example.test/functions/v1"
    assert settings.send_max_retries == 5
    assert settings.retry_exponential is False
    assert settings.typing_tick_s == 0.0
    assert settings.store_url == "https://example.test/rest/v1"


@pytest.mark.parametrize(
    "name,value",
    [("CHAT_SEND_MAX_RETRIES", "three"), ("CHAT_RETRY_DELAY_S", "soon"), ("CHAT_RETRY_EXPONENTIAL", "maybe")],
)
def test_invalid_values_name_the_variable(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=name):
        LifecycleSettings.from_env()


def test_negative_retries_are_rejected(monkeypatch):
    monkeypatch.setenv("CHAT_SEND_MAX_RETRIES", "-1")

    with pytest.raises(ValueError):
        LifecycleSettings.from_env()


def test_secret_file_wins_over_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("CHAT_STORE_API_KEY", "from-env")
    assert get_secret("CHAT_STORE_API_KEY") == "from-env"

    (tmp_path / "CHAT_STORE_API_KEY").write_text("from-file\n")

    assert get_secret("CHAT_STORE_API_KEY") == "from-file"
    assert LifecycleSettings.from_env().store_api_key == "from-file"
