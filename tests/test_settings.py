import pytest

from rade_bot.src.config.settings import load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("USE_API_DATA", "TEST_MODE", "REPORTS_ENABLED", "PUBLIC_BASE_URL", "MAX_TOOL_STEPS"):
        monkeypatch.delenv(name, raising=False)


def test_mock_data_implies_test_mode():
    settings = load_settings()

    assert settings.use_api_data is False
    assert settings.test_mode is True


def test_api_data_turns_test_mode_off_unless_forced(monkeypatch):
    monkeypatch.setenv("USE_API_DATA", "true")
    assert load_settings().test_mode is False

    monkeypatch.setenv("TEST_MODE", "sim")
    assert load_settings().test_mode is True


def test_overrides_are_parsed(monkeypatch):
    monkeypatch.setenv("REPORTS_ENABLED", "0")
    monkeypatch.setenv("PUBLIC_BASE_URL", "https://rade.example.com/")
    monkeypatch.setenv("MAX_TOOL_STEPS", "5")

    settings = load_settings()

    assert settings.reports_enabled is False
    assert settings.public_base_url == "https://rade.example.com"
    assert settings.max_tool_steps == 5
