from datetime import date

import pytest

from p1doks_cli.exceptions import ConfigurationError
from p1doks_cli.models.config import API_BASE_URL, ENV_SETTINGS, AppSettings, Preferences


def test_defaults():
    settings = AppSettings.from_env({})
    assert settings.api_base_url == API_BASE_URL
    assert settings.cognito_region == "ca-central-1"
    assert settings.weeks_per_season == 12


def test_environment_overrides():
    settings = AppSettings.from_env(
        {
            "P1DOKS_API_URL": "https://staging.example.com/",
            "P1DOKS_DOWNLOAD_DELAY": "2.5",
            "P1DOKS_SEASON_START": "2026-01-06",
            "UNRELATED": "ignored",
        }
    )
    assert settings.api_base_url == "https://staging.example.com"
    assert settings.download_delay == 2.5
    assert settings.season_reference_start == date(2026, 1, 6)


@pytest.mark.parametrize(
    "environ",
    [
        {"P1DOKS_API_URL": "ftp://example.com"},
        {"P1DOKS_DOWNLOAD_DELAY": "-1"},
        {"P1DOKS_SEASON_START": "not-a-date"},
    ],
)
def test_invalid_environment_is_a_configuration_error(environ):
    with pytest.raises(ConfigurationError):
        AppSettings.from_env(environ)


def test_preferences_completeness():
    assert not Preferences().is_complete
    assert not Preferences(username="me@example.com", setups_path="/s").is_complete
    assert Preferences(
        username="me@example.com", refresh_token="r", setups_path="/s"
    ).is_complete


def test_settings_only_read_used_variables():
    assert set(ENV_SETTINGS.values()) <= set(AppSettings.model_fields)
    assert "cognito_user_pool_id" not in AppSettings.model_fields

    settings = AppSettings.from_env({"P1DOKS_COGNITO_POOL_ID": "ca-central-1_other"})
    assert settings == AppSettings()
