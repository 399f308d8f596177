import json

import pytest
from typer.testing import CliRunner

from p1doks_cli import __main__ as p1doks_main
from p1doks_cli import __version__
from p1doks_cli.cli import app as cli_app
from p1doks_cli.exceptions import ConfigurationError, TokenExpiredError
from p1doks_cli.storage.mappings import save_mapping_file
from p1doks_cli.storage.preferences import PreferencesStore

runner = CliRunner()


@pytest.fixture
def config_dir(monkeypatch, tmp_path):
    monkeypatch.setattr(cli_app, "PREFERENCES_FILE", tmp_path / "preferences.json")
    monkeypatch.setattr(cli_app, "OVERRIDE_MAPPING_FILE", tmp_path / "override.json")
    return tmp_path


def test_version():
    result = runner.invoke(cli_app.app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_resolve_matched_car(config_dir):
    result = runner.invoke(cli_app.app, ["resolve", "BMW M4 GT3"])
    assert result.exit_code == 0
    assert "bmwm4gt3" in result.output
    assert "exact" in result.output


def test_resolve_unmatched_car(config_dir):
    result = runner.invoke(cli_app.app, ["resolve", "Some Unlisted Car!"])
    assert result.exit_code == 0
    assert "someunlistedcar" in result.output
    assert "No match" in result.output


def test_resolve_with_override_file(config_dir):
    override = config_dir / "custom.json"
    save_mapping_file(override, {"Some Unlisted Car!": "custom"}, {"week": 1})

    result = runner.invoke(
        cli_app.app, ["resolve", "Some Unlisted Car!", "--mapping", str(override)]
    )

    assert result.exit_code == 0
    assert "custom" in result.output


def test_logout_removes_saved_session(config_dir):
    path = config_dir / "preferences.json"
    PreferencesStore(path).save_credentials("me@example.com", "refresh-1", "/setups")

    result = runner.invoke(cli_app.app, ["logout"])

    assert result.exit_code == 0
    assert not path.exists()


def test_show_config_hides_refresh_token(config_dir):
    path = config_dir / "preferences.json"
    path.write_text(
        json.dumps(
            {
                "username": "me@example.com",
                "refresh_token": "secret-refresh",
                "setups_path": "/setups",
            }
        ),
        encoding="utf-8",
    )

    result = runner.invoke(cli_app.app, ["--show-config"])

    assert result.exit_code == 0
    assert "me@example.com" in result.output
    assert "secret-refresh" not in result.output


def _raise(error):
    def command():
        raise error

    return command


def test_expired_session_has_its_own_exit_status(monkeypatch, capsys):
    monkeypatch.setattr(
        p1doks_main, "app", _raise(TokenExpiredError("Session expired."))
    )

    with pytest.raises(SystemExit) as excinfo:
        p1doks_main.main()

    assert excinfo.value.code == p1doks_main.EXIT_SESSION_EXPIRED
    assert "Run the command again" in capsys.readouterr().out


def test_other_application_errors_exit_with_failure(monkeypatch):
    monkeypatch.setattr(p1doks_main, "app", _raise(ConfigurationError("bad")))

    with pytest.raises(SystemExit) as excinfo:
        p1doks_main.main()

    assert excinfo.value.code == p1doks_main.EXIT_FAILURE


def test_cancelled_run_exits_cleanly(monkeypatch):
    monkeypatch.setattr(p1doks_main, "app", _raise(KeyboardInterrupt()))

    with pytest.raises(SystemExit) as excinfo:
        p1doks_main.main()

    assert excinfo.value.code == 0


def test_download_forgets_session_when_it_expires(config_dir, monkeypatch):
    path = config_dir / "preferences.json"
    PreferencesStore(path).save_credentials("me@example.com", "refresh-1", "/setups")

    async def expired_sign_in(*args):
        raise TokenExpiredError("Session expired.")

    monkeypatch.setattr(cli_app, "_sign_in", expired_sign_in)

    result = runner.invoke(cli_app.app, ["download", "--yes"])

    assert isinstance(result.exception, TokenExpiredError)
    assert not path.exists()
