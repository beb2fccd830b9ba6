# tests/test_cli.py
"""Unit tests for the command-line interface."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pgcontainer.cli import create_parser, main
from pgcontainer.config import ProvisionerSettings
from pgcontainer.exceptions import ImagePullError

ARGS = ["--user", "u", "--password", "p", "--database", "d"]


@pytest.fixture
def cli_env():
    """Patch logging setup and settings loading for CLI runs."""
    with (
        patch("pgcontainer.cli.configure_logging") as configure,
        patch("pgcontainer.cli.load_settings", return_value=ProvisionerSettings()) as load,
        patch("pgcontainer.cli._wait_for_termination", new_callable=AsyncMock) as wait,
    ):
        yield MagicMock(configure=configure, load=load, wait=wait)


def test_parser_requires_credentials():
    with pytest.raises(SystemExit):
        create_parser().parse_args(["--user", "u"])


def test_successful_run_prints_and_stops(cli_env, capsys):
    started = MagicMock()
    started.port = 54321
    started.dsn = "postgresql://u:p@localhost:54321/d"
    started.stop = AsyncMock()
    start = AsyncMock(return_value=started)

    with patch("pgcontainer.cli.start_postgres_container", start):
        exit_code = main(ARGS + ["--image", "postgres:16", "--marker", "done"])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "port=54321" in out
    assert "dsn=postgresql://u:p@localhost:54321/d" in out
    cli_env.wait.assert_awaited_once()
    started.stop.assert_awaited_once()

    request = start.await_args.args[0]
    assert request.image == "postgres:16"
    assert request.ready_marker == "done"
    assert request.ensure_shutdown is True


def test_default_image_left_to_settings(cli_env):
    """Without --image the loaded settings pick the image."""
    settings = ProvisionerSettings(default_image="postgres:15")
    cli_env.load.return_value = settings
    start = AsyncMock(side_effect=ImagePullError("nope", image="postgres:15"))

    with patch("pgcontainer.cli.start_postgres_container", start):
        main(ARGS)

    assert start.await_args.args[0].image is None
    assert start.await_args.kwargs["settings"] is settings


def test_provisioning_failure_exit_code(cli_env, capsys):
    start = AsyncMock(side_effect=ImagePullError('Image "x" can not be pulled.', image="x"))

    with patch("pgcontainer.cli.start_postgres_container", start):
        exit_code = main(ARGS)

    assert exit_code == 1
    assert "can not be pulled" in capsys.readouterr().err


def test_invalid_configuration_exit_code(cli_env, capsys):
    cli_env.load.side_effect = ValueError("Invalid pgcontainer settings: max_attempts")

    assert main(ARGS) == 1
    assert "Invalid configuration" in capsys.readouterr().err


def test_verbose_enables_console(cli_env):
    with patch(
        "pgcontainer.cli.start_postgres_container", AsyncMock(side_effect=ImagePullError("x"))
    ):
        main(ARGS + ["-v"])

    config = cli_env.configure.call_args.kwargs["config"]
    assert config["console_enabled"] is True
