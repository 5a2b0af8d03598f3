from unittest.mock import patch

from click.testing import CliRunner

from dgs.cli import cli
from dgs.control.errors import CleanupError, ConnectivityError, LifecycleStepError, RuntimeCallError
from dgs.control.tmp import TemporaryRun


def test_cli_version():
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_games_command_needs_no_runtime():
    runner = CliRunner()
    result = runner.invoke(cli, ["games"])
    assert result.exit_code == 0
    assert "minecraft" in result.output.lower()
    assert "factorio" in result.output.lower()


def test_podman_flags_are_exclusive():
    runner = CliRunner()
    result = runner.invoke(cli, ["-p", "-P", "games"])
    assert result.exit_code == 2


def test_help_command():
    runner = CliRunner()
    result = runner.invoke(cli, ["help", "servers"])
    assert result.exit_code == 0
    assert "--tag" in result.output


def test_help_for_nested_command():
    runner = CliRunner()
    result = runner.invoke(cli, ["help", "server", "tmp"])
    assert result.exit_code == 0
    assert "server tmp" in result.output
    assert "--version" in result.output


def test_help_unknown_command():
    runner = CliRunner()
    result = runner.invoke(cli, ["help", "server", "nope"])
    assert result.exit_code == 1
    assert "Unknown command: server nope" in result.output


def test_unknown_subcommand_shows_group_help():
    runner = CliRunner()
    result = runner.invoke(cli, ["server", "nope"])
    assert result.exit_code == 2
    assert "Manage servers." in result.output
    assert "No such command" in result.output


def test_unknown_option_shows_help():
    runner = CliRunner()
    result = runner.invoke(cli, ["servers", "--bogus"])
    assert result.exit_code == 2
    assert "Error:" in result.output


@patch("dgs.cli.ContainerRuntime")
def test_connect_options_are_forwarded(mock_runtime_cls, monkeypatch):
    mock_runtime_cls.connect.return_value.list_containers.return_value = []
    monkeypatch.setenv("DGS_TIMEOUT", "9")
    runner = CliRunner()
    result = runner.invoke(cli, ["-P", "servers"])
    assert result.exit_code == 0
    kwargs = mock_runtime_cls.connect.call_args[1]
    assert kwargs["podman_system"] is True
    assert kwargs["podman_user"] is False
    assert kwargs["timeout"] == 9
    mock_runtime_cls.connect.return_value.ping.assert_called_once()


@patch("dgs.cli.ContainerRuntime")
def test_connectivity_error_exits_1(mock_runtime_cls):
    mock_runtime_cls.connect.return_value.ping.side_effect = ConnectivityError(
        "Unable to connect with Docker: refused"
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["servers"])
    assert result.exit_code == 1
    assert "Unable to connect with Docker" in result.output


@patch("dgs.cli.ContainerRuntime")
def test_runtime_call_error_exits_1(mock_runtime_cls):
    mock_runtime_cls.connect.return_value.list_containers.side_effect = RuntimeCallError("list failed")
    runner = CliRunner()
    result = runner.invoke(cli, ["servers"])
    assert result.exit_code == 1
    assert "list failed" in result.output


@patch("dgs.cli.TemporaryServer")
@patch("dgs.cli.ContainerRuntime")
def test_tmp_runs_server(mock_runtime_cls, mock_server_cls):
    run = TemporaryRun(
        container_id="c0ffee", container_name="dgs-tmp_minecraft_x",
        image="docker.io/itzg/minecraft-server", host_ports={"25565/tcp": 40001},
    )

    def _run(game, options, on_started=None):
        on_started(run)
        return run

    mock_server_cls.return_value.run.side_effect = _run
    runner = CliRunner()
    result = runner.invoke(cli, ["server", "tmp", "minecraft", "-v", "1.20.4", "-t", "Survival"])
    assert result.exit_code == 0
    assert "40001" in result.output
    assert "stopped and removed" in result.output
    game, options = mock_server_cls.return_value.run.call_args[0]
    assert game.name == "minecraft"
    assert options.version == "1.20.4"
    assert options.tags == ["survival"]


@patch("dgs.cli.TemporaryServer")
@patch("dgs.cli.ContainerRuntime")
def test_tmp_resolves_game_substring(mock_runtime_cls, mock_server_cls):
    runner = CliRunner()
    runner.invoke(cli, ["server", "tmp", "bedrock"])
    game = mock_server_cls.return_value.run.call_args[0][0]
    assert game.name == "minecraft-bedrock"


@patch("dgs.cli.ContainerRuntime")
def test_tmp_unknown_game(mock_runtime_cls):
    runner = CliRunner()
    result = runner.invoke(cli, ["server", "tmp", "zelda"])
    assert result.exit_code == 1
    assert "Unable to find a matching game" in result.output
    mock_runtime_cls.connect.assert_not_called()


@patch("dgs.cli.ContainerRuntime")
def test_tmp_ambiguous_game(mock_runtime_cls):
    runner = CliRunner()
    result = runner.invoke(cli, ["server", "tmp", "craft"])
    assert result.exit_code == 1
    assert "minecraft-bedrock" in result.output


@patch("dgs.cli.TemporaryServer")
@patch("dgs.cli.ContainerRuntime")
def test_tmp_start_failure_exits_1(mock_runtime_cls, mock_server_cls):
    mock_server_cls.return_value.run.side_effect = LifecycleStepError(
        "start", "c0ffee", RuntimeCallError("port is already allocated"),
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["server", "tmp", "minecraft"])
    assert result.exit_code == 1
    assert "port is already allocated" in result.output


@patch("dgs.cli.TemporaryServer")
@patch("dgs.cli.ContainerRuntime")
def test_tmp_cleanup_failure_reports_container(mock_runtime_cls, mock_server_cls):
    mock_server_cls.return_value.run.side_effect = CleanupError(
        "c0ffee", [LifecycleStepError("remove", "c0ffee", RuntimeCallError("rm failed"))],
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["server", "tmp", "minecraft"])
    assert result.exit_code == 1
    assert "c0ffee" in result.output


@patch("dgs.cli.TemporaryServer")
@patch("dgs.cli.ContainerRuntime")
def test_tmp_stop_failure_after_remove_has_no_manual_hint(mock_runtime_cls, mock_server_cls):
    mock_server_cls.return_value.run.side_effect = CleanupError(
        "c0ffee", [LifecycleStepError("stop", "c0ffee", RuntimeCallError("already stopped"))],
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["server", "tmp", "minecraft"])
    assert result.exit_code == 1
    assert "was removed" in result.output
    assert "already stopped" in result.output
    assert "docker rm" not in result.output


@patch("dgs.cli.TemporaryServer")
@patch("dgs.cli.ContainerRuntime")
def test_tmp_keyboard_interrupt_shows_interrupted(mock_runtime_cls, mock_server_cls):
    mock_server_cls.return_value.run.side_effect = KeyboardInterrupt
    runner = CliRunner()
    result = runner.invoke(cli, ["server", "tmp", "minecraft"])
    assert result.exit_code == 130
    assert "Interrupted." in result.output


@patch("dgs.cli.TemporaryServer")
@patch("dgs.cli.ContainerRuntime")
def test_tmp_wires_progress_callbacks(mock_runtime_cls, mock_server_cls):
    runner = CliRunner()
    runner.invoke(cli, ["--debug", "server", "tmp", "minecraft"])
    kwargs = mock_server_cls.call_args[1]
    assert callable(kwargs["on_status"])
    assert callable(kwargs["on_progress"])
    assert kwargs["debug"] is True
    assert mock_server_cls.call_args[0][0] is mock_runtime_cls.connect.return_value


@patch("uvicorn.run")
@patch("dgs.api.create_app")
def test_api_command(mock_create_app, mock_run):
    runner = CliRunner()
    result = runner.invoke(cli, ["-p", "api", "--port", "9000"])
    assert result.exit_code == 0
    assert mock_create_app.call_args[1]["podman_user"] is True
    mock_run.assert_called_once_with(mock_create_app.return_value, host="127.0.0.1", port=9000)
