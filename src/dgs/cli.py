import os
import sys
from pathlib import Path

import click
import halo
from rich.console import Console
from rich.table import Table

from click.shell_completion import CompletionItem, get_completion_class

from dgs.control.errors import DgsError, GameResolutionError
from dgs.control.runtime import DEFAULT_TIMEOUT, ContainerRuntime
from dgs.control.servers import CONTAINER_STATES, ServerFilter, list_servers
from dgs.control.tmp import GameOptions, TemporaryServer
from dgs.games.registry import FixedPorts, list_games, load_games, resolve_game

console = Console()

PROGRESS_MODE = "steps"  # "steps", "inline", or "plain"
SHELLS = ("bash", "zsh", "fish")


class StepProgress:
    """Step-by-step progress display.

    Modes:
        "steps"   - halo bouncingBar spinner, checkmark/cross per step on new lines
        "inline"  - single-line replacement
        "plain"   - just print each message, no spinner/ANSI (for non-TTY / debug)
    """

    def __init__(self, mode="steps"):
        self._mode = mode
        self._spinner = None
        self._last_message = None
        self._step = None
        self._spinner_step = None

    def update(self, message):
        self._step = message
        if self._mode == "steps":
            if self._spinner:
                self._spinner.succeed(self._spinner_step)
            self._spinner = halo.Halo(text=message, spinner="bouncingBar")
            self._spinner_step = message
            self._spinner.start()
        elif self._mode == "inline":
            print(f"\r\033[K{message}", end="", flush=True)
            self._last_message = message
        else:
            print(message)

    def detail(self, message):
        """Show a transient line under the current step (pull progress)."""
        if self._mode == "steps":
            if self._spinner:
                self._spinner.text = f"{self._step} {message}"
        elif self._mode == "inline":
            print(f"\r\033[K{self._step} {message}", end="", flush=True)
            self._last_message = message
        else:
            print(f"  {message}")

    def finish(self):
        if self._mode == "steps":
            if self._spinner:
                self._spinner.succeed(self._spinner_step)
                self._spinner = None
        elif self._mode == "inline":
            if self._last_message:
                print()
                self._last_message = None

    def fail(self, message=None):
        if self._mode == "steps":
            if self._spinner:
                self._spinner.fail(message)
                self._spinner = None
        elif self._mode == "inline":
            print(f"\r\033[K{message or 'Failed'}")
        else:
            print(message or "Failed")


def _progress_mode(ctx):
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    if debug:
        return "plain"
    if not sys.stderr.isatty():
        return "plain"
    return PROGRESS_MODE


def _complete_game(ctx, param, incomplete):
    load_games()
    return [
        CompletionItem(g.name, help=g.display_name)
        for g in list_games()
        if g.name.startswith(incomplete.lower())
    ]


def _complete_state(ctx, param, incomplete):
    return [CompletionItem(s) for s in CONTAINER_STATES if s.startswith(incomplete)]


def _complete_command(ctx, param, incomplete):
    return [
        CompletionItem(name, help=(cli.get_command(ctx, name).get_short_help_str(80) or ""))
        for name in cli.list_commands(ctx)
        if name.startswith(incomplete)
    ]


def _debug_printer(ctx):
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    if debug:
        return lambda msg: console.log(f"[dim]{msg}[/]")
    return None


def _connect(ctx) -> ContainerRuntime:
    """Connect to the container runtime and ping it once."""
    opts = ctx.obj or {}
    runtime = ContainerRuntime.connect(
        podman_user=opts.get("podman_user", False),
        podman_system=opts.get("podman_system", False),
        timeout=opts.get("timeout", DEFAULT_TIMEOUT),
        on_debug=_debug_printer(ctx),
    )
    runtime.ping()
    return runtime


def _resolve_game_or_exit(identifier):
    try:
        return resolve_game(identifier).game_or_raise()
    except GameResolutionError as e:
        console.print(f"[red]{e}[/]")
        raise SystemExit(1)


class HelpfulCommand(click.Command):
    """On a usage error print the command's help, then the error, and exit 2."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as e:
            _usage_error(ctx, e)


class HelpfulGroup(click.Group):
    """Like HelpfulCommand, and an unknown subcommand shows the group's help."""

    command_class = HelpfulCommand

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as e:
            _usage_error(ctx, e)


def _usage_error(ctx, error):
    click.echo(ctx.get_help())
    click.echo()
    console.print(f"[bold red]Error:[/] {error.format_message()}")
    ctx.exit(2)


@click.group(cls=HelpfulGroup)
@click.version_option(version="0.1.0", prog_name="dgs")
@click.option("--podman-user", "-p", is_flag=True, envvar="DGS_PODMAN_USER",
              help="Use the rootless podman socket in $XDG_RUNTIME_DIR")
@click.option("--podman-system", "-P", is_flag=True, envvar="DGS_PODMAN_SYSTEM",
              help="Use the system podman socket")
@click.option("--timeout", default=DEFAULT_TIMEOUT, type=int, envvar="DGS_TIMEOUT",
              show_default=True, help="Runtime API timeout in seconds")
@click.option("--debug", is_flag=True, help="Show runtime API calls")
@click.pass_context
def cli(ctx, podman_user, podman_system, timeout, debug):
    """Docker Game Servers - run throwaway game servers on Docker or Podman."""
    if podman_user and podman_system:
        raise click.UsageError("--podman-user and --podman-system are mutually exclusive")
    load_games()
    ctx.ensure_object(dict)
    ctx.obj["podman_user"] = podman_user
    ctx.obj["podman_system"] = podman_system
    ctx.obj["timeout"] = timeout
    ctx.obj["debug"] = debug


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("path", nargs=-1, shell_complete=_complete_command)
@click.pass_context
def help(ctx, path):
    """Show help for a command, e.g. `dgs help server tmp`."""
    cmd_ctx = ctx.parent
    cmd = cli
    for name in path:
        sub = cmd.get_command(cmd_ctx, name) if isinstance(cmd, click.Group) else None
        if sub is None:
            console.print(f"[red]Unknown command: {' '.join(path)}[/]")
            raise SystemExit(1)
        cmd_ctx = click.Context(sub, info_name=name, parent=cmd_ctx)
        cmd = sub
    click.echo(cmd.get_help(cmd_ctx))


def _format_game_ports(game):
    if isinstance(game.ports, FixedPorts):
        return ", ".join(f"{p.port}/{p.protocol}" for p in game.ports.ports) + " (fixed)"
    return f"{game.ports.port}/{game.ports.protocol}"


@cli.command()
def games():
    """List supported games."""
    all_games = list_games()
    if not all_games:
        click.echo("No games registered.")
        return

    table = Table(title="Available Games")
    table.add_column("Name", style="cyan")
    table.add_column("Display Name", style="green")
    table.add_column("Image", style="yellow")
    table.add_column("Ports")
    table.add_column("Version", style="dim")

    for g in all_games:
        table.add_row(g.name, g.display_name, g.image, _format_game_ports(g), g.version.help)

    console.print(table)


def _format_ports(server):
    lines = []
    for port in server.ports:
        if port.protocol == "tcp":
            lines.append(f"{port.host}")
        else:
            lines.append(f"{port.host}({port.protocol})")
    return "\n".join(lines)


def _filter_options(fn):
    fn = click.option("--state", "-s", default=None, type=click.Choice(CONTAINER_STATES, case_sensitive=False),
                      shell_complete=_complete_state, help="Only servers in this state")(fn)
    fn = click.option("--tag", "-t", "tags", multiple=True,
                      help="Only servers with this tag (repeatable, all must match, case is ignored)")(fn)
    fn = click.option("--game", "-g", default=None, shell_complete=_complete_game,
                      help="Only servers of a matching game")(fn)
    fn = click.option("--name", "-n", default=None, help="Only servers whose name contains this")(fn)
    return fn


def _list_servers(ctx, name, game, tags, state):
    server_filter = ServerFilter(name=name, game=game, tags=list(tags), state=state)
    if game:
        _resolve_game_or_exit(game)
    try:
        runtime = _connect(ctx)
        servers = list_servers(runtime, server_filter, on_debug=_debug_printer(ctx))
    except DgsError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise SystemExit(1)

    if not servers:
        console.print("No servers found.")
        return

    table = Table(title="Game Servers")
    table.add_column("Name", style="cyan")
    table.add_column("Game", style="yellow")
    table.add_column("Tags", style="green")
    table.add_column("Ports", style="magenta")
    table.add_column("Status")

    for s in servers:
        table.add_row(s.name, s.game, "\n".join(s.tags), _format_ports(s), s.state)

    console.print(table)


@cli.command("servers")
@_filter_options
@click.pass_context
def servers_cmd(ctx, name, game, tags, state):
    """List servers."""
    _list_servers(ctx, name, game, tags, state)


@cli.group(cls=HelpfulGroup)
def server():
    """Manage servers."""


@server.command("ls")
@_filter_options
@click.pass_context
def server_ls(ctx, name, game, tags, state):
    """List servers."""
    _list_servers(ctx, name, game, tags, state)


@server.command()
@click.argument("game_name", shell_complete=_complete_game)
@click.option("--version", "-v", default=None, help="Game version (see `dgs games`)")
@click.option("--tag", "-t", "tags", multiple=True, help="Tag the server (repeatable)")
@click.pass_context
def tmp(ctx, game_name, version, tags):
    """Run a temporary server.

    It has no persistent storage and is stopped and removed once you press a key.
    """
    game = _resolve_game_or_exit(game_name)
    progress = StepProgress(mode=_progress_mode(ctx))

    def _started(run):
        progress.finish()
        for binding, host_port in run.host_ports.items():
            console.print(f"Running on Port: [bold green]{host_port}[/] ({binding})")

    try:
        runtime = _connect(ctx)
        orchestrator = TemporaryServer(
            runtime,
            on_status=progress.update,
            on_progress=progress.detail,
            debug=bool(ctx.obj.get("debug")),
            on_debug=_debug_printer(ctx),
        )
        run = orchestrator.run(
            game, GameOptions(version=version, tags=[t.lower() for t in tags]), on_started=_started,
        )
        progress.finish()
    except KeyboardInterrupt:
        progress.fail("Interrupted")
        console.print("\n[yellow]Interrupted.[/]")
        raise SystemExit(130)
    except (DgsError, ValueError) as e:
        progress.fail(str(e))
        console.print(f"[bold red]Error:[/] {e}")
        raise SystemExit(1)
    console.print(f"[green]Server {run.container_name} stopped and removed.[/]")


def _completion_source(shell):
    comp_cls = get_completion_class(shell)
    comp = comp_cls(cli, {}, "dgs", "_DGS_COMPLETE")
    return comp.source()


def completion_file_name(shell, name="dgs"):
    if shell == "bash":
        return name
    if shell == "fish":
        return name if name.endswith(".fish") else f"{name}.fish"
    return name if name.startswith("_") else f"_{name}"


def completion_user_dir(shell) -> Path:
    data_home = Path(os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share")
    if shell == "bash":
        comp_dir = os.environ.get("BASH_COMPLETION_USER_DIR")
        if comp_dir:
            return Path(comp_dir) / "completions"
        return data_home / "bash-completion" / "completions"
    if shell == "fish":
        return data_home / "fish" / "vendor_completions.d"
    raise click.UsageError("There is no default path for user zsh completion files, pass FILENAME")


def completion_system_dir(shell) -> Path:
    return {
        "bash": Path("/usr/share/bash-completion/completions"),
        "fish": Path("/usr/share/fish/vendor_completions.d"),
        "zsh": Path("/usr/local/share/zsh/site-functions"),
    }[shell]


@cli.command()
@click.argument("shell", type=click.Choice(SHELLS, case_sensitive=False))
@click.argument("filename", required=False, type=click.Path(path_type=Path))
@click.option("--print", "-p", "print_", is_flag=True, help="Print completions to the console")
@click.option("--system", "-s", is_flag=True, help="System wide installation")
def completions(shell, filename, print_, system):
    """Install shell completions.

    Writes to FILENAME (a file or directory), or the shell's user or system
    completion directory when FILENAME is omitted.
    """
    shell = shell.lower()
    if sum([bool(filename), print_, system]) > 1:
        raise click.UsageError("FILENAME, --print and --system are mutually exclusive")
    source = _completion_source(shell)
    if print_:
        click.echo(source)
        return

    if filename is None:
        target = (completion_system_dir(shell) if system else completion_user_dir(shell)) / completion_file_name(shell)
    elif filename.is_dir():
        target = filename / completion_file_name(shell)
    else:
        target = filename

    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(source + "\n")
    except OSError as e:
        console.print(f"[bold red]Error:[/] Could not write {target}: {e}")
        raise SystemExit(1)
    console.print(f"[green]Completions written to {target}[/]")


@cli.command()
@click.option("--port", "-p", default=8080, help="API port")
@click.option("--host", default="127.0.0.1", help="API host")
@click.pass_context
def api(ctx, port, host):
    """Start the local read-only REST API server."""
    from dgs.api import create_app
    import uvicorn

    opts = ctx.obj or {}
    app = create_app(
        podman_user=opts.get("podman_user", False),
        podman_system=opts.get("podman_system", False),
        timeout=opts.get("timeout", DEFAULT_TIMEOUT),
    )
    console.print(f"[green]Starting API server on {host}:{port}[/]")
    uvicorn.run(app, host=host, port=port)
