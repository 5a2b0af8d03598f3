import sys
from dataclasses import dataclass, field
from datetime import datetime

import click

from dgs.control.errors import (
    CleanupError,
    DgsError,
    LifecycleStepError,
    UnsupportedPortsError,
)
from dgs.control.ports import allocate_port
from dgs.control.pull import pull_image
from dgs.control.servers import BASE_LABEL, CONTAINER_NAME_PREFIX, tag_label
from dgs.games.registry import VERSION_ENV, VERSION_TAG, FixedPorts, Game

IDLE = "idle"
CREATED = "created"
STARTED = "started"
AWAITING_INTERRUPT = "awaiting_interrupt"
STOPPING = "stopping"
REMOVED = "removed"
FAILED = "failed"


@dataclass
class GameOptions:
    version: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass
class TemporaryRun:
    container_id: str
    container_name: str
    image: str
    host_ports: dict[str, int]


def press_any_key() -> None:
    click.echo("Press any key to quit the server...")
    try:
        if sys.stdin.isatty():
            click.getchar()
        else:
            sys.stdin.readline()
    except (KeyboardInterrupt, EOFError):
        # Ctrl-C or a closed stdin also ends the wait so teardown still runs
        pass


def container_name_for(game: Game, now: datetime | None = None) -> str:
    now = now or datetime.now()
    stamp = now.strftime("%Y-%m-%d_%H-%M-%S") + f".{now.microsecond // 1000:03d}"
    return f"{CONTAINER_NAME_PREFIX}_{game.name}_{stamp}"


class TemporaryServer:
    """Runs one game server until the operator presses a key, then removes it.

    idle -> created -> started -> awaiting_interrupt -> stopping -> removed,
    with ``failed`` reachable from every step.
    """

    def __init__(self, runtime, on_status=None, on_progress=None, debug=False,
                 on_debug=None, wait_for_key=press_any_key, allocate=allocate_port):
        self.runtime = runtime
        self.on_status = on_status
        self.on_progress = on_progress
        self.debug = debug
        self.on_debug = on_debug
        self.wait_for_key = wait_for_key
        self.allocate = allocate
        self.state = IDLE
        self.container_id: str | None = None

    def _notify(self, message: str) -> None:
        if self.on_status:
            self.on_status(message)

    def _debug_callback(self, message: str) -> None:
        if self.debug and self.on_debug:
            self.on_debug(message)

    def _fail(self, error: Exception) -> Exception:
        self.state = FAILED
        self._debug_callback(f"{type(error).__name__}: {error}")
        return error

    def port_bindings(self, game: Game) -> dict[str, int]:
        if isinstance(game.ports, FixedPorts):
            raise UnsupportedPortsError(
                f"{game.name} uses a fixed port set, which temporary servers do not support yet"
            )
        host_port = self.allocate(game.ports.protocol)
        return {game.ports.binding_key(): host_port}

    def environment(self, game: Game, options: GameOptions) -> list[str]:
        env = list(game.envs)
        if game.version.strategy == VERSION_ENV and options.version:
            env.append(f"{game.version.env}={options.version}")
        return env

    def image(self, game: Game, options: GameOptions) -> str:
        if game.version.strategy == VERSION_TAG and options.version:
            return f"{game.image}:{options.version}"
        return game.image

    def labels(self, options: GameOptions) -> dict[str, str]:
        labels = {BASE_LABEL: ""}
        for tag in options.tags:
            labels[tag_label(tag)] = ""
        return labels

    def pull(self, game: Game, options: GameOptions) -> None:
        if game.version.strategy != VERSION_TAG or not options.version:
            return
        self._notify(f"Pulling image {game.image}:{options.version}")
        try:
            pull_image(self.runtime, game.image, tag=options.version, on_progress=self.on_progress)
        except DgsError as e:
            raise self._fail(e)

    def create(self, game: Game, options: GameOptions) -> TemporaryRun:
        self._notify("Creating container")
        try:
            bindings = self.port_bindings(game)
        except DgsError as e:
            raise self._fail(e)
        run = TemporaryRun(
            container_id="",
            container_name=container_name_for(game),
            image=self.image(game, options),
            host_ports=bindings,
        )
        try:
            run.container_id = self.runtime.create_container(
                name=run.container_name,
                image=run.image,
                env=self.environment(game, options),
                port_bindings=bindings,
                labels=self.labels(options),
            )
        except DgsError as e:
            raise self._fail(LifecycleStepError("create", None, e)) from e
        self.container_id = run.container_id
        self.state = CREATED
        return run

    def start(self, run: TemporaryRun) -> None:
        self._notify("Starting container")
        try:
            self.runtime.start_container(run.container_id)
        except DgsError as e:
            # The container is kept for inspection
            raise self._fail(LifecycleStepError("start", run.container_id, e)) from e
        self.state = STARTED

    def teardown(self, run: TemporaryRun) -> None:
        """Stop, then remove. Remove is attempted even when stop fails."""
        self.state = STOPPING
        errors: list[LifecycleStepError] = []
        self._notify("Stopping container")
        try:
            self.runtime.stop_container(run.container_id)
        except DgsError as e:
            errors.append(LifecycleStepError("stop", run.container_id, e))
        self._notify("Removing container")
        try:
            self.runtime.remove_container(run.container_id)
        except DgsError as e:
            errors.append(LifecycleStepError("remove", run.container_id, e))
            raise self._fail(CleanupError(run.container_id, errors))
        self.state = REMOVED
        if errors:
            # Removed anyway, so only the stop error is reported
            error = CleanupError(run.container_id, errors)
            self._debug_callback(f"{type(error).__name__}: {error}")
            raise error

    def run(self, game: Game, options: GameOptions | None = None, on_started=None) -> TemporaryRun:
        options = options or GameOptions()
        self.pull(game, options)
        run = self.create(game, options)
        self.start(run)
        if on_started:
            on_started(run)
        self.state = AWAITING_INTERRUPT
        self.wait_for_key()
        self.teardown(run)
        return run
