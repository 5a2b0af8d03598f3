from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from dgs.control.errors import ConnectivityError, GameResolutionError, RuntimeCallError
from dgs.control.runtime import DEFAULT_TIMEOUT, ContainerRuntime
from dgs.control.servers import CONTAINER_STATES, ServerFilter, list_servers
from dgs.games.registry import FixedPorts, list_games, load_games


class GameResponse(BaseModel):
    name: str
    display_name: str
    image: str
    ports: list[str]
    configurable_port: bool
    version_strategy: str
    version_help: str


def _game_response(game) -> GameResponse:
    return GameResponse(
        name=game.name,
        display_name=game.display_name,
        image=game.image,
        ports=[f"{p.port}/{p.protocol}" for p in game.container_ports()],
        configurable_port=not isinstance(game.ports, FixedPorts),
        version_strategy=game.version.strategy,
        version_help=game.version.help,
    )


def create_app(podman_user: bool = False, podman_system: bool = False,
               timeout: int = DEFAULT_TIMEOUT) -> FastAPI:
    app = FastAPI(title="Docker Game Servers API", version="0.1.0")
    load_games()
    runtime = None

    def _runtime() -> ContainerRuntime:
        nonlocal runtime
        if runtime is None:
            connected = ContainerRuntime.connect(
                podman_user=podman_user, podman_system=podman_system, timeout=timeout,
            )
            connected.ping()
            runtime = connected
        return runtime

    @app.get("/games")
    def get_games():
        return [_game_response(g) for g in list_games()]

    @app.get("/servers")
    def get_servers(
        name: str | None = None,
        game: str | None = None,
        tag: list[str] = Query(default=[]),
        state: str | None = None,
    ):
        if state and state.lower() not in CONTAINER_STATES:
            raise HTTPException(status_code=400, detail=f"Unknown state: {state}")
        server_filter = ServerFilter(name=name, game=game, tags=list(tag), state=state)
        try:
            servers = list_servers(_runtime(), server_filter)
        except GameResolutionError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except (ConnectivityError, RuntimeCallError) as e:
            raise HTTPException(status_code=503, detail=str(e))
        return [asdict(s) for s in servers]

    return app
