from dataclasses import dataclass, field

from dgs.control.errors import GameResolutionError

VERSION_NONE = "none"
VERSION_TAG = "tag"
VERSION_ENV = "env"


@dataclass(frozen=True)
class GamePort:
    port: int
    protocol: str  # "tcp" or "udp"

    def binding_key(self) -> str:
        return f"{self.port}/{self.protocol}"


@dataclass(frozen=True)
class SinglePort(GamePort):
    """One container port, published on a freshly allocated host port."""


@dataclass(frozen=True)
class FixedPorts:
    """Container ports that must be published 1:1 and cannot be moved."""
    ports: tuple[GamePort, ...]


@dataclass(frozen=True)
class VersionConfig:
    strategy: str = VERSION_NONE
    help: str = "This game has no configurable version."
    env: str | None = None


@dataclass(frozen=True)
class Game:
    name: str
    display_name: str
    image: str
    ports: SinglePort | FixedPorts
    envs: tuple[str, ...] = ()
    version: VersionConfig = field(default_factory=VersionConfig)

    def container_ports(self) -> list[GamePort]:
        if isinstance(self.ports, FixedPorts):
            return list(self.ports.ports)
        return [self.ports]


@dataclass(frozen=True)
class GameResolution:
    identifier: str
    game: Game | None = None
    candidates: tuple[str, ...] = ()

    @property
    def status(self) -> str:
        if self.game is not None:
            return "found"
        if self.candidates:
            return "ambiguous"
        return "not_found"

    def game_or_raise(self) -> Game:
        if self.game is None:
            raise GameResolutionError(self.identifier, self.candidates)
        return self.game


_registry: dict[str, Game] = {}


def register_game(game: Game) -> None:
    _registry[game.name.lower()] = game


def load_games() -> None:
    """Import all game modules to trigger registration."""
    import dgs.games.factorio  # noqa: F401
    import dgs.games.minecraft  # noqa: F401
    import dgs.games.valheim  # noqa: F401


def get_game(name: str) -> Game | None:
    return _registry.get(name.lower())


find_by_name = get_game


def list_games() -> list[Game]:
    return sorted(_registry.values(), key=lambda g: g.name)


def strip_tag(image: str) -> str:
    """Drop a trailing ``:tag`` or ``@digest`` from an image reference.

    A colon only separates a tag inside the last path segment, so
    ``localhost:5000/img`` keeps its registry port.
    """
    image = image.split("@", 1)[0]
    head, _, last = image.rpartition("/")
    if ":" in last:
        last = last.split(":", 1)[0]
    return f"{head}/{last}" if head else last


def find_by_image(image: str) -> Game | None:
    bare = strip_tag(image)
    for game in _registry.values():
        if game.image == bare:
            return game
    return None


def resolve_game(identifier: str) -> GameResolution:
    """Exact (case-insensitive) name match first, then unique substring match."""
    exact = get_game(identifier)
    if exact is not None:
        return GameResolution(identifier, game=exact)

    needle = identifier.lower()
    matches = [g for g in list_games() if needle in g.name.lower()]
    if len(matches) == 1:
        return GameResolution(identifier, game=matches[0])
    return GameResolution(identifier, candidates=tuple(g.name for g in matches))
